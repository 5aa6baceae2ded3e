import logging, threading
from concurrent.futures import Future

logger = logging.getLogger(__name__)


class Dispatcher:
    def submit(self, fn, *args, **kw) -> Future:
        raise NotImplementedError


def _call_into(fut: Future, fn, args, kw):
    if not fut.set_running_or_notify_cancel():
        return
    try:
        result = fn(*args, **kw)
    except BaseException as e:
        fut.set_exception(e)
    else:
        fut.set_result(result)


class ThreadDispatcher(Dispatcher):
    """Each call on its own daemon thread so input handling never blocks."""

    def __init__(self, name="scratchcard-net"):
        self.name = name

    def submit(self, fn, *args, **kw) -> Future:
        fut = Future()
        t = threading.Thread(target=_call_into, args=(fut, fn, args, kw), name=self.name, daemon=True)
        t.start()
        return fut


class ImmediateDispatcher(Dispatcher):
    """Runs inline. The result still reaches the caller through scheduler.post."""

    def __init__(self):
        self.calls = 0

    def submit(self, fn, *args, **kw) -> Future:
        self.calls += 1
        fut = Future()
        _call_into(fut, fn, args, kw)
        return fut
