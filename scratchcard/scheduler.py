"""
Cooperative scheduling for the widget: animation frames, timeouts and a
thread-safe hand-off from worker threads back onto the loop thread.

ManualScheduler is advanced explicitly (headless use, tests); TkScheduler
drives the same contract from a Tk widget's `after` queue.
"""

import heapq, itertools, logging, queue, threading

from scratchcard.models import now_ms

logger = logging.getLogger(__name__)


class Handle:
    __slots__ = ("id", "kind", "cancelled", "native")

    def __init__(self, id_, kind, native=None):
        self.id = id_
        self.kind = kind
        self.cancelled = False
        self.native = native

    def __repr__(self):
        return f"<Handle {self.kind}#{self.id}{' cancelled' if self.cancelled else ''}>"


class Scheduler:
    """Contract: request_frame / call_later / cancel / post / now (ms)."""

    frame_ms = 16

    def request_frame(self, cb) -> Handle:
        raise NotImplementedError

    def call_later(self, delay_ms, cb) -> Handle:
        raise NotImplementedError

    def cancel(self, handle) -> None:
        raise NotImplementedError

    def post(self, cb) -> None:
        raise NotImplementedError

    def now(self) -> float:
        raise NotImplementedError


def _run(cb):
    try:
        cb()
    except Exception:  # keep the loop alive, like a browser task would
        logger.exception("Scheduled callback %r failed", cb)


class ManualScheduler(Scheduler):
    def __init__(self, frame_ms=16, start_ms=0.0):
        self.frame_ms = frame_ms
        self._now = float(start_ms)
        self._ids = itertools.count(1)
        self._frames = []
        self._timers = []          # heap of (due, id, handle, cb)
        self._posted = queue.Queue()
        self.frame_count = 0

    def now(self) -> float:
        return self._now

    def request_frame(self, cb) -> Handle:
        h = Handle(next(self._ids), "frame")
        self._frames.append((h, cb))
        return h

    def call_later(self, delay_ms, cb) -> Handle:
        h = Handle(next(self._ids), "timer")
        heapq.heappush(self._timers, (self._now + max(0.0, delay_ms), h.id, h, cb))
        return h

    def cancel(self, handle) -> None:
        if handle is not None:
            handle.cancelled = True

    def post(self, cb) -> None:
        self._posted.put(cb)

    @property
    def pending(self) -> int:
        live = [h for h, _ in self._frames if not h.cancelled]
        live += [h for *_, h, _ in self._timers if not h.cancelled]
        return len(live) + self._posted.qsize()

    def run_pending(self) -> int:
        """Run posted callbacks and timers already due, without moving the clock."""
        n = 0
        while True:
            try:
                cb = self._posted.get_nowait()
            except queue.Empty:
                break
            _run(cb)
            n += 1
        while self._timers and self._timers[0][0] <= self._now:
            _, _, h, cb = heapq.heappop(self._timers)
            if not h.cancelled:
                h.cancelled = True
                _run(cb)
                n += 1
            # timers and posts may enqueue more posts
            while not self._posted.empty():
                _run(self._posted.get_nowait())
                n += 1
        return n

    def advance_frame(self) -> None:
        """One frame: clock += frame_ms, due timers/posts, then this frame's callbacks."""
        self._now += self.frame_ms
        self.frame_count += 1
        self.run_pending()
        frames, self._frames = self._frames, []
        for h, cb in frames:
            if not h.cancelled:
                h.cancelled = True
                _run(cb)
        self.run_pending()

    def advance(self, ms) -> None:
        target = self._now + ms
        while self._now + self.frame_ms <= target:
            self.advance_frame()
        if self._now < target:
            self._now = target
            self.run_pending()


class TkScheduler(Scheduler):
    """Scheduler on top of a Tk widget (anything with after / after_cancel)."""

    def __init__(self, widget, frame_ms=16, pump_ms=10, clock=now_ms):
        self.widget = widget
        self.frame_ms = frame_ms
        self.pump_ms = pump_ms
        self.clock = clock
        self._ids = itertools.count(1)
        self._posted = queue.Queue()
        self._lock = threading.Lock()
        self._pump = None
        self._closed = False

    def now(self) -> float:
        return self.clock()

    def _wrap(self, h, cb):
        def fire():
            if h.cancelled:
                return
            h.cancelled = True
            _run(cb)
        return fire

    def request_frame(self, cb) -> Handle:
        h = Handle(next(self._ids), "frame")
        h.native = self.widget.after(self.frame_ms, self._wrap(h, cb))
        return h

    def call_later(self, delay_ms, cb) -> Handle:
        h = Handle(next(self._ids), "timer")
        h.native = self.widget.after(max(0, int(delay_ms)), self._wrap(h, cb))
        return h

    def cancel(self, handle) -> None:
        if handle is None or handle.cancelled:
            return
        handle.cancelled = True
        if handle.native is not None:
            try:
                self.widget.after_cancel(handle.native)
            except Exception:  # widget already destroyed
                logger.debug("after_cancel failed for %r", handle)

    def post(self, cb) -> None:
        # Safe from any thread; only the pump touches Tk
        self._posted.put(cb)

    def start(self):
        with self._lock:
            if self._pump is None and not self._closed:
                self._pump = self.widget.after(self.pump_ms, self._drain)

    def _drain(self):
        while True:
            try:
                cb = self._posted.get_nowait()
            except queue.Empty:
                break
            _run(cb)
        with self._lock:
            self._pump = None if self._closed else self.widget.after(self.pump_ms, self._drain)

    def close(self):
        with self._lock:
            self._closed = True
            if self._pump is not None:
                try:
                    self.widget.after_cancel(self._pump)
                except Exception:
                    logger.debug("pump cancel failed")
                self._pump = None
