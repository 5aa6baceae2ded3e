import logging

logger = logging.getLogger(__name__)

CURRENCY = "₹"


def format_amount(amount) -> str:
    if amount is None:
        return f"{CURRENCY}?"
    return f"{CURRENCY}{int(round(float(amount)))}"


class Notifier:
    """User-visible toast/dialog sink."""

    def success(self, title: str, message: str) -> None:
        raise NotImplementedError

    def error(self, title: str, message: str) -> None:
        raise NotImplementedError


class LogNotifier(Notifier):
    """Headless sink: notifications go to the log."""

    def __init__(self, log=None):
        self.log = log or logger

    def success(self, title, message):
        self.log.info("%s: %s", title, message)

    def error(self, title, message):
        self.log.error("%s: %s", title, message)
