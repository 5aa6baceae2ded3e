"""
Error taxonomy for reveal/credit calls against the reward ledger.

Only the ledger decides amounts and statuses; these errors tell the
client how to recover:

- AlreadyRevealed / AlreadyCredited: idempotency collisions, adopt server state
- NetworkFailure / Timeout: retryable, card goes back to pending
- AuthRequired: surfaced, stops automatic reveal attempts
- UnknownServerError / CardNotFound: surfaced, manual retry only
"""

from typing import Optional


class ConfigError(ValueError):
    """Raised for invalid tunables or environment overrides."""


class RewardError(Exception):
    retryable = False

    def __init__(self, message: str = "", status_code: Optional[int] = None):
        super().__init__(message)
        self.message = message or self.__class__.__name__
        self.status_code = status_code

    def __str__(self):
        return self.message


class AlreadyRevealed(RewardError):
    def __init__(self, message: str = "Scratch card already revealed", status: str = "revealed",
                 amount: Optional[float] = None, status_code: Optional[int] = 400):
        super().__init__(message, status_code)
        self.status = status
        self.amount = amount


class AlreadyCredited(RewardError):
    def __init__(self, message: str = "Scratch card already credited", amount: Optional[float] = None,
                 status_code: Optional[int] = 400):
        super().__init__(message, status_code)
        self.amount = amount


class NetworkFailure(RewardError):
    retryable = True


class Timeout(NetworkFailure):
    pass


class AuthRequired(RewardError):
    pass


class UnknownServerError(RewardError):
    pass


class CardNotFound(RewardError):
    pass


class InvalidTransition(RewardError):
    """Client-side misuse, e.g. crediting a card that was never revealed."""
