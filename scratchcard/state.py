"""
Reveal/credit lifecycle of one scratch card.

    Pending -> RevealInFlight -> Revealed -> Credited

Network results are applied on the scheduler thread. The RevealGuard is
tested-and-set in the same call that dispatches the request, so two
triggers landing in one tick (a throttled mid-gesture sample and the
post-gesture sample, say) share a single request and its outcome.
"""

import logging
from concurrent.futures import Future
from enum import Enum
from typing import Callable, List, Optional

from scratchcard.config import ScratchConfig
from scratchcard.dispatch import ImmediateDispatcher
from scratchcard.errors import (AlreadyCredited, AlreadyRevealed, AuthRequired, InvalidTransition,
                                NetworkFailure, RewardError, UnknownServerError)
from scratchcard.models import CardStatus, ScratchCard
from scratchcard.notify import LogNotifier, format_amount

logger = logging.getLogger(__name__)


class RevealState(str, Enum):
    PENDING          = "pending"
    REVEAL_IN_FLIGHT = "reveal_in_flight"
    REVEALED         = "revealed"
    CREDITED         = "credited"
    EXPIRED          = "expired"


_FROM_CARD = {
    CardStatus.PENDING:  RevealState.PENDING,
    CardStatus.REVEALED: RevealState.REVEALED,
    CardStatus.CREDITED: RevealState.CREDITED,
    CardStatus.EXPIRED:  RevealState.EXPIRED,
}


class RevealGuard:
    """Per-card in-flight flag; acquire() is an immediate test-and-set."""

    def __init__(self):
        self._held = False

    @property
    def held(self) -> bool:
        return self._held

    def acquire(self) -> bool:
        if self._held:
            return False
        self._held = True
        return True

    def release(self) -> None:
        self._held = False


def _resolved(value) -> Future:
    fut = Future()
    fut.set_result(value)
    return fut


def _failed(exc) -> Future:
    fut = Future()
    fut.set_exception(exc)
    return fut


class RevealStateMachine:
    def __init__(self, card: ScratchCard, reconciler, scheduler, dispatcher=None,
                 notifier=None, config: Optional[ScratchConfig] = None):
        self.card = card
        self.reconciler = reconciler
        self.scheduler = scheduler
        self.dispatcher = dispatcher or ImmediateDispatcher()
        self.notifier = notifier or LogNotifier()
        self.config = config or ScratchConfig()
        self.guard = RevealGuard()
        self.state = _FROM_CARD[card.status]
        self.amount = card.amount
        self.message: Optional[str] = None
        self.last_error: Optional[RewardError] = None
        self.auto_halted = False
        self._reveal_future: Optional[Future] = None
        self._credit_future: Optional[Future] = None
        self._listeners: List[Callable] = []
        self._closed = False

    # Observers
    def add_listener(self, fn: Callable[["RevealStateMachine"], None]) -> None:
        self._listeners.append(fn)

    def _set_state(self, state: RevealState, emit: bool = True) -> bool:
        if state == self.state:
            return False
        logger.info("Scratch card %s: %s -> %s", self.card.id, self.state.value, state.value)
        self.state = state
        if emit:
            self._emit()
        return True

    def _emit(self) -> None:
        # A failing host callback must not leave the guard held or a future unresolved
        for fn in list(self._listeners):
            try:
                fn(self)
            except Exception:
                logger.exception("State listener %r failed for card %s", fn, self.card.id)

    def _notify(self, kind: str, title: str, message: str) -> None:
        try:
            getattr(self.notifier, kind)(title, message)
        except Exception:
            logger.exception("Notifier failed to show %r", title)

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def is_revealed(self) -> bool:
        return self.state in (RevealState.REVEALED, RevealState.CREDITED)

    # Reveal
    def on_progress(self, fraction: float) -> Optional[Future]:
        """Auto-reveal once the erased fraction reaches the threshold."""
        if self._closed or self.state != RevealState.PENDING or self.auto_halted:
            return self._reveal_future
        if fraction < self.config.reveal_threshold:
            return None
        logger.info("Scratch card %s reached %.1f%%, revealing", self.card.id, fraction)
        return self._begin_reveal()

    def reveal(self) -> Future:
        """Manual reveal. Re-entry on a revealed card resolves at once, no request."""
        if self.is_revealed:
            return _resolved(self.amount)
        if self.state == RevealState.EXPIRED:
            return self._reject("Scratch card has expired")
        if self._closed:
            return _failed(InvalidTransition("Scratch card widget is closed"))
        self.auto_halted = False
        return self._begin_reveal()

    def _begin_reveal(self) -> Future:
        if not self.guard.acquire():
            return self._in_flight()
        fut = self._reveal_future = Future()
        self._set_state(RevealState.REVEAL_IN_FLIGHT)
        self._dispatch(self.reconciler.reveal, self._finish_reveal)
        return fut

    def _in_flight(self) -> Future:
        """Future of whichever call holds the guard."""
        fut = self._reveal_future or self._credit_future
        if fut is None:
            return _failed(InvalidTransition("Another request for this scratch card is in flight"))
        return fut

    def _dispatch(self, call, finish):
        try:
            net = self.dispatcher.submit(call, self.card.id)
        except Exception as e:
            net = _failed(e)
        net.add_done_callback(lambda f: self.scheduler.post(lambda: finish(f)))

    def _finish_reveal(self, net: Future) -> None:
        fut, self._reveal_future = self._reveal_future, None
        if self._closed:
            logger.info("Discarding reveal result for card %s after teardown", self.card.id)
            return
        # Bookkeeping (guard, card, future) is settled before listeners and notifications run
        self.guard.release()
        try:
            result = net.result()
        except AlreadyRevealed as e:
            self._finish_collision(fut, e)
            return
        except Exception as e:
            err = self._classify(e)
            self.last_error = err
            if not isinstance(err, NetworkFailure):
                self.auto_halted = True
            changed = self._set_state(RevealState.PENDING, emit=False)
            logger.warning("Reveal of card %s failed: %s", self.card.id, err)
            fut.set_exception(err)
            if changed:
                self._emit()
            self._notify("error", "Error", err.message or "Failed to reveal scratch card")
            return

        amount = result.get("amount")
        self.message = result.get("message")
        self.last_error = None
        changed = self._adopt(RevealState.REVEALED, amount)
        fut.set_result(amount)
        if changed:
            self._emit()
        note = f"{format_amount(amount)} unlocked!"
        if self.message:
            note = f"{note} {self.message}"
        self._notify("success", "Scratch Card Revealed!", note)

    def _finish_collision(self, fut: Future, e: AlreadyRevealed) -> None:
        logger.info("Scratch card %s already %s on the server, adopting", self.card.id, e.status)
        if e.status == CardStatus.EXPIRED.value:
            changed = self._adopt(RevealState.EXPIRED, None)
            fut.set_exception(InvalidTransition("Scratch card has expired"))
            if changed:
                self._emit()
            self._notify("error", "Error", "Scratch card has expired")
            return
        amount = e.amount if e.amount is not None else self.card.last_known_amount
        target = RevealState.CREDITED if e.status == CardStatus.CREDITED.value else RevealState.REVEALED
        changed = self._adopt(target, amount)
        fut.set_result(self.amount)
        if changed:
            self._emit()

    def _adopt(self, target: RevealState, amount) -> bool:
        """Apply the server's status to the card and the machine, without emitting."""
        self.card.advance(CardStatus(target.value), amount)
        self.amount = self.card.amount
        return self._set_state(target, emit=False)

    # Credit
    def credit(self) -> Future:
        if self.state == RevealState.CREDITED:
            return _resolved(self.amount)
        if self._closed:
            return _failed(InvalidTransition("Scratch card widget is closed"))
        if self.state != RevealState.REVEALED:
            return self._reject("Scratch card must be revealed before crediting")
        if not self.guard.acquire():
            return self._in_flight()
        fut = self._credit_future = Future()
        self._dispatch(self.reconciler.credit, self._finish_credit)
        return fut

    def _finish_credit(self, net: Future) -> None:
        fut, self._credit_future = self._credit_future, None
        if self._closed:
            logger.info("Discarding credit result for card %s after teardown", self.card.id)
            return
        self.guard.release()
        try:
            result = net.result()
        except AlreadyCredited as e:
            logger.info("Scratch card %s already credited on the server", self.card.id)
            changed = self._adopt(RevealState.CREDITED, e.amount)
            fut.set_result(self.amount)
            if changed:
                self._emit()
            return
        except Exception as e:
            err = self._classify(e)
            self.last_error = err
            logger.warning("Credit of card %s failed: %s", self.card.id, err)
            fut.set_exception(err)
            self._notify("error", "Error", err.message or "Failed to credit scratch card")
            return

        amount = result.get("amount") or self.amount
        self.last_error = None
        changed = self._adopt(RevealState.CREDITED, amount)
        fut.set_result(self.amount)
        if changed:
            self._emit()
        self._notify("success", "Cashback Credited!", f"{format_amount(amount)} has been added to your wallet.")

    # Helpers
    def _classify(self, e: BaseException) -> RewardError:
        if isinstance(e, RewardError):
            return e
        logger.error("Unexpected error from reward ledger: %r", e)
        return UnknownServerError(str(e) or e.__class__.__name__)

    def _reject(self, message: str) -> Future:
        err = InvalidTransition(message)
        self._notify("error", "Error", message)
        return _failed(err)

    def close(self) -> None:
        """Stop applying results; outstanding calls finish but are ignored."""
        if self._closed:
            return
        self._closed = True
        for fut in (self._reveal_future, self._credit_future):
            if fut is not None:
                fut.cancel()
        self._listeners.clear()

    @property
    def halted_by_auth(self) -> bool:
        return self.auto_halted and isinstance(self.last_error, AuthRequired)
