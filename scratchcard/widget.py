"""
ScratchCardWidget: one card's scratch surface, input handling and reveal
lifecycle.

    pointer events -> CoordinateMapper -> ErasureSurface.stroke
        -> (deferred) ProgressEstimator.sample -> RevealStateMachine
        -> RewardReconciler -> state listeners -> host UI

The host owns the real surface (Tk canvas, browser canvas, ...). It calls
init() once the surface has a layout size, relayout() on every resize,
forwards pointer events, and calls dispose() on teardown.
"""

import logging
from typing import Callable, List, Optional, Tuple

from scratchcard.animator import AmbientAnimator
from scratchcard.config import ScratchConfig
from scratchcard.coords import CoordinateMapper
from scratchcard.models import InputSession, Point, PointerEvent, ScratchCard, ScratchProgress, SurfaceBounds
from scratchcard.progress import ProgressEstimator
from scratchcard.state import RevealState, RevealStateMachine
from scratchcard.surface import ErasureSurface

logger = logging.getLogger(__name__)


class ScratchCardWidget:
    def __init__(self, card: ScratchCard, reconciler, scheduler, dispatcher=None, notifier=None,
                 config: Optional[ScratchConfig] = None, rng=None):
        self.card = card
        self.scheduler = scheduler
        self.config = config or ScratchConfig()
        self.rng = rng
        self.mapper = CoordinateMapper()
        self.surface: Optional[ErasureSurface] = None
        self.animator: Optional[AmbientAnimator] = None
        self.estimator = ProgressEstimator(clock=scheduler.now)
        self.session = InputSession()
        self.machine = RevealStateMachine(card, reconciler, scheduler, dispatcher, notifier, self.config)
        self.machine.add_listener(self._on_state)
        self.has_scratched = False
        self._sample_handle = None
        self._resume_handle = None
        self._timers = set()
        self._listeners: List[Callable[["ScratchCardWidget"], None]] = []
        self._initialized = False
        self._disposed = False

    # Host-facing state
    @property
    def state(self) -> RevealState:
        return self.machine.state

    @property
    def amount(self):
        return self.machine.amount

    @property
    def progress(self) -> ScratchProgress:
        return self.estimator.last

    @property
    def initialized(self) -> bool:
        return self._initialized

    @property
    def disposed(self) -> bool:
        return self._disposed

    def add_listener(self, fn: Callable[["ScratchCardWidget"], None]) -> None:
        self._listeners.append(fn)

    def _changed(self) -> None:
        for fn in list(self._listeners):
            fn(self)

    def render_rgba(self):
        return self.surface.render_rgba() if self.surface is not None else None

    # Lifecycle
    def init(self, width: float, height: float, pixel_ratio: float = 1.0,
             origin: Tuple[float, float] = (0, 0)) -> bool:
        """Create the erasure buffer; False while the surface has no layout size yet."""
        if self._disposed:
            raise RuntimeError("widget has been disposed")
        if self._initialized:
            return self.relayout(SurfaceBounds(origin[0], origin[1], width, height), pixel_ratio)
        bounds = SurfaceBounds(origin[0], origin[1], width, height)
        self.mapper.update(bounds, pixel_ratio)
        if self.machine.state != RevealState.PENDING:
            # Nothing left to scratch
            self._initialized = True
            return True
        if bounds.empty:
            logger.debug("Card %s surface has no size yet", self.card.id)
            return False
        self.surface = ErasureSurface(self.config, pixel_ratio, self.rng)
        self.surface.initialize(width, height)
        self.animator = AmbientAnimator(self.surface, self.scheduler, self.config, on_frame=self._changed)
        self._initialized = True
        self._maybe_start_animator()
        self._changed()
        return True

    def relayout(self, bounds: SurfaceBounds, pixel_ratio: Optional[float] = None) -> bool:
        """Recompute the coordinate mapping (and buffer size) after a resize or layout shift."""
        if self._disposed:
            return False
        bounds = SurfaceBounds(*bounds)
        if not self._initialized:
            return self.init(bounds.width, bounds.height, pixel_ratio or self.mapper.pixel_ratio,
                             (bounds.left, bounds.top))
        self.mapper.update(bounds, pixel_ratio)
        if self.surface is None or bounds.empty:
            return True
        if self.surface.resize(bounds.width, bounds.height, self.mapper.pixel_ratio):
            self._changed()
        return True

    def dispose(self) -> None:
        """Release the buffer and every scheduler task; late network results are dropped."""
        if self._disposed:
            return
        self._disposed = True
        try:
            if self.animator is not None:
                self.animator.stop()
        finally:
            self._cancel_sampling()
            if self._resume_handle is not None:
                self.scheduler.cancel(self._resume_handle)
                self._resume_handle = None
            self.machine.close()
            if self.surface is not None:
                self.surface.discard()
            self.surface = None
            self.animator = None
            self.session.end()
            self._listeners.clear()
            logger.debug("Card %s widget disposed", self.card.id)

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        self.dispose()
        return False

    # Input
    def _accepting(self) -> bool:
        return (not self._disposed and self.surface is not None and self.surface.ready
                and self.machine.state == RevealState.PENDING)

    def pointer_down(self, event: PointerEvent) -> bool:
        if not self._accepting():
            return False
        point = self.mapper.map(event)
        if point is None:
            return False
        self.session.begin()
        if self._resume_handle is not None:
            self.scheduler.cancel(self._resume_handle)
            self._resume_handle = None
        self.animator.stop()
        self._stroke(point)
        return True

    def pointer_move(self, event: PointerEvent) -> bool:
        if not self.session.active or not self._accepting():
            return False
        point = self.mapper.map(event)
        if point is None:
            # Dragged off the surface; re-entry starts a new dab, not a line from here
            self.session.last_point = None
            return False
        self._stroke(point)
        return True

    def pointer_up(self, event: Optional[PointerEvent] = None) -> bool:
        if not self.session.active:
            return False
        self.session.end()
        if self._disposed:
            return True
        if self.has_scratched and self.machine.state == RevealState.PENDING:
            for delay in self.config.final_sample_delays_ms:
                self._later(delay, self._sample)
        self._resume_handle = self._later(self.config.animator_cooldown_ms, self._resume_animation)
        return True

    def _stroke(self, point: Point) -> None:
        self.surface.stroke(point, self.session.last_point)
        self.session.last_point = point
        self.has_scratched = True
        self._schedule_sample()
        self._changed()

    # Deferred sampling
    def _schedule_sample(self) -> None:
        if self._sample_handle is not None:
            return

        def step(remaining):
            if remaining > 1:
                self._sample_handle = self.scheduler.request_frame(lambda: step(remaining - 1))
                return
            self._sample_handle = None
            self._sample()

        self._sample_handle = self.scheduler.request_frame(lambda: step(self.config.sample_defer_frames))

    def _cancel_sampling(self) -> None:
        if self._sample_handle is not None:
            self.scheduler.cancel(self._sample_handle)
            self._sample_handle = None
        for h in list(self._timers):
            self.scheduler.cancel(h)
        self._timers.clear()

    def _later(self, delay_ms, cb):
        holder = []

        def fire():
            self._timers.discard(holder[0])
            cb()

        h = self.scheduler.call_later(delay_ms, fire)
        holder.append(h)
        self._timers.add(h)
        return h

    def _sample(self) -> None:
        if self._disposed or self.surface is None or self.machine.state != RevealState.PENDING:
            return
        fraction = self.estimator.sample(self.surface.buffer)
        self._changed()
        self.machine.on_progress(fraction)

    # Animation
    def _resume_animation(self) -> None:
        self._resume_handle = None
        self._maybe_start_animator()

    def _maybe_start_animator(self) -> None:
        if (self.animator is None or self._disposed or self.session.active
                or self.machine.state != RevealState.PENDING or self._resume_handle is not None):
            return
        self.animator.start()

    # Reveal / credit
    def reveal(self):
        return self.machine.reveal()

    def credit(self):
        return self.machine.credit()

    def _on_state(self, machine: RevealStateMachine) -> None:
        state = machine.state
        if state != RevealState.PENDING and self.animator is not None:
            self.animator.stop()
        if state in (RevealState.REVEALED, RevealState.CREDITED) and self.surface is not None:
            # The overlay is no longer rendered once revealed
            self._cancel_sampling()
            self.surface.discard()
            self.surface = None
            self.animator = None
            self.session.end()
        elif state == RevealState.PENDING:
            self._maybe_start_animator()
        self._changed()
