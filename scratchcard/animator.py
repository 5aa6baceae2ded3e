import logging, math
from typing import Callable, Optional

from scratchcard.config import ScratchConfig

logger = logging.getLogger(__name__)


class AmbientAnimator:
    """Idle shine over the unscratched overlay.

    A frame task that re-requests itself while running. The owner starts it
    only while the card is pending and no gesture is active, and stops it
    the moment either changes; start()/stop() are idempotent.
    """

    def __init__(self, surface, scheduler, config: Optional[ScratchConfig] = None,
                 on_frame: Optional[Callable[[], None]] = None):
        self.surface = surface
        self.scheduler = scheduler
        self.config = config or ScratchConfig()
        self.on_frame = on_frame
        self.phase = 0.0
        self.ticks = 0
        self.regenerations = 0
        self._handle = None
        self._last_ts = None
        self._last_regen = scheduler.now()

    @property
    def running(self) -> bool:
        return self._handle is not None

    def start(self) -> bool:
        if self.running or not self.surface.ready:
            return False
        self._last_ts = None
        self._handle = self.scheduler.request_frame(self._tick)
        logger.debug("Ambient animation started")
        return True

    def stop(self) -> None:
        if self._handle is None:
            return
        self.scheduler.cancel(self._handle)
        self._handle = None
        logger.debug("Ambient animation stopped")

    def intensity(self) -> float:
        cfg = self.config
        return cfg.pulse_base + math.sin(self.phase) * cfg.pulse_amplitude

    def _tick(self):
        self._handle = None
        if not self.surface.ready:
            return
        now = self.scheduler.now()
        if self._last_ts is not None:
            self.phase = (self.phase + self.config.pulse_speed * (now - self._last_ts)) % (2*math.pi)
        self._last_ts = now

        if now - self._last_regen >= self.config.regen_interval_ms:
            self.surface.regenerate()
            self._last_regen = now
            self.regenerations += 1
        self.surface.highlight(self.intensity())
        self.ticks += 1
        self._handle = self.scheduler.request_frame(self._tick)
        if self.on_frame is not None:
            self.on_frame()
