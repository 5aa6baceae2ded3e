import logging, math
from typing import Optional

import numpy as np

from scratchcard.models import ScratchProgress, now_ms

logger = logging.getLogger(__name__)


def erased_fraction(buffer: Optional[np.ndarray]) -> float:
    """Percent of pixels with alpha 0, rounded half-up to one decimal."""
    if buffer is None or buffer.size == 0:
        return 0.0
    alpha = buffer[..., 3]
    erased = int(np.count_nonzero(alpha == 0))
    pct = erased / alpha.size * 100.0
    return math.floor(pct * 10 + 0.5) / 10


class ProgressEstimator:
    """Samples the erasure buffer.

    Call sample() only from a scheduler tick after the stroke that
    prompted it; the widget takes care of deferring and throttling.
    """

    def __init__(self, clock=now_ms):
        self.clock = clock
        self.last = ScratchProgress()

    def sample(self, buffer: Optional[np.ndarray]) -> float:
        fraction = erased_fraction(buffer)
        if fraction != self.last.fraction:
            logger.debug("Scratch progress %.1f%%", fraction)
        self.last = ScratchProgress(fraction=fraction, sampled_at=self.clock())
        return fraction

    def reset(self):
        self.last = ScratchProgress()
