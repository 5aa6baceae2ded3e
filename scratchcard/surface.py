import logging, math
from typing import Optional

import cv2, numpy as np

from scratchcard.config import ScratchConfig
from scratchcard.models import Point
from scratchcard.texture import apply_pulse, metallic_texture, radial_falloff

logger = logging.getLogger(__name__)

SHIFT = 2          # cv2 fixed-point bits for sub-pixel strokes
_ONE = 1 << SHIFT


def _fx(v: float) -> int:
    return int(round(v * _ONE))


class ErasureSurface:
    """Opaque BGRA overlay that strokes can only erase.

    The buffer is (H, W, 4) uint8 at backing resolution; a pixel is erased
    when its alpha is 0. Only stroke() clears pixels, regenerate() and
    highlight() only ever repaint colour under the current erasure mask.
    """

    def __init__(self, config: Optional[ScratchConfig] = None, pixel_ratio: float = 1.0, rng=None):
        self.config = config or ScratchConfig()
        self.pixel_ratio = float(pixel_ratio)
        self.rng = rng if isinstance(rng, np.random.Generator) else np.random.default_rng(rng)
        self.buffer: Optional[np.ndarray] = None
        self._base: Optional[np.ndarray] = None
        self._falloff: Optional[np.ndarray] = None
        self.revision = 0

    # Geometry
    @property
    def ready(self) -> bool:
        return self.buffer is not None

    @property
    def shape(self):
        return (0, 0) if self.buffer is None else self.buffer.shape[:2]

    @property
    def brush_radius(self) -> float:
        return self.config.brush_width * self.pixel_ratio / 2.0

    def _paint_base(self, h, w):
        tex = metallic_texture(h, w, self.rng)
        self._base = tex[..., :3].copy()
        self._falloff = radial_falloff(h, w)
        return tex

    def initialize(self, width: float, height: float) -> None:
        """Allocate the buffer for a logical width x height and fill it opaque."""
        w = int(round(width * self.pixel_ratio))
        h = int(round(height * self.pixel_ratio))
        if w <= 0 or h <= 0:
            raise ValueError(f"surface needs a non-zero size, got {width}x{height}")
        self.buffer = self._paint_base(h, w)
        self.revision += 1
        logger.debug("Erasure buffer %dx%d (ratio %s)", w, h, self.pixel_ratio)

    def erased_mask(self) -> np.ndarray:
        return self.buffer[..., 3] == 0

    # Erasing
    def _clamp(self, p: Point) -> Point:
        h, w = self.buffer.shape[:2]
        return Point(min(max(p.x, 0.0), float(w)), min(max(p.y, 0.0), float(h)))

    def stroke(self, point: Point, previous: Optional[Point] = None) -> None:
        """Erase a round-capped segment previous->point (a single dab without previous)."""
        if self.buffer is None:
            return
        cfg = self.config
        r = self.brush_radius
        p = self._clamp(Point(*point))
        q = self._clamp(Point(*previous)) if previous is not None else None

        xs = [p.x] + ([q.x] if q else [])
        ys = [p.y] + ([q.y] if q else [])
        h, w = self.buffer.shape[:2]
        x0 = max(0, int(math.floor(min(xs) - r)) - 1)
        y0 = max(0, int(math.floor(min(ys) - r)) - 1)
        x1 = min(w, int(math.ceil(max(xs) + r)) + 2)
        y1 = min(h, int(math.ceil(max(ys) + r)) + 2)
        if x1 <= x0 or y1 <= y0:
            return

        mask = np.zeros((y1 - y0, x1 - x0), np.uint8)
        rad = _fx(r)

        def dab(x, y):
            cv2.circle(mask, (_fx(x - x0), _fx(y - y0)), rad, 255, -1, cv2.LINE_8, SHIFT)

        if q is not None:
            cv2.line(mask, (_fx(q.x - x0), _fx(q.y - y0)), (_fx(p.x - x0), _fx(p.y - y0)),
                     255, max(1, int(round(2*r))), cv2.LINE_8, SHIFT)
            dist = p.distance(q)
            # Fast swipes: extra dabs so no gap survives between events
            if dist > cfg.gap_threshold * self.pixel_ratio:
                steps = int(math.ceil(dist / (cfg.dab_spacing * self.pixel_ratio)))
                for i in range(1, steps):
                    t = i / steps
                    dab(q.x + (p.x - q.x)*t, q.y + (p.y - q.y)*t)
        dab(p.x, p.y)

        roi = self.buffer[y0:y1, x0:x1]
        roi[mask > 0] = 0
        self.revision += 1

    # Repainting under the mask
    def regenerate(self) -> None:
        """Fresh base texture; every erased pixel stays at alpha 0."""
        if self.buffer is None:
            return
        h, w = self.buffer.shape[:2]
        erased = self.erased_mask()
        self.buffer[...] = self._paint_base(h, w)
        self.buffer[erased] = 0
        self.revision += 1

    def highlight(self, intensity: float) -> None:
        if self.buffer is None:
            return
        apply_pulse(self._base, self._falloff, intensity, self.buffer)
        self.revision += 1

    def resize(self, width: float, height: float, pixel_ratio: Optional[float] = None) -> bool:
        """Re-allocate for a new layout size keeping the erased area (nearest neighbour)."""
        if pixel_ratio is not None:
            self.pixel_ratio = float(pixel_ratio)
        if self.buffer is None:
            self.initialize(width, height)
            return True
        w = int(round(width * self.pixel_ratio))
        h = int(round(height * self.pixel_ratio))
        if (h, w) == self.buffer.shape[:2]:
            return False
        if w <= 0 or h <= 0:
            raise ValueError(f"surface needs a non-zero size, got {width}x{height}")
        erased = self.erased_mask().astype(np.uint8)
        erased = cv2.resize(erased, (w, h), interpolation=cv2.INTER_NEAREST).astype(bool)
        self.buffer = self._paint_base(h, w)
        self.buffer[erased] = 0
        self.revision += 1
        logger.debug("Erasure buffer resized to %dx%d", w, h)
        return True

    def render_rgba(self) -> Optional[np.ndarray]:
        if self.buffer is None:
            return None
        return cv2.cvtColor(self.buffer, cv2.COLOR_BGRA2RGBA)

    def discard(self) -> None:
        self.buffer = None
        self._base = None
        self._falloff = None
