import logging
from typing import Optional

from scratchcard.models import Point, PointerEvent, SurfaceBounds

logger = logging.getLogger(__name__)


def client_coords(event: PointerEvent):
    # Active touch first, then the lifted one (touchend), then mouse
    if event.touches:
        t = event.touches[0]
        return t.client_x, t.client_y
    if event.changed_touches:
        t = event.changed_touches[0]
        return t.client_x, t.client_y
    if event.client_x is None or event.client_y is None:
        return None
    return event.client_x, event.client_y


def map_point(event: PointerEvent, bounds: SurfaceBounds, pixel_ratio: float = 1.0) -> Optional[Point]:
    """Client coordinates -> buffer coordinates, or None when off-surface."""
    if bounds is None or bounds.empty:
        return None
    xy = client_coords(event)
    if xy is None:
        return None
    lx = xy[0] - bounds.left
    ly = xy[1] - bounds.top
    if not (0 <= lx < bounds.width and 0 <= ly < bounds.height):
        return None
    return Point(lx * pixel_ratio, ly * pixel_ratio)


class CoordinateMapper:
    """Holds the current on-screen bounds of the surface.

    Hosts must call update() on every resize / layout shift; a stale
    mapping silently misplaces strokes.
    """

    def __init__(self, bounds: Optional[SurfaceBounds] = None, pixel_ratio: float = 1.0):
        self.bounds = bounds
        self.pixel_ratio = pixel_ratio

    def update(self, bounds: SurfaceBounds, pixel_ratio: Optional[float] = None) -> bool:
        if pixel_ratio is None:
            pixel_ratio = self.pixel_ratio
        if pixel_ratio <= 0:
            raise ValueError(f"pixel_ratio must be positive, got {pixel_ratio}")
        changed = bounds != self.bounds or pixel_ratio != self.pixel_ratio
        if changed:
            logger.debug("Surface mapping now %s @ %sx", tuple(bounds), pixel_ratio)
        self.bounds = SurfaceBounds(*bounds)
        self.pixel_ratio = pixel_ratio
        return changed

    def buffer_size(self):
        """(width, height) of the backing raster for the current bounds."""
        if self.bounds is None or self.bounds.empty:
            return 0, 0
        return (max(1, int(round(self.bounds.width * self.pixel_ratio))),
                max(1, int(round(self.bounds.height * self.pixel_ratio))))

    def map(self, event: PointerEvent) -> Optional[Point]:
        return map_point(event, self.bounds, self.pixel_ratio)
