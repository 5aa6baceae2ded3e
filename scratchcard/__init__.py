"""
Scratch-off reward reveal widget: erasure surface, progress sampling,
idle animation and the reveal/credit lifecycle for one reward card.
"""

from scratchcard.config import ScratchConfig, load_config
from scratchcard.coords import CoordinateMapper, map_point
from scratchcard.models import CardStatus, Point, PointerEvent, ScratchCard, SurfaceBounds
from scratchcard.progress import ProgressEstimator
from scratchcard.state import RevealGuard, RevealState, RevealStateMachine
from scratchcard.surface import ErasureSurface
from scratchcard.widget import ScratchCardWidget

__version__ = "1.0.0"
