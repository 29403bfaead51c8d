"""Live pose keypoint overlay on a camera preview."""

from .config import OverlayConfig
from .loop import LoopController

__all__ = ["OverlayConfig", "LoopController"]
