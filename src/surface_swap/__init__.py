"""
Surface Swap - Main Package

Planar surface replacement for frame streams:
1. Tracking - Follow a marked quadrilateral with sparse optical flow
2. Warping - Project a still image onto the tracked corners
3. Compositing - Blend it in, keeping moving foreground in front
4. Registry - Own per-placement trackers and warpers
"""

from .config import PipelineConfig
from .pipeline import SurfaceReplacementPipeline, FrameResult

__all__ = [
    "PipelineConfig",
    "SurfaceReplacementPipeline",
    "FrameResult",
]
