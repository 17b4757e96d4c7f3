"""
Surface Swap - Modules

Provides:
- buffers: owned image buffers with explicit release
- geometry: Point, Quadrilateral
- tracking: sparse optical flow corner tracker
- warping: homography warp onto the tracked quadrilateral
- compositing: alpha and motion-masked blending
- registry: per-placement tracker/warper ownership
- resources: ad image decoding and loading
- evaluation: IoU, corner error
"""

from .buffers import (
    ImageBuffer,
    BufferReleasedError,
    to_intensity,
)

from .geometry import (
    Point,
    Quadrilateral,
    as_quadrilateral,
    mean_quadrilateral,
)

from .tracking import (
    TrackingState,
    TrackerConfig,
    FeatureSet,
    CornerHistory,
    OpticalFlowTracker,
)

from .warping import (
    WarperConfig,
    HomographyWarper,
)

from .compositing import (
    CompositorConfig,
    Compositor,
    effective_alpha,
    foreground_mask,
    odd_kernel_size,
)

from .registry import (
    Placement,
    PlacementRegistry,
)

from .resources import (
    AdSource,
    AdSourceLoader,
    AssetDecodeError,
    decode_image,
)

from .evaluation import (
    calculate_iou,
    quad_to_mask,
    quad_iou,
    mean_corner_error,
)

__all__ = [
    # Buffers
    "ImageBuffer",
    "BufferReleasedError",
    "to_intensity",
    # Geometry
    "Point",
    "Quadrilateral",
    "as_quadrilateral",
    "mean_quadrilateral",
    # Tracking
    "TrackingState",
    "TrackerConfig",
    "FeatureSet",
    "CornerHistory",
    "OpticalFlowTracker",
    # Warping
    "WarperConfig",
    "HomographyWarper",
    # Compositing
    "CompositorConfig",
    "Compositor",
    "effective_alpha",
    "foreground_mask",
    "odd_kernel_size",
    # Registry
    "Placement",
    "PlacementRegistry",
    # Resources
    "AdSource",
    "AdSourceLoader",
    "AssetDecodeError",
    "decode_image",
    # Evaluation
    "calculate_iou",
    "quad_to_mask",
    "quad_iou",
    "mean_corner_error",
]
