"""
Homography warp of a source image onto a tracked quadrilateral.

Source corner i, in the order (0,0), (W,0), (W,H), (0,H), maps to
destination corner i. A mismatched winding order mirrors or rotates the
overlay; it is not an error.
"""
import logging
import numpy as np
import cv2
from dataclasses import dataclass
from typing import Optional, Tuple

from .buffers import ImageBuffer
from .geometry import QuadLike, Quadrilateral, as_quadrilateral
from .resources import AssetDecodeError, ImageSource, decode_image

logger = logging.getLogger(__name__)


@dataclass
class WarperConfig:
    """Warp target configuration."""

    source_image: ImageSource
    target_width: int
    target_height: int

    # At least this many corners must be inside the frame to draw
    min_visible_corners: int = 3


class HomographyWarper:
    """
    Projects a fixed source image onto destination quadrilaterals.

    If the source image cannot be decoded the warper disables itself and
    every ``warp`` returns None.
    """

    def __init__(self, cv=None):
        self.cv = cv if cv is not None else cv2
        self.config: Optional[WarperConfig] = None
        self._source: Optional[ImageBuffer] = None
        self._enabled = False

    @property
    def enabled(self) -> bool:
        return self._enabled and self._source is not None

    @property
    def source_size(self) -> Optional[Tuple[int, int]]:
        if self._source is None:
            return None
        return self._source.size

    def initialize(self, config: WarperConfig):
        if config.target_width <= 0 or config.target_height <= 0:
            raise ValueError(
                f"Invalid target size: {config.target_width}x{config.target_height}"
            )

        self.cleanup()
        self.config = config
        try:
            self._source = decode_image(config.source_image)
        except AssetDecodeError as e:
            logger.warning("Warper disabled, source image unusable: %s", e)
            self._enabled = False
            return

        self._enabled = True
        logger.info("Warper source loaded: %dx%d -> target %dx%d",
                    self._source.width, self._source.height,
                    config.target_width, config.target_height)

    def perspective_matrix(self, corners: QuadLike) -> Optional[np.ndarray]:
        """3x3 transform from source image corners to the destination corners."""
        if not self.enabled:
            return None

        corners = as_quadrilateral(corners)
        w, h = self._source.size
        src_corners = np.float32([[0, 0], [w, 0], [w, h], [0, h]])
        dst_corners = corners.to_array()

        try:
            matrix = self.cv.getPerspectiveTransform(src_corners, dst_corners)
        except cv2.error as e:
            logger.debug("Perspective transform failed: %s", e)
            return None

        if not np.all(np.isfinite(matrix)) or abs(np.linalg.det(matrix)) < 1e-12:
            return None
        return matrix

    def warp(self, corners: QuadLike) -> Optional[ImageBuffer]:
        """
        Warp the source image onto the given corners.

        Args:
            corners: Destination quadrilateral in frame coordinates

        Returns:
            Target-sized RGBA buffer, transparent outside the quadrilateral,
            owned by the caller. None when disabled, not initialized, the
            quadrilateral is mostly off-frame or degenerate.
        """
        if not self.enabled:
            return None

        corners = as_quadrilateral(corners)
        width, height = self.config.target_width, self.config.target_height
        if corners.count_in_bounds(width, height) < self.config.min_visible_corners:
            return None

        matrix = self.perspective_matrix(corners)
        if matrix is None:
            return None

        warped = self.cv.warpPerspective(
            self._source.data,
            matrix,
            (width, height),
            flags=cv2.INTER_LINEAR,
            borderMode=cv2.BORDER_CONSTANT,
            borderValue=(0, 0, 0, 0)
        )
        return ImageBuffer(warped)

    def cleanup(self):
        """Release the source image. Safe to call repeatedly."""
        if self._source is not None:
            self._source.release()
            self._source = None
        self._enabled = False
