"""
Compositing Module for Warped Overlays.

Features:
- Straight alpha blending with a minimum-alpha cutoff
- Motion-masked blending: frame differencing marks moving foreground,
  which progressively suppresses the overlay so occluders stay in front
"""
import logging
import warnings
import numpy as np
import cv2
from dataclasses import dataclass, asdict, fields, replace
from typing import Optional

from .buffers import ImageBuffer, to_intensity

logger = logging.getLogger(__name__)


@dataclass
class CompositorConfig:
    """Configuration for the compositor."""

    # Blending mode
    use_foreground_detection: bool = False

    # Foreground mask
    motion_threshold: int = 25  # 0-255 intensity difference
    dilate_size: int = 5  # elliptical kernel, 0 disables
    blur_size: int = 5  # gaussian kernel, forced odd, 0 disables

    # Blend cutoffs
    alpha_threshold: float = 0.1
    background_confidence: float = 0.5

    def validate(self):
        if not 0 <= self.motion_threshold <= 255:
            raise ValueError(f"motion_threshold must be in [0, 255], got {self.motion_threshold}")
        if self.dilate_size < 0:
            raise ValueError(f"dilate_size must be >= 0, got {self.dilate_size}")
        if self.blur_size < 0:
            raise ValueError(f"blur_size must be >= 0, got {self.blur_size}")
        if self.blur_size > 0 and self.blur_size % 2 == 0:
            warnings.warn(f"blur_size {self.blur_size} is even, using {self.blur_size + 1}")
        if not 0.0 <= self.alpha_threshold < 1.0:
            raise ValueError(f"alpha_threshold must be in [0, 1), got {self.alpha_threshold}")
        if not 0.0 <= self.background_confidence < 1.0:
            raise ValueError(
                f"background_confidence must be in [0, 1), got {self.background_confidence}"
            )


def odd_kernel_size(size: int) -> int:
    """Nearest odd kernel size at or above ``size``."""
    return size if size % 2 == 1 else size + 1


def effective_alpha(alpha: np.ndarray,
                    confidence: Optional[np.ndarray] = None,
                    threshold: float = 0.1,
                    min_confidence: float = 0.5) -> np.ndarray:
    """
    Per-pixel blend weight.

    Args:
        alpha: Overlay alpha in [0, 1]
        confidence: Background confidence in [0, 1] (1 = static background)
        threshold: Alpha at or below this is treated as transparent
        min_confidence: Confidence at or below this suppresses the overlay

    Returns:
        Weights in [0, 1], 0 where the overlay is not drawn
    """
    weights = np.where(alpha > threshold, alpha, 0.0).astype(np.float32)
    if confidence is not None:
        weights = np.where(confidence > min_confidence, weights * confidence, 0.0).astype(np.float32)
    return weights


def foreground_mask(frame: ImageBuffer,
                    previous: ImageBuffer,
                    config: CompositorConfig,
                    cv=cv2) -> np.ndarray:
    """
    Motion mask from frame differencing.

    Args:
        frame: Current frame
        previous: Previous frame, same size
        config: Threshold, dilation and blur settings
        cv: Vision primitives provider

    Returns:
        float32 mask (H, W) in [0, 1], 1 = moving foreground
    """
    current_gray = to_intensity(frame, cv)
    previous_gray = to_intensity(previous, cv)

    diff = cv.absdiff(current_gray, previous_gray)
    _, mask = cv.threshold(diff, config.motion_threshold, 255, cv2.THRESH_BINARY)

    if config.dilate_size > 0:
        kernel = cv.getStructuringElement(cv2.MORPH_ELLIPSE,
                                          (config.dilate_size, config.dilate_size))
        mask = cv.dilate(mask, kernel)

    if config.blur_size > 0:
        k = odd_kernel_size(config.blur_size)
        mask = cv.GaussianBlur(mask, (k, k), 0)

    return mask.astype(np.float32) / 255.0


class Compositor:
    """
    Blends warped overlays onto frames.

    Keeps a copy of the last input frame for the motion mask; the copy is
    released when replaced or on ``cleanup()``.
    """

    def __init__(self, config: Optional[CompositorConfig] = None, cv=None):
        self.config = config or CompositorConfig()
        self.config.validate()
        self.cv = cv if cv is not None else cv2
        self._previous: Optional[ImageBuffer] = None

    @property
    def has_previous(self) -> bool:
        return self._previous is not None

    def get_config(self) -> CompositorConfig:
        return replace(self.config)

    def set_config(self, **updates) -> CompositorConfig:
        """Merge partial settings; applies from the next ``render``."""
        known = {f.name for f in fields(CompositorConfig)}
        unknown = set(updates) - known
        if unknown:
            raise ValueError(f"Unknown compositor settings: {sorted(unknown)}")

        merged = replace(self.config, **updates)
        merged.validate()
        self.config = merged
        logger.debug("Compositor config updated: %s", asdict(merged))
        return self.get_config()

    def render(self, frame: ImageBuffer, warped: Optional[ImageBuffer]) -> ImageBuffer:
        """
        Composite the warped overlay onto the frame.

        Args:
            frame: Current frame (RGB or RGBA), not modified
            warped: RGBA overlay of the same size, or None

        Returns:
            New buffer owned by the caller
        """
        if frame.channels not in (3, 4):
            raise ValueError(f"Compositor needs a color frame, got {frame.channels} channel(s)")

        result = frame.clone()
        try:
            if warped is not None:
                self._blend(result, frame, warped)
        except Exception:
            result.release()
            raise
        finally:
            self._store_previous(frame)
        return result

    def cleanup(self):
        """Release the stored previous frame. Safe to call repeatedly."""
        if self._previous is not None:
            self._previous.release()
            self._previous = None

    def _blend(self, result: ImageBuffer, frame: ImageBuffer, warped: ImageBuffer):
        if warped.channels != 4:
            raise ValueError(f"Warped overlay must be RGBA, got {warped.channels} channel(s)")
        if warped.size != frame.size:
            logger.warning("Overlay size %s does not match frame size %s, skipping",
                           warped.size, frame.size)
            return

        overlay = warped.data
        alpha = overlay[:, :, 3].astype(np.float32) / 255.0

        confidence = None
        if self.config.use_foreground_detection and self._motion_ready(frame):
            confidence = 1.0 - foreground_mask(frame, self._previous, self.config, self.cv)

        weights = effective_alpha(alpha, confidence,
                                  threshold=self.config.alpha_threshold,
                                  min_confidence=self.config.background_confidence)
        weights = weights[:, :, None]

        out = result.data
        blended = (out[:, :, :3].astype(np.float32) * (1.0 - weights) +
                   overlay[:, :, :3].astype(np.float32) * weights)
        out[:, :, :3] = np.clip(blended, 0, 255).astype(np.uint8)

    def _motion_ready(self, frame: ImageBuffer) -> bool:
        return self._previous is not None and self._previous.shape == frame.shape

    def _store_previous(self, frame: ImageBuffer):
        self.cleanup()
        self._previous = frame.clone()
