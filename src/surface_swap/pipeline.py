"""
Surface Replacement Pipeline.

Per frame: track -> warp -> composite, for every active placement.
Each frame is handled start to finish before the next; stopping is a flag
checked at the top of ``process_frame``.
"""
import logging
import numpy as np
from dataclasses import dataclass, field, replace
from typing import Callable, Dict, Iterable, Iterator, Optional

from .config import PipelineConfig
from .modules.buffers import ImageBuffer
from .modules.compositing import Compositor
from .modules.geometry import QuadLike, Quadrilateral, as_quadrilateral
from .modules.registry import Placement, PlacementRegistry
from .modules.resources import AdSource, AdSourceLoader, ImageSource
from .modules.tracking import TrackingState

logger = logging.getLogger(__name__)


@dataclass
class FrameResult:
    frame_index: int
    output: ImageBuffer
    corners: Dict[str, Quadrilateral] = field(default_factory=dict)
    states: Dict[str, TrackingState] = field(default_factory=dict)
    overlays_drawn: int = 0


def merge_overlays(bottom: np.ndarray, top: np.ndarray) -> np.ndarray:
    """
    Porter-Duff "over" of two RGBA overlays.

    Args:
        bottom: RGBA uint8 (H, W, 4)
        top: RGBA uint8 (H, W, 4), drawn over ``bottom``

    Returns:
        New RGBA uint8 array
    """
    a_top = top[:, :, 3:4].astype(np.float32) / 255.0
    a_bottom = bottom[:, :, 3:4].astype(np.float32) / 255.0
    a_out = a_top + a_bottom * (1.0 - a_top)

    rgb = (top[:, :, :3].astype(np.float32) * a_top +
           bottom[:, :, :3].astype(np.float32) * a_bottom * (1.0 - a_top))
    rgb = rgb / np.where(a_out > 0, a_out, 1.0)

    merged = np.empty_like(top)
    merged[:, :, :3] = np.clip(np.rint(rgb), 0, 255).astype(np.uint8)
    merged[:, :, 3] = np.clip(np.rint(a_out[:, :, 0] * 255.0), 0, 255).astype(np.uint8)
    return merged


class SurfaceReplacementPipeline:
    """
    Replaces marked planar surfaces in a frame stream with still images.

    Usage::

        pipeline = SurfaceReplacementPipeline(PipelineConfig())
        pipeline.load_ad("ad-1", "ad.png")
        pipeline.mark_complete("board", "ad-1", corners, first_frame)
        for result in pipeline.run(frames):
            show(result.output)
            result.output.release()
    """

    def __init__(self,
                 config: Optional[PipelineConfig] = None,
                 cv=None,
                 on_tracking_lost: Optional[Callable[[str], None]] = None):
        self.config = config or PipelineConfig()
        self.config.validate()
        self.on_tracking_lost = on_tracking_lost

        self.ads = AdSourceLoader()
        self.registry = PlacementRegistry(
            cv=cv,
            tracker_config=self.config.tracker,
            min_visible_corners=self.config.min_visible_corners,
            on_tracking_lost=self._handle_tracking_lost
        )
        self.compositor = Compositor(replace(self.config.compositor), cv=cv)

        self.frame_index = 0
        self._stopped = False

    @property
    def stopped(self) -> bool:
        return self._stopped

    def load_ad(self, ad_id: str, url: str) -> AdSource:
        return self.ads.load(ad_id, url)

    def mark_complete(self,
                      placement_id: str,
                      ad_id: str,
                      corners: QuadLike,
                      first_frame: ImageBuffer,
                      source_image: Optional[ImageSource] = None) -> Placement:
        """
        Register a marked surface and start tracking it.

        Args:
            placement_id: Identifier of the new placement
            ad_id: Ad to insert; looked up in ``ads`` when no source is given
            corners: Marked quadrilateral on ``first_frame``
            first_frame: Frame the corners were marked on
            source_image: Image to insert (overrides the ad lookup)

        Returns:
            The active placement
        """
        corners = as_quadrilateral(corners)
        if source_image is None:
            source_image = self.ads.get(ad_id)

        placement = Placement(id=placement_id, ad_id=ad_id, corners=corners, is_active=True)
        self.registry.add(placement)
        self.registry.initialize_tracking(placement_id, corners, first_frame)
        self.registry.initialize_transform(placement_id, source_image,
                                           first_frame.width, first_frame.height)
        return placement

    def process_frame(self, frame: ImageBuffer) -> Optional[FrameResult]:
        """
        Run one frame through every active placement.

        Args:
            frame: Current RGBA frame, still owned by the caller

        Returns:
            FrameResult whose ``output`` the caller must release, or None
            if the pipeline has been stopped
        """
        if self._stopped:
            return None

        result = FrameResult(frame_index=self.frame_index, output=None)
        overlay: Optional[ImageBuffer] = None

        try:
            for placement in self.registry.get_active_placements():
                overlay = self._process_placement(placement, frame, overlay, result)
            result.output = self.compositor.render(frame, overlay)
        finally:
            if overlay is not None:
                overlay.release()

        self.frame_index += 1
        return result

    def run(self, frames: Iterable[ImageBuffer]) -> Iterator[FrameResult]:
        """Process frames until exhausted or ``stop()`` is called."""
        for frame in frames:
            if self._stopped:
                break
            result = self.process_frame(frame)
            if result is None:
                break
            yield result

    def stop(self):
        self._stopped = True

    def reset(self):
        """Release every placement and the compositor history."""
        self.registry.force_reset()
        self.compositor.cleanup()
        self.frame_index = 0
        self._stopped = False

    def close(self):
        self.reset()
        self.ads.clear_all()

    def _process_placement(self,
                           placement: Placement,
                           frame: ImageBuffer,
                           overlay: Optional[ImageBuffer],
                           result: FrameResult) -> Optional[ImageBuffer]:
        """Track and warp one placement; returns the (possibly merged) overlay."""
        tracker = self.registry.get_tracker(placement.id)
        warper = self.registry.get_transform(placement.id)
        if tracker is None or warper is None:
            return overlay

        warped = None
        try:
            corners = tracker.track(frame)
            result.states[placement.id] = tracker.state
            if corners is None:
                return overlay

            self.registry.update_corners(placement.id, corners)
            result.corners[placement.id] = corners

            warped = warper.warp(corners)
            if warped is None:
                return overlay

            if overlay is None:
                overlay, warped = warped, None
            else:
                merged = ImageBuffer(merge_overlays(overlay.data, warped.data))
                overlay.release()
                overlay = merged
            result.overlays_drawn += 1
            return overlay
        except Exception as e:
            logger.warning("Placement '%s' skipped on frame %d: %s",
                           placement.id, self.frame_index, e)
            return overlay
        finally:
            if warped is not None:
                warped.release()

    def _handle_tracking_lost(self, placement_id: str):
        logger.warning("Tracking lost for placement '%s' at frame %d",
                       placement_id, self.frame_index)
        if self.on_tracking_lost is not None:
            self.on_tracking_lost(placement_id)
