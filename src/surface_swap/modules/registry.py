"""
Placement registry.

Owns one tracker and one warper per placement id. Re-initializing a
placement cleans up the superseded tracker or warper before replacing it;
``force_reset`` cleans up everything and empties the registry.
"""
import logging
from dataclasses import dataclass
from typing import Callable, Dict, List, Optional

from .buffers import ImageBuffer
from .geometry import QuadLike, Quadrilateral, as_quadrilateral
from .resources import ImageSource
from .tracking import OpticalFlowTracker, TrackerConfig
from .warping import HomographyWarper, WarperConfig

logger = logging.getLogger(__name__)


@dataclass
class Placement:
    """A user-declared surface to be replaced."""

    id: str
    ad_id: str
    corners: Quadrilateral
    is_active: bool = False

    def __post_init__(self):
        self.corners = as_quadrilateral(self.corners)


class PlacementRegistry:
    """Per-placement ownership of trackers and warpers."""

    def __init__(self,
                 cv=None,
                 tracker_config: Optional[TrackerConfig] = None,
                 min_visible_corners: int = 3,
                 on_tracking_lost: Optional[Callable[[str], None]] = None):
        self.cv = cv
        self.tracker_config = tracker_config
        self.min_visible_corners = min_visible_corners
        self.on_tracking_lost = on_tracking_lost

        self._placements: Dict[str, Placement] = {}
        self._trackers: Dict[str, OpticalFlowTracker] = {}
        self._transforms: Dict[str, HomographyWarper] = {}

    def add(self, placement: Placement):
        self._placements[placement.id] = placement

    def update_corners(self, placement_id: str, corners: QuadLike):
        placement = self._placements.get(placement_id)
        if placement is not None:
            placement.corners = as_quadrilateral(corners)
            placement.is_active = True

    def initialize_tracking(self, placement_id: str, corners: QuadLike,
                            first_frame: ImageBuffer) -> OpticalFlowTracker:
        tracker = OpticalFlowTracker(
            config=self.tracker_config,
            cv=self.cv,
            on_tracking_lost=self._lost_callback(placement_id)
        )
        tracker.initialize(corners, first_frame)

        previous = self._trackers.get(placement_id)
        if previous is not None:
            logger.debug("Replacing tracker for placement '%s'", placement_id)
            previous.cleanup()
        self._trackers[placement_id] = tracker
        return tracker

    def initialize_transform(self, placement_id: str, source_image: ImageSource,
                             width: int, height: int) -> HomographyWarper:
        warper = HomographyWarper(cv=self.cv)
        warper.initialize(WarperConfig(
            source_image=source_image,
            target_width=width,
            target_height=height,
            min_visible_corners=self.min_visible_corners
        ))

        previous = self._transforms.get(placement_id)
        if previous is not None:
            logger.debug("Replacing warper for placement '%s'", placement_id)
            previous.cleanup()
        self._transforms[placement_id] = warper
        return warper

    def get_tracker(self, placement_id: str) -> Optional[OpticalFlowTracker]:
        return self._trackers.get(placement_id)

    def get_transform(self, placement_id: str) -> Optional[HomographyWarper]:
        return self._transforms.get(placement_id)

    def get_placement(self, placement_id: str) -> Optional[Placement]:
        return self._placements.get(placement_id)

    def get_active_placements(self) -> List[Placement]:
        return [p for p in self._placements.values() if p.is_active]

    def force_reset(self):
        """Clean up every tracker and warper, then forget all placements."""
        for tracker in self._trackers.values():
            tracker.cleanup()
        self._trackers.clear()

        for warper in self._transforms.values():
            warper.cleanup()
        self._transforms.clear()

        count = len(self._placements)
        self._placements.clear()
        logger.info("Registry reset, %d placement(s) released", count)

    def reset(self):
        self.force_reset()

    def _lost_callback(self, placement_id: str) -> Optional[Callable[[], None]]:
        if self.on_tracking_lost is None:
            return None
        return lambda: self.on_tracking_lost(placement_id)

    def __contains__(self, placement_id: str) -> bool:
        return placement_id in self._placements

    def __len__(self) -> int:
        return len(self._placements)
