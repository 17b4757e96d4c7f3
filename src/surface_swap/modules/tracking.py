"""
Tracking Module for Planar Surface Corners.

Follows a marked quadrilateral across frames with sparse pyramidal
Lucas-Kanade optical flow:
- Features are seeded in a disk around each corner
- The mean displacement of surviving features moves all 4 corners
- A short moving average over recent corners removes jitter
- Sustained low feature survival marks the track as lost
"""
import enum
import logging
import numpy as np
import cv2
from collections import deque
from dataclasses import dataclass, field
from typing import Callable, Optional

from .buffers import ImageBuffer, to_intensity
from .geometry import Quadrilateral, QuadLike, as_quadrilateral, mean_quadrilateral

logger = logging.getLogger(__name__)


class TrackingState(enum.Enum):
    IDLE = "idle"
    ACTIVE = "active"
    LOST = "lost"


@dataclass
class TrackerConfig:
    """Configuration for the optical flow tracker."""

    # Feature detection (goodFeaturesToTrack)
    max_features: int = 100
    quality_level: float = 0.01
    min_distance: float = 10
    block_size: int = 3
    roi_radius: int = 30

    # Lucas-Kanade flow
    win_size: int = 21
    pyramid_levels: int = 3
    max_iterations: int = 30
    epsilon: float = 0.01

    # Loss detection
    min_success_rate: float = 0.5
    max_lost_frames: int = 5

    # Smoothing
    history_size: int = 3


def _empty_points() -> np.ndarray:
    return np.empty((0, 1, 2), dtype=np.float32)


@dataclass
class FeatureSet:
    """Tracked feature positions paired 1:1 with their previous positions."""

    current: np.ndarray = field(default_factory=_empty_points)
    previous: np.ndarray = field(default_factory=_empty_points)

    def __len__(self) -> int:
        return len(self.current)


class CornerHistory:
    """Bounded FIFO of recent quadrilaterals for moving-average smoothing."""

    def __init__(self, capacity: int = 3):
        if capacity < 1:
            raise ValueError(f"CornerHistory capacity must be >= 1, got {capacity}")
        self._items = deque(maxlen=capacity)

    @property
    def capacity(self) -> int:
        return self._items.maxlen

    def push(self, corners: Quadrilateral):
        self._items.append(corners)

    def mean(self) -> Quadrilateral:
        return mean_quadrilateral(self._items)

    def clear(self):
        self._items.clear()

    def __len__(self) -> int:
        return len(self._items)


class OpticalFlowTracker:
    """
    Sparse optical flow tracker for a single quadrilateral.

    State machine: IDLE --initialize--> ACTIVE --sustained loss--> LOST.
    LOST is terminal until ``initialize`` is called again.
    """

    def __init__(self,
                 config: Optional[TrackerConfig] = None,
                 cv=None,
                 on_tracking_lost: Optional[Callable[[], None]] = None):
        self.config = config or TrackerConfig()
        self.cv = cv if cv is not None else cv2
        self.on_tracking_lost = on_tracking_lost

        self._state = TrackingState.IDLE
        self._corners: Optional[Quadrilateral] = None
        self._raw_corners: Optional[Quadrilateral] = None
        self._features = FeatureSet()
        self._prev_gray: Optional[ImageBuffer] = None
        self._history = CornerHistory(self.config.history_size)
        self._lost_frames = 0
        self._success_rate = 1.0

        # LK parameters
        self.lk_params = dict(
            winSize=(self.config.win_size, self.config.win_size),
            maxLevel=self.config.pyramid_levels,
            criteria=(cv2.TERM_CRITERIA_EPS | cv2.TERM_CRITERIA_COUNT,
                      self.config.max_iterations, self.config.epsilon)
        )

        # GFTT parameters
        self.gftt_params = dict(
            maxCorners=self.config.max_features,
            qualityLevel=self.config.quality_level,
            minDistance=self.config.min_distance,
            blockSize=self.config.block_size,
            useHarrisDetector=False,
            k=0.04
        )

    @property
    def state(self) -> TrackingState:
        return self._state

    @property
    def corners(self) -> Optional[Quadrilateral]:
        return self._corners

    @property
    def features(self) -> FeatureSet:
        return self._features

    @property
    def feature_count(self) -> int:
        return len(self._features)

    @property
    def success_rate(self) -> float:
        return self._success_rate

    @property
    def lost_frame_count(self) -> int:
        return self._lost_frames

    def initialize(self, corners: QuadLike, frame: ImageBuffer):
        """
        Start tracking from the marked corners on the first frame.

        Args:
            corners: Quadrilateral in frame coordinates
            frame: First frame (RGBA)
        """
        corners = as_quadrilateral(corners)
        self._release_gray()

        gray = to_intensity(frame, self.cv)
        points = self._detect_features(gray, corners)

        self._prev_gray = ImageBuffer(gray)
        self._features = FeatureSet(current=points, previous=points.copy())
        self._corners = corners
        self._raw_corners = corners
        self._history.clear()
        self._history.push(corners)
        self._lost_frames = 0
        self._success_rate = 1.0
        self._state = TrackingState.ACTIVE

        logger.info("OpticalFlowTracker initialized with %d features", len(points))

    def track(self, frame: ImageBuffer) -> Optional[Quadrilateral]:
        """
        Track the quadrilateral into a new frame.

        Args:
            frame: Current frame (RGBA), same size as the initial frame

        Returns:
            Smoothed corners. When IDLE or LOST the last known corners are
            returned unchanged (None if the tracker never saw corners).
        """
        if self._state is not TrackingState.ACTIVE:
            return self._corners

        gray = to_intensity(frame, self.cv)
        prev_points = self._features.current
        good_old, good_new, success_rate = self._flow(gray, prev_points)

        self._success_rate = success_rate
        self._update_loss(success_rate)

        if len(good_new) > 0:
            delta = (good_new - good_old).reshape(-1, 2).mean(axis=0)
            self._raw_corners = self._raw_corners.translated(float(delta[0]), float(delta[1]))

        self._history.push(self._raw_corners)
        self._corners = self._history.mean()

        self._features = FeatureSet(current=good_new, previous=good_old)
        self._release_gray()
        self._prev_gray = ImageBuffer(gray)

        logger.debug("Tracked %d/%d features (rate=%.2f)",
                     len(good_new), len(prev_points), success_rate)
        return self._corners

    def cleanup(self):
        """Release tracking buffers and return to IDLE. Safe to call repeatedly."""
        self._release_gray()
        self._features = FeatureSet()
        self._history.clear()
        self._corners = None
        self._raw_corners = None
        self._lost_frames = 0
        self._success_rate = 1.0
        self._state = TrackingState.IDLE

    def _detect_features(self, gray: np.ndarray, corners: Quadrilateral) -> np.ndarray:
        """Good features to track inside a disk around each corner."""
        mask = np.zeros(gray.shape[:2], dtype=np.uint8)
        for p in corners:
            self.cv.circle(mask, (int(round(p.x)), int(round(p.y))),
                           self.config.roi_radius, 255, -1)

        points = self.cv.goodFeaturesToTrack(gray, mask=mask, **self.gftt_params)
        if points is None:
            return _empty_points()
        return points.astype(np.float32).reshape(-1, 1, 2)

    def _flow(self, gray: np.ndarray, prev_points: np.ndarray):
        """Run LK flow; returns (surviving old points, surviving new points, success rate)."""
        if len(prev_points) == 0:
            return _empty_points(), _empty_points(), 0.0

        prev_gray = self._prev_gray.data
        if prev_gray.shape != gray.shape:
            logger.warning("Frame size changed from %s to %s, dropping features",
                           prev_gray.shape, gray.shape)
            return _empty_points(), _empty_points(), 0.0

        next_points, status, _ = self.cv.calcOpticalFlowPyrLK(
            prev_gray, gray, prev_points, None, **self.lk_params
        )
        if next_points is None or status is None:
            return _empty_points(), _empty_points(), 0.0

        ok = status.reshape(-1) == 1
        success_rate = float(ok.sum()) / len(prev_points)
        good_old = prev_points[ok].reshape(-1, 1, 2)
        good_new = next_points[ok].astype(np.float32).reshape(-1, 1, 2)
        return good_old, good_new, success_rate

    def _update_loss(self, success_rate: float):
        if success_rate >= self.config.min_success_rate:
            self._lost_frames = 0
            return

        self._lost_frames += 1
        if self._lost_frames > self.config.max_lost_frames:
            self._state = TrackingState.LOST
            logger.warning("Tracking lost after %d low-survival frames", self._lost_frames)
            if self.on_tracking_lost is not None:
                self.on_tracking_lost()

    def _release_gray(self):
        if self._prev_gray is not None:
            self._prev_gray.release()
            self._prev_gray = None
