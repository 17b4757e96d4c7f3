"""Shared fixtures: synthetic textured frames and a cv2 wrapper for failure injection."""

import cv2
import numpy as np
import pytest

from surface_swap.modules import ImageBuffer

FRAME_WIDTH = 320
FRAME_HEIGHT = 240
MARGIN = 120


class FlowFailingCV:
    """cv2 stand-in whose optical flow reports only a fraction of points as tracked."""

    def __init__(self, survival: float = 0.0) -> None:
        self.survival = survival
        self.fail = True
        self.flow_calls = 0

    def __getattr__(self, name):
        return getattr(cv2, name)

    def calcOpticalFlowPyrLK(self, prev, curr, points, next_points, **kwargs):
        self.flow_calls += 1
        if not self.fail:
            return cv2.calcOpticalFlowPyrLK(prev, curr, points, next_points, **kwargs)

        n = len(points)
        status = np.zeros((n, 1), dtype=np.uint8)
        status[: int(n * self.survival)] = 1
        return points.copy(), status, np.zeros((n, 1), dtype=np.float32)


class TextureSequence:
    """Frames cut from a blurred-noise texture, content shifted by an integer offset."""

    def __init__(self, seed: int = 0) -> None:
        rng = np.random.default_rng(seed)
        noise = rng.integers(0, 256, size=(FRAME_HEIGHT + 2 * MARGIN, FRAME_WIDTH + 2 * MARGIN),
                             dtype=np.uint8)
        self.texture = cv2.GaussianBlur(noise, (0, 0), 2.0)

    def frame(self, dx: int = 0, dy: int = 0) -> ImageBuffer:
        x0, y0 = MARGIN - dx, MARGIN - dy
        crop = self.texture[y0:y0 + FRAME_HEIGHT, x0:x0 + FRAME_WIDTH]
        return ImageBuffer(cv2.cvtColor(crop, cv2.COLOR_GRAY2RGBA))


@pytest.fixture
def sequence() -> TextureSequence:
    return TextureSequence()


@pytest.fixture
def corners():
    return [(100.0, 70.0), (220.0, 70.0), (220.0, 170.0), (100.0, 170.0)]


@pytest.fixture
def failing_cv() -> FlowFailingCV:
    return FlowFailingCV()


def solid_rgba(width: int, height: int, color) -> ImageBuffer:
    data = np.empty((height, width, 4), dtype=np.uint8)
    data[:, :] = color
    return ImageBuffer(data)


@pytest.fixture
def make_solid():
    return solid_rgba


@pytest.fixture
def make_failing_cv():
    return FlowFailingCV
