"""
Image Buffer Module.

Provides:
- ImageBuffer: owned pixel buffer with explicit release
- BufferReleasedError: raised on use after release
"""
import numpy as np
import cv2
from typing import Optional, Tuple


VALID_CHANNELS = (1, 3, 4)

_GRAY_CONVERSIONS = {
    3: cv2.COLOR_RGB2GRAY,
    4: cv2.COLOR_RGBA2GRAY,
}


class BufferReleasedError(RuntimeError):
    """Raised when pixel data is read from a released buffer."""


class ImageBuffer:
    """
    Exclusively owned uint8 pixel buffer (row-major, H x W x C).

    The buffer is released explicitly with ``release()`` or by leaving a
    ``with`` block. Releasing twice is a no-op.
    """

    def __init__(self, data: np.ndarray):
        if not isinstance(data, np.ndarray):
            raise ValueError(f"ImageBuffer expects a numpy array, got {type(data).__name__}")
        if data.dtype != np.uint8:
            raise ValueError(f"ImageBuffer expects uint8 data, got {data.dtype}")
        if data.ndim == 2:
            channels = 1
        elif data.ndim == 3 and data.shape[2] in VALID_CHANNELS:
            channels = data.shape[2]
        else:
            raise ValueError(f"Unsupported buffer shape: {data.shape}")

        self._data = data
        self._width = data.shape[1]
        self._height = data.shape[0]
        self._channels = channels

    @classmethod
    def blank(cls, width: int, height: int, channels: int = 4) -> "ImageBuffer":
        if channels not in VALID_CHANNELS:
            raise ValueError(f"Unsupported channel count: {channels}")
        shape = (height, width) if channels == 1 else (height, width, channels)
        return cls(np.zeros(shape, dtype=np.uint8))

    @classmethod
    def from_array(cls, array: np.ndarray, copy: bool = True) -> "ImageBuffer":
        return cls(array.copy() if copy else array)

    @property
    def width(self) -> int:
        return self._width

    @property
    def height(self) -> int:
        return self._height

    @property
    def channels(self) -> int:
        return self._channels

    @property
    def size(self) -> Tuple[int, int]:
        """(width, height), the order OpenCV expects for dsize."""
        return self._width, self._height

    @property
    def shape(self) -> Tuple[int, ...]:
        if self._channels == 1:
            return (self._height, self._width)
        return (self._height, self._width, self._channels)

    @property
    def released(self) -> bool:
        return self._data is None

    @property
    def data(self) -> np.ndarray:
        if self._data is None:
            raise BufferReleasedError("ImageBuffer has been released")
        return self._data

    def clone(self) -> "ImageBuffer":
        return ImageBuffer(self.data.copy())

    def release(self):
        self._data = None

    def __enter__(self) -> "ImageBuffer":
        return self

    def __exit__(self, exc_type, exc, tb) -> Optional[bool]:
        self.release()
        return None

    def __repr__(self) -> str:
        state = "released" if self.released else "live"
        return f"ImageBuffer({self._width}x{self._height}x{self._channels}, {state})"


def to_intensity(frame: ImageBuffer, cv=cv2) -> np.ndarray:
    """
    Single-channel intensity image of a frame.

    Args:
        frame: 1, 3 (RGB) or 4 (RGBA) channel buffer
        cv: Vision primitives provider (cv2-compatible)

    Returns:
        uint8 array (H, W), never sharing memory with the frame
    """
    if frame.channels == 1:
        return frame.data.copy()
    return cv.cvtColor(frame.data, _GRAY_CONVERSIONS[frame.channels])
