"""
Ad source loading.

Decodes still images into RGBA buffers and keeps loaded sources by id.
"""
import io
import logging
import numpy as np
import cv2
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, List, Optional, Union
from PIL import Image

from .buffers import ImageBuffer

logger = logging.getLogger(__name__)


class AssetDecodeError(ValueError):
    """Raised when an image asset cannot be decoded."""


ImageSource = Union["AdSource", ImageBuffer, np.ndarray, str, Path, bytes]

_RGBA_CONVERSIONS = {
    1: cv2.COLOR_GRAY2RGBA,
    3: cv2.COLOR_RGB2RGBA,
}


def _array_to_rgba(array: np.ndarray) -> np.ndarray:
    if array.dtype != np.uint8:
        raise AssetDecodeError(f"Expected uint8 image data, got {array.dtype}")
    channels = 1 if array.ndim == 2 else array.shape[2] if array.ndim == 3 else None
    if channels == 4:
        return array.copy()
    if channels not in _RGBA_CONVERSIONS:
        raise AssetDecodeError(f"Unsupported image shape: {array.shape}")
    return cv2.cvtColor(array, _RGBA_CONVERSIONS[channels])


def decode_image(source: ImageSource) -> ImageBuffer:
    """
    Decode an image into a new RGBA buffer.

    Args:
        source: File path, encoded bytes, numpy array (RGB/RGBA/gray),
            ImageBuffer or AdSource

    Returns:
        Newly owned RGBA ImageBuffer

    Raises:
        AssetDecodeError: if the source cannot be read or decoded
    """
    if isinstance(source, AdSource):
        source = source.image
    if isinstance(source, ImageBuffer):
        if source.released:
            raise AssetDecodeError("Source buffer has been released")
        source = source.data
    if isinstance(source, np.ndarray):
        return ImageBuffer(_array_to_rgba(source))

    if isinstance(source, (bytes, bytearray)):
        handle = io.BytesIO(source)
        label = f"<{len(source)} bytes>"
    elif isinstance(source, (str, Path)):
        handle = str(source)
        label = handle
    else:
        raise AssetDecodeError(f"Unsupported image source type: {type(source).__name__}")

    try:
        with Image.open(handle) as img:
            rgba = np.array(img.convert("RGBA"))
    except (OSError, ValueError) as e:
        raise AssetDecodeError(f"Failed to decode image {label}: {e}") from e

    return ImageBuffer(rgba)


@dataclass(frozen=True)
class AdSource:
    """Loaded still image to insert; immutable once loaded."""

    id: str
    image: ImageBuffer
    url: str


class AdSourceLoader:
    """Loads ad images and keeps them by id."""

    def __init__(self):
        self._sources: Dict[str, AdSource] = {}

    def load(self, source_id: str, url: Union[str, Path]) -> AdSource:
        image = decode_image(url)
        previous = self._sources.get(source_id)
        if previous is not None:
            previous.image.release()

        ad = AdSource(id=source_id, image=image, url=str(url))
        self._sources[source_id] = ad
        logger.info("Ad source '%s' loaded: %dx%d", source_id, image.width, image.height)
        return ad

    def get(self, source_id: str) -> Optional[AdSource]:
        return self._sources.get(source_id)

    def get_all(self) -> List[AdSource]:
        return list(self._sources.values())

    def clear_all(self):
        for ad in self._sources.values():
            ad.image.release()
        self._sources.clear()

    def __contains__(self, source_id: str) -> bool:
        return source_id in self._sources

    def __len__(self) -> int:
        return len(self._sources)
