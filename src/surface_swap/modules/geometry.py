"""
Geometry primitives for planar surface tracking.

Corner order is whatever the marking step produced; nothing in this
package reorders it.
"""
import numpy as np
from dataclasses import dataclass
from typing import Iterable, Iterator, Sequence, Tuple, Union


@dataclass(frozen=True)
class Point:
    x: float
    y: float

    def translated(self, dx: float, dy: float) -> "Point":
        return Point(self.x + dx, self.y + dy)


PointLike = Union[Point, Sequence[float]]


def _as_point(value: PointLike) -> Point:
    if isinstance(value, Point):
        return value
    if len(value) != 2:
        raise ValueError(f"Point needs 2 coordinates, got {len(value)}")
    return Point(float(value[0]), float(value[1]))


@dataclass(frozen=True)
class Quadrilateral:
    """Exactly four corner points, in marking order."""

    points: Tuple[Point, Point, Point, Point]

    def __post_init__(self):
        raw = self.points
        if isinstance(raw, np.ndarray):
            raw = raw.reshape(-1, 2).tolist()
        pts = tuple(_as_point(p) for p in raw)
        if len(pts) != 4:
            raise ValueError(f"Quadrilateral needs exactly 4 points, got {len(pts)}")
        object.__setattr__(self, "points", pts)

    @classmethod
    def from_array(cls, array: np.ndarray) -> "Quadrilateral":
        return cls(np.asarray(array, dtype=np.float64))

    def to_array(self) -> np.ndarray:
        """Corners as a (4, 2) float32 array."""
        return np.array([[p.x, p.y] for p in self.points], dtype=np.float32)

    def translated(self, dx: float, dy: float) -> "Quadrilateral":
        return Quadrilateral(tuple(p.translated(dx, dy) for p in self.points))

    def count_in_bounds(self, width: int, height: int) -> int:
        """Number of corners inside [0, width) x [0, height)."""
        return sum(1 for p in self.points if 0 <= p.x < width and 0 <= p.y < height)

    def __iter__(self) -> Iterator[Point]:
        return iter(self.points)

    def __getitem__(self, index: int) -> Point:
        return self.points[index]

    def __len__(self) -> int:
        return 4


QuadLike = Union[Quadrilateral, Sequence[PointLike], np.ndarray]


def as_quadrilateral(value: QuadLike) -> Quadrilateral:
    if isinstance(value, Quadrilateral):
        return value
    return Quadrilateral(value)


def mean_quadrilateral(quads: Iterable[Quadrilateral]) -> Quadrilateral:
    """Corner-by-corner arithmetic mean."""
    stacked = np.array([[[p.x, p.y] for p in q.points] for q in quads], dtype=np.float64)
    if stacked.size == 0:
        raise ValueError("mean_quadrilateral needs at least one quadrilateral")
    return Quadrilateral(stacked.mean(axis=0))
