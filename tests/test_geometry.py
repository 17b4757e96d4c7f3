"""Tests for Point and Quadrilateral."""

import numpy as np
import pytest

from surface_swap.modules import Point, Quadrilateral, mean_quadrilateral


def test_quadrilateral_keeps_order() -> None:
    """Corner order is exactly as given."""
    quad = Quadrilateral([(5, 5), (1, 1), (9, 0), (0, 9)])

    assert [(p.x, p.y) for p in quad] == [(5, 5), (1, 1), (9, 0), (0, 9)]
    assert quad[1] == Point(1.0, 1.0)
    assert len(quad) == 4


@pytest.mark.parametrize("points", [
    [(0, 0), (1, 0), (1, 1)],
    [(0, 0), (1, 0), (1, 1), (0, 1), (2, 2)],
])
def test_quadrilateral_needs_four_points(points) -> None:
    with pytest.raises(ValueError):
        Quadrilateral(points)


def test_from_array_roundtrip_shape() -> None:
    array = np.array([[0, 0], [10, 0], [10, 5], [0, 5]], dtype=np.float32)
    quad = Quadrilateral.from_array(array)

    np.testing.assert_allclose(quad.to_array(), array)
    assert quad.to_array().dtype == np.float32


def test_translated() -> None:
    quad = Quadrilateral([(0, 0), (10, 0), (10, 5), (0, 5)]).translated(2, -1)

    assert quad[0] == Point(2, -1)
    assert quad[2] == Point(12, 4)


def test_count_in_bounds_excludes_far_edge() -> None:
    """The right and bottom edges are outside [0, W) x [0, H)."""
    quad = Quadrilateral([(0, 0), (100, 0), (99, 49), (-0.5, 10)])

    assert quad.count_in_bounds(100, 50) == 2


def test_mean_quadrilateral() -> None:
    a = Quadrilateral([(0, 0), (10, 0), (10, 10), (0, 10)])
    b = a.translated(4, 2)

    mean = mean_quadrilateral([a, b])

    assert mean == a.translated(2, 1)


def test_mean_quadrilateral_empty() -> None:
    with pytest.raises(ValueError):
        mean_quadrilateral([])
