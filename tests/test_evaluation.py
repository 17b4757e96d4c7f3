"""Tests for tracking metrics."""

import numpy as np
import pytest

from surface_swap.modules import calculate_iou, mean_corner_error, quad_iou, quad_to_mask


def test_calculate_iou_partial_overlap() -> None:
    pred = np.zeros((10, 10), dtype=np.uint8)
    gt = np.zeros((10, 10), dtype=np.uint8)
    pred[:, :6] = 1
    gt[:, 4:] = 1

    assert calculate_iou(pred, gt) == pytest.approx(20 / 100)


def test_calculate_iou_empty_masks() -> None:
    empty = np.zeros((4, 4), dtype=np.uint8)

    assert calculate_iou(empty, empty) == 0.0


def test_quad_to_mask_fills_interior() -> None:
    mask = quad_to_mask([(2, 2), (7, 2), (7, 7), (2, 7)], 10, 10)

    assert mask[4, 4] == 255
    assert mask[0, 0] == 0
    assert np.count_nonzero(mask) == 36


def test_quad_iou_identical_and_disjoint() -> None:
    a = [(0, 0), (9, 0), (9, 9), (0, 9)]
    b = [(20, 20), (29, 20), (29, 29), (20, 29)]

    assert quad_iou(a, a, 40, 40) == 1.0
    assert quad_iou(a, b, 40, 40) == 0.0


def test_mean_corner_error() -> None:
    a = [(0, 0), (10, 0), (10, 10), (0, 10)]
    b = [(3, 4), (13, 4), (10, 10), (0, 10)]

    assert mean_corner_error(a, b) == pytest.approx(2.5)
