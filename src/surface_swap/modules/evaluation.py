"""
Evaluation Module for Surface Tracking.

Metrics:
- IoU (Intersection over Union) of masks and quadrilaterals
- Mean corner error
"""
import numpy as np
import cv2

from .geometry import QuadLike, as_quadrilateral


def calculate_iou(pred_mask: np.ndarray, gt_mask: np.ndarray) -> float:
    """
    Calculate IoU between predicted and ground truth masks.
    
    Args:
        pred_mask: Predicted binary mask (H, W)
        gt_mask: Ground truth binary mask (H, W)
        
    Returns:
        IoU score (0.0 - 1.0)
    """
    # Ensure binary masks
    pred = (pred_mask > 0).astype(np.uint8)
    gt = (gt_mask > 0).astype(np.uint8)
    
    intersection = np.sum(pred & gt)
    union = np.sum(pred | gt)
    
    if union == 0:
        return 0.0
    
    return float(intersection / union)


def quad_to_mask(corners: QuadLike, width: int, height: int) -> np.ndarray:
    """Filled binary mask (0/255) of a quadrilateral."""
    mask = np.zeros((height, width), dtype=np.uint8)
    pts = np.round(as_quadrilateral(corners).to_array()).astype(np.int32)
    cv2.fillPoly(mask, [pts.reshape(-1, 1, 2)], 255)
    return mask


def quad_iou(pred: QuadLike, gt: QuadLike, width: int, height: int) -> float:
    """IoU of two quadrilaterals rasterized into a width x height frame."""
    return calculate_iou(quad_to_mask(pred, width, height), quad_to_mask(gt, width, height))


def mean_corner_error(pred: QuadLike, gt: QuadLike) -> float:
    """Mean Euclidean distance between corresponding corners, in pixels."""
    diff = as_quadrilateral(pred).to_array() - as_quadrilateral(gt).to_array()
    return float(np.linalg.norm(diff, axis=1).mean())
