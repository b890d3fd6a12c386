from __future__ import annotations

import cv2
import numpy as np


def gradient_magnitude(gray: np.ndarray) -> np.ndarray:
    """Sobel gradient magnitude for interior pixels; border pixels are 0."""
    g = np.asarray(gray, dtype=np.float64)
    h, w = g.shape[:2]
    mag = np.zeros((h, w), dtype=np.float64)
    if h < 3 or w < 3:
        return mag
    gx = cv2.Sobel(g, cv2.CV_64F, 1, 0, ksize=3)
    gy = cv2.Sobel(g, cv2.CV_64F, 0, 1, ksize=3)
    mag[1:-1, 1:-1] = np.hypot(gx, gy)[1:-1, 1:-1]
    return mag


def detect_edges(gray: np.ndarray, threshold: float = 100.0) -> np.ndarray:
    """Binary edge map (0 or 255) of pixels whose gradient magnitude exceeds `threshold`."""
    mag = gradient_magnitude(gray)
    return np.where(mag > float(threshold), 255, 0).astype(np.uint8)


def edge_density(edges: np.ndarray) -> float:
    if edges is None or edges.size == 0:
        return 0.0
    return float(np.count_nonzero(edges) / float(edges.size))
