from __future__ import annotations

from dataclasses import dataclass
import logging
from typing import List, Optional

import cv2
import numpy as np

from ..errors import ErrorKind, StageResult


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class BoundingBox:
    min_x: int
    max_x: int
    min_y: int
    max_y: int

    @property
    def width(self) -> int:
        return self.max_x - self.min_x

    @property
    def height(self) -> int:
        return self.max_y - self.min_y

    @property
    def center_x(self) -> float:
        return (self.min_x + self.max_x) / 2.0

    @property
    def area(self) -> int:
        return self.width * self.height


@dataclass(frozen=True)
class Contour:
    # (N, 2) int32 array of (x, y) in raster order.
    points: np.ndarray
    box: Optional[BoundingBox] = None

    @property
    def size(self) -> int:
        return int(self.points.shape[0])

    def bounding_box(self) -> Optional[BoundingBox]:
        if self.box is not None:
            return self.box
        if self.size == 0:
            return None
        xs = self.points[:, 0]
        ys = self.points[:, 1]
        return BoundingBox(
            min_x=int(xs.min()),
            max_x=int(xs.max()),
            min_y=int(ys.min()),
            max_y=int(ys.max()),
        )

    @property
    def aspect_ratio(self) -> float:
        """Height over width of the bounding box (0 for degenerate contours)."""
        box = self.bounding_box()
        if box is None or box.width <= 0:
            return 0.0
        return float(box.height) / float(box.width)

    @property
    def fill_ratio(self) -> float:
        """Contour pixels per unit of bounding-box area (1 for degenerate boxes)."""
        box = self.bounding_box()
        if box is None or box.area <= 0:
            return 1.0
        return float(self.size) / float(box.area)


def find_contours(edges: np.ndarray, min_points: int = 50, limit: Optional[int] = None) -> List[Contour]:
    """8-connected edge components with at least `min_points` pixels, largest first.

    Components are labelled in raster order of their first pixel; equal sizes
    keep that order. `limit` caps how many are materialised.
    """
    mask = (np.asarray(edges) > 0).astype(np.uint8)
    num, labels, stats, _ = cv2.connectedComponentsWithStats(mask, connectivity=8)
    if num <= 1:
        return []
    areas = stats[1:, cv2.CC_STAT_AREA]
    keep = [int(i) + 1 for i in np.flatnonzero(areas >= int(min_points))]
    keep.sort(key=lambda k: int(stats[k, cv2.CC_STAT_AREA]), reverse=True)
    if limit is not None:
        keep = keep[: max(0, int(limit))]

    found: List[Contour] = []
    for k in keep:
        left = int(stats[k, cv2.CC_STAT_LEFT])
        top = int(stats[k, cv2.CC_STAT_TOP])
        box = BoundingBox(
            min_x=left,
            max_x=left + int(stats[k, cv2.CC_STAT_WIDTH]) - 1,
            min_y=top,
            max_y=top + int(stats[k, cv2.CC_STAT_HEIGHT]) - 1,
        )
        pts = np.argwhere(labels == k)[:, ::-1].astype(np.int32)
        found.append(Contour(points=np.ascontiguousarray(pts), box=box))
    return found


def trace_contours(
    edges: Optional[np.ndarray],
    min_points: int = 50,
    max_contours: int = 3,
) -> StageResult[List[Contour]]:
    if edges is None or np.asarray(edges).size == 0:
        return StageResult.failure(ErrorKind.INSUFFICIENT_CONTOUR, "contours", "Empty edge map")
    kept = find_contours(edges, min_points=min_points, limit=max(1, int(max_contours)))
    if not kept:
        return StageResult.failure(
            ErrorKind.INSUFFICIENT_CONTOUR,
            "contours",
            f"No contour with at least {int(min_points)} points",
            min_points=int(min_points),
        )
    logger.debug("contours: kept=%s", [c.size for c in kept])
    return StageResult.success(kept)
