from dataclasses import dataclass
from typing import Tuple

import cv2
import numpy as np

from ..errors import SegmentationFailure


@dataclass(frozen=True, eq=False)
class Silhouette:
    """Foreground mask of one person plus the geometry derived from it.

    Always build through `from_mask` so that centroid, bounding box and
    boundary are computed together from the same (read-only) mask.
    """

    mask: np.ndarray  # (H, W) bool
    centroid: Tuple[float, float]  # x, y area centroid
    bbox: Tuple[int, int, int, int]  # x, y, w, h
    boundary: np.ndarray  # (N, 2) x, y in contour-extraction order

    @staticmethod
    def from_mask(mask: np.ndarray) -> "Silhouette":
        mask = np.array(mask, dtype=bool, copy=True)
        if mask.ndim != 2 or not mask.any():
            raise SegmentationFailure("empty silhouette mask")

        ys, xs = np.nonzero(mask)
        centroid = (float(xs.mean()), float(ys.mean()))
        x0, y0 = int(xs.min()), int(ys.min())
        bbox = (x0, y0, int(xs.max()) - x0 + 1, int(ys.max()) - y0 + 1)

        contours, _ = cv2.findContours(
            mask.astype(np.uint8), cv2.RETR_EXTERNAL, cv2.CHAIN_APPROX_NONE
        )
        boundary = np.concatenate([c.reshape(-1, 2) for c in contours], axis=0).astype(np.int32)

        mask.setflags(write=False)
        boundary.setflags(write=False)
        return Silhouette(mask=mask, centroid=centroid, bbox=bbox, boundary=boundary)

    @property
    def area(self) -> int:
        return int(self.mask.sum())

    def bbox_contains(self, x: float, y: float) -> bool:
        bx, by, bw, bh = self.bbox
        return bx <= x <= bx + bw - 1 and by <= y <= by + bh - 1

    def hull_central_moments(self) -> np.ndarray:
        """Second-order centralised moments (mu20, mu11, mu02) of the convex hull."""
        hull = cv2.convexHull(self.boundary.reshape(-1, 1, 2).copy())
        m = cv2.moments(hull)
        return np.array([m["mu20"], m["mu11"], m["mu02"]], dtype=np.float64)
