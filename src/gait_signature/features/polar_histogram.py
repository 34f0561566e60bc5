"""Polar histogram of a silhouette boundary.

Every boundary pixel is expressed as (radius, angle) around the silhouette
centroid. Angles live in [0, 2*pi); bin k covers [k*w, (k+1)*w) with
w = 2*pi / max_bins and holds the mean radius of its pixels. Empty bins are
zero-filled so every image yields the same bin layout.
"""

from typing import Sequence, Tuple

import numpy as np

from ..config import SilhouetteConfig
from ..errors import DescriptorFailure
from ..vision.silhouette import Silhouette
from .descriptor import DescriptorVector

TWO_PI = 2.0 * np.pi


def polar_coordinates(
    points: np.ndarray, centroid: Sequence[float]
) -> Tuple[np.ndarray, np.ndarray]:
    pts = np.asarray(points, dtype=np.float64).reshape(-1, 2)
    dx = pts[:, 0] - float(centroid[0])
    dy = pts[:, 1] - float(centroid[1])
    radii = np.hypot(dx, dy)

    angles = np.arctan2(dy, dx)
    angles = np.where(angles < 0.0, angles + TWO_PI, angles)
    # axis-aligned offsets get the exact axis angle
    angles = np.select(
        [
            (dx == 0) & (dy > 0),
            (dx == 0) & (dy < 0),
            (dy == 0) & (dx < 0),
            (dy == 0) & (dx >= 0),
        ],
        [np.pi / 2.0, 3.0 * np.pi / 2.0, np.pi, 0.0],
        default=angles,
    )
    angles = np.where(angles >= TWO_PI, angles - TWO_PI, angles)
    return radii, angles


def polar_histogram(
    radii: np.ndarray, angles: np.ndarray, max_bins: int
) -> Tuple[np.ndarray, np.ndarray]:
    """Mean radius per angular bin, plus the number of points in each bin."""
    if max_bins <= 0:
        raise ValueError("max_bins must be positive")
    radii = np.asarray(radii, dtype=np.float64)
    angles = np.asarray(angles, dtype=np.float64)

    order = np.argsort(angles, kind="stable")
    radii, angles = radii[order], angles[order]

    width = TWO_PI / max_bins
    idx = np.floor(angles / width).astype(np.int64)
    # keep bins closed-open despite rounding in the division
    idx = np.where((idx + 1) * width <= angles, idx + 1, idx)
    idx = np.where(idx * width > angles, idx - 1, idx)
    idx = np.clip(idx, 0, max_bins - 1)

    sums = np.bincount(idx, weights=radii, minlength=max_bins)
    counts = np.bincount(idx, minlength=max_bins)
    means = np.divide(sums, counts, out=np.zeros(max_bins, dtype=np.float64), where=counts > 0)
    return means, counts


def dead_zone_keep(max_bins: int, half_blank_bins: int) -> np.ndarray:
    """Mask of bins kept after blanking `half_blank_bins` on each side of 0 and pi.

    Needs an even `max_bins` so that pi falls on a bin edge.
    """
    keep = np.ones(max_bins, dtype=bool)
    if half_blank_bins <= 0:
        return keep
    if max_bins % 2:
        raise ValueError(f"a dead zone needs an even number of bins, got {max_bins}")
    if 4 * half_blank_bins >= max_bins:
        raise ValueError(
            f"half_blank_bins={half_blank_bins} blanks every one of {max_bins} bins"
        )
    b = np.arange(max_bins)
    half = max_bins // 2
    around_zero = (b < half_blank_bins) | (b >= max_bins - half_blank_bins)
    around_pi = (b >= half - half_blank_bins) & (b < half + half_blank_bins)
    keep[around_zero | around_pi] = False
    return keep


def silhouette_descriptor(silhouette: Silhouette, cfg: SilhouetteConfig) -> DescriptorVector:
    if silhouette.boundary.shape[0] == 0:
        raise DescriptorFailure("silhouette has no boundary pixels")

    radii, angles = polar_coordinates(silhouette.boundary, silhouette.centroid)
    means, counts = polar_histogram(radii, angles, cfg.max_bins)
    keep = dead_zone_keep(cfg.max_bins, cfg.half_blank_bins)
    values = means[keep]
    if not np.any(values):
        raise DescriptorFailure("polar histogram is all zero")

    return DescriptorVector(
        source="silhouette",
        values=values,
        meta={"empty_bins": int((counts[keep] == 0).sum())},
    )
