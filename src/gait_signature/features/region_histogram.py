import numpy as np

from ..config import RegionConfig
from ..errors import DescriptorFailure
from ..vision.silhouette import Silhouette
from .descriptor import DescriptorVector


def region_histogram(silhouette: Silhouette, cfg: RegionConfig) -> DescriptorVector:
    """Count silhouette pixels per horizontal band and side of the centroid.

    The bounding box is cut into `cfg.bands` equal bands counted from the
    bottom; entries [0, bands) hold the left half, [bands, 2*bands) the pixels
    right of the centroid.
    """
    if cfg.bands <= 0:
        raise ValueError("bands must be positive")
    ys, xs = np.nonzero(silhouette.mask)
    if ys.size == 0:
        raise DescriptorFailure("silhouette has no pixels")

    _, by, _, bh = silhouette.bbox
    bottom = by + bh - 1
    band = np.floor((bottom - ys) * cfg.bands / bh).astype(np.int64)
    band = np.clip(band, 0, cfg.bands - 1)
    band = np.where(xs > silhouette.centroid[0], band + cfg.bands, band)

    counts = np.bincount(band, minlength=2 * cfg.bands).astype(np.float64)
    return DescriptorVector(source="regions", values=counts)
