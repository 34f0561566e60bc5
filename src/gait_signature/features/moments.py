import numpy as np

from ..errors import DescriptorFailure
from ..vision.silhouette import Silhouette
from .descriptor import DescriptorVector


def moment_descriptor(silhouette: Silhouette) -> DescriptorVector:
    values = silhouette.hull_central_moments()
    if not np.any(values):
        raise DescriptorFailure("convex hull has zero second moments")
    return DescriptorVector(source="moments", values=values)
