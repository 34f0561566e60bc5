from dataclasses import dataclass

import cv2
import numpy as np


@dataclass(frozen=True, eq=False)
class PcaBasis:
    mean: np.ndarray  # (1, d)
    components: np.ndarray  # (k, d), one eigenvector per row
    eigenvalues: np.ndarray  # (k, 1)

    @property
    def num_components(self) -> int:
        return int(self.components.shape[0])


def learn_basis(gallery_vectors: np.ndarray, max_components: int = 0) -> PcaBasis:
    """Learn a PCA basis from gallery feature vectors only.

    `max_components=0` keeps every component the data supports.
    """
    data = np.ascontiguousarray(np.atleast_2d(gallery_vectors), dtype=np.float64)
    if data.shape[0] < 2:
        raise ValueError("PCA needs at least two gallery vectors")
    mean, eigenvectors, eigenvalues = cv2.PCACompute2(
        data, np.empty((0)), maxComponents=int(max_components)
    )
    return PcaBasis(mean=mean, components=eigenvectors, eigenvalues=eigenvalues)


def project(vectors: np.ndarray, basis: PcaBasis) -> np.ndarray:
    """Project one vector (d,) or a batch (n, d) into the reduced space."""
    arr = np.asarray(vectors, dtype=np.float64)
    single = arr.ndim == 1
    data = np.ascontiguousarray(np.atleast_2d(arr))
    if data.shape[1] != basis.mean.shape[1]:
        raise ValueError(
            f"vector length {data.shape[1]} does not match the basis ({basis.mean.shape[1]})"
        )
    reduced = cv2.PCAProject(data, basis.mean, basis.components)
    return reduced[0] if single else reduced
