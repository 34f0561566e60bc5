import math
from dataclasses import dataclass
from typing import Callable, List, Sequence, Tuple

import numpy as np

MatchPredicate = Callable[[str, str], bool]


@dataclass
class MatchSet:
    """Ids and stacked feature vectors of one side of a comparison."""

    ids: List[str]
    vectors: np.ndarray  # (n, d)
    moments: np.ndarray | None = None  # (n, 3) hull moments, for prefiltering

    def __len__(self) -> int:
        return len(self.ids)


@dataclass
class MatchResult:
    probe_id: str
    gallery_id: str
    distance: float
    correct: bool
    view: str | None = None


def distance_matrix(a: np.ndarray, b: np.ndarray) -> np.ndarray:
    """Pairwise Euclidean distances between the rows of `a` and `b`."""
    a = np.atleast_2d(np.asarray(a, dtype=np.float64))
    b = np.atleast_2d(np.asarray(b, dtype=np.float64))
    if a.shape[1] != b.shape[1]:
        raise ValueError(f"cannot compare vectors of length {a.shape[1]} and {b.shape[1]}")
    return np.linalg.norm(a[:, np.newaxis, :] - b[np.newaxis, :, :], axis=-1)


def nearest_neighbour(distances: np.ndarray, candidates: np.ndarray | None = None) -> Tuple[int, float]:
    """Index and distance of the closest item; ties go to the first one."""
    if candidates is None:
        candidates = np.arange(distances.shape[0])
    candidates = np.sort(np.asarray(candidates))
    if candidates.size == 0:
        raise ValueError("no gallery candidates to match against")
    best = candidates[int(np.argmin(distances[candidates]))]
    return int(best), float(distances[best])


def moment_candidates(probe_moments: np.ndarray, gallery_moments: np.ndarray, fraction: float) -> np.ndarray:
    """Gallery indices whose hull moments are closest to the probe's.

    Keeps ceil(fraction * n) of them, in stable order of moment distance.
    """
    if not 0.0 < fraction <= 1.0:
        raise ValueError("moment prefilter fraction must be in (0, 1]")
    dists = distance_matrix(probe_moments, gallery_moments)[0]
    keep = max(1, math.ceil(fraction * dists.shape[0]))
    return np.argsort(dists, kind="stable")[:keep]


def identify(
    probes: MatchSet,
    gallery: MatchSet,
    is_correct_match: MatchPredicate,
    moment_prefilter: float | None = None,
    view: str | None = None,
) -> List[MatchResult]:
    """1-nearest-neighbour identification of every probe against the gallery."""
    if len(probes) == 0:
        return []
    if len(gallery) == 0:
        raise ValueError("gallery is empty")

    dists = distance_matrix(probes.vectors, gallery.vectors)
    results: List[MatchResult] = []
    for i, probe_id in enumerate(probes.ids):
        candidates = None
        if moment_prefilter is not None:
            if probes.moments is None or gallery.moments is None:
                raise ValueError("moment prefilter needs hull moments on both sides")
            candidates = moment_candidates(
                probes.moments[i : i + 1], gallery.moments, moment_prefilter
            )
        j, dist = nearest_neighbour(dists[i], candidates)
        gallery_id = gallery.ids[j]
        results.append(
            MatchResult(
                probe_id=probe_id,
                gallery_id=gallery_id,
                distance=dist,
                correct=bool(is_correct_match(probe_id, gallery_id)),
                view=view,
            )
        )
    return results


def correct_classification_rate(results: Sequence[MatchResult]) -> float:
    """CCR in percent; 0 when there is nothing to classify."""
    if not results:
        return 0.0
    return 100.0 * sum(1 for r in results if r.correct) / len(results)
