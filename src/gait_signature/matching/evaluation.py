"""Verification error rates over genuine / impostor distance samples."""

from __future__ import annotations

import csv
import itertools
import logging
from dataclasses import dataclass, field, asdict
from pathlib import Path
from typing import Callable, List, Sequence

import numpy as np

from .matcher import distance_matrix

logger = logging.getLogger(__name__)

MAX_SWEEP_STEPS = 1_000_000


@dataclass
class DistanceSample:
    id_a: str
    id_b: str
    distance: float
    genuine: bool


@dataclass
class DistanceSampleSet:
    samples: List[DistanceSample] = field(default_factory=list)

    @property
    def genuine(self) -> np.ndarray:
        return np.array([s.distance for s in self.samples if s.genuine], dtype=np.float64)

    @property
    def impostor(self) -> np.ndarray:
        return np.array([s.distance for s in self.samples if not s.genuine], dtype=np.float64)

    def extend(self, other: "DistanceSampleSet") -> None:
        self.samples.extend(other.samples)

    def __len__(self) -> int:
        return len(self.samples)


@dataclass
class EerResult:
    eer: float  # percent
    threshold: float
    far: float  # percent, at threshold
    frr: float  # percent, at threshold
    defined: bool = True  # False when the genuine or impostor set was empty


def gallery_pair_samples(
    ids: Sequence[str],
    vectors: np.ndarray,
    is_same_identity: Callable[[str, str], bool],
) -> DistanceSampleSet:
    """Label every unordered gallery pair as genuine or impostor."""
    out = DistanceSampleSet()
    if len(ids) < 2:
        return out
    dists = distance_matrix(vectors, vectors)
    for i, j in itertools.combinations(range(len(ids)), 2):
        out.samples.append(
            DistanceSample(
                id_a=ids[i],
                id_b=ids[j],
                distance=float(dists[i, j]),
                genuine=bool(is_same_identity(ids[i], ids[j])),
            )
        )
    return out


def error_rates(genuine: np.ndarray, impostor: np.ndarray, thresholds: np.ndarray):
    """FAR and FRR (fractions) at each threshold.

    A comparison is accepted when its distance is <= the threshold, so an
    impostor at or below it is a false accept and a genuine pair above it a
    false reject. Empty sample sets give rates of 0.
    """
    g = np.sort(np.asarray(genuine, dtype=np.float64))
    imp = np.sort(np.asarray(impostor, dtype=np.float64))
    if imp.size:
        far = np.searchsorted(imp, thresholds, side="right") / imp.size
    else:
        far = np.zeros_like(thresholds)
    if g.size:
        frr = (g.size - np.searchsorted(g, thresholds, side="right")) / g.size
    else:
        frr = np.zeros_like(thresholds)
    return far, frr


def equal_error_rate(genuine: Sequence[float], impostor: Sequence[float], step: float = 0.001) -> EerResult:
    """Sweep the threshold from 0 upward in `step` increments.

    The first threshold where FAR equals FRR wins; without an exact crossing
    the first threshold minimising |FAR - FRR| is used.
    """
    if step <= 0:
        raise ValueError("step must be positive")
    genuine = np.asarray(genuine, dtype=np.float64)
    impostor = np.asarray(impostor, dtype=np.float64)
    if genuine.size == 0 or impostor.size == 0:
        logger.warning(
            "EER needs both genuine (%d) and impostor (%d) distances; it is undefined",
            genuine.size,
            impostor.size,
        )
        return EerResult(eer=0.0, threshold=0.0, far=0.0, frr=0.0, defined=False)

    top = float(max(genuine.max(), impostor.max()))
    n = int(np.floor(top / step)) + 2
    if n > MAX_SWEEP_STEPS:
        step = top / (MAX_SWEEP_STEPS - 2)
        n = MAX_SWEEP_STEPS
        logger.info("EER sweep step widened to %g to stay within %d steps", step, n)
    thresholds = np.arange(n, dtype=np.float64) * step

    far, frr = error_rates(genuine, impostor, thresholds)
    i = int(np.argmin(np.abs(far - frr)))
    return EerResult(
        eer=float(far[i] * 100.0),
        threshold=float(thresholds[i]),
        far=float(far[i] * 100.0),
        frr=float(frr[i] * 100.0),
    )


def write_pairs_csv(path: Path | str, samples: DistanceSampleSet) -> Path:
    out_path = Path(path).expanduser().resolve()
    out_path.parent.mkdir(parents=True, exist_ok=True)
    with out_path.open("w", newline="", encoding="utf-8") as f:
        writer = csv.DictWriter(f, fieldnames=["id_a", "id_b", "distance", "label"])
        writer.writeheader()
        for s in samples.samples:
            row = asdict(s)
            row["label"] = "genuine" if row.pop("genuine") else "impostor"
            writer.writerow(row)
    return out_path
