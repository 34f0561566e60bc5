from dataclasses import dataclass, field, replace

import numpy as np


def normalize_vector(values: np.ndarray, norm: str = "l2") -> np.ndarray:
    """Scale `values` to unit L2 norm or unit sum; a zero vector stays zero."""
    values = np.asarray(values, dtype=np.float64)
    if norm == "l2":
        scale = float(np.linalg.norm(values))
    elif norm == "sum":
        scale = float(np.abs(values).sum())
    else:
        raise ValueError(f"Unknown norm: {norm}")
    if scale == 0.0:
        return np.zeros_like(values)
    return values / scale


@dataclass(frozen=True, eq=False)
class DescriptorVector:
    source: str  # "silhouette" | "joints" | "regions" | "moments"
    values: np.ndarray
    normalized: bool = False
    incomplete: bool = False
    meta: dict = field(default_factory=dict)

    def __len__(self) -> int:
        return int(self.values.shape[0])

    def normalize(self, norm: str = "l2") -> "DescriptorVector":
        return replace(self, values=normalize_vector(self.values, norm), normalized=True)

    def to_dict(self) -> dict:
        return {
            "source": self.source,
            "values": self.values.tolist(),
            "normalized": self.normalized,
            "incomplete": self.incomplete,
            "meta": dict(self.meta),
        }

    @staticmethod
    def from_dict(payload: dict) -> "DescriptorVector":
        return DescriptorVector(
            source=str(payload.get("source", "")),
            values=np.array(payload.get("values", []), dtype=np.float64),
            normalized=bool(payload.get("normalized", False)),
            incomplete=bool(payload.get("incomplete", False)),
            meta=dict(payload.get("meta", {}) or {}),
        )
