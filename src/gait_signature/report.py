from collections import Counter
from dataclasses import dataclass, field, asdict
from typing import Dict, List

from .matching.evaluation import DistanceSampleSet, EerResult
from .matching.matcher import MatchResult
from .records import SubjectImageRecord


@dataclass
class ImageFailure:
    image_id: str
    role: str
    stage: str
    message: str
    excluded: bool = True  # False when the image went on with a partial descriptor


@dataclass
class RunReport:
    ccr: float
    ccr_by_view: Dict[str, float]
    eer: EerResult
    duration_seconds: float
    num_gallery: int
    num_probe: int
    matches: List[MatchResult] = field(default_factory=list)
    failures: List[ImageFailure] = field(default_factory=list)
    samples: DistanceSampleSet = field(default_factory=DistanceSampleSet)
    records: List[SubjectImageRecord] = field(default_factory=list)

    def failure_counts(self) -> Dict[str, int]:
        return dict(Counter(f.stage for f in self.failures))

    def summary_text(self) -> str:
        lines = [
            f"Gallery images = {self.num_gallery}, probe images = {self.num_probe}",
        ]
        for view, ccr in sorted(self.ccr_by_view.items()):
            lines.append(f"{view.capitalize()} Classification Accuracy = {ccr:.2f}%")
        num_genuine = int(self.samples.genuine.size)
        num_impostor = int(self.samples.impostor.size)
        if self.eer.defined:
            eer_line = (
                f"Equal Error Rate (EER) = {self.eer.eer:.2f}% at threshold {self.eer.threshold:.4f}"
            )
        else:
            eer_line = "Equal Error Rate (EER) = undefined (needs genuine and impostor pairs)"
        lines += [
            f"Correct Classification Rate (CCR) = {self.ccr:.2f}%",
            eer_line,
            f"Gallery pairs = {num_genuine} genuine, {num_impostor} impostor",
            f"Duration = {self.duration_seconds:.2f}s",
        ]
        if self.failures:
            excluded = sum(1 for f in self.failures if f.excluded)
            by_stage = ", ".join(f"{k}: {v}" for k, v in sorted(self.failure_counts().items()))
            lines.append(
                f"Failures = {len(self.failures)} ({excluded} excluded) by stage: {by_stage}"
            )
        else:
            lines.append("Failures = 0")
        return "\n".join(lines)

    def to_dict(self) -> dict:
        return {
            "ccr": self.ccr,
            "ccr_by_view": dict(self.ccr_by_view),
            "eer": asdict(self.eer),
            "duration_seconds": self.duration_seconds,
            "num_gallery": self.num_gallery,
            "num_probe": self.num_probe,
            "num_genuine": int(self.samples.genuine.size),
            "num_impostor": int(self.samples.impostor.size),
            "failure_counts": self.failure_counts(),
            "failures": [asdict(f) for f in self.failures],
            "matches": [asdict(m) for m in self.matches],
        }
