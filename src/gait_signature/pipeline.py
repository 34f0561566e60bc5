"""Batch evaluation: segmentation -> descriptors -> fusion -> (PCA) -> matching.

Per-image work runs on a thread pool; the results are collected back in input
order. A failing image is recorded and dropped without aborting the batch.
"""

from __future__ import annotations

import logging
import time
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from typing import Callable, Dict, List, Sequence, Tuple

import numpy as np

from .config import PipelineConfig, set_global_seed
from .errors import GaitSignatureError, PoseEstimationFailure
from .features.fusion import build_feature_vector
from .features.pca import learn_basis, project
from .matching.evaluation import DistanceSampleSet, equal_error_rate, gallery_pair_samples
from .matching.matcher import MatchResult, MatchSet, correct_classification_rate, identify
from .records import SubjectImage, SubjectImageRecord
from .report import ImageFailure, RunReport
from .vision.pose_estimation import JointPredictor, PoseAdapter
from .vision.segmentation import build_median_background, make_segmenter, prepare_image

logger = logging.getLogger(__name__)

ALL_VIEWS = "all"


@dataclass
class ExtractionResult:
    records: List[SubjectImageRecord] = field(default_factory=list)
    failures: List[ImageFailure] = field(default_factory=list)


class GaitPipeline:
    def __init__(self, cfg: PipelineConfig, predictor: JointPredictor | None = None):
        self.cfg = cfg
        self.pose_adapter = None
        if predictor is not None:
            self.pose_adapter = PoseAdapter(
                predictor,
                num_joints=cfg.joints.num_joints,
                max_concurrency=cfg.concurrency.pose_concurrency,
            )

    def build_segmenter(self, gallery_images: Sequence[SubjectImage]):
        background = None
        if self.cfg.segmentation.method == "median_background":
            frames = [
                prepare_image(item.image, self.cfg.segmentation.crop)
                for item in gallery_images
                if item.image is not None and item.image.size > 0
            ]
            background = build_median_background(frames)
        return make_segmenter(self.cfg.segmentation, background)

    def process_image(
        self, item: SubjectImage, segmenter
    ) -> Tuple[SubjectImageRecord, List[ImageFailure]]:
        """Segment one image and build its feature vector.

        Returns the record together with failures the image recovered from.
        """
        soft_failures: List[ImageFailure] = []
        prepared = prepare_image(item.image, self.cfg.segmentation.crop)
        seg = segmenter.segment(prepared)

        pose = None
        if "joints" in self.cfg.fusion.producers and self.pose_adapter is not None:
            try:
                pose = self.pose_adapter.locate(seg.image)
            except PoseEstimationFailure as e:
                if self.cfg.pose_failure_policy == "exclude":
                    raise
                logger.warning("%s %s: pose failed, keeping silhouette only: %s", item.role, item.id, e)
                soft_failures.append(
                    ImageFailure(item.id, item.role, e.stage, str(e), excluded=False)
                )

        feature = build_feature_vector(seg.silhouette, pose, item.view, self.cfg)
        moments = None
        if self.cfg.matching.moment_prefilter is not None:
            moments = seg.silhouette.hull_central_moments()

        record = SubjectImageRecord(
            id=item.id,
            role=item.role,
            view=item.view,
            silhouette=seg.silhouette,
            silhouette_image=seg.image,
            pose=pose,
            feature=feature,
            moments=moments,
        )
        return record, soft_failures

    def extract(self, images: Sequence[SubjectImage], segmenter) -> ExtractionResult:
        out = ExtractionResult()
        if not images:
            return out
        workers = max(1, self.cfg.concurrency.workers)
        with ThreadPoolExecutor(max_workers=workers) as pool:
            futures = [pool.submit(self.process_image, item, segmenter) for item in images]
            for item, fut in zip(images, futures):
                try:
                    record, soft = fut.result()
                except GaitSignatureError as e:
                    logger.warning("%s %s failed at %s: %s", item.role, item.id, e.stage, e)
                    out.failures.append(ImageFailure(item.id, item.role, e.stage, str(e)))
                    continue
                except Exception as e:
                    logger.warning("%s %s failed: %s", item.role, item.id, e, exc_info=True)
                    out.failures.append(ImageFailure(item.id, item.role, "pipeline", str(e)))
                    continue
                out.records.append(record)
                out.failures.extend(soft)
        return out

    def _usable(
        self, records: Sequence[SubjectImageRecord], failures: List[ImageFailure]
    ) -> List[SubjectImageRecord]:
        if not self.cfg.matching.exclude_incomplete:
            return list(records)
        earlier = {(f.image_id, f.role): f for f in failures}
        kept = []
        for r in records:
            if not r.incomplete:
                kept.append(r)
                continue
            # one entry per image: an earlier soft failure now excludes it
            failure = earlier.get((r.id, r.role))
            if failure is not None:
                failure.excluded = True
            else:
                failures.append(ImageFailure(r.id, r.role, "descriptor", "incomplete joint set"))
        return kept

    def _group(self, records: Sequence[SubjectImageRecord]) -> Dict[str, List[SubjectImageRecord]]:
        groups: Dict[str, List[SubjectImageRecord]] = {}
        for r in records:
            key = r.view if self.cfg.matching.group_by_view else ALL_VIEWS
            groups.setdefault(key, []).append(r)
        return groups

    def _match_set(self, records: Sequence[SubjectImageRecord]) -> MatchSet:
        lengths = {len(r.feature) for r in records}
        if len(lengths) > 1:
            raise ValueError(
                f"feature vectors of different lengths {sorted(lengths)} cannot be compared; "
                "enable matching.group_by_view or use the same joint groups for every view"
            )
        moments = None
        if self.cfg.matching.moment_prefilter is not None:
            moments = np.stack([r.moments for r in records], axis=0)
        return MatchSet(
            ids=[r.id for r in records],
            vectors=np.stack([r.feature.as_array() for r in records], axis=0),
            moments=moments,
        )

    def _eer_samples(
        self,
        records: Sequence[SubjectImageRecord],
        per_view: DistanceSampleSet,
        is_same_identity: Callable[[str, str], bool],
    ) -> DistanceSampleSet:
        """Gallery pairs for the EER: every unordered pair, or only pairs within a view.

        Pairs span views unless `matching.eer_group_by_view` is set, as long as
        every gallery vector has the same length. With PCA on, one basis is
        learned from the whole gallery for these distances.
        """
        if self.cfg.matching.eer_group_by_view or len(records) < 2:
            return per_view
        lengths = {len(r.feature) for r in records}
        if len(lengths) > 1:
            logger.warning(
                "gallery vectors have lengths %s across views; EER uses pairs within each view",
                sorted(lengths),
            )
            return per_view

        ids = [r.id for r in records]
        vectors = np.stack([r.feature.as_array() for r in records], axis=0)
        if self.cfg.pca.enabled:
            vectors = project(vectors, learn_basis(vectors, self.cfg.pca.max_components))
        return gallery_pair_samples(ids, vectors, is_same_identity)

    def run(
        self,
        gallery_images: Sequence[SubjectImage],
        probe_images: Sequence[SubjectImage],
        is_correct_match: Callable[[str, str], bool],
        is_same_identity: Callable[[str, str], bool],
    ) -> RunReport:
        start = time.perf_counter()
        set_global_seed(self.cfg.seed)

        segmenter = self.build_segmenter(gallery_images)
        gallery = self.extract(gallery_images, segmenter)
        probes = self.extract(probe_images, segmenter)
        failures = gallery.failures + probes.failures
        logger.info(
            "extracted %d/%d gallery and %d/%d probe records",
            len(gallery.records),
            len(gallery_images),
            len(probes.records),
            len(probe_images),
        )

        usable_gallery = self._usable(gallery.records, failures)
        gallery_groups = self._group(usable_gallery)
        probe_groups = self._group(self._usable(probes.records, failures))

        matches: List[MatchResult] = []
        view_samples = DistanceSampleSet()
        ccr_by_view: Dict[str, float] = {}
        for view in sorted(set(gallery_groups) | set(probe_groups)):
            g_records = gallery_groups.get(view, [])
            p_records = probe_groups.get(view, [])
            if not g_records:
                for r in p_records:
                    failures.append(
                        ImageFailure(r.id, r.role, "matching", f"no gallery images for view {view}")
                    )
                continue

            g_set = self._match_set(g_records)
            p_set = self._match_set(p_records) if p_records else None

            if self.cfg.pca.enabled:
                if len(g_set) >= 2:
                    basis = learn_basis(g_set.vectors, self.cfg.pca.max_components)
                    g_set.vectors = project(g_set.vectors, basis)
                    if p_set is not None:
                        p_set.vectors = project(p_set.vectors, basis)
                    logger.debug("view %s: PCA kept %d components", view, basis.num_components)
                else:
                    logger.warning("view %s: PCA skipped, needs at least two gallery vectors", view)

            if p_set is not None:
                view_label = None if view == ALL_VIEWS else view
                view_matches = identify(
                    p_set,
                    g_set,
                    is_correct_match,
                    moment_prefilter=self.cfg.matching.moment_prefilter,
                    view=view_label,
                )
                matches.extend(view_matches)
                if view_label is not None:
                    ccr_by_view[view] = correct_classification_rate(view_matches)

            view_samples.extend(gallery_pair_samples(g_set.ids, g_set.vectors, is_same_identity))

        samples = self._eer_samples(usable_gallery, view_samples, is_same_identity)
        eer = equal_error_rate(samples.genuine, samples.impostor, self.cfg.matching.eer_step)
        report = RunReport(
            ccr=correct_classification_rate(matches),
            ccr_by_view=ccr_by_view,
            eer=eer,
            duration_seconds=time.perf_counter() - start,
            num_gallery=len(gallery_images),
            num_probe=len(probe_images),
            matches=matches,
            failures=failures,
            samples=samples,
            records=gallery.records + probes.records,
        )
        logger.info("CCR %.2f%%, EER %.2f%%", report.ccr, report.eer.eer)
        return report
