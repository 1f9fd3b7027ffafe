"""
Caller-facing facade tying the drift pipeline together.

Structural analysis and snapshotting, drift detection, usage collection and
priority scoring are wired here from one DocDriftConfig.
"""

from __future__ import annotations

import asyncio
import logging
from pathlib import Path
from typing import List, Optional, Union

from .call_graph_builder import CallGraphBuilder
from .config import DocDriftConfig
from .doc_parser import DocumentationParser
from .drift_detector import DriftDetector
from .feedback import FeedbackCallable, IssueTrackerFeedback
from .models import (
    DriftDetectionResult,
    PrioritizedDriftResult,
    PriorityScore,
    Snapshot,
    UsageMetadata,
)
from .priority_scorer import PriorityScorer
from .snapshot import SnapshotManager
from .structural_analyzer import StructuralAnalyzer
from .usage_metadata import UsageMetadataCollector


class DriftEngine:
    """Detects, scores and orders documentation drift for one project."""

    def __init__(
        self,
        project_root: Union[str, Path],
        docs_root: Optional[Union[str, Path]] = None,
        snapshot_dir: Optional[Union[str, Path]] = None,
        config: Optional[DocDriftConfig] = None,
        feedback: Optional[FeedbackCallable] = None,
    ):
        self.project_root = Path(project_root).resolve()
        overrides = {"project_root": str(self.project_root)}
        if docs_root is not None:
            overrides["docs_root"] = str(docs_root)
        if snapshot_dir is not None:
            overrides["snapshot_dir"] = str(snapshot_dir)
        self.config = (config or DocDriftConfig()).model_copy(update=overrides)
        self.docs_root = self.config.resolved_docs_root()
        self.snapshot_dir = self.config.resolved_snapshot_dir()

        if feedback is None and self.config.feedback is not None:
            feedback = IssueTrackerFeedback(self.config.feedback)

        self.analyzer = StructuralAnalyzer(project_root=self.project_root, source_extensions=self.config.source_extensions)
        self.snapshots = SnapshotManager(
            self.snapshot_dir,
            analyzer=self.analyzer,
            doc_parser=DocumentationParser(),
            concurrency=self.config.analysis_concurrency,
            source_extensions=self.config.source_extensions,
            doc_extensions=self.config.doc_extensions,
            ignored_dirs=self.config.ignored_dirs,
            ignored_patterns=self.config.ignored_patterns,
            show_progress=self.config.show_progress,
        )
        self.detector = DriftDetector()
        self.graph_builder = CallGraphBuilder(self.project_root, analyzer=self.analyzer)
        self.usage_collector = UsageMetadataCollector(
            self.graph_builder,
            max_symbols=self.config.usage_max_symbols,
            graph_depth=self.config.usage_graph_depth,
            concurrency=self.config.analysis_concurrency,
        )
        self.scorer = PriorityScorer(weights=self.config.priority_weights, feedback=feedback)

    async def create_snapshot(
        self,
        project_root: Optional[Union[str, Path]] = None,
        docs_root: Optional[Union[str, Path]] = None,
        persist: bool = True,
    ) -> Snapshot:
        snapshot = await self.snapshots.create_snapshot(project_root or self.project_root, docs_root or self.docs_root)
        if persist:
            await asyncio.to_thread(self.snapshots.save_snapshot, snapshot)
        return snapshot

    def load_latest_snapshot(self) -> Optional[Snapshot]:
        return self.snapshots.load_latest_snapshot()

    def detect_drift(self, old: Snapshot, new: Snapshot) -> List[DriftDetectionResult]:
        return self.detector.detect_drift(old, new)

    async def collect_usage_metadata(self, snapshot: Snapshot) -> UsageMetadata:
        # source files may have changed since the last graph build
        self.graph_builder.clear_cache()
        return await self.usage_collector.collect(snapshot)

    def score_priority(
        self,
        result: DriftDetectionResult,
        snapshot: Snapshot,
        usage: Optional[UsageMetadata] = None,
    ) -> PriorityScore:
        return self.scorer.score_sync(result, snapshot, usage)

    async def score_priority_async(
        self,
        result: DriftDetectionResult,
        snapshot: Snapshot,
        usage: Optional[UsageMetadata] = None,
    ) -> PriorityScore:
        return await self.scorer.score_async(result, snapshot, usage)

    async def get_prioritized_drift_results(
        self,
        old: Snapshot,
        new: Snapshot,
        usage: Optional[UsageMetadata] = None,
    ) -> List[PrioritizedDriftResult]:
        """Drift results between two snapshots, highest priority first."""
        results = self.detect_drift(old, new)
        if not results:
            return []
        if usage is None:
            usage = await self.collect_usage_metadata(new)

        scores = await asyncio.gather(*(self.scorer.score_async(result, new, usage) for result in results))
        prioritized = [
            PrioritizedDriftResult(result=result, priority_score=score) for result, score in zip(results, scores)
        ]
        prioritized.sort(key=lambda item: item.priority_score.overall, reverse=True)
        return prioritized

    async def check_for_drift(self) -> List[PrioritizedDriftResult]:
        """
        Compare a fresh snapshot against the stored baseline.

        On the first run there is no baseline: the new snapshot is stored and
        an empty list is returned.
        """
        baseline = await asyncio.to_thread(self.load_latest_snapshot)
        current = await self.create_snapshot()
        if baseline is None:
            logging.info("No baseline snapshot found, stored the current snapshot as baseline")
            return []
        return await self.get_prioritized_drift_results(baseline, current)
