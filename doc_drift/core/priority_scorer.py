"""
Priority scoring for drift results.

Six independent 0-100 factors are combined with configurable weights into a
single explainable score used to order documentation work.
"""

from __future__ import annotations

import inspect
import logging
import math
from datetime import datetime
from typing import Callable, Dict, Optional, Set

from .config import DEFAULT_PRIORITY_WEIGHTS
from .feedback import FeedbackCallable
from .models import (
    DriftDetectionResult,
    PriorityFactors,
    PriorityScore,
    Recommendation,
    Snapshot,
    UsageMetadata,
)
from .utils import parse_iso, utc_now

SEVERITY_MULTIPLIERS = {"critical": 1.2, "high": 1.1, "medium": 1.0, "low": 0.9, "none": 0.9}
MISSING_FILE_COMPLEXITY = 50
NO_DOCS_COVERAGE = 90
UNDOCUMENTED_COVERAGE = 40
UNKNOWN_STALENESS = 50

# (minimum age in days, exclusive) -> staleness
STALENESS_STEPS = [(90, 100), (30, 80), (14, 60), (7, 40)]

RECOMMENDATION_THRESHOLDS = [(80, "critical"), (60, "high"), (40, "medium")]
ACTION_PREFIXES = {
    "critical": "Update immediately",
    "high": "Update within 1 day",
    "medium": "Update within 1 week",
    "low": "Update when convenient",
}


def _clamp(value: float) -> int:
    return int(max(0, min(100, round(value))))


def _feedback_score(value) -> int:
    """Clamp a feedback value; anything that is not a finite number raises ValueError or TypeError."""
    number = float(value)
    if not math.isfinite(number):
        raise ValueError(f"feedback score {value!r} is not finite")
    return _clamp(number)


def recommendation_for(overall: int) -> Recommendation:
    for threshold, recommendation in RECOMMENDATION_THRESHOLDS:
        if overall >= threshold:
            return recommendation
    return "low"


class PriorityScorer:
    """Computes PriorityScore records for drift detection results."""

    def __init__(
        self,
        weights: Optional[Dict[str, float]] = None,
        feedback: Optional[FeedbackCallable] = None,
        clock: Callable[[], datetime] = utc_now,
    ):
        self._weights = DEFAULT_PRIORITY_WEIGHTS.copy()
        if weights:
            self.set_weights(weights)
        self.feedback = feedback
        self.clock = clock

    @property
    def weights(self) -> Dict[str, float]:
        return dict(self._weights)

    def set_weights(self, weights: Dict[str, float]) -> None:
        """Partially update factor weights; unknown factor names are rejected."""
        unknown = set(weights) - set(DEFAULT_PRIORITY_WEIGHTS)
        if unknown:
            raise ValueError(f"Unknown priority factors: {', '.join(sorted(unknown))}")
        self._weights.update({name: float(value) for name, value in weights.items()})

    # --- Scoring ---

    def score_sync(
        self,
        result: DriftDetectionResult,
        snapshot: Snapshot,
        usage: Optional[UsageMetadata] = None,
    ) -> PriorityScore:
        """Score ``result``; an asynchronous feedback integration counts as 0 here."""
        factors = self.compute_factors(result, snapshot, usage)
        factors.user_feedback = self._feedback_sync(result)
        return self._build_score(result, factors)

    async def score_async(
        self,
        result: DriftDetectionResult,
        snapshot: Snapshot,
        usage: Optional[UsageMetadata] = None,
    ) -> PriorityScore:
        factors = self.compute_factors(result, snapshot, usage)
        factors.user_feedback = await self._feedback_async(result)
        return self._build_score(result, factors)

    def compute_factors(
        self,
        result: DriftDetectionResult,
        snapshot: Snapshot,
        usage: Optional[UsageMetadata] = None,
    ) -> PriorityFactors:
        """Every factor except user feedback."""
        return PriorityFactors(
            code_complexity=self.code_complexity(result, snapshot),
            usage_frequency=self.usage_frequency(result, snapshot, usage),
            change_magnitude=self.change_magnitude(result),
            documentation_coverage=self.documentation_coverage(result, snapshot),
            staleness=self.staleness(result, snapshot),
            user_feedback=0,
        )

    def _build_score(self, result: DriftDetectionResult, factors: PriorityFactors) -> PriorityScore:
        raw = sum(getattr(factors, name) * weight for name, weight in self._weights.items())
        overall = _clamp(raw)
        recommendation = recommendation_for(overall)
        impact = result.impact_analysis
        action = (
            f"{ACTION_PREFIXES[recommendation]}: {impact.breaking_changes} breaking, "
            f"{impact.major_changes} major, {impact.minor_changes} minor change(s) "
            f"affecting {len(impact.affected_doc_files)} documentation file(s)"
        )
        return PriorityScore(overall=overall, factors=factors, recommendation=recommendation, suggested_action=action)

    # --- Factors ---

    @staticmethod
    def code_complexity(result: DriftDetectionResult, snapshot: Snapshot) -> int:
        model = snapshot.files.get(result.file_path)
        if model is None:
            return MISSING_FILE_COMPLEXITY
        base = min(100, model.complexity * 2)
        return _clamp(base * SEVERITY_MULTIPLIERS.get(result.severity, 1.0))

    @staticmethod
    def usage_frequency(result: DriftDetectionResult, snapshot: Snapshot, usage: Optional[UsageMetadata]) -> int:
        if usage is not None:
            names = {delta.name for record in result.drifts for delta in record.code_changes}
            return _clamp(sum(usage.count_for(name) for name in names))

        model = snapshot.files.get(result.file_path)
        exports = set(model.exports) if model else set()
        doc_refs = 0
        for doc in snapshot.documentation.values():
            for section in doc.sections:
                doc_refs += sum(1 for name in section.references() if name in exports)
        score = min(60, 15 * len(exports)) + min(40, 25 * doc_refs) + (30 if exports else 0)
        return _clamp(score)

    @staticmethod
    def change_magnitude(result: DriftDetectionResult) -> int:
        impact = result.impact_analysis
        if impact.breaking_changes > 0:
            return 100
        return _clamp(20 * impact.major_changes + 8 * impact.minor_changes)

    @staticmethod
    def documentation_coverage(result: DriftDetectionResult, snapshot: Snapshot) -> int:
        affected = result.impact_analysis.affected_doc_files
        if not affected:
            return NO_DOCS_COVERAGE

        deltas = {delta.name: delta for record in result.drifts for delta in record.code_changes}
        if not deltas:
            return NO_DOCS_COVERAGE

        referenced: Set[str] = set()
        for doc_path in affected:
            doc = snapshot.documentation.get(doc_path)
            if doc is None:
                continue
            for section in doc.sections:
                referenced.update(section.references())

        documented = sum(
            1
            for name, delta in deltas.items()
            if delta.change_type != "removed" and (name in referenced or name.rsplit(".", 1)[-1] in referenced)
        )
        if documented == 0:
            return UNDOCUMENTED_COVERAGE
        return _clamp((1 - documented / len(deltas)) * 80)

    def staleness(self, result: DriftDetectionResult, snapshot: Snapshot) -> int:
        dates = []
        for doc_path in result.impact_analysis.affected_doc_files:
            doc = snapshot.documentation.get(doc_path)
            modified = parse_iso(doc.last_modified) if doc else None
            if modified is not None:
                dates.append(modified)
        if not dates:
            return UNKNOWN_STALENESS

        age_days = (self.clock() - min(dates)).total_seconds() / 86400
        for days, score in STALENESS_STEPS:
            if age_days > days:
                return score
        return 20

    # --- Feedback ---

    def _feedback_sync(self, result: DriftDetectionResult) -> int:
        if self.feedback is None:
            return 0
        try:
            value = self.feedback(result)
        except Exception as e:
            logging.warning(f"User feedback failed for {result.file_path}: {e}")
            return 0
        if inspect.isawaitable(value):
            close = getattr(value, "close", None)
            if close is not None:
                close()
            return 0
        try:
            return _feedback_score(value)
        except (TypeError, ValueError) as e:
            logging.warning(f"Ignoring invalid user feedback for {result.file_path}: {e}")
            return 0

    async def _feedback_async(self, result: DriftDetectionResult) -> int:
        if self.feedback is None:
            return 0
        try:
            value = self.feedback(result)
            if inspect.isawaitable(value):
                value = await value
            return _feedback_score(value)
        except Exception as e:
            logging.warning(f"User feedback failed for {result.file_path}: {e}")
            return 0

