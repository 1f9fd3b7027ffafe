from datetime import datetime, timedelta, timezone

import pytest

from doc_drift.core.doc_parser import DocumentationParser
from doc_drift.core.drift_detector import DriftDetector
from doc_drift.core.models import (
    CodeDelta,
    FileModel,
    ParameterInfo,
    Snapshot,
    SymbolInfo,
    UsageMetadata,
)
from doc_drift.core.priority_scorer import PriorityScorer, recommendation_for
from doc_drift.core.utils import to_iso

NOW = datetime(2024, 6, 1, 12, 0, tzinfo=timezone.utc)

DOC = """# Calculator

## calculate(x)

Use `calculate` to double a value.

## add(a, b)

`add(a, b)` returns the sum.
"""


def _calculate(exported=True):
    return SymbolInfo(
        name="calculate",
        kind="function",
        file_path="src/math.ts",
        signature="calculate(x: number): number",
        parameters=[ParameterInfo(name="x", type="number")],
        return_type="number",
        is_exported=exported,
    )


def _doc(age_days, path="docs/api.md", content=DOC):
    return DocumentationParser().parse_content(content, path, to_iso(NOW - timedelta(days=age_days)))


def _snapshot(files, docs):
    return Snapshot(
        project_root="/p",
        timestamp=to_iso(NOW),
        files={model.file_path: model for model in files},
        documentation={doc.file_path: doc for doc in docs},
    )


def _delta(name, change_type="modified", impact="patch", category="function"):
    return CodeDelta(change_type=change_type, category=category, name=name, details="changed", impact_level=impact)


def _result(deltas, snapshot, file_path="src/math.ts"):
    return DriftDetector().analyze_file(file_path, "typescript", deltas, snapshot)


@pytest.fixture
def scorer():
    return PriorityScorer(clock=lambda: NOW)


def test_breaking_removal_of_heavily_used_function_is_critical(scorer):
    old_model = FileModel(
        file_path="src/math.ts", language="typescript", functions=[_calculate()],
        exports=["calculate"], complexity=42, content_hash="old",
    )
    new_model = FileModel(file_path="src/math.ts", language="typescript", complexity=42, content_hash="new")
    doc = _doc(45)
    old = _snapshot([old_model], [doc])
    new = _snapshot([new_model], [doc])
    result = DriftDetector().detect_drift(old, new)[0]
    usage = UsageMetadata(file_path="/p", function_calls={"calculate": 50}, imports={"calculate": 50})

    score = scorer.score_sync(result, new, usage)

    assert score.factors.code_complexity == 100
    assert score.factors.usage_frequency == 100
    assert score.factors.change_magnitude == 100
    assert score.factors.documentation_coverage == 40
    assert score.factors.staleness == 80
    assert score.factors.user_feedback == 0
    assert score.overall == 84
    assert score.recommendation == "critical"
    assert score.suggested_action == (
        "Update immediately: 1 breaking, 0 major, 0 minor change(s) affecting 1 documentation file(s)"
    )


def test_change_magnitude():
    snapshot = _snapshot([], [])
    breaking = _result([_delta("a", impact="breaking")], snapshot)
    mixed = _result([_delta("a", impact="major"), _delta("b", impact="major"), _delta("c", impact="minor")], snapshot)
    many = _result([_delta(f"f{i}", impact="major") for i in range(10)], snapshot)

    assert PriorityScorer.change_magnitude(breaking) == 100
    assert PriorityScorer.change_magnitude(mixed) == 48
    assert PriorityScorer.change_magnitude(many) == 100


def test_code_complexity_uses_severity_multiplier():
    model = FileModel(file_path="src/math.ts", language="typescript", complexity=10)
    snapshot = _snapshot([model], [])

    low = _result([_delta("a")], snapshot)
    high = _result([_delta("a", impact="major")], snapshot)
    missing = _result([_delta("a")], snapshot, file_path="src/gone.ts")

    assert PriorityScorer.code_complexity(low, snapshot) == 18
    assert PriorityScorer.code_complexity(high, snapshot) == 22
    assert PriorityScorer.code_complexity(missing, snapshot) == 50


def test_usage_frequency_heuristic_without_metadata():
    model = FileModel(file_path="src/math.ts", language="typescript", exports=["add"])
    snapshot = _snapshot([model], [_doc(1)])
    result = _result([_delta("add")], snapshot)

    assert PriorityScorer.usage_frequency(result, snapshot, None) == 70


def test_usage_frequency_from_metadata_is_capped():
    snapshot = _snapshot([], [])
    result = _result([_delta("calculate")], snapshot)
    usage = UsageMetadata(file_path="/p", function_calls={"calculate": 500})

    assert PriorityScorer.usage_frequency(result, snapshot, usage) == 100
    assert PriorityScorer.usage_frequency(result, snapshot, UsageMetadata(file_path="/p")) == 0


def test_documentation_coverage():
    snapshot = _snapshot([], [_doc(1)])
    undocumented_file = _result([_delta("calculate")], _snapshot([], []))
    all_documented = _result([_delta("calculate"), _delta("add")], snapshot)
    one_of_three = _result([_delta("calculate"), _delta("mul"), _delta("div")], snapshot)
    removed = _result([_delta("calculate", change_type="removed", impact="breaking")], snapshot)

    assert PriorityScorer.documentation_coverage(undocumented_file, snapshot) == 90
    assert PriorityScorer.documentation_coverage(all_documented, snapshot) == 0
    assert PriorityScorer.documentation_coverage(one_of_three, snapshot) == 53
    assert PriorityScorer.documentation_coverage(removed, snapshot) == 40


@pytest.mark.parametrize(
    "age_days, expected",
    [(3, 20), (10, 40), (20, 60), (45, 80), (100, 100)],
)
def test_staleness_steps(scorer, age_days, expected):
    snapshot = _snapshot([], [_doc(age_days)])
    result = _result([_delta("calculate")], snapshot)

    assert scorer.staleness(result, snapshot) == expected


def test_staleness_uses_oldest_doc_and_defaults(scorer):
    docs = [_doc(3), _doc(100, path="docs/old.md")]
    snapshot = _snapshot([], docs)
    result = _result([_delta("calculate")], snapshot)

    assert result.impact_analysis.affected_doc_files == ["docs/api.md", "docs/old.md"]
    assert scorer.staleness(result, snapshot) == 100

    no_docs = _snapshot([], [])
    assert scorer.staleness(_result([_delta("calculate")], no_docs), no_docs) == 50


@pytest.mark.parametrize(
    "overall, expected",
    [(100, "critical"), (80, "critical"), (79, "high"), (60, "high"), (59, "medium"), (40, "medium"), (39, "low"), (0, "low")],
)
def test_recommendation_thresholds(overall, expected):
    assert recommendation_for(overall) == expected


def test_weights_are_configurable(scorer):
    scorer.set_weights({"staleness": 0.5})

    assert scorer.weights["staleness"] == 0.5
    assert scorer.weights["usage_frequency"] == 0.25

    with pytest.raises(ValueError):
        scorer.set_weights({"popularity": 1.0})

    weights = scorer.weights
    weights["staleness"] = 99
    assert scorer.weights["staleness"] == 0.5


def test_overall_is_clamped(scorer):
    scorer.set_weights({name: 1.0 for name in scorer.weights})
    snapshot = _snapshot([], [_doc(100)])
    result = _result([_delta("calculate", impact="breaking")], snapshot)

    score = scorer.score_sync(result, snapshot)

    assert 0 <= score.overall <= 100
    assert score.overall == 100


def test_sync_feedback_callable(scorer):
    snapshot = _snapshot([], [])
    result = _result([_delta("calculate")], snapshot)

    scorer.feedback = lambda r: 70
    assert scorer.score_sync(result, snapshot).factors.user_feedback == 70

    scorer.feedback = lambda r: 250
    assert scorer.score_sync(result, snapshot).factors.user_feedback == 100


def test_failing_feedback_counts_as_zero(scorer):
    def broken(result):
        raise ConnectionError("tracker down")

    scorer.feedback = broken
    snapshot = _snapshot([], [])
    result = _result([_delta("calculate")], snapshot)

    assert scorer.score_sync(result, snapshot).factors.user_feedback == 0


@pytest.mark.asyncio
async def test_async_feedback(scorer):
    async def feedback(result):
        return 60

    scorer.feedback = feedback
    snapshot = _snapshot([], [])
    result = _result([_delta("calculate")], snapshot)

    assert (await scorer.score_async(result, snapshot)).factors.user_feedback == 60
    assert scorer.score_sync(result, snapshot).factors.user_feedback == 0


@pytest.mark.parametrize("value", [float("nan"), float("inf"), None, "high"])
def test_invalid_feedback_values_count_as_zero(scorer, value):
    scorer.feedback = lambda r: value
    snapshot = _snapshot([], [])
    result = _result([_delta("calculate")], snapshot)

    score = scorer.score_sync(result, snapshot)

    assert score.factors.user_feedback == 0
    assert 0 <= score.overall <= 100


@pytest.mark.asyncio
@pytest.mark.parametrize("value", [float("nan"), None])
async def test_invalid_async_feedback_values_count_as_zero(scorer, value):
    async def feedback(result):
        return value

    scorer.feedback = feedback
    snapshot = _snapshot([], [])
    result = _result([_delta("calculate")], snapshot)

    assert (await scorer.score_async(result, snapshot)).factors.user_feedback == 0


def test_numeric_string_feedback_is_accepted(scorer):
    scorer.feedback = lambda r: "42.4"
    snapshot = _snapshot([], [])
    result = _result([_delta("calculate")], snapshot)

    assert scorer.score_sync(result, snapshot).factors.user_feedback == 42
