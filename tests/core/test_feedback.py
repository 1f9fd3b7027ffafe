import pytest
import requests

from doc_drift.core.config import IssueTrackerConfig
from doc_drift.core.feedback import (
    DocumentationIssue,
    IssueTrackerFeedback,
    parse_github_issues,
    score_issues,
    severity_from_labels,
)
from doc_drift.core.models import CodeDelta, DriftDetectionResult, DriftRecord
from doc_drift.core.utils import utc_now_iso


class FakeResponse:
    def __init__(self, payload, status_code=200):
        self.payload = payload
        self.status_code = status_code

    def json(self):
        return self.payload

    def raise_for_status(self):
        if self.status_code >= 400:
            raise requests.HTTPError(f"{self.status_code} error")


class FakeSession:
    def __init__(self, response):
        self.response = response
        self.calls = []

    def get(self, url, headers=None, params=None, timeout=None):
        self.calls.append({"url": url, "headers": headers, "params": params, "timeout": timeout})
        return self.response


def _payload():
    return [
        {
            "number": 1,
            "title": "Docs for `calculate` are wrong",
            "body": "See `src/math.ts` for the current signature.",
            "state": "open",
            "labels": [{"name": "documentation"}, {"name": "critical"}],
            "updated_at": utc_now_iso(),
        },
        {"number": 2, "title": "Fix docs", "body": "", "state": "open", "labels": [], "pull_request": {"url": "x"}},
        {"number": 3, "title": "Crash on startup", "body": "nothing", "state": "open", "labels": [{"name": "bug"}]},
        {
            "number": 4,
            "title": "Old report",
            "body": "function: `calculate` behaves oddly",
            "state": "closed",
            "labels": [{"name": "docs"}],
            "updated_at": "2020-01-01T00:00:00Z",
        },
    ]


def _result(name="calculate", file_path="src/math.ts"):
    delta = CodeDelta(change_type="removed", category="function", name=name, details="removed", impact_level="breaking")
    record = DriftRecord(
        drift_type="breaking",
        affected_docs=[],
        code_changes=[delta],
        description="removed",
        detected_at="2024-01-01T00:00:00Z",
        severity="critical",
    )
    return DriftDetectionResult(file_path=file_path, has_drift=True, severity="critical", drifts=[record])


@pytest.fixture
def config():
    return IssueTrackerConfig(owner="acme", repo="calc", token="abc")


def test_parse_github_issues_skips_pull_requests():
    issues = parse_github_issues(_payload())

    assert [issue.number for issue in issues] == [1, 3, 4]
    first = issues[0]
    assert first.affected_files == ["src/math.ts"]
    assert first.affected_symbols == ["calculate"]
    assert first.severity == "critical"
    assert issues[2].state == "closed"


def test_severity_from_labels():
    assert severity_from_labels(["P1"]) == "high"
    assert severity_from_labels(["Priority: Medium"]) == "medium"
    assert severity_from_labels(["enhancement"]) == "low"


def test_score_issues_counts_relevant_issues():
    issues = parse_github_issues(_payload())

    assert score_issues(issues, _result()) == 35
    assert score_issues(issues, _result(name="unrelated", file_path="src/other.ts")) == 0


def test_score_issues_is_capped():
    issues = [
        DocumentationIssue(number=i, title="", body="", state="open", affected_files=["src/math.ts"], severity="critical")
        for i in range(5)
    ]

    assert score_issues(issues, _result()) == 100


@pytest.mark.asyncio
async def test_feedback_fetches_filters_and_caches(config):
    session = FakeSession(FakeResponse(_payload()))
    feedback = IssueTrackerFeedback(config, session=session)

    assert await feedback(_result()) == 35.0
    assert await feedback(_result()) == 35.0

    assert len(session.calls) == 1
    call = session.calls[0]
    assert call["url"] == "https://api.github.com/repos/acme/calc/issues"
    assert call["headers"]["Authorization"] == "token abc"
    assert call["timeout"] == config.request_timeout
    assert [issue.number for issue in feedback.get_issues("src/math.ts")] == [1, 4]


@pytest.mark.asyncio
async def test_http_errors_score_zero(config):
    feedback = IssueTrackerFeedback(config, session=FakeSession(FakeResponse([], status_code=502)))

    assert await feedback(_result()) == 0.0


@pytest.mark.asyncio
async def test_unsupported_provider_scores_zero():
    config = IssueTrackerConfig(provider="jira", owner="acme", repo="calc")
    session = FakeSession(FakeResponse(_payload()))

    assert await IssueTrackerFeedback(config, session=session)(_result()) == 0.0
    assert session.calls == []
