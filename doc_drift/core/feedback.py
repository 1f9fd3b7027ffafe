"""
User feedback integrations for priority scoring.

A feedback integration is any callable taking a DriftDetectionResult and
returning a 0-100 score, either directly or as an awaitable.
"""

from __future__ import annotations

import asyncio
import logging
import re
import time
from dataclasses import dataclass, field
from datetime import timedelta
from typing import Any, Awaitable, Callable, Dict, List, Optional, Set, Tuple, Union

import requests

from .config import IssueTrackerConfig
from .models import DriftDetectionResult, Severity
from .utils import parse_iso, utc_now

FeedbackCallable = Callable[[DriftDetectionResult], Union[float, Awaitable[float]]]

FILE_REFERENCE_PATTERNS = [
    re.compile(r"`([^`\s]+\.(?:py|rs|ts|tsx|js|jsx|mjs|md|mdx))`"),
    re.compile(r"\[([^\]\s]+\.(?:py|rs|ts|tsx|js|jsx|mjs|md|mdx))\]"),
    re.compile(r"(?:file|path|location):\s*([^\s]+\.(?:py|rs|ts|tsx|js|jsx|mjs|md|mdx))", re.IGNORECASE),
]
SYMBOL_REFERENCE_PATTERNS = [
    re.compile(r"`([A-Za-z_][A-Za-z0-9_.]*)(?:\(\))?`"),
    re.compile(r"(?:function|class|method|API):\s*`?([A-Za-z_][A-Za-z0-9_.]*)`?", re.IGNORECASE),
]
SEVERITY_LABELS: List[Tuple[Severity, Set[str]]] = [
    ("critical", {"critical", "p0", "severity: critical", "priority: critical"}),
    ("high", {"high", "p1", "severity: high", "priority: high"}),
    ("medium", {"medium", "p2", "severity: medium", "priority: medium"}),
]
RECENT_DAYS = 30


@dataclass
class DocumentationIssue:
    number: int
    title: str
    body: str
    state: str  # open | closed
    labels: List[str] = field(default_factory=list)
    updated_at: str = ""
    affected_files: List[str] = field(default_factory=list)
    affected_symbols: List[str] = field(default_factory=list)
    severity: Severity = "low"


def _unique_matches(patterns: List[re.Pattern], text: str) -> List[str]:
    found: List[str] = []
    for pattern in patterns:
        for match in pattern.finditer(text):
            if match.group(1) not in found:
                found.append(match.group(1))
    return found


def severity_from_labels(labels: List[str]) -> Severity:
    lowered = {label.lower() for label in labels}
    for severity, names in SEVERITY_LABELS:
        if lowered & names:
            return severity
    return "low"


def parse_github_issues(data: List[Dict[str, Any]]) -> List[DocumentationIssue]:
    """Convert a GitHub issues API payload, dropping pull requests."""
    issues = []
    for item in data:
        if item.get("pull_request"):
            continue
        body = item.get("body") or ""
        labels = [label.get("name", "") if isinstance(label, dict) else str(label) for label in item.get("labels", [])]
        issues.append(
            DocumentationIssue(
                number=item.get("number", 0),
                title=item.get("title", ""),
                body=body,
                state="open" if item.get("state") == "open" else "closed",
                labels=labels,
                updated_at=item.get("updated_at", ""),
                affected_files=_unique_matches(FILE_REFERENCE_PATTERNS, f"{item.get('title', '')}\n{body}"),
                affected_symbols=_unique_matches(SYMBOL_REFERENCE_PATTERNS, f"{item.get('title', '')}\n{body}"),
                severity=severity_from_labels(labels),
            )
        )
    return issues


def score_issues(issues: List[DocumentationIssue], result: DriftDetectionResult) -> int:
    """
    Score the issues relevant to ``result``.

    An issue is relevant when it mentions the source file or one of the
    changed symbols. Each relevant open issue is worth 10 points, plus 20 if
    labelled critical or 10 if labelled high; any relevant issue updated in
    the last 30 days adds 5. The total is capped at 100.
    """
    symbols: Set[str] = set()
    for record in result.drifts:
        for delta in record.code_changes:
            symbols.add(delta.name)
            symbols.add(delta.name.rsplit(".", 1)[-1])

    cutoff = utc_now() - timedelta(days=RECENT_DAYS)
    score = 0
    for issue in issues:
        mentions_file = any(
            result.file_path.endswith(reference) or reference.endswith(result.file_path)
            for reference in issue.affected_files
        )
        if not mentions_file and not symbols.intersection(issue.affected_symbols):
            continue
        if issue.state == "open":
            score += 10
            if issue.severity == "critical":
                score += 20
            elif issue.severity == "high":
                score += 10
        updated = parse_iso(issue.updated_at)
        if updated is not None and updated > cutoff:
            score += 5
    return min(100, score)


class IssueTrackerFeedback:
    """
    Feedback integration backed by documentation issues in an issue tracker.

    Only GitHub is implemented; other providers score 0. Issue lists are
    cached per source file for ``cache_seconds``.
    """

    def __init__(self, config: IssueTrackerConfig, session: Optional[requests.Session] = None):
        self.config = config
        self.session = session or requests.Session()
        self._cache: Dict[str, Tuple[float, List[DocumentationIssue]]] = {}

    async def __call__(self, result: DriftDetectionResult) -> float:
        try:
            issues = await asyncio.to_thread(self.get_issues, result.file_path)
            return float(score_issues(issues, result))
        except Exception as e:
            logging.warning(f"Failed to fetch user feedback for {result.file_path}: {e}")
            return 0.0

    def clear_cache(self) -> None:
        self._cache.clear()

    def get_issues(self, file_path: str) -> List[DocumentationIssue]:
        cached = self._cache.get(file_path)
        if cached and time.monotonic() - cached[0] < self.config.cache_seconds:
            return cached[1]

        if self.config.provider == "github":
            issues = self.fetch_github_issues()
        else:
            logging.info(f"Issue tracker provider '{self.config.provider}' is not supported, ignoring feedback")
            issues = []
        self._cache[file_path] = (time.monotonic(), issues)
        return issues

    def fetch_github_issues(self) -> List[DocumentationIssue]:
        url = f"{self.config.api_url.rstrip('/')}/repos/{self.config.owner}/{self.config.repo}/issues"
        headers = {"Accept": "application/vnd.github.v3+json", "User-Agent": "doc-drift"}
        if self.config.token:
            headers["Authorization"] = f"token {self.config.token}"
        # the labels query parameter requires every label, so filter locally for any of them
        params = {"state": "all", "per_page": 100}

        response = self.session.get(url, headers=headers, params=params, timeout=self.config.request_timeout)
        response.raise_for_status()
        wanted = {label.lower() for label in self.config.labels}
        return [
            issue
            for issue in parse_github_issues(response.json())
            if wanted.intersection(label.lower() for label in issue.labels) or issue.affected_files
        ]
