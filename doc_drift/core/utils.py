"""
Shared utility functions for drift analysis.

Pure helpers for content hashing, timestamps, identifier heuristics and
gitignore-style path matching used by the analyzer, the snapshot manager
and the watcher.
"""

import fnmatch
import hashlib
from datetime import datetime, timezone
from pathlib import Path
from typing import Iterable, List, Optional, Tuple


# --- Hashing ---

def hash_content(content: str) -> str:
    """SHA-256 hex digest of a text document."""
    return hashlib.sha256(content.encode("utf-8")).hexdigest()


def hash_source_snippet(source_lines: List[str], start_line: int, end_line: int) -> str:
    """
    Generates an MD5 hash of the stripped source code snippet.

    Args:
        source_lines: List of source code lines
        start_line: Starting line number (1-based)
        end_line: Ending line number (1-based)

    Returns:
        MD5 hash string of the source snippet, empty string if invalid range
    """
    if not source_lines or start_line > end_line:
        return ""

    start_idx = max(0, start_line - 1)
    end_idx = min(len(source_lines), end_line)

    snippet_lines = source_lines[start_idx:end_idx]
    stripped_source = "\n".join(line.strip() for line in snippet_lines if line.strip())
    return hashlib.md5(stripped_source.encode('utf-8')).hexdigest()


def count_code_lines(source: str, comment_prefixes: Tuple[str, ...] = ("#", "//")) -> int:
    """Number of non-blank lines that are not line comments."""
    count = 0
    for line in source.splitlines():
        stripped = line.strip()
        if stripped and not stripped.startswith(comment_prefixes):
            count += 1
    return count


# --- Timestamps ---

def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def to_iso(moment: datetime) -> str:
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    return moment.astimezone(timezone.utc).isoformat().replace("+00:00", "Z")


def utc_now_iso() -> str:
    return to_iso(utc_now())


def parse_iso(value: Optional[str]) -> Optional[datetime]:
    """Parse an ISO-8601 timestamp, returning None for empty or malformed input."""
    if not value:
        return None
    text = value.strip()
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    try:
        parsed = datetime.fromisoformat(text)
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


# --- Identifier heuristics ---

def looks_like_class_name(name: str) -> bool:
    """Upper-case first letter means class or type, lower-case means function."""
    stripped = name.lstrip("_")
    return bool(stripped) and stripped[0].isupper()


def unique_sorted(values: Iterable[str]) -> List[str]:
    return sorted(set(values))


# --- Ignore patterns ---

def get_gitignore_patterns(directory: Path) -> List[Tuple[str, Path]]:
    """
    Collect patterns from the .gitignore at the root of ``directory``.

    Returns:
        List of (pattern, gitignore_directory) tuples
    """
    patterns_with_dirs: List[Tuple[str, Path]] = []
    gitignore_path = directory / ".gitignore"
    if gitignore_path.exists() and gitignore_path.is_file():
        with open(gitignore_path, "r", encoding="utf-8") as f:
            for line in f:
                line = line.strip()
                if line and not line.startswith(("#", "!")):
                    patterns_with_dirs.append((line, directory))
    return patterns_with_dirs


def _normalize_path(path_str: str) -> str:
    normalized = path_str.replace("\\", "/")
    while normalized.startswith("./"):
        normalized = normalized[2:]
    return normalized


def match_file_against_pattern(file_path: Path, pattern: str, root_directory: Path) -> bool:
    """
    Match a file path against a gitignore-style pattern relative to ``root_directory``.

    Directory patterns (trailing ``/``) match any path segment, root-relative
    patterns (leading ``/``) match only from the root, and bare names match
    any segment of the path.
    """
    pattern = pattern.strip().replace("\\", "/")
    if not pattern:
        return False

    is_root_relative = pattern.startswith("/")
    if is_root_relative:
        pattern = pattern[1:]

    try:
        rel_str = _normalize_path(str(file_path.relative_to(root_directory)))
    except ValueError:
        return False
    segments = rel_str.split("/")

    if pattern.endswith("/"):
        dir_pattern = _normalize_path(pattern[:-1])
        if not dir_pattern:
            return False
        if is_root_relative or "/" in dir_pattern:
            return rel_str == dir_pattern or rel_str.startswith(dir_pattern + "/")
        return any(fnmatch.fnmatch(part, dir_pattern) for part in segments[:-1])

    if fnmatch.fnmatch(rel_str, pattern):
        return True
    if is_root_relative:
        return rel_str.startswith(pattern + "/")
    if "/" not in pattern:
        return any(fnmatch.fnmatch(part, pattern) for part in segments)
    return False


def is_in_ignored_dir(file_path: Path, root_directory: Path, ignored_dirs: Iterable[str]) -> bool:
    try:
        parts = file_path.relative_to(root_directory).parts
    except ValueError:
        parts = file_path.parts
    ignored = set(ignored_dirs)
    return any(part in ignored for part in parts[:-1])
