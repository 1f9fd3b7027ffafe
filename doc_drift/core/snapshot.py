"""
Project snapshots: creation, persistence and retrieval.

A snapshot is the structural model of every source file plus the parsed
model of every documentation file at one instant. Snapshots are written
as single JSON documents into an append-only directory and are compared,
never merged.
"""

from __future__ import annotations

import asyncio
import logging
import os
import re
from pathlib import Path
from typing import Callable, Iterable, List, Optional, Tuple, Union

from pydantic import TypeAdapter, ValidationError
from tqdm import tqdm

from .config import (
    DEFAULT_ANALYSIS_CONCURRENCY,
    DEFAULT_DOC_EXTENSIONS,
    DEFAULT_IGNORED_DIRS,
    DEFAULT_SOURCE_EXTENSIONS,
)
from .doc_parser import DocumentationParser
from .errors import ProjectRootNotFoundError
from .models import DocumentationModel, FileModel, Snapshot
from .structural_analyzer import StructuralAnalyzer
from .utils import get_gitignore_patterns, match_file_against_pattern, parse_iso, utc_now_iso

SNAPSHOT_ADAPTER = TypeAdapter(Snapshot)
SNAPSHOT_NAME_RE = re.compile(r"^snapshot-(?P<stamp>.+?)(?:_(?P<counter>\d+))?\.json$")


def serialize_snapshot(snapshot: Snapshot) -> str:
    return SNAPSHOT_ADAPTER.dump_json(snapshot, indent=2).decode("utf-8")


def deserialize_snapshot(data: Union[str, bytes]) -> Snapshot:
    return SNAPSHOT_ADAPTER.validate_json(data)


def snapshot_file_stem(timestamp: str) -> str:
    """File-name stamp whose lexicographic order follows chronological order."""
    moment = parse_iso(timestamp)
    if moment is None:
        return timestamp.replace(":", "-")
    return moment.strftime("%Y-%m-%dT%H-%M-%S.%fZ")


def _snapshot_sort_key(path: Path) -> Tuple[str, int]:
    match = SNAPSHOT_NAME_RE.match(path.name)
    if not match:
        return path.name, 0
    return match.group("stamp"), int(match.group("counter") or 0)


class SnapshotManager:
    """Creates project snapshots and stores them under ``snapshot_dir``."""

    def __init__(
        self,
        snapshot_dir: Union[str, Path],
        analyzer: Optional[StructuralAnalyzer] = None,
        doc_parser: Optional[DocumentationParser] = None,
        concurrency: int = DEFAULT_ANALYSIS_CONCURRENCY,
        source_extensions: Optional[Iterable[str]] = None,
        doc_extensions: Optional[Iterable[str]] = None,
        ignored_dirs: Optional[Iterable[str]] = None,
        ignored_patterns: Optional[Iterable[str]] = None,
        show_progress: bool = False,
    ):
        self.snapshot_dir = Path(snapshot_dir)
        self.analyzer = analyzer
        self.doc_parser = doc_parser or DocumentationParser()
        self.concurrency = max(1, concurrency)
        self.source_extensions = {ext.lower() for ext in (source_extensions or DEFAULT_SOURCE_EXTENSIONS)}
        self.doc_extensions = {ext.lower() for ext in (doc_extensions or DEFAULT_DOC_EXTENSIONS)}
        self.ignored_dirs = set(ignored_dirs or DEFAULT_IGNORED_DIRS)
        self.ignored_patterns = list(ignored_patterns or [])
        self.show_progress = show_progress

    # --- Creation ---

    async def create_snapshot(
        self,
        project_root: Union[str, Path],
        docs_root: Optional[Union[str, Path]] = None,
    ) -> Snapshot:
        """
        Analyze every source and documentation file under the given roots.

        Per-file failures are logged and leave the file out of the snapshot.

        Raises:
            ProjectRootNotFoundError: If ``project_root`` is not an existing directory.
        """
        root = Path(project_root).resolve()
        if not root.is_dir():
            raise ProjectRootNotFoundError(str(project_root))
        docs = Path(docs_root).resolve() if docs_root else root

        analyzer = self._analyzer_for(root)
        source_files = self.discover_files(root, self.source_extensions, root)
        if docs.is_dir():
            doc_files = self.discover_files(docs, self.doc_extensions, root)
        else:
            logging.warning(f"Documentation root not found, skipping docs: {docs}")
            doc_files = []
        logging.info(f"Snapshotting {len(source_files)} source files and {len(doc_files)} docs under {root}")

        semaphore = asyncio.Semaphore(self.concurrency)
        with tqdm(total=len(source_files) + len(doc_files), desc="Analyzing project", disable=not self.show_progress) as pbar:

            async def run(func: Callable, *args):
                async with semaphore:
                    try:
                        return await asyncio.to_thread(func, *args)
                    finally:
                        pbar.update(1)

            tasks = [run(analyzer.analyze_file, path) for path in source_files]
            tasks += [run(self.doc_parser.parse, path, analyzer.display_path(path)) for path in doc_files]
            results = await asyncio.gather(*tasks, return_exceptions=True)

        files = {}
        documentation = {}
        for path, result in zip([*source_files, *doc_files], results):
            if isinstance(result, BaseException):
                logging.error(f"Failed to analyze {path}: {result}")
            elif isinstance(result, FileModel):
                files[result.file_path] = result
            elif isinstance(result, DocumentationModel):
                documentation[result.file_path] = result

        return Snapshot(
            project_root=root.as_posix(),
            timestamp=utc_now_iso(),
            files=dict(sorted(files.items())),
            documentation=dict(sorted(documentation.items())),
        )

    def discover_files(self, directory: Path, extensions: Iterable[str], root: Optional[Path] = None) -> List[Path]:
        """Files under ``directory`` with an allowed extension, minus ignored dirs and patterns."""
        root = root or directory
        allowed = {ext.lower() for ext in extensions}
        patterns = get_gitignore_patterns(root) + [(pattern, root) for pattern in self.ignored_patterns]

        def on_error(error: OSError) -> None:
            logging.warning(f"Skipping unreadable directory {error.filename}: {error}")

        found: List[Path] = []
        for current, dirnames, filenames in os.walk(directory, onerror=on_error):
            dirnames[:] = sorted(d for d in dirnames if d not in self.ignored_dirs)
            for filename in sorted(filenames):
                path = Path(current) / filename
                if path.suffix.lower() not in allowed:
                    continue
                if any(match_file_against_pattern(path, pattern, base) for pattern, base in patterns):
                    continue
                found.append(path)
        return found

    def _analyzer_for(self, root: Path) -> StructuralAnalyzer:
        if self.analyzer is None or self.analyzer.project_root != root:
            self.analyzer = StructuralAnalyzer(project_root=root, source_extensions=self.source_extensions)
        return self.analyzer

    # --- Persistence ---

    def save_snapshot(self, snapshot: Snapshot) -> Path:
        """Write ``snapshot`` to a new file; existing snapshots are never overwritten."""
        self.snapshot_dir.mkdir(parents=True, exist_ok=True)
        stem = f"snapshot-{snapshot_file_stem(snapshot.timestamp)}"
        data = serialize_snapshot(snapshot)
        counter = 0
        while True:
            name = f"{stem}.json" if counter == 0 else f"{stem}_{counter}.json"
            path = self.snapshot_dir / name
            try:
                with open(path, "x", encoding="utf-8") as f:
                    f.write(data)
            except FileExistsError:
                counter += 1
                continue
            logging.info(f"Saved snapshot to {path}")
            return path

    def list_snapshots(self) -> List[Path]:
        """Snapshot files, oldest first."""
        if not self.snapshot_dir.is_dir():
            return []
        return sorted(self.snapshot_dir.glob("snapshot-*.json"), key=_snapshot_sort_key)

    def load_snapshot(self, path: Union[str, Path]) -> Optional[Snapshot]:
        try:
            return deserialize_snapshot(Path(path).read_bytes())
        except (OSError, ValidationError, ValueError) as e:
            logging.warning(f"Could not load snapshot {path}: {e}")
            return None

    def load_latest_snapshot(self) -> Optional[Snapshot]:
        """The newest stored snapshot, or None when none exists or it cannot be read."""
        snapshots = self.list_snapshots()
        if not snapshots:
            logging.info(f"No snapshots found in {self.snapshot_dir}")
            return None
        return self.load_snapshot(snapshots[-1])
