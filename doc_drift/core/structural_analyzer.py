"""
Structural analysis of source files into FileModel records.
"""

from __future__ import annotations

import asyncio
import logging
import threading
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Iterable, Optional, Union

from tree_sitter import Tree

from .config import DEFAULT_SOURCE_EXTENSIONS
from .models import FileModel
from .treesitter import get_adapter, language_for_path, parse_source
from .utils import hash_content


@dataclass
class ParsedFile:
    """A structural model together with the syntax tree it was extracted from."""
    path: Path
    language: str
    source: str
    tree: Tree
    model: FileModel


class StructuralAnalyzer:
    """Extracts language-independent structural models from source files."""

    def __init__(
        self,
        project_root: Optional[Union[str, Path]] = None,
        source_extensions: Optional[Iterable[str]] = None,
        enable_performance_monitoring: bool = True,
    ):
        self.project_root = Path(project_root).resolve() if project_root else None
        self.source_extensions = {ext.lower() for ext in (source_extensions or DEFAULT_SOURCE_EXTENSIONS)}
        self.enable_performance_monitoring = enable_performance_monitoring
        self.performance_metrics = {
            "total_files": 0,
            "failed_files": 0,
            "total_symbols": 0,
            "processing_time": 0.0,
            "parse_time": 0.0,
            "io_time": 0.0,
        }
        self._metrics_lock = threading.Lock()

    def supports(self, file_path: Union[str, Path]) -> bool:
        path = Path(file_path)
        return path.suffix.lower() in self.source_extensions and language_for_path(path) is not None

    def display_path(self, file_path: Path) -> str:
        """Snapshot key for a file: POSIX path relative to the project root when inside it."""
        resolved = file_path.resolve()
        if self.project_root:
            try:
                return resolved.relative_to(self.project_root).as_posix()
            except ValueError:
                pass
        return resolved.as_posix()

    def analyze_file(self, file_path: Union[str, Path]) -> Optional[FileModel]:
        """
        Build the structural model of one file.

        Returns None (and logs) for unsupported, unreadable or undecodable
        files; never raises on unusual input.
        """
        parsed = self.parse_file(file_path)
        return parsed.model if parsed else None

    async def analyze_file_async(self, file_path: Union[str, Path]) -> Optional[FileModel]:
        return await asyncio.to_thread(self.analyze_file, file_path)

    def parse_file(self, file_path: Union[str, Path]) -> Optional[ParsedFile]:
        path = Path(file_path)
        language = language_for_path(path)
        if language is None or not self.supports(path):
            logging.info(f"Skipping unsupported file: {path}")
            return None

        start_time = time.time()
        try:
            io_start = time.time()
            source = path.read_text(encoding="utf-8")
            io_time = time.time() - io_start
        except (OSError, UnicodeDecodeError) as e:
            self._record_failure()
            logging.warning(f"Could not read {path}: {e}")
            return None

        try:
            parse_start = time.time()
            tree = parse_source(source, language)
            parse_time = time.time() - parse_start
            model = get_adapter(language).extract_file_model(
                tree, source, self.display_path(path), hash_content(source), language
            )
        except Exception as e:
            self._record_failure()
            logging.warning(f"Error processing {path}: {e}")
            return None

        if self.enable_performance_monitoring:
            with self._metrics_lock:
                self.performance_metrics["total_files"] += 1
                self.performance_metrics["total_symbols"] += len(model.all_symbols())
                self.performance_metrics["processing_time"] += time.time() - start_time
                self.performance_metrics["parse_time"] += parse_time
                self.performance_metrics["io_time"] += io_time

        return ParsedFile(path=path.resolve(), language=language, source=source, tree=tree, model=model)

    def _record_failure(self) -> None:
        if self.enable_performance_monitoring:
            with self._metrics_lock:
                self.performance_metrics["total_files"] += 1
                self.performance_metrics["failed_files"] += 1
