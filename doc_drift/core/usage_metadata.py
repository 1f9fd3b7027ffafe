"""
Usage metadata collection.

Counts how often project symbols are called, instantiated, imported and
referenced from documentation. The graph-based strategy walks call graphs of
the most referenced exported functions; the heuristic strategy only looks at
import statements and documentation references. Both return the same shape.
"""

from __future__ import annotations

import asyncio
import logging
from collections import Counter
from pathlib import Path
from typing import Dict, List, Optional, Set

from .call_graph_builder import CallGraph, CallGraphBuilder, CallGraphOptions
from .config import DEFAULT_ANALYSIS_CONCURRENCY, DEFAULT_USAGE_GRAPH_DEPTH, DEFAULT_USAGE_MAX_SYMBOLS
from .models import Snapshot, SymbolInfo, UsageMetadata


class _SymbolIndex:
    """Exported names, functions and classes declared across a snapshot."""

    def __init__(self, snapshot: Snapshot):
        self.exported: Set[str] = set()
        self.functions: Dict[str, SymbolInfo] = {}
        self.classes: Dict[str, SymbolInfo] = {}
        for model in snapshot.files.values():
            self.exported.update(model.exports)
            for function in model.functions:
                self.functions.setdefault(function.qualified_name, function)
            for cls in model.classes:
                self.classes.setdefault(cls.name, cls)


def _imported_names(snapshot: Snapshot) -> List[str]:
    names = []
    for model in snapshot.files.values():
        for info in model.imports:
            for imported in info.names:
                if imported.local_name != "*":
                    names.append(imported.local_name)
    return names


def _add_doc_references(snapshot: Snapshot, function_calls: Counter, class_instantiations: Counter) -> None:
    for doc in snapshot.documentation.values():
        for section in doc.sections:
            function_calls.update(section.referenced_functions)
            class_instantiations.update(section.referenced_classes)


def _to_metadata(snapshot: Snapshot, function_calls: Counter, class_instantiations: Counter, imports: Counter) -> UsageMetadata:
    return UsageMetadata(
        file_path=snapshot.project_root,
        function_calls=dict(function_calls),
        class_instantiations=dict(class_instantiations),
        imports=dict(imports),
    )


class UsageMetadataCollector:
    """Builds UsageMetadata from snapshot artifacts for priority scoring."""

    def __init__(
        self,
        graph_builder: Optional[CallGraphBuilder] = None,
        max_symbols: int = DEFAULT_USAGE_MAX_SYMBOLS,
        graph_depth: int = DEFAULT_USAGE_GRAPH_DEPTH,
        concurrency: int = DEFAULT_ANALYSIS_CONCURRENCY,
    ):
        self.graph_builder = graph_builder
        self.max_symbols = max_symbols
        self.graph_depth = graph_depth
        self.concurrency = max(1, concurrency)

    async def collect(self, snapshot: Snapshot) -> UsageMetadata:
        """
        Graph-based collection.

        Call graphs are built for the most referenced exported functions
        (capped at ``max_symbols``); a failing graph contributes nothing.
        """
        builder = self.graph_builder
        if builder is None:
            root = Path(snapshot.project_root)
            if not root.is_dir():
                logging.info(f"Project root {root} unavailable, using heuristic usage metadata")
                return self.collect_heuristic(snapshot)
            builder = CallGraphBuilder(root)

        index = _SymbolIndex(snapshot)
        imported = _imported_names(snapshot)
        function_calls: Counter = Counter()
        class_instantiations: Counter = Counter()
        imports: Counter = Counter(imported)

        options = CallGraphOptions(
            max_depth=self.graph_depth,
            resolve_imports=True,
            extract_conditionals=False,
            track_exceptions=False,
        )
        semaphore = asyncio.Semaphore(self.concurrency)

        async def build(symbol: SymbolInfo) -> Optional[CallGraph]:
            async with semaphore:
                try:
                    return await builder.build_call_graph_async(symbol.qualified_name, symbol.file_path, options)
                except Exception as e:
                    logging.warning(f"Call graph for {symbol.qualified_name} failed: {e}")
                    return None

        targets = self.rank_exported_functions(snapshot, index, imports)
        graphs = await asyncio.gather(*(build(symbol) for symbol in targets))
        for graph in graphs:
            if graph is None:
                continue
            for node in graph.nodes:
                if not node.is_external:
                    function_calls[node.name] += 1

        for name in imported:
            if name not in index.exported:
                continue
            if name in index.classes:
                class_instantiations[name] += 1
            elif name in index.functions and name not in function_calls:
                function_calls[name] += 1

        for function in index.functions.values():
            for dependency in function.dependencies:
                if dependency in index.classes:
                    class_instantiations[dependency] += 1

        _add_doc_references(snapshot, function_calls, class_instantiations)
        logging.info(f"Collected usage metadata from {len(targets)} call graphs")
        return _to_metadata(snapshot, function_calls, class_instantiations, imports)

    def rank_exported_functions(self, snapshot: Snapshot, index: _SymbolIndex, imports: Counter) -> List[SymbolInfo]:
        """Exported functions ordered by import and documentation references, ties by name."""
        doc_refs: Counter = Counter()
        for doc in snapshot.documentation.values():
            for section in doc.sections:
                doc_refs.update(section.referenced_functions)

        candidates = [symbol for symbol in index.functions.values() if symbol.is_exported]
        candidates.sort(
            key=lambda s: (-(imports[s.name] + doc_refs[s.name] + doc_refs[s.qualified_name]), s.qualified_name)
        )
        return candidates[: self.max_symbols]

    def collect_heuristic(self, snapshot: Snapshot) -> UsageMetadata:
        """Import and documentation-reference counts only, without call graphs."""
        index = _SymbolIndex(snapshot)
        imported = _imported_names(snapshot)
        function_calls: Counter = Counter()
        class_instantiations: Counter = Counter()
        imports: Counter = Counter(imported)

        for name in imported:
            is_class = name in index.classes
            is_function = name in index.functions
            if name in index.exported or is_class or is_function:
                if is_class:
                    class_instantiations[name] += 1
                else:
                    function_calls[name] += 1

        _add_doc_references(snapshot, function_calls, class_instantiations)
        return _to_metadata(snapshot, function_calls, class_instantiations, imports)


async def collect_usage_metadata(
    snapshot: Snapshot,
    graph_builder: Optional[CallGraphBuilder] = None,
    **collector_options,
) -> UsageMetadata:
    """Graph-based usage metadata, or the heuristic when no graph builder is available."""
    collector = UsageMetadataCollector(graph_builder, **collector_options)
    if graph_builder is None:
        return collector.collect_heuristic(snapshot)
    return await collector.collect(snapshot)
