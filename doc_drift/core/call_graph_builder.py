"""
Per-symbol call graph construction.

Starting from one function, the builder follows call sites to local
definitions and, optionally, through imports into other project files.
Graphs are stored in arena form: nodes live in one list and refer to their
children by index, so cyclic call structures never produce cyclic objects.
"""

from __future__ import annotations

import asyncio
import dataclasses
import logging
import threading
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional, Set, Tuple, Union

from tree_sitter import Node

from .config import DEFAULT_IGNORED_DIRS, DEFAULT_MAX_GRAPH_DEPTH
from .models import CallSite, ConditionalBranch, Edge, ExceptionPath, SymbolInfo
from .structural_analyzer import ParsedFile, StructuralAnalyzer
from .treesitter import get_adapter
from .utils import is_in_ignored_dir

RECEIVER_NAMES = {"self", "this", "cls"}


@dataclass
class CallGraphOptions:
    max_depth: int = DEFAULT_MAX_GRAPH_DEPTH
    resolve_imports: bool = True
    extract_conditionals: bool = True
    track_exceptions: bool = True


@dataclass
class CallGraphNode:
    """One visited function (or class) in a call graph."""
    symbol: SymbolInfo
    file_path: str
    line: int
    depth: int
    calls: List[int] = field(default_factory=list)  # child node indices
    conditional_branches: List[ConditionalBranch] = field(default_factory=list)
    exception_paths: List[ExceptionPath] = field(default_factory=list)
    truncated: bool = False
    is_external: bool = False

    @property
    def name(self) -> str:
        return self.symbol.qualified_name


@dataclass
class UnresolvedCall:
    name: str
    file_path: str
    line: int


@dataclass
class CircularReference:
    caller: str
    callee: str
    file_path: str


@dataclass
class CallGraph:
    entry_point: str
    root: int = 0
    nodes: List[CallGraphNode] = field(default_factory=list)
    edges: List[Edge] = field(default_factory=list)
    max_depth_reached: int = 0
    analyzed_files: List[str] = field(default_factory=list)
    circular_references: List[CircularReference] = field(default_factory=list)
    unresolved_calls: List[UnresolvedCall] = field(default_factory=list)
    build_time: float = 0.0  # seconds

    @property
    def root_node(self) -> CallGraphNode:
        return self.nodes[self.root]

    def children(self, index: int) -> List[CallGraphNode]:
        return [self.nodes[child] for child in self.nodes[index].calls]

    def all_functions(self) -> Dict[str, SymbolInfo]:
        return {node.name: node.symbol for node in self.nodes}

    def to_dict(self) -> Dict[str, Any]:
        return dataclasses.asdict(self)


ResolvedSymbol = Tuple[ParsedFile, SymbolInfo, Node]


class CallGraphBuilder:
    """Builds call graphs rooted at a named symbol."""

    def __init__(self, project_root: Union[str, Path], analyzer: Optional[StructuralAnalyzer] = None):
        self.project_root = Path(project_root).resolve()
        self.analyzer = analyzer or StructuralAnalyzer(project_root=self.project_root)
        self._parsed: Dict[Path, Optional[ParsedFile]] = {}
        self._lock = threading.Lock()

    def clear_cache(self) -> None:
        with self._lock:
            self._parsed.clear()

    def build_call_graph(
        self,
        symbol_name: str,
        declaring_file: Union[str, Path],
        options: Optional[CallGraphOptions] = None,
    ) -> CallGraph:
        """
        Build the call graph rooted at ``symbol_name``.

        Args:
            symbol_name: Function name, or ``Class.method`` for methods.
            declaring_file: File declaring the symbol, or a directory to search.
            options: Traversal options; defaults to depth 3 with every enrichment on.

        Returns:
            CallGraph whose root is the symbol, or an external root plus an
            unresolved call when the symbol cannot be found.
        """
        options = options or CallGraphOptions()
        start_time = time.time()
        graph = CallGraph(entry_point=symbol_name)

        declaring = Path(declaring_file)
        if not declaring.is_absolute():
            declaring = self.project_root / declaring

        located = self._locate(symbol_name, declaring)
        if located is None:
            display = self.analyzer.display_path(declaring)
            external = SymbolInfo(name=symbol_name, kind="function", file_path=display, signature=f"{symbol_name}()")
            graph.nodes.append(CallGraphNode(symbol=external, file_path=display, line=0, depth=0, is_external=True))
            graph.unresolved_calls.append(UnresolvedCall(name=symbol_name, file_path=display, line=0))
        else:
            parsed, symbol, definition = located
            graph.root = self._expand(graph, parsed, symbol, definition, 0, frozenset(), options)

        graph.build_time = time.time() - start_time
        logging.debug(
            f"Built call graph for {symbol_name}: {len(graph.nodes)} nodes, "
            f"{len(graph.unresolved_calls)} unresolved, {len(graph.circular_references)} circular"
        )
        return graph

    async def build_call_graph_async(
        self,
        symbol_name: str,
        declaring_file: Union[str, Path],
        options: Optional[CallGraphOptions] = None,
    ) -> CallGraph:
        return await asyncio.to_thread(self.build_call_graph, symbol_name, declaring_file, options)

    # --- Traversal ---

    def _expand(
        self,
        graph: CallGraph,
        parsed: ParsedFile,
        symbol: SymbolInfo,
        definition: Node,
        depth: int,
        path: frozenset,
        options: CallGraphOptions,
    ) -> int:
        file_path = parsed.model.file_path
        index = len(graph.nodes)
        node = CallGraphNode(symbol=symbol, file_path=file_path, line=symbol.line_start, depth=depth)
        graph.nodes.append(node)
        graph.max_depth_reached = max(graph.max_depth_reached, depth)
        if file_path not in graph.analyzed_files:
            graph.analyzed_files.append(file_path)

        if symbol.kind != "function":
            return index

        adapter = get_adapter(parsed.language)
        body = definition.child_by_field_name("body")
        if body is None:
            body = definition
        if options.extract_conditionals:
            node.conditional_branches = adapter.extract_conditionals(body)
        if options.track_exceptions:
            node.exception_paths = adapter.extract_exceptions(body)

        call_sites = adapter.extract_call_sites(body)
        if not call_sites:
            return index
        if depth >= options.max_depth:
            node.truncated = True
            return index

        key = (symbol.qualified_name, file_path)
        path = path | {key}
        seen: Set[str] = set()
        for site in call_sites:
            if site.callee in seen:
                continue
            seen.add(site.callee)

            resolved = self._resolve_call(parsed, symbol, site, options)
            if resolved is None:
                short_name = site.callee.rsplit(".", 1)[-1]
                if not adapter.is_builtin(short_name) and short_name not in RECEIVER_NAMES:
                    graph.unresolved_calls.append(UnresolvedCall(name=site.callee, file_path=file_path, line=site.line))
                continue

            target_parsed, target_symbol, target_definition = resolved
            target_key = (target_symbol.qualified_name, target_parsed.model.file_path)
            if target_key in path:
                graph.circular_references.append(
                    CircularReference(
                        caller=symbol.qualified_name,
                        callee=target_symbol.qualified_name,
                        file_path=target_parsed.model.file_path,
                    )
                )
                continue

            child = self._expand(graph, target_parsed, target_symbol, target_definition, depth + 1, path, options)
            node.calls.append(child)
            graph.edges.append((index, child))
        return index

    # --- Resolution ---

    def _resolve_call(
        self,
        parsed: ParsedFile,
        caller: SymbolInfo,
        site: CallSite,
        options: CallGraphOptions,
    ) -> Optional[ResolvedSymbol]:
        qualifier, _, name = site.callee.rpartition(".")
        if qualifier in RECEIVER_NAMES:
            if caller.class_name:
                return self._lookup(parsed, name, caller.class_name)
            return None

        if not qualifier:
            local = self._lookup(parsed, name)
            if local is not None:
                return local
            return self._resolve_imported(parsed, name, None) if options.resolve_imports else None

        if any(symbol.class_name == qualifier for symbol in parsed.model.functions):
            local = self._lookup(parsed, name, qualifier)
            if local is not None:
                return local
        if options.resolve_imports:
            return self._resolve_imported(parsed, name, qualifier)
        return None

    def _resolve_imported(self, parsed: ParsedFile, name: str, qualifier: Optional[str]) -> Optional[ResolvedSymbol]:
        adapter = get_adapter(parsed.language)
        for info in parsed.model.imports:
            for imported in info.names:
                if qualifier is None:
                    if imported.name == "*" and parsed.language == "python":
                        target = self._parse_module(adapter, info.source, parsed)
                        found = self._lookup(target, name) if target else None
                        if found is not None:
                            return found
                        continue
                    if imported.local_name != name or imported.name in {"*", "default"}:
                        continue
                    target = self._parse_module(adapter, info.source, parsed)
                    return self._lookup(target, imported.name) if target else None

                if imported.local_name != qualifier:
                    continue
                if info.is_namespace or imported.name in {"*", "default"}:
                    target = self._parse_module(adapter, info.source, parsed)
                    return self._lookup(target, name) if target else None
                submodule = adapter.join_module(info.source, imported.name)
                target = self._parse_module(adapter, submodule, parsed) if submodule else None
                if target is not None:
                    return self._lookup(target, name)
                # `Imported.method()` on an imported class
                owner = self._parse_module(adapter, info.source, parsed)
                return self._lookup(owner, name, imported.name) if owner else None
        return None

    def _lookup(self, parsed: ParsedFile, name: str, class_name: Optional[str] = None) -> Optional[ResolvedSymbol]:
        adapter = get_adapter(parsed.language)
        for symbol in parsed.model.all_symbols():
            if symbol.name != name or symbol.class_name != class_name:
                continue
            definition = adapter.find_definition(parsed.tree.root_node, name, class_name)
            if definition is not None:
                return parsed, symbol, definition
        return None

    def _locate(self, symbol_name: str, declaring: Path) -> Optional[ResolvedSymbol]:
        class_name, _, name = symbol_name.rpartition(".")
        if declaring.is_dir():
            candidates = sorted(
                path
                for path in declaring.rglob("*")
                if path.is_file()
                and self.analyzer.supports(path)
                and not is_in_ignored_dir(path, declaring, DEFAULT_IGNORED_DIRS)
            )
        else:
            candidates = [declaring]

        for path in candidates:
            parsed = self._parse(path)
            if parsed is None:
                continue
            found = self._lookup(parsed, name, class_name or None)
            if found is not None:
                return found
        return None

    def _parse_module(self, adapter, module: str, importer: ParsedFile) -> Optional[ParsedFile]:
        module_path = adapter.resolve_module(module, importer.path, self.project_root)
        if module_path is None:
            return None
        try:
            module_path.relative_to(self.project_root)
        except ValueError:
            return None
        return self._parse(module_path)

    def _parse(self, path: Path) -> Optional[ParsedFile]:
        resolved = path.resolve()
        with self._lock:
            if resolved in self._parsed:
                return self._parsed[resolved]
        parsed = self.analyzer.parse_file(resolved) if resolved.is_file() else None
        with self._lock:
            self._parsed[resolved] = parsed
        return parsed
