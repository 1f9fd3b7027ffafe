"""
Command line interface for documentation drift detection.
"""

import argparse
import asyncio
import dataclasses
import json
import logging
import sys
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

from doc_drift.core.call_graph_builder import CallGraphOptions
from doc_drift.core.config import DocDriftConfig, load_config
from doc_drift.core.engine import DriftEngine
from doc_drift.core.models import PrioritizedDriftResult
from doc_drift.core.watcher import DocDriftWatcher


def prioritized_to_dict(item: PrioritizedDriftResult) -> Dict[str, Any]:
    return {
        "file_path": item.file_path,
        "priority": dataclasses.asdict(item.priority_score),
        "result": dataclasses.asdict(item.result),
    }


def _write_json(data: Any, output: Optional[str]) -> None:
    text = json.dumps(data, indent=2, ensure_ascii=False)
    if output:
        Path(output).write_text(text, encoding="utf-8")
        print(f"📄 Report exported to {output}")
    else:
        print(text)


def _add_directory_arg(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "directory",
        nargs='?',
        default=None,
        help="Path to the project directory. If not provided, uses 'project_root' from config or the current directory.",
    )


def _add_common_flags(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("--config", help="Path to configuration YAML file (default: docdrift.config.yaml)")
    parser.add_argument("--docs", help="Documentation root (default: the project root)")
    parser.add_argument("--snapshot-dir", help="Snapshot directory (default: <project>/.doc_drift/snapshots)")
    parser.add_argument("--progress", action="store_true", default=None, help="Show analysis progress bars.")


def _resolve_config_and_root(args: argparse.Namespace) -> Tuple[DocDriftConfig, Path]:
    cli_overrides = {
        "docs_root": getattr(args, "docs", None),
        "snapshot_dir": getattr(args, "snapshot_dir", None),
        "show_progress": getattr(args, "progress", None),
    }
    if getattr(args, "directory", None):
        cli_overrides["project_root"] = str(Path(args.directory).resolve())

    config = load_config(config_path=getattr(args, "config", None), cli_args=cli_overrides)
    if not config.project_root:
        config.project_root = str(Path.cwd())
    return config, config.require_project_root()


def _init_engine(args: argparse.Namespace) -> Optional[DriftEngine]:
    config, root_dir = _resolve_config_and_root(args)
    if not root_dir.is_dir():
        print(f"❌ Error: {root_dir} is not a valid directory for analysis.", file=sys.stderr)
        return None
    return DriftEngine(root_dir, config=config)


def _run_snapshot(args: argparse.Namespace) -> int:
    engine = _init_engine(args)
    if engine is None:
        return 1
    snapshot = asyncio.run(engine.create_snapshot(persist=False))
    path = engine.snapshots.save_snapshot(snapshot)
    print(f"📸 Snapshot of {len(snapshot.files)} source files and {len(snapshot.documentation)} docs saved to {path}")
    return 0


def _run_detect(args: argparse.Namespace) -> int:
    engine = _init_engine(args)
    if engine is None:
        return 1
    results = asyncio.run(engine.check_for_drift())
    _write_json([prioritized_to_dict(item) for item in results], args.output)
    return 0


def _run_graph(args: argparse.Namespace) -> int:
    engine = _init_engine(args)
    if engine is None:
        return 1
    options = CallGraphOptions(
        max_depth=args.depth if args.depth is not None else engine.config.max_graph_depth,
        resolve_imports=not args.no_imports,
        extract_conditionals=not args.no_conditionals,
        track_exceptions=not args.no_exceptions,
    )
    declaring = args.file or engine.project_root
    graph = engine.graph_builder.build_call_graph(args.symbol, declaring, options)
    _write_json(graph.to_dict(), args.output)
    return 0


def _run_watch(args: argparse.Namespace) -> int:
    engine = _init_engine(args)
    if engine is None:
        return 1

    def report(results: List[PrioritizedDriftResult]) -> None:
        _write_json([prioritized_to_dict(item) for item in results], None)

    async def watch() -> None:
        watcher = DocDriftWatcher(engine, debounce_seconds=args.debounce, on_results=report)
        await watcher.trigger()
        await watcher.start()
        print("👀 Watching for changes. Press Ctrl+C to stop.", file=sys.stderr)
        try:
            while True:
                await asyncio.sleep(3600)
        finally:
            watcher.stop()

    try:
        asyncio.run(watch())
    except KeyboardInterrupt:
        print("\n👋 Stopped watching.", file=sys.stderr)
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="DocDrift CLI: snapshot code and docs, detect and prioritize documentation drift."
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    snapshot = subparsers.add_parser("snapshot", help="Create and store a snapshot of code and documentation")
    _add_directory_arg(snapshot)
    _add_common_flags(snapshot)
    snapshot.set_defaults(func=_run_snapshot)

    detect = subparsers.add_parser("detect", help="Compare a fresh snapshot against the stored baseline")
    _add_directory_arg(detect)
    _add_common_flags(detect)
    detect.add_argument("--output", help="Write prioritized results to a JSON file instead of stdout.")
    detect.set_defaults(func=_run_detect)

    graph = subparsers.add_parser("graph", help="Export the call graph of one symbol as JSON")
    _add_directory_arg(graph)
    _add_common_flags(graph)
    graph.add_argument("--symbol", required=True, help="Function name, or Class.method.")
    graph.add_argument("--file", help="File declaring the symbol (default: search the project).")
    graph.add_argument("--depth", type=int, default=None, help="Maximum call depth (default: config max_graph_depth).")
    graph.add_argument("--no-imports", action="store_true", help="Do not follow calls through imports.")
    graph.add_argument("--no-conditionals", action="store_true", help="Skip conditional branch extraction.")
    graph.add_argument("--no-exceptions", action="store_true", help="Skip exception path tracking.")
    graph.add_argument("--output", help="Write the graph to a file instead of stdout.")
    graph.set_defaults(func=_run_graph)

    watch = subparsers.add_parser("watch", help="Watch for changes and re-run drift detection")
    _add_directory_arg(watch)
    _add_common_flags(watch)
    watch.add_argument("--debounce", type=float, default=None,
                       help="Seconds of quiet before a check runs (default: config watch_debounce_seconds).")
    watch.set_defaults(func=_run_watch)

    return parser


def main():
    """Main entry point for the doc-drift CLI."""
    logging.basicConfig(level=logging.INFO, stream=sys.stderr, format="%(levelname)s: %(message)s")
    parser = build_parser()
    args = parser.parse_args()

    try:
        exit_code = args.func(args)
        sys.exit(exit_code)
    except Exception as e:
        print(f"\n❌ An unexpected error occurred: {e}", file=sys.stderr)
        import traceback
        traceback.print_exc(file=sys.stderr)
        sys.exit(1)


if __name__ == "__main__":
    main()
