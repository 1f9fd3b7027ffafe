from collections import Counter
from dataclasses import replace

import pytest
import pytest_asyncio

from doc_drift.core.call_graph_builder import CallGraphBuilder
from doc_drift.core.models import UsageMetadata
from doc_drift.core.snapshot import SnapshotManager
from doc_drift.core.usage_metadata import UsageMetadataCollector, _SymbolIndex, collect_usage_metadata


@pytest_asyncio.fixture
async def ts_snapshot(tmp_path, ts_project):
    return await SnapshotManager(tmp_path / "snaps").create_snapshot(ts_project)


class FailingBuilder:
    async def build_call_graph_async(self, symbol_name, declaring_file, options=None):
        raise RuntimeError("parser exploded")


@pytest.mark.asyncio
async def test_heuristic_counts_imports_and_doc_references(ts_snapshot):
    usage = UsageMetadataCollector().collect_heuristic(ts_snapshot)

    assert usage.file_path == ts_snapshot.project_root
    assert usage.imports == {"clamp": 1}
    assert usage.function_calls == {"clamp": 1, "calculate": 1, "add": 1}
    assert usage.class_instantiations == {"Math": 1}


@pytest.mark.asyncio
async def test_graph_based_collection(ts_snapshot, ts_project):
    collector = UsageMetadataCollector(CallGraphBuilder(ts_project))

    usage = await collector.collect(ts_snapshot)

    assert usage.function_calls == {"add": 2, "calculate": 2, "clamp": 2}
    assert usage.imports == {"clamp": 1}
    assert usage.count_for("clamp") == 3


@pytest.mark.asyncio
async def test_symbol_cap_limits_graphs(ts_snapshot, ts_project):
    collector = UsageMetadataCollector(CallGraphBuilder(ts_project), max_symbols=1)

    usage = await collector.collect(ts_snapshot)

    assert usage.function_calls == {"add": 2, "clamp": 1, "calculate": 1}


@pytest.mark.asyncio
async def test_ranking_orders_by_references_then_name(ts_snapshot):
    collector = UsageMetadataCollector()
    ranked = collector.rank_exported_functions(ts_snapshot, _SymbolIndex(ts_snapshot), Counter({"clamp": 5}))

    assert [s.name for s in ranked] == ["clamp", "add", "calculate"]


@pytest.mark.asyncio
async def test_failing_graphs_contribute_nothing(ts_snapshot):
    usage = await UsageMetadataCollector(FailingBuilder()).collect(ts_snapshot)

    assert usage.function_calls == {"clamp": 1, "calculate": 1, "add": 1}


@pytest.mark.asyncio
async def test_missing_project_root_falls_back_to_heuristic(ts_snapshot):
    moved = replace(ts_snapshot, project_root="/definitely/not/here")

    usage = await UsageMetadataCollector().collect(moved)

    assert usage.function_calls == {"clamp": 1, "calculate": 1, "add": 1}


@pytest.mark.asyncio
async def test_collect_usage_metadata_helper(ts_snapshot, ts_project):
    heuristic = await collect_usage_metadata(ts_snapshot)
    graph = await collect_usage_metadata(ts_snapshot, CallGraphBuilder(ts_project), max_symbols=10)

    assert heuristic.function_calls["clamp"] == 1
    assert graph.function_calls["clamp"] == 2


def test_count_for_sums_all_kinds():
    usage = UsageMetadata(
        file_path="/p",
        function_calls={"calculate": 50},
        class_instantiations={"Calculator": 3},
        imports={"calculate": 50},
    )

    assert usage.count_for("calculate") == 100
    assert usage.count_for("Calculator") == 3
    assert usage.count_for("unknown") == 0
