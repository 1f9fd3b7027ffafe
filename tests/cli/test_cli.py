import json
import sys

import pytest

from doc_drift.cli.doc_drift import build_parser, main

MATH_TS = '''export function calculate(x: number): number {
  return x * 2;
}
'''

API_MD = '''# API

## calculate(x)

Call `calculate` with a number.
'''


@pytest.fixture
def project(tmp_path, monkeypatch):
    (tmp_path / "src").mkdir()
    (tmp_path / "src" / "math.ts").write_text(MATH_TS, encoding="utf-8")
    (tmp_path / "docs").mkdir()
    (tmp_path / "docs" / "api.md").write_text(API_MD, encoding="utf-8")
    monkeypatch.chdir(tmp_path)
    return tmp_path


def run_cli(monkeypatch, *args):
    monkeypatch.setattr(sys, "argv", ["doc-drift", *args])
    with pytest.raises(SystemExit) as exc_info:
        main()
    return exc_info.value.code


def test_parser_requires_a_command():
    with pytest.raises(SystemExit):
        build_parser().parse_args([])


def test_graph_requires_symbol():
    with pytest.raises(SystemExit):
        build_parser().parse_args(["graph", "."])


def test_snapshot_command(project, monkeypatch, capsys):
    assert run_cli(monkeypatch, "snapshot", str(project)) == 0

    out = capsys.readouterr().out
    assert "Snapshot of 1 source files and 1 docs" in out
    assert len(list((project / ".doc_drift" / "snapshots").glob("snapshot-*.json"))) == 1


def test_detect_command_reports_drift(project, monkeypatch):
    report = project / "report.json"

    assert run_cli(monkeypatch, "detect", str(project), "--output", str(report)) == 0
    assert json.loads(report.read_text()) == []

    (project / "src" / "math.ts").write_text("export function other(): void {}\n", encoding="utf-8")
    assert run_cli(monkeypatch, "detect", str(project), "--output", str(report)) == 0

    data = json.loads(report.read_text())
    assert [item["file_path"] for item in data] == ["src/math.ts"]
    assert data[0]["result"]["severity"] == "critical"
    assert data[0]["priority"]["recommendation"] in {"low", "medium", "high", "critical"}


def test_detect_uses_current_directory_by_default(project, monkeypatch, capsys):
    assert run_cli(monkeypatch, "detect") == 0

    assert json.loads(capsys.readouterr().out) == []
    assert (project / ".doc_drift" / "snapshots").is_dir()


def test_graph_command(project, monkeypatch, capsys):
    assert run_cli(monkeypatch, "graph", str(project), "--symbol", "calculate", "--file", "src/math.ts") == 0

    data = json.loads(capsys.readouterr().out)
    assert data["entry_point"] == "calculate"
    assert data["nodes"][0]["file_path"] == "src/math.ts"


def test_invalid_directory(project, monkeypatch, capsys):
    assert run_cli(monkeypatch, "snapshot", str(project / "missing")) == 1

    assert "is not a valid directory" in capsys.readouterr().err
