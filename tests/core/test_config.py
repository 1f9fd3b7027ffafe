import pytest

from doc_drift.core.config import DEFAULT_PRIORITY_WEIGHTS, DocDriftConfig, IssueTrackerConfig, load_config


@pytest.fixture(autouse=True)
def isolated_cwd(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)


def test_defaults_without_config_file():
    config = load_config()

    assert config.project_root is None
    assert config.priority_weights == DEFAULT_PRIORITY_WEIGHTS
    assert ".md" in config.doc_extensions
    assert "node_modules" in config.ignored_dirs
    assert config.feedback is None


def test_default_config_file_is_picked_up(tmp_path):
    (tmp_path / "docdrift.config.yaml").write_text(
        "project_root: /srv/app\n"
        "docs_root: handbook\n"
        "priority_weights:\n"
        "  code_complexity: 0.3\n"
        "feedback:\n"
        "  owner: acme\n"
        "  repo: calc\n"
        "  labels: [docs]\n"
    )

    config = load_config()

    assert config.project_root == "/srv/app"
    assert config.priority_weights == {"code_complexity": 0.3}
    assert isinstance(config.feedback, IssueTrackerConfig)
    assert config.feedback.labels == ["docs"]
    assert config.feedback.api_url == "https://api.github.com"


def test_cli_arguments_override_file(tmp_path):
    path = tmp_path / "custom.yaml"
    path.write_text("project_root: /from/file\nmax_graph_depth: 5\n")

    config = load_config(str(path), {"project_root": "/from/cli", "max_graph_depth": None})

    assert config.project_root == "/from/cli"
    assert config.max_graph_depth == 5


def test_missing_or_broken_config_file_uses_defaults(tmp_path):
    assert load_config(str(tmp_path / "missing.yaml")).max_graph_depth == 3

    broken = tmp_path / "broken.yaml"
    broken.write_text("max_graph_depth: [unclosed\n")
    assert load_config(str(broken)).max_graph_depth == 3


def test_extra_fields_are_allowed():
    config = DocDriftConfig(project_root="/p", team="docs")

    assert config.team == "docs"


def test_resolved_paths(tmp_path):
    config = DocDriftConfig(project_root=str(tmp_path), docs_root="docs")

    assert config.resolved_docs_root() == (tmp_path / "docs").resolve()
    assert config.resolved_snapshot_dir() == tmp_path.resolve() / ".doc_drift" / "snapshots"
    assert DocDriftConfig(project_root=str(tmp_path)).resolved_docs_root() == tmp_path.resolve()

    custom = DocDriftConfig(project_root=str(tmp_path), snapshot_dir=str(tmp_path / "snaps"))
    assert custom.resolved_snapshot_dir() == (tmp_path / "snaps").resolve()


def test_project_root_required_for_paths():
    with pytest.raises(ValueError):
        DocDriftConfig().resolved_snapshot_dir()
