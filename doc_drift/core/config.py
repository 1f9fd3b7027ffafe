import yaml
import logging
from typing import List, Optional, Dict, Any
from pathlib import Path
from pydantic import BaseModel, Field

# Default configuration values
DEFAULT_CONFIG_PATH = "docdrift.config.yaml"
DEFAULT_PROJECT_ROOT = None
DEFAULT_DOC_DRIFT_DIR = ".doc_drift"
DEFAULT_SOURCE_EXTENSIONS = [".py", ".ts", ".tsx", ".js", ".jsx", ".mjs", ".rs"]
DEFAULT_DOC_EXTENSIONS = [".md", ".mdx"]
DEFAULT_IGNORED_DIRS = [
    "node_modules", "dist", "build", ".git", ".next",
    "__pycache__", ".venv", "venv", "target", DEFAULT_DOC_DRIFT_DIR,
]
DEFAULT_IGNORED_PATTERNS: List[str] = []
DEFAULT_ANALYSIS_CONCURRENCY = 8
DEFAULT_MAX_GRAPH_DEPTH = 3
DEFAULT_USAGE_GRAPH_DEPTH = 2
DEFAULT_USAGE_MAX_SYMBOLS = 50
DEFAULT_WATCH_DEBOUNCE_SECONDS = 2.0

DEFAULT_PRIORITY_WEIGHTS: Dict[str, float] = {
    "code_complexity": 0.20,
    "usage_frequency": 0.25,
    "change_magnitude": 0.25,
    "documentation_coverage": 0.15,
    "staleness": 0.10,
    "user_feedback": 0.05,
}


class IssueTrackerConfig(BaseModel):
    """Settings for the optional issue-tracker feedback integration."""
    provider: str = "github"
    owner: str
    repo: str
    token: Optional[str] = None
    api_url: str = "https://api.github.com"
    labels: List[str] = Field(default_factory=lambda: ["documentation", "docs"])
    cache_seconds: int = 300
    request_timeout: float = 10.0


class DocDriftConfig(BaseModel):
    """
    Central configuration model for doc_drift.
    """
    project_root: Optional[str] = Field(default=DEFAULT_PROJECT_ROOT)
    docs_root: Optional[str] = None
    snapshot_dir: Optional[str] = None
    source_extensions: List[str] = Field(default_factory=lambda: list(DEFAULT_SOURCE_EXTENSIONS))
    doc_extensions: List[str] = Field(default_factory=lambda: list(DEFAULT_DOC_EXTENSIONS))
    ignored_dirs: List[str] = Field(default_factory=lambda: list(DEFAULT_IGNORED_DIRS))
    ignored_patterns: List[str] = Field(default_factory=lambda: list(DEFAULT_IGNORED_PATTERNS))
    analysis_concurrency: int = Field(default=DEFAULT_ANALYSIS_CONCURRENCY, ge=1)
    max_graph_depth: int = Field(default=DEFAULT_MAX_GRAPH_DEPTH, ge=0)
    usage_graph_depth: int = Field(default=DEFAULT_USAGE_GRAPH_DEPTH, ge=0)
    usage_max_symbols: int = Field(default=DEFAULT_USAGE_MAX_SYMBOLS, ge=0)
    priority_weights: Dict[str, float] = Field(default_factory=lambda: DEFAULT_PRIORITY_WEIGHTS.copy())
    watch_debounce_seconds: float = DEFAULT_WATCH_DEBOUNCE_SECONDS
    show_progress: bool = False

    feedback: Optional[IssueTrackerConfig] = None

    # Allow extra fields for flexibility
    class Config:
        extra = "allow"

    def require_project_root(self) -> Path:
        if not self.project_root:
            raise ValueError("project_root must be set in config to resolve .doc_drift paths")
        return Path(self.project_root).resolve()

    def doc_drift_dir(self) -> Path:
        return self.require_project_root() / DEFAULT_DOC_DRIFT_DIR

    def resolved_docs_root(self) -> Path:
        if self.docs_root:
            docs = Path(self.docs_root)
            if not docs.is_absolute():
                docs = self.require_project_root() / docs
            return docs.resolve()
        return self.require_project_root()

    def resolved_snapshot_dir(self) -> Path:
        if self.snapshot_dir:
            return Path(self.snapshot_dir).resolve()
        return self.doc_drift_dir() / "snapshots"


def load_config(
    config_path: Optional[str] = None,
    cli_args: Optional[Dict[str, Any]] = None
) -> DocDriftConfig:
    """
    Load configuration from file and overrides.

    Priority:
    1. CLI Arguments (if provided and not None)
    2. Config File (if provided or found at default path)
    3. Default Values

    Args:
        config_path: Path to the YAML config file. If None, tries 'docdrift.config.yaml'.
        cli_args: Dictionary of CLI arguments to override config values.

    Returns:
        DocDriftConfig: The resolved configuration object.
    """
    config_data: Dict[str, Any] = {}

    target_path = config_path if config_path else DEFAULT_CONFIG_PATH
    path_obj = Path(target_path)

    if path_obj.exists() and path_obj.is_file():
        try:
            with open(path_obj, 'r', encoding='utf-8') as f:
                file_data = yaml.safe_load(f)
                if file_data:
                    config_data.update(file_data)
            logging.info(f"Loaded configuration from {target_path}")
        except (OSError, yaml.YAMLError) as e:
            logging.warning(f"Failed to load config file {target_path}: {e}")
    elif config_path:
        logging.warning(f"Config file not found at explicit path: {config_path}")
    else:
        logging.info(f"No config file found at {DEFAULT_CONFIG_PATH}, using defaults.")

    if cli_args:
        for key, value in cli_args.items():
            if value is not None:
                config_data[key] = value

    return DocDriftConfig(**config_data)
