"""
Tree-sitter integration for doc_drift.

Provides language loading, parsing and the per-language adapters that turn
syntax trees into structural file models and call-graph facts.
"""

from types import ModuleType

from . import python_adapter, rust_adapter, typescript_adapter
from .parser import EXTENSION_LANGUAGES, FENCE_TAGS, get_parser, language_for_path, parse_source
from .languages import get_py_language, get_ts_language, get_tsx_language, get_rust_language

_ADAPTERS = {
    "python": python_adapter,
    "typescript": typescript_adapter,
    "tsx": typescript_adapter,
    "javascript": typescript_adapter,
    "rust": rust_adapter,
}


def get_adapter(language_id: str) -> ModuleType:
    try:
        return _ADAPTERS[language_id]
    except KeyError:
        raise ValueError(f"Unsupported language: {language_id}") from None


__all__ = [
    "EXTENSION_LANGUAGES",
    "FENCE_TAGS",
    "get_adapter",
    "get_parser",
    "language_for_path",
    "parse_source",
    "get_py_language",
    "get_ts_language",
    "get_tsx_language",
    "get_rust_language",
]
