"""
Tree-sitter parser facade with cached parser instances.
"""

from functools import lru_cache
from pathlib import Path
from typing import Optional

from tree_sitter import Parser, Tree

from .languages import get_py_language, get_ts_language, get_tsx_language, get_rust_language

EXTENSION_LANGUAGES = {
    ".py": "python",
    ".ts": "typescript",
    ".mts": "typescript",
    ".cts": "typescript",
    ".tsx": "tsx",
    ".js": "javascript",
    ".jsx": "javascript",
    ".mjs": "javascript",
    ".cjs": "javascript",
    ".rs": "rust",
}

# Fence tags used when rendering a signature of this language in Markdown.
FENCE_TAGS = {
    "python": "python",
    "typescript": "typescript",
    "tsx": "tsx",
    "javascript": "javascript",
    "rust": "rust",
}


def language_for_path(path: Path) -> Optional[str]:
    return EXTENSION_LANGUAGES.get(path.suffix.lower())


@lru_cache(maxsize=4)
def get_parser(language_id: str) -> Parser:
    parser = Parser()
    if language_id == "python":
        parser.language = get_py_language()
    elif language_id == "typescript":
        parser.language = get_ts_language()
    elif language_id in ("tsx", "javascript"):
        # JavaScript and JSX are parsed with the TSX grammar
        parser.language = get_tsx_language()
    elif language_id == "rust":
        parser.language = get_rust_language()
    else:
        raise ValueError(f"Unsupported language: {language_id}")
    return parser


def parse_source(source: str, language_id: str) -> Tree:
    parser = get_parser(language_id)
    return parser.parse(bytes(source, "utf-8"))
