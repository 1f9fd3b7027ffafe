"""
Markdown documentation parser.

Splits a documentation file into heading-delimited sections and extracts,
per section, the code symbols it references (headings, inline code spans,
fenced code blocks) together with its code examples. YAML front matter is
read with PyYAML and drives the Diataxis category of the document.
"""

from __future__ import annotations

import logging
import re
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Set, Tuple, Union

import yaml

from .models import CodeExample, DiataxisCategory, DocumentationModel, DocumentationSection, ValidationHints
from .utils import hash_content, looks_like_class_name, to_iso

SymbolClassifier = Callable[[str], str]  # returns "function", "class" or "type"

HEADING_RE = re.compile(r"^(#{1,6})\s+(.+?)\s*#*\s*$")
FENCE_RE = re.compile(r"^\s*(```|~~~)\s*([\w+#.-]*)")
HEADING_CALL_RE = re.compile(r"^`?([A-Za-z_$][A-Za-z0-9_$.]*)`?\s*\(")
HEADING_CLASS_RE = re.compile(r"^`?([A-Z][A-Za-z0-9_]*)")
INLINE_CODE_RE = re.compile(r"`([A-Za-z_$][A-Za-z0-9_$.]*)(?:\([^`]*\))?`")
CODE_CALL_RE = re.compile(r"\b([a-z][A-Za-z0-9_]*)\s*\(")
CODE_TYPE_RE = re.compile(r"\b([A-Z][A-Za-z0-9_]*)\b")
CODE_FILE_EXTENSIONS = r"(?:ts|tsx|js|jsx|mjs|py|go|rs|java|rb)"
LINK_REF_RE = re.compile(r"\[[^\]]*\]\(([^)\s]+\." + CODE_FILE_EXTENSIONS + r")(?:#[^)]*)?\)")
INLINE_REF_RE = re.compile(r"`([^`\s]+\." + CODE_FILE_EXTENSIONS + r")`")
EXPECTED_RE = re.compile(r"(?:Output|Returns|Expected(?: output)?)\s*:\s*(.+)", re.IGNORECASE)
FREE_CALL_RE = re.compile(r"(?<![.\w$])([A-Za-z_$][A-Za-z0-9_$]*)\s*\(")
DEFINITION_RE = re.compile(
    r"\b(?:def|function|class|fn|const|let|var|struct|enum|interface|type)\s+([A-Za-z_$][A-Za-z0-9_$]*)"
)
ASSIGNMENT_RE = re.compile(r"^\s*([A-Za-z_][A-Za-z0-9_]*)\s*=(?!=)", re.MULTILINE)

CODE_KEYWORDS = {
    "if", "for", "while", "switch", "return", "function", "catch", "def", "class",
    "await", "async", "new", "typeof", "import", "from", "export", "const", "let",
    "var", "fn", "match", "elif", "else", "with", "and", "or", "not", "in", "is",
}
SNIPPET_BUILTINS = {
    "print", "len", "range", "str", "int", "float", "list", "dict", "set", "tuple",
    "require", "console", "Promise", "Error", "String", "Number", "Array", "Object",
    "JSON", "Math", "Some", "Ok", "Err", "Vec", "Box", "println", "format", "assert",
    "isinstance", "super", "open", "sorted", "enumerate", "zip", "map", "filter",
}

_CATEGORY_ALIASES: Dict[str, DiataxisCategory] = {
    "tutorial": "tutorial",
    "tutorials": "tutorial",
    "how-to": "how-to",
    "howto": "how-to",
    "how-to-guide": "how-to",
    "how-to-guides": "how-to",
    "guide": "how-to",
    "guides": "how-to",
    "reference": "reference",
    "references": "reference",
    "api": "reference",
    "explanation": "explanation",
    "explanations": "explanation",
    "concepts": "explanation",
}
_FRONT_MATTER_CATEGORY_KEYS = ("category", "diataxis", "diataxis_type", "type")
_CONTENT_CATEGORY_HINTS: List[Tuple[DiataxisCategory, Tuple[str, ...]]] = [
    ("tutorial", ("tutorial", "step 1", "getting started", "in this lesson")),
    ("how-to", ("how to", "how-to", "recipe")),
    ("reference", ("api reference", "parameters", "returns", "signature")),
    ("explanation", ("why ", "architecture", "concept", "background")),
]


def default_symbol_classifier(name: str) -> str:
    """Upper-case first letter is a class or type reference, otherwise a function."""
    return "class" if looks_like_class_name(name) else "function"


def normalize_category(value: Any) -> Optional[DiataxisCategory]:
    if not isinstance(value, str):
        return None
    key = value.strip().lower().replace(" ", "-").replace("_", "-")
    return _CATEGORY_ALIASES.get(key)


def category_from_path(path: str) -> Optional[DiataxisCategory]:
    for segment in Path(path).parts[:-1]:
        category = normalize_category(segment)
        if category:
            return category
    return None


def category_from_content(text: str) -> Optional[DiataxisCategory]:
    lowered = text.lower()
    for category, hints in _CONTENT_CATEGORY_HINTS:
        if any(hint in lowered for hint in hints):
            return category
    return None


def split_front_matter(content: str) -> Tuple[Dict[str, Any], str, int]:
    """
    Separate a leading ``---`` fenced YAML block from the Markdown body.

    Returns:
        (front matter mapping, body text, number of lines consumed)
    """
    lines = content.split("\n")
    if not lines or lines[0].strip() != "---":
        return {}, content, 0
    for index in range(1, len(lines)):
        if lines[index].strip() in ("---", "..."):
            raw = "\n".join(lines[1:index])
            try:
                data = yaml.safe_load(raw) or {}
            except yaml.YAMLError as e:
                logging.warning(f"Ignoring malformed front matter: {e}")
                data = {}
            if not isinstance(data, dict):
                data = {}
            return data, "\n".join(lines[index + 1:]), index + 1
    return {}, content, 0


class DocumentationParser:
    """Parses Markdown files into DocumentationModel records."""

    def __init__(self, symbol_classifier: Optional[SymbolClassifier] = None):
        self.symbol_classifier = symbol_classifier or default_symbol_classifier

    def parse(self, file_path: Union[str, Path], display_path: Optional[str] = None) -> Optional[DocumentationModel]:
        """Parse a documentation file, returning None (logged) when it cannot be read."""
        path = Path(file_path)
        try:
            content = path.read_text(encoding="utf-8")
            mtime = path.stat().st_mtime
        except (OSError, UnicodeDecodeError) as e:
            logging.warning(f"Failed to analyze documentation {path}: {e}")
            return None
        last_modified = to_iso(datetime.fromtimestamp(mtime, tz=timezone.utc))
        return self.parse_content(content, display_path or path.as_posix(), last_modified)

    def parse_content(self, content: str, file_path: str, last_modified: str = "") -> DocumentationModel:
        front_matter, body, offset = split_front_matter(content)
        category = None
        for key in _FRONT_MATTER_CATEGORY_KEYS:
            category = normalize_category(front_matter.get(key))
            if category:
                break
        if category is None:
            category = category_from_path(file_path)

        return DocumentationModel(
            file_path=file_path,
            content_hash=hash_content(content),
            referenced_code=extract_code_references(content),
            last_modified=last_modified,
            category=category,
            sections=self._extract_sections(body, offset, category),
        )

    # --- Sections ---

    def _extract_sections(self, body: str, offset: int, doc_category: Optional[DiataxisCategory]) -> List[DocumentationSection]:
        lines = body.split("\n")
        sections: List[DocumentationSection] = []
        title: Optional[str] = None
        start = 0
        section_lines: List[str] = []
        in_fence = False
        fence_marker = ""

        for index, line in enumerate(lines):
            fence = FENCE_RE.match(line)
            if fence:
                if not in_fence:
                    in_fence, fence_marker = True, fence.group(1)
                elif line.strip().startswith(fence_marker):
                    in_fence = False
            heading = None if in_fence or fence else HEADING_RE.match(line)
            if heading:
                if title is not None:
                    sections.append(self._build_section(title, section_lines, start + offset + 1, index + offset, doc_category))
                title = heading.group(2).strip()
                start = index
                section_lines = []
            elif title is not None:
                section_lines.append(line)

        if title is not None:
            sections.append(self._build_section(title, section_lines, start + offset + 1, len(lines) + offset, doc_category))
        return sections

    def _build_section(
        self,
        title: str,
        lines: List[str],
        start_line: int,
        end_line: int,
        doc_category: Optional[DiataxisCategory],
    ) -> DocumentationSection:
        references: Dict[str, Set[str]] = {"function": set(), "class": set(), "type": set()}

        def add(name: str) -> None:
            for part in [p for p in name.split(".") if p]:
                kind = self.symbol_classifier(part)
                references.setdefault(kind, set()).add(part)

        plain_title = title.replace("`", "")
        call = HEADING_CALL_RE.match(plain_title)
        if call:
            add(call.group(1))
        else:
            class_match = HEADING_CLASS_RE.match(plain_title)
            if class_match:
                add(class_match.group(1))
        for match in INLINE_CODE_RE.finditer(title):
            add(match.group(1))

        content = "\n".join(lines)
        section_category = doc_category or category_from_content(f"{title}\n{content}")
        examples = self._extract_code_examples(lines, section_category)
        for example in examples:
            for symbol in example.referenced_symbols:
                add(symbol)

        in_fence = False
        for line in lines:
            if FENCE_RE.match(line):
                in_fence = not in_fence
                continue
            if in_fence:
                continue
            for match in INLINE_CODE_RE.finditer(line):
                add(match.group(1))

        return DocumentationSection(
            title=title,
            content=content,
            start_line=start_line,
            end_line=end_line,
            referenced_functions=sorted(references["function"]),
            referenced_classes=sorted(references["class"]),
            referenced_types=sorted(references["type"]),
            code_examples=examples,
        )

    # --- Code examples ---

    def _extract_code_examples(self, lines: List[str], category: Optional[DiataxisCategory]) -> List[CodeExample]:
        examples: List[CodeExample] = []
        index = 0
        while index < len(lines):
            fence = FENCE_RE.match(lines[index])
            if not fence:
                index += 1
                continue
            marker, language = fence.group(1), fence.group(2) or "text"
            description = _preceding_description(lines, index)
            code_lines: List[str] = []
            index += 1
            while index < len(lines) and not lines[index].strip().startswith(marker):
                code_lines.append(lines[index])
                index += 1
            trailing = _following_line(lines, index + 1)
            code = "\n".join(code_lines)
            examples.append(
                CodeExample(
                    language=language,
                    code=code,
                    description=description,
                    referenced_symbols=extract_symbols_from_code(code),
                    category=category,
                    validation_hints=build_validation_hints(code, trailing),
                )
            )
            index += 1
        return examples


def _preceding_description(lines: List[str], fence_index: int) -> str:
    for index in range(fence_index - 1, -1, -1):
        text = lines[index].strip()
        if not text:
            continue
        if HEADING_RE.match(text) or FENCE_RE.match(text):
            return ""
        return text
    return ""


def _following_line(lines: List[str], index: int) -> str:
    while index < len(lines):
        text = lines[index].strip()
        if text:
            return text
        index += 1
    return ""


def extract_code_references(content: str) -> List[str]:
    """Source file paths referenced from Markdown links and inline code."""
    references: List[str] = []
    for pattern in (LINK_REF_RE, INLINE_REF_RE):
        for match in pattern.finditer(content):
            reference = match.group(1)
            while reference.startswith("./"):
                reference = reference[2:]
            if reference not in references:
                references.append(reference)
    return references


def extract_symbols_from_code(code: str) -> List[str]:
    symbols: List[str] = []
    for pattern in (CODE_CALL_RE, CODE_TYPE_RE):
        for match in pattern.finditer(code):
            name = match.group(1)
            if name not in CODE_KEYWORDS and name not in symbols:
                symbols.append(name)
    return symbols


def build_validation_hints(code: str, trailing_line: str = "") -> ValidationHints:
    expected: Optional[str] = None
    for line in code.split("\n") + [trailing_line]:
        match = EXPECTED_RE.search(line)
        if match:
            expected = match.group(1).strip()
            break

    dependencies, imported = _snippet_imports(code)
    defined = set(DEFINITION_RE.findall(code)) | set(ASSIGNMENT_RE.findall(code))
    called = set(FREE_CALL_RE.findall(code))
    unknown = called - defined - imported - CODE_KEYWORDS - SNIPPET_BUILTINS
    return ValidationHints(expected_behavior=expected, dependencies=dependencies, context_required=bool(unknown))


_PY_FROM_IMPORT_RE = re.compile(r"^\s*from\s+([\w.]+)\s+import\s+(.+)$", re.MULTILINE)
_PY_IMPORT_RE = re.compile(r"^\s*import\s+([\w.]+)(?:\s+as\s+(\w+))?\s*$", re.MULTILINE)
_JS_IMPORT_RE = re.compile(r"^\s*import\s+(.+?)\s+from\s+['\"]([^'\"]+)['\"]", re.MULTILINE)
_JS_REQUIRE_RE = re.compile(r"(?:const|let|var)\s+(.+?)\s*=\s*require\(\s*['\"]([^'\"]+)['\"]\s*\)")
_RUST_USE_RE = re.compile(r"^\s*use\s+([\w:]+)(?:::\{([^}]*)\})?", re.MULTILINE)


def _snippet_imports(code: str) -> Tuple[List[str], Set[str]]:
    """Module names imported by a snippet and the local names those imports bind."""
    modules: List[str] = []
    names: Set[str] = set()

    def bind(text: str) -> None:
        for part in re.split(r"[,{}\s]+", text.replace("* as ", "")):
            if part and part not in {"as", "type"}:
                names.add(part)

    for module, imported in _PY_FROM_IMPORT_RE.findall(code):
        modules.append(module)
        bind(re.sub(r"\b\w+\s+as\s+", "", imported.strip("() ")))
    for module, alias in _PY_IMPORT_RE.findall(code):
        modules.append(module)
        names.add(alias or module.split(".")[0])
    for imported, module in _JS_IMPORT_RE.findall(code) + _JS_REQUIRE_RE.findall(code):
        modules.append(module)
        bind(re.sub(r"\b\w+\s+as\s+", "", imported))
    for path, group in _RUST_USE_RE.findall(code):
        modules.append(path)
        if group:
            bind(group)
        else:
            names.add(path.split("::")[-1])
    return list(dict.fromkeys(modules)), names
