"""
Tree-sitter adapter for Python source.

Produces FileModel / SymbolInfo records and call-graph facts (call sites,
conditional branches, exception paths) from Tree-sitter nodes.
"""

from __future__ import annotations

import re
from pathlib import Path
from typing import List, Optional, Tuple

from tree_sitter import Node, Tree

from ..models import (
    CallSite,
    ConditionalBranch,
    ExceptionPath,
    FileModel,
    ImportedName,
    ImportInfo,
    ParameterInfo,
    SymbolInfo,
)
from ..utils import count_code_lines, hash_source_snippet, looks_like_class_name, unique_sorted
from .nodes import count_branches, has_child_type, line_span, node_text, strip_quotes, walk

BRANCH_TYPES = {
    "if_statement",
    "elif_clause",
    "for_statement",
    "while_statement",
    "try_statement",
    "except_clause",
    "with_statement",
    "conditional_expression",
    "for_in_clause",
    "case_clause",
}
BOOLEAN_OPERATORS = {"and", "or"}
DEFINITION_TYPES = {"function_definition", "class_definition"}

BUILTIN_CALLS = {
    "print", "len", "range", "str", "int", "float", "bool", "bytes", "list", "dict",
    "set", "frozenset", "tuple", "isinstance", "issubclass", "super", "type", "getattr",
    "setattr", "hasattr", "enumerate", "zip", "map", "filter", "sorted", "reversed",
    "min", "max", "sum", "any", "all", "open", "repr", "abs", "round", "iter", "next",
    "id", "hash", "vars", "dir", "format", "object", "callable",
    "Exception", "ValueError", "TypeError", "KeyError", "IndexError", "RuntimeError",
    "NotImplementedError", "AttributeError", "OSError",
}

_TYPE_STATEMENT_RE = re.compile(r"^type\s+([A-Za-z_][A-Za-z0-9_]*)")
_PLAIN_CALLEE_RE = re.compile(r"^[A-Za-z_][A-Za-z0-9_.]*$")


def extract_file_model(tree: Tree, source: str, file_path: str, content_hash: str, language: str = "python") -> FileModel:
    root = tree.root_node
    lines = source.splitlines()
    declared_all = _extract_dunder_all(root)

    def is_public(name: str) -> bool:
        if declared_all is not None:
            return name in declared_all
        return not name.startswith("_")

    functions: List[SymbolInfo] = []
    classes: List[SymbolInfo] = []
    types: List[SymbolInfo] = []

    for child in root.named_children:
        definition = _unwrap_decorated(child)
        if definition.type == "function_definition":
            name = node_text(definition.child_by_field_name("name"))
            functions.append(_build_function(definition, file_path, lines, None, is_public(name)))
        elif definition.type == "class_definition":
            name = node_text(definition.child_by_field_name("name"))
            class_symbol = _build_class(definition, file_path, lines, is_public(name))
            classes.append(class_symbol)
            functions.extend(_build_methods(definition, file_path, lines, class_symbol))
        elif child.type == "type_alias_statement":
            alias = _build_type_statement(child, file_path, lines, is_public)
            if alias:
                types.append(alias)
        elif child.type == "expression_statement":
            alias = _build_assigned_alias(child, file_path, lines, is_public)
            if alias:
                types.append(alias)

    if declared_all is not None:
        exports = list(declared_all)
    else:
        exports = [
            symbol.name
            for symbol in [*functions, *classes, *types]
            if symbol.class_name is None and symbol.is_exported
        ]

    return FileModel(
        file_path=file_path,
        language=language,
        functions=functions,
        classes=classes,
        types=types,
        exports=exports,
        imports=_extract_imports(root),
        complexity=1 + count_branches(root, BRANCH_TYPES, BOOLEAN_OPERATORS),
        content_hash=content_hash,
        lines_of_code=count_code_lines(source, ("#",)),
    )


# --- Symbol builders ---

def _build_function(
    node: Node,
    file_path: str,
    lines: List[str],
    class_name: Optional[str],
    exported: bool,
) -> SymbolInfo:
    name = node_text(node.child_by_field_name("name"))
    parameters, param_texts = _extract_parameters(node, skip_receiver=class_name is not None)
    return_node = node.child_by_field_name("return_type")
    return_type = _normalize(node_text(return_node)) if return_node else None
    is_async = has_child_type(node, "async")

    signature = f"{'async ' if is_async else ''}{name}({', '.join(param_texts)})"
    if return_type:
        signature += f" -> {return_type}"

    start_line, end_line = line_span(node)
    body = node.child_by_field_name("body")
    calls = extract_call_sites(body) if body else []

    return SymbolInfo(
        name=name,
        kind="function",
        file_path=file_path,
        signature=signature,
        parameters=parameters,
        return_type=return_type,
        dependencies=_dependency_names(calls),
        is_exported=exported,
        has_doc_comment=_has_docstring(node),
        is_async=is_async,
        class_name=class_name,
        line_start=start_line,
        line_end=end_line,
        complexity=1 + count_branches(node, BRANCH_TYPES, BOOLEAN_OPERATORS),
        hash_body=hash_source_snippet(lines, start_line, end_line),
    )


def _build_class(node: Node, file_path: str, lines: List[str], exported: bool) -> SymbolInfo:
    name = node_text(node.child_by_field_name("name"))
    bases: List[str] = []
    superclasses = node.child_by_field_name("superclasses")
    if superclasses:
        for base in superclasses.named_children:
            if base.type != "keyword_argument":
                bases.append(_normalize(node_text(base)))
    signature = f"class {name}({', '.join(bases)})" if bases else f"class {name}"
    start_line, end_line = line_span(node)
    return SymbolInfo(
        name=name,
        kind="class",
        file_path=file_path,
        signature=signature,
        dependencies=unique_sorted(base.rsplit(".", 1)[-1] for base in bases),
        is_exported=exported,
        has_doc_comment=_has_docstring(node),
        line_start=start_line,
        line_end=end_line,
        complexity=1 + count_branches(node, BRANCH_TYPES, BOOLEAN_OPERATORS),
        hash_body=hash_source_snippet(lines, start_line, end_line),
    )


def _build_methods(class_node: Node, file_path: str, lines: List[str], class_symbol: SymbolInfo) -> List[SymbolInfo]:
    body = class_node.child_by_field_name("body")
    if not body:
        return []
    methods: List[SymbolInfo] = []
    for child in body.named_children:
        definition = _unwrap_decorated(child)
        if definition.type != "function_definition":
            continue
        name = node_text(definition.child_by_field_name("name"))
        public = not name.startswith("_") or (name.startswith("__") and name.endswith("__"))
        methods.append(
            _build_function(definition, file_path, lines, class_symbol.name, class_symbol.is_exported and public)
        )
    return methods


def _build_type_statement(node: Node, file_path: str, lines: List[str], is_public) -> Optional[SymbolInfo]:
    text = _normalize(node_text(node))
    match = _TYPE_STATEMENT_RE.match(text)
    if not match:
        return None
    return _type_symbol(match.group(1), text, node, file_path, lines, is_public)


def _build_assigned_alias(node: Node, file_path: str, lines: List[str], is_public) -> Optional[SymbolInfo]:
    assignment = node.named_children[0] if node.named_children else None
    if assignment is None or assignment.type != "assignment":
        return None
    left = assignment.child_by_field_name("left")
    if left is None or left.type != "identifier":
        return None
    annotation = assignment.child_by_field_name("type")
    right = assignment.child_by_field_name("right")
    is_alias = annotation is not None and node_text(annotation).split(".")[-1] == "TypeAlias"
    if not is_alias and right is not None and right.type == "call":
        callee = node_text(right.child_by_field_name("function"))
        is_alias = callee.split(".")[-1] == "NewType"
    if not is_alias:
        return None
    return _type_symbol(node_text(left), _normalize(node_text(node)), node, file_path, lines, is_public)


def _type_symbol(name: str, signature: str, node: Node, file_path: str, lines: List[str], is_public) -> SymbolInfo:
    start_line, end_line = line_span(node)
    prev = node.prev_named_sibling
    return SymbolInfo(
        name=name,
        kind="type",
        file_path=file_path,
        signature=signature,
        is_exported=is_public(name),
        has_doc_comment=prev is not None and prev.type == "comment" and prev.end_point[0] + 1 == start_line - 1,
        line_start=start_line,
        line_end=end_line,
        hash_body=hash_source_snippet(lines, start_line, end_line),
    )


def _extract_parameters(node: Node, skip_receiver: bool) -> Tuple[List[ParameterInfo], List[str]]:
    params_node = node.child_by_field_name("parameters")
    if not params_node:
        return [], []
    parameters: List[ParameterInfo] = []
    texts: List[str] = []
    for index, child in enumerate(params_node.named_children):
        if child.type in {"keyword_separator", "positional_separator", "comment"}:
            continue
        if child.type == "identifier":
            info = ParameterInfo(name=node_text(child))
        elif child.type == "typed_parameter":
            name_node = child.named_children[0] if child.named_children else None
            info = ParameterInfo(
                name=node_text(name_node),
                type=_normalize(node_text(child.child_by_field_name("type"))) or None,
                optional=name_node is not None and name_node.type != "identifier",
            )
        elif child.type in {"default_parameter", "typed_default_parameter"}:
            type_node = child.child_by_field_name("type")
            info = ParameterInfo(
                name=node_text(child.child_by_field_name("name")),
                type=_normalize(node_text(type_node)) if type_node else None,
                optional=True,
                default=_normalize(node_text(child.child_by_field_name("value"))),
            )
        elif child.type in {"list_splat_pattern", "dictionary_splat_pattern"}:
            info = ParameterInfo(name=node_text(child), optional=True)
        else:
            info = ParameterInfo(name=_normalize(node_text(child)))
        if skip_receiver and index == 0 and info.name in {"self", "cls"}:
            continue
        parameters.append(info)
        texts.append(_normalize(node_text(child)))
    return parameters, texts


# --- Module-level facts ---

def _extract_dunder_all(root: Node) -> Optional[List[str]]:
    names: Optional[List[str]] = None
    for child in root.named_children:
        if child.type != "expression_statement" or not child.named_children:
            continue
        statement = child.named_children[0]
        if statement.type not in {"assignment", "augmented_assignment"}:
            continue
        if node_text(statement.child_by_field_name("left")) != "__all__":
            continue
        right = statement.child_by_field_name("right")
        if right is None or right.type not in {"list", "tuple"}:
            continue
        if statement.type == "assignment" or names is None:
            names = []
        for item in right.named_children:
            if item.type == "string":
                names.append(strip_quotes(node_text(item)))
    return names


def _extract_imports(root: Node) -> List[ImportInfo]:
    imports: List[ImportInfo] = []
    for child in walk(root):
        if child.type == "import_statement":
            for name_node in child.children_by_field_name("name"):
                module, alias = _imported_name(name_node)
                imports.append(
                    ImportInfo(
                        source=module,
                        names=[ImportedName(name=module, alias=alias)],
                        is_namespace=True,
                        line=child.start_point[0] + 1,
                    )
                )
        elif child.type == "import_from_statement":
            module = node_text(child.child_by_field_name("module_name"))
            names: List[ImportedName] = []
            for name_node in child.children_by_field_name("name"):
                name, alias = _imported_name(name_node)
                names.append(ImportedName(name=name, alias=alias))
            if has_child_type(child, "wildcard_import"):
                names.append(ImportedName(name="*"))
            imports.append(ImportInfo(source=module, names=names, line=child.start_point[0] + 1))
    return imports


def _imported_name(node: Node) -> Tuple[str, Optional[str]]:
    if node.type == "aliased_import":
        return node_text(node.child_by_field_name("name")), node_text(node.child_by_field_name("alias")) or None
    return node_text(node), None


def resolve_module(module: str, importing_file: Path, project_root: Path) -> Optional[Path]:
    """Map a Python module reference to a file inside the project, if one exists."""
    if module.startswith("."):
        level = len(module) - len(module.lstrip("."))
        base = importing_file.parent
        for _ in range(level - 1):
            base = base.parent
        remainder = module[level:]
        bases = [base]
    else:
        remainder = module
        bases = [project_root, project_root / "src", importing_file.parent]

    for base in bases:
        target = base.joinpath(*remainder.split(".")) if remainder else base
        candidates = [target / "__init__.py"]
        if remainder:
            candidates.insert(0, target.with_name(target.name + ".py"))
        for candidate in candidates:
            if candidate.is_file():
                return candidate.resolve()
    return None


def join_module(module: str, name: str) -> Optional[str]:
    if module.endswith("."):
        return f"{module}{name}"
    return f"{module}.{name}"


# --- Call graph facts ---

def find_definition(root: Node, name: str, class_name: Optional[str] = None) -> Optional[Node]:
    if class_name:
        class_node = find_definition(root, class_name)
        if class_node is None or class_node.type != "class_definition":
            return None
        body = class_node.child_by_field_name("body")
        for child in body.named_children if body else []:
            definition = _unwrap_decorated(child)
            if definition.type == "function_definition" and node_text(definition.child_by_field_name("name")) == name:
                return definition
        return None

    for child in root.named_children:
        definition = _unwrap_decorated(child)
        if definition.type in DEFINITION_TYPES and node_text(definition.child_by_field_name("name")) == name:
            return definition
    for child in walk(root):
        if child.type in DEFINITION_TYPES and node_text(child.child_by_field_name("name")) == name:
            return child
    return None


def extract_call_sites(node: Node) -> List[CallSite]:
    sites: List[CallSite] = []
    for child in walk(node):
        if child.type != "call":
            continue
        callee = _callee_name(child.child_by_field_name("function"))
        if not callee:
            continue
        short_name = callee.rsplit(".", 1)[-1]
        sites.append(
            CallSite(
                callee=callee,
                line=child.start_point[0] + 1,
                is_constructor=looks_like_class_name(short_name),
            )
        )
    return sites


def extract_conditionals(node: Node) -> List[ConditionalBranch]:
    branches: List[ConditionalBranch] = []
    for child in walk(node):
        if child.type in {"if_statement", "elif_clause"}:
            kind = "if" if child.type == "if_statement" else "elif"
            branches.append(
                _branch(kind, child.child_by_field_name("condition"), child.child_by_field_name("consequence"), child)
            )
        elif child.type == "else_clause":
            branches.append(_branch("else", None, child.child_by_field_name("body"), child))
        elif child.type == "case_clause":
            pattern = next((part for part in child.named_children if part.type == "case_pattern"), None)
            branches.append(_branch("case", pattern, child.child_by_field_name("consequence"), child))
        elif child.type == "conditional_expression" and len(child.named_children) == 3:
            value, condition, alternative = child.named_children
            calls = extract_call_sites(value) + extract_call_sites(alternative)
            branches.append(
                ConditionalBranch(
                    kind="ternary",
                    condition=_normalize(node_text(condition)),
                    line=child.start_point[0] + 1,
                    calls=[call.callee for call in calls],
                )
            )
    return branches


def extract_exceptions(node: Node) -> List[ExceptionPath]:
    paths: List[ExceptionPath] = []
    for child in walk(node):
        if child.type == "raise_statement":
            target = child.named_children[0] if child.named_children else None
            exception_type = _exception_name(target) if target is not None else "re-raise"
            paths.append(ExceptionPath(exception_type=exception_type, line=child.start_point[0] + 1, is_caught=False))
        elif child.type == "except_clause":
            exception_type = "Exception"
            for part in child.named_children:
                if part.type == "block":
                    break
                if part.type == "as_pattern" and part.named_children:
                    part = part.named_children[0]
                exception_type = _normalize(node_text(part))
                break
            paths.append(ExceptionPath(exception_type=exception_type, line=child.start_point[0] + 1, is_caught=True))
    return paths


def is_builtin(name: str) -> bool:
    return name in BUILTIN_CALLS


# --- Helpers ---

def _branch(kind: str, condition: Optional[Node], consequence: Optional[Node], node: Node) -> ConditionalBranch:
    calls = extract_call_sites(consequence) if consequence is not None else []
    return ConditionalBranch(
        kind=kind,
        condition=_normalize(node_text(condition)) if condition is not None else "",
        line=node.start_point[0] + 1,
        calls=[call.callee for call in calls],
    )


def _callee_name(func: Optional[Node]) -> Optional[str]:
    if func is None:
        return None
    if func.type == "identifier":
        return node_text(func)
    if func.type == "attribute":
        text = _normalize(node_text(func))
        if _PLAIN_CALLEE_RE.match(text):
            return text
        return node_text(func.child_by_field_name("attribute")) or None
    return None


def _exception_name(node: Node) -> str:
    if node.type == "call":
        return node_text(node.child_by_field_name("function"))
    return _normalize(node_text(node))


def _dependency_names(calls: List[CallSite]) -> List[str]:
    names = (call.callee.rsplit(".", 1)[-1] for call in calls)
    return unique_sorted(name for name in names if name and not is_builtin(name) and not name.startswith("__"))


def _unwrap_decorated(node: Node) -> Node:
    if node.type == "decorated_definition":
        definition = node.child_by_field_name("definition")
        if definition is not None:
            return definition
    return node


def _has_docstring(node: Node) -> bool:
    body = node.child_by_field_name("body")
    if not body or not body.named_children:
        return False
    first = body.named_children[0]
    return (
        first.type == "expression_statement"
        and bool(first.named_children)
        and first.named_children[0].type == "string"
    )


def _normalize(text: str) -> str:
    return " ".join(text.split())
