"""
Tree-sitter adapter for Rust source.
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
from .nodes import count_branches, line_span, node_text, walk

BRANCH_TYPES = {
    "if_expression",
    "match_expression",
    "while_expression",
    "for_expression",
    "loop_expression",
}
BOOLEAN_OPERATORS = {"&&", "||"}
TYPE_ITEMS = {"struct_item", "enum_item", "trait_item", "type_item", "union_item"}
PANIC_MACROS = {"panic", "unreachable", "unimplemented", "todo"}

BUILTIN_CALLS = {
    "Some", "None", "Ok", "Err", "Box", "Vec", "String", "clone", "to_string",
    "unwrap", "expect", "into", "iter", "collect", "map", "len", "push", "format",
}

_USE_PREFIX_RE = re.compile(r"^(pub(\([^)]*\))?\s+)?use\s+")


def extract_file_model(tree: Tree, source: str, file_path: str, content_hash: str, language: str = "rust") -> FileModel:
    root = tree.root_node
    lines = source.splitlines()

    functions: List[SymbolInfo] = []
    classes: List[SymbolInfo] = []
    types: List[SymbolInfo] = []

    for child in root.named_children:
        if child.type == "function_item":
            functions.append(_build_function(child, file_path, lines, None, _is_pub(child)))
        elif child.type in TYPE_ITEMS:
            types.append(_build_type(child, file_path, lines))
        elif child.type == "impl_item":
            functions.extend(_build_impl_methods(child, file_path, lines))

    exports = [
        symbol.name
        for symbol in [*functions, *types]
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
        lines_of_code=count_code_lines(source, ("//",)),
    )


def _build_function(
    node: Node,
    file_path: str,
    lines: List[str],
    class_name: Optional[str],
    exported: bool,
) -> SymbolInfo:
    name = node_text(node.child_by_field_name("name"))
    parameters, param_texts = _extract_parameters(node)
    return_node = node.child_by_field_name("return_type")
    return_type = _normalize(node_text(return_node)) if return_node else None
    is_async = _is_async(node)

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
        has_doc_comment=_has_doc_comment(node),
        is_async=is_async,
        class_name=class_name,
        line_start=start_line,
        line_end=end_line,
        complexity=1 + count_branches(node, BRANCH_TYPES, BOOLEAN_OPERATORS),
        hash_body=hash_source_snippet(lines, start_line, end_line),
    )


def _build_type(node: Node, file_path: str, lines: List[str]) -> SymbolInfo:
    name = node_text(node.child_by_field_name("name"))
    start_line, end_line = line_span(node)
    return SymbolInfo(
        name=name,
        kind="type",
        file_path=file_path,
        signature=_normalize(node_text(node)),
        is_exported=_is_pub(node),
        has_doc_comment=_has_doc_comment(node),
        line_start=start_line,
        line_end=end_line,
        hash_body=hash_source_snippet(lines, start_line, end_line),
    )


def _build_impl_methods(node: Node, file_path: str, lines: List[str]) -> List[SymbolInfo]:
    type_name = _impl_type_name(node)
    body = node.child_by_field_name("body")
    if not type_name or not body:
        return []
    # Trait implementations are public wherever the trait is
    trait_impl = node.child_by_field_name("trait") is not None
    methods: List[SymbolInfo] = []
    for child in body.named_children:
        if child.type == "function_item":
            methods.append(_build_function(child, file_path, lines, type_name, trait_impl or _is_pub(child)))
    return methods


def _extract_parameters(node: Node) -> Tuple[List[ParameterInfo], List[str]]:
    params_node = node.child_by_field_name("parameters")
    if not params_node:
        return [], []
    parameters: List[ParameterInfo] = []
    texts: List[str] = []
    for child in params_node.named_children:
        if child.type != "parameter":
            continue
        type_node = child.child_by_field_name("type")
        type_text = _normalize(node_text(type_node)) if type_node else None
        parameters.append(
            ParameterInfo(
                name=node_text(child.child_by_field_name("pattern")),
                type=type_text,
                optional=bool(type_text and type_text.startswith("Option<")),
            )
        )
        texts.append(_normalize(node_text(child)))
    return parameters, texts


def _extract_imports(root: Node) -> List[ImportInfo]:
    imports: List[ImportInfo] = []
    for child in root.named_children:
        if child.type != "use_declaration":
            continue
        path = _USE_PREFIX_RE.sub("", _normalize(node_text(child))).rstrip(";").strip()
        line = child.start_point[0] + 1
        if "{" in path:
            prefix, _, rest = path.partition("{")
            names: List[ImportedName] = []
            is_namespace = False
            for item in rest.rstrip("}").split(","):
                item = item.strip()
                if not item:
                    continue
                if item == "self":
                    is_namespace = True
                    continue
                names.append(_use_item(item))
            imports.append(ImportInfo(source=prefix.rstrip(":"), names=names, is_namespace=is_namespace, line=line))
        else:
            source, _, last = path.rpartition("::")
            imports.append(ImportInfo(source=source, names=[_use_item(last)], line=line))
    return imports


def _use_item(item: str) -> ImportedName:
    if " as " in item:
        name, alias = [part.strip() for part in item.split(" as ", 1)]
        return ImportedName(name=name, alias=alias)
    return ImportedName(name=item)


def resolve_module(module: str, importing_file: Path, project_root: Path) -> Optional[Path]:
    """Resolve `crate::`, `super::`, `self::` and sibling module paths to a `.rs` file."""
    parts = [part for part in module.split("::") if part]
    if not parts:
        return None
    head = parts[0]
    if head == "crate":
        base = _crate_src_dir(importing_file, project_root)
        parts = parts[1:]
    elif head == "super":
        base = importing_file.parent
        if importing_file.name == "mod.rs":
            base = base.parent
        parts = parts[1:]
        while parts and parts[0] == "super":
            base = base.parent
            parts = parts[1:]
    elif head == "self":
        base = importing_file.parent
        if importing_file.name not in {"mod.rs", "lib.rs", "main.rs"}:
            base = base / importing_file.stem
        parts = parts[1:]
    else:
        base = importing_file.parent

    if not parts:
        for candidate in (base / "lib.rs", base / "main.rs", base / "mod.rs"):
            if candidate.is_file():
                return candidate.resolve()
        return None

    target = base.joinpath(*parts)
    for candidate in (target.with_name(target.name + ".rs"), target / "mod.rs"):
        if candidate.is_file():
            return candidate.resolve()
    return None


def _crate_src_dir(importing_file: Path, project_root: Path) -> Path:
    current = importing_file.parent
    while True:
        if (current / "Cargo.toml").is_file():
            return current / "src"
        if current == project_root or current == current.parent:
            break
        current = current.parent
    return project_root / "src"


def join_module(module: str, name: str) -> Optional[str]:
    return f"{module}::{name}" if module else name


def find_definition(root: Node, name: str, class_name: Optional[str] = None) -> Optional[Node]:
    if class_name:
        for child in walk(root):
            if child.type == "impl_item" and _impl_type_name(child) == class_name:
                body = child.child_by_field_name("body")
                for item in body.named_children if body else []:
                    if item.type == "function_item" and node_text(item.child_by_field_name("name")) == name:
                        return item
        return None
    for child in walk(root):
        if child.type in {"function_item", *TYPE_ITEMS} and node_text(child.child_by_field_name("name")) == name:
            if child.type != "function_item" or not _inside_impl(child):
                return child
    return None


def extract_call_sites(node: Node) -> List[CallSite]:
    sites: List[CallSite] = []
    for child in walk(node):
        if child.type != "call_expression":
            continue
        callee = _callee_name(child.child_by_field_name("function"))
        if not callee:
            continue
        qualifier, _, short_name = callee.rpartition(".")
        is_constructor = looks_like_class_name(short_name) or (
            short_name == "new" and looks_like_class_name(qualifier.rsplit(".", 1)[-1])
        )
        sites.append(CallSite(callee=callee, line=child.start_point[0] + 1, is_constructor=is_constructor))
    return sites


def extract_conditionals(node: Node) -> List[ConditionalBranch]:
    branches: List[ConditionalBranch] = []
    for child in walk(node):
        if child.type == "if_expression":
            kind = "elif" if child.parent is not None and child.parent.type == "else_clause" else "if"
            branches.append(
                _branch(kind, child.child_by_field_name("condition"), child.child_by_field_name("consequence"), child)
            )
        elif child.type == "else_clause":
            nested = child.named_children[0] if child.named_children else None
            if nested is not None and nested.type == "if_expression":
                continue
            branches.append(_branch("else", None, nested, child))
        elif child.type == "match_arm":
            branches.append(
                _branch("case", child.child_by_field_name("pattern"), child.child_by_field_name("value"), child)
            )
    return branches


def extract_exceptions(node: Node) -> List[ExceptionPath]:
    paths: List[ExceptionPath] = []
    for child in walk(node):
        line = child.start_point[0] + 1
        if child.type == "try_expression":
            paths.append(ExceptionPath(exception_type="Err", line=line, is_caught=False))
        elif child.type == "macro_invocation":
            macro = node_text(child.child_by_field_name("macro"))
            if macro in PANIC_MACROS:
                paths.append(ExceptionPath(exception_type="panic", line=line, is_caught=False))
        elif child.type == "match_arm":
            pattern = _normalize(node_text(child.child_by_field_name("pattern")))
            if pattern.startswith("Err"):
                paths.append(ExceptionPath(exception_type="Err", line=line, is_caught=True))
    return paths


def is_builtin(name: str) -> bool:
    return name in BUILTIN_CALLS


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
    if func.type in {"scoped_identifier", "field_expression"}:
        text = _normalize(node_text(func)).replace("::", ".")
        if re.match(r"^[A-Za-z_][A-Za-z0-9_.]*$", text):
            return text
        last = func.child_by_field_name("name") or func.child_by_field_name("field")
        return node_text(last) or None
    if func.type == "generic_function":
        return _callee_name(func.child_by_field_name("function"))
    return None


def _dependency_names(calls: List[CallSite]) -> List[str]:
    names = []
    for call in calls:
        qualifier, _, short_name = call.callee.rpartition(".")
        if short_name == "new" and qualifier:
            short_name = qualifier.rsplit(".", 1)[-1]
        names.append(short_name)
    return unique_sorted(name for name in names if name and name != "self" and not is_builtin(name))


def _impl_type_name(node: Node) -> Optional[str]:
    type_node = node.child_by_field_name("type")
    if type_node is None:
        return None
    return node_text(type_node).split("<")[0].strip() or None


def _inside_impl(node: Node) -> bool:
    parent = node.parent
    while parent is not None:
        if parent.type in {"impl_item", "trait_item"}:
            return True
        parent = parent.parent
    return False


def _is_pub(node: Node) -> bool:
    return any(child.type == "visibility_modifier" for child in node.children)


def _is_async(node: Node) -> bool:
    for child in node.children:
        if child.type == "async":
            return True
        if child.type == "function_modifiers" and "async" in node_text(child).split():
            return True
    return False


def _has_doc_comment(node: Node) -> bool:
    prev = node.prev_sibling
    while prev is not None and prev.type == "attribute_item":
        prev = prev.prev_sibling
    if prev is None or prev.type not in {"line_comment", "block_comment"}:
        return False
    text = node_text(prev)
    return text.startswith("///") or text.startswith("/**")


def _normalize(text: str) -> str:
    return " ".join(text.split())
