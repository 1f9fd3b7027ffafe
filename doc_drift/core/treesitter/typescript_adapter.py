"""
Tree-sitter adapter for TypeScript/TSX and JavaScript source.
"""

from __future__ import annotations

import re
from pathlib import Path
from typing import List, Optional, Set, Tuple

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
    "for_statement",
    "for_in_statement",
    "while_statement",
    "do_statement",
    "switch_case",
    "catch_clause",
    "ternary_expression",
}
BOOLEAN_OPERATORS = {"&&", "||", "??"}
FUNCTION_DECLARATIONS = {"function_declaration", "generator_function_declaration"}
CLASS_DECLARATIONS = {"class_declaration", "abstract_class_declaration"}
FUNCTION_VALUES = {"arrow_function", "function_expression", "function", "generator_function"}
TYPE_DECLARATIONS = {"interface_declaration", "enum_declaration", "type_alias_declaration"}
EXPORTABLE_DECLARATIONS = (
    FUNCTION_DECLARATIONS | CLASS_DECLARATIONS | TYPE_DECLARATIONS | {"lexical_declaration", "variable_declaration"}
)
MODULE_EXTENSIONS = [".ts", ".tsx", ".js", ".jsx", ".mjs", ".cjs", ".mts", ".cts"]

BUILTIN_CALLS = {
    "console", "log", "require", "parseInt", "parseFloat", "String", "Number", "Boolean",
    "Array", "Object", "Promise", "Error", "TypeError", "RangeError", "JSON", "Math",
    "setTimeout", "clearTimeout", "setInterval", "clearInterval", "Symbol", "Date",
    "Map", "Set", "push", "map", "filter", "reduce", "forEach", "then", "catch",
}

_PLAIN_CALLEE_RE = re.compile(r"^[A-Za-z_$][A-Za-z0-9_$.]*$")


def extract_file_model(tree: Tree, source: str, file_path: str, content_hash: str, language: str) -> FileModel:
    root = tree.root_node
    lines = source.splitlines()
    clause_exports, exports = _collect_export_clauses(root)

    functions: List[SymbolInfo] = []
    classes: List[SymbolInfo] = []
    types: List[SymbolInfo] = []

    def visit(declaration: Node, exported: bool) -> None:
        if declaration.type in FUNCTION_DECLARATIONS:
            name = node_text(declaration.child_by_field_name("name"))
            is_exported = exported or name in clause_exports
            functions.append(_build_function(declaration, declaration, name, file_path, lines, None, is_exported))
        elif declaration.type in CLASS_DECLARATIONS:
            name = node_text(declaration.child_by_field_name("name"))
            class_symbol = _build_class(declaration, name, file_path, lines, exported or name in clause_exports)
            classes.append(class_symbol)
            functions.extend(_build_methods(declaration, file_path, lines, class_symbol))
        elif declaration.type in {"lexical_declaration", "variable_declaration"}:
            for declarator in declaration.named_children:
                if declarator.type != "variable_declarator":
                    continue
                value = declarator.child_by_field_name("value")
                if value is None or value.type not in FUNCTION_VALUES:
                    continue
                name = node_text(declarator.child_by_field_name("name"))
                is_exported = exported or name in clause_exports
                functions.append(_build_function(value, declaration, name, file_path, lines, None, is_exported, span_node=declarator))
        elif declaration.type in TYPE_DECLARATIONS:
            name = node_text(declaration.child_by_field_name("name"))
            types.append(_build_type(declaration, name, file_path, lines, exported or name in clause_exports))

    for child in root.named_children:
        if child.type == "export_statement":
            for declaration in child.named_children:
                visit(declaration, exported=True)
                if declaration.type in EXPORTABLE_DECLARATIONS:
                    exports.extend(_declared_names(declaration))
        else:
            visit(child, exported=False)

    return FileModel(
        file_path=file_path,
        language=language,
        functions=functions,
        classes=classes,
        types=types,
        exports=list(dict.fromkeys(exports)),
        imports=_extract_imports(root),
        complexity=1 + count_branches(root, BRANCH_TYPES, BOOLEAN_OPERATORS),
        content_hash=content_hash,
        lines_of_code=count_code_lines(source, ("//", "/*", "*")),
    )


# --- Symbol builders ---

def _build_function(
    func_node: Node,
    doc_anchor: Node,
    name: str,
    file_path: str,
    lines: List[str],
    class_name: Optional[str],
    exported: bool,
    span_node: Optional[Node] = None,
) -> SymbolInfo:
    parameters, param_texts = _extract_parameters(func_node)
    return_type = _type_annotation(func_node.child_by_field_name("return_type"))
    is_async = has_child_type(func_node, "async") or has_child_type(doc_anchor, "async")

    signature = f"{'async ' if is_async else ''}{name}({', '.join(param_texts)})"
    if return_type:
        signature += f": {return_type}"

    start_line, end_line = line_span(span_node or doc_anchor)
    body = func_node.child_by_field_name("body")
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
        has_doc_comment=_has_jsdoc(doc_anchor),
        is_async=is_async,
        class_name=class_name,
        line_start=start_line,
        line_end=end_line,
        complexity=1 + count_branches(func_node, BRANCH_TYPES, BOOLEAN_OPERATORS),
        hash_body=hash_source_snippet(lines, start_line, end_line),
    )


def _build_class(node: Node, name: str, file_path: str, lines: List[str], exported: bool) -> SymbolInfo:
    heritage: List[str] = []
    bases: List[str] = []
    for child in node.named_children:
        if child.type != "class_heritage":
            continue
        heritage.append(_normalize(node_text(child)))
        for clause in child.named_children:
            for item in clause.named_children:
                if item.type in {"identifier", "type_identifier", "member_expression", "generic_type"}:
                    bases.append(node_text(item).split("<")[0].rsplit(".", 1)[-1])
    prefix = "abstract class" if node.type == "abstract_class_declaration" else "class"
    signature = " ".join([f"{prefix} {name}", *heritage])
    start_line, end_line = line_span(node)
    return SymbolInfo(
        name=name,
        kind="class",
        file_path=file_path,
        signature=signature,
        dependencies=unique_sorted(bases),
        is_exported=exported,
        has_doc_comment=_has_jsdoc(node),
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
        if child.type == "method_definition":
            func_node = child
        elif child.type == "public_field_definition":
            value = child.child_by_field_name("value")
            if value is None or value.type not in FUNCTION_VALUES:
                continue
            func_node = value
        else:
            continue
        name_node = child.child_by_field_name("name")
        name = node_text(name_node)
        private = _is_private_member(child) or name.startswith("#")
        methods.append(
            _build_function(
                func_node,
                child,
                name,
                file_path,
                lines,
                class_symbol.name,
                class_symbol.is_exported and not private,
                span_node=child,
            )
        )
    return methods


def _build_type(node: Node, name: str, file_path: str, lines: List[str], exported: bool) -> SymbolInfo:
    start_line, end_line = line_span(node)
    return SymbolInfo(
        name=name,
        kind="type",
        file_path=file_path,
        signature=_normalize(node_text(node)),
        is_exported=exported,
        has_doc_comment=_has_jsdoc(node),
        line_start=start_line,
        line_end=end_line,
        hash_body=hash_source_snippet(lines, start_line, end_line),
    )


def _extract_parameters(node: Node) -> Tuple[List[ParameterInfo], List[str]]:
    single = node.child_by_field_name("parameter")
    if single is not None:
        name = node_text(single)
        return [ParameterInfo(name=name)], [name]

    params_node = node.child_by_field_name("parameters")
    if not params_node:
        return [], []
    parameters: List[ParameterInfo] = []
    texts: List[str] = []
    for child in params_node.named_children:
        if child.type not in {"required_parameter", "optional_parameter", "identifier", "assignment_pattern", "rest_pattern"}:
            continue
        if child.type in {"required_parameter", "optional_parameter"}:
            pattern = child.child_by_field_name("pattern")
            value = child.child_by_field_name("value")
            name = _normalize(node_text(pattern))
            if name == "this":
                continue
            parameters.append(
                ParameterInfo(
                    name=name,
                    type=_type_annotation(child.child_by_field_name("type")),
                    optional=child.type == "optional_parameter" or value is not None or name.startswith("..."),
                    default=_normalize(node_text(value)) if value is not None else None,
                )
            )
        elif child.type == "assignment_pattern":
            parameters.append(
                ParameterInfo(
                    name=node_text(child.child_by_field_name("left")),
                    optional=True,
                    default=_normalize(node_text(child.child_by_field_name("right"))),
                )
            )
        else:
            parameters.append(ParameterInfo(name=node_text(child), optional=child.type == "rest_pattern"))
        texts.append(_normalize(node_text(child)))
    return parameters, texts


# --- Module-level facts ---

def _collect_export_clauses(root: Node) -> Tuple[Set[str], List[str]]:
    """Local names exported through `export { ... }` and the public names they are exported as."""
    local_names: Set[str] = set()
    exported: List[str] = []
    for child in root.named_children:
        if child.type != "export_statement":
            continue
        for clause in child.named_children:
            if clause.type != "export_clause":
                continue
            for specifier in clause.named_children:
                if specifier.type != "export_specifier":
                    continue
                name = node_text(specifier.child_by_field_name("name"))
                alias = node_text(specifier.child_by_field_name("alias"))
                if child.child_by_field_name("source") is None:
                    local_names.add(name)
                exported.append(alias or name)
    return local_names, exported


def _declared_names(declaration: Node) -> List[str]:
    if declaration.type in {"lexical_declaration", "variable_declaration"}:
        return [
            node_text(declarator.child_by_field_name("name"))
            for declarator in declaration.named_children
            if declarator.type == "variable_declarator"
        ]
    name = node_text(declaration.child_by_field_name("name"))
    return [name] if name else []


def _extract_imports(root: Node) -> List[ImportInfo]:
    imports: List[ImportInfo] = []
    for child in root.named_children:
        if child.type != "import_statement":
            continue
        module = strip_quotes(node_text(child.child_by_field_name("source")))
        names: List[ImportedName] = []
        is_default = False
        is_namespace = False
        for clause in child.named_children:
            if clause.type != "import_clause":
                continue
            for part in clause.named_children:
                if part.type == "identifier":
                    is_default = True
                    names.append(ImportedName(name="default", alias=node_text(part)))
                elif part.type == "namespace_import":
                    is_namespace = True
                    alias = next((node_text(n) for n in part.named_children if n.type == "identifier"), "")
                    names.append(ImportedName(name="*", alias=alias or None))
                elif part.type == "named_imports":
                    for specifier in part.named_children:
                        if specifier.type != "import_specifier":
                            continue
                        names.append(
                            ImportedName(
                                name=node_text(specifier.child_by_field_name("name")),
                                alias=node_text(specifier.child_by_field_name("alias")) or None,
                            )
                        )
        imports.append(
            ImportInfo(
                source=module,
                names=names,
                is_default=is_default,
                is_namespace=is_namespace,
                line=child.start_point[0] + 1,
            )
        )
    return imports


def resolve_module(module: str, importing_file: Path, project_root: Path) -> Optional[Path]:
    """Resolve a relative module specifier (`./x`, `../y/z.js`) to a project file."""
    if not module.startswith("."):
        return None
    target = (importing_file.parent / module).resolve()
    stems = [target]
    if target.suffix in {".js", ".jsx", ".mjs", ".cjs"}:
        stems.append(target.with_suffix(""))
    for stem in stems:
        if stem.is_file():
            return stem
        for extension in MODULE_EXTENSIONS:
            candidate = stem.with_name(stem.name + extension)
            if candidate.is_file():
                return candidate
        for extension in MODULE_EXTENSIONS:
            candidate = stem / f"index{extension}"
            if candidate.is_file():
                return candidate
    return None


def join_module(module: str, name: str) -> Optional[str]:
    # Named imports are values, not modules
    return None


# --- Call graph facts ---

def find_definition(root: Node, name: str, class_name: Optional[str] = None) -> Optional[Node]:
    if class_name:
        class_node = find_definition(root, class_name)
        if class_node is None or class_node.type not in CLASS_DECLARATIONS:
            return None
        body = class_node.child_by_field_name("body")
        for child in body.named_children if body else []:
            if child.type in {"method_definition", "public_field_definition"} and node_text(child.child_by_field_name("name")) == name:
                if child.type == "public_field_definition":
                    return child.child_by_field_name("value")
                return child
        return None

    for child in walk(root):
        if child.type in FUNCTION_DECLARATIONS | CLASS_DECLARATIONS:
            if node_text(child.child_by_field_name("name")) == name:
                return child
        elif child.type == "variable_declarator" and node_text(child.child_by_field_name("name")) == name:
            value = child.child_by_field_name("value")
            if value is not None and value.type in FUNCTION_VALUES:
                return value
    return None


def extract_call_sites(node: Node) -> List[CallSite]:
    sites: List[CallSite] = []
    for child in walk(node):
        if child.type == "call_expression":
            callee = _callee_name(child.child_by_field_name("function"))
            if callee:
                short_name = callee.rsplit(".", 1)[-1]
                sites.append(CallSite(callee=callee, line=child.start_point[0] + 1, is_constructor=looks_like_class_name(short_name)))
        elif child.type == "new_expression":
            callee = _callee_name(child.child_by_field_name("constructor"))
            if callee:
                sites.append(CallSite(callee=callee, line=child.start_point[0] + 1, is_constructor=True))
    return sites


def extract_conditionals(node: Node) -> List[ConditionalBranch]:
    branches: List[ConditionalBranch] = []
    for child in walk(node):
        if child.type == "if_statement":
            kind = "elif" if child.parent is not None and child.parent.type == "else_clause" else "if"
            branches.append(
                _branch(kind, child.child_by_field_name("condition"), child.child_by_field_name("consequence"), child)
            )
        elif child.type == "else_clause":
            nested = child.named_children[0] if child.named_children else None
            if nested is not None and nested.type == "if_statement":
                continue
            branches.append(_branch("else", None, nested, child))
        elif child.type in {"switch_case", "switch_default"}:
            value = child.child_by_field_name("value")
            branch = _branch("case", value, child, child)
            if value is None:
                branch.condition = "default"
            branches.append(branch)
        elif child.type == "ternary_expression":
            calls = extract_call_sites(child.child_by_field_name("consequence")) if child.child_by_field_name("consequence") else []
            alternative = child.child_by_field_name("alternative")
            if alternative is not None:
                calls += extract_call_sites(alternative)
            branches.append(
                ConditionalBranch(
                    kind="ternary",
                    condition=_normalize(node_text(child.child_by_field_name("condition"))),
                    line=child.start_point[0] + 1,
                    calls=[call.callee for call in calls],
                )
            )
    return branches


def extract_exceptions(node: Node) -> List[ExceptionPath]:
    paths: List[ExceptionPath] = []
    for child in walk(node):
        if child.type == "throw_statement":
            target = child.named_children[0] if child.named_children else None
            if target is not None and target.type == "new_expression":
                exception_type = node_text(target.child_by_field_name("constructor"))
            else:
                exception_type = _normalize(node_text(target)) if target is not None else "unknown"
            paths.append(ExceptionPath(exception_type=exception_type, line=child.start_point[0] + 1, is_caught=False))
        elif child.type == "catch_clause":
            parameter = child.child_by_field_name("parameter")
            annotation = child.child_by_field_name("type")
            exception_type = _type_annotation(annotation) or (node_text(parameter) if parameter is not None else "any")
            paths.append(ExceptionPath(exception_type=exception_type, line=child.start_point[0] + 1, is_caught=True))
    return paths


def is_builtin(name: str) -> bool:
    return name in BUILTIN_CALLS


# --- Helpers ---

def _branch(kind: str, condition: Optional[Node], consequence: Optional[Node], node: Node) -> ConditionalBranch:
    calls = extract_call_sites(consequence) if consequence is not None else []
    condition_text = _normalize(node_text(condition)) if condition is not None else ""
    if condition_text.startswith("(") and condition_text.endswith(")"):
        condition_text = condition_text[1:-1]
    return ConditionalBranch(
        kind=kind,
        condition=condition_text,
        line=node.start_point[0] + 1,
        calls=[call.callee for call in calls],
    )


def _callee_name(func: Optional[Node]) -> Optional[str]:
    if func is None:
        return None
    if func.type == "identifier":
        return node_text(func)
    if func.type == "member_expression":
        text = _normalize(node_text(func))
        if _PLAIN_CALLEE_RE.match(text):
            return text
        return node_text(func.child_by_field_name("property")) or None
    return None


def _dependency_names(calls: List[CallSite]) -> List[str]:
    names = (call.callee.rsplit(".", 1)[-1] for call in calls)
    return unique_sorted(name for name in names if name and not is_builtin(name))


def _type_annotation(node: Optional[Node]) -> Optional[str]:
    if node is None:
        return None
    text = _normalize(node_text(node))
    if text.startswith(":"):
        text = text[1:].strip()
    return text or None


def _has_jsdoc(node: Node) -> bool:
    anchor = node
    if anchor.parent is not None and anchor.parent.type == "export_statement":
        anchor = anchor.parent
    prev = anchor.prev_named_sibling
    return prev is not None and prev.type == "comment" and node_text(prev).startswith("/**")


def _is_private_member(node: Node) -> bool:
    for child in node.children:
        if child.type == "accessibility_modifier" and node_text(child) in {"private", "protected"}:
            return True
    return False


def _normalize(text: str) -> str:
    return " ".join(text.split())
