"""
Small helpers over Tree-sitter nodes shared by the language adapters.
"""

from typing import Iterator, Optional, Set, Tuple

from tree_sitter import Node


def node_text(node: Optional[Node]) -> str:
    if node is None or node.text is None:
        return ""
    return node.text.decode("utf-8", errors="replace")


def line_span(node: Node) -> Tuple[int, int]:
    return node.start_point[0] + 1, node.end_point[0] + 1


def walk(node: Node) -> Iterator[Node]:
    stack = [node]
    while stack:
        current = stack.pop()
        yield current
        stack.extend(reversed(current.children))


def strip_quotes(text: str) -> str:
    for quote in ('"""', "'''", '"', "'", "`"):
        if len(text) >= 2 * len(quote) and text.startswith(quote) and text.endswith(quote):
            return text[len(quote):-len(quote)]
    return text


def has_child_type(node: Node, child_type: str) -> bool:
    return any(child.type == child_type for child in node.children)


def count_branches(node: Node, branch_types: Set[str], boolean_operators: Set[str]) -> int:
    """Number of branch/loop/handler nodes plus short-circuit boolean operators under ``node``."""
    count = 0
    for child in walk(node):
        if child.type in branch_types:
            count += 1
        elif child.type in ("boolean_operator", "binary_expression"):
            operator = child.child_by_field_name("operator")
            if operator is not None and node_text(operator) in boolean_operators:
                count += 1
    return count
