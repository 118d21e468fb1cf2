"""
Arena-backed syntax trees over tree-sitter-php.

Every named tree-sitter node of a parsed file is copied into a flat pre-order
array. Parent links live in a parallel ``parents`` list of optional indices,
so upward walks never need back-pointers on the nodes themselves. ``NodeRef``
is the cheap (tree, index) handle that analyzers pass around.
"""

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Dict, Iterator, List, Optional, Sequence, Set

import tree_sitter_php as tsphp
from tree_sitter import Language, Parser, Node

logger = logging.getLogger(__name__)

PHP_LANG = Language(tsphp.language_php())


class ParseError(Exception):
    """Raised when source text cannot be turned into a clean syntax tree."""

    def __init__(self, path: str, reason: str):
        super().__init__(f"{path or '<source>'}: {reason}")
        self.path = path
        self.reason = reason


# ============================================================================
# Node kinds
# ============================================================================

class NodeKind(Enum):
    PROGRAM = "program"
    NAMESPACE = "namespace"
    USE = "use"
    CLASS = "class"
    METHOD = "method"
    FUNCTION = "function"
    CLOSURE = "closure"
    BLOCK = "block"
    STATIC_CALL = "static_call"
    METHOD_CALL = "method_call"
    FUNCTION_CALL = "function_call"
    NEW = "new"
    PROPERTY_ACCESS = "property_access"
    VARIABLE = "variable"
    NAME = "name"
    LITERAL = "literal"
    ARRAY = "array"
    ARRAY_ITEM = "array_item"
    ARGUMENTS = "arguments"
    ARGUMENT = "argument"
    BINARY = "binary"
    UNARY = "unary"
    ASSIGNMENT = "assignment"
    COMPOUND_ASSIGNMENT = "compound_assignment"
    TERNARY = "ternary"
    PARENTHESIZED = "parenthesized"
    ERROR_SUPPRESSION = "error_suppression"
    IF = "if"
    ELSE_IF = "else_if"
    ELSE = "else"
    LOOP = "loop"
    TRY = "try"
    CATCH = "catch"
    FINALLY = "finally"
    RETURN = "return"
    JUMP = "jump"
    THROW = "throw"
    ECHO = "echo"
    EXPRESSION_STATEMENT = "expression_statement"
    PROPERTY_DECLARATION = "property_declaration"
    COMMENT = "comment"
    OTHER = "other"


_KIND_BY_TYPE: Dict[str, NodeKind] = {
    "program": NodeKind.PROGRAM,
    "namespace_definition": NodeKind.NAMESPACE,
    "namespace_use_declaration": NodeKind.USE,
    "class_declaration": NodeKind.CLASS,
    "trait_declaration": NodeKind.CLASS,
    "enum_declaration": NodeKind.CLASS,
    "method_declaration": NodeKind.METHOD,
    "function_definition": NodeKind.FUNCTION,
    "anonymous_function": NodeKind.CLOSURE,
    "anonymous_function_creation_expression": NodeKind.CLOSURE,
    "arrow_function": NodeKind.CLOSURE,
    "compound_statement": NodeKind.BLOCK,
    "scoped_call_expression": NodeKind.STATIC_CALL,
    "member_call_expression": NodeKind.METHOD_CALL,
    "nullsafe_member_call_expression": NodeKind.METHOD_CALL,
    "function_call_expression": NodeKind.FUNCTION_CALL,
    "object_creation_expression": NodeKind.NEW,
    "member_access_expression": NodeKind.PROPERTY_ACCESS,
    "nullsafe_member_access_expression": NodeKind.PROPERTY_ACCESS,
    "scoped_property_access_expression": NodeKind.PROPERTY_ACCESS,
    "variable_name": NodeKind.VARIABLE,
    "name": NodeKind.NAME,
    "qualified_name": NodeKind.NAME,
    "relative_scope": NodeKind.NAME,
    "string": NodeKind.LITERAL,
    "encapsed_string": NodeKind.LITERAL,
    "integer": NodeKind.LITERAL,
    "float": NodeKind.LITERAL,
    "boolean": NodeKind.LITERAL,
    "null": NodeKind.LITERAL,
    "heredoc": NodeKind.LITERAL,
    "nowdoc": NodeKind.LITERAL,
    "array_creation_expression": NodeKind.ARRAY,
    "array_element_initializer": NodeKind.ARRAY_ITEM,
    "arguments": NodeKind.ARGUMENTS,
    "argument": NodeKind.ARGUMENT,
    "binary_expression": NodeKind.BINARY,
    "unary_op_expression": NodeKind.UNARY,
    "assignment_expression": NodeKind.ASSIGNMENT,
    "reference_assignment_expression": NodeKind.ASSIGNMENT,
    "augmented_assignment_expression": NodeKind.COMPOUND_ASSIGNMENT,
    "conditional_expression": NodeKind.TERNARY,
    "parenthesized_expression": NodeKind.PARENTHESIZED,
    "error_suppression_expression": NodeKind.ERROR_SUPPRESSION,
    "if_statement": NodeKind.IF,
    "else_if_clause": NodeKind.ELSE_IF,
    "else_clause": NodeKind.ELSE,
    "foreach_statement": NodeKind.LOOP,
    "for_statement": NodeKind.LOOP,
    "while_statement": NodeKind.LOOP,
    "do_statement": NodeKind.LOOP,
    "try_statement": NodeKind.TRY,
    "catch_clause": NodeKind.CATCH,
    "finally_clause": NodeKind.FINALLY,
    "return_statement": NodeKind.RETURN,
    "break_statement": NodeKind.JUMP,
    "continue_statement": NodeKind.JUMP,
    "throw_expression": NodeKind.THROW,
    "throw_statement": NodeKind.THROW,
    "echo_statement": NodeKind.ECHO,
    "expression_statement": NodeKind.EXPRESSION_STATEMENT,
    "property_declaration": NodeKind.PROPERTY_DECLARATION,
    "comment": NodeKind.COMMENT,
}

CALL_KINDS = frozenset({NodeKind.STATIC_CALL, NodeKind.METHOD_CALL, NodeKind.FUNCTION_CALL})
SCOPE_KINDS = frozenset({NodeKind.CLASS, NodeKind.METHOD, NodeKind.FUNCTION, NodeKind.CLOSURE})


def _kind_of(node: Node) -> NodeKind:
    kind = _KIND_BY_TYPE.get(node.type, NodeKind.OTHER)
    # Some grammar releases fold `@expr` into the generic unary node.
    if kind is NodeKind.UNARY and node.child_count and node.children[0].type == "@":
        return NodeKind.ERROR_SUPPRESSION
    return kind


@dataclass(frozen=True)
class Span:
    start_line: int
    start_column: int
    end_line: int
    end_column: int
    start_byte: int
    end_byte: int


# ============================================================================
# Arena
# ============================================================================

class SyntaxTree:
    """Flat pre-order arena of the named nodes of one parsed file."""

    def __init__(self, ts_tree, source: bytes, path: str = ""):
        self.path = path
        self.source = source
        self._ts_tree = ts_tree
        self._nodes: List[Node] = []
        self.kinds: List[NodeKind] = []
        self.parents: List[Optional[int]] = []
        self.children: List[List[int]] = []
        self._index_by_id: Dict[int, int] = {}
        self._lines: Optional[List[str]] = None
        self._build(ts_tree.root_node)

    def _build(self, root: Node):
        stack = [(root, None)]
        while stack:
            node, parent = stack.pop()
            index = len(self._nodes)
            self._nodes.append(node)
            self.kinds.append(_kind_of(node))
            self.parents.append(parent)
            self.children.append([])
            self._index_by_id[node.id] = index
            if parent is not None:
                self.children[parent].append(index)
            named = [c for c in node.children if c.is_named]
            for child in reversed(named):
                stack.append((child, index))

    def __len__(self) -> int:
        return len(self._nodes)

    def __iter__(self) -> Iterator["NodeRef"]:
        for index in range(len(self._nodes)):
            yield NodeRef(self, index)

    @property
    def root(self) -> "NodeRef":
        return NodeRef(self, 0)

    def node(self, index: int) -> "NodeRef":
        return NodeRef(self, index)

    def ts_node(self, index: int) -> Node:
        return self._nodes[index]

    def lookup(self, node: Optional[Node]) -> Optional["NodeRef"]:
        """Map a raw tree-sitter node back into the arena (None for anonymous nodes)."""
        if node is None:
            return None
        index = self._index_by_id.get(node.id)
        return NodeRef(self, index) if index is not None else None

    def of_kind(self, *kinds: NodeKind) -> List["NodeRef"]:
        wanted = set(kinds)
        return [NodeRef(self, i) for i, k in enumerate(self.kinds) if k in wanted]

    @property
    def lines(self) -> List[str]:
        if self._lines is None:
            self._lines = self.source.decode("utf-8", errors="replace").split("\n")
        return self._lines

    def line_text(self, line: int) -> str:
        """Get the 1-based source line."""
        if 1 <= line <= len(self.lines):
            return self.lines[line - 1]
        return ""


class NodeRef:
    """Handle on one arena node."""

    __slots__ = ("tree", "index")

    def __init__(self, tree: SyntaxTree, index: int):
        self.tree = tree
        self.index = index

    def __eq__(self, other) -> bool:
        return isinstance(other, NodeRef) and other.tree is self.tree and other.index == self.index

    def __hash__(self) -> int:
        return hash((id(self.tree), self.index))

    def __repr__(self) -> str:
        return f"NodeRef({self.type}@{self.line})"

    @property
    def ts_node(self) -> Node:
        return self.tree.ts_node(self.index)

    @property
    def kind(self) -> NodeKind:
        return self.tree.kinds[self.index]

    @property
    def type(self) -> str:
        return self.ts_node.type

    @property
    def text(self) -> str:
        raw = self.ts_node.text
        return raw.decode("utf-8", errors="replace") if raw else ""

    @property
    def line(self) -> int:
        """1-based start line."""
        return self.ts_node.start_point[0] + 1

    @property
    def end_line(self) -> int:
        return self.ts_node.end_point[0] + 1

    @property
    def span(self) -> Span:
        ts = self.ts_node
        return Span(ts.start_point[0] + 1, ts.start_point[1], ts.end_point[0] + 1,
                    ts.end_point[1], ts.start_byte, ts.end_byte)

    @property
    def position(self):
        """Call-site identity: (line, column) of the node start."""
        return (self.ts_node.start_point[0] + 1, self.ts_node.start_point[1])

    @property
    def parent(self) -> Optional["NodeRef"]:
        parent = self.tree.parents[self.index]
        return NodeRef(self.tree, parent) if parent is not None else None

    @property
    def children(self) -> List["NodeRef"]:
        return [NodeRef(self.tree, i) for i in self.tree.children[self.index]]

    def is_kind(self, *kinds: NodeKind) -> bool:
        return self.kind in kinds

    def field(self, name: str) -> Optional["NodeRef"]:
        return self.tree.lookup(self.ts_node.child_by_field_name(name))

    def fields(self, name: str) -> List["NodeRef"]:
        found = []
        for child in self.ts_node.children_by_field_name(name):
            ref = self.tree.lookup(child)
            if ref is not None:
                found.append(ref)
        return found

    def field_text(self, name: str) -> str:
        """Text of a field, anonymous tokens included (operators)."""
        child = self.ts_node.child_by_field_name(name)
        if child is None or not child.text:
            return ""
        return child.text.decode("utf-8", errors="replace")

    def child_of_kind(self, *kinds: NodeKind) -> Optional["NodeRef"]:
        for child in self.children:
            if child.kind in kinds:
                return child
        return None

    def ancestors(self) -> Iterator["NodeRef"]:
        parent = self.tree.parents[self.index]
        while parent is not None:
            yield NodeRef(self.tree, parent)
            parent = self.tree.parents[parent]

    def enclosing(self, *kinds: NodeKind) -> Optional["NodeRef"]:
        for ancestor in self.ancestors():
            if ancestor.kind in kinds:
                return ancestor
        return None

    def descendants(self, stop_at: Sequence[NodeKind] = ()) -> Iterator["NodeRef"]:
        """Pre-order descendants; nodes of a ``stop_at`` kind are yielded but not entered."""
        stack = list(reversed(self.tree.children[self.index]))
        stop = set(stop_at)
        while stack:
            index = stack.pop()
            yield NodeRef(self.tree, index)
            if self.tree.kinds[index] not in stop:
                stack.extend(reversed(self.tree.children[index]))

    def find(self, *kinds: NodeKind, stop_at: Sequence[NodeKind] = ()) -> List["NodeRef"]:
        """Recursively find all descendant nodes of the given kinds."""
        wanted = set(kinds)
        return [n for n in self.descendants(stop_at) if n.kind in wanted]


# ============================================================================
# Parsing
# ============================================================================

def parse(source, path: str = "") -> SyntaxTree:
    """Parse PHP source (str or bytes) into an arena tree, raising ParseError on syntax errors."""
    data = source.encode("utf-8") if isinstance(source, str) else source
    ts_tree = Parser(PHP_LANG).parse(data)
    root = ts_tree.root_node
    if root.has_error:
        raise ParseError(path, f"syntax error near line {_first_error_line(root)}")
    return SyntaxTree(ts_tree, data, path)


def _first_error_line(root: Node) -> int:
    stack = [root]
    while stack:
        node = stack.pop()
        if node.type == "ERROR" or node.is_missing:
            return node.start_point[0] + 1
        if node.has_error:
            stack.extend(reversed(node.children))
    return root.start_point[0] + 1


# ============================================================================
# Node helpers
# ============================================================================

def member_name(node: NodeRef) -> str:
    """Method/property name of a call or access node; empty when dynamic."""
    name = node.field("name")
    if name is not None and name.kind is NodeKind.NAME:
        return name.text
    return ""


def is_dynamic_member(node: NodeRef) -> bool:
    name = node.field("name")
    return name is None or name.kind is not NodeKind.NAME


def argument_values(call: NodeRef) -> List[NodeRef]:
    """Expression nodes passed to a call, in order."""
    args = call.field("arguments")
    if args is None:
        args = call.child_of_kind(NodeKind.ARGUMENTS)
    if args is None:
        return []
    values = []
    for arg in args.children:
        if arg.kind is NodeKind.ARGUMENT:
            inner = [c for c in arg.children if c.kind is not NodeKind.COMMENT]
            if inner:
                values.append(inner[-1])
        elif arg.kind is not NodeKind.COMMENT:
            values.append(arg)
    return values


def function_name(call: NodeRef) -> str:
    """Name of a plain function call, empty when called through a variable or closure."""
    func = call.field("function")
    if func is None or func.kind is not NodeKind.NAME:
        return ""
    return func.text.lstrip("\\")


def variable_name(node: NodeRef) -> str:
    """Variable name without the leading ``$``."""
    if node.kind is not NodeKind.VARIABLE:
        return ""
    return node.text.lstrip("$")


_PLAIN_STRING_PARTS: Set[str] = {"string_content", "string_value", "escape_sequence"}


def string_value(node: NodeRef) -> Optional[str]:
    """Literal value of a non-interpolated string node, else None."""
    if node.type not in ("string", "encapsed_string"):
        return None
    if node.type == "encapsed_string":
        for child in node.children:
            if child.type not in _PLAIN_STRING_PARTS:
                return None
    text = node.text
    if text[:1] in ("b", "B"):
        text = text[1:]
    if len(text) >= 2 and text[0] in ("'", '"') and text[-1] == text[0]:
        text = text[1:-1]
    if node.type == "string":
        return text.replace("\\'", "'").replace("\\\\", "\\")
    return text


def unwrap_parentheses(node: Optional[NodeRef]) -> Optional[NodeRef]:
    while node is not None and node.kind is NodeKind.PARENTHESIZED:
        inner = [c for c in node.children if c.kind is not NodeKind.COMMENT]
        if not inner:
            break
        node = inner[0]
    return node
