"""
Method-chain reconstruction.

``ChainWalker.walk`` follows the receiver edge of a call expression down to the
chain's origin and returns the called method names in source order together
with a typed root. One walker is created per file; it is not shared.
"""

from dataclasses import dataclass, field
from typing import Dict, List, Optional, Tuple, Union

from smellhunter.names import NameResolver, NameResult
from smellhunter.tree import (
    NodeKind, NodeRef, SyntaxTree, argument_values, function_name, member_name,
    unwrap_parentheses, variable_name,
)

# Upward walk limit for consumer lookups.
MAX_CONSUMER_DEPTH = 32

PASS_THROUGH_OPERATORS = frozenset({".", "+", "-", "*", "/", "%", "**"})

_PASS_THROUGH_KINDS = frozenset({
    NodeKind.ARRAY, NodeKind.ARRAY_ITEM, NodeKind.ARGUMENT, NodeKind.ARGUMENTS,
    NodeKind.PARENTHESIZED,
})


# ============================================================================
# Chain types
# ============================================================================

@dataclass(frozen=True)
class ChainLink:
    method: str
    line: int
    position: Tuple[int, int]
    class_name: Optional[str] = None


@dataclass(frozen=True)
class StaticCallRoot:
    class_name: str
    method: str
    resolved: Optional[NameResult] = None


@dataclass(frozen=True)
class VariableRoot:
    name: str


@dataclass(frozen=True)
class PropertyRoot:
    owner: str
    name: str


@dataclass(frozen=True)
class FunctionCallRoot:
    name: str


@dataclass(frozen=True)
class ExpressionRoot:
    """Anything else at the bottom of a chain: literals, ``new``, closures."""
    kind: str


ChainRoot = Union[StaticCallRoot, VariableRoot, PropertyRoot, FunctionCallRoot, ExpressionRoot]


@dataclass(frozen=True)
class CallChain:
    links: Tuple[ChainLink, ...]
    root: ChainRoot
    root_node: Optional[NodeRef] = field(default=None, compare=False)

    @property
    def methods(self) -> List[str]:
        return [link.method for link in self.links]

    def __str__(self) -> str:
        return "->".join(self.methods)

    def __len__(self) -> int:
        return len(self.links)


@dataclass(frozen=True)
class Consumer:
    """First non-pass-through ancestor of an expression."""
    node: Optional[NodeRef]
    passed_through: Tuple[NodeKind, ...] = ()

    @property
    def is_call(self) -> bool:
        return self.node is not None and self.node.kind in (
            NodeKind.FUNCTION_CALL, NodeKind.STATIC_CALL, NodeKind.METHOD_CALL, NodeKind.NEW)


# ============================================================================
# Walker
# ============================================================================

class ChainWalker:
    def __init__(self, tree: SyntaxTree, names: Optional[NameResolver] = None):
        self.tree = tree
        self.names = names
        # call-site position -> first argument of find() is an array literal
        self._find_sites: Dict[Tuple[int, int], bool] = {}
        self._cache: Dict[int, CallChain] = {}

    def walk(self, node: NodeRef) -> CallChain:
        """Build the chain ending at ``node`` (a method or static call)."""
        cached = self._cache.get(node.index)
        if cached is not None:
            return cached

        links: List[ChainLink] = []
        current = unwrap_parentheses(node)
        while current is not None and current.kind is NodeKind.METHOD_CALL:
            self._add_link(links, current)
            current = unwrap_parentheses(current.field("object"))

        root_node = current
        if current is None:
            root = ExpressionRoot("missing")
        elif current.kind is NodeKind.STATIC_CALL:
            scope = current.field("scope")
            class_name = scope.text if scope is not None and scope.kind is NodeKind.NAME else ""
            resolved = self.names.resolve_node(scope) if self.names is not None else None
            self._add_link(links, current, class_name)
            root = StaticCallRoot(class_name, member_name(current), resolved)
        elif current.kind is NodeKind.VARIABLE:
            root = VariableRoot(variable_name(current))
        elif current.kind is NodeKind.PROPERTY_ACCESS:
            owner = current.field("object")
            root = PropertyRoot(owner.text if owner is not None else "", member_name(current))
        elif current.kind is NodeKind.FUNCTION_CALL:
            root = FunctionCallRoot(function_name(current))
        else:
            root = ExpressionRoot(current.type)

        links.reverse()
        chain = CallChain(tuple(links), root, root_node)
        self._cache[node.index] = chain
        return chain

    def _add_link(self, links: List[ChainLink], call: NodeRef, class_name: Optional[str] = None):
        method = member_name(call)
        if not method:
            return
        name_node = call.field("name")
        anchor = name_node if name_node is not None else call
        position = anchor.position
        if method == "find":
            args = argument_values(call)
            self._find_sites[position] = bool(args) and args[0].kind is NodeKind.ARRAY
        links.append(ChainLink(method, anchor.line, position, class_name))

    def is_find_with_array(self, link: ChainLink) -> bool:
        """``find([1, 2])`` fetches a collection; ``find(1)`` a single row."""
        return self._find_sites.get(link.position, False)

    # ------------------------------------------------------------------
    # Upward walks
    # ------------------------------------------------------------------

    @staticmethod
    def is_outermost(node: NodeRef) -> bool:
        """True when no enclosing method call uses ``node`` as its receiver."""
        child = node
        parent = node.parent
        while parent is not None and parent.kind is NodeKind.PARENTHESIZED:
            child, parent = parent, parent.parent
        if parent is None or parent.kind is not NodeKind.METHOD_CALL:
            return True
        return parent.field("object") != child

    def outermost(self, node: NodeRef) -> NodeRef:
        current = node
        while not self.is_outermost(current):
            parent = current.parent
            while parent.kind is NodeKind.PARENTHESIZED:
                parent = parent.parent
            current = parent
        return current

    @staticmethod
    def find_consumer(node: NodeRef, max_depth: int = MAX_CONSUMER_DEPTH) -> Consumer:
        """Walk up through concatenation, arithmetic, arrays and arguments.

        Returns the first ancestor that is not one of those; ``node`` is None
        when the walk runs out of depth or hits the root.
        """
        passed = []
        current = node.parent
        depth = 0
        while current is not None and depth < max_depth:
            if current.kind in _PASS_THROUGH_KINDS or (
                    current.kind is NodeKind.BINARY
                    and current.field_text("operator") in PASS_THROUGH_OPERATORS):
                passed.append(current.kind)
                current = current.parent
                depth += 1
                continue
            return Consumer(current, tuple(passed))
        return Consumer(None, tuple(passed))
