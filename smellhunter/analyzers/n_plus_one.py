"""
Eloquent N+1 queries: lazy relationship access on a ``foreach`` variable.

A relationship read inside the loop body issues one query per iteration
unless the relationship was eager loaded with ``with()``/``load()`` on the
collection being iterated.
"""

from typing import Dict, List, Optional, Set, Tuple

from smellhunter.classifier import corroborate, weak
from smellhunter.engine import Analyzer, FileContext
from smellhunter.issues import Severity
from smellhunter.traversal import Visitor
from smellhunter.tree import (
    NodeKind, NodeRef, argument_values, member_name, string_value, unwrap_parentheses, variable_name,
)

CODE = "n-plus-one-query"
EAGER_LOAD_METHODS = frozenset({"with", "load", "loadMissing"})
_MEMBER_TYPES = frozenset({"member_access_expression", "nullsafe_member_access_expression"})
_FUNCTION_SCOPES = (NodeKind.METHOD, NodeKind.FUNCTION, NodeKind.CLOSURE)


def foreach_parts(loop: NodeRef) -> Tuple[Optional[NodeRef], Optional[NodeRef]]:
    """(iterated expression, value variable) of a foreach statement."""
    if loop.type != "foreach_statement":
        return None, None
    named = [c for c in loop.children if c.kind is not NodeKind.COMMENT]
    if len(named) < 2:
        return None, None
    source, value = named[0], named[1]
    if value.type == "pair":
        value = value.children[-1] if value.children else None
    if value is not None and value.type == "by_ref":
        value = value.child_of_kind(NodeKind.VARIABLE)
    if value is None or value.kind is not NodeKind.VARIABLE:
        return source, None
    return source, value


def relationship_names(arg: NodeRef) -> List[str]:
    """Top-level relationship names from a with()/load() argument."""
    names = []
    if arg.kind is NodeKind.ARRAY:
        for item in arg.children:
            if item.kind is not NodeKind.ARRAY_ITEM:
                continue
            # 'posts' or 'posts' => fn ($q) ...
            value = string_value(item.children[0]) if item.children else None
            if value:
                names.append(value)
    else:
        value = string_value(arg)
        if value:
            names.append(value)
    return [n.split(".")[0].split(":")[0] for n in names]


def captured_variables(closure: NodeRef) -> List[str]:
    """Names bound by a closure's ``use (...)`` clause."""
    clause = next((c for c in closure.children if c.type == "anonymous_function_use_clause"), None)
    if clause is None:
        return []
    return [variable_name(v) for v in clause.find(NodeKind.VARIABLE)]


def parameter_names(function: NodeRef) -> List[str]:
    params = function.field("parameters")
    if params is None:
        return []
    return [variable_name(p.field("name")) for p in params.children if p.field("name") is not None]


def eager_loaded(expr: Optional[NodeRef]) -> Set[str]:
    """Relationships eager loaded anywhere along a call chain."""
    loaded: Set[str] = set()
    node = unwrap_parentheses(expr)
    while node is not None and node.kind in (NodeKind.METHOD_CALL, NodeKind.STATIC_CALL):
        if member_name(node) in EAGER_LOAD_METHODS:
            for arg in argument_values(node):
                loaded.update(relationship_names(arg))
        if node.kind is NodeKind.STATIC_CALL:
            break
        node = unwrap_parentheses(node.field("object"))
    return loaded


class NPlusOneVisitor(Visitor):
    kinds = frozenset({NodeKind.ASSIGNMENT, NodeKind.METHOD_CALL, NodeKind.PROPERTY_ACCESS, NodeKind.LOOP,
                       *_FUNCTION_SCOPES})

    def __init__(self, ctx: FileContext):
        self.ctx = ctx
        self.loaded: Dict[str, Set[str]] = {}
        # Value variables of the enclosing foreach loops, innermost last
        self.loop_variables: List[Optional[str]] = []
        self.seen: Set[Tuple[str, str]] = set()
        self.scopes: List[Tuple[Dict[str, Set[str]], List[Optional[str]], Set[Tuple[str, str]]]] = []

    def on_enter(self, node: NodeRef):
        kind = node.kind
        if kind in _FUNCTION_SCOPES:
            self.enter_scope(node)
        elif kind is NodeKind.LOOP:
            self.enter_loop(node)
        elif kind is NodeKind.ASSIGNMENT:
            target = node.field("left")
            if target is not None and target.kind is NodeKind.VARIABLE:
                relations = eager_loaded(node.field("right"))
                if relations:
                    self.loaded[variable_name(target)] = relations
        elif kind is NodeKind.METHOD_CALL:
            receiver = unwrap_parentheses(node.field("object"))
            if member_name(node) in ("load", "loadMissing") and receiver is not None \
                    and receiver.kind is NodeKind.VARIABLE:
                self.loaded.setdefault(variable_name(receiver), set()).update(eager_loaded(node))
            self.check_access(node, receiver)
        elif node.type in _MEMBER_TYPES:
            self.check_access(node, unwrap_parentheses(node.field("object")))

    def on_leave(self, node: NodeRef):
        if node.kind in _FUNCTION_SCOPES:
            self.loaded, self.loop_variables, self.seen = self.scopes.pop()
        elif node.kind is NodeKind.LOOP:
            self.loop_variables.pop()

    def enter_scope(self, node: NodeRef):
        """Methods and functions start empty; closures see only what they capture."""
        outer, outer_loops = self.loaded, self.loop_variables
        self.scopes.append((outer, outer_loops, self.seen))
        self.seen = set()
        if node.kind is not NodeKind.CLOSURE:
            self.loaded, self.loop_variables = {}, []
            return
        if node.type == "arrow_function":
            # fn () => ... binds the whole enclosing scope by value
            shadowed = set(parameter_names(node))
            visible = set(outer) - shadowed
            live = [v for v in outer_loops if v not in shadowed]
        else:
            captured = captured_variables(node)
            visible = {name for name in captured if name in outer}
            live = [v for v in outer_loops if v in captured]
        self.loaded = {name: set(outer[name]) for name in visible}
        self.loop_variables = live

    def enter_loop(self, loop: NodeRef):
        source, value = foreach_parts(loop)
        if value is None:
            self.loop_variables.append(None)
            return
        name = variable_name(value)
        relations = set(eager_loaded(source))
        source = unwrap_parentheses(source)
        if source is not None and source.kind is NodeKind.VARIABLE:
            relations |= self.loaded.get(variable_name(source), set())
        self.loaded[name] = relations
        self.loop_variables.append(name)

    def check_access(self, node: NodeRef, receiver: Optional[NodeRef]):
        if receiver is None or receiver.kind is not NodeKind.VARIABLE:
            return
        variable = variable_name(receiver)
        if variable not in self.loop_variables:
            return
        relationship = member_name(node)
        if not relationship or (variable, relationship) in self.seen:
            return
        if relationship in self.loaded.get(variable, ()):
            return

        signals = [self.ctx.classifier.is_relationship_property_name(relationship), weak("loop-variable-access")]
        parent = node.parent
        if parent is not None and parent.kind in (NodeKind.PROPERTY_ACCESS, NodeKind.METHOD_CALL) \
                and parent.field("object") == node:
            signals.append(weak("chained-access"))
        verdict = corroborate(*signals)
        if not verdict.is_finding:
            return

        self.seen.add((variable, relationship))
        access = f"{relationship}()" if node.kind is NodeKind.METHOD_CALL else relationship
        self.ctx.aggregator.add(
            CODE,
            f"Potential N+1 query: accessing '{relationship}' inside loop",
            Severity.HIGH,
            node.line,
            f"Accessing the '{relationship}' relationship inside a foreach will trigger a separate database "
            f"query for each iteration. Eager load it before the loop with ->with('{relationship}') or "
            f"->load('{relationship}').",
            {
                "relationship": relationship,
                "variable": variable,
                "access": access,
                "loop_type": "foreach",
                "evidence": verdict.reason,
                "corroborated_by": list(verdict.corroborated_by),
            },
        )


class EloquentNPlusOneAnalyzer(Analyzer):
    id = "eloquent-n-plus-one"
    name = "Eloquent N+1 Queries"
    description = "Identifies missing eager loading that causes N+1 query performance problems"
    severity = Severity.HIGH
    priorities = (CODE,)

    passed_message = "No potential N+1 query issues detected"
    failed_message = "Found {count} potential N+1 query issue(s)"

    def visitors(self, ctx: FileContext) -> List[Visitor]:
        return [NPlusOneVisitor(ctx)]
