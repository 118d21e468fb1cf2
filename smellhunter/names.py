"""
Class name resolution from ``namespace`` and ``use`` statements.

A pre-pass over the tree records, per namespace block, the current namespace
and an alias table built from ``use`` imports. Short names are then mapped
through the alias of their first segment, or qualified with the current
namespace. Canonical names always carry a leading backslash, so resolving an
already fully qualified name returns it unchanged.
"""

import logging
from dataclasses import dataclass
from typing import Dict, List, Optional, Tuple, Union

from smellhunter.tree import NodeKind, NodeRef, SyntaxTree

logger = logging.getLogger(__name__)

SEPARATOR = "\\"


@dataclass(frozen=True)
class ResolvedName:
    short_name: str
    fully_qualified_name: str
    alias_source: Optional[str] = None

    @property
    def namespace(self) -> str:
        """Namespace part without leading separator."""
        return self.fully_qualified_name.lstrip(SEPARATOR).rpartition(SEPARATOR)[0]

    @property
    def parts(self) -> List[str]:
        return self.fully_qualified_name.lstrip(SEPARATOR).split(SEPARATOR)

    def __str__(self) -> str:
        return self.fully_qualified_name


@dataclass(frozen=True)
class Unresolvable:
    """A class reference that cannot be resolved statically (variables, expressions)."""

    reason: str = "dynamic"

    def __bool__(self) -> bool:
        return False


NameResult = Union[ResolvedName, Unresolvable]


@dataclass
class _Scope:
    start_byte: int
    end_byte: int
    namespace: str
    aliases: Dict[str, Tuple[str, str]]   # lowercase alias -> (fqn, use statement text)


def short_name(name: str) -> str:
    return name.rstrip(SEPARATOR).rpartition(SEPARATOR)[2]


class NameResolver:
    """Resolves class references of one file."""

    def __init__(self, tree: SyntaxTree):
        self.tree = tree
        self._scopes: List[_Scope] = []
        self._global = _Scope(0, len(tree.source), "", {})
        self._collect()

    # ------------------------------------------------------------------
    # Pre-pass
    # ------------------------------------------------------------------

    def _collect(self):
        namespaces = self.tree.of_kind(NodeKind.NAMESPACE)
        for i, ns in enumerate(namespaces):
            name_node = ns.field("name") or ns.child_of_kind(NodeKind.OTHER)
            ns_name = name_node.text.strip(SEPARATOR) if name_node is not None else ""
            span = ns.span
            if ns.field("body") is not None:
                end = span.end_byte
            elif i + 1 < len(namespaces):
                end = namespaces[i + 1].span.start_byte
            else:
                end = len(self.tree.source)
            self._scopes.append(_Scope(span.start_byte, end, ns_name, {}))

        for use in self.tree.of_kind(NodeKind.USE):
            if use.enclosing(NodeKind.CLASS) is not None:
                continue
            if self._use_kind(use) in ("function", "const"):
                continue
            scope = self._scope_at(use.span.start_byte)
            for fqn, alias in self._use_entries(use):
                scope.aliases[alias.lower()] = (SEPARATOR + fqn, use.text.strip())

    @staticmethod
    def _use_kind(use: NodeRef) -> str:
        kind = use.field_text("type")
        if kind:
            return kind.lower()
        for child in use.ts_node.children:
            if child.type in ("function", "const"):
                return child.type
        return ""

    def _use_entries(self, use: NodeRef) -> List[Tuple[str, str]]:
        entries = []
        prefix = ""
        for child in use.children:
            if child.type == "namespace_name":
                prefix = child.text.strip(SEPARATOR)
            elif child.type == "namespace_use_clause":
                entries.append(self._clause_entry(child, ""))
            elif child.type == "namespace_use_group":
                for clause in child.children:
                    if clause.type in ("namespace_use_clause", "namespace_use_group_clause"):
                        entries.append(self._clause_entry(clause, prefix))
        return [e for e in entries if e[0]]

    @staticmethod
    def _clause_entry(clause: NodeRef, prefix: str) -> Tuple[str, str]:
        target = ""
        alias_node = clause.field("alias")
        for child in clause.children:
            if child == alias_node:
                continue
            if child.type in ("qualified_name", "name", "namespace_name") and not target:
                target = child.text.strip(SEPARATOR)
            elif child.type == "namespace_aliasing_clause":
                alias_node = child.child_of_kind(NodeKind.NAME)
        if prefix and target:
            target = prefix + SEPARATOR + target
        alias = alias_node.text if alias_node is not None else short_name(target)
        return target, alias

    def _scope_at(self, byte: int) -> _Scope:
        for scope in self._scopes:
            if scope.start_byte <= byte < scope.end_byte:
                return scope
        return self._global

    # ------------------------------------------------------------------
    # Resolution
    # ------------------------------------------------------------------

    def namespace_at(self, node: NodeRef) -> str:
        return self._scope_at(node.span.start_byte).namespace

    def resolve(self, name: str, at: Optional[NodeRef] = None) -> NameResult:
        """Resolve a class name as written in source at position ``at``."""
        name = name.strip()
        if not name or name.startswith("$") or not _is_identifier_path(name):
            return Unresolvable("dynamic")
        if name.startswith(SEPARATOR):
            return ResolvedName(short_name(name), name)

        scope = self._scope_at(at.span.start_byte) if at is not None else self._global
        if name.lower().startswith("namespace" + SEPARATOR):
            rest = name[len("namespace") + 1:]
            return ResolvedName(short_name(rest), _join(scope.namespace, rest))

        first, _, rest = name.partition(SEPARATOR)
        imported = scope.aliases.get(first.lower())
        if imported is not None:
            fqn, source = imported
            if rest:
                fqn = fqn + SEPARATOR + rest
            return ResolvedName(short_name(name), fqn, source)
        return ResolvedName(short_name(name), _join(scope.namespace, name))

    def resolve_node(self, node: Optional[NodeRef]) -> NameResult:
        """Resolve a class-reference node (scope of a static call, ``new`` target, type)."""
        if node is None:
            return Unresolvable("missing")
        if node.type == "relative_scope":
            return self._resolve_relative(node)
        if node.kind is not NodeKind.NAME:
            return Unresolvable("dynamic")
        return self.resolve(node.text, node)

    def _resolve_relative(self, node: NodeRef) -> NameResult:
        keyword = node.text.lower()
        cls = node.enclosing(NodeKind.CLASS)
        if cls is None:
            return Unresolvable("relative scope outside class")
        if keyword in ("self", "static"):
            name = cls.field("name")
            if name is None:
                return Unresolvable("anonymous class")
            return ResolvedName(name.text, _join(self.namespace_at(cls), name.text))
        for child in cls.children:
            if child.type == "base_clause":
                target = child.child_of_kind(NodeKind.NAME)
                if target is not None:
                    return self.resolve(target.text, target)
        return Unresolvable("parent without base class")


def _join(namespace: str, name: str) -> str:
    if namespace:
        return SEPARATOR + namespace + SEPARATOR + name
    return SEPARATOR + name


def _is_identifier_path(name: str) -> bool:
    for part in name.strip(SEPARATOR).split(SEPARATOR):
        if not part or not (part[0].isalpha() or part[0] == "_"):
            return False
        if not all(c.isalnum() or c == "_" or ord(c) > 127 for c in part):
            return False
    return True
