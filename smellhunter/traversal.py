"""
Depth-first traversal with enter/leave hooks.

``traverse`` walks a ``SyntaxTree`` once in pre-order. For every node each
registered visitor's ``on_enter`` runs (in registration order), then the
children are walked, then each visitor's ``on_leave`` runs in the same order.
A visitor restricted to a set of ``kinds`` is only called for those nodes, and
a visitor returning ``SKIP_CHILDREN`` from ``on_enter`` is not called for that
node's descendants (its ``on_leave`` for the node itself still runs).
"""

from typing import FrozenSet, List, Optional, Sequence

from smellhunter.tree import NodeKind, NodeRef, SyntaxTree

SKIP_CHILDREN = object()


class Visitor:
    """Base visitor. Subclasses override the hooks they need."""

    kinds: Optional[FrozenSet[NodeKind]] = None

    def on_enter(self, node: NodeRef):
        return None

    def on_leave(self, node: NodeRef):
        return None

    def wants(self, node: NodeRef) -> bool:
        return self.kinds is None or node.kind in self.kinds


class Accumulator:
    """Explicit counter/flag bag handed to small scoped visitors."""

    def __init__(self):
        self.counts = {}
        self.flags = set()

    def bump(self, key: str, amount: int = 1):
        self.counts[key] = self.counts.get(key, 0) + amount

    def count(self, key: str) -> int:
        return self.counts.get(key, 0)

    def mark(self, flag: str):
        self.flags.add(flag)

    def reset(self):
        self.counts.clear()
        self.flags.clear()


def traverse(tree: SyntaxTree, visitors: Sequence[Visitor], start: Optional[NodeRef] = None):
    """Walk ``tree`` (or the subtree at ``start``) once, dispatching to ``visitors``.

    Exceptions raised by a visitor propagate to the caller; the per-file
    boundary in the engine is responsible for containing them.
    """
    visitors = list(visitors)
    root = start.index if start is not None else 0
    # suspended[i] holds the arena index whose subtree visitor i skips
    suspended: List[Optional[int]] = [None] * len(visitors)
    # stack entries: (index, leaving)
    stack = [(root, False)]
    while stack:
        index, leaving = stack.pop()
        node = NodeRef(tree, index)
        if leaving:
            for i, visitor in enumerate(visitors):
                if suspended[i] is not None and suspended[i] != index:
                    continue
                if suspended[i] == index:
                    suspended[i] = None
                if visitor.wants(node):
                    visitor.on_leave(node)
            continue

        active = 0
        for i, visitor in enumerate(visitors):
            if suspended[i] is not None:
                continue
            if visitor.wants(node) and visitor.on_enter(node) is SKIP_CHILDREN:
                suspended[i] = index
                continue
            active += 1

        stack.append((index, True))
        if active or not visitors:
            for child in reversed(tree.children[index]):
                stack.append((child, False))
