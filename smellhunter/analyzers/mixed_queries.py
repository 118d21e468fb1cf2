"""Detects classes mixing Query Builder (``DB::table``) and Eloquent access to the same data."""

from dataclasses import dataclass, field
from typing import Dict, List, Optional

from smellhunter.engine import Analyzer, FileContext
from smellhunter.inflect import table_name_for
from smellhunter.issues import Severity
from smellhunter.names import ResolvedName
from smellhunter.traversal import Visitor
from smellhunter.tree import NodeKind, NodeRef, argument_values, member_name, string_value

MIXED_TABLE = "mixed-table-access"
MIXED_STYLE = "mixed-query-style"

ELOQUENT_METHODS = frozenset({"where", "find", "all", "get", "first", "create", "update"})

ELOQUENT = "eloquent"
QUERY_BUILDER = "query_builder"
MIXED = "mixed"


@dataclass
class TableUsage:
    kind: str
    line: int


@dataclass
class ClassUsage:
    name: str
    tables: Dict[str, TableUsage] = field(default_factory=dict)

    def track(self, table: str, kind: str, line: int):
        usage = self.tables.get(table)
        if usage is None:
            self.tables[table] = TableUsage(kind, line)
        elif usage.kind not in (kind, MIXED):
            usage.kind = MIXED


class MixedQueryVisitor(Visitor):
    kinds = frozenset({NodeKind.CLASS, NodeKind.STATIC_CALL})

    def __init__(self, ctx: FileContext):
        self.ctx = ctx
        self.stack: List[ClassUsage] = []

    def on_enter(self, node: NodeRef):
        if node.kind is NodeKind.CLASS:
            name = node.field("name")
            self.stack.append(ClassUsage(name.text if name is not None else "Unknown"))
            return
        if not self.stack:
            return
        current = self.stack[-1]
        method = member_name(node)
        scope = node.field("scope")
        if scope is None or scope.kind is not NodeKind.NAME:
            return
        resolved = self.ctx.names.resolve_node(scope)
        if not isinstance(resolved, ResolvedName):
            return
        if resolved.short_name == "DB" and method == "table":
            table = self._table_argument(node)
            if table:
                current.track(table, QUERY_BUILDER, node.line)
        elif method in ELOQUENT_METHODS:
            verdict = self.ctx.classifier.is_orm_model_reference(resolved)
            if verdict.is_match:
                current.track(self._table_for(resolved), ELOQUENT, node.line)

    def on_leave(self, node: NodeRef):
        if node.kind is NodeKind.CLASS and self.stack:
            self.report(self.stack.pop())

    @staticmethod
    def _table_argument(call: NodeRef) -> Optional[str]:
        args = argument_values(call)
        return string_value(args[0]) if args else None

    def _table_for(self, model: ResolvedName) -> str:
        registry = self.ctx.classifier.registry
        if registry is not None:
            table = registry.table_for(model.fully_qualified_name)
            if table:
                return table
        return table_name_for(model.short_name)

    def report(self, usage: ClassUsage):
        aggregator = self.ctx.aggregator
        eloquent = {t: u.line for t, u in usage.tables.items() if u.kind == ELOQUENT}
        builder = {t: u.line for t, u in usage.tables.items() if u.kind == QUERY_BUILDER}
        for table, table_usage in usage.tables.items():
            if table_usage.kind != MIXED:
                continue
            aggregator.add(
                MIXED_TABLE,
                f'Class "{usage.name}" uses both Eloquent and Query Builder for table "{table}"',
                Severity.MEDIUM,
                table_usage.line,
                "Use consistent approach: prefer Eloquent for better code organization, global scopes, and "
                "relationships. Use Query Builder only for performance-critical raw queries. Mixing both "
                "approaches can bypass global scopes and make code harder to maintain",
                {"class": usage.name, "table": table},
            )
        if eloquent and len(builder) > 2:
            aggregator.add(
                MIXED_STYLE,
                f'Class "{usage.name}" mixes Eloquent and Query Builder approaches '
                f'({len(eloquent)} Eloquent, {len(builder)} Query Builder)',
                Severity.LOW,
                min(builder.values()),
                "Consider using a consistent approach throughout the class. If using Eloquent elsewhere, "
                "continue with Eloquent for consistency",
                {"class": usage.name, "eloquent_tables": sorted(eloquent), "query_builder_tables": sorted(builder)},
            )


class MixedQueryBuilderEloquentAnalyzer(Analyzer):
    id = "mixed-query-builder-eloquent"
    name = "Mixed Query Builder and Eloquent"
    description = "Detects inconsistent mixing of Query Builder and Eloquent ORM in the same class"
    severity = Severity.MEDIUM
    default_paths = ("app/Repositories", "app/Services", "app/Http/Controllers")
    needs_registry = True
    priorities = (MIXED_TABLE, MIXED_STYLE)

    passed_message = "Consistent use of Eloquent or Query Builder"
    failed_message = "Found {count} place(s) mixing Query Builder and Eloquent inconsistently"

    def visitors(self, ctx: FileContext) -> List[Visitor]:
        return [MixedQueryVisitor(ctx)]
