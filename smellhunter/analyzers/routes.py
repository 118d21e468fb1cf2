"""Detects route closures that hold database queries, business logic, or too much code."""

from typing import List, Set, Tuple

from smellhunter.chains import StaticCallRoot
from smellhunter.classifier import Verdict, corroborate, weak
from smellhunter.engine import Analyzer, FileContext
from smellhunter.issues import Severity
from smellhunter.names import ResolvedName
from smellhunter.traversal import Accumulator, Visitor, traverse
from smellhunter.tree import NodeKind, NodeRef, argument_values, member_name

DB_QUERIES = "route-has-db-queries"
BUSINESS_LOGIC = "route-has-business-logic"
TOO_LONG = "route-closure-too-long"

ROUTE_FACADES = frozenset({"Route", "Illuminate\\Support\\Facades\\Route"})
# Closures passed to these only group other route definitions
GROUPING_METHODS = frozenset({"group"})

ARITHMETIC_OPERATORS = frozenset({"+", "-", "*", "/"})
COMPOUND_OPERATORS = frozenset({"+=", "-=", "*=", "/="})

RECOMMENDATIONS = {
    DB_QUERIES: "Database queries should not be in route files. Move this logic to a controller method "
                "and use repositories or services for data access.",
    BUSINESS_LOGIC: "Complex business logic should be in service classes or controllers, not in route files. "
                    "Route files should only define routes.",
    TOO_LONG: "Move route logic to a controller method or single-action controller. Route files should only "
              "define routes, not contain implementation details.",
}


class ClosureScanner(Visitor):
    """Collects query and business-logic evidence inside one closure into an accumulator."""

    def __init__(self, ctx: FileContext, acc: Accumulator):
        self.ctx = ctx
        self.acc = acc
        self.signals: List[Verdict] = []
        self.query_found = False

    def on_enter(self, node: NodeRef):
        kind = node.kind
        classifier = self.ctx.classifier
        if kind in (NodeKind.STATIC_CALL, NodeKind.METHOD_CALL, NodeKind.FUNCTION_CALL):
            if kind is not NodeKind.FUNCTION_CALL and not self.query_found:
                if classifier.is_database_facade_call(node, self.ctx.names, self.ctx.chains).is_finding:
                    self.query_found = True
            verdict = classifier.is_business_logic_call(node, self.ctx.names)
            if verdict.is_match:
                self.signals.append(verdict)
            if kind is NodeKind.METHOD_CALL and self.ctx.chains.is_outermost(node):
                if len(self.ctx.chains.walk(node)) >= 3:
                    self.signals.append(weak("long-method-chain"))
        elif kind is NodeKind.LOOP:
            self.acc.bump("loops")
        elif kind is NodeKind.IF:
            self.acc.bump("if_depth")
            if self.acc.count("if_depth") > 1:
                self.signals.append(weak("nested-conditional"))
        elif kind is NodeKind.BINARY or kind is NodeKind.COMPOUND_ASSIGNMENT:
            if self.acc.count("loops") or self.acc.count("if_depth") > 1:
                operator = node.field_text("operator")
                if operator in ARITHMETIC_OPERATORS or operator in COMPOUND_OPERATORS:
                    self.signals.append(weak("calculation-in-loop"))

    def on_leave(self, node: NodeRef):
        if node.kind is NodeKind.IF:
            self.acc.bump("if_depth", -1)
        elif node.kind is NodeKind.LOOP:
            self.acc.bump("loops", -1)

    def business_logic(self) -> Verdict:
        return corroborate(*self.signals)


class RouteClosureVisitor(Visitor):
    kinds = frozenset({NodeKind.STATIC_CALL, NodeKind.METHOD_CALL})

    def __init__(self, ctx: FileContext, max_lines: int):
        self.ctx = ctx
        self.max_lines = max_lines
        self.seen: Set[Tuple[int, int]] = set()

    def on_enter(self, node: NodeRef):
        if not self.is_route_call(node) or member_name(node) in GROUPING_METHODS:
            return
        for arg in argument_values(node):
            if arg.kind is NodeKind.CLOSURE and arg.position not in self.seen:
                self.seen.add(arg.position)
                self.analyze_closure(arg)

    def is_route_call(self, node: NodeRef) -> bool:
        if node.kind is NodeKind.STATIC_CALL:
            resolved = self.ctx.names.resolve_node(node.field("scope"))
            return isinstance(resolved, ResolvedName) and resolved.fully_qualified_name.lstrip("\\") in ROUTE_FACADES
        root = self.ctx.chains.walk(node).root
        if not isinstance(root, StaticCallRoot) or not isinstance(root.resolved, ResolvedName):
            return False
        return root.resolved.fully_qualified_name.lstrip("\\") in ROUTE_FACADES

    def analyze_closure(self, closure: NodeRef):
        scanner = ClosureScanner(self.ctx, Accumulator())
        traverse(self.ctx.tree, [scanner], start=closure)

        aggregator = self.ctx.aggregator
        line_count = closure.end_line - closure.line + 1
        logic = scanner.business_logic()
        unit = aggregator.unit(
            closure.position, closure.line, "Route closure contains {problems}",
            line_count=line_count,
            has_db_queries=scanner.query_found,
            has_business_logic=logic.is_finding,
        )
        problems = []
        if scanner.query_found:
            problems.append((DB_QUERIES, Severity.CRITICAL, "database queries"))
        if logic.is_finding:
            problems.append((BUSINESS_LOGIC, Severity.HIGH, "complex business logic"))
        if line_count > self.max_lines:
            problems.append((TOO_LONG, Severity.MEDIUM, f"{line_count} lines (max: {self.max_lines})"))
        # Only the worst problem carries a recommendation
        for i, (code, severity, reason) in enumerate(problems):
            aggregator.add_problem(unit.key, code, severity, reason, RECOMMENDATIONS[code] if i == 0 else "")


class LogicInRoutesAnalyzer(Analyzer):
    id = "logic-in-routes"
    name = "Logic in Routes"
    description = "Detects business logic and database queries in route closures"
    severity = Severity.HIGH
    default_paths = ("routes",)
    priorities = (DB_QUERIES, BUSINESS_LOGIC, TOO_LONG)
    defaults = {"max_closure_lines": 5}

    passed_message = "Route files contain only route definitions"
    failed_message = "Found {count} route(s) with business logic that should be moved to controllers"

    def visitors(self, ctx: FileContext) -> List[Visitor]:
        return [RouteClosureVisitor(ctx, int(self.option("max_closure_lines")))]
