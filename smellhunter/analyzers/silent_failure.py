"""
Silent failure detection: empty catch blocks, broad catches, catches that
neither log nor recover, and the ``@`` error suppression operator.

Problems found on one catch clause are reported as a single issue with the
worst severity; the individual problems are listed in its metadata.
"""

import fnmatch
from typing import List, Optional, Sequence

from smellhunter.engine import Analyzer, FileContext
from smellhunter.issues import Severity
from smellhunter.names import short_name
from smellhunter.traversal import SKIP_CHILDREN, Visitor
from smellhunter.tree import (
    NodeKind, NodeRef, argument_values, function_name, member_name, unwrap_parentheses,
    variable_name,
)

EMPTY_CATCH = "empty-catch-block"
BROAD_CATCH = "broad-exception-catch"
UNLOGGED_CATCH = "unlogged-catch"
ERROR_SUPPRESSION = "error-suppression"

BROAD_EXCEPTION_TYPES = ("Throwable", "Exception", "Error")

INTENTIONAL_IGNORE_MARKERS = (
    "intentional", "deliberately", "on purpose", "expected to fail", "expected exception",
    "safe to ignore", "safely ignore", "can be ignored", "may be ignored", "optional",
    "not critical", "non-critical", "best effort", "best-effort", "fire and forget",
    "fire-and-forget", "no action needed", "no action required", "nothing to do", "noop",
    "no-op", "@suppress", "@ignore", "phpstan-ignore", "psalm-suppress", "swallow",
    "don't care", "doesn't matter", "not important",
)

LOGGER_METHODS = frozenset({
    "error", "warning", "info", "debug", "log", "critical", "alert", "emergency", "notice",
})
REPORTER_METHODS = frozenset({"captureException", "notifyException", "report"})
REPORTER_CLASSES = frozenset({"Raygun", "Rollbar", "Honeybadger"})
REPORTING_FUNCTIONS = frozenset({"logger", "report", "abort", "abort_if", "abort_unless"})
HANDLER_METHOD_MARKERS = ("log", "error", "exception", "report", "handle", "notify", "fail")

FALLBACK_VARIABLE_MARKERS = ("default", "fallback", "backup", "cached", "empty", "placeholder", "alternative")
FALLBACK_CALL_MARKERS = ("default", "fallback", "backup", "empty", "cached", "retry", "attempt", "recover", "restore")
FALLBACK_STATIC_CLASSES = frozenset({"Cache", "Config", "Session", "Storage", "Redis"})

_NESTED_SCOPES = (NodeKind.CLOSURE, NodeKind.FUNCTION, NodeKind.CLASS, NodeKind.METHOD)
_CALL_RESULT_KINDS = (NodeKind.METHOD_CALL, NodeKind.STATIC_CALL, NodeKind.FUNCTION_CALL, NodeKind.NEW)


def matches_pattern(name: str, pattern: str) -> bool:
    """Case-insensitive ``*`` wildcard match on the whole name."""
    return fnmatch.fnmatchcase(name.lower(), pattern.lower())


def catch_types(catch: NodeRef) -> List[str]:
    type_node = catch.field("type")
    if type_node is None:
        type_node = next((c for c in catch.children if c.type == "type_list"), None)
    if type_node is None:
        return []
    if type_node.kind is NodeKind.NAME:
        return [type_node.text]
    return [n.text for n in type_node.find(NodeKind.NAME, stop_at=(NodeKind.NAME,))]


def catch_variable(catch: NodeRef) -> Optional[str]:
    var = catch.field("name")
    if var is None:
        var = catch.child_of_kind(NodeKind.VARIABLE)
    return variable_name(var) if var is not None else None


def catch_body(catch: NodeRef) -> Optional[NodeRef]:
    body = catch.field("body")
    return body if body is not None else catch.child_of_kind(NodeKind.BLOCK)


# ============================================================================
# Catch body predicates
# ============================================================================

def is_logging_call(expr: NodeRef) -> bool:
    expr = unwrap_parentheses(expr)
    if expr is None:
        return False
    if expr.kind is NodeKind.STATIC_CALL:
        scope = expr.field("scope")
        if scope is None or scope.kind is not NodeKind.NAME:
            return False
        class_name = scope.text.lstrip("\\")
        short = short_name(class_name)
        if short == "Log":
            return True
        if short == "DB" and member_name(expr) == "rollback":
            return True
        return "Sentry" in class_name or "Bugsnag" in class_name or short in REPORTER_CLASSES

    if expr.kind is NodeKind.FUNCTION_CALL:
        func = function_name(expr)
        if func in REPORTING_FUNCTIONS:
            return True
        if func == "rescue":
            args = argument_values(expr)
            return len(args) >= 3 and args[2].text.lower() == "true"
        return "\\" in func and ("Sentry\\captureException" in func or "Bugsnag\\" in func or "report" in func)

    if expr.kind is NodeKind.METHOD_CALL:
        method = member_name(expr)
        if method in LOGGER_METHODS or method in REPORTER_METHODS or method == "notify":
            return True
        receiver = unwrap_parentheses(expr.field("object"))
        if method in ("flash", "put", "push") and receiver is not None:
            if receiver.kind is NodeKind.FUNCTION_CALL and function_name(receiver) == "session":
                return True
            if receiver.kind is NodeKind.VARIABLE and "session" in variable_name(receiver).lower():
                return True
        if receiver is not None and receiver.kind is NodeKind.VARIABLE and variable_name(receiver) == "this":
            lower = method.lower()
            return any(marker in lower for marker in HANDLER_METHOD_MARKERS)
    return False


def _statement_expression(stmt: NodeRef) -> Optional[NodeRef]:
    inner = [c for c in stmt.children if c.kind is not NodeKind.COMMENT]
    return inner[0] if inner else None


def _has_marker(name: str, markers: Sequence[str]) -> bool:
    lower = name.lower()
    return any(marker in lower for marker in markers)


def is_fallback_assignment(assign: NodeRef) -> bool:
    left = assign.field("left")
    right = unwrap_parentheses(assign.field("right"))
    if left is not None and left.kind is NodeKind.VARIABLE and _has_marker(variable_name(left), FALLBACK_VARIABLE_MARKERS):
        return True
    if right is None:
        return False
    if right.kind is NodeKind.METHOD_CALL:
        return _has_marker(member_name(right), FALLBACK_CALL_MARKERS)
    if right.kind is NodeKind.STATIC_CALL:
        scope = right.field("scope")
        if scope is None or scope.kind is not NodeKind.NAME:
            return False
        if short_name(scope.text) not in FALLBACK_STATIC_CLASSES:
            return False
        method = member_name(right)
        return (method == "get" and len(argument_values(right)) >= 2) or method in ("remember", "rememberForever", "pull")
    if right.kind is NodeKind.FUNCTION_CALL:
        return _has_marker(function_name(right), FALLBACK_CALL_MARKERS)
    if right.kind is NodeKind.BINARY and right.field_text("operator") == "??":
        alternative = unwrap_parentheses(right.field("right"))
        return alternative is not None and alternative.kind in _CALL_RESULT_KINDS
    if right.kind is NodeKind.TERNARY:
        alternative = unwrap_parentheses(right.field("alternative"))
        return alternative is not None and alternative.kind in _CALL_RESULT_KINDS
    return right.kind is NodeKind.NEW


def is_graceful_fallback(node: NodeRef) -> bool:
    if node.kind in (NodeKind.RETURN, NodeKind.JUMP):
        return True
    if node.kind is NodeKind.EXPRESSION_STATEMENT:
        expr = _statement_expression(node)
        if expr is None:
            return False
        if expr.kind is NodeKind.ASSIGNMENT:
            return is_fallback_assignment(expr)
        return expr.kind is NodeKind.FUNCTION_CALL and function_name(expr) == "rescue"
    return False


def is_intentional_ignore(text: str) -> bool:
    lower = text.lower()
    return any(marker in lower for marker in INTENTIONAL_IGNORE_MARKERS)


# ============================================================================
# Visitor
# ============================================================================

class SilentFailureVisitor(Visitor):
    kinds = frozenset({NodeKind.CLASS, NodeKind.CATCH, NodeKind.ERROR_SUPPRESSION})

    def __init__(self, ctx: FileContext, analyzer: "SilentFailureAnalyzer"):
        self.ctx = ctx
        self.whitelist_classes = analyzer.option_list("whitelist_classes")
        self.whitelist_exceptions = analyzer.option_list("whitelist_exceptions")
        self.suppression_functions = analyzer.option_list("whitelist_error_suppression_functions")
        self.suppression_static_methods = analyzer.option_list("whitelist_error_suppression_static_methods")
        self.suppression_instance_methods = analyzer.option_list("whitelist_error_suppression_instance_methods")
        self.catch_depth = 0

    def on_enter(self, node: NodeRef):
        if node.kind is NodeKind.CLASS:
            name = node.field("name")
            if name is not None and any(matches_pattern(name.text, p) for p in self.whitelist_classes):
                return SKIP_CHILDREN
        elif node.kind is NodeKind.CATCH:
            self.catch_depth += 1
            self.check_catch(node)
        elif node.kind is NodeKind.ERROR_SUPPRESSION:
            self.check_suppression(node)
        return None

    def on_leave(self, node: NodeRef):
        if node.kind is NodeKind.CATCH:
            self.catch_depth -= 1

    # ------------------------------------------------------------------
    # Catch clauses
    # ------------------------------------------------------------------

    def _is_broad(self, type_name: str) -> bool:
        return short_name(type_name) in BROAD_EXCEPTION_TYPES

    def check_catch(self, catch: NodeRef):
        types = catch_types(catch)
        broad = [short_name(t) for t in types if self._is_broad(t)]
        if not broad and any(
                matches_pattern(t.lstrip("\\"), p) or matches_pattern(short_name(t), p)
                for t in types for p in self.whitelist_exceptions):
            return

        body = catch_body(catch)
        statements = [c for c in body.children if c.kind is not NodeKind.COMMENT] if body is not None else []
        aggregator = self.ctx.aggregator
        unit = aggregator.unit(catch.index, catch.line, "{problems}", exception_types=types)

        if not statements:
            comments = [c.text for c in body.children] if body is not None else []
            comments.append(self.ctx.tree.line_text(catch.line))
            if any(is_intentional_ignore(text) for text in comments):
                return
            aggregator.add_problem(
                unit.key, EMPTY_CATCH, Severity.HIGH,
                "Empty catch block silently swallows exceptions",
                "Never use empty catch blocks. At minimum, log the exception. "
                "If you truly need to ignore an exception, add a comment explaining why")
            return

        inner = list(body.descendants(stop_at=_NESTED_SCOPES))
        rethrows = any(n.kind is NodeKind.THROW for n in inner)
        logs = any(n.kind is NodeKind.EXPRESSION_STATEMENT and is_logging_call(_statement_expression(n))
                   for n in inner)
        recovers = any(is_graceful_fallback(n) for n in inner)

        if broad and not rethrows and not logs:
            joined = "|".join(broad)
            aggregator.add_problem(
                unit.key, BROAD_CATCH, Severity.HIGH,
                f"Catching {joined} is overly broad and can mask fatal errors",
                f"Catch specific exception types instead of {joined}. "
                f"Broad catches hide programming errors like TypeError, ArgumentCountError")

        var = catch_variable(catch)
        if var and any(n.kind is NodeKind.VARIABLE and variable_name(n) == var for n in inner):
            return
        if not logs and not recovers and not rethrows:
            aggregator.add_problem(
                unit.key, UNLOGGED_CATCH, Severity.MEDIUM,
                "Catch block does not log exception or rethrow",
                "Always log caught exceptions using Log::error(), report(), or rethrow them. "
                "Silent failures make debugging extremely difficult")

    # ------------------------------------------------------------------
    # Error suppression
    # ------------------------------------------------------------------

    def check_suppression(self, node: NodeRef):
        inner = [c for c in node.children if c.kind is not NodeKind.COMMENT]
        expr = unwrap_parentheses(inner[0]) if inner else None
        if expr is not None and self._is_whitelisted_suppression(expr):
            return

        if self.catch_depth > 0:
            severity = Severity.HIGH
            message = "Error suppression operator (@) inside catch block creates double silencing"
        elif expr is not None and self._is_dynamic_call(expr):
            severity = Severity.HIGH
            message = "Dynamic error suppression is particularly dangerous"
        else:
            severity = Severity.MEDIUM
            message = "Error suppression operator (@) hides errors"
        recommendation = (
            "Dynamic or nested error suppression is highly discouraged. Use explicit try-catch with logging"
            if severity is Severity.HIGH else
            "Avoid using @ operator. Handle errors explicitly with try-catch or check return values")
        self.ctx.aggregator.add(ERROR_SUPPRESSION, message, severity, node.line, recommendation,
                                {"expression": expr.text if expr is not None else ""})

    @staticmethod
    def _is_dynamic_call(expr: NodeRef) -> bool:
        if expr.kind is NodeKind.FUNCTION_CALL:
            return not function_name(expr)
        if expr.kind is NodeKind.STATIC_CALL:
            scope = expr.field("scope")
            return scope is None or scope.kind is not NodeKind.NAME or not member_name(expr)
        if expr.kind is NodeKind.METHOD_CALL:
            return not member_name(expr)
        return False

    def _is_whitelisted_suppression(self, expr: NodeRef) -> bool:
        if expr.kind is NodeKind.FUNCTION_CALL:
            func = function_name(expr)
            if not func:
                return False
            return any(matches_pattern(func, p) or matches_pattern(short_name(func), p)
                       for p in self.suppression_functions)
        if expr.kind is NodeKind.STATIC_CALL:
            scope = expr.field("scope")
            method = member_name(expr)
            if scope is None or scope.kind is not NodeKind.NAME or not method:
                return False
            full = scope.text.lstrip("\\") + "::" + method
            short = f"{short_name(scope.text)}::{method}"
            return any(matches_pattern(full, p) or matches_pattern(short, p)
                       for p in self.suppression_static_methods)
        if expr.kind is NodeKind.METHOD_CALL:
            method = member_name(expr)
            return bool(method) and any(matches_pattern(method, p) for p in self.suppression_instance_methods)
        return False


class SilentFailureAnalyzer(Analyzer):
    id = "silent-failure"
    name = "Silent Failure"
    description = "Detects empty catch blocks and error suppression that hide failures"
    severity = Severity.HIGH
    priorities = (EMPTY_CATCH, BROAD_CATCH, UNLOGGED_CATCH, ERROR_SUPPRESSION)
    defaults = {
        "whitelist_dirs": ("tests", "database/seeders", "database/factories"),
        "whitelist_classes": ("*Test", "*TestCase", "*Seeder", "DatabaseSeeder"),
        "whitelist_exceptions": (
            "ModelNotFoundException", "NotFoundException", "NotFoundHttpException", "ValidationException",
        ),
        "whitelist_error_suppression_functions": ("unlink", "fopen", "file_get_contents", "mkdir", "rmdir"),
        "whitelist_error_suppression_static_methods": (
            "Storage::delete", "Storage::deleteDirectory", "File::delete", "File::deleteDirectory",
        ),
        "whitelist_error_suppression_instance_methods": ("delete", "close", "unlink"),
    }

    passed_message = "No silent failures detected"
    failed_message = "Found {count} silent failure(s)"

    def should_analyze(self, ctx: FileContext) -> bool:
        path = ctx.relative_path.replace("\\", "/")
        for directory in self.option_list("whitelist_dirs"):
            directory = str(directory).replace("\\", "/").strip("/")
            if path.startswith(directory + "/") or f"/{directory}/" in path:
                return False
        return True

    def visitors(self, ctx: FileContext) -> List[Visitor]:
        return [SilentFailureVisitor(ctx, self)]
