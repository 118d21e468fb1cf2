"""
Hardcoded storage/public/app paths that should go through Laravel path helpers.

Absolute server paths and ``./`` / ``../`` relative paths are always
reported. Leading-slash paths such as ``/storage/app/...`` may just as well
be URLs, so they are only reported when the string flows (through
concatenation, arrays and arguments) into a filesystem call.
"""

import re
from typing import List, Optional, Pattern, Tuple

from smellhunter.chains import ChainWalker
from smellhunter.classifier import Confidence
from smellhunter.engine import Analyzer, FileContext
from smellhunter.issues import Severity
from smellhunter.traversal import Visitor
from smellhunter.tree import NodeKind, NodeRef, string_value

CODE = "hardcoded-storage-path"

ALWAYS_FLAG_PATTERNS: Tuple[Tuple[str, str], ...] = (
    (r"/var/www/.*storage", "storage_path(...)"),
    (r"/var/www/.*public", "public_path(...)"),
    (r"/var/www/.*app/", "app_path(...)"),
    (r"/var/www/.*resources", "resource_path(...)"),
    (r"/var/www/.*database", "database_path(...)"),
    (r"/var/www/.*config", "config_path(...)"),
    (r"[A-Z]:\\storage\\app\\", "storage_path('app/...')"),
    (r"[A-Z]:\\storage\\logs\\", "storage_path('logs/...')"),
    (r"[A-Z]:\\storage\\framework\\", "storage_path('framework/...')"),
    (r"[A-Z]:\\storage\\", "storage_path(...)"),
    (r"[A-Z]:\\public\\uploads\\", "public_path('uploads/...')"),
    (r"[A-Z]:\\public\\images\\", "public_path('images/...')"),
    (r"[A-Z]:\\public\\", "public_path(...)"),
    (r"[A-Z]:\\app\\", "app_path(...)"),
    (r"[A-Z]:\\resources\\", "resource_path(...)"),
    (r"[A-Z]:\\database\\", "database_path(...)"),
    (r"[A-Z]:\\config\\", "config_path(...)"),
    (r"\.\./storage/", "storage_path(...)"),
    (r"\.\./public/", "public_path(...)"),
    (r"\.\./app/", "app_path(...)"),
    (r"\.\./resources/", "resource_path(...)"),
    (r"\.\./database/", "database_path(...)"),
    (r"\.\./config/", "config_path(...)"),
    (r"\./storage/", "storage_path(...)"),
    (r"\./public/", "public_path(...)"),
    (r"\./app/", "app_path(...)"),
    (r"\./resources/", "resource_path(...)"),
    (r"\./database/", "database_path(...)"),
    (r"\./config/", "config_path(...)"),
)

# (pattern, helper, needs strong filesystem context)
CONTEXT_REQUIRED_PATTERNS: Tuple[Tuple[str, str, bool], ...] = (
    (r"^/storage/app/", "storage_path('app/...')", False),
    (r"^/storage/logs/", "storage_path('logs/...')", False),
    (r"^/storage/framework/", "storage_path('framework/...')", False),
    (r"^/storage/", "storage_path(...)", False),
    (r"^/public/uploads/", "public_path('uploads/...')", False),
    (r"^/public/images/", "public_path('images/...')", False),
    (r"^/public/", "public_path(...)", True),
    (r"^/app/", "app_path(...)", True),
    (r"^/resources/", "resource_path(...)", False),
    (r"^/database/", "database_path(...)", False),
    (r"^/config/", "config_path(...)", False),
)

URL_RE = re.compile(r"^https?://", re.IGNORECASE)

_TEXT_PARTS = frozenset({"string_content", "string_value", "nowdoc_string", "heredoc_body_content"})


def literal_text(node: NodeRef) -> Optional[str]:
    """Constant text of a string literal; interpolated parts are dropped."""
    value = string_value(node)
    if value is not None:
        return value
    if node.type not in ("encapsed_string", "heredoc", "nowdoc"):
        return None
    parts = [d.text for d in node.descendants() if d.type in _TEXT_PARTS]
    text = "".join(parts)
    return text or None


def _recommendation(helper: str) -> str:
    return (f"Use Laravel path helper: {helper}. This ensures portability across environments "
            f"and enables different storage drivers")


class HardcodedPathsVisitor(Visitor):
    kinds = frozenset({NodeKind.LITERAL})

    def __init__(self, ctx: FileContext, always: List[Tuple[Pattern, str]],
                 contextual: List[Tuple[Pattern, str, bool]], allowed: Tuple[str, ...]):
        self.ctx = ctx
        self.always = always
        self.contextual = contextual
        self.allowed = allowed

    def on_enter(self, node: NodeRef):
        if node.type not in ("string", "encapsed_string", "heredoc", "nowdoc"):
            return
        value = literal_text(node)
        if value:
            self.check_path(value, node)

    def check_path(self, value: str, node: NodeRef):
        if URL_RE.match(value):
            return
        if any(allowed in value for allowed in self.allowed):
            return

        for pattern, helper in self.always:
            if pattern.search(value):
                self._report(value, node, _recommendation(helper), "always")
                return

        for pattern, helper, needs_strong in self.contextual:
            if not pattern.search(value):
                continue
            consumer = ChainWalker.find_consumer(node)
            if not consumer.is_call or NodeKind.ARGUMENTS not in consumer.passed_through:
                return
            call = consumer.node
            classifier = self.ctx.classifier
            if classifier.is_asset_context(call, self.ctx.names):
                return
            verdict = classifier.is_filesystem_operation(call, self.ctx.names)
            if not verdict.is_match:
                return
            if needs_strong and verdict.confidence is not Confidence.STRONG:
                return
            self._report(value, node, _recommendation(helper), verdict.reason)
            return

    def _report(self, value: str, node: NodeRef, recommendation: str, evidence: str):
        self.ctx.aggregator.add(
            CODE,
            f'Hardcoded storage path found: "{value[:50]}"',
            Severity.MEDIUM,
            node.line,
            recommendation,
            {"path": value, "evidence": evidence},
        )


class HardcodedStoragePathsAnalyzer(Analyzer):
    id = "hardcoded-storage-paths"
    name = "Hardcoded Storage Paths"
    description = "Finds hardcoded storage/public paths instead of Laravel path helpers"
    severity = Severity.MEDIUM
    priorities = (CODE,)
    defaults = {"allowed_paths": (), "additional_patterns": {}}

    passed_message = "All paths use Laravel helpers"
    failed_message = "Found {count} hardcoded path(s)"

    def configure(self, settings=None, **overrides):
        super().configure(settings, **overrides)
        extra = self.option("additional_patterns") or {}
        self.always_patterns = [(re.compile(p, re.IGNORECASE), h) for p, h in ALWAYS_FLAG_PATTERNS]
        # additional_patterns: {regex: helper} or a list of regexes
        if hasattr(extra, "items"):
            self.always_patterns += [(re.compile(p, re.IGNORECASE), str(h)) for p, h in extra.items()]
        else:
            self.always_patterns += [(re.compile(p, re.IGNORECASE), "a Laravel path helper") for p in extra]
        self.context_patterns = [(re.compile(p, re.IGNORECASE), h, s) for p, h, s in CONTEXT_REQUIRED_PATTERNS]
        return self

    def visitors(self, ctx: FileContext) -> List[Visitor]:
        return [HardcodedPathsVisitor(ctx, self.always_patterns, self.context_patterns,
                                      tuple(str(p) for p in self.option_list("allowed_paths")))]
