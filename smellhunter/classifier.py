"""
Heuristic classification of syntactic constructs.

Every predicate answers one question ("is this an ORM model?", "is this a
filesystem operation?") with a ``Verdict`` and follows the same tiers:

1. exclusion list hit            -> (False, STRONG)
2. namespace / suffix / known API -> (True, STRONG)
3. naming heuristic               -> (True, WEAK)
4. anything else                  -> (False, NONE)

Rules combine verdicts with ``corroborate``: a finding needs one STRONG
positive, or two WEAK positives with different reasons. An exclusion always
wins over positive evidence.
"""

import dataclasses
import re
from dataclasses import dataclass, field
from enum import Enum
from typing import FrozenSet, Iterable, Mapping, Optional, Tuple, Union

from smellhunter.chains import (
    CallChain, ChainLink, ChainWalker, FunctionCallRoot,
    PropertyRoot, StaticCallRoot, VariableRoot,
)
from smellhunter.inflect import IRREGULAR_PLURALS, UNCOUNTABLE, camel_segments, singularize
from smellhunter.names import NameResolver, ResolvedName, Unresolvable, short_name
from smellhunter.tree import (
    NodeKind, NodeRef, argument_values, function_name, member_name, string_value,
    unwrap_parentheses, variable_name,
)


class Confidence(Enum):
    STRONG = "strong"
    WEAK = "weak"
    NONE = "none"


@dataclass(frozen=True)
class Verdict:
    is_match: bool
    confidence: Confidence
    reason: str
    corroborated_by: Tuple[str, ...] = ()

    @property
    def is_exclusion(self) -> bool:
        return not self.is_match and self.confidence is Confidence.STRONG

    @property
    def is_finding(self) -> bool:
        """Enough evidence to report: strong, or corroborated weak signals."""
        if not self.is_match:
            return False
        return self.confidence is Confidence.STRONG or len(self.corroborated_by) >= 2


UNKNOWN = Verdict(False, Confidence.NONE, "unknown")


def strong(reason: str) -> Verdict:
    return Verdict(True, Confidence.STRONG, reason)


def weak(reason: str) -> Verdict:
    return Verdict(True, Confidence.WEAK, reason)


def excluded(reason: str) -> Verdict:
    return Verdict(False, Confidence.STRONG, reason)


def corroborate(*verdicts: Verdict) -> Verdict:
    """Combine verdicts about one hypothesis.

    Exclusion beats everything, then the first strong positive, then two or
    more weak positives with distinct reasons. A lone weak positive is
    returned as-is and is not a finding.
    """
    for verdict in verdicts:
        if verdict.is_exclusion:
            return verdict
    for verdict in verdicts:
        if verdict.is_match and verdict.confidence is Confidence.STRONG:
            return verdict
    reasons = []
    for verdict in verdicts:
        if verdict.is_match and verdict.confidence is Confidence.WEAK and verdict.reason not in reasons:
            reasons.append(verdict.reason)
    if len(reasons) >= 2:
        return Verdict(True, Confidence.WEAK, "corroborated", tuple(reasons))
    if reasons:
        return weak(reasons[0])
    return UNKNOWN


# ============================================================================
# Tables
# ============================================================================

def _fs(*items: str) -> FrozenSet[str]:
    return frozenset(items)


@dataclass(frozen=True)
class ClassifierTables:
    """Immutable lookup tables. Override per run with ``extended``."""

    excluded_classes: FrozenSet[str] = _fs(
        "Collection", "LazyCollection", "EloquentCollection", "Arr", "Str", "Stringable",
        "Carbon", "CarbonImmutable", "DateTime", "DateTimeImmutable",
        "Config", "Session", "Request", "Cache", "Cookie", "Http", "Response", "Log",
        "DB", "File", "Storage", "Queue", "Mail", "Notification", "Event", "Gate",
        "Auth", "Validator", "View", "URL", "Route", "Redirect", "Crypt", "Hash",
        "Password", "RateLimiter", "Bus", "Artisan", "App", "Schema", "Broadcast",
        "Builder", "Factory", "Faker", "Client", "GuzzleHttp", "Vite", "Lang", "Blade",
    )
    non_model_suffixes: Tuple[str, ...] = (
        "Service", "Repository", "Helper", "Handler", "Provider", "Facade", "Controller",
        "Middleware", "Policy", "Event", "Listener", "Job", "Mail", "Notification",
        "Command", "Request", "Rule", "Exception", "Trait", "Interface", "Contract",
        "Test", "Seeder", "Migration", "Observer", "Scope", "Cast", "Enum", "Factory",
        "Action",
    )
    model_namespaces: Tuple[str, ...] = ("App\\Models", "App\\Model")
    model_namespace_marker: str = "\\Models"
    model_suffixes: Tuple[str, ...] = ("Model",)

    excluded_properties: FrozenSet[str] = _fs(
        "id", "name", "title", "status", "type", "data", "value", "key", "config",
        "options", "settings", "attributes", "service", "client", "http", "response",
        "request", "cache", "session", "connection", "driver", "handler", "manager",
        "factory", "builder", "query", "result", "output", "input", "error", "message",
        "content", "body", "headers", "params", "args", "context", "container", "app",
        "instance", "logger", "validator",
        "created_at", "updated_at", "deleted_at", "email", "password", "remember_token",
        "email_verified_at", "description", "meta", "slug", "count", "total", "amount",
        "price", "quantity", "active", "enabled",
    )
    relationship_terms: FrozenSet[str] = _fs(
        "parent", "owner", "children", "author", "creator", "members", "followers",
        "following", "friends", "roles", "permissions", "tags", "categories", "items",
        "entries", "records",
    )
    non_plural_words: FrozenSet[str] = _fs(
        "status", "class", "address", "access", "process", "success", "progress",
        "news", "series", "analysis", "alias", "canvas",
    )
    irregular_plurals: Mapping[str, str] = field(default_factory=lambda: dict(IRREGULAR_PLURALS))
    uncountable: FrozenSet[str] = UNCOUNTABLE

    fetch_methods: FrozenSet[str] = _fs(
        "get", "all", "paginate", "simplePaginate", "cursorPaginate", "cursor", "pluck",
        "findMany",
    )
    filter_methods: FrozenSet[str] = _fs("filter", "reject", "whereIn", "whereNotIn")

    filesystem_functions: FrozenSet[str] = _fs(
        "file_get_contents", "file_put_contents", "fopen", "fread", "fwrite", "fclose",
        "file", "readfile", "fgets", "fgetc", "fgetcsv", "fputcsv",
        "file_exists", "is_file", "is_dir", "is_readable", "is_writable", "is_writeable",
        "is_executable", "is_link",
        "mkdir", "rmdir", "opendir", "readdir", "closedir", "scandir", "glob",
        "unlink", "copy", "rename", "move_uploaded_file", "chmod", "chown", "chgrp",
        "touch", "link", "symlink", "readlink",
        "filesize", "filetype", "filemtime", "fileatime", "filectime", "stat", "lstat",
        "pathinfo", "realpath", "dirname", "basename",
    )
    filesystem_facades: FrozenSet[str] = _fs("Storage", "File")
    filesystem_static_methods: FrozenSet[str] = _fs(
        "get", "put", "exists", "missing", "path", "delete", "copy", "move", "size",
        "lastModified", "files", "allFiles", "directories", "allDirectories",
        "makeDirectory", "deleteDirectory", "append", "prepend", "read", "write",
        "readStream", "writeStream", "disk",
    )
    filesystem_instance_methods: FrozenSet[str] = _fs(
        "get", "put", "exists", "delete", "copy", "move", "read", "write", "append",
        "prepend", "size", "lastModified", "path",
    )
    uploaded_file_classes: FrozenSet[str] = _fs(
        "UploadedFile", "Illuminate\\Http\\UploadedFile",
        "Symfony\\Component\\HttpFoundation\\File\\UploadedFile",
    )
    filesystem_services: FrozenSet[str] = _fs(
        "files", "filesystem", "Illuminate\\Filesystem\\Filesystem",
        "Illuminate\\Contracts\\Filesystem\\Filesystem",
    )
    response_file_methods: FrozenSet[str] = _fs("download", "file", "streamDownload")
    filesystem_name_hints: Tuple[str, ...] = ("file", "filesystem", "storage", "disk", "fs", "directory", "dir")
    asset_functions: FrozenSet[str] = _fs(
        "asset", "secure_asset", "mix", "url", "secure_url", "route", "action", "to_route",
        "redirect",
    )
    url_methods: FrozenSet[str] = _fs(
        "to", "route", "action", "asset", "secure", "signedroute", "temporarysignedroute",
    )
    storage_url_methods: FrozenSet[str] = _fs("url", "temporaryurl")

    database_facades: FrozenSet[str] = _fs("DB", "Illuminate\\Support\\Facades\\DB")
    static_query_methods: FrozenSet[str] = _fs(
        "where", "find", "all", "first", "create", "query", "findOrFail", "firstOrFail",
        "get", "pluck", "count", "exists", "doesntExist", "with", "without", "update",
        "firstOrCreate", "updateOrCreate", "whereIn", "orderBy", "latest", "oldest",
        "paginate", "destroy", "insert",
    )
    query_builder_methods: FrozenSet[str] = _fs(
        "orWhere", "whereIn", "whereNotIn", "whereBetween", "whereNull", "join",
        "leftJoin", "rightJoin", "crossJoin", "having", "havingRaw", "groupBy", "union",
        "unionAll", "lockForUpdate", "sharedLock",
    )
    query_terminal_methods: FrozenSet[str] = _fs(
        "get", "first", "firstOrFail", "paginate", "simplePaginate", "cursorPaginate",
        "count", "sum", "avg", "max", "min", "exists", "pluck", "value", "chunk", "find",
    )

    business_logic_functions: FrozenSet[str] = _fs(
        "dispatch", "dispatch_sync", "dispatch_now", "event", "report", "rescue",
        "broadcast", "app", "resolve", "retry",
    )
    business_logic_facades: FrozenSet[str] = _fs(
        "Mail", "Notification", "Queue", "Event", "Bus", "Broadcast",
    )
    container_facades: FrozenSet[str] = _fs("App")
    container_methods: FrozenSet[str] = _fs("make", "makeWith", "call", "get")
    utility_classes: FrozenSet[str] = _fs(
        "Carbon", "Collection", "Validator", "Cache", "Log", "Session", "Cookie",
        "Request", "Response", "View", "Config", "Str", "Arr", "File", "Storage",
        "Hash", "Crypt", "Route", "URL", "Redirect", "DB", "App", "Auth", "Gate",
        "Password", "RateLimiter", "Schema", "Lang", "Vite",
    )

    def extended(self, **extra: Iterable[str]) -> "ClassifierTables":
        """Copy with additional entries merged into the named set-valued tables."""
        changes = {}
        for name, items in extra.items():
            current = getattr(self, name)
            if isinstance(current, frozenset):
                changes[name] = current | frozenset(items)
            elif isinstance(current, tuple):
                changes[name] = current + tuple(i for i in items if i not in current)
            else:
                raise TypeError(f"table {name!r} cannot be extended")
        return dataclasses.replace(self, **changes)


DEFAULT_TABLES = ClassifierTables()

_PASCAL_CASE = re.compile(r"^[A-Z][a-zA-Z0-9]*$")


def _strip(name: str) -> str:
    return name.lstrip("\\")


# ============================================================================
# Classifier
# ============================================================================

class Classifier:
    """Predicate families sharing one set of tables and an optional model registry."""

    def __init__(self, tables: ClassifierTables = DEFAULT_TABLES, registry=None):
        self.tables = tables
        self.registry = registry

    # ------------------------------------------------------------------
    # ORM models
    # ------------------------------------------------------------------

    def is_orm_model_reference(self, name: Union[ResolvedName, Unresolvable, str, None]) -> Verdict:
        """Does this class reference name an Eloquent model?"""
        if name is None or isinstance(name, Unresolvable):
            return UNKNOWN
        if isinstance(name, str):
            text = name.strip()
            if not text:
                return UNKNOWN
            name = ResolvedName(short_name(text), text if text.startswith("\\") else "\\" + text)
        t = self.tables
        short = name.short_name
        fqn = _strip(name.fully_qualified_name)
        namespace = fqn.rpartition("\\")[0]

        if short in t.excluded_classes or fqn in t.excluded_classes:
            return excluded("excluded-class")
        for suffix in t.non_model_suffixes:
            if short.endswith(suffix) and short != suffix:
                return excluded("non-model-suffix")
        if self.registry is not None and self.registry.is_model(fqn):
            return strong("registered-model")
        if namespace:
            for prefix in t.model_namespaces:
                if namespace == prefix or namespace.startswith(prefix + "\\"):
                    return strong("model-namespace")
            if t.model_namespace_marker in "\\" + namespace:
                return strong("model-namespace")
        for suffix in t.model_suffixes:
            if short.endswith(suffix) and short != suffix:
                return strong("model-suffix")
        if _PASCAL_CASE.match(short):
            return weak("pascal-case-class")
        return UNKNOWN

    # ------------------------------------------------------------------
    # Relationships
    # ------------------------------------------------------------------

    def is_relationship_property_name(self, name: str) -> Verdict:
        """Does this property/method name read like an Eloquent relationship?"""
        if not name:
            return UNKNOWN
        t = self.tables
        if name in t.excluded_properties:
            return excluded("excluded-property")
        if name in t.relationship_terms:
            return strong("relationship-term")
        if self.looks_plural(name):
            return weak("plural-name")
        return UNKNOWN

    def looks_plural(self, word: str) -> bool:
        t = self.tables
        lower = word.lower()
        if len(lower) <= 3 or lower in t.non_plural_words or lower in t.uncountable:
            return False
        segments = camel_segments(word)
        last = segments[-1] if segments else lower
        if last in t.irregular_plurals.values():
            return True
        if last in t.uncountable or last.endswith(("ss", "us", "is")):
            return False
        return singularize(last, t.irregular_plurals, t.uncountable) != last

    # ------------------------------------------------------------------
    # Query chains
    # ------------------------------------------------------------------

    def is_fetch_link(self, link: ChainLink, walker: Optional[ChainWalker] = None) -> Verdict:
        if link.method in self.tables.fetch_methods:
            return weak("fetch-method")
        if walker is not None and link.method == "find" and walker.is_find_with_array(link):
            return weak("fetch-method")
        return UNKNOWN

    def is_filter_link(self, link: ChainLink) -> Verdict:
        if link.method in self.tables.filter_methods:
            return weak("filter-method")
        return UNKNOWN

    def chain_root_verdict(self, chain: CallChain) -> Verdict:
        """Is the origin of this chain a database query source?"""
        root = chain.root
        if isinstance(root, StaticCallRoot):
            if short_name(root.class_name) == "DB":
                return strong("db-facade")
            return self.is_orm_model_reference(root.resolved if root.resolved is not None else root.class_name)
        if isinstance(root, FunctionCallRoot):
            return excluded("function-call-root")
        if isinstance(root, PropertyRoot):
            return self.is_relationship_property_name(root.name)
        if isinstance(root, VariableRoot):
            return UNKNOWN
        return UNKNOWN

    def is_query_result_chain(self, chain: CallChain, walker: Optional[ChainWalker] = None) -> Verdict:
        """Does this chain operate on rows fetched from the database?

        Root evidence is combined with two independent weak signals from the
        chain itself: a fetch-like call and a filter-like call.
        """
        fetch = UNKNOWN
        filt = UNKNOWN
        for link in chain.links:
            if fetch is UNKNOWN:
                candidate = self.is_fetch_link(link, walker)
                if candidate.is_match:
                    fetch = candidate
            if filt is UNKNOWN:
                candidate = self.is_filter_link(link)
                if candidate.is_match:
                    filt = candidate
        return corroborate(self.chain_root_verdict(chain), fetch, filt)

    # ------------------------------------------------------------------
    # Database calls
    # ------------------------------------------------------------------

    def is_database_facade_call(self, call: NodeRef, names: Optional[NameResolver] = None,
                                walker: Optional[ChainWalker] = None) -> Verdict:
        """Is this call a database query (DB facade, model query, query builder)?"""
        t = self.tables
        if call.kind is NodeKind.STATIC_CALL:
            scope = call.field("scope")
            resolved = names.resolve_node(scope) if names is not None else None
            written = scope.text if scope is not None else ""
            if isinstance(resolved, ResolvedName):
                if _strip(resolved.fully_qualified_name) in t.database_facades or resolved.short_name == "DB":
                    return strong("db-facade")
            elif written in t.database_facades:
                return strong("db-facade")
            method = member_name(call)
            model = self.is_orm_model_reference(resolved if resolved is not None else written)
            if method not in t.static_query_methods:
                return excluded("non-query-method") if model.is_exclusion else UNKNOWN
            return corroborate(model, weak("static-query-method"))

        if call.kind is NodeKind.METHOD_CALL:
            method = member_name(call)
            signals = []
            if method in t.query_builder_methods:
                signals.append(weak("query-builder-method"))
            if walker is not None:
                chain = walker.walk(call)
                root = self.chain_root_verdict(chain)
                if isinstance(chain.root, StaticCallRoot) and root.is_match and root.confidence is Confidence.STRONG:
                    signals.append(root)
                if any(link.method in t.query_builder_methods for link in chain.links):
                    signals.append(weak("query-builder-method"))
                if chain.links and chain.links[-1].method in t.query_terminal_methods and len(chain.links) > 1:
                    signals.append(weak("query-terminal-method"))
            return corroborate(*signals) if signals else UNKNOWN
        return UNKNOWN

    # ------------------------------------------------------------------
    # Business logic
    # ------------------------------------------------------------------

    def is_business_logic_call(self, call: NodeRef, names: Optional[NameResolver] = None) -> Verdict:
        """Does this call perform work that belongs in a service (jobs, mail, container)?"""
        t = self.tables
        if call.kind is NodeKind.FUNCTION_CALL:
            func = function_name(call)
            if func in t.business_logic_functions:
                return strong("side-effect-helper")
            return UNKNOWN
        if call.kind is NodeKind.STATIC_CALL:
            scope = call.field("scope")
            if scope is None or scope.kind is not NodeKind.NAME:
                return UNKNOWN
            resolved = names.resolve_node(scope) if names is not None else None
            short = resolved.short_name if isinstance(resolved, ResolvedName) else short_name(scope.text)
            method = member_name(call)
            if short in t.business_logic_facades:
                return strong("side-effect-facade")
            if short in t.container_facades and method in t.container_methods:
                return strong("container-resolution")
            if short in t.utility_classes:
                return excluded("utility-class")
            if scope.type == "relative_scope":
                return UNKNOWN
            if _PASCAL_CASE.match(short) and method and method not in t.static_query_methods:
                return weak("static-service-call")
        return UNKNOWN

    # ------------------------------------------------------------------
    # Filesystem
    # ------------------------------------------------------------------

    def is_filesystem_operation(self, call: NodeRef, names: Optional[NameResolver] = None) -> Verdict:
        """Does this call read or write the local filesystem?"""
        t = self.tables
        if call.kind is NodeKind.FUNCTION_CALL:
            func = function_name(call).lower()
            if func in t.asset_functions:
                return excluded("asset-helper")
            if func in t.filesystem_functions:
                return strong("filesystem-function")
            return UNKNOWN

        if call.kind is NodeKind.STATIC_CALL:
            short, fqn = self._class_of(call.field("scope"), names)
            method = member_name(call)
            if short in t.filesystem_facades or fqn in ("Illuminate\\Support\\Facades\\Storage",
                                                        "Illuminate\\Support\\Facades\\File"):
                if method.lower() in t.storage_url_methods:
                    return excluded("url-producing-storage-method")
                if method in t.filesystem_static_methods:
                    return strong("filesystem-facade")
                return UNKNOWN
            if short == "Vite" and method == "asset":
                return excluded("asset-helper")
            if short == "URL":
                return excluded("url-facade")
            if short in t.uploaded_file_classes or fqn in t.uploaded_file_classes:
                return strong("uploaded-file")
            return UNKNOWN

        if call.kind is NodeKind.NEW:
            target = call.child_of_kind(NodeKind.NAME)
            short, fqn = self._class_of(target, names)
            if short in t.uploaded_file_classes or fqn in t.uploaded_file_classes:
                return strong("uploaded-file")
            if short in ("SplFileObject", "SplFileInfo", "DirectoryIterator", "RecursiveDirectoryIterator"):
                return strong("spl-file")
            return UNKNOWN

        if call.kind is NodeKind.METHOD_CALL:
            method = member_name(call)
            receiver = unwrap_parentheses(call.field("object"))
            if receiver is None:
                return UNKNOWN
            lower = method.lower()
            if receiver.kind is NodeKind.FUNCTION_CALL:
                func = function_name(receiver).lower()
                if func == "url" and lower in t.url_methods:
                    return excluded("url-helper")
                if func == "response" and method in t.response_file_methods:
                    return strong("response-file")
                if func in ("app", "resolve") and method in t.filesystem_instance_methods:
                    if self._resolves_filesystem_service(receiver):
                        return strong("filesystem-service")
                return UNKNOWN
            if receiver.kind is NodeKind.STATIC_CALL:
                short, fqn = self._class_of(receiver.field("scope"), names)
                if short in t.filesystem_facades and method in t.filesystem_instance_methods:
                    return strong("storage-disk-chain")
                return UNKNOWN
            if receiver.kind is NodeKind.VARIABLE and variable_name(receiver).lower() == "response" \
                    and method in t.response_file_methods:
                return strong("response-file")
            if method in t.filesystem_instance_methods:
                hint_name = ""
                if receiver.kind is NodeKind.VARIABLE:
                    hint_name = variable_name(receiver)
                elif receiver.kind is NodeKind.PROPERTY_ACCESS:
                    hint_name = member_name(receiver)
                hint_name = hint_name.lower()
                if hint_name and any(h in hint_name for h in t.filesystem_name_hints):
                    return weak("filesystem-receiver-name")
        return UNKNOWN

    def is_asset_context(self, call: NodeRef, names: Optional[NameResolver] = None) -> bool:
        """Calls whose string arguments are URLs or asset paths rather than files."""
        t = self.tables
        if call.kind is NodeKind.FUNCTION_CALL:
            return function_name(call).lower() in t.asset_functions
        if call.kind is NodeKind.STATIC_CALL:
            short, _ = self._class_of(call.field("scope"), names)
            method = member_name(call).lower()
            if short in t.filesystem_facades and method in t.storage_url_methods:
                return True
            return (short == "Vite" and method == "asset") or short == "URL"
        if call.kind is NodeKind.METHOD_CALL:
            receiver = unwrap_parentheses(call.field("object"))
            return (receiver is not None and receiver.kind is NodeKind.FUNCTION_CALL
                    and function_name(receiver).lower() == "url"
                    and member_name(call).lower() in t.url_methods)
        return False

    def _resolves_filesystem_service(self, call: NodeRef) -> bool:
        args = argument_values(call)
        if not args:
            return False
        first = args[0]
        value = string_value(first)
        if value is not None:
            return value in self.tables.filesystem_services
        if first.type == "class_constant_access_expression":
            return "Filesystem" in first.text
        return False

    @staticmethod
    def _class_of(node: Optional[NodeRef], names: Optional[NameResolver]) -> Tuple[str, str]:
        """(short name, fully qualified name without leading separator) of a class reference."""
        if node is None or node.kind is not NodeKind.NAME:
            return "", ""
        if names is not None:
            resolved = names.resolve_node(node)
            if isinstance(resolved, ResolvedName):
                return resolved.short_name, _strip(resolved.fully_qualified_name)
        return short_name(node.text), _strip(node.text)
