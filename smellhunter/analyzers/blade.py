"""
Business logic in Blade templates.

Templates are scanned line by line rather than parsed: a Blade file mixes
HTML, directives and PHP fragments that tree-sitter-php cannot read as one
program. Each line yields at most one issue; when several checks match the
same line the most important one wins (see ``priorities``).
"""

import re
from typing import Optional

from smellhunter.engine import Analyzer, FileContext
from smellhunter.issues import Severity

INLINE_PHP = "blade-inline-php"
DB_QUERY = "blade-has-db-query"
API_CALL = "blade-has-api-call"
EXPENSIVE = "blade-expensive-computation"
NESTED_FOREACH = "blade-nested-foreach"
BUSINESS_LOGIC = "blade-has-business-logic"
CALCULATION = "blade-has-calculation"
PHP_BLOCK_TOO_LONG = "blade-php-block-too-long"
UNCLOSED_PHP_BLOCK = "blade-unclosed-php-block"

DEFINITE_DB_PATTERNS = [re.compile(r"\bDB::"), re.compile(r"->query\s*\(")]
SELF_TERMINAL_DB_PATTERNS = [
    re.compile(rf"::{method}\s*\(")
    for method in ("find", "all", "first", "create", "update", "delete", "insert", "upsert")
]
CHAIN_DB_PATTERNS = [re.compile(r"::where\s*\(")]
TERMINAL_DB_METHODS = (
    "->get(", "->first(", "->find(", "->count(", "->exists(", "->pluck(", "->sum(",
    "->avg(", "->min(", "->max(", "->paginate(",
)
MODEL_NAMESPACE_INDICATORS = ("\\Models\\", "\\Model\\")
# Suffixes that may or may not be models; only flagged with a terminal call
AMBIGUOUS_SUFFIXES = ("Resource", "Manager", "Builder")
NON_DB_GET_CALLS = ("config()", "session()", "cache()", "request()", "cookie()")
NON_DB_SAVE_VARIABLES = frozenset({
    "file", "upload", "image", "photo", "document", "attachment", "pdf", "excel", "csv",
    "export", "cache", "temp", "storage",
})
COLLECTION_VARIABLE_HINTS = (
    "collection", "items", "list", "array", "data", "results", "rows", "records", "entries",
)

SAVE_RE = re.compile(r"\$(\w+)->save\s*\(")
RELATION_QUERY_RE = re.compile(r"\$(\w+)->(\w+)\(\)->(get|first|find|count|exists|pluck|sum|avg|min|max)\s*\(")
CLASS_BEFORE_RE = re.compile(r"\\?(?:[A-Za-z_][A-Za-z0-9_]*\\)*([A-Za-z_][A-Za-z0-9_]*)$")

API_PATTERNS = [
    re.compile(r"Http::"),
    re.compile(r"\bGuzzle\b"),
    re.compile(r"\bcurl_"),
    re.compile(r"file_get_contents\s*\(\s*['\"]https?://"),
]

EXPENSIVE_STRING_FUNCTIONS = (
    "preg_match", "preg_replace", "preg_match_all", "preg_split",
    "str_replace", "str_ireplace", "substr_replace", "mb_ereg_replace",
)
EXPENSIVE_STRING_RE = re.compile(r"\b(?:%s)\s*\(" % "|".join(EXPENSIVE_STRING_FUNCTIONS))
EXPENSIVE_COLLECTION_METHODS = ("->toArray(", "->all(", "->toJson(", "->jsonSerialize(")

COLLECTION_MANIPULATION = ("filter", "map", "transform", "sortBy", "pluck", "unique", "chunk",
                           "groupBy", "keyBy", "reverse", "shuffle", "values", "keys")
FOREACH_TRANSFORM_RE = re.compile(r"@foreach\s*\(.*->(?:%s)\(" % "|".join(COLLECTION_MANIPULATION))
ARRAY_FUNCTIONS_RE = re.compile(
    r"\b(?:array_filter|array_map|array_reduce|array_walk|array_merge|array_combine|array_diff)\s*\("
)

SIMPLE_OUTPUT_RE = re.compile(r"^\{\{\s*\$\w+\s*\}\}$")
HELPER_OUTPUT_RE = re.compile(r"\{\{\s*(config|session|cache|request|cookie|auth)\s*\(\s*\)")
FACADE_OUTPUT_RE = re.compile(r"\{\{\s*(Config|Session|Cache|Request|Cookie|Auth)::")
NULL_COALESCE_RE = re.compile(r"\{\{\s*\$\w+(?:->\w+)?\s*\?\?\s*(?:\d+|['\"][^'\"]*['\"]|null)\s*\}\}")
SINGLE_OPERATION_RE = re.compile(r"\{\{\s*\$\w+(?:->\w+)?\s*[+\-*/]\s*\$\w+(?:->\w+)?\s*\}\}")
ECHO_ARITHMETIC_RE = re.compile(r"\{\{.*[+\-*/%].*\}\}")
OPERATOR_RE = re.compile(r"[+\-*/%]")
COMPOUND_ASSIGN_RE = re.compile(r"\$\w+\s*[+\-*/%]=")
CALL_WITH_MATH_RE = re.compile(r"\{\{.*\(.*\).*[+*/]")

PHP_OPEN_RE = re.compile(r"@php\b")
PHP_CLOSE_RE = re.compile(r"@endphp\b")
FOREACH_RE = re.compile(r"@foreach\b")
ENDFOREACH_RE = re.compile(r"@endforeach\b")
INLINE_PHP_RE = re.compile(r"<\?php")
IF_DIRECTIVE_RE = re.compile(r"@if\s*\(")
BLADE_COMMENT_RE = re.compile(r"\{\{--.*?--\}\}")


def in_string_or_comment(line: str, position: int) -> bool:
    """Is ``position`` inside a quoted string or after ``//`` on this line?"""
    before = line[:position]
    if "//" in before:
        return True
    single = double = False
    for i, char in enumerate(before):
        if i and line[i - 1] == "\\":
            continue
        if char == "'" and not double:
            single = not single
        elif char == '"' and not single:
            double = not double
    return single or double


def has_terminal_method(line: str) -> bool:
    return any(terminal in line for terminal in TERMINAL_DB_METHODS)


class BladeLineChecker:
    """Line predicates for one analyzer run."""

    def __init__(self, ctx: FileContext):
        self.classifier = ctx.classifier

    def static_class(self, line: str, position: int) -> Optional[str]:
        """Class written before ``::`` at ``position``; None when dynamic."""
        before = line[:position].rstrip()
        if before.endswith(")") or re.search(r"\$\w+$", before):
            return None
        match = CLASS_BEFORE_RE.search(before)
        return match.group(0) if match else ""

    def is_non_model_call(self, line: str, position: int) -> bool:
        written = self.static_class(line, position)
        if written is None:
            return True
        if not written:
            return False
        short = written.rpartition("\\")[2]
        if short.endswith(AMBIGUOUS_SUFFIXES):
            return not has_terminal_method(line)
        return self.classifier.is_orm_model_reference(written).is_exclusion

    def has_db_query(self, line: str) -> bool:
        if "->get(" in line and any(call in line for call in NON_DB_GET_CALLS):
            return False
        for pattern in DEFINITE_DB_PATTERNS:
            match = pattern.search(line)
            if match and not in_string_or_comment(line, match.start()):
                return True
        for pattern in SELF_TERMINAL_DB_PATTERNS:
            match = pattern.search(line)
            if match and not in_string_or_comment(line, match.start()) \
                    and not self.is_non_model_call(line, match.start()):
                return True
        for pattern in CHAIN_DB_PATTERNS:
            match = pattern.search(line)
            if not match or in_string_or_comment(line, match.start()):
                continue
            if self.is_non_model_call(line, match.start()):
                continue
            before = line[:match.start()]
            if any(indicator in before for indicator in MODEL_NAMESPACE_INDICATORS) or has_terminal_method(line):
                return True

        match = SAVE_RE.search(line)
        if match:
            if in_string_or_comment(line, match.start()):
                return False
            return match.group(1) not in NON_DB_SAVE_VARIABLES

        match = RELATION_QUERY_RE.search(line)
        if match:
            if in_string_or_comment(line, match.start()):
                return False
            variable = match.group(1).lower()
            return not any(hint in variable for hint in COLLECTION_VARIABLE_HINTS)
        return False

    @staticmethod
    def has_api_call(line: str) -> bool:
        for pattern in API_PATTERNS:
            match = pattern.search(line)
            if match and not in_string_or_comment(line, match.start()):
                return True
        return False

    @staticmethod
    def has_expensive_computation(line: str, foreach_depth: int) -> bool:
        if foreach_depth >= 1 and EXPENSIVE_STRING_RE.search(line):
            return True
        for method in EXPENSIVE_COLLECTION_METHODS:
            position = line.find(method)
            if position != -1 and not in_string_or_comment(line, position):
                return True
        return False

    @staticmethod
    def has_business_logic_directive(line: str) -> bool:
        if IF_DIRECTIVE_RE.search(line) and line.count("&&") + line.count("||") >= 3:
            return True
        if FOREACH_TRANSFORM_RE.search(line):
            return True
        return bool(ARRAY_FUNCTIONS_RE.search(line))

    @staticmethod
    def has_complex_calculation(line: str) -> bool:
        if SIMPLE_OUTPUT_RE.match(line.strip()):
            return False
        if HELPER_OUTPUT_RE.search(line) or FACADE_OUTPUT_RE.search(line):
            return False
        if NULL_COALESCE_RE.search(line) or SINGLE_OPERATION_RE.search(line):
            return False
        if ECHO_ARITHMETIC_RE.search(line) and len(OPERATOR_RE.findall(line)) >= 2:
            return True
        if COMPOUND_ASSIGN_RE.search(line):
            return True
        return bool(CALL_WITH_MATH_RE.search(line))


class LogicInBladeAnalyzer(Analyzer):
    id = "logic-in-blade"
    name = "Logic in Blade"
    description = "Finds business logic in Blade templates that should be moved to controllers or view composers"
    severity = Severity.HIGH
    file_patterns = ("*.blade.php",)
    exclude_patterns = ()
    default_paths = ("resources/views",)
    needs_tree = False
    priorities = (INLINE_PHP, DB_QUERY, API_CALL, EXPENSIVE, NESTED_FOREACH, BUSINESS_LOGIC,
                  CALCULATION, PHP_BLOCK_TOO_LONG, UNCLOSED_PHP_BLOCK)
    defaults = {"max_php_block_lines": 10}

    passed_message = "No business logic found in Blade templates"
    failed_message = "Found {count} Blade template issue(s) with business logic"

    def analyze(self, ctx: FileContext):
        checker = BladeLineChecker(ctx)
        aggregator = ctx.aggregator
        max_block = int(self.option("max_php_block_lines"))

        in_block = False
        block_start = 0
        block_lines = 0
        foreach_depth = 0

        for number, line in enumerate(ctx.lines, start=1):
            trimmed = line.strip()
            if not in_block and PHP_OPEN_RE.search(trimmed) and PHP_CLOSE_RE.search(trimmed):
                # one-line @php ... @endphp
                self.check_line(ctx, checker, line, number, foreach_depth)
                continue
            if PHP_CLOSE_RE.search(trimmed):
                if in_block and block_lines > max_block:
                    aggregator.add(
                        PHP_BLOCK_TOO_LONG,
                        f"PHP block has {block_lines} lines (max recommended: {max_block})",
                        Severity.MEDIUM, block_start,
                        "Move complex PHP logic to controllers, view composers, or presenter classes. "
                        "Blade templates should focus on presentation only",
                        {"block_lines": block_lines, "max_lines": max_block},
                    )
                in_block = False
                continue
            if PHP_OPEN_RE.search(trimmed):
                in_block = True
                block_start = number
                block_lines = 0
                continue
            if in_block:
                block_lines += 1

            if FOREACH_RE.search(trimmed):
                foreach_depth += 1
            if ENDFOREACH_RE.search(trimmed):
                foreach_depth = max(0, foreach_depth - 1)

            self.check_line(ctx, checker, line, number, foreach_depth)

        if in_block:
            aggregator.add(
                UNCLOSED_PHP_BLOCK, "Unclosed @php block detected", Severity.HIGH, block_start,
                "Every @php directive must have a matching @endphp",
                {"lines_counted": block_lines},
            )

    def check_line(self, ctx: FileContext, checker: BladeLineChecker, line: str, number: int,
                   foreach_depth: int):
        aggregator = ctx.aggregator
        line = BLADE_COMMENT_RE.sub("", line)
        if not line.strip():
            return
        if INLINE_PHP_RE.search(line):
            aggregator.add(INLINE_PHP, "Inline PHP found in Blade template", Severity.HIGH, number,
                           "Use Blade directives (@php...@endphp) instead of inline PHP for consistency")
            return
        if checker.has_db_query(line):
            aggregator.add(DB_QUERY, "Database query found in Blade template", Severity.CRITICAL, number,
                           "Never query the database from Blade templates. Load all required data in the "
                           "controller and pass it to the view")
            return
        if checker.has_api_call(line):
            aggregator.add(API_CALL, "API call found in Blade template", Severity.HIGH, number,
                           "Make API calls in controllers or services, not in views. Views should only "
                           "display pre-fetched data")
            return
        if checker.has_expensive_computation(line, foreach_depth):
            aggregator.add(EXPENSIVE, "Expensive computation found in Blade template", Severity.MEDIUM, number,
                           "Move expensive operations to controllers or services. Use computed properties "
                           "or view composers for complex transformations")
            return
        if foreach_depth >= 2 and FOREACH_RE.search(line):
            aggregator.add(NESTED_FOREACH,
                           f"Nested @foreach detected (depth: {foreach_depth}) - potential performance issue",
                           Severity.MEDIUM, number,
                           "Flatten nested data in the controller using eager loading or collection methods",
                           {"depth": foreach_depth})
            return
        if checker.has_business_logic_directive(line):
            aggregator.add(BUSINESS_LOGIC, "Business logic found in Blade directive", Severity.MEDIUM, number,
                           "Extract business logic to controllers or services. Use simple conditionals in "
                           "views for presentation logic only")
            return
        if checker.has_complex_calculation(line):
            aggregator.add(CALCULATION, "Complex calculation found in Blade template", Severity.LOW, number,
                           "Move calculations to controller, view composer, or model accessor. Blade should "
                           "only display pre-calculated values")
