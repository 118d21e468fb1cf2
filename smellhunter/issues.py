"""
Issues, results, and per-file issue aggregation.
"""

from dataclasses import dataclass, field
from enum import Enum
from types import MappingProxyType
from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple


class Severity(Enum):
    CRITICAL = "CRITICAL"
    HIGH = "HIGH"
    MEDIUM = "MEDIUM"
    LOW = "LOW"


SEVERITY_ORDER = {
    Severity.CRITICAL: 4,
    Severity.HIGH: 3,
    Severity.MEDIUM: 2,
    Severity.LOW: 1,
}


def max_severity(severities: Sequence[Severity]) -> Severity:
    return max(severities, key=lambda s: SEVERITY_ORDER[s])


@dataclass(frozen=True)
class Location:
    file: str
    line: int


@dataclass(frozen=True)
class Issue:
    code: str
    message: str
    severity: Severity
    location: Location
    recommendation: str = ""
    metadata: Mapping[str, Any] = field(default_factory=dict)

    def __post_init__(self):
        if not isinstance(self.metadata, MappingProxyType):
            object.__setattr__(self, "metadata", MappingProxyType(dict(self.metadata)))

    @property
    def file(self) -> str:
        return self.location.file

    @property
    def line(self) -> int:
        return self.location.line

    def to_dict(self) -> dict:
        return {
            "code": self.code,
            "message": self.message,
            "severity": self.severity.value,
            "file": self.location.file,
            "line": self.location.line,
            "recommendation": self.recommendation,
            "metadata": {k: _plain(v) for k, v in self.metadata.items()},
        }


def _plain(value):
    if isinstance(value, (list, tuple)):
        return [_plain(v) for v in value]
    if isinstance(value, Enum):
        return value.value
    return value


@dataclass
class Result:
    analyzer_id: str
    passed: bool
    message: str
    issues: List[Issue] = field(default_factory=list)
    skipped: Dict[str, str] = field(default_factory=dict)

    @classmethod
    def success(cls, analyzer_id: str, message: str, skipped: Optional[Dict[str, str]] = None) -> "Result":
        return cls(analyzer_id, True, message, [], dict(skipped or {}))

    @classmethod
    def failure(cls, analyzer_id: str, message: str, issues: List[Issue],
                skipped: Optional[Dict[str, str]] = None) -> "Result":
        return cls(analyzer_id, False, message, list(issues), dict(skipped or {}))

    def to_dict(self) -> dict:
        return {
            "id": self.analyzer_id,
            "passed": self.passed,
            "message": self.message,
            "issues": [i.to_dict() for i in self.issues],
            "skipped": dict(self.skipped),
        }


# ============================================================================
# Aggregation
# ============================================================================

@dataclass
class _Problem:
    code: str
    severity: Severity
    reason: str
    recommendation: str
    line: int


@dataclass
class _Unit:
    key: Any
    line: int
    message: str
    problems: List[_Problem] = field(default_factory=list)
    metadata: Dict[str, Any] = field(default_factory=dict)


class IssueAggregator:
    """Collects candidate issues of one analyzer for one file.

    Line dedup: at most one issue per line survives. When several checks
    claim the same line, the code that comes first in ``priorities`` wins;
    codes missing from ``priorities`` rank after all listed ones, then by
    severity, then first come.

    Units: problems recorded against the same syntactic unit (a closure, a
    catch block) are rolled up into a single issue carrying the worst
    severity and every contributing problem in its metadata.
    """

    def __init__(self, file: str, priorities: Sequence[str] = ()):
        self.file = file
        self.priorities = {code: rank for rank, code in enumerate(priorities)}
        self._by_line: Dict[int, Tuple[Tuple[int, int, int], Issue]] = {}
        self._units: Dict[Any, _Unit] = {}
        self._order = 0

    def _rank(self, issue: Issue) -> Tuple[int, int, int]:
        self._order += 1
        return (self.priorities.get(issue.code, len(self.priorities)),
                -SEVERITY_ORDER[issue.severity], self._order)

    def is_reported(self, line: int) -> bool:
        return line in self._by_line

    @property
    def reported_lines(self) -> frozenset:
        return frozenset(self._by_line)

    def add(self, code: str, message: str, severity: Severity, line: int,
            recommendation: str = "", metadata: Optional[Mapping[str, Any]] = None) -> bool:
        """Offer an issue for ``line``. Returns True when it currently holds the line."""
        issue = Issue(code, message, severity, Location(self.file, line), recommendation, metadata or {})
        rank = self._rank(issue)
        current = self._by_line.get(line)
        if current is not None and current[0] <= rank:
            return False
        self._by_line[line] = (rank, issue)
        return True

    def unit(self, key: Any, line: int, message: str = "", **metadata) -> "_Unit":
        """Open (or fetch) the roll-up unit identified by ``key``."""
        unit = self._units.get(key)
        if unit is None:
            unit = _Unit(key, line, message, metadata=dict(metadata))
            self._units[key] = unit
        return unit

    def add_problem(self, key: Any, code: str, severity: Severity, reason: str,
                    recommendation: str = "", line: Optional[int] = None):
        unit = self._units[key]
        unit.problems.append(_Problem(code, severity, reason, recommendation,
                                      line if line is not None else unit.line))

    def _flush_units(self):
        for unit in self._units.values():
            if not unit.problems:
                continue
            severity = max_severity([p.severity for p in unit.problems])
            worst = next(p for p in unit.problems if p.severity is severity)
            reasons = [p.reason for p in unit.problems]
            message = unit.message.format(problems=", ".join(reasons)) if unit.message else worst.reason
            metadata = dict(unit.metadata)
            metadata["problems"] = reasons
            metadata["codes"] = [p.code for p in unit.problems]
            recommendation = " ".join(dict.fromkeys(p.recommendation for p in unit.problems if p.recommendation))
            self.add(worst.code, message, worst.severity, unit.line, recommendation, metadata)
        self._units.clear()

    def issues(self) -> List[Issue]:
        """Final issues for the file, ordered by line."""
        self._flush_units()
        return [issue for _, (_, issue) in sorted(self._by_line.items())]
