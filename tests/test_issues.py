"""Tests for issue aggregation: per-line dedup and unit roll-up."""

import pytest

from smellhunter.issues import Issue, IssueAggregator, Location, Result, Severity, max_severity


class TestLineDedup:
    """At most one issue per line, decided by priority."""

    def test_priority_order_wins(self):
        agg = IssueAggregator("a.php", priorities=("db-query", "calculation"))
        agg.add("calculation", "calc", Severity.LOW, 3)
        assert agg.add("db-query", "query", Severity.CRITICAL, 3)
        assert not agg.add("calculation", "calc again", Severity.LOW, 3)

        issues = agg.issues()
        assert [(i.code, i.line) for i in issues] == [("db-query", 3)]

    def test_unlisted_codes_rank_by_severity(self):
        agg = IssueAggregator("a.php")
        agg.add("minor", "m", Severity.LOW, 1)
        agg.add("major", "M", Severity.HIGH, 1)
        assert agg.issues()[0].code == "major"

    def test_first_come_on_tie(self):
        agg = IssueAggregator("a.php")
        agg.add("first", "1", Severity.MEDIUM, 1)
        agg.add("second", "2", Severity.MEDIUM, 1)
        assert agg.issues()[0].code == "first"

    def test_issues_sorted_by_line(self):
        agg = IssueAggregator("a.php")
        for line in (9, 2, 5):
            agg.add("x", "x", Severity.LOW, line)
        assert [i.line for i in agg.issues()] == [2, 5, 9]
        assert agg.reported_lines == frozenset({2, 5, 9})
        assert agg.is_reported(5) and not agg.is_reported(4)


class TestUnits:
    """Problems on one syntactic unit roll up into one issue."""

    def test_rollup_takes_worst_severity(self):
        agg = IssueAggregator("routes/web.php")
        unit = agg.unit((4, 20), 4, "Route closure contains {problems}", line_count=12)
        agg.add_problem(unit.key, "too-long", Severity.MEDIUM, "12 lines (max: 5)", "Shorten it.")
        agg.add_problem(unit.key, "db", Severity.CRITICAL, "database queries", "Move queries.")

        [issue] = agg.issues()
        assert issue.code == "db"
        assert issue.severity is Severity.CRITICAL
        assert issue.message == "Route closure contains 12 lines (max: 5), database queries"
        assert issue.recommendation == "Shorten it. Move queries."
        assert issue.metadata["line_count"] == 12
        assert issue.metadata["codes"] == ["too-long", "db"]

    def test_empty_unit_produces_nothing(self):
        agg = IssueAggregator("a.php")
        agg.unit("k", 1, "{problems}")
        assert agg.issues() == []

    def test_unit_is_reused(self):
        agg = IssueAggregator("a.php")
        assert agg.unit("k", 1) is agg.unit("k", 99)


class TestIssue:
    def test_metadata_is_read_only(self):
        issue = Issue("c", "m", Severity.LOW, Location("a.php", 1), metadata={"a": [1]})
        with pytest.raises(TypeError):
            issue.metadata["b"] = 2

    def test_to_dict(self):
        issue = Issue("c", "m", Severity.HIGH, Location("a.php", 7), "fix", {"levels": (Severity.LOW,)})
        data = issue.to_dict()
        assert data["severity"] == "HIGH"
        assert data["file"] == "a.php" and data["line"] == 7
        assert data["metadata"] == {"levels": ["LOW"]}

    def test_max_severity(self):
        assert max_severity([Severity.LOW, Severity.CRITICAL, Severity.MEDIUM]) is Severity.CRITICAL


class TestResult:
    def test_success_and_failure(self):
        ok = Result.success("x", "fine", {"a.php": "syntax error"})
        assert ok.passed and ok.issues == [] and ok.skipped == {"a.php": "syntax error"}

        issue = Issue("c", "m", Severity.LOW, Location("a.php", 1))
        bad = Result.failure("x", "Found 1", [issue])
        assert not bad.passed
        assert bad.to_dict()["issues"][0]["code"] == "c"
