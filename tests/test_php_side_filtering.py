"""Tests for the PHP-side filtering analyzer."""

import pytest

from smellhunter.analyzers.php_side_filtering import CODE, PhpSideFilteringAnalyzer
from smellhunter.issues import Severity


def analyze(body: str, header: str = "use App\\Models\\User;\nuse App\\Models\\Post;\n"):
    source = "<?php\n\nnamespace App\\Http\\Controllers;\n\n" + header + "\n" + body
    return PhpSideFilteringAnalyzer().analyze_source(source, "app/Http/Controllers/UserController.php")


class TestPhpSideFiltering:
    """Filtering a collection right after it was fetched."""

    def test_model_query_then_filter(self):
        issues = analyze(
            "$users = User::where('active', true)\n"
            "    ->get()\n"
            "    ->filter(fn($u) => $u->active);\n")
        assert len(issues) == 1
        issue = issues[0]
        assert issue.code == CODE
        assert issue.severity is Severity.CRITICAL
        assert issue.line == 10
        assert issue.metadata["fetch_method"] == "get"
        assert issue.metadata["filter_method"] == "filter"
        assert issue.metadata["confidence"] == "strong"
        assert "where->get->filter" in issue.message

    def test_arr_helper_is_not_a_query(self):
        assert analyze("$positive = Arr::where($items, fn($i) => $i > 0);\n") == []

    def test_collection_helper(self):
        assert analyze("$x = collect($items)->all()->filter(fn($i) => $i);\n") == []

    def test_weakly_corroborated_variable_root(self):
        issues = analyze("$rows = $query->get()->filter(fn($r) => $r->ok);\n")
        assert len(issues) == 1
        assert issues[0].metadata["confidence"] == "weak"
        assert set(issues[0].metadata["corroborated_by"]) == {"fetch-method", "filter-method"}

    @pytest.mark.parametrize("chain,method", [
        ("User::all()->reject(fn($u) => $u->banned)", "reject"),
        ("Post::find([1, 2, 3])->filter(fn($p) => $p->published)", "filter"),
        ("User::query()->paginate(20)->whereIn('id', $ids)", "whereIn"),
        ("$this->posts()->cursor()->whereNotIn('status', ['draft'])", "whereNotIn"),
    ])
    def test_fetch_variants(self, chain, method):
        issues = analyze(f"$result = {chain};\n")
        assert [i.metadata["filter_method"] for i in issues] == [method]

    @pytest.mark.parametrize("chain", [
        "User::where('active', 1)->get()",
        "User::find(1)->filter()",
        "User::all()->map(fn($u) => $u)->filter()",
        "User::whereIn('id', $ids)->get()",
        "$order->items->filter(fn($i) => $i->qty > 0)",
    ])
    def test_no_finding(self, chain):
        assert analyze(f"$result = {chain};\n") == []

    def test_excluded_service_root(self):
        header = "use App\\Services\\ReportService;\n"
        assert analyze("$r = ReportService::all()->filter(fn($x) => $x);\n", header) == []

    def test_one_issue_per_line(self):
        issues = analyze("$a = User::all()->filter(fn($u) => $u->a); $b = Post::all()->reject(fn($p) => $p->b);\n")
        assert len(issues) == 1

    def test_whitelisted_path(self):
        analyzer = PhpSideFilteringAnalyzer().configure(None, whitelist=["Controllers"])
        source = "<?php\n$users = User::all()->filter(fn($u) => $u->a);\n"
        assert analyzer.analyze_source(source, "app/Http/Controllers/A.php") == []
