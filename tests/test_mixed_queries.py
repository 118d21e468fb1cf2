"""Tests for the mixed Query Builder / Eloquent analyzer."""

from smellhunter.analyzers.mixed_queries import MIXED_STYLE, MIXED_TABLE, MixedQueryBuilderEloquentAnalyzer
from smellhunter.issues import Severity

HEADER = (
    "<?php\n"
    "\n"
    "namespace App\\Services;\n"
    "\n"
    "use App\\Models\\Post;\n"
    "use App\\Models\\User;\n"
    "use Illuminate\\Support\\Facades\\DB;\n"
    "\n"
)


def analyze(body: str):
    analyzer = MixedQueryBuilderEloquentAnalyzer().configure(None)
    return analyzer.analyze_source(HEADER + body, "app/Services/UserService.php")


class TestMixedTableAccess:
    def test_same_table_both_ways(self):
        issues = analyze(
            "class UserService\n"
            "{\n"
            "    public function active()\n"
            "    {\n"
            "        return User::where('active', true)->get();\n"
            "    }\n"
            "\n"
            "    public function count()\n"
            "    {\n"
            "        return DB::table('users')->count();\n"
            "    }\n"
            "}\n")
        assert len(issues) == 1
        issue = issues[0]
        assert issue.code == MIXED_TABLE
        assert issue.severity is Severity.MEDIUM
        assert issue.line == 13
        assert issue.metadata["table"] == "users"
        assert issue.metadata["class"] == "UserService"

    def test_different_tables_are_fine(self):
        issues = analyze(
            "class UserService\n"
            "{\n"
            "    public function run()\n"
            "    {\n"
            "        User::find(1);\n"
            "        DB::table('audit_log')->insert([]);\n"
            "    }\n"
            "}\n")
        assert issues == []

    def test_classes_are_tracked_separately(self):
        issues = analyze(
            "class Reader\n"
            "{\n"
            "    public function run() { return User::all(); }\n"
            "}\n"
            "\n"
            "class Writer\n"
            "{\n"
            "    public function run() { return DB::table('users')->get(); }\n"
            "}\n")
        assert issues == []

    def test_code_outside_classes_is_ignored(self):
        assert analyze("User::all();\nDB::table('users')->get();\n") == []


class TestMixedStyle:
    def test_many_builder_tables(self):
        issues = analyze(
            "class ReportService\n"
            "{\n"
            "    public function build()\n"
            "    {\n"
            "        $user = User::find(1);\n"
            "        $orders = DB::table('orders')->get();\n"
            "        $invoices = DB::table('invoices')->get();\n"
            "        $payments = DB::table('payments')->get();\n"
            "    }\n"
            "}\n")
        assert [(i.code, i.severity, i.line) for i in issues] == [(MIXED_STYLE, Severity.LOW, 14)]
        assert "(1 Eloquent, 3 Query Builder)" in issues[0].message
        assert issues[0].metadata["query_builder_tables"] == ["invoices", "orders", "payments"]

    def test_two_builder_tables_are_tolerated(self):
        issues = analyze(
            "class ReportService\n"
            "{\n"
            "    public function build()\n"
            "    {\n"
            "        User::find(1);\n"
            "        DB::table('orders')->get();\n"
            "        DB::table('invoices')->get();\n"
            "    }\n"
            "}\n")
        assert issues == []


class TestRegistryTables:
    def test_custom_table_name_from_model(self, project, models):
        root = project(dict(models, **{
            "app/Services/PostService.php": HEADER + (
                "class PostService\n"
                "{\n"
                "    public function all() { return Post::all(); }\n"
                "\n"
                "    public function raw() { return DB::table('blog_posts')->get(); }\n"
                "}\n"),
        }))
        result = MixedQueryBuilderEloquentAnalyzer().configure(None).run(str(root))
        assert not result.passed
        assert [(i.code, i.metadata["table"]) for i in result.issues] == [(MIXED_TABLE, "blog_posts")]
        assert result.issues[0].file == "app/Services/PostService.php"
