"""Tests for the Eloquent N+1 analyzer."""

from smellhunter.analyzers.n_plus_one import CODE, EloquentNPlusOneAnalyzer, relationship_names
from smellhunter.issues import Severity
from smellhunter.tree import NodeKind

HEADER = (
    "<?php\n"
    "\n"
    "namespace App\\Http\\Controllers;\n"
    "\n"
    "use App\\Models\\Post;\n"
    "\n"
    "class PostController\n"
    "{\n"
    "    public function index()\n"
    "    {\n"
)
FOOTER = "    }\n}\n"


def analyze_class(methods: str):
    source = HEADER.split("    public function index")[0] + methods + "}\n"
    analyzer = EloquentNPlusOneAnalyzer().configure(None)
    return analyzer.analyze_source(source, "app/Http/Controllers/PostController.php")


def analyze(body: str):
    analyzer = EloquentNPlusOneAnalyzer().configure(None)
    return analyzer.analyze_source(HEADER + body + FOOTER, "app/Http/Controllers/PostController.php")


class TestLazyAccess:
    def test_relationship_in_loop(self):
        issues = analyze(
            "        $posts = Post::all();\n"
            "        foreach ($posts as $post) {\n"
            "            echo $post->comments;\n"
            "        }\n")
        assert len(issues) == 1
        issue = issues[0]
        assert issue.code == CODE
        assert issue.severity is Severity.HIGH
        assert issue.line == 13
        assert issue.metadata["relationship"] == "comments"
        assert issue.metadata["variable"] == "post"
        assert "->with('comments')" in issue.recommendation

    def test_relationship_method_call(self):
        issues = analyze(
            "        foreach (Post::all() as $post) {\n"
            "            $n = $post->comments()->count();\n"
            "        }\n")
        assert [i.metadata["access"] for i in issues] == ["comments()"]

    def test_known_relationship_term(self):
        issues = analyze(
            "        foreach (Post::all() as $post) {\n"
            "            echo $post->author;\n"
            "        }\n")
        assert [i.metadata["evidence"] for i in issues] == ["relationship-term"]

    def test_chained_singular_access(self):
        issues = analyze(
            "        foreach (Post::all() as $post) {\n"
            "            echo $post->user->name;\n"
            "        }\n")
        assert [i.metadata["relationship"] for i in issues] == ["user"]

    def test_plain_attributes_pass(self):
        issues = analyze(
            "        foreach (Post::all() as $post) {\n"
            "            echo $post->title;\n"
            "            echo $post->published;\n"
            "        }\n")
        assert issues == []

    def test_outside_loop_passes(self):
        assert analyze("        $post = Post::find(1);\n        echo $post->comments;\n") == []

    def test_reported_once_per_relationship(self):
        issues = analyze(
            "        foreach (Post::all() as $post) {\n"
            "            echo $post->comments;\n"
            "            echo count($post->comments);\n"
            "        }\n")
        assert len(issues) == 1

    def test_keyed_foreach(self):
        issues = analyze(
            "        foreach (Post::all() as $id => $post) {\n"
            "            echo $post->comments;\n"
            "        }\n")
        assert len(issues) == 1


class TestEagerLoading:
    def test_with_on_assignment(self):
        issues = analyze(
            "        $posts = Post::with('comments')->get();\n"
            "        foreach ($posts as $post) {\n"
            "            echo $post->comments;\n"
            "        }\n")
        assert issues == []

    def test_with_in_loop_source(self):
        issues = analyze(
            "        foreach (Post::with(['comments.author', 'tags'])->get() as $post) {\n"
            "            echo $post->comments;\n"
            "            echo $post->tags;\n"
            "        }\n")
        assert issues == []

    def test_load_on_collection(self):
        issues = analyze(
            "        $posts = Post::all();\n"
            "        $posts->load('comments');\n"
            "        foreach ($posts as $post) {\n"
            "            echo $post->comments;\n"
            "        }\n")
        assert issues == []

    def test_other_relationships_still_flagged(self):
        issues = analyze(
            "        $posts = Post::with('comments')->get();\n"
            "        foreach ($posts as $post) {\n"
            "            echo $post->comments;\n"
            "            echo $post->likes;\n"
            "        }\n")
        assert [i.metadata["relationship"] for i in issues] == ["likes"]


class TestScopes:
    def test_eager_load_in_other_method_does_not_leak(self):
        issues = analyze_class(
            "    public function index()\n"
            "    {\n"
            "        $posts = Post::with('comments')->get();\n"
            "    }\n"
            "\n"
            "    public function show()\n"
            "    {\n"
            "        $posts = $this->repository->all();\n"
            "        foreach ($posts as $post) {\n"
            "            echo $post->comments;\n"
            "        }\n"
            "    }\n")
        assert [(i.line, i.metadata["relationship"]) for i in issues] == [(18, "comments")]

    def test_same_access_in_two_methods(self):
        loop = (
            "    {\n"
            "        foreach (Post::all() as $post) {\n"
            "            echo $post->comments;\n"
            "        }\n"
            "    }\n")
        issues = analyze_class("    public function index()\n" + loop + "\n    public function show()\n" + loop)
        assert [i.line for i in issues] == [12, 19]

    def test_closure_sees_captured_eager_load(self):
        issues = analyze(
            "        $posts = Post::with('comments')->get();\n"
            "        return function () use ($posts) {\n"
            "            foreach ($posts as $post) {\n"
            "                echo $post->comments;\n"
            "            }\n"
            "        };\n")
        assert issues == []

    def test_closure_without_capture_starts_empty(self):
        issues = analyze(
            "        $posts = Post::with('comments')->get();\n"
            "        return function ($posts) {\n"
            "            foreach ($posts as $post) {\n"
            "                echo $post->comments;\n"
            "            }\n"
            "        };\n")
        assert len(issues) == 1

    def test_state_restored_after_closure(self):
        issues = analyze(
            "        $posts = Post::with('comments')->get();\n"
            "        $format = function ($posts) {\n"
            "            return count($posts);\n"
            "        };\n"
            "        foreach ($posts as $post) {\n"
            "            echo $post->comments;\n"
            "        }\n")
        assert issues == []


class TestRelationshipNames:
    def test_strips_nested_and_columns(self, php):
        parsed = php("<?php\n$q->with(['comments.author', 'user:id,name']);\n")
        assert relationship_names(parsed.first(NodeKind.ARRAY)) == ["comments", "user"]
