"""Tests for the logic-in-routes analyzer."""

from smellhunter.analyzers.routes import BUSINESS_LOGIC, DB_QUERIES, TOO_LONG, LogicInRoutesAnalyzer
from smellhunter.issues import Severity

HEADER = "<?php\n\nuse App\\Models\\User;\nuse Illuminate\\Support\\Facades\\Route;\n\n"


def analyze(routes: str, **overrides):
    analyzer = LogicInRoutesAnalyzer().configure(None, **overrides)
    return analyzer.analyze_source(HEADER + routes, "routes/web.php")


class TestRouteClosures:
    def test_controller_routes_pass(self):
        issues = analyze(
            "Route::get('/users', [UserController::class, 'index']);\n"
            "Route::view('/about', 'about');\n"
            "Route::get('/ping', fn () => 'pong');\n")
        assert issues == []

    def test_query_in_closure(self):
        issues = analyze(
            "Route::get('/users', function () {\n"
            "    return User::where('active', true)->get();\n"
            "});\n")
        assert len(issues) == 1
        issue = issues[0]
        assert issue.code == DB_QUERIES
        assert issue.severity is Severity.CRITICAL
        assert issue.line == 6
        assert issue.metadata["has_db_queries"] is True
        assert issue.metadata["has_business_logic"] is False

    def test_db_facade_in_closure(self):
        issues = analyze(
            "Route::get('/stats', function () {\n"
            "    return DB::table('orders')->count();\n"
            "});\n")
        assert [i.code for i in issues] == [DB_QUERIES]

    def test_side_effects_are_business_logic(self):
        issues = analyze(
            "Route::post('/welcome', function ($request) {\n"
            "    Mail::to($request->user())->send(new WelcomeMail());\n"
            "});\n")
        assert [(i.code, i.severity) for i in issues] == [(BUSINESS_LOGIC, Severity.HIGH)]

    def test_weak_signals_need_corroboration(self):
        issues = analyze(
            "Route::get('/total', function () {\n"
            "    return PriceCalculator::current();\n"
            "});\n")
        assert issues == []

        issues = analyze(
            "Route::get('/total', function ($cart) {\n"
            "    foreach ($cart->lines as $line) { $total += $line->price * $line->qty; }\n"
            "    return PriceCalculator::round($total);\n"
            "});\n")
        assert [i.code for i in issues] == [BUSINESS_LOGIC]
        assert "complex business logic" in issues[0].message

    def test_long_closure(self):
        body = "".join(f"    $step{n} = {n};\n" for n in range(6))
        issues = analyze("Route::get('/long', function () {\n" + body + "    return 'ok';\n});\n")
        assert [(i.code, i.severity) for i in issues] == [(TOO_LONG, Severity.MEDIUM)]
        assert issues[0].metadata["line_count"] == 9
        assert "9 lines (max: 5)" in issues[0].message

    def test_max_lines_is_configurable(self):
        body = "".join(f"    $step{n} = {n};\n" for n in range(6))
        assert analyze("Route::get('/long', function () {\n" + body + "});\n", max_closure_lines=10) == []

    def test_problems_roll_up(self):
        body = "".join(f"    $step{n} = {n};\n" for n in range(6))
        issues = analyze(
            "Route::get('/report', function () {\n" + body +
            "    return User::all();\n"
            "});\n")
        assert len(issues) == 1
        assert issues[0].code == DB_QUERIES
        assert issues[0].metadata["codes"] == [DB_QUERIES, TOO_LONG]
        assert issues[0].message.startswith("Route closure contains database queries, ")

    def test_group_closure_is_not_a_handler(self):
        body = "".join(f"    Route::get('/a{n}', [A::class, 'x']);\n" for n in range(8))
        issues = analyze("Route::middleware('auth')->group(function () {\n" + body + "});\n")
        assert issues == []

    def test_chained_registration(self):
        issues = analyze(
            "Route::middleware('auth')->get('/me', function () {\n"
            "    return User::find(auth()->id());\n"
            "});\n")
        assert [i.code for i in issues] == [DB_QUERIES]

    def test_non_route_closures_are_ignored(self):
        issues = analyze(
            "Schedule::call(function () {\n"
            "    User::where('trial', true)->get();\n"
            "});\n")
        assert issues == []
