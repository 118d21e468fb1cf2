"""Tests for the analyzer lifecycle and the engine."""

import pytest

from smellhunter.analyzers import ANALYZERS, create_analyzers
from smellhunter.analyzers.blade import LogicInBladeAnalyzer
from smellhunter.analyzers.silent_failure import EMPTY_CATCH, SilentFailureAnalyzer
from smellhunter.config import SmellhunterConfig
from smellhunter.engine import Analyzer, AnalyzerState, Engine, LifecycleError
from smellhunter.issues import Severity
from smellhunter.traversal import Visitor
from smellhunter.tree import NodeKind, ParseError

SWALLOWING_SERVICE = """<?php

function load()
{
    try {
        risky();
    } catch (\\RuntimeException $e) {
    }
}
"""

CLEAN = "<?php\n\nfunction add($a, $b)\n{\n    return $a + $b;\n}\n"


class Exploding(Visitor):
    kinds = frozenset({NodeKind.FUNCTION_CALL})

    def on_enter(self, node):
        raise RuntimeError("boom")


class ExplodingAnalyzer(Analyzer):
    id = "exploding"

    def visitors(self, ctx):
        return [Exploding()]


class TestLifecycle:
    def test_states(self, project):
        root = project({"app/Clean.php": CLEAN})
        analyzer = SilentFailureAnalyzer()
        assert analyzer.state is AnalyzerState.IDLE
        analyzer.configure(None)
        assert analyzer.state is AnalyzerState.CONFIG_LOADED
        files = analyzer.enumerate_files(str(root))
        assert analyzer.state is AnalyzerState.FILES_ENUMERATED
        assert [f.endswith("Clean.php") for f in files] == [True]
        result = analyzer.run(str(root), files)
        assert analyzer.state is AnalyzerState.RESULT_EMITTED
        assert result.passed
        assert result.message == SilentFailureAnalyzer.passed_message

    def test_configure_after_enumeration(self, project):
        root = project({"app/Clean.php": CLEAN})
        analyzer = SilentFailureAnalyzer().configure(None)
        analyzer.enumerate_files(str(root))
        with pytest.raises(LifecycleError):
            analyzer.configure(None)
        analyzer.reset()
        assert analyzer.state is AnalyzerState.IDLE
        analyzer.configure(None)

    def test_overrides_win_over_config(self):
        settings = SmellhunterConfig(analyzers={"logic-in-routes": {"max_closure_lines": 8}})
        [routes] = create_analyzers(only=["logic-in-routes"])
        routes.configure(settings, max_closure_lines=3)
        assert routes.option("max_closure_lines") == 3

    def test_analyze_source_propagates_parse_errors(self):
        with pytest.raises(ParseError):
            SilentFailureAnalyzer().analyze_source("<?php function ( {", "app/Broken.php")


class TestFiles:
    def test_blade_files_go_to_the_blade_analyzer(self):
        assert not SilentFailureAnalyzer().matches("resources/views/home.blade.php")
        assert SilentFailureAnalyzer().matches("app/Models/User.php")
        assert LogicInBladeAnalyzer().matches("resources/views/home.blade.php")
        assert not LogicInBladeAnalyzer().matches("app/Models/User.php")

    def test_excluded_paths(self, project):
        root = project({"app/Clean.php": CLEAN, "app/vendor/Lib.php": CLEAN, "app/notes.txt": "x"})
        files = SilentFailureAnalyzer().configure(SmellhunterConfig()).enumerate_files(str(root))
        assert [f.replace("\\", "/").rsplit("/", 2)[-2:] for f in files] == [["app", "Clean.php"]]

    def test_default_paths(self, project):
        root = project({"routes/web.php": CLEAN, "app/Clean.php": CLEAN})
        files = create_analyzers(only=["logic-in-routes"])[0].enumerate_files(str(root))
        assert [f.endswith("web.php") for f in files] == [True]


class TestFailureContainment:
    def test_syntax_error_is_skipped(self, project):
        root = project({"app/Broken.php": "<?php function ( {", "app/Service.php": SWALLOWING_SERVICE})
        result = SilentFailureAnalyzer().run(str(root))
        assert not result.passed
        assert [i.file for i in result.issues] == ["app/Service.php"]
        assert list(result.skipped) == ["app/Broken.php"]
        assert "syntax error" in result.skipped["app/Broken.php"]

    def test_raising_visitor_is_contained(self, project):
        root = project({"app/A.php": "<?php\nfoo();\n", "app/B.php": CLEAN})
        result = ExplodingAnalyzer().run(str(root))
        assert result.passed
        assert result.skipped == {"app/A.php": "RuntimeError: boom"}

    def test_parallel_run_keeps_file_order(self, project):
        files = {f"app/S{n}.php": SWALLOWING_SERVICE for n in range(6)}
        root = project(files)
        serial = SilentFailureAnalyzer().run(str(root))
        parallel = SilentFailureAnalyzer().run(str(root), jobs=4)
        assert [i.to_dict() for i in parallel.issues] == [i.to_dict() for i in serial.issues]
        assert len(serial.issues) == 6


class TestEngine:
    def test_unknown_analyzer(self):
        with pytest.raises(KeyError):
            create_analyzers(only=["nope"])

    def test_all_analyzers_by_default(self):
        assert [a.id for a in create_analyzers()] == [cls.id for cls in ANALYZERS]

    def test_run_reports_each_result(self, project):
        root = project({"app/Service.php": SWALLOWING_SERVICE, "routes/web.php": CLEAN})
        finished = []
        engine = Engine(SmellhunterConfig())
        report = engine.run(str(root), on_result=lambda analyzer, result: finished.append(analyzer.id))
        assert finished == [a.id for a in engine.analyzers]
        assert len(report.results) == len(ANALYZERS)
        assert report.file_count == 2
        assert [(i.code, i.severity) for i in report.issues] == [(EMPTY_CATCH, Severity.HIGH)]

    def test_disabled_analyzers(self):
        engine = Engine(SmellhunterConfig(disabled=("silent-failure",)))
        assert "silent-failure" not in [a.id for a in engine.analyzers]
        assert len(engine.analyzers) == len(ANALYZERS) - 1

    def test_engine_can_run_twice(self, project):
        root = project({"app/Service.php": SWALLOWING_SERVICE})
        engine = Engine(SmellhunterConfig(), analyzers=create_analyzers(only=["silent-failure"]))
        first = engine.run(str(root))
        second = engine.run(str(root))
        assert len(first.issues) == len(second.issues) == 1
