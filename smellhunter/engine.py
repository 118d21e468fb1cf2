"""
Analyzer lifecycle and multi-analyzer runs.

An analyzer run moves through::

    IDLE -> CONFIG_LOADED -> FILES_ENUMERATED
         -> (per file: PARSED -> TRAVERSED -> ISSUES_COLLECTED)*
         -> AGGREGATED -> RESULT_EMITTED

Per-file failures (unreadable file, syntax error, a visitor raising) are
contained in ``Analyzer.analyze_path``: the file's partial issues are
dropped, the reason is recorded in ``Result.skipped`` and the run goes on.
"""

import fnmatch
import logging
import os
import time
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple

from smellhunter.chains import ChainWalker
from smellhunter.classifier import DEFAULT_TABLES, Classifier, ClassifierTables
from smellhunter.config import AnalyzerConfig, SmellhunterConfig, freeze, resolve_paths
from smellhunter.issues import Issue, IssueAggregator, Result, Severity
from smellhunter.names import NameResolver
from smellhunter.registry import EMPTY_REGISTRY, ModelRegistry, RegistryCache, build_registry
from smellhunter.suppression import is_suppressed
from smellhunter.traversal import Visitor, traverse
from smellhunter.tree import ParseError, SyntaxTree, parse

logger = logging.getLogger(__name__)


class AnalyzerState(Enum):
    IDLE = "idle"
    CONFIG_LOADED = "config_loaded"
    FILES_ENUMERATED = "files_enumerated"
    PARSED = "parsed"
    TRAVERSED = "traversed"
    ISSUES_COLLECTED = "issues_collected"
    AGGREGATED = "aggregated"
    RESULT_EMITTED = "result_emitted"


class LifecycleError(RuntimeError):
    """An analyzer method was called out of order."""


@dataclass
class FileContext:
    """Everything one analyzer needs while looking at one file."""
    path: str
    relative_path: str
    source: bytes
    classifier: Classifier
    aggregator: IssueAggregator
    tree: Optional[SyntaxTree] = None
    names: Optional[NameResolver] = None
    chains: Optional[ChainWalker] = None
    stage: AnalyzerState = AnalyzerState.FILES_ENUMERATED

    @property
    def text(self) -> str:
        return self.source.decode("utf-8", errors="replace")

    @property
    def lines(self) -> List[str]:
        if self.tree is not None:
            return self.tree.lines
        return self.text.split("\n")


@dataclass
class FileOutcome:
    path: str
    issues: List[Issue] = field(default_factory=list)
    error: Optional[str] = None


class Analyzer:
    """Base class for rules. Subclasses set the class attributes and ``visitors``."""

    id = ""
    name = ""
    description = ""
    severity = Severity.MEDIUM
    file_patterns: Tuple[str, ...] = ("*.php",)
    exclude_patterns: Tuple[str, ...] = ("*.blade.php",)
    # Subdirectories analyzed by default; empty means the configured paths
    default_paths: Tuple[str, ...] = ()
    needs_tree = True
    needs_registry = False
    # Issue codes in line-priority order (first wins a contested line)
    priorities: Tuple[str, ...] = ()
    defaults: Dict[str, Any] = {}

    passed_message = "No issues found"
    failed_message = "Found {count} issue(s)"

    def __init__(self, tables: ClassifierTables = DEFAULT_TABLES,
                 registry_cache: Optional[RegistryCache] = None):
        self.state = AnalyzerState.IDLE
        self.base_tables = tables
        self.tables = tables
        self.registry_cache = registry_cache
        self.registry: ModelRegistry = EMPTY_REGISTRY
        self.settings = SmellhunterConfig()
        self.config = AnalyzerConfig(self.id)
        self.base_path = ""
        self.files: List[str] = []

    def __repr__(self) -> str:
        return f"<{type(self).__name__} {self.id} {self.state.value}>"

    # ------------------------------------------------------------------
    # Configuration
    # ------------------------------------------------------------------

    def configure(self, settings: Optional[SmellhunterConfig] = None, **overrides) -> "Analyzer":
        """Load configuration once; keyword overrides win over the config file."""
        if self.state not in (AnalyzerState.IDLE, AnalyzerState.CONFIG_LOADED):
            raise LifecycleError(f"{self.id}: configure() after files were enumerated")
        self.settings = settings or SmellhunterConfig()
        values = dict(self.settings.for_analyzer(self.id).values)
        values.update(overrides)
        self.config = AnalyzerConfig(self.id, freeze(values))
        extra = self.config.get("tables")
        self.tables = self.base_tables.extended(**{k: list(v) for k, v in extra.items()}) if extra else self.base_tables
        self.state = AnalyzerState.CONFIG_LOADED
        return self

    def option(self, key: str):
        """Configured value for ``key``, falling back to the analyzer's defaults."""
        return self.config.get(key, self.defaults.get(key))

    def option_list(self, key: str) -> Tuple:
        return self.config.get_list(key, tuple(self.defaults.get(key, ())))

    # ------------------------------------------------------------------
    # Files
    # ------------------------------------------------------------------

    def matches(self, path: str) -> bool:
        name = os.path.basename(path)
        if any(fnmatch.fnmatch(name, p) for p in self.exclude_patterns):
            return False
        return any(fnmatch.fnmatch(name, p) for p in self.file_patterns)

    def enumerate_files(self, base_path: str, paths: Optional[Sequence[str]] = None) -> List[str]:
        if self.state is AnalyzerState.IDLE:
            self.configure()
        self.base_path = base_path
        if paths is None:
            if self.default_paths:
                roots = [os.path.join(base_path, p) for p in self.default_paths]
            else:
                roots = resolve_paths(base_path, self.settings)
        else:
            roots = list(paths)

        files = []
        seen = set()
        for root in roots:
            target = Path(root)
            if target.is_file():
                candidates = [target]
            elif target.is_dir():
                candidates = sorted(p for p in target.rglob("*") if p.is_file())
            else:
                continue
            for candidate in candidates:
                path = str(candidate)
                if path in seen or not self.matches(path):
                    continue
                if self.settings.should_exclude(self.relative(path)):
                    continue
                seen.add(path)
                files.append(path)
        self.files = files
        self.state = AnalyzerState.FILES_ENUMERATED
        return files

    def relative(self, path: str) -> str:
        if not self.base_path:
            return path
        try:
            rel = os.path.relpath(path, self.base_path)
        except ValueError:
            return path
        return path if rel.startswith("..") else rel

    def prepare(self):
        """Cross-file barrier: completes before any file is traversed."""
        if not self.needs_registry:
            return
        model_paths = tuple(self.settings.model_paths)
        if self.registry_cache is not None:
            self.registry = self.registry_cache.get(self.base_path, model_paths, self.settings.jobs)
        else:
            self.registry = build_registry(self.base_path, model_paths, self.settings.jobs)

    # ------------------------------------------------------------------
    # Per file
    # ------------------------------------------------------------------

    def should_analyze(self, ctx: FileContext) -> bool:
        return True

    def visitors(self, ctx: FileContext) -> List[Visitor]:
        return []

    def analyze(self, ctx: FileContext):
        """Collect issues for one file into ``ctx.aggregator``."""
        traverse(ctx.tree, self.visitors(ctx))

    def new_context(self, source: bytes, path: str) -> FileContext:
        relative = self.relative(path)
        ctx = FileContext(
            path=path,
            relative_path=relative,
            source=source,
            classifier=Classifier(self.tables, self.registry if len(self.registry) else None),
            aggregator=IssueAggregator(relative, self.priorities),
        )
        if self.needs_tree:
            ctx.tree = parse(source, path)
            ctx.names = NameResolver(ctx.tree)
            ctx.chains = ChainWalker(ctx.tree, ctx.names)
            ctx.stage = AnalyzerState.PARSED
        return ctx

    def analyze_source(self, source, path: str = "<source>") -> List[Issue]:
        """Analyze in-memory source. Errors propagate to the caller."""
        if self.state is AnalyzerState.IDLE:
            self.configure()
        data = source.encode("utf-8") if isinstance(source, str) else source
        ctx = self.new_context(data, path)
        if not self.should_analyze(ctx):
            return []
        self.analyze(ctx)
        ctx.stage = AnalyzerState.TRAVERSED
        issues = ctx.aggregator.issues()
        ctx.stage = AnalyzerState.ISSUES_COLLECTED
        keyword = self.settings.suppression_keyword
        return [i for i in issues if not is_suppressed(ctx.lines, i.line, self.id, keyword)]

    def analyze_path(self, path: str) -> FileOutcome:
        """Analyze one file, containing every failure at the file boundary."""
        try:
            with open(path, "rb") as f:
                source = f.read()
        except OSError as e:
            logger.warning("Cannot read %s: %s", path, e)
            return FileOutcome(path, error=f"read error: {e.strerror or e}")
        try:
            return FileOutcome(path, self.analyze_source(source, path))
        except ParseError as e:
            logger.warning("Skipping %s: %s", path, e.reason)
            return FileOutcome(path, error=e.reason)
        except Exception as e:
            logger.warning("%s failed on %s: %s: %s", self.id, path, type(e).__name__, e)
            logger.debug("Visitor failure detail", exc_info=True)
            return FileOutcome(path, error=f"{type(e).__name__}: {e}")

    # ------------------------------------------------------------------
    # Run
    # ------------------------------------------------------------------

    def run(self, base_path: str, files: Optional[Sequence[str]] = None, jobs: int = 1) -> Result:
        if self.state is AnalyzerState.IDLE:
            self.configure()
        if files is None or self.state is not AnalyzerState.FILES_ENUMERATED:
            self.enumerate_files(base_path, files)
        self.prepare()

        outcomes: List[FileOutcome] = []
        if jobs > 1 and len(self.files) > 1:
            with ThreadPoolExecutor(max_workers=jobs) as executor:
                futures = [executor.submit(self.analyze_path, f) for f in self.files]
                for future in as_completed(futures):
                    outcomes.append(future.result())
            order = {path: i for i, path in enumerate(self.files)}
            outcomes.sort(key=lambda o: order[o.path])
        else:
            outcomes = [self.analyze_path(f) for f in self.files]

        issues: List[Issue] = []
        skipped: Dict[str, str] = {}
        for outcome in outcomes:
            if outcome.error is not None:
                skipped[self.relative(outcome.path)] = outcome.error
            else:
                issues.extend(outcome.issues)
        self.state = AnalyzerState.AGGREGATED

        result = self.summarize(issues, skipped)
        self.state = AnalyzerState.RESULT_EMITTED
        return result

    def summarize(self, issues: List[Issue], skipped: Dict[str, str]) -> Result:
        if not issues:
            return Result.success(self.id, self.passed_message, skipped)
        return Result.failure(self.id, self.failed_message.format(count=len(issues)), issues, skipped)

    def reset(self):
        """Return to IDLE so the instance can run again."""
        self.state = AnalyzerState.IDLE
        self.files = []
        self.registry = EMPTY_REGISTRY


# ============================================================================
# Engine
# ============================================================================

@dataclass
class RunReport:
    base_path: str
    results: List[Result]
    file_count: int
    elapsed: float

    @property
    def issues(self) -> List[Issue]:
        return [i for r in self.results for i in r.issues]


class Engine:
    """Runs a set of analyzers over one project."""

    def __init__(self, settings: Optional[SmellhunterConfig] = None,
                 analyzers: Optional[Sequence[Analyzer]] = None,
                 registry_cache: Optional[RegistryCache] = None,
                 tables: ClassifierTables = DEFAULT_TABLES):
        from smellhunter.analyzers import create_analyzers

        self.settings = settings or SmellhunterConfig()
        self.registry_cache = registry_cache if registry_cache is not None else RegistryCache()
        if analyzers is None:
            analyzers = create_analyzers(tables=tables, registry_cache=self.registry_cache)
        else:
            for analyzer in analyzers:
                if analyzer.registry_cache is None:
                    analyzer.registry_cache = self.registry_cache
        self.analyzers = [a for a in analyzers if self.settings.is_enabled(a.id)]

    def run(self, base_path: str, paths: Optional[Sequence[str]] = None,
            jobs: Optional[int] = None,
            on_result: Optional[Callable[[Analyzer, Result], None]] = None) -> RunReport:
        """Run every enabled analyzer; ``on_result`` is called as each one finishes."""
        jobs = jobs or self.settings.jobs
        start = time.time()
        results = []
        seen_files = set()
        for analyzer in self.analyzers:
            analyzer.reset()
            analyzer.configure(self.settings)
            analyzer.enumerate_files(base_path, paths)
            seen_files.update(analyzer.files)
            result = analyzer.run(base_path, analyzer.files, jobs)
            results.append(result)
            if on_result is not None:
                on_result(analyzer, result)
        elapsed = time.time() - start
        logger.info("Ran %d analyzer(s) over %d file(s) in %.2fs",
                    len(self.analyzers), len(seen_files), elapsed)
        return RunReport(base_path, results, len(seen_files), elapsed)
