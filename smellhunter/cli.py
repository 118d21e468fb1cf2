"""Command line entry point."""

import argparse
import logging
import os
import sys
from typing import List, Optional, Sequence

from rich.progress import BarColumn, MofNCompleteColumn, Progress, SpinnerColumn, TextColumn

from smellhunter import __version__
from smellhunter.analyzers import ANALYZERS_BY_ID, create_analyzers
from smellhunter.config import ConfigError, load_config
from smellhunter.engine import Analyzer, Engine
from smellhunter.issues import Result, SEVERITY_ORDER, Severity
from smellhunter.logs import setup_logging
from smellhunter.output import console, output_json, output_rich, output_text_plain, print_banner

logger = logging.getLogger(__name__)


def filter_results(analyzers: Sequence[Analyzer], results: Sequence[Result],
                   min_severity: Optional[str] = None) -> List[Result]:
    """Drop issues below ``min_severity`` and recompute each analyzer's verdict."""
    if not min_severity:
        return list(results)
    floor = SEVERITY_ORDER[Severity[min_severity.upper()]]
    filtered = []
    for analyzer, result in zip(analyzers, results):
        kept = [i for i in result.issues if SEVERITY_ORDER[i.severity] >= floor]
        filtered.append(analyzer.summarize(kept, result.skipped))
    return filtered


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="smellhunter",
        description="Laravel/PHP code smell analyzer using Tree-sitter",
    )
    parser.add_argument("target", help="Laravel project root, directory or PHP file to analyze")
    parser.add_argument("--output", choices=["text", "json"], default="text",
                        help="Output format (default: text)")
    parser.add_argument("-o", "--output-file", help="Write output to file")
    parser.add_argument("--min-severity", choices=["CRITICAL", "HIGH", "MEDIUM", "LOW"],
                        help="Minimum severity to report")
    parser.add_argument("--only", nargs="+", metavar="ID", choices=sorted(ANALYZERS_BY_ID),
                        help="Run only these analyzers")
    parser.add_argument("--jobs", type=int, help="Worker threads per analyzer")
    parser.add_argument("--config", help="Path to .smellhunter.yml config file")
    parser.add_argument("--no-banner", action="store_true", help="Suppress banner output")
    verbosity = parser.add_mutually_exclusive_group()
    verbosity.add_argument("-v", "--verbose", action="store_true", help="Debug logging")
    verbosity.add_argument("-q", "--quiet", action="store_true", help="Only log errors")
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    return parser


def main(argv: Optional[Sequence[str]] = None):
    args = build_parser().parse_args(argv)
    setup_logging("DEBUG" if args.verbose else "ERROR" if args.quiet else "WARNING")

    try:
        config = load_config(args.target, args.config)
    except ConfigError as e:
        console.print(f"[bold red]Config error:[/bold red] {e}")
        sys.exit(2)

    if not os.path.exists(args.target):
        console.print(f"[bold red]Error:[/bold red] {args.target} does not exist")
        sys.exit(2)

    if os.path.isdir(args.target):
        base_path, paths = args.target, None
    else:
        base_path, paths = os.path.dirname(os.path.abspath(args.target)), [args.target]

    is_json = args.output == "json"
    if not args.no_banner and not is_json:
        print_banner()

    engine = Engine(config, analyzers=create_analyzers(only=args.only))
    if is_json or not engine.analyzers:
        report = engine.run(base_path, paths, args.jobs)
    else:
        with Progress(
            SpinnerColumn("moon"),
            TextColumn("[bold cyan]{task.description}[/bold cyan]"),
            BarColumn(bar_width=30, style="cyan", complete_style="green"),
            MofNCompleteColumn(),
            TextColumn("[dim]{task.fields[current]}[/dim]"),
            console=console, transient=True,
        ) as progress:
            task = progress.add_task("Analyzing", total=len(engine.analyzers), current="")

            def advance(analyzer: Analyzer, result: Result):
                progress.update(task, current=analyzer.id)
                progress.advance(task)

            report = engine.run(base_path, paths, args.jobs, on_result=advance)

    min_severity = args.min_severity or config.min_severity
    results = filter_results(engine.analyzers, report.results, min_severity)

    if is_json:
        output_json(report, results, args.output_file)
    else:
        output_rich(report, results, args.target, min_severity)
        if args.output_file:
            output_text_plain(results, args.output_file)
            console.print(f"\n[bold green]Report saved to {args.output_file}[/bold green]")

    # Exit with error code if critical/high issues remain
    critical_high = sum(1 for r in results for i in r.issues
                        if i.severity in (Severity.CRITICAL, Severity.HIGH))
    if critical_high > 0:
        sys.exit(1)


if __name__ == "__main__":
    main()
