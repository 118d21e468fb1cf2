"""Rich terminal, plain text and JSON reports."""

import json
import os
from collections import defaultdict
from datetime import datetime
from pathlib import Path
from typing import Dict, List, Optional

from rich import box
from rich.align import Align
from rich.columns import Columns
from rich.console import Console, Group
from rich.panel import Panel
from rich.rule import Rule
from rich.syntax import Syntax
from rich.table import Table
from rich.text import Text

from smellhunter import __version__
from smellhunter.engine import RunReport
from smellhunter.issues import Issue, Result, SEVERITY_ORDER

console = Console()

SEVERITY_NAMES = ["CRITICAL", "HIGH", "MEDIUM", "LOW"]

SEV_STYLES = {
    "CRITICAL": "bold red", "HIGH": "red",
    "MEDIUM": "yellow", "LOW": "green",
}

SEV_BADGES = {
    "CRITICAL": "bold white on red", "HIGH": "bold red",
    "MEDIUM": "bold yellow", "LOW": "bold green",
}


def print_banner():
    """Print the scanner banner."""
    banner_lines = [
        "███████╗███╗   ███╗███████╗██╗     ██╗",
        "██╔════╝████╗ ████║██╔════╝██║     ██║",
        "███████╗██╔████╔██║█████╗  ██║     ██║",
        "╚════██║██║╚██╔╝██║██╔══╝  ██║     ██║",
        "███████║██║ ╚═╝ ██║███████╗███████╗███████╗",
        "╚══════╝╚═╝     ╚═╝╚══════╝╚══════╝╚══════╝",
    ]

    title_content = Text()
    title_content.append("\n".join(banner_lines), style="bold magenta")
    title_content.append("\n\n")
    title_content.append(f"smellhunter - Laravel Code Smell Analyzer v{__version__}\n", style="bold white")
    title_content.append("Tree-sitter AST | Corroborated Heuristics | One Issue per Line", style="dim")

    console.print()
    console.print(Panel(
        Align.center(title_content),
        border_style="magenta",
        box=box.DOUBLE,
        padding=(1, 2),
    ))
    console.print()


def build_stats_sidebar(issues: List[Issue], file_count: int, elapsed: float) -> Panel:
    """Build the statistics panel."""
    stats = Table(show_header=False, box=None, padding=(0, 1), expand=True)
    stats.add_column("key", style="bold cyan", no_wrap=True, ratio=3)
    stats.add_column("value", style="white", ratio=1)

    stats.add_row("Files Analyzed", str(file_count))
    stats.add_row("Total Issues", str(len(issues)))
    stats.add_row("Scan Time", f"{elapsed:.2f}s")
    stats.add_row("Engine", "tree-sitter AST")
    stats.add_row("", "")

    sev_counts = defaultdict(int)
    for issue in issues:
        sev_counts[issue.severity.value] += 1
    for sev in SEVERITY_NAMES:
        count = sev_counts.get(sev, 0)
        if count > 0:
            stats.add_row(Text(sev, style=SEV_STYLES[sev]), str(count))

    stats.add_row("", "")

    code_counts = defaultdict(int)
    for issue in issues:
        code_counts[issue.code] += 1
    for code, count in sorted(code_counts.items(), key=lambda x: -x[1]):
        stats.add_row(Text(code, style="cyan"), str(count))

    return Panel(
        stats,
        title="[bold white]Scan Statistics[/bold white]",
        border_style="cyan",
        box=box.ROUNDED,
        padding=(1, 1),
    )


def build_issue_panel(issue: Issue, source_code: Optional[str] = None) -> Panel:
    """Build a Rich Panel for a single issue."""
    sev = issue.severity.value

    title = Text()
    title.append(f" {sev} ", style=SEV_BADGES.get(sev, "white"))
    title.append(f" {issue.code} ", style="bold white")

    content_parts = []

    location = Text()
    location.append("Location: ", style="bold cyan")
    location.append(f"Line {issue.line}", style="white")
    evidence = issue.metadata.get("evidence")
    if evidence:
        evidence_text = Text()
        evidence_text.append("Evidence: ", style="bold magenta")
        evidence_text.append(str(evidence), style="white")
        content_parts.append(Columns([location, evidence_text], padding=(0, 4)))
    else:
        content_parts.append(location)

    message = Text()
    message.append(f"\n{issue.message}", style="italic white")
    content_parts.append(message)

    if issue.recommendation:
        rec = Text()
        rec.append("\nFix: ", style="bold green")
        rec.append(issue.recommendation, style="white")
        content_parts.append(rec)

    if source_code:
        src_lines = source_code.split("\n")
        start = max(0, issue.line - 3)
        end = min(len(src_lines), issue.line + 2)
        snippet = "\n".join(src_lines[start:end])
        if snippet.strip():
            content_parts.append(Text(""))
            content_parts.append(Syntax(
                snippet, "php", theme="monokai",
                line_numbers=True, start_line=start + 1,
                highlight_lines={issue.line},
            ))

    return Panel(
        Group(*content_parts),
        title=title,
        border_style=SEV_STYLES.get(sev, "white"),
        box=box.ROUNDED,
        padding=(1, 2),
    )


def build_results_table(results: List[Result]) -> Table:
    """Per-analyzer pass/fail table."""
    table = Table(box=box.SIMPLE_HEAVY, expand=True)
    table.add_column("Analyzer", style="bold cyan", no_wrap=True)
    table.add_column("Status", justify="center")
    table.add_column("Issues", justify="right")
    table.add_column("Skipped", justify="right", style="dim")
    table.add_column("Message", style="white")
    for result in results:
        status = Text("PASS", style="bold green") if result.passed else Text("FAIL", style="bold red")
        table.add_row(result.analyzer_id, status, str(len(result.issues)),
                      str(len(result.skipped)), result.message)
    return table


def _read_source(base_path: str, relative: str) -> Optional[str]:
    path = relative if os.path.isabs(relative) else os.path.join(base_path, relative)
    try:
        return Path(path).read_text(encoding="utf-8", errors="ignore")
    except OSError:
        return None


def output_rich(report: RunReport, results: List[Result], target: str, min_severity: Optional[str]):
    """Output issues using Rich panels and formatting."""
    issues = [i for r in results for i in r.issues]

    scan_date = datetime.now().strftime("%Y-%m-%d %H:%M:%S")
    header_text = Text()
    header_text.append("Target: ", style="bold cyan")
    header_text.append(f"{target}  ", style="white")
    header_text.append("Date: ", style="bold cyan")
    header_text.append(f"{scan_date}  ", style="white")
    header_text.append("Severity: ", style="bold cyan")
    header_text.append(f">= {min_severity or 'LOW'}", style="white")

    console.print(Panel(
        Align.center(header_text),
        title="[bold white]Scan Info[/bold white]",
        border_style="blue",
        box=box.ROUNDED,
    ))
    console.print()

    console.print(build_stats_sidebar(issues, report.file_count, report.elapsed))
    console.print()

    if issues:
        console.print(Rule("[bold white]Code Smells[/bold white]", style="red"))
        console.print()

        source_cache: Dict[str, Optional[str]] = {}
        issues_by_file = defaultdict(list)
        for issue in issues:
            issues_by_file[issue.file].append(issue)

        for file_path, file_issues in sorted(issues_by_file.items()):
            console.print(Text(f"FILE: {file_path}", style="bold underline cyan"))
            console.print()
            if file_path not in source_cache:
                source_cache[file_path] = _read_source(report.base_path, file_path)
            src = source_cache[file_path]
            for issue in sorted(file_issues, key=lambda x: (x.line, -SEVERITY_ORDER[x.severity])):
                console.print(build_issue_panel(issue, source_code=src))
                console.print()
    else:
        console.print(Panel(
            Align.center(Text("No code smells found.", style="bold green")),
            border_style="green",
            box=box.ROUNDED,
            padding=(1, 4),
        ))
        console.print()

    console.print(Rule("[bold white]Analyzers[/bold white]", style="cyan"))
    console.print(build_results_table(results))


def output_text_plain(results: List[Result], file_path: str):
    """Output issues in plain text format (for file output)."""
    issues = [i for r in results for i in r.issues]
    with open(file_path, "w", encoding="utf-8") as out:
        for result in results:
            for issue in result.issues:
                out.write(f"\n{'=' * 70}\n")
                out.write(f"  [{issue.severity.value}] {issue.code} ({result.analyzer_id})\n")
                out.write(f"  File: {issue.file}:{issue.line}\n")
                out.write(f"  Message: {issue.message}\n")
                if issue.recommendation:
                    out.write(f"  Recommendation: {issue.recommendation}\n")

        out.write(f"\n{'=' * 70}\n")
        out.write(f"Total issues: {len(issues)}\n")

        by_sev = defaultdict(int)
        for issue in issues:
            by_sev[issue.severity.value] += 1
        if by_sev:
            out.write("\nBy severity:\n")
            for sev in SEVERITY_NAMES:
                if sev in by_sev:
                    out.write(f"  {sev}: {by_sev[sev]}\n")

        out.write("\nAnalyzers:\n")
        for result in results:
            status = "PASS" if result.passed else "FAIL"
            out.write(f"  [{status}] {result.analyzer_id}: {result.message}\n")
            for path, reason in sorted(result.skipped.items()):
                out.write(f"      skipped {path}: {reason}\n")


def output_json(report: RunReport, results: List[Result], file_path: str = None):
    """Output results in JSON format."""
    issues = [i for r in results for i in r.issues]
    by_severity = defaultdict(int)
    for issue in issues:
        by_severity[issue.severity.value] += 1
    data = {
        "scan_date": datetime.now().isoformat(),
        "scanner": f"smellhunter v{__version__}",
        "target": report.base_path,
        "files_analyzed": report.file_count,
        "elapsed": round(report.elapsed, 3),
        "analyzers": [r.to_dict() for r in results],
        "summary": {
            "total_issues": len(issues),
            "passed": sum(1 for r in results if r.passed),
            "failed": sum(1 for r in results if not r.passed),
            "by_severity": dict(sorted(by_severity.items())),
        },
    }

    json_str = json.dumps(data, indent=2)
    if file_path:
        with open(file_path, "w", encoding="utf-8") as f:
            f.write(json_str)
    else:
        print(json_str)
