"""Rich output formatting helpers for the skilltrust CLI.

Severity Color Mapping:
    CRITICAL = bold red, HIGH = yellow, MEDIUM = cyan, LOW = green, INFO = dim

Badge Color Mapping:
    CERTIFIED = bold green, CONDITIONAL = cyan, SUSPICIOUS = yellow,
    REJECTED = bold red
"""

from __future__ import annotations

import json
import logging
from typing import Any

from rich.console import Console
from rich.logging import RichHandler
from rich.markup import escape
from rich.panel import Panel
from rich.table import Table
from rich.text import Text

from skilltrust.batch import BatchResult, BatchSummary
from skilltrust.core.models import Badge, Severity, TrustReport

_SEVERITY_STYLES: dict[Severity, str] = {
    Severity.CRITICAL: "bold red",
    Severity.HIGH: "yellow",
    Severity.MEDIUM: "cyan",
    Severity.LOW: "green",
    Severity.INFO: "dim",
}

_BADGE_STYLES: dict[Badge, str] = {
    Badge.CERTIFIED: "bold green",
    Badge.CONDITIONAL: "cyan",
    Badge.SUSPICIOUS: "yellow",
    Badge.REJECTED: "bold red",
}

console = Console()
err_console = Console(stderr=True)


def severity_style(severity: Severity) -> str:
    """Return the Rich style string for a given severity level."""
    return _SEVERITY_STYLES.get(severity, "white")


def badge_style(badge: Badge) -> str:
    return _BADGE_STYLES.get(badge, "white")


def configure_logging(verbose: bool) -> None:
    """Route library logging to stderr through Rich (DEBUG when verbose)."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=err_console, show_path=verbose, rich_tracebacks=verbose)],
        force=True,
    )


def print_report(target: str, report: TrustReport) -> None:
    """Print one trust report: header panel, category scores, findings.

    Args:
        target: The scanned file path or URL.
        report: Its trust report.
    """
    header = Text.assemble(
        ("Skill: ", "bold"), (report.metadata.skill_name, ""),
        ("  Score: ", "bold"), (f"{report.overall}/100", ""),
        ("  Badge: ", "bold"), (report.badge.value.upper(), badge_style(report.badge)),
    )
    console.print(Panel(header, title=Text(target)))

    cat_table = Table(show_header=True, header_style="bold")
    cat_table.add_column("Category", style="bold")
    cat_table.add_column("Score", justify="right")
    cat_table.add_column("Weight", justify="right")
    cat_table.add_column("Summary")
    for category, score in report.categories.items():
        cat_table.add_row(category.value, str(score.score), f"{score.weight:.2f}", score.summary)
    console.print(cat_table)

    if not report.findings:
        console.print("[green]No findings.[/green]")
        return

    findings_table = Table(title="Findings", show_header=True)
    findings_table.add_column("Severity", justify="center")
    findings_table.add_column("ID", style="dim")
    findings_table.add_column("Title")
    findings_table.add_column("Deduction", justify="right")
    findings_table.add_column("Evidence", style="dim")
    for f in report.findings:
        findings_table.add_row(
            Text(f.severity.label.upper(), style=severity_style(f.severity)),
            f.id, f.title, str(f.deduction), f.evidence[:80],
        )
    console.print(findings_table)


def print_failures(result: BatchResult) -> None:
    for failure in result.failures:
        console.print(f"[red]FAILED[/red] {escape(failure.target)}: {escape(failure.error)}")


def print_summary(summary: BatchSummary) -> None:
    """Print the one-line batch summary and the badge distribution."""
    parts = [f"[bold]{summary.total}[/bold] targets"]
    parts.append(f"{summary.scanned} scanned")
    if summary.failed:
        parts.append(f"[red]{summary.failed} failed[/red]")
    parts.append(f"avg {summary.average_score}")
    parts.append(f"median {summary.median_score}")
    console.print(" | ".join(parts))

    badges = Table(title="Badges", show_header=True)
    badges.add_column("Badge", style="bold")
    badges.add_column("Count", justify="right")
    for badge, count in summary.badges.items():
        badges.add_row(Text(badge.value, style=badge_style(badge)), str(count))
    console.print(badges)


def print_json(data: Any) -> None:
    """Print data as formatted JSON to stdout.

    Args:
        data: Any JSON-serializable data structure.
    """
    console.print_json(json.dumps(data, default=str))
