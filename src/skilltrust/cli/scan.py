"""``skilltrust scan TARGET...`` -- Scan skill files, directories and URLs.

Directories are searched for ``SKILL.md`` / ``SKILLS.md``; URLs are fetched
through the safe retriever. Every target gets a trust report.

Exit Codes:
    0 -- Every target scanned and none at or below the ``--fail-on`` badge.
    1 -- A report's badge is at or below ``--fail-on``, or a target failed.
    2 -- No targets found, or a target path does not exist.
"""

from __future__ import annotations

import asyncio
import sys

import click

from skilltrust.batch import (
    BatchResult,
    expand_scan_targets,
    scan_targets_batch,
    summarize_batch,
)
from skilltrust.cli.output import (
    configure_logging,
    print_failures,
    print_json,
    print_report,
    print_summary,
)
from skilltrust.config import DEFAULT_CONCURRENCY, FetchOptions, ScanOptions, SemanticOptions
from skilltrust.core.models import Badge
from skilltrust.exceptions import TargetError

_BADGE_CHOICES = [badge.value for badge in Badge]


def should_fail(result: BatchResult, fail_on: Badge) -> bool:
    """True when any target failed or any badge is ``fail_on`` or worse."""
    if result.failures:
        return True
    return any(r.report.badge.rank >= fail_on.rank for r in result.reports)


@click.command("scan")
@click.argument("targets", nargs=-1, required=True)
@click.option("--json", "as_json", is_flag=True, default=False, help="Print JSON instead of tables.")
@click.option(
    "--semantic",
    is_flag=True,
    default=False,
    help="Enable the LLM semantic analyzer (reads SKILLTRUST_LLM_* variables).",
)
@click.option(
    "--concurrency",
    type=click.IntRange(min=1),
    default=DEFAULT_CONCURRENCY,
    show_default=True,
    help="Maximum targets scanned at once.",
)
@click.option(
    "--timeout",
    type=click.FloatRange(min=0),
    default=None,
    help="Per-request timeout in seconds for URL targets (0 disables).",
)
@click.option(
    "--fail-on",
    type=click.Choice(_BADGE_CHOICES),
    default=Badge.SUSPICIOUS.value,
    show_default=True,
    help="Exit 1 when any report's badge is this tier or worse.",
)
@click.option("--verbose", "-v", is_flag=True, default=False, help="Enable debug logging.")
def scan_command(
    targets: tuple[str, ...],
    as_json: bool,
    semantic: bool,
    concurrency: int,
    timeout: float | None,
    fail_on: str,
    verbose: bool,
) -> None:
    """Scan TARGET skill files, directories or URLs and print trust reports."""
    configure_logging(verbose)

    try:
        expanded = expand_scan_targets(targets)
    except TargetError as exc:
        click.echo(f"Error: {exc}", err=True)
        sys.exit(2)

    if not expanded:
        click.echo("No SKILL.md files found under the provided target(s).", err=True)
        sys.exit(2)

    options = ScanOptions(
        semantic=SemanticOptions.from_env() if semantic else None,
        fetch=FetchOptions(timeout=timeout),
        concurrency=concurrency,
    )
    if semantic and not options.semantic.enabled:
        click.echo("Warning: --semantic given but SKILLTRUST_LLM_API_KEY is not set.", err=True)

    result = asyncio.run(scan_targets_batch(expanded, options))
    summary = summarize_batch(result)

    if as_json:
        print_json({**result.to_dict(), "summary": summary.to_dict()})
    else:
        for item in result.reports:
            print_report(item.target, item.report)
        print_failures(result)
        print_summary(summary)

    sys.exit(1 if should_fail(result, Badge(fail_on)) else 0)
