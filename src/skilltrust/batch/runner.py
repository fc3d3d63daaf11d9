"""Concurrent scanning of many targets.

Each target is scanned independently through the full pipeline; at most
``ScanOptions.concurrency`` run at once. A failing target is recorded in
``BatchResult.failures`` and never stops the rest of the batch. Results
keep the order of the input targets.

Local targets additionally get a packaged-binary check of their
directory. The check runs once per directory per batch, even when several
skills in the same directory are scanned concurrently.
"""

from __future__ import annotations

import asyncio
import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Sequence

import httpx

from skilltrust.batch.binary import find_executable_binaries
from skilltrust.config import ScanOptions
from skilltrust.core.models import Category, CategoryScore, Finding, Severity, TrustReport
from skilltrust.core.pipeline import scan_skill
from skilltrust.core.scoring import with_category
from skilltrust.core.taxonomy import ThreatCode
from skilltrust.exceptions import SkillTrustError
from skilltrust.retrieval import fetch_skill_content, is_url_target

logger = logging.getLogger(__name__)

BINARY_DEDUCTION = 25
BINARY_EVIDENCE_PATHS = 3


@dataclass(frozen=True)
class ScanTargetReport:
    target: str
    report: TrustReport

    def to_dict(self) -> dict[str, Any]:
        return {"target": self.target, "report": self.report.to_dict()}


@dataclass(frozen=True)
class ScanFailure:
    target: str
    error: str

    def to_dict(self) -> dict[str, Any]:
        return {"target": self.target, "error": self.error}


@dataclass(frozen=True)
class BatchResult:
    """Reports and failures of one batch, each in input order."""

    reports: tuple[ScanTargetReport, ...] = ()
    failures: tuple[ScanFailure, ...] = ()

    def to_dict(self) -> dict[str, Any]:
        return {
            "reports": [r.to_dict() for r in self.reports],
            "failures": [f.to_dict() for f in self.failures],
        }


class BinaryArtifactCache:
    """Per-directory binary lookups, computed once per key.

    Concurrent callers asking for the same directory await the same
    in-flight task. Entries are never replaced or removed.
    """

    def __init__(self) -> None:
        self._tasks: dict[str, asyncio.Task[tuple[str, ...]]] = {}

    async def get(self, directory: str) -> tuple[str, ...]:
        key = os.path.abspath(directory)
        task = self._tasks.get(key)
        if task is None:
            task = asyncio.ensure_future(asyncio.to_thread(_find_binaries, directory))
            self._tasks[key] = task
        return await task


def _find_binaries(directory: str) -> tuple[str, ...]:
    try:
        return tuple(str(p) for p in find_executable_binaries(directory))
    except OSError:
        logger.warning("Binary artifact scan failed for %s", directory, exc_info=True)
        return ()


def binary_artifact_finding(target: str, binaries: Sequence[str]) -> Finding:
    base = os.path.dirname(target) or "."
    shown = ", ".join(os.path.relpath(p, base) for p in binaries[:BINARY_EVIDENCE_PATHS])
    extra = len(binaries) - BINARY_EVIDENCE_PATHS
    evidence = f"{shown} (+{extra} more)" if extra > 0 else shown
    return Finding(
        id=f"DEP-BINARY-{len(binaries)}",
        category=Category.DEPENDENCIES,
        severity=Severity.HIGH,
        title="Executable binary artifact detected",
        description=(
            "The skill directory contains executable binary files (ELF/PE/Mach-O or typical "
            "executable extensions). Binaries are opaque to review and can hide malware."
        ),
        evidence=evidence,
        deduction=BINARY_DEDUCTION,
        recommendation=(
            "Remove packaged binaries from the skill. Provide source code and build "
            "instructions, or pin verifiable checksums and justify why a binary is required."
        ),
        taxonomy=ThreatCode.OBFUSCATION,
    )


def apply_binary_artifacts(report: TrustReport, target: str, binaries: Sequence[str]) -> TrustReport:
    """Fold a binary-artifact finding into dependencies and re-aggregate."""
    if not binaries:
        return report
    finding = binary_artifact_finding(target, binaries)
    deps = report.categories[Category.DEPENDENCIES]
    updated = CategoryScore(
        score=max(0, deps.score - finding.deduction),
        weight=deps.weight,
        findings=deps.findings + (finding,),
        summary=f"{deps.summary} Executable binary artifact(s) detected: {len(binaries)}.",
    )
    return with_category(report, Category.DEPENDENCIES, updated)


async def scan_target(
    target: str,
    options: ScanOptions | None = None,
    *,
    cache: BinaryArtifactCache | None = None,
    client: httpx.AsyncClient | None = None,
) -> TrustReport:
    """Scan one URL or local skill file.

    Raises:
        FetchError: Remote retrieval failed.
        OSError: A local file could not be read.
    """
    options = options or ScanOptions()
    if is_url_target(target):
        fetched = await fetch_skill_content(target, options.fetch, client=client)
        return await scan_skill(fetched.content, options)

    raw = await asyncio.to_thread(Path(target).read_bytes)
    report = await scan_skill(raw.decode("utf-8", errors="replace"), options)
    cache = cache or BinaryArtifactCache()
    binaries = await cache.get(os.path.dirname(target) or ".")
    return apply_binary_artifacts(report, target, binaries)


async def scan_targets_batch(
    targets: Sequence[str],
    options: ScanOptions | None = None,
    *,
    client: httpx.AsyncClient | None = None,
) -> BatchResult:
    """Scan every target with bounded concurrency.

    Args:
        targets: Expanded targets (see ``expand_scan_targets``).
        options: Scan options; ``options.concurrency`` bounds parallelism.
        client: Optional shared ``httpx.AsyncClient`` for URL targets.

    Returns:
        A ``BatchResult`` with reports and failures in input order.
    """
    options = options or ScanOptions()
    semaphore = asyncio.Semaphore(options.concurrency)
    cache = BinaryArtifactCache()

    async def run(target: str) -> ScanTargetReport | ScanFailure:
        async with semaphore:
            try:
                report = await scan_target(target, options, cache=cache, client=client)
            except (SkillTrustError, OSError) as exc:
                logger.warning("Scan of %s failed: %s", target, exc)
                return ScanFailure(target=target, error=str(exc) or type(exc).__name__)
            except Exception as exc:
                logger.warning("Scan of %s failed unexpectedly", target, exc_info=True)
                return ScanFailure(target=target, error=f"{type(exc).__name__}: {exc}")
            return ScanTargetReport(target=target, report=report)

    outcomes = await asyncio.gather(*(run(t) for t in targets))
    return BatchResult(
        reports=tuple(o for o in outcomes if isinstance(o, ScanTargetReport)),
        failures=tuple(o for o in outcomes if isinstance(o, ScanFailure)),
    )
