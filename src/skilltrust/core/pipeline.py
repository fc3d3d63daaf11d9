"""Single-skill scan pipeline.

``scan_skill`` runs, in order:

1. parse the document (never raises);
2. build the shared ``ContentContext`` once;
3. run the five analyzers concurrently in worker threads, together with
   the optional semantic analyzer, and wait for all of them;
4. replace any analyzer that raised with a fallback category score;
5. merge semantic findings into injection, apply domain trust to
   dependencies;
6. aggregate into a ``TrustReport``.

A failing analyzer never cancels the others and never aborts the scan. Its
fallback carries score 50 and one HIGH finding, so an incomplete scan can
never be certified.
"""

from __future__ import annotations

import asyncio
import logging
import time
from datetime import datetime, timezone

from skilltrust import SCANNER_VERSION
from skilltrust.config import ScanOptions, SemanticOptions
from skilltrust.core.analyzers import ANALYZERS
from skilltrust.core.analyzers.dependencies import extract_self_base_domains
from skilltrust.core.context import ContentContext, build_content_context
from skilltrust.core.models import (
    Category,
    CategoryScore,
    Finding,
    ParsedSkill,
    ScanMetadata,
    Severity,
    TrustReport,
)
from skilltrust.core.parser import UNKNOWN_SKILL_NAME, parse_skill
from skilltrust.core.scoring import aggregate_scores
from skilltrust.core.taxonomy import ThreatCode
from skilltrust.semantic import (
    analyze_semantic,
    apply_domain_trust,
    assess_domains,
    merge_semantic,
)

logger = logging.getLogger(__name__)

FALLBACK_SCORE = 50


def fallback_score(category: Category, error: BaseException) -> CategoryScore:
    """Category score substituted for an analyzer that raised."""
    message = str(error) or type(error).__name__
    return CategoryScore(
        score=FALLBACK_SCORE,
        weight=category.weight,
        findings=(Finding(
            id=f"ERR-{category.value.upper()}",
            category=category,
            severity=Severity.HIGH,
            title=f"Analyzer error: {category.value}",
            description=(
                f"The {category.value} analyzer encountered an error: {message}. "
                f"A default score of {FALLBACK_SCORE} was assigned."
            ),
            evidence=message[:200],
            deduction=0,
            recommendation=(
                "Scan coverage is incomplete. Fix the underlying error (often malformed "
                "front matter or markdown) and re-scan. Do not treat this report as "
                "certification."
            ),
            taxonomy=ThreatCode.MISSING_SAFETY_BOUNDARIES,
        ),),
        summary=f"Analyzer error, default score assigned. Error: {message}",
    )


async def run_analyzers(skill: ParsedSkill, ctx: ContentContext) -> dict[Category, CategoryScore]:
    """Run every registered analyzer concurrently, substituting fallbacks for failures."""
    categories = list(ANALYZERS)
    results = await asyncio.gather(
        *(asyncio.to_thread(ANALYZERS[category], skill, ctx) for category in categories),
        return_exceptions=True,
    )
    scores: dict[Category, CategoryScore] = {}
    for category, result in zip(categories, results):
        if isinstance(result, BaseException):
            if not isinstance(result, Exception):
                raise result
            logger.warning(
                "Analyzer %s failed; using fallback score", category.value, exc_info=result
            )
            scores[category] = fallback_score(category, result)
        else:
            scores[category] = result
    return scores


async def _semantic_or_none(skill: ParsedSkill, options: SemanticOptions) -> CategoryScore | None:
    try:
        return await analyze_semantic(skill, options)
    except Exception:
        logger.warning("Semantic analysis failed; continuing without it", exc_info=True)
        return None


async def _verify_domains(
    skill: ParsedSkill,
    dependencies: CategoryScore,
    options: SemanticOptions,
) -> CategoryScore:
    try:
        assessments = await assess_domains(skill, extract_self_base_domains(skill), options)
    except Exception:
        logger.warning("Domain trust assessment failed; continuing without it", exc_info=True)
        return dependencies
    trusted = {a.domain: a for a in assessments or () if a.is_trusted}
    return apply_domain_trust(dependencies, trusted)


async def scan_skill(content: str, options: ScanOptions | None = None) -> TrustReport:
    """Scan one skill document and produce its trust report.

    Args:
        content: Raw skill markdown.
        options: Scan options; only ``options.semantic`` is used here.

    Returns:
        The ``TrustReport`` for ``content``.
    """
    options = options or ScanOptions()
    scanned_at = datetime.now(timezone.utc)
    started = time.perf_counter()

    skill = parse_skill(content)
    ctx = build_content_context(skill.raw_content)

    semantic_options = options.semantic if options.semantic and options.semantic.enabled else None
    if semantic_options is None:
        categories = await run_analyzers(skill, ctx)
    else:
        categories, semantic = await asyncio.gather(
            run_analyzers(skill, ctx),
            _semantic_or_none(skill, semantic_options),
        )
        categories[Category.INJECTION] = merge_semantic(categories[Category.INJECTION], semantic)
        categories[Category.DEPENDENCIES] = await _verify_domains(
            skill, categories[Category.DEPENDENCIES], semantic_options
        )

    metadata = ScanMetadata(
        scanned_at=scanned_at,
        scanner_version=SCANNER_VERSION,
        duration_ms=int((time.perf_counter() - started) * 1000),
        skill_format=skill.format,
        skill_name=skill.name or UNKNOWN_SKILL_NAME,
        skill_description=skill.description,
    )
    report = aggregate_scores(categories, metadata)
    logger.debug(
        "Scanned %r: overall=%d badge=%s findings=%d",
        metadata.skill_name, report.overall, report.badge.value, len(report.findings),
    )
    return report


def scan_skill_sync(content: str, options: ScanOptions | None = None) -> TrustReport:
    """Blocking wrapper around :func:`scan_skill` for callers without an event loop."""
    return asyncio.run(scan_skill(content, options))
