"""The five weighted pattern analyzers.

Every analyzer has the same signature::

    analyze(skill: ParsedSkill, ctx: ContentContext | None = None) -> CategoryScore

Analyzers are pure: they read the immutable ``ParsedSkill`` and
``ContentContext`` and share no state, so the pipeline runs them
concurrently. ``ANALYZERS`` maps each category to its analyzer in
weight-table order.

Submodules
----------
- ``base``: evidence, title and setup-section helpers shared by analyzers.
- ``obfuscation``: HTML-comment, base64 and unicode steganography detectors.
- ``permissions``, ``injection``, ``behavioral``, ``content``,
  ``dependencies``: one analyzer each.
"""

from __future__ import annotations

from typing import Callable, Mapping

from skilltrust.core.analyzers.behavioral import analyze_behavioral
from skilltrust.core.analyzers.content import analyze_content
from skilltrust.core.analyzers.dependencies import analyze_dependencies
from skilltrust.core.analyzers.injection import analyze_injection
from skilltrust.core.analyzers.permissions import analyze_permissions
from skilltrust.core.context import ContentContext
from skilltrust.core.models import Category, CategoryScore, ParsedSkill

Analyzer = Callable[[ParsedSkill, ContentContext | None], CategoryScore]

ANALYZERS: Mapping[Category, Analyzer] = {
    Category.PERMISSIONS: analyze_permissions,
    Category.INJECTION: analyze_injection,
    Category.DEPENDENCIES: analyze_dependencies,
    Category.BEHAVIORAL: analyze_behavioral,
    Category.CONTENT: analyze_content,
}

__all__ = [
    "ANALYZERS",
    "Analyzer",
    "analyze_behavioral",
    "analyze_content",
    "analyze_dependencies",
    "analyze_injection",
    "analyze_permissions",
]
