"""skilltrust: static trust analysis for AI agent skill definitions."""

from __future__ import annotations

__version__ = "0.4.0"
__license__ = "MIT"

# Embedded in every TrustReport and in the retrieval User-Agent.
SCANNER_VERSION = __version__
