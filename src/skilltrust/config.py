"""Scan configuration: fetch, semantic-analysis, and batch options.

All options are plain frozen dataclasses with defaults suitable for CI use.
Only the semantic analyzer reads the environment, through
``SemanticOptions.from_env`` (backed by ``pydantic-settings``), so that an API key never has to be passed on
the command line.

Environment variables:
    SKILLTRUST_LLM_API_KEY   -- API key for the OpenAI-compatible endpoint.
    SKILLTRUST_LLM_API_BASE  -- Base URL (default ``https://api.openai.com/v1``).
    SKILLTRUST_LLM_MODEL     -- Model name (default ``gpt-4o``).
"""

from __future__ import annotations

from dataclasses import dataclass, field

from pydantic_settings import BaseSettings, SettingsConfigDict

ENV_PREFIX = "SKILLTRUST_LLM_"

DEFAULT_API_BASE = "https://api.openai.com/v1"
DEFAULT_MODEL = "gpt-4o"

# Seconds. The registry download endpoint builds archives on demand and is slower.
DEFAULT_FETCH_TIMEOUT: float = 30.0
ARCHIVE_FETCH_TIMEOUT: float = 45.0
DEFAULT_SEMANTIC_TIMEOUT: float = 30.0

DEFAULT_RETRIES = 2
DEFAULT_RETRY_DELAY: float = 0.75
DEFAULT_MAX_REDIRECTS = 5
DEFAULT_CONCURRENCY = 10


@dataclass(frozen=True)
class FetchOptions:
    """Options for the safe content retriever.

    Attributes:
        timeout: Per-attempt timeout in seconds, covering connect and the
            whole body read. ``None`` picks the default for the target URL.
        retries: Additional attempts after the first for retryable failures.
        retry_delay: Base backoff delay in seconds (doubled per attempt).
        max_redirects: Maximum redirect hops followed.
    """

    timeout: float | None = None
    retries: int = DEFAULT_RETRIES
    retry_delay: float = DEFAULT_RETRY_DELAY
    max_redirects: int = DEFAULT_MAX_REDIRECTS


class SemanticSettings(BaseSettings):
    """Raw ``SKILLTRUST_LLM_*`` values; empty strings fall back to defaults."""

    model_config = SettingsConfigDict(env_prefix=ENV_PREFIX, extra="ignore")

    api_key: str = ""
    api_base: str = DEFAULT_API_BASE
    model: str = DEFAULT_MODEL


@dataclass(frozen=True)
class SemanticOptions:
    """Options for the optional LLM semantic analyzer.

    Attributes:
        api_base: OpenAI-compatible API base URL.
        api_key: Bearer token. When empty the analyzer is skipped.
        model: Chat model name.
        timeout: Request timeout in seconds.
    """

    api_base: str = DEFAULT_API_BASE
    api_key: str = ""
    model: str = DEFAULT_MODEL
    timeout: float = DEFAULT_SEMANTIC_TIMEOUT

    @classmethod
    def from_env(cls) -> SemanticOptions:
        """Build options from ``SKILLTRUST_LLM_*`` environment variables."""
        env = SemanticSettings()
        return cls(
            api_base=env.api_base or DEFAULT_API_BASE,
            api_key=env.api_key,
            model=env.model or DEFAULT_MODEL,
        )

    @property
    def enabled(self) -> bool:
        return bool(self.api_key)


@dataclass(frozen=True)
class ScanOptions:
    """Top-level options for single and batch scans.

    Attributes:
        semantic: Semantic analyzer options, or ``None`` to skip it.
        fetch: Retrieval options for URL targets.
        concurrency: Maximum number of targets scanned at once in a batch.
    """

    semantic: SemanticOptions | None = None
    fetch: FetchOptions = field(default_factory=FetchOptions)
    concurrency: int = DEFAULT_CONCURRENCY

    def __post_init__(self) -> None:
        if self.concurrency < 1:
            raise ValueError(f"concurrency must be >= 1, got {self.concurrency}")
