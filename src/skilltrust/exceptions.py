"""skilltrust exception hierarchy.

All public exceptions inherit from SkillTrustError, giving callers a single
base class to catch when they want to handle any scanner-specific failure
without swallowing unrelated errors.
"""

from __future__ import annotations


class SkillTrustError(Exception):
    """Base exception for all skilltrust errors."""


class RuleLoadError(SkillTrustError):
    """Raised when a packaged rule table cannot be loaded.

    Covers missing rule files, malformed YAML, unknown severities or
    taxonomy codes, and regular expressions that fail to compile.
    """


class TargetError(SkillTrustError):
    """Raised when a local scan target does not exist or has an unsupported type."""


class FetchError(SkillTrustError):
    """Base class for remote content retrieval failures.

    Attributes:
        url: The URL being fetched when the failure occurred.
    """

    def __init__(self, message: str, url: str = "") -> None:
        super().__init__(message)
        self.url = url


class UrlNotAllowedError(FetchError):
    """Raised when a URL fails validation before any request is issued.

    Covers disallowed schemes, embedded credentials, non-standard ports,
    blocked hostnames, and hostnames resolving to private or reserved
    addresses (checked again at every redirect hop).
    """


class ResponseTooLargeError(FetchError):
    """Raised when a response exceeds its byte cap, declared or streamed."""


class ArchiveError(FetchError):
    """Raised for malformed or oversized zip archives.

    Covers corrupt archives, too many entries or skill-file candidates,
    candidates whose decompressed size exceeds the per-file or total caps,
    and archives without any skill file.
    """


class TooManyRedirectsError(FetchError):
    """Raised when a fetch follows more redirects than allowed."""


class HttpStatusError(FetchError):
    """Raised when the final response has a non-2xx status.

    Attributes:
        status_code: The HTTP status of the final response.
        retry_after: Seconds requested by a ``Retry-After`` header, if any.
    """

    def __init__(
        self,
        message: str,
        url: str = "",
        *,
        status_code: int = 0,
        retry_after: float | None = None,
    ) -> None:
        super().__init__(message, url)
        self.status_code = status_code
        self.retry_after = retry_after

    @property
    def is_retryable(self) -> bool:
        """True for 429 and 5xx responses."""
        return self.status_code == 429 or 500 <= self.status_code <= 599
