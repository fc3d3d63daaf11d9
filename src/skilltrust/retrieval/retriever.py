"""Safe retrieval of remote skill content.

``fetch_skill_content`` is the single entry point. For one target URL it:

1. normalises known hosting shorthands;
2. runs up to ``1 + retries`` attempts, each bounded by its own timeout
   covering connect, every redirect hop and the whole body read;
3. per attempt, opens the URL with SSRF validation at every hop, rejects
   non-2xx responses, and reads the body under the text or zip cap;
4. for zip responses, extracts the best skill file with bounded
   decompression.

Retries happen only for 429 and 5xx responses, httpx timeouts, httpx
network errors and attempt timeouts. The delay is ``Retry-After`` when
the server sends one, otherwise ``retry_delay * 2**attempt`` plus up to
0.25 s jitter, capped at 30 s. Everything else propagates immediately as
a ``FetchError`` subclass.
"""

from __future__ import annotations

import asyncio
import logging
import random
import re
from dataclasses import dataclass
from datetime import datetime, timezone
from email.utils import parsedate_to_datetime

import httpx

from skilltrust.config import ARCHIVE_FETCH_TIMEOUT, DEFAULT_FETCH_TIMEOUT, FetchOptions
from skilltrust.exceptions import FetchError, HttpStatusError
from skilltrust.retrieval.archive import extract_skill_from_zip
from skilltrust.retrieval.http_client import (
    create_client,
    decode_data_url,
    open_validated,
    read_error_snippet,
    read_limited,
)
from skilltrust.retrieval.ssrf import assert_url_allowed
from skilltrust.retrieval.urls import (
    DEFAULT_HEADERS,
    MAX_ERROR_BODY_BYTES,
    MAX_TEXT_BYTES,
    MAX_ZIP_BYTES,
    is_archive_download_url,
    is_zip_response,
    normalize_skill_url,
)

logger = logging.getLogger(__name__)

MAX_BACKOFF = 30.0
MAX_JITTER = 0.25

_LEADING_DIGITS = re.compile(r"\d+")


@dataclass(frozen=True)
class FetchedSkill:
    """Retrieved skill text and the URL it was finally served from."""

    content: str
    source_url: str


def parse_retry_after(value: str | None, now: datetime | None = None) -> float | None:
    """Seconds requested by a ``Retry-After`` header (delta-seconds or HTTP date)."""
    if not value:
        return None
    value = value.strip()
    seconds = _LEADING_DIGITS.match(value)
    if seconds:
        return float(seconds.group(0))
    try:
        when = parsedate_to_datetime(value)
    except (TypeError, ValueError, IndexError):
        return None
    if when.tzinfo is None:
        when = when.replace(tzinfo=timezone.utc)
    current = now or datetime.now(timezone.utc)
    return max(0.0, (when - current).total_seconds())


def backoff_delay(attempt: int, base_delay: float) -> float:
    """Exponential backoff with jitter, capped."""
    return min(MAX_BACKOFF, base_delay * 2 ** attempt + random.uniform(0, MAX_JITTER))


def is_retryable(error: BaseException) -> bool:
    if isinstance(error, HttpStatusError):
        return error.is_retryable
    return isinstance(error, (httpx.TimeoutException, httpx.NetworkError, asyncio.TimeoutError))


def default_timeout(url: str) -> float:
    return ARCHIVE_FETCH_TIMEOUT if is_archive_download_url(url) else DEFAULT_FETCH_TIMEOUT


async def _attempt(client: httpx.AsyncClient, url: str, options: FetchOptions) -> FetchedSkill:
    response, final_url = await open_validated(
        client, url, headers=DEFAULT_HEADERS, max_redirects=options.max_redirects
    )
    try:
        if not response.is_success:
            snippet = await read_error_snippet(response, MAX_ERROR_BODY_BYTES)
            reason = f"{response.status_code} {response.reason_phrase}".strip()
            message = f"Failed to fetch skill from {final_url}: {reason}"
            if snippet:
                message = f"{message} - {snippet}"
            raise HttpStatusError(
                message,
                final_url,
                status_code=response.status_code,
                retry_after=parse_retry_after(response.headers.get("retry-after")),
            )
        if is_zip_response(response.headers.get("content-type"), final_url):
            data = await read_limited(response, MAX_ZIP_BYTES, final_url)
            content, path = extract_skill_from_zip(data, final_url)
            logger.debug("Extracted %s from archive at %s", path, final_url)
            return FetchedSkill(content=content, source_url=final_url)
        data = await read_limited(response, MAX_TEXT_BYTES, final_url)
        return FetchedSkill(content=data.decode("utf-8", errors="replace"), source_url=final_url)
    finally:
        await response.aclose()


async def _fetch_data_url(url: str) -> FetchedSkill:
    await assert_url_allowed(url)
    data = decode_data_url(url, MAX_TEXT_BYTES)
    return FetchedSkill(content=data.decode("utf-8", errors="replace"), source_url=url[:100])


async def fetch_skill_content(
    url: str,
    options: FetchOptions | None = None,
    *,
    client: httpx.AsyncClient | None = None,
) -> FetchedSkill:
    """Fetch a skill document from ``url`` under the SSRF and size policy.

    Args:
        url: Target URL; hosting shorthands are normalised first.
        options: Timeout, retry and redirect options.
        client: Optional ``httpx.AsyncClient``; it must not follow redirects.

    Returns:
        The decoded skill text and its final URL.

    Raises:
        UrlNotAllowedError: The URL or a redirect hop failed validation.
        ResponseTooLargeError: A body exceeded its cap.
        ArchiveError: A zip response was malformed, too large, or had no skill file.
        HttpStatusError: Non-2xx final response.
        TooManyRedirectsError: Redirect limit exceeded.
        FetchError: Timeout or network failure after all retries.
    """
    options = options or FetchOptions()
    source_url = normalize_skill_url(url)
    if source_url[:5].lower() == "data:":
        return await _fetch_data_url(source_url)

    timeout = default_timeout(source_url) if options.timeout is None else options.timeout
    retries = max(0, options.retries)
    owned = client is None
    http = create_client(timeout or None) if owned else client
    try:
        for attempt in range(retries + 1):
            try:
                if timeout:
                    return await asyncio.wait_for(_attempt(http, source_url, options), timeout)
                return await _attempt(http, source_url, options)
            except (FetchError, httpx.HTTPError, asyncio.TimeoutError) as exc:
                if attempt >= retries or not is_retryable(exc):
                    if isinstance(exc, FetchError):
                        raise
                    raise _as_fetch_error(exc, source_url, timeout) from exc
                retry_after = exc.retry_after if isinstance(exc, HttpStatusError) else None
                delay = (
                    min(MAX_BACKOFF, retry_after)
                    if retry_after is not None
                    else backoff_delay(attempt, options.retry_delay)
                )
                logger.warning(
                    "Fetch of %s failed (%s); retry %d/%d in %.2fs",
                    source_url, _describe(exc), attempt + 1, retries, delay,
                )
                await asyncio.sleep(delay)
    finally:
        if owned:
            await http.aclose()
    raise FetchError("Failed to fetch skill content", source_url)


def _describe(exc: BaseException) -> str:
    return str(exc) or type(exc).__name__


def _as_fetch_error(exc: BaseException, url: str, timeout: float | None) -> FetchError:
    if isinstance(exc, (asyncio.TimeoutError, httpx.TimeoutException)):
        return FetchError(f"Timed out after {timeout}s fetching {url}", url)
    return FetchError(f"Failed to fetch {url}: {_describe(exc)}", url)
