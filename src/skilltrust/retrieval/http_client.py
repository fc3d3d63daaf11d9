"""Redirect-validating, byte-bounded HTTP access on top of ``httpx.AsyncClient``.

httpx's own redirect following is disabled: every hop goes through
``assert_url_allowed`` before it is requested. Bodies are streamed and
abandoned as soon as they exceed their cap, whatever ``Content-Length``
claimed.
"""

from __future__ import annotations

import base64
import binascii
import logging
import re
from urllib.parse import unquote_to_bytes

import httpx

from skilltrust.config import DEFAULT_MAX_REDIRECTS
from skilltrust.exceptions import FetchError, ResponseTooLargeError, TooManyRedirectsError
from skilltrust.retrieval.ssrf import assert_url_allowed

logger = logging.getLogger(__name__)

_WHITESPACE = re.compile(r"\s+")
SNIPPET_CHARS = 200


def create_client(timeout: float | None) -> httpx.AsyncClient:
    """A client that never follows redirects on its own."""
    return httpx.AsyncClient(timeout=timeout, follow_redirects=False)


async def open_validated(
    client: httpx.AsyncClient,
    url: str,
    *,
    headers: dict[str, str],
    max_redirects: int = DEFAULT_MAX_REDIRECTS,
) -> tuple[httpx.Response, str]:
    """Issue a streaming GET, validating the URL at every redirect hop.

    The caller owns the returned response and must close it.

    Returns:
        ``(response, final_url)``. A 3xx without ``Location`` is returned
        as the final response.

    Raises:
        UrlNotAllowedError: A hop failed validation; nothing was sent to it.
        TooManyRedirectsError: More than ``max_redirects`` hops.
    """
    current = httpx.URL(url)
    for hop in range(max_redirects + 1):
        await assert_url_allowed(str(current))
        request = client.build_request("GET", current, headers=headers)
        response = await client.send(request, stream=True, follow_redirects=False)
        location = response.headers.get("location")
        if not (300 <= response.status_code < 400 and location):
            return response, str(current)
        await response.aclose()
        if hop == max_redirects:
            break
        current = current.join(location)
        logger.debug("Redirect %d -> %s", hop + 1, current)
    raise TooManyRedirectsError(f"Too many redirects (>{max_redirects}).", url)


async def read_limited(response: httpx.Response, max_bytes: int, url: str = "") -> bytes:
    """Read a streamed body, failing fast once it passes ``max_bytes``.

    Raises:
        ResponseTooLargeError: Declared or actual size over the cap.
    """
    declared = response.headers.get("content-length", "")
    if declared.isdigit() and int(declared) > max_bytes:
        raise ResponseTooLargeError(
            f"Response too large ({int(declared)} bytes > {max_bytes} bytes).", url
        )
    chunks: list[bytes] = []
    total = 0
    async for chunk in response.aiter_bytes():
        total += len(chunk)
        if total > max_bytes:
            raise ResponseTooLargeError(f"Response too large (>{max_bytes} bytes).", url)
        chunks.append(chunk)
    return b"".join(chunks)


def format_error_snippet(text: str) -> str:
    """Collapse whitespace and cap an error body for inclusion in a message."""
    cleaned = _WHITESPACE.sub(" ", text).strip()
    if len(cleaned) > SNIPPET_CHARS:
        return f"{cleaned[:SNIPPET_CHARS]}..."
    return cleaned


async def read_error_snippet(response: httpx.Response, max_bytes: int) -> str:
    """Best-effort excerpt of an error response body; empty when unreadable."""
    try:
        body = await read_limited(response, max_bytes)
    except (ResponseTooLargeError, httpx.HTTPError) as exc:
        logger.debug("Could not read error body: %s", exc)
        return ""
    return format_error_snippet(body.decode("utf-8", errors="replace"))


def decode_data_url(url: str, max_bytes: int) -> bytes:
    """Decode a ``data:[<mediatype>][;base64],<payload>`` URL.

    Raises:
        FetchError: Malformed URL or undecodable payload.
        ResponseTooLargeError: Decoded payload over ``max_bytes``.
    """
    header, sep, payload = url[5:].partition(",")
    if not sep:
        raise FetchError("Malformed data: URL (missing ',').", url[:100])
    try:
        if header.lower().endswith(";base64"):
            data = base64.b64decode(unquote_to_bytes(payload), validate=False)
        else:
            data = unquote_to_bytes(payload)
    except (binascii.Error, ValueError) as exc:
        raise FetchError(f"Malformed data: URL: {exc}", url[:100]) from exc
    if len(data) > max_bytes:
        raise ResponseTooLargeError(f"Response too large (>{max_bytes} bytes).", url[:100])
    return data
