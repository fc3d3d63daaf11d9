"""Tests for fetch_skill_content: retries, redirects, caps and archives.

DNS is patched to a public address and the network is an
``httpx.MockTransport``; backoff sleeps are patched out.
"""

from __future__ import annotations

import asyncio
import base64
import io
import zipfile
from datetime import datetime, timezone
from unittest.mock import AsyncMock, patch

import httpx
import pytest

from skilltrust.config import FetchOptions
from skilltrust.exceptions import (
    ArchiveError,
    FetchError,
    HttpStatusError,
    ResponseTooLargeError,
    TooManyRedirectsError,
    UrlNotAllowedError,
)
from skilltrust.retrieval.retriever import (
    MAX_BACKOFF,
    backoff_delay,
    fetch_skill_content,
    parse_retry_after,
)

URL = "https://skills.example.net/SKILL.md"
FAST = FetchOptions(retries=2, retry_delay=0.01)


@pytest.fixture(autouse=True)
def public_dns():
    with patch(
        "skilltrust.retrieval.ssrf.resolve_host", AsyncMock(return_value=["93.184.216.34"])
    ) as resolver:
        yield resolver


@pytest.fixture
def sleep():
    with patch("skilltrust.retrieval.retriever.asyncio.sleep", AsyncMock()) as mock:
        yield mock


def make_zip(entries: dict[str, str]) -> bytes:
    buffer = io.BytesIO()
    with zipfile.ZipFile(buffer, "w") as archive:
        for name, text in entries.items():
            archive.writestr(name, text)
    return buffer.getvalue()


class Server:
    """Replays canned responses and records every request.

    The last response repeats. Each request gets a fresh copy so a body
    read on one attempt is readable again on the next.
    """

    def __init__(self, *responses: httpx.Response) -> None:
        self.responses = list(responses)
        self.requests: list[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        canned = self.responses.pop(0) if len(self.responses) > 1 else self.responses[0]
        return httpx.Response(canned.status_code, headers=canned.headers, content=canned.content)


def fetch(server, url: str = URL, options: FetchOptions = FAST):
    async def go():
        transport = httpx.MockTransport(server)
        async with httpx.AsyncClient(transport=transport, follow_redirects=False) as client:
            return await fetch_skill_content(url, options, client=client)

    return asyncio.run(go())


class TestRetryAfter:
    def test_delta_seconds(self) -> None:
        assert parse_retry_after("5") == 5.0

    def test_http_date(self) -> None:
        now = datetime(2026, 1, 1, 12, 0, 0, tzinfo=timezone.utc)
        assert parse_retry_after("Thu, 01 Jan 2026 12:00:10 GMT", now=now) == 10.0

    def test_past_date_is_zero(self) -> None:
        now = datetime(2026, 1, 1, 12, 0, 0, tzinfo=timezone.utc)
        assert parse_retry_after("Thu, 01 Jan 2026 11:00:00 GMT", now=now) == 0.0

    @pytest.mark.parametrize("value", [None, "", "soon"])
    def test_unparseable(self, value) -> None:
        assert parse_retry_after(value) is None

    def test_backoff_grows_and_caps(self) -> None:
        assert 0.75 <= backoff_delay(0, 0.75) <= 1.0
        assert 1.5 <= backoff_delay(1, 0.75) <= 1.75
        assert backoff_delay(20, 1.0) == MAX_BACKOFF


class TestFetchText:
    def test_plain_text(self) -> None:
        server = Server(httpx.Response(200, text="# Weather\n", headers={"content-type": "text/markdown"}))
        fetched = fetch(server)
        assert fetched.content == "# Weather\n"
        assert fetched.source_url == URL
        assert server.requests[0].headers["user-agent"].startswith("SkillTrustScanner/")

    def test_shorthand_normalised_before_request(self) -> None:
        server = Server(httpx.Response(200, text="# Deploy"))
        fetched = fetch(server, "https://github.com/acme/skills/blob/main/deploy/SKILL.md")
        assert fetched.source_url == "https://raw.githubusercontent.com/acme/skills/main/deploy/SKILL.md"

    def test_body_over_cap(self) -> None:
        server = Server(httpx.Response(200, content=b"x" * 50))
        with patch("skilltrust.retrieval.retriever.MAX_TEXT_BYTES", 10):
            with pytest.raises(ResponseTooLargeError):
                fetch(server)

    def test_zip_response(self) -> None:
        archive = make_zip({"weather/SKILL.md": "# Weather from zip"})
        server = Server(httpx.Response(200, content=archive, headers={"content-type": "application/zip"}))
        assert fetch(server).content == "# Weather from zip"

    def test_zip_without_skill_file(self) -> None:
        archive = make_zip({"README.md": "readme"})
        server = Server(httpx.Response(200, content=archive, headers={"content-type": "application/zip"}))
        with pytest.raises(ArchiveError):
            fetch(server, options=FetchOptions(retries=0))
        assert len(server.requests) == 1

    def test_data_url(self) -> None:
        server = Server(httpx.Response(500))
        payload = base64.b64encode(b"# Inline skill").decode()
        fetched = fetch(server, f"data:text/markdown;base64,{payload}")
        assert fetched.content == "# Inline skill"
        assert server.requests == []


class TestRetries:
    def test_server_error_retried(self, sleep: AsyncMock) -> None:
        server = Server(httpx.Response(503), httpx.Response(200, text="# ok"))
        assert fetch(server).content == "# ok"
        assert len(server.requests) == 2
        sleep.assert_awaited_once()

    def test_retry_after_honoured(self, sleep: AsyncMock) -> None:
        server = Server(httpx.Response(429, headers={"retry-after": "2"}), httpx.Response(200, text="# ok"))
        fetch(server)
        sleep.assert_awaited_once_with(2.0)

    def test_retry_after_capped(self, sleep: AsyncMock) -> None:
        server = Server(httpx.Response(429, headers={"retry-after": "600"}), httpx.Response(200, text="# ok"))
        fetch(server)
        sleep.assert_awaited_once_with(MAX_BACKOFF)

    def test_not_found_not_retried(self, sleep: AsyncMock) -> None:
        server = Server(httpx.Response(404, text="no  such\n skill"))
        with pytest.raises(HttpStatusError) as excinfo:
            fetch(server)
        assert excinfo.value.status_code == 404
        assert "404 Not Found - no such skill" in str(excinfo.value)
        assert len(server.requests) == 1
        sleep.assert_not_awaited()

    def test_retries_exhausted(self, sleep: AsyncMock) -> None:
        server = Server(httpx.Response(500))
        with pytest.raises(HttpStatusError) as excinfo:
            fetch(server, options=FetchOptions(retries=1, retry_delay=0.01))
        assert excinfo.value.status_code == 500
        assert len(server.requests) == 2

    def test_timeout_becomes_fetch_error(self, sleep: AsyncMock) -> None:
        def slow(request: httpx.Request) -> httpx.Response:
            raise httpx.ReadTimeout("read timed out", request=request)

        with pytest.raises(FetchError, match="Timed out"):
            fetch(slow, options=FetchOptions(retries=1, retry_delay=0.01, timeout=5.0))
        assert sleep.await_count == 1

    def test_network_error_becomes_fetch_error(self, sleep: AsyncMock) -> None:
        def refused(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("connection refused", request=request)

        with pytest.raises(FetchError, match="connection refused"):
            fetch(refused, options=FetchOptions(retries=0))


class TestRedirects:
    def test_relative_redirect_followed(self) -> None:
        server = Server(
            httpx.Response(301, headers={"location": "/real/SKILL.md"}),
            httpx.Response(200, text="# moved"),
        )
        fetched = fetch(server)
        assert fetched.source_url == "https://skills.example.net/real/SKILL.md"
        assert [str(r.url) for r in server.requests] == [URL, fetched.source_url]

    def test_redirect_to_private_address_blocked(self) -> None:
        """The private hop is validated and refused before it is requested."""
        server = Server(
            httpx.Response(302, headers={"location": "https://10.0.0.8/SKILL.md"}),
            httpx.Response(200, text="# internal"),
        )
        with pytest.raises(UrlNotAllowedError):
            fetch(server)
        assert len(server.requests) == 1

    def test_redirect_to_http_blocked(self) -> None:
        server = Server(httpx.Response(302, headers={"location": "http://skills.example.net/SKILL.md"}))
        with pytest.raises(UrlNotAllowedError, match="Only https"):
            fetch(server)

    def test_too_many_redirects(self) -> None:
        server = Server(httpx.Response(302, headers={"location": URL}))
        with pytest.raises(TooManyRedirectsError):
            fetch(server, options=FetchOptions(retries=2, max_redirects=2))
        assert len(server.requests) == 3


class TestSsrfBeforeRequest:
    def test_metadata_endpoint_never_requested(self) -> None:
        server = Server(httpx.Response(200, text="secret"))
        with pytest.raises(UrlNotAllowedError):
            fetch(server, "https://169.254.169.254/latest/meta-data")
        assert server.requests == []

    def test_private_dns_never_requested(self, public_dns: AsyncMock) -> None:
        public_dns.return_value = ["192.168.0.10"]
        server = Server(httpx.Response(200, text="secret"))
        with pytest.raises(UrlNotAllowedError):
            fetch(server)
        assert server.requests == []
