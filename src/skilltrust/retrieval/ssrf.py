"""Outbound URL validation against server-side request forgery.

``assert_url_allowed`` is called before the first request and again before
every redirect hop, so a hostname that is re-pointed between hops is still
caught. A URL is allowed only when all of these hold:

- the scheme is ``https`` (``data:`` URLs are always allowed; they never
  touch the network);
- it carries no user name or password;
- the port is absent or 443;
- the hostname is not ``localhost``, ``*.localhost``, ``*.local`` or
  ``metadata.google.internal``;
- the host, if an IP literal, and every address DNS returns for it
  otherwise, is outside the blocked ranges below.

Blocked IPv4: 0/8, 10/8, 127/8, 169.254/16, 172.16/12, 192.168/16,
100.64/10 (CGNAT), 198.18/15 (benchmarking), 224/3 (multicast and up).

Blocked IPv6: unspecified, loopback, multicast, link-local, site-local,
unique-local, Teredo, documentation and the 2001:2::/48 benchmarking
block. IPv4-mapped, IPv4-compatible, NAT64 (64:ff9b::/96) and 6to4 forms
are decoded to their embedded IPv4 address and checked again.
"""

from __future__ import annotations

import asyncio
import ipaddress
import logging
import socket

import httpx

from skilltrust.exceptions import UrlNotAllowedError

logger = logging.getLogger(__name__)

BLOCKED_HOSTNAMES = frozenset({"localhost", "metadata.google.internal"})
BLOCKED_HOST_SUFFIXES = (".localhost", ".local")

_BLOCKED_V4 = tuple(ipaddress.IPv4Network(net) for net in (
    "0.0.0.0/8",
    "10.0.0.0/8",
    "127.0.0.0/8",
    "169.254.0.0/16",
    "172.16.0.0/12",
    "192.168.0.0/16",
    "100.64.0.0/10",
    "198.18.0.0/15",
    "224.0.0.0/3",
))

_BLOCKED_V6 = tuple(ipaddress.IPv6Network(net) for net in (
    "ff00::/8",  # multicast
    "fe80::/10",  # link-local
    "fec0::/10",  # site-local
    "fc00::/7",  # unique-local
    "2001::/32",  # Teredo
    "2001:db8::/32",  # documentation
    "2001:2::/48",  # benchmarking
))

_NAT64 = ipaddress.IPv6Network("64:ff9b::/96")
_V4_COMPATIBLE = ipaddress.IPv6Network("::/96")


def _strip_zone(address: str) -> str:
    return address.split("%", 1)[0]


def is_blocked_ipv4(address: ipaddress.IPv4Address) -> bool:
    return any(address in net for net in _BLOCKED_V4)


def _embedded_ipv4(address: ipaddress.IPv6Address) -> ipaddress.IPv4Address | None:
    if address.ipv4_mapped is not None:
        return address.ipv4_mapped
    if address.sixtofour is not None:
        return address.sixtofour
    if address in _V4_COMPATIBLE or address in _NAT64:
        return ipaddress.IPv4Address(address.packed[12:])
    return None


def is_blocked_ipv6(address: ipaddress.IPv6Address) -> bool:
    if address.is_unspecified or address.is_loopback:
        return True
    if any(address in net for net in _BLOCKED_V6):
        return True
    embedded = _embedded_ipv4(address)
    return embedded is not None and is_blocked_ipv4(embedded)


def is_blocked_ip(value: str) -> bool:
    """True for private/reserved addresses, and for anything that is not an IP."""
    try:
        address = ipaddress.ip_address(_strip_zone(value.strip("[]")))
    except ValueError:
        return True
    if isinstance(address, ipaddress.IPv4Address):
        return is_blocked_ipv4(address)
    return is_blocked_ipv6(address)


def is_ip_literal(host: str) -> bool:
    try:
        ipaddress.ip_address(_strip_zone(host))
    except ValueError:
        return False
    return True


def is_blocked_hostname(host: str) -> bool:
    return host in BLOCKED_HOSTNAMES or host.endswith(BLOCKED_HOST_SUFFIXES)


async def resolve_host(host: str) -> list[str]:
    """Every address ``host`` resolves to, in resolver order."""
    loop = asyncio.get_running_loop()
    infos = await loop.getaddrinfo(host, None, type=socket.SOCK_STREAM)
    return list(dict.fromkeys(str(info[4][0]) for info in infos))


def _reject(message: str, url: str) -> UrlNotAllowedError:
    logger.warning("Rejected URL %s: %s", url, message)
    return UrlNotAllowedError(message, url)


async def assert_url_allowed(url: str) -> None:
    """Validate ``url`` before any request is made to it.

    Raises:
        UrlNotAllowedError: If the URL, its host, or any address the host
            resolves to is not allowed.
    """
    if url[:5].lower() == "data:":
        return
    try:
        parsed = httpx.URL(url)
    except httpx.InvalidURL as exc:
        raise _reject(f"Invalid URL: {exc}", url) from exc

    scheme = parsed.scheme.lower()
    if scheme != "https":
        raise _reject(f"Only https (or data:) URLs are allowed (got {scheme or 'unknown'}:).", url)
    if parsed.userinfo:
        raise _reject("URLs with embedded credentials are not allowed.", url)
    if parsed.port not in (None, 443):
        raise _reject(f"Non-standard ports are not allowed (got :{parsed.port}).", url)

    host = parsed.host.rstrip(".").lower().strip("[]")
    if not host:
        raise _reject("URL hostname is missing.", url)
    if is_blocked_hostname(host):
        raise _reject(f"Blocked hostname for security reasons: {host}", url)

    if is_ip_literal(host):
        if is_blocked_ip(host):
            raise _reject(f"Blocked IP address for security reasons: {host}", url)
        return

    try:
        addresses = await resolve_host(host)
    except (OSError, UnicodeError) as exc:
        raise _reject(f"Unable to resolve hostname: {host}", url) from exc
    if not addresses:
        raise _reject(f"Unable to resolve hostname: {host}", url)
    for address in addresses:
        if is_blocked_ip(address):
            raise _reject(
                f"Blocked hostname for security reasons: {host} (resolves to {address})", url
            )
