"""Host-literal SSRF filter for remote file URLs.

The filter inspects only the hostname written in the URL. It does not resolve
DNS, so a public name that resolves to a private address is not caught here.
"""

from __future__ import annotations

import ipaddress
import logging
import re
import socket
from typing import Optional, Tuple, Union
from urllib.parse import urlparse

import httpx


logger = logging.getLogger(__name__)

IPAddress = Union[ipaddress.IPv4Address, ipaddress.IPv6Address]

BLOCKED_HOSTNAMES = frozenset(
    {
        "localhost",
        "::1",
        "[::1]",
        "metadata.google.internal",
    }
)

_BLOCKED_IPV4_NETWORKS: Tuple[ipaddress.IPv4Network, ...] = (
    ipaddress.ip_network("0.0.0.0/8"),
    ipaddress.ip_network("10.0.0.0/8"),
    ipaddress.ip_network("127.0.0.0/8"),
    ipaddress.ip_network("169.254.0.0/16"),
    ipaddress.ip_network("172.16.0.0/12"),
    ipaddress.ip_network("192.168.0.0/16"),
)

_BLOCKED_IPV6_NETWORKS: Tuple[ipaddress.IPv6Network, ...] = (
    ipaddress.ip_network("::/128"),
    ipaddress.ip_network("::1/128"),
    ipaddress.ip_network("fe80::/10"),
    ipaddress.ip_network("fc00::/7"),
)

# Dotted, hex, octal and single-integer IPv4 spellings accepted by inet_aton
_LEGACY_IPV4_PATTERN = re.compile(r"^[0-9a-fx.]+$", re.IGNORECASE)


def is_blocked_url(url: str) -> bool:
    """Return True when the URL must not be fetched.

    Unparseable URLs, URLs without a hostname and URLs with an invalid port
    are treated as blocked, as are hosts the HTTP client cannot encode.
    """
    try:
        parsed = urlparse(url)
        hostname = parsed.hostname
        # Accessing .port validates it
        parsed.port
        # IDNA labels are decoded lazily by httpx; force it here
        httpx.URL(url).host
    except (httpx.InvalidURL, ValueError):
        logger.debug("Blocking unparseable URL %r", url)
        return True

    if not hostname:
        return True
    return is_blocked_hostname(hostname)


def is_blocked_hostname(hostname: str) -> bool:
    host = hostname.strip().lower().rstrip(".")
    if not host:
        return True
    if host in BLOCKED_HOSTNAMES:
        return True

    address = _parse_ip_literal(host)
    if address is None:
        return False
    return is_blocked_address(address)


def is_blocked_address(address: IPAddress) -> bool:
    if isinstance(address, ipaddress.IPv6Address):
        mapped = address.ipv4_mapped
        if mapped is not None:
            return is_blocked_address(mapped)
        return any(address in network for network in _BLOCKED_IPV6_NETWORKS)
    return any(address in network for network in _BLOCKED_IPV4_NETWORKS)


def _parse_ip_literal(host: str) -> Optional[IPAddress]:
    candidate = host
    if candidate.startswith("[") and candidate.endswith("]"):
        candidate = candidate[1:-1]
    try:
        return ipaddress.ip_address(candidate)
    except ValueError:
        pass

    if _LEGACY_IPV4_PATTERN.match(candidate):
        try:
            packed = socket.inet_aton(candidate)
        except OSError:
            return None
        return ipaddress.IPv4Address(packed)
    return None
