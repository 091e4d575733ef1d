# SPDX-License-Identifier: AGPL-3.0-or-later
"""Locality classifier: is a URL (or the client) in a private network?

The decision for a URL is made from its host name only, by the rules in
:py:obj:`PRIVATE_HOST_RULES`.  The same rule table is used by the favicon
resolver, the reachability prober (allow-list) and the check of the client's
address.
"""

from __future__ import annotations

__all__ = [
    "PRIVATE_HOST_RULES",
    "is_private_host",
    "classify",
    "client_network_info",
    "classify_client_network",
]

import datetime
import re
import urllib.parse
from typing import Callable

import httpx

from linkhub import logger

from .models import Locality, LocalityBasis, LocalityVerdict

logger = logger.getChild("favicons.locality")


def _exact(value: str) -> Callable[[str], bool]:
    return lambda host: host == value


IPV4_LITERAL = re.compile(r"^\d{1,3}\.\d{1,3}\.\d{1,3}\.\d{1,3}$")
"""Dotted quad IPv4 address, the numeric rules apply to such literals only."""


def _ipv4_prefix(value: str) -> Callable[[str], bool]:
    return lambda host: bool(IPV4_LITERAL.match(host)) and host.startswith(value)


def _suffix(value: str) -> Callable[[str], bool]:
    return lambda host: host.endswith(value)


def _second_octet(first: str, lower: int, upper: int) -> Callable[[str], bool]:
    def match(host: str) -> bool:
        if not IPV4_LITERAL.match(host):
            return False
        parts = host.split(".")
        if parts[0] != first:
            return False
        return lower <= int(parts[1]) <= upper

    return match


PRIVATE_HOST_RULES: list[tuple[str, Callable[[str], bool]]] = [
    ("localhost", _exact("localhost")),
    ("127.", _ipv4_prefix("127.")),
    ("192.168.", _ipv4_prefix("192.168.")),
    ("10.", _ipv4_prefix("10.")),
    ("172.16-31.", _second_octet("172", 16, 31)),
    (".local", _suffix(".local")),
    (".lan", _suffix(".lan")),
]
"""Ordered rules (name, predicate) matching host names of private networks.
The ``172.16.0.0/12`` block is matched by its second octet, a bare ``172.``
prefix would take in public addresses.  A DNS name like ``10.example.com``
is not matched by the numeric rules."""


def is_private_host(host: str | None) -> bool:
    if not host:
        return False
    host = host.strip().lower().rstrip(".")
    for name, match in PRIVATE_HOST_RULES:
        if match(host):
            logger.debug("host %s matches private rule %s", host, name)
            return True
    return False


def hostname_of(url: str | None) -> str | None:
    """Host name of ``url`` or ``None`` if the URL has none / can't be parsed."""
    if not url or not isinstance(url, str):
        return None
    try:
        return urllib.parse.urlsplit(url.strip()).hostname
    except ValueError:
        return None


def classify(url: str | None) -> LocalityVerdict:
    """Classify ``url`` as internal or external.  Input that can't be parsed
    or has no host name is *external* (fail closed)."""

    if is_private_host(hostname_of(url)):
        return LocalityVerdict(locality=Locality.INTERNAL, basis=LocalityBasis.HOSTNAME)
    return LocalityVerdict(locality=Locality.EXTERNAL, basis=LocalityBasis.HOSTNAME)


def is_private_address(client_ip: str | None) -> bool:
    if client_ip in ("::1", "127.0.0.1"):
        return True
    return is_private_host(client_ip)


def client_network_info(client_ip: str) -> dict:
    """Server side half of the client network detection, the answer of
    ``/api/network-test``.  The connection medium can't be determined on the
    server, it is assumed for private addresses."""

    private = is_private_address(client_ip)
    return {
        "clientIp": client_ip,
        "isPrivateNetwork": private,
        "networkInfo": {
            "hasWifi": private,
            "hasEthernet": private,
        },
        "timestamp": datetime.datetime.now(datetime.timezone.utc).isoformat(),
    }


async def classify_client_network(fetch, origin: str) -> LocalityVerdict:
    """Client side half of the client network detection: request the
    ``/api/network-test`` endpoint of the application at ``origin`` and
    corroborate its answer.  The client is *internal* only if the round trip
    succeeds, the application reports a private network, a connection medium
    is reported and the reported address matches the private rules.

    ``fetch`` is a :py:obj:`linkhub.network.ServerSideFetch` running where the
    client runs.
    """
    external = LocalityVerdict(locality=Locality.EXTERNAL, basis=LocalityBasis.PROBE)
    url = urllib.parse.urljoin(origin, "/api/network-test")
    try:
        response = await fetch.get(url)
        if not response.is_success:
            return external
        info = response.json()
    except (httpx.HTTPError, ValueError) as exc:
        logger.debug("network test %s failed: %s", url, exc)
        return external

    if isinstance(info, dict) and "data" in info:
        info = info["data"]
    if not isinstance(info, dict):
        return external

    medium = info.get("networkInfo") or {}
    if (
        info.get("isPrivateNetwork") is True
        and (medium.get("hasWifi") or medium.get("hasEthernet"))
        and is_private_address(info.get("clientIp"))
    ):
        return LocalityVerdict(locality=Locality.INTERNAL, basis=LocalityBasis.PROBE)
    return external
