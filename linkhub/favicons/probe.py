# SPDX-License-Identifier: AGPL-3.0-or-later
"""Reachability prober: best effort check whether an internal URL answers.

The verdict is advisory only, it annotates a link ("may be unreachable") and
never blocks navigation.  The probe runs from the network of the process that
calls it; on a server outside the client's network the answer says nothing
about the client, in this case probing should be disabled and the verdict is
``unknown``.

Targets from untrusted input are checked by :py:obj:`check_probe_target`,
only hosts of the private network rules are allowed, the prober can't be used
to scan public hosts.
"""

from __future__ import annotations

__all__ = ["check_probe_target", "probe_reachability", "probe_target"]

import asyncio

import httpx

from linkhub import logger
from linkhub.exceptions import LinkhubNetworkException, ProbeTargetRejected
from linkhub.network import ServerSideFetch

from .locality import IPV4_LITERAL, classify, hostname_of, is_private_host
from .models import Reachability, ReachabilityVerdict

logger = logger.getChild("favicons.probe")


def _target_hostname(target: str) -> str | None:
    if "://" in target:
        return hostname_of(target)
    return hostname_of("//" + target)


def check_probe_target(target: str | None) -> str:
    """Returns the host name of ``target`` (bare host, ``host:port`` or URL) or
    raises :py:obj:`ProbeTargetRejected` if it is not a private network host."""

    target = (target or "").strip()
    host = _target_hostname(target) if target else None
    if not is_private_host(host):
        raise ProbeTargetRejected(target)
    return host  # type: ignore


def target_url(target: str, host: str) -> str:
    if "://" in target:
        return target
    scheme = "http" if host == "localhost" or IPV4_LITERAL.match(host) else "https"
    return f"{scheme}://{target}"


async def probe_reachability(url: str, fetch: ServerSideFetch, timeout: float = 3.0) -> ReachabilityVerdict:
    """Send a HEAD request to ``url``.  Any answer counts as *reachable*,
    timeouts and connection errors as *unreachable*.  An external URL is
    *reachable* without probing."""

    if hostname_of(url) is None:
        return ReachabilityVerdict(status=Reachability.UNKNOWN)
    if not classify(url).is_internal:
        return ReachabilityVerdict(status=Reachability.REACHABLE)

    try:
        response = await asyncio.wait_for(fetch.head(url, timeout=timeout), timeout)
    except asyncio.TimeoutError:
        logger.debug("probe %s: timeout", url)
        return ReachabilityVerdict(status=Reachability.UNREACHABLE)
    except (httpx.HTTPError, LinkhubNetworkException) as exc:
        logger.debug("probe %s: %s", url, exc)
        return ReachabilityVerdict(status=Reachability.UNREACHABLE)
    return ReachabilityVerdict(status=Reachability.REACHABLE, status_code=response.status_code)


async def probe_target(
    target: str,
    fetch: ServerSideFetch,
    timeout: float = 3.0,
    enabled: bool = True,
) -> ReachabilityVerdict:
    """Probe a target from untrusted input, see :py:obj:`check_probe_target`.
    With ``enabled=False`` the target is validated but not probed."""

    host = check_probe_target(target)
    if not enabled:
        return ReachabilityVerdict(status=Reachability.UNKNOWN)
    return await probe_reachability(target_url(target.strip(), host), fetch, timeout)
