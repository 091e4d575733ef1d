# SPDX-License-Identifier: AGPL-3.0-or-later
"""Outgoing HTTP requests of the linkhub server.

All requests are made by :py:obj:`Network`, an asynchronous wrapper around
:py:obj:`httpx.AsyncClient`.  A :py:obj:`Network` instance is the server side
fetch capability (:py:obj:`ServerSideFetch`) used by the favicon resolver and
the reachability prober.  Tests replace the transport by a
:py:obj:`httpx.MockTransport`.
"""

from __future__ import annotations

__all__ = ["ServerSideFetch", "Network", "get_network", "init"]

from typing import Protocol

import httpx

from linkhub import get_setting, logger
from linkhub.exceptions import LinkhubHTTPException

logger = logger.getChild("network")

NETWORK: "Network | None" = None


class ServerSideFetch(Protocol):
    """Capability to fetch resources from the process running linkhub."""

    async def get(self, url: str, **kwargs) -> httpx.Response: ...

    async def head(self, url: str, **kwargs) -> httpx.Response: ...


class Network:
    """Outgoing HTTP requests.

    ``timeout``:
      default timeout (sec.) of a request

    ``transport``:
      an optional :py:obj:`httpx.AsyncBaseTransport`
    """

    def __init__(
        self,
        timeout: float | None = None,
        useragent: str | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.timeout = timeout if timeout is not None else get_setting("outgoing.request_timeout", 2.0)
        self.headers = {"User-Agent": useragent or get_setting("outgoing.useragent", "linkhub")}
        self.transport = transport

    async def request(
        self,
        method: str,
        url: str,
        timeout: float | None = None,
        raise_for_httperror: bool = False,
        request_hooks: list | None = None,
        **kwargs,
    ) -> httpx.Response:
        """Send a request, with ``raise_for_httperror`` a response with a
        status other than 2xx raises :py:obj:`LinkhubHTTPException`.

        ``request_hooks`` are httpx request event hooks, they are called for
        the request and for each redirect that is followed."""

        if timeout is None:
            timeout = self.timeout
        logger.debug("%s %s (timeout: %s)", method, url, timeout)
        async with httpx.AsyncClient(
            transport=self.transport,
            headers=self.headers,
            follow_redirects=True,
            event_hooks={"request": request_hooks or []},
        ) as client:
            response = await client.request(method, url, timeout=timeout, **kwargs)

        if raise_for_httperror and not response.is_success:
            raise LinkhubHTTPException(url, response.status_code)
        return response

    async def get(self, url: str, **kwargs) -> httpx.Response:
        return await self.request("GET", url, **kwargs)

    async def head(self, url: str, **kwargs) -> httpx.Response:
        return await self.request("HEAD", url, **kwargs)


def init(transport: httpx.AsyncBaseTransport | None = None):
    """(Re-) Initialization of the global :py:obj:`NETWORK`."""

    global NETWORK  # pylint: disable=global-statement
    NETWORK = Network(transport=transport)


def get_network() -> Network:
    if NETWORK is None:
        init()
    return NETWORK  # type: ignore
