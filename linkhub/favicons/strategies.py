# SPDX-License-Identifier: AGPL-3.0-or-later
"""Strategies to obtain the icon of an external URL.

A strategy is a coroutine function with the signature::

  async def strategy(ctx: ResolveContext) -> IconResult | None

A strategy returns ``None`` or raises one of :py:obj:`STRATEGY_ERRORS` if it
has not found an icon.  The strategies are run in order by
:py:obj:`run_strategies`, each step is bounded by its own timeout and no step
is retried.
"""

from __future__ import annotations

__all__ = [
    "ResolveConfig",
    "ResolveContext",
    "PublicFetch",
    "STRATEGY_ERRORS",
    "DEFAULT_STRATEGIES",
    "favicon_paths",
    "html_links",
    "aggregator",
    "icon_links",
    "run_strategies",
]

import asyncio
import dataclasses
import urllib.parse
from typing import Awaitable, Callable

import httpx
from bs4 import BeautifulSoup
from pydantic import BaseModel, field_validator

from linkhub import logger
from linkhub.exceptions import LinkhubHTTPException, LinkhubNetworkException
from linkhub.network import ServerSideFetch

from .locality import classify, is_private_host
from .models import DataUriIcon, IconResult
from .resolvers import RESOLVER_MAP

logger = logger.getChild("favicons.strategies")


class ResolveConfig(BaseModel):
    """Configuration of the icon resolution."""

    step_timeout: float = 3.0
    """Timeout (sec.) of one resolution step."""

    request_timeout: float = 2.0
    """Timeout (sec.) of a single HTTP request within a step."""

    aggregator: str = "google"
    """Name of the resolver in :py:obj:`.resolvers.RESOLVER_MAP` used as last
    remote step.  An empty string disables this step."""

    network_icon: str = "/static/icons/network-icon.svg"
    """Static path of the generic icon for links into a private network."""

    favicon_paths: list[str] = [
        "/favicon.ico",
        "/favicon.png",
        "/apple-touch-icon.png",
        "/apple-touch-icon-precomposed.png",
    ]
    """Well known locations of a favicon, relative to the origin."""

    link_rels: list[str] = [
        "icon",
        "shortcut icon",
        "apple-touch-icon",
        "apple-touch-icon-precomposed",
    ]
    """Values of the ``rel`` attribute of ``<link>`` tags naming an icon."""

    max_icon_bytes: int = 1024 * 512
    """Icons larger than this are refused."""

    cache_placeholder: bool = True
    """Whether the placeholder is cached when all remote steps failed.  A
    cached placeholder saves the remote requests on the next render, the
    price is that a host which was down won't get its real icon before the
    cache entry expires."""

    @field_validator("aggregator")
    @classmethod
    def known_aggregator(cls, value: str) -> str:
        if value and value not in RESOLVER_MAP:
            raise ValueError(f"unknown aggregator {value!r}, choose one of {list(RESOLVER_MAP)}")
        return value


async def refuse_private_host(request: httpx.Request):
    """httpx request hook: refuse requests into a private network, this
    includes the targets of redirects."""
    if is_private_host(request.url.host):
        raise LinkhubNetworkException(f"request into private network refused: {request.url}")


class PublicFetch:
    """Wraps a :py:obj:`linkhub.network.Network`, only public hosts can be
    requested."""

    def __init__(self, fetch: ServerSideFetch):
        self.fetch = fetch

    async def get(self, url: str, **kwargs) -> httpx.Response:
        return await self.fetch.get(url, request_hooks=[refuse_private_host], **kwargs)

    async def head(self, url: str, **kwargs) -> httpx.Response:
        return await self.fetch.head(url, request_hooks=[refuse_private_host], **kwargs)


@dataclasses.dataclass
class ResolveContext:
    url: str
    fetch: ServerSideFetch
    cfg: ResolveConfig
    title: str | None = None
    public_only: bool = False
    """Requests into the private network are refused (redirects included) and
    icon links to private hosts are skipped."""

    def __post_init__(self):
        if self.public_only and not isinstance(self.fetch, PublicFetch):
            self.fetch = PublicFetch(self.fetch)

    @property
    def hostname(self) -> str | None:
        try:
            return urllib.parse.urlsplit(self.url).hostname
        except ValueError:
            return None

    @property
    def origin(self) -> str:
        parts = urllib.parse.urlsplit(self.url)
        return f"{parts.scheme}://{parts.netloc}"


Strategy = Callable[[ResolveContext], Awaitable[IconResult | None]]

STRATEGY_ERRORS = (httpx.HTTPError, LinkhubNetworkException, ValueError)
"""Exceptions that mean *this strategy failed, try the next one*."""


async def fetch_image(ctx: ResolveContext, url: str, source: str) -> DataUriIcon:
    """Download the image at ``url``, raises :py:obj:`LinkhubNetworkException`
    if the answer is not a (usable) image."""

    response = await ctx.fetch.get(url, timeout=ctx.cfg.request_timeout)
    if not response.is_success:
        raise LinkhubHTTPException(url, response.status_code)

    mime = response.headers.get("Content-Type", "").split(";", 1)[0].strip().lower()
    if not mime.startswith("image/"):
        raise LinkhubNetworkException(f"{url}: not an image ({mime or 'no content type'})")

    data = response.content
    if not data:
        raise LinkhubNetworkException(f"{url}: empty image")
    if len(data) > ctx.cfg.max_icon_bytes:
        raise LinkhubNetworkException(f"{url}: image too large ({len(data)} bytes)")
    return DataUriIcon.from_bytes(data, mime, source=source)


async def favicon_paths(ctx: ResolveContext) -> IconResult | None:
    """Well known favicon locations at the origin of the URL, the first path
    (in the configured order) that delivers an image wins."""

    urls = [urllib.parse.urljoin(ctx.origin, path) for path in ctx.cfg.favicon_paths]
    results = await asyncio.gather(
        *(fetch_image(ctx, url, "favicon_paths") for url in urls),
        return_exceptions=True,
    )
    for url, result in zip(urls, results):
        if isinstance(result, DataUriIcon):
            return result
        logger.debug("no favicon at %s: %s", url, result)
    return None


def icon_links(html: str, rels: list[str]) -> list[str]:
    """The ``href`` values of the icon ``<link>`` tags in ``html`` (document
    order)."""

    soup = BeautifulSoup(html, "html.parser")
    hrefs = []
    for link in soup.find_all("link"):
        rel = link.get("rel") or []
        if isinstance(rel, str):
            rel = rel.split()
        rel = " ".join(rel).lower()
        href = (link.get("href") or "").strip()
        if rel in rels and href:
            hrefs.append(href)
    return hrefs


async def html_links(ctx: ResolveContext) -> IconResult | None:
    """Scan the HTML page for ``<link rel="icon" ...>`` tags and download the
    first icon that can be loaded."""

    response = await ctx.fetch.get(
        ctx.url,
        timeout=ctx.cfg.request_timeout,
        headers={"Accept": "text/html"},
    )
    if not response.is_success:
        raise LinkhubHTTPException(ctx.url, response.status_code)

    for href in icon_links(response.text, ctx.cfg.link_rels):
        if href.startswith("data:image/"):
            return DataUriIcon(uri=href, source="html_links")
        icon_url = urllib.parse.urljoin(ctx.url, href)
        if ctx.public_only and classify(icon_url).is_internal:
            logger.debug("skip icon %s from %s: private network", icon_url, ctx.url)
            continue
        try:
            return await fetch_image(ctx, icon_url, "html_links")
        except STRATEGY_ERRORS as exc:
            logger.debug("icon %s from %s can't be loaded: %s", icon_url, ctx.url, exc)
    return None


async def aggregator(ctx: ResolveContext) -> IconResult | None:
    """Ask the configured third party favicon aggregator."""

    func = RESOLVER_MAP.get(ctx.cfg.aggregator)
    hostname = ctx.hostname
    if func is None or not hostname:
        return None

    data, mime = await func(ctx.fetch, hostname, ctx.cfg.request_timeout)
    if data is None or mime is None or not mime.startswith("image/"):
        return None
    return DataUriIcon.from_bytes(data, mime, source="aggregator")


DEFAULT_STRATEGIES: list[Strategy] = [favicon_paths, html_links, aggregator]


async def run_strategies(strategies: list[Strategy], ctx: ResolveContext, timeout: float) -> IconResult | None:
    """Run ``strategies`` in order, the first icon found is returned.  Each
    strategy is cancelled after ``timeout`` seconds."""

    for strategy in strategies:
        name = getattr(strategy, "__name__", repr(strategy))
        try:
            icon = await asyncio.wait_for(strategy(ctx), timeout)
        except asyncio.TimeoutError:
            logger.debug("%s: timeout (%ss) for %s", name, timeout, ctx.url)
            continue
        except STRATEGY_ERRORS as exc:
            logger.debug("%s: failed for %s: %s", name, ctx.url, exc)
            continue
        if icon is not None:
            logger.debug("%s: found icon for %s", name, ctx.url)
            return icon
    return None
