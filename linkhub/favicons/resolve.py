# SPDX-License-Identifier: AGPL-3.0-or-later
"""The icon resolver: what icon is rendered for a link?

1. an icon stored in the link record wins,
2. the *effective URL* is selected from the internal / external URL of the
   link and the network preference of the caller,
3. for an internal URL the generic network icon is returned, the resolver
   never sends a request into a private network (the real icon of such a link
   is captured by a client, see :py:obj:`.capture`),
4. for an external URL the remote strategies are run in order
   (:py:obj:`.strategies.DEFAULT_STRATEGIES`) and the placeholder badge is
   the last resort.
"""

from __future__ import annotations

__all__ = ["ResolveConfig", "IconResolver", "select_effective_url"]

from linkhub import logger
from linkhub.network import ServerSideFetch

from .cache import FaviconCache, FaviconCacheNull, FaviconCacheConfig
from .locality import classify, hostname_of
from .models import IconResult, LinkAddress, StaticPathIcon, icon_from_src
from .placeholder import placeholder_icon
from .strategies import DEFAULT_STRATEGIES, ResolveConfig, ResolveContext, Strategy, run_strategies

logger = logger.getChild("favicons.resolve")


def select_effective_url(address: LinkAddress, prefer_internal: bool) -> str | None:
    """The URL of the link the icon is resolved for."""

    internal_url = (address.internal_url or "").strip()
    external_url = (address.external_url or "").strip()
    if prefer_internal and internal_url:
        return internal_url
    if external_url:
        return external_url
    return internal_url or external_url or None


class IconResolver:
    """Resolves the icon of a link.

    ``fetch``:
      server side fetch capability (:py:obj:`linkhub.network.Network`)

    ``cache``:
      icons resolved by the remote strategies are cached by URL

    ``strategies``:
      ordered list of remote strategies, defaults to
      :py:obj:`.strategies.DEFAULT_STRATEGIES`
    """

    def __init__(
        self,
        fetch: ServerSideFetch,
        cfg: ResolveConfig | None = None,
        cache: FaviconCache | None = None,
        strategies: list[Strategy] | None = None,
    ):
        self.fetch = fetch
        self.cfg = cfg or ResolveConfig()
        self.cache = cache or FaviconCacheNull(FaviconCacheConfig(db_type="null"))
        self.strategies = DEFAULT_STRATEGIES if strategies is None else strategies

    async def resolve_icon(
        self,
        address: LinkAddress,
        stored_icon: str | None = None,
        prefer_internal: bool = False,
        title: str | None = None,
    ) -> IconResult:
        """Returns the icon of the link, expected failures (timeouts, HTTP
        errors, broken HTML) are never raised, the placeholder badge is the last
        resort."""

        if stored_icon and stored_icon.strip():
            return icon_from_src(stored_icon, source="stored")

        url = select_effective_url(address, prefer_internal)
        if url is None:
            return placeholder_icon(title or "")

        if classify(url).is_internal:
            logger.debug("%s is internal, use network icon", url)
            return StaticPathIcon(path=self.cfg.network_icon, source="network")

        cached = self.cache(url)
        if cached is not None:
            return cached

        ctx = ResolveContext(url=url, fetch=self.fetch, cfg=self.cfg, title=title, public_only=True)
        icon = await run_strategies(self.strategies, ctx, self.cfg.step_timeout)
        if icon is None:
            logger.debug("no remote icon for %s, use placeholder", url)
            icon = placeholder_icon(hostname_of(url) or title or "")
            if not self.cfg.cache_placeholder:
                return icon

        self.cache.set(url, icon)
        return icon
