# SPDX-License-Identifier: AGPL-3.0-or-later
"""Implementations of the third party favicon *resolvers* (aggregators).  A
*resolver* receives the fetch capability, the domain and a timeout and returns
a tuple ``(data, mime)``, both values are ``None`` if the resolver has no
favicon for the domain."""

from __future__ import annotations

__all__ = ['RESOLVERS', 'RESOLVER_MAP']

from typing import Awaitable, Callable

from linkhub import logger
from linkhub.network import ServerSideFetch

logger = logger.getChild('favicons.resolvers')

Resolver = Callable[[ServerSideFetch, str, float], Awaitable[tuple[bytes | None, str | None]]]

RESOLVERS: list[str]
RESOLVER_MAP: dict[str, Resolver]


async def allesedv(fetch: ServerSideFetch, domain: str, timeout: float) -> tuple[bytes | None, str | None]:
    """Favicon Resolver from allesedv.com / https://favicon.allesedv.com/"""
    data, mime = (None, None)
    url = f"https://f1.allesedv.com/32/{domain}"
    logger.debug("fetch favicon from: %s", url)

    # will just return a 200 regardless of the favicon existing or not
    # sometimes will be correct size, sometimes not
    response = await fetch.get(url, timeout=timeout)
    if response.status_code == 200:
        mime = response.headers.get('Content-Type')
        if mime != 'image/gif':
            data = response.content
    return data, mime


async def duckduckgo(fetch: ServerSideFetch, domain: str, timeout: float) -> tuple[bytes | None, str | None]:
    """Favicon Resolver from duckduckgo.com / https://blog.jim-nielsen.com/2021/displaying-favicons-for-any-domain/"""
    data, mime = (None, None)
    url = f"https://icons.duckduckgo.com/ip2/{domain}.ico"
    logger.debug("fetch favicon from: %s", url)

    # will return a 404 if the favicon does not exist and a 200 if it does,
    response = await fetch.get(url, timeout=timeout)
    if response.status_code == 200:
        mime = response.headers.get('Content-Type')
        data = response.content
    return data, mime


async def google(fetch: ServerSideFetch, domain: str, timeout: float) -> tuple[bytes | None, str | None]:
    """Favicon Resolver from google.com"""
    data, mime = (None, None)

    # URL https://www.google.com/s2/favicons?sz=32&domain={domain}" will be
    # redirected (HTTP 301 Moved Permanently) to t1.gstatic.com/faviconV2:
    url = (
        f"https://t1.gstatic.com/faviconV2?client=SOCIAL&type=FAVICON&fallback_opts=TYPE,SIZE,URL"
        f"&url=https://{domain}&size=32"
    )
    logger.debug("fetch favicon from: %s", url)

    # will return a 404 if the favicon does not exist and a 200 if it does,
    response = await fetch.get(url, timeout=timeout)
    if response.status_code == 200:
        # api will respond with a 32x32 png image
        mime = response.headers.get('Content-Type')
        data = response.content
    return data, mime


async def yandex(fetch: ServerSideFetch, domain: str, timeout: float) -> tuple[bytes | None, str | None]:
    """Favicon Resolver from yandex.com"""
    data, mime = (None, None)
    url = f"https://favicon.yandex.net/favicon/{domain}"
    logger.debug("fetch favicon from: %s", url)

    response = await fetch.get(url, timeout=timeout)
    # api will respond with a 16x16 png image, if it doesn't exist, it will be a
    # 1x1 png image (70 bytes)
    if response.status_code == 200 and len(response.content) > 70:
        mime = response.headers.get('Content-Type')
        data = response.content
    return data, mime


RESOLVER_MAP = {
    "allesedv": allesedv,
    "duckduckgo": duckduckgo,
    "google": google,
    "yandex": yandex,
}

RESOLVERS = list(RESOLVER_MAP.keys())
