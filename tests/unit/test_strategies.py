"""
tests/unit/test_strategies.py
"""
from __future__ import annotations

import asyncio
import time

import httpx
import pytest

from linkhub.exceptions import LinkhubNetworkException
from linkhub.favicons.models import DataUriIcon, RemoteUrlIcon
from linkhub.favicons.strategies import (
    PublicFetch,
    ResolveConfig,
    ResolveContext,
    aggregator,
    favicon_paths,
    html_links,
    icon_links,
    run_strategies,
)

from ..conftest import ICO, PNG

RELS = ResolveConfig().link_rels

PAGE = """
<!DOCTYPE html>
<html>
<head>
  <title>Example</title>
  <link rel="stylesheet" href="/style.css">
  <link rel="manifest" href="/site.webmanifest">
  <link rel="Shortcut Icon" href="img/fav.ico">
  <link rel="apple-touch-icon" href="https://cdn.example.org/touch.png">
</head>
<body></body>
</html>
"""


def _ctx(url, fetch, cfg) -> ResolveContext:
    return ResolveContext(url=url, fetch=fetch, cfg=cfg)


def test_icon_links():
    assert icon_links(PAGE, RELS) == ["img/fav.ico", "https://cdn.example.org/touch.png"]


def test_icon_links_broken_html():
    assert icon_links("<html><head><link rel=icon href='/a.png'><body><p>unclosed", RELS) == ["/a.png"]
    assert icon_links("", RELS) == []
    assert icon_links('<link rel="icon">', RELS) == []


def test_context():
    ctx = ResolveContext(url="https://example.com:8443/a/b?c=d", fetch=None, cfg=ResolveConfig())  # type: ignore
    assert ctx.origin == "https://example.com:8443"
    assert ctx.hostname == "example.com"


@pytest.mark.asyncio
async def test_favicon_paths_first_in_order_wins(fake_web, fetch, resolve_cfg):
    fake_web.add_image("https://example.com/apple-touch-icon.png", PNG)
    fake_web.add_image("https://example.com/favicon.png", ICO, "image/x-icon")

    icon = await favicon_paths(_ctx("https://example.com/some/page", fetch, resolve_cfg))
    assert isinstance(icon, DataUriIcon)
    assert icon.source == "favicon_paths"
    assert icon.payload == ICO
    assert icon.mime == "image/x-icon"


@pytest.mark.asyncio
async def test_favicon_paths_refuses_non_images(fake_web, fetch, resolve_cfg):
    # SPA servers answer every path with the index page
    for path in resolve_cfg.favicon_paths:
        fake_web.add(f"https://example.com{path}", 200, "<html></html>", "text/html")
    assert await favicon_paths(_ctx("https://example.com/", fetch, resolve_cfg)) is None


@pytest.mark.asyncio
async def test_html_links_resolves_relative_href(fake_web, fetch, resolve_cfg):
    fake_web.add("https://example.com/docs/index.html", 200, PAGE)
    fake_web.add_image("https://example.com/docs/img/fav.ico", ICO, "image/vnd.microsoft.icon")

    icon = await html_links(_ctx("https://example.com/docs/index.html", fetch, resolve_cfg))
    assert isinstance(icon, DataUriIcon)
    assert icon.source == "html_links"
    assert icon.payload == ICO


@pytest.mark.asyncio
async def test_html_links_tries_next_link(fake_web, fetch, resolve_cfg):
    fake_web.add("https://example.com/", 200, PAGE)
    fake_web.add_error("https://example.com/img/fav.ico")
    fake_web.add_image("https://cdn.example.org/touch.png")

    icon = await html_links(_ctx("https://example.com/", fetch, resolve_cfg))
    assert icon.payload == PNG


@pytest.mark.asyncio
async def test_html_links_inline_data_uri(fake_web, fetch, resolve_cfg):
    inline = "data:image/png;base64,iVBORw0KGgo="
    fake_web.add("https://example.com/", 200, f'<link rel="icon" href="{inline}">')
    icon = await html_links(_ctx("https://example.com/", fetch, resolve_cfg))
    assert icon.src == inline


@pytest.mark.asyncio
async def test_html_links_page_error(fake_web, fetch, resolve_cfg):
    fake_web.add("https://example.com/", 500, "oops")
    with pytest.raises(LinkhubNetworkException):
        await html_links(_ctx("https://example.com/", fetch, resolve_cfg))


@pytest.mark.asyncio
async def test_aggregator(fake_web, fetch):
    cfg = ResolveConfig(aggregator="duckduckgo", request_timeout=0.5)
    fake_web.add_image("https://icons.duckduckgo.com/ip2/example.com.ico")

    icon = await aggregator(_ctx("https://example.com/x", fetch, cfg))
    assert icon.source == "aggregator"
    assert icon.payload == PNG
    assert fake_web.urls == ["https://icons.duckduckgo.com/ip2/example.com.ico"]


@pytest.mark.asyncio
async def test_aggregator_yandex_empty_image(fake_web, fetch):
    cfg = ResolveConfig(aggregator="yandex")
    fake_web.add_image("https://favicon.yandex.net/favicon/example.com", b"\x89PNG" + b"\x00" * 10)
    assert await aggregator(_ctx("https://example.com/", fetch, cfg)) is None


@pytest.mark.asyncio
async def test_aggregator_disabled(fake_web, fetch):
    cfg = ResolveConfig(aggregator="")
    assert await aggregator(_ctx("https://example.com/", fetch, cfg)) is None
    assert fake_web.requests == []


def test_unknown_aggregator_is_refused():
    with pytest.raises(ValueError):
        ResolveConfig(aggregator="altavista")


@pytest.mark.asyncio
async def test_run_strategies_advances_on_failure():
    calls = []

    async def broken(ctx):
        calls.append("broken")
        raise httpx.ConnectError("refused")

    async def hanging(ctx):
        calls.append("hanging")
        await asyncio.sleep(30)

    async def nothing(ctx):
        calls.append("nothing")
        return None

    async def found(ctx):
        calls.append("found")
        return RemoteUrlIcon(url="https://example.com/icon.png", source="found")

    async def never(ctx):
        calls.append("never")
        return None

    ctx = ResolveContext(url="https://example.com", fetch=None, cfg=ResolveConfig())  # type: ignore
    start = time.monotonic()
    icon = await run_strategies([broken, hanging, nothing, found, never], ctx, timeout=0.2)
    assert time.monotonic() - start < 2
    assert icon.src == "https://example.com/icon.png"
    assert calls == ["broken", "hanging", "nothing", "found"]


@pytest.mark.asyncio
async def test_run_strategies_all_fail():
    async def broken(ctx):
        raise ValueError("cannot decode")

    ctx = ResolveContext(url="https://example.com", fetch=None, cfg=ResolveConfig())  # type: ignore
    assert await run_strategies([broken, broken], ctx, timeout=0.2) is None
    assert await run_strategies([], ctx, timeout=0.2) is None


@pytest.mark.asyncio
async def test_html_links_skips_private_icon_links(fake_web, fetch, resolve_cfg):
    page = (
        '<link rel="icon" href="http://192.168.1.1/admin.png">'
        '<link rel="apple-touch-icon" href="https://cdn.example.org/touch.png">'
    )
    fake_web.add("https://example.com/", 200, page)
    fake_web.add_image("http://192.168.1.1/admin.png")
    fake_web.add_image("https://cdn.example.org/touch.png")

    ctx = ResolveContext(url="https://example.com/", fetch=fetch, cfg=resolve_cfg, public_only=True)
    icon = await html_links(ctx)
    assert icon.payload == PNG
    assert "192.168.1.1" not in fake_web.hosts()


@pytest.mark.asyncio
async def test_public_only_refuses_redirect_into_private_network(fake_web, fetch, resolve_cfg):
    fake_web.add_redirect("https://example.com/favicon.ico", "http://10.0.0.1/favicon.ico")
    fake_web.add_image("http://10.0.0.1/favicon.ico")

    ctx = ResolveContext(url="https://example.com/", fetch=fetch, cfg=resolve_cfg, public_only=True)
    assert isinstance(ctx.fetch, PublicFetch)
    with pytest.raises(LinkhubNetworkException):
        await ctx.fetch.get("https://example.com/favicon.ico")
    assert await favicon_paths(ctx) is None
    assert "10.0.0.1" not in fake_web.hosts()


@pytest.mark.asyncio
async def test_public_redirects_are_followed(fake_web, fetch, resolve_cfg):
    fake_web.add_redirect("https://example.com/favicon.ico", "https://cdn.example.org/favicon.ico")
    fake_web.add_image("https://cdn.example.org/favicon.ico", ICO, "image/x-icon")

    ctx = ResolveContext(url="https://example.com/", fetch=fetch, cfg=resolve_cfg, public_only=True)
    icon = await favicon_paths(ctx)
    assert icon.payload == ICO


@pytest.mark.asyncio
async def test_capture_context_may_fetch_private_hosts(fake_web, fetch, resolve_cfg):
    fake_web.add_redirect("http://nas.local/favicon.ico", "http://192.168.1.20/favicon.ico")
    fake_web.add_image("http://192.168.1.20/favicon.ico")

    icon = await favicon_paths(_ctx("http://nas.local/", fetch, resolve_cfg))
    assert icon.payload == PNG
