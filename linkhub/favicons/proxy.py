# SPDX-License-Identifier: AGPL-3.0-or-later
"""REST API of the favicons: icon resolution for links, storage of client
captured icons, the aggregator proxy and the placeholder badge."""

from __future__ import annotations

import asyncio
import sqlite3
import urllib.parse

import flask
import httpx
from pydantic import BaseModel

from linkhub import get_setting, logger
from linkhub import links
from linkhub.exceptions import CapturedIconRejected, LinkhubNetworkException, LinkNotFound
from linkhub.network import get_network
from linkhub.webutils import api_response, get_static_path, is_hmac_of, new_hmac

from . import cache
from .capture import accept_captured_icon, validate_captured_icon
from .locality import classify, hostname_of
from .models import DataUriIcon, IconResult, LinkAddress
from .placeholder import badge_svg
from .resolve import IconResolver, ResolveConfig, select_effective_url
from .resolvers import RESOLVER_MAP, RESOLVERS
from .strategies import PublicFetch

logger = logger.getChild("favicons.proxy")

CFG: FaviconProxyConfig = None  # type: ignore
RESOLVE_CFG: ResolveConfig = None  # type: ignore

PERSISTED_SOURCES = ("favicon_paths", "html_links", "aggregator")
"""Icons found by these steps are written back to the link record.  The
network icon and the placeholder are not, a real icon may come later."""


def init(cfg: FaviconProxyConfig, resolve_cfg: ResolveConfig):
    global CFG, RESOLVE_CFG  # pylint: disable=global-statement
    CFG = cfg
    RESOLVE_CFG = resolve_cfg


class FaviconProxyConfig(BaseModel):
    """Configuration of the favicon proxy."""

    max_age: int = 60 * 60 * 24 * 7  # seven days
    """HTTP header Cache-Control_ ``max-age``

    .. _Cache-Control: https://developer.mozilla.org/en-US/docs/Web/HTTP/Headers/Cache-Control
    """

    resolver: str = "google"
    """Aggregator (:py:obj:`.resolvers.RESOLVER_MAP`) of the proxy."""


def icon_resolver() -> IconResolver:
    return IconResolver(get_network(), RESOLVE_CFG, cache.CACHE)


def _bool_arg(name: str) -> bool:
    return flask.request.args.get(name, "").lower() in ("1", "true", "yes", "on")


def address_for(url: str) -> LinkAddress:
    if classify(url).is_internal:
        return LinkAddress(internal_url=url)
    return LinkAddress(external_url=url)


def icon_data(icon: IconResult, url: str | None = None) -> dict:
    data = {"icon": icon.src, "kind": icon.kind, "source": icon.source}
    host = hostname_of(url)
    if host and not classify(url).is_internal:
        data["proxyIcon"] = favicon_url(host)
    return data


def persist_after_response(resp: flask.Response, link_id: str, icon: IconResult) -> flask.Response:
    """Write ``icon`` to the link record once the response has been sent, a
    failure is logged and does not affect the answer."""

    def persist():
        try:
            links.get_store().set_icon(link_id, icon.src)
        except (LinkNotFound, sqlite3.Error):
            logger.exception("can't persist icon of link %s", link_id)

    resp.call_on_close(persist)
    return resp


async def icon_get():
    """Icon of a link

    ::

        /api/icon?linkId=<...>&url=<...>&preferInternal=<0|1>

    ``linkId``:
      ID of the link record, a stored icon wins

    ``url``:
      URL to resolve the icon for (instead of the URLs of the link)

    ``preferInternal``:
      network preference of the client
    """
    url = flask.request.args.get("url", "").strip()
    link_id = flask.request.args.get("linkId", "").strip()
    if not url and not link_id:
        return api_response(error="linkId or url is required", status=400)

    link = None
    address = LinkAddress()
    if link_id:
        try:
            link = links.get_store().get(link_id)
        except LinkNotFound as exc:
            return api_response(error=str(exc), status=404)
        address = link.address
    if url:
        address = address_for(url)

    prefer_internal = _bool_arg("preferInternal")
    icon = await icon_resolver().resolve_icon(
        address,
        stored_icon=link.icon if link else None,
        prefer_internal=prefer_internal,
        title=link.title if link else None,
    )
    resp = api_response(data=icon_data(icon, select_effective_url(address, prefer_internal)))
    if link is not None and icon.source in PERSISTED_SOURCES:
        persist_after_response(resp, link.id, icon)
    return resp


async def icon_post():
    """Store the icon of a link: ``{linkId, iconBase64?, url?}``.  A client
    supplied icon is stored as it is, otherwise the icon is resolved on the
    server (the stored icon is ignored)."""

    body = flask.request.get_json(silent=True) or {}
    link_id = str(body.get("linkId") or "").strip()
    if not link_id:
        return api_response(error="linkId is required", status=400)

    store = links.get_store()
    try:
        link = store.get(link_id)
    except LinkNotFound as exc:
        return api_response(error=str(exc), status=404)

    icon_base64 = body.get("iconBase64")
    if icon_base64:
        try:
            icon = validate_captured_icon(icon_base64)
        except CapturedIconRejected as exc:
            return api_response(error=str(exc), status=400)
        store.set_icon(link.id, icon.src)
        return api_response(data=icon_data(icon))

    url = str(body.get("url") or "").strip()
    address = address_for(url) if url else link.address
    icon = await icon_resolver().resolve_icon(address, stored_icon=None, title=link.title)
    resp = api_response(data=icon_data(icon))
    if icon.source in PERSISTED_SOURCES:
        persist_after_response(resp, link.id, icon)
    return resp


def local_icon():
    """Storage endpoint of client captured icons of internal links:
    ``{linkId, iconBase64}``.  Nothing is fetched here."""

    body = flask.request.get_json(silent=True) or {}
    link_id = str(body.get("linkId") or "").strip()
    payload = body.get("iconBase64")
    if not link_id or not payload:
        return api_response(error="linkId and iconBase64 are required", status=400)

    try:
        icon = accept_captured_icon(links.get_store(), link_id, payload)
    except LinkNotFound as exc:
        return api_response(error=str(exc), status=404)
    except CapturedIconRejected as exc:
        return api_response(error=str(exc), status=400)
    return api_response(data={"icon": icon.src, "kind": icon.kind})


def default_icon():
    """Placeholder badge

    ::

        /api/default-icon?char=<...>&name=<...>&size=<...>

    ``char``:
      letter in the badge (default: first letter of ``name``)

    ``name``:
      text the color is derived from
    """
    char = flask.request.args.get("char", "").strip()
    name = flask.request.args.get("name", "").strip()
    try:
        size = min(max(int(flask.request.args.get("size", "32")), 16), 512)
    except ValueError:
        size = 32

    svg = badge_svg(name or char or "A", char=char or None, size=size)
    resp = flask.Response(svg, mimetype="image/svg+xml")
    resp.headers["Cache-Control"] = "public, max-age=3600"
    return resp


async def favicon_proxy():
    """REST API of the favicon proxy service, the aggregator is requested by
    the server (no CORS restrictions for the browser)

    ::

        /api/proxy-icon?authority=<...>&h=<...>

    ``authority``:
      Domain name :rfc:`3986` / see :py:obj:`favicon_url`

    ``h``:
      HMAC :rfc:`2104`, build up from the ``server.secret_key`` setting.

    """
    authority = flask.request.args.get('authority')

    # malformed request or RFC 3986 authority
    if not authority or "/" in authority:
        return '', 400

    # malformed request / does not have authorisation
    if not is_hmac_of(
        get_setting("server.secret_key"),
        authority.encode(),
        flask.request.args.get('h', ''),
    ):
        return '', 400

    resolver = CFG.resolver

    # if resolver is empty or not valid, just return HTTP 400.
    if not resolver or resolver not in RESOLVERS:
        return "", 400

    data, mime = await search_favicon(resolver, authority)

    if data is not None and mime is not None:
        resp = flask.Response(data, mimetype=mime)
        resp.headers['Cache-Control'] = f"max-age={CFG.max_age}"
        return resp

    return flask.send_from_directory(
        get_static_path() / "img",
        "empty_favicon.svg",
        mimetype="image/svg+xml",
    )


async def search_favicon(resolver: str, authority: str) -> tuple[bytes | None, str | None]:
    """Sends the request to the favicon resolver and returns a tuple for the
    favicon.  The tuple consists of ``(data, mime)``, if the resolver has not
    determined a favicon, both values are ``None``.
    """

    data, mime = (None, None)

    func = RESOLVER_MAP.get(resolver)
    if func is None:
        return data, mime

    # to avoid superfluous requests to the resolver, first look in the cache
    key = f"{resolver}:{authority}"
    icon = cache.CACHE(key)
    if isinstance(icon, DataUriIcon):
        return icon.payload, icon.mime

    try:
        data, mime = await asyncio.wait_for(
            func(PublicFetch(get_network()), authority, RESOLVE_CFG.request_timeout),
            RESOLVE_CFG.step_timeout,
        )
        if data is None or mime is None:
            data, mime = (None, None)
    except (httpx.HTTPError, LinkhubNetworkException, asyncio.TimeoutError) as exc:
        logger.debug("resolver %s failed for %s: %s", resolver, authority, exc)

    if data is not None and mime is not None:
        cache.CACHE.set(key, DataUriIcon.from_bytes(data, mime, source="aggregator"))
    return data, mime


def favicon_url(authority: str) -> str:
    """Image URL of the favicon of ``authority`` (aka netloc / :rfc:`3986`)
    from the aggregator.  If the favicon is already in the cache, the returned
    URL is a `data URL`_, otherwise a signed route to :py:obj:`favicon_proxy`.

    .. _data URL: https://developer.mozilla.org/en-US/docs/Web/HTTP/Basics_of_HTTP/Data_URLs
    """

    resolver = CFG.resolver
    # if resolver is empty or not valid, just return nothing.
    if not resolver or resolver not in RESOLVERS:
        return ""

    icon = cache.CACHE(f"{resolver}:{authority}")
    if icon is not None:
        return icon.src

    h = new_hmac(get_setting("server.secret_key"), authority.encode())
    proxy_url = flask.url_for('favicon_proxy')
    query = urllib.parse.urlencode({"authority": authority, "h": h})
    return f"{proxy_url}?{query}"
