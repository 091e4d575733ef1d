# SPDX-License-Identifier: AGPL-3.0-or-later
"""Icons of links into a private network are captured by a client that is in
this network (the server might not be).  The client hands the icon as ``data:``
URI to the storage endpoint ``/api/local-icon``; the server does not fetch
anything, it only validates and stores the icon.

:py:obj:`ClientSideCapture`
  Protocol of the capture capability, it runs where the client runs.

:py:obj:`StrategyCapture`
  A capture implementation based on the remote strategies, used by the
  command line (``python -m linkhub.favicons capture``).

:py:obj:`accept_captured_icon`
  The server side half: validation and storage.
"""

from __future__ import annotations

import re
import urllib.parse
from typing import Protocol

from linkhub import logger
from linkhub.exceptions import CapturedIconRejected
from linkhub.network import Network, ServerSideFetch

from .locality import classify
from .models import DataUriIcon
from .strategies import ResolveConfig, ResolveContext, favicon_paths, html_links, run_strategies

logger = logger.getChild("favicons.capture")

IMAGE_DATA_URI = re.compile(r"^data:image/[a-z0-9.+-]+;base64,", re.IGNORECASE)
MAX_CAPTURED_BYTES = 1024 * 512


class ClientSideCapture(Protocol):
    """Capability to capture the icon of a URL from inside the private
    network, returns a ``data:`` URI or ``None``."""

    async def capture(self, url: str) -> str | None: ...


class StrategyCapture:
    """Capture an icon by the well known favicon paths and the ``<link>`` tags
    of the page.  ``fetch`` must run inside the private network of ``url``."""

    def __init__(self, fetch: ServerSideFetch, cfg: ResolveConfig | None = None):
        self.fetch = fetch
        self.cfg = cfg or ResolveConfig()

    async def capture(self, url: str) -> str | None:
        ctx = ResolveContext(url=url, fetch=self.fetch, cfg=self.cfg)
        icon = await run_strategies([favicon_paths, html_links], ctx, self.cfg.step_timeout)
        if isinstance(icon, DataUriIcon):
            return icon.src
        return None


async def submit_captured_icon(network: Network, server: str, link_id: str, icon: str) -> bool:
    """Hand a captured icon to the ``/api/local-icon`` endpoint of the linkhub
    instance at ``server``."""

    url = urllib.parse.urljoin(server, "/api/local-icon")
    response = await network.request("POST", url, json={"linkId": link_id, "iconBase64": icon})
    if not response.is_success:
        logger.error("%s refused the icon of link %s: HTTP %s", url, link_id, response.status_code)
        return False
    return True


def validate_captured_icon(payload) -> DataUriIcon:
    """The payload must be a base64 encoded ``data:image/...`` URI."""

    if not isinstance(payload, str) or not IMAGE_DATA_URI.match(payload):
        raise CapturedIconRejected("icon is not an image data URI")
    icon = DataUriIcon(uri=payload, source="capture")
    try:
        data = icon.payload
    except ValueError as exc:
        raise CapturedIconRejected(f"icon can't be decoded: {exc}") from exc
    if not data:
        raise CapturedIconRejected("icon is empty")
    if len(data) > MAX_CAPTURED_BYTES:
        raise CapturedIconRejected(f"icon is too large ({len(data)} bytes)")
    return icon


def is_internal_link(link) -> bool:
    return bool(link.is_internal_only) or classify(link.url).is_internal


def accept_captured_icon(store, link_id: str, payload) -> DataUriIcon:
    """Validate and store the icon of link ``link_id`` captured by a client.
    Raises :py:obj:`linkhub.exceptions.LinkNotFound` or
    :py:obj:`CapturedIconRejected`."""

    link = store.get(link_id)
    if not is_internal_link(link):
        raise CapturedIconRejected("captured icons are accepted for internal links only")
    icon = validate_captured_icon(payload)
    store.set_icon(link_id, icon.src)
    logger.debug("stored captured icon of link %s (%s)", link_id, icon.mime)
    return icon
