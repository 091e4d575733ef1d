# SPDX-License-Identifier: AGPL-3.0-or-later
"""Exception types raised by linkhub."""

from __future__ import annotations


class LinkhubException(Exception):
    """Base linkhub exception."""


class LinkhubNetworkException(LinkhubException):
    """An outgoing request did not deliver a usable answer."""


class LinkhubHTTPException(LinkhubNetworkException):
    """The remote host answered with a HTTP status that is not 2xx."""

    def __init__(self, url: str, status_code: int):
        super().__init__(f"HTTP {status_code} from {url}")
        self.url = url
        self.status_code = status_code


class ProbeTargetRejected(LinkhubException):
    """The target of a reachability probe is not in the private network
    allow-list.  This is an explicit rejection, the target has *not* been
    checked."""

    def __init__(self, target: str):
        super().__init__(f"probe target not allowed: {target!r}")
        self.target = target


class CapturedIconRejected(LinkhubException):
    """An icon captured by a client has been refused by the storage endpoint."""


class LinkNotFound(LinkhubException):
    """There is no link record with the given ID."""

    def __init__(self, link_id):
        super().__init__(f"link {link_id!r} does not exist")
        self.link_id = link_id


class FaviconConfigError(LinkhubException):
    """The favicon configuration can't be loaded."""
