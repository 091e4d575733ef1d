# SPDX-License-Identifier: AGPL-3.0-or-later
"""Data types of the favicon subsystem.

:py:obj:`LinkAddress`
  The two addresses of a link, one of them may be missing.

:py:obj:`IconResult`
  What is rendered for a link, one of :py:obj:`DataUriIcon`,
  :py:obj:`StaticPathIcon` or :py:obj:`RemoteUrlIcon`.

:py:obj:`LocalityVerdict` / :py:obj:`ReachabilityVerdict`
  Derived values, computed per request and never persisted.
"""

from __future__ import annotations

import base64
import binascii
import datetime
import enum
from typing import Annotated, Literal, Union

from pydantic import BaseModel, Field


class LinkAddress(BaseModel):
    internal_url: str | None = None
    external_url: str | None = None


class DataUriIcon(BaseModel):
    """Icon embedded in a ``data:`` URI."""

    kind: Literal["dataUri"] = "dataUri"
    uri: str
    source: str = ""

    @classmethod
    def from_bytes(cls, data: bytes, mime: str, source: str = "") -> "DataUriIcon":
        return cls(uri=f"data:{mime};base64,{str(base64.b64encode(data), 'utf-8')}", source=source)

    @property
    def src(self) -> str:
        return self.uri

    @property
    def mime(self) -> str:
        head = self.uri[5:].split(",", 1)[0]
        return head.split(";", 1)[0] or "text/plain"

    @property
    def is_base64(self) -> bool:
        head = self.uri.split(",", 1)[0]
        return head.endswith(";base64")

    @property
    def payload(self) -> bytes:
        """Decoded data of the URI, raises :py:obj:`ValueError` if the payload
        can't be decoded."""
        if "," not in self.uri:
            raise ValueError("data URI without payload")
        data = self.uri.split(",", 1)[1]
        if not self.is_base64:
            return data.encode()
        try:
            return base64.b64decode(data, validate=True)
        except binascii.Error as exc:
            raise ValueError(f"invalid base64 payload: {exc}") from exc


class StaticPathIcon(BaseModel):
    """Icon served from the static files of the application."""

    kind: Literal["staticPath"] = "staticPath"
    path: str
    source: str = ""

    @property
    def src(self) -> str:
        return self.path


class RemoteUrlIcon(BaseModel):
    """Icon the browser loads from a remote host."""

    kind: Literal["remoteUrl"] = "remoteUrl"
    url: str
    source: str = ""

    @property
    def src(self) -> str:
        return self.url


IconResult = Annotated[Union[DataUriIcon, StaticPathIcon, RemoteUrlIcon], Field(discriminator="kind")]


def icon_from_src(src: str, source: str = "") -> DataUriIcon | StaticPathIcon | RemoteUrlIcon:
    """Build the :py:obj:`IconResult` from its string form (e.g. an icon stored
    in a link record).  The string is kept verbatim."""

    if src.startswith("data:"):
        return DataUriIcon(uri=src, source=source)
    if src.startswith("/"):
        return StaticPathIcon(path=src, source=source)
    return RemoteUrlIcon(url=src, source=source)


class Locality(str, enum.Enum):
    INTERNAL = "internal"
    EXTERNAL = "external"


class LocalityBasis(str, enum.Enum):
    HOSTNAME = "hostname"
    """Verdict derived from the host name of a URL (rule table)."""
    PROBE = "probe"
    """Verdict derived from a network round trip."""


class LocalityVerdict(BaseModel):
    locality: Locality
    basis: LocalityBasis = LocalityBasis.HOSTNAME

    @property
    def is_internal(self) -> bool:
        return self.locality is Locality.INTERNAL


class Reachability(str, enum.Enum):
    REACHABLE = "reachable"
    UNREACHABLE = "unreachable"
    UNKNOWN = "unknown"


def utc_now() -> datetime.datetime:
    return datetime.datetime.now(datetime.timezone.utc)


class ReachabilityVerdict(BaseModel):
    status: Reachability = Reachability.UNKNOWN
    checked_at: datetime.datetime = Field(default_factory=utc_now)
    max_age: int = 10
    """Seconds the verdict is meaningful, it is used for UI hints only."""
    status_code: int | None = None

    @property
    def expired(self) -> bool:
        return (utc_now() - self.checked_at).total_seconds() > self.max_age

    @property
    def may_be_unreachable(self) -> bool:
        return self.status is Reachability.UNREACHABLE
