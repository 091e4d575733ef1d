# SPDX-License-Identifier: AGPL-3.0-or-later
"""Utilities for the web application."""

from __future__ import annotations

import hashlib
import hmac
import pathlib

import flask
from pydantic import BaseModel

from linkhub import get_setting


class ApiResponse(BaseModel):
    """JSON envelope of the API: ``{success, data?, error?}``"""

    success: bool
    data: dict | None = None
    error: str | None = None


def api_response(data: dict | None = None, error: str | None = None, status: int = 200) -> flask.Response:
    envelope = ApiResponse(success=error is None, data=data, error=error)
    resp = flask.jsonify(envelope.model_dump(exclude_none=True))
    resp.status_code = status
    return resp


def new_hmac(secret_key: str, url: bytes) -> str:
    return hmac.new(secret_key.encode(), url, hashlib.sha256).hexdigest()


def is_hmac_of(secret_key: str, value: bytes, hmac_to_check: str) -> bool:
    h = new_hmac(secret_key, value)
    return len(h) == len(hmac_to_check) and hmac.compare_digest(h, hmac_to_check)


def client_ip(request: flask.Request) -> str:
    """The client address as seen by the application.  Proxy headers
    (``X-Real-IP`` / ``X-Forwarded-For``) take precedence over the peer address
    of the socket."""

    real_ip = request.headers.get("X-Real-IP", "").strip()
    if real_ip:
        return real_ip
    forwarded = request.headers.get("X-Forwarded-For", "")
    if forwarded.strip():
        return forwarded.split(",")[0].strip()
    return request.remote_addr or "unknown"


def get_static_path() -> pathlib.Path:
    """Folder of the static files (``ui.static_path``, default: the static
    folder of the linkhub package)."""
    static_path = get_setting("ui.static_path", "")
    if static_path:
        return pathlib.Path(static_path)
    return pathlib.Path(__file__).parent / "static"
