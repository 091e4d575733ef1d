"""
tests/conftest.py
"""
from __future__ import annotations

import asyncio
from pathlib import Path
from typing import Generator

import httpx
import pytest
from flask import Flask
from flask.testing import FlaskClient

from linkhub import network, settings
from linkhub.favicons.strategies import ResolveConfig
from linkhub.network import Network

PNG = b"\x89PNG\r\n\x1a\n" + b"\x00" * 24
ICO = b"\x00\x00\x01\x00" + b"\x10" * 24


class FakeWeb:
    """The outside world: answers by URL (query string ignored unless the full
    URL is registered) and a record of every request.  Unknown URLs get a 404.
    """

    def __init__(self) -> None:
        self.routes: dict[str, tuple] = {}
        self.requests: list[httpx.Request] = []

    def add(self, url: str, status: int = 200, content: bytes | str = b"", content_type: str = "text/html"):
        self.routes[url] = ("response", status, content, content_type)

    def add_image(self, url: str, content: bytes = PNG, content_type: str = "image/png"):
        self.add(url, 200, content, content_type)

    def add_redirect(self, url: str, location: str, status: int = 302):
        self.routes[url] = ("redirect", status, location)

    def add_error(self, url: str, exc_class: type[httpx.HTTPError] = httpx.ConnectError):
        self.routes[url] = ("error", exc_class)

    def add_hang(self, url: str, seconds: float = 30.0):
        self.routes[url] = ("hang", seconds)

    def hang_everything(self, seconds: float = 30.0):
        self.routes["*"] = ("hang", seconds)

    @property
    def urls(self) -> list[str]:
        return [str(r.url) for r in self.requests]

    def hosts(self) -> set[str]:
        return {r.url.host for r in self.requests}

    async def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        full = str(request.url)
        route = self.routes.get(full) or self.routes.get(full.split("?", 1)[0]) or self.routes.get("*")
        if route is None:
            return httpx.Response(404, content=b"not found")

        kind = route[0]
        if kind == "error":
            raise route[1]("fake network error", request=request)
        if kind == "redirect":
            return httpx.Response(route[1], headers={"Location": route[2]})
        if kind == "hang":
            await asyncio.sleep(route[1])
            return httpx.Response(504)

        _, status, content, content_type = route
        if isinstance(content, str):
            content = content.encode("utf-8")
        return httpx.Response(status, headers={"Content-Type": content_type}, content=content)


@pytest.fixture
def fake_web() -> FakeWeb:
    return FakeWeb()


@pytest.fixture
def fetch(fake_web: FakeWeb) -> Network:
    """A :py:obj:`Network` that never leaves the test process."""
    return Network(timeout=1.0, useragent="linkhub-tests", transport=httpx.MockTransport(fake_web.handler))


@pytest.fixture
def resolve_cfg() -> ResolveConfig:
    return ResolveConfig(step_timeout=0.5, request_timeout=0.5)


@pytest.fixture
def app(tmp_path: Path, fake_web: FakeWeb, monkeypatch: pytest.MonkeyPatch) -> Generator[Flask, None, None]:
    """Application with a fresh link DB and the fake outside world."""
    from linkhub import links
    from linkhub.webapp import create_app

    monkeypatch.setitem(settings["links"], "db_url", str(tmp_path / "links.db"))
    flask_app = create_app()
    flask_app.config.update(TESTING=True)
    network.init(transport=httpx.MockTransport(fake_web.handler))

    yield flask_app

    links.get_store().close()
    network.init()


@pytest.fixture
def client(app: Flask) -> Generator[FlaskClient, None, None]:
    with app.test_client() as test_client:
        yield test_client


@pytest.fixture
def store(app: Flask):
    from linkhub import links

    return links.get_store()
