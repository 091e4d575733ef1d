"""
tests/unit/test_cache.py
"""
from __future__ import annotations

import pytest

from linkhub.favicons import cache
from linkhub.favicons.cache import (
    FaviconCacheConfig,
    FaviconCacheMEM,
    FaviconCacheNull,
    FaviconCacheSQLite,
    new_cache,
)
from linkhub.favicons.models import DataUriIcon, RemoteUrlIcon, StaticPathIcon

from ..conftest import PNG


@pytest.fixture
def sqlite_cache(tmp_path):
    db = FaviconCacheSQLite(FaviconCacheConfig(db_type="sqlite", db_url=tmp_path / "icons.db"))
    yield db
    db.close()


def test_new_cache():
    assert isinstance(new_cache(FaviconCacheConfig(db_type="mem")), FaviconCacheMEM)
    assert isinstance(new_cache(FaviconCacheConfig(db_type="null")), FaviconCacheNull)


def test_init_sets_global_cache():
    cache.init(FaviconCacheConfig(db_type="null"))
    assert isinstance(cache.CACHE, FaviconCacheNull)


def test_null_cache():
    c = FaviconCacheNull(FaviconCacheConfig(db_type="null"))
    assert c.set("https://example.com", RemoteUrlIcon(url="https://example.com/a.png")) is False
    assert c("https://example.com") is None


def test_mem_cache():
    c = FaviconCacheMEM(FaviconCacheConfig(db_type="mem"))
    icon = DataUriIcon.from_bytes(PNG, "image/png", source="favicon_paths")

    assert c("https://example.com") is None
    assert c.set("https://example.com", icon) is True
    assert c("https://example.com") == icon
    assert c("https://example.org") is None


def test_mem_cache_refuses_big_icons():
    c = FaviconCacheMEM(FaviconCacheConfig(db_type="mem", BLOB_MAX_BYTES=100))
    icon = DataUriIcon.from_bytes(b"x" * 200, "image/png")
    assert c.set("https://example.com", icon) is False
    assert c("https://example.com") is None


def test_mem_cache_entry_limit():
    c = FaviconCacheMEM(FaviconCacheConfig(db_type="mem", LIMIT_ENTRIES=100))
    for i in range(2000):
        assert c.set(f"https://example{i}.com", RemoteUrlIcon(url=f"https://cdn.example/{i}.png")) is True

    assert len(c) == 100
    assert c("https://example0.com") is None
    assert c("https://example1999.com").src == "https://cdn.example/1999.png"


def test_mem_cache_byte_limit():
    c = FaviconCacheMEM(FaviconCacheConfig(db_type="mem", LIMIT_TOTAL_BYTES=100))
    for i in range(5):
        c.set(f"https://example{i}.com", RemoteUrlIcon(url=f"https://cdn.example/{i}/" + "x" * 40))

    assert c._bytes <= 100  # pylint: disable=protected-access
    assert c("https://example4.com") is not None
    assert c("https://example0.com") is None


def test_mem_cache_shared_icon_survives_eviction_of_one_url():
    c = FaviconCacheMEM(FaviconCacheConfig(db_type="mem", LIMIT_ENTRIES=2))
    shared = RemoteUrlIcon(url="https://cdn.example/shared.png")
    c.set("https://a.example", shared)
    c.set("https://b.example", shared)
    c.set("https://c.example", RemoteUrlIcon(url="https://cdn.example/c.png"))

    assert c("https://a.example") is None
    assert c("https://b.example") == shared
    assert len(c) == 2


def test_sqlite_cache(sqlite_cache):
    icon = DataUriIcon.from_bytes(PNG, "image/png", source="html_links")
    assert sqlite_cache("https://example.com") is None

    assert sqlite_cache.set("https://example.com", icon) is True
    assert sqlite_cache.set("https://www.example.com", icon) is True
    cached = sqlite_cache("https://example.com")
    assert cached.src == icon.src
    assert cached.kind == "dataUri"
    assert cached.source == "html_links"

    # same icon is stored once
    count = sqlite_cache.DB.execute("SELECT COUNT(*) FROM icons").fetchone()[0]
    assert count == 1


def test_sqlite_cache_kinds(sqlite_cache):
    sqlite_cache.set("https://a.example", RemoteUrlIcon(url="https://cdn.example/a.png"))
    sqlite_cache.set("https://b.example", StaticPathIcon(path="/static/b.svg"))
    assert sqlite_cache("https://a.example").kind == "remoteUrl"
    assert sqlite_cache("https://b.example").kind == "staticPath"


def test_sqlite_cache_overwrite(sqlite_cache):
    sqlite_cache.set("https://example.com", RemoteUrlIcon(url="https://cdn.example/old.png"))
    sqlite_cache.set("https://example.com", RemoteUrlIcon(url="https://cdn.example/new.png"))
    assert sqlite_cache("https://example.com").src == "https://cdn.example/new.png"


def test_sqlite_cache_maintenance_limits_total_bytes(tmp_path):
    cfg = FaviconCacheConfig(
        db_type="sqlite",
        db_url=tmp_path / "icons.db",
        LIMIT_TOTAL_BYTES=100,
        MAINTENANCE_MODE="off",
    )
    c = FaviconCacheSQLite(cfg)
    for i in range(5):
        c.set(f"https://example{i}.com", RemoteUrlIcon(url=f"https://cdn.example/{i}/" + "x" * 40))

    c.maintenance(force=True)
    total = c.DB.execute("SELECT SUM(bytes_c) FROM icons").fetchone()[0]
    assert total <= 100
    assert c.DB.execute("SELECT COUNT(*) FROM icon_map").fetchone()[0] < 5
    c.close()
