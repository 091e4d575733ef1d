# SPDX-License-Identifier: AGPL-3.0-or-later
"""Implementations for caching resolved icons, keyed by the URL the icon has
been resolved for.

:py:obj:`FaviconCacheConfig`:
  Configuration of the favicon cache

:py:obj:`FaviconCache`:
  Abstract base class for the implementation of a favicon cache.

:py:obj:`FaviconCacheMEM`:
  Per process memoization of resolved icons (default), bounded by
  ``LIMIT_ENTRIES`` and ``LIMIT_TOTAL_BYTES``.

:py:obj:`FaviconCacheSQLite`:
  Favicon cache that manages the icons in a SQLite DB.

:py:obj:`FaviconCacheNull`:
  Caches nothing.

Concurrent resolutions of the same URL may both miss the cache and both store
their result, the second write wins.  Both results are equivalent.

----

"""

from __future__ import annotations
from typing import Literal

import abc
import hashlib
import pathlib
import sqlite3
import tempfile
import threading
import time
from pydantic import BaseModel

from linkhub import sqlitedb
from linkhub import logger

from .models import IconResult, icon_from_src

CACHE: "FaviconCache"
logger = logger.getChild('favicons.cache')


def init(cfg: "FaviconCacheConfig"):
    """Initialization of a global ``CACHE``"""

    global CACHE  # pylint: disable=global-statement
    CACHE = new_cache(cfg)


def new_cache(cfg: "FaviconCacheConfig") -> "FaviconCache":
    if cfg.db_type == "sqlite":
        if sqlite3.sqlite_version_info <= (3, 35):
            logger.critical(
                "Disable favicon caching completely: SQLite library (%s) is too old! (require >= 3.35)",
                sqlite3.sqlite_version,
            )
            return FaviconCacheNull(cfg)
        return FaviconCacheSQLite(cfg)
    if cfg.db_type == "mem":
        return FaviconCacheMEM(cfg)
    if cfg.db_type == "null":
        return FaviconCacheNull(cfg)
    raise NotImplementedError(f"favicons db_type '{cfg.db_type}' is unknown")


class FaviconCacheConfig(BaseModel):
    """Configuration of the favicon cache."""

    db_type: Literal["sqlite", "mem", "null"] = "mem"
    """Type of the database:

    ``mem``:
      :py:obj:`.cache.FaviconCacheMEM` (lifetime of the process)

    ``sqlite``:
      :py:obj:`.cache.FaviconCacheSQLite`

    ``null``:
      :py:obj:`.cache.FaviconCacheNull` (no caching)
    """

    db_url: pathlib.Path = pathlib.Path(tempfile.gettempdir()) / "linkhub-faviconcache.db"
    """URL of the SQLite DB, the path to the database file."""

    HOLD_TIME: int = 60 * 60 * 24 * 30  # 30 days
    """Hold time (default in sec.), after which an icon is removed from the
    SQLite cache."""

    LIMIT_TOTAL_BYTES: int = 1024 * 1024 * 50  # 50 MB
    """Maximum of bytes stored in the cache of all icons.  The SQLite cache
    enforces the limit at each maintenance interval, the memory cache on each
    write.  The oldest icons are deleted."""

    LIMIT_ENTRIES: int = 10000
    """Maximum number of URLs held by the memory cache, the oldest entries are
    deleted."""

    BLOB_MAX_BYTES: int = 1024 * 64  # 64 KB
    """The maximum size of an icon (the length of its ``src``) so that it can
    be saved in the cache."""

    MAINTENANCE_PERIOD: int = 60 * 60
    """Maintenance period in seconds / when :py:obj:`MAINTENANCE_MODE` is set to
    ``auto``."""

    MAINTENANCE_MODE: Literal["auto", "off"] = "auto"
    """Type of maintenance mode

    ``auto``:
      Maintenance is carried out automatically as part of the maintenance
      intervals (:py:obj:`MAINTENANCE_PERIOD`); no external process is required.

    ``off``:
      Maintenance is switched off and must be carried out by an external process
      if required.
    """


class FaviconCache(abc.ABC):
    """Abstract base class for the implementation of a favicon cache."""

    @abc.abstractmethod
    def __init__(self, cfg: FaviconCacheConfig):
        """An instance of the favicon cache is build up from the configuration."""

    @abc.abstractmethod
    def __call__(self, url: str) -> IconResult | None:
        """Returns ``None`` or the icon that has been registered in the cache
        for ``url``."""

    @abc.abstractmethod
    def set(self, url: str, icon: IconResult) -> bool:
        """Register ``icon`` for ``url`` in the cache, returns ``False`` if the
        icon has not been cached."""

    def too_big(self, url: str, icon: IconResult) -> bool:
        bytes_c = len(icon.src)
        if bytes_c > self.cfg.BLOB_MAX_BYTES:  # type: ignore
            logger.info("icon of %s to big to cache (bytes: %s)", url, bytes_c)
            return True
        return False


class FaviconCacheNull(FaviconCache):
    """A dummy favicon cache that caches nothing / a fallback solution if the
    SQLite library is too old."""

    def __init__(self, cfg: FaviconCacheConfig):
        self.cfg = cfg

    def __call__(self, url: str) -> IconResult | None:
        return None

    def set(self, url: str, icon: IconResult) -> bool:
        return False


class FaviconCacheSQLite(sqlitedb.SQLiteAppl, FaviconCache):
    """Favicon cache that manages the icons in a SQLite DB.  Icons are stored
    once by their sha256 hash values, a map table links the URLs to them.

    The following configurations are required / supported:

    - :py:obj:`FaviconCacheConfig.db_url`
    - :py:obj:`FaviconCacheConfig.HOLD_TIME`
    - :py:obj:`FaviconCacheConfig.LIMIT_TOTAL_BYTES`
    - :py:obj:`FaviconCacheConfig.BLOB_MAX_BYTES`
    - :py:obj:`MAINTENANCE_PERIOD`
    - :py:obj:`MAINTENANCE_MODE`
    """

    DB_SCHEMA = 1

    DDL_ICONS = """\
CREATE TABLE IF NOT EXISTS icons (
  sha256     TEXT,
  bytes_c    INTEGER,
  kind       TEXT NOT NULL,
  src        TEXT NOT NULL,
  source     TEXT,
  PRIMARY KEY (sha256))"""

    """Table to store icons by the sha256 hash values of their ``src``."""

    DDL_ICON_MAP = """\
CREATE TABLE IF NOT EXISTS icon_map (
    m_time     INTEGER DEFAULT (strftime('%s', 'now')),  -- last modified (unix epoch) time in sec.
    sha256     TEXT,
    url        TEXT,
    PRIMARY KEY (url))"""

    """Table to map from URL to sha256 hash values."""

    DDL_CREATE_TABLES = {
        "icons": DDL_ICONS,
        "icon_map": DDL_ICON_MAP,
    }

    SQL_DROP_LEFTOVER_ICONS = (
        "DELETE FROM icons WHERE sha256 IN ("
        " SELECT i.sha256"
        "   FROM icons i"
        "   LEFT JOIN icon_map im"
        "     ON i.sha256 = im.sha256"
        "  WHERE im.sha256 IS NULL)"
    )
    """Delete icons.sha256 no longer in icon_map.sha256."""

    SQL_ITER_ICONS_SHA256_BYTES_C = (
        "SELECT i.sha256, i.bytes_c FROM icons i"
        "  JOIN icon_map im "
        "    ON i.sha256 = im.sha256"
        " ORDER BY im.m_time ASC"
    )

    SQL_INSERT_ICONS = (
        "INSERT INTO icons (sha256, bytes_c, kind, src, source) VALUES (?, ?, ?, ?, ?)"
        "    ON CONFLICT (sha256) DO NOTHING"
    )  # fmt: skip

    SQL_INSERT_ICON_MAP = (
        "INSERT INTO icon_map (sha256, url) VALUES (?, ?)"
        "    ON CONFLICT DO UPDATE "
        "   SET sha256=excluded.sha256, m_time=strftime('%s', 'now')"
    )

    def __init__(self, cfg: FaviconCacheConfig):
        """An instance of the favicon cache is build up from the configuration."""

        if str(cfg.db_url) == ":memory:":
            logger.critical("don't use SQLite DB in :memory: in production!!")
        super().__init__(cfg.db_url)
        self.cfg = cfg

    def __call__(self, url: str) -> IconResult | None:

        sql = (
            "SELECT i.src, i.source FROM icon_map im"
            "  JOIN icons i ON i.sha256 = im.sha256"
            " WHERE im.url = ?"
            f"  AND cast(im.m_time as integer) >= cast(strftime('%s', 'now') as integer) - {int(self.cfg.HOLD_TIME)}"
        )
        res = self.DB.execute(sql, (url,)).fetchone()
        if res is None:
            return None
        src, source = res
        return icon_from_src(src, source=source or "")

    def set(self, url: str, icon: IconResult) -> bool:

        if self.cfg.MAINTENANCE_MODE == "auto" and int(time.time()) > self.next_maintenance_time:
            self.maintenance()

        if self.too_big(url, icon):
            return False

        src = icon.src
        sha256 = hashlib.sha256(src.encode()).hexdigest()
        with self.connect() as conn:
            conn.execute(self.SQL_INSERT_ICONS, (sha256, len(src), icon.kind, src, icon.source))
            conn.execute(self.SQL_INSERT_ICON_MAP, (sha256, url))
        return True

    @property
    def next_maintenance_time(self) -> int:
        """Returns (unix epoch) time of the next maintenance."""

        return self.cfg.MAINTENANCE_PERIOD + self.properties.m_time("LAST_MAINTENANCE")

    def maintenance(self, force=False):

        # Prevent parallel DB maintenance cycles from other DB connections
        # (e.g. in multi thread or process environments).

        if not force and int(time.time()) < self.next_maintenance_time:
            logger.debug("no maintenance required yet, next maintenance interval is in the future")
            return
        self.properties.set("LAST_MAINTENANCE", "")

        with self.connect() as conn:

            # drop items not in HOLD time
            res = conn.execute(
                "DELETE FROM icon_map"
                " WHERE cast(m_time as integer) < cast(strftime('%s', 'now') as integer) - ?",
                (int(self.cfg.HOLD_TIME),),
            )
            logger.debug("dropped %s obsolete icon_map items from db", res.rowcount)
            res = conn.execute(self.SQL_DROP_LEFTOVER_ICONS)
            logger.debug("dropped %s obsolete icons from db", res.rowcount)

            # drop old items to be in LIMIT_TOTAL_BYTES
            total_bytes = conn.execute("SELECT SUM(bytes_c) FROM icons").fetchone()[0] or 0
            if total_bytes > self.cfg.LIMIT_TOTAL_BYTES:

                x = total_bytes - self.cfg.LIMIT_TOTAL_BYTES
                c = 0
                sha_list = []
                for sha256, bytes_c in conn.execute(self.SQL_ITER_ICONS_SHA256_BYTES_C).fetchall():
                    sha_list.append(sha256)
                    c += bytes_c
                    if c > x:
                        break
                if sha_list:
                    marks = ",".join("?" * len(sha_list))
                    conn.execute(f"DELETE FROM icons WHERE sha256 IN ({marks})", sha_list)
                    conn.execute(f"DELETE FROM icon_map WHERE sha256 IN ({marks})", sha_list)
                    logger.debug("dropped %s icons with total size of %s bytes", len(sha_list), c)


class FaviconCacheMEM(FaviconCache):
    """Favicon cache in process' memory.  Icons are stored once by the sha256
    of their ``src``.  When ``LIMIT_ENTRIES`` or ``LIMIT_TOTAL_BYTES`` is
    exceeded, the oldest URLs are dropped (an icon is dropped together with
    the last URL that refers to it)."""

    def __init__(self, cfg: FaviconCacheConfig):

        self.cfg = cfg
        self._data: dict[str, IconResult] = {}
        self._refs: dict[str, int] = {}
        self._url_sha: dict[str, str] = {}  # insertion order: oldest first
        self._bytes = 0
        self._lock = threading.Lock()

    def __call__(self, url: str) -> IconResult | None:

        with self._lock:
            sha = self._url_sha.get(url)
            if sha is None:
                return None
            return self._data.get(sha)

    def set(self, url: str, icon: IconResult) -> bool:

        if self.too_big(url, icon):
            return False
        digest = hashlib.sha256(icon.src.encode()).hexdigest()

        with self._lock:
            self._drop(url)
            if digest not in self._data:
                self._data[digest] = icon
                self._bytes += len(icon.src)
            self._refs[digest] = self._refs.get(digest, 0) + 1
            self._url_sha[url] = digest

            while self._url_sha and (
                len(self._url_sha) > self.cfg.LIMIT_ENTRIES or self._bytes > self.cfg.LIMIT_TOTAL_BYTES
            ):
                self._drop(next(iter(self._url_sha)))
            return url in self._url_sha

    def _drop(self, url: str):
        digest = self._url_sha.pop(url, None)
        if digest is None:
            return
        self._refs[digest] -= 1
        if not self._refs[digest]:
            del self._refs[digest]
            self._bytes -= len(self._data.pop(digest).src)

    def __len__(self) -> int:
        return len(self._url_sha)
