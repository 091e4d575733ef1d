# SPDX-License-Identifier: AGPL-3.0-or-later
"""Storage of the link records.

Only what the icon endpoints need: read a link and write its icon.  The
``url`` of a link is its address in the private network (or its only
address), ``external_url`` the address from the internet.
"""

from __future__ import annotations

import uuid

from pydantic import BaseModel

from linkhub import logger
from linkhub import sqlitedb
from linkhub.exceptions import LinkNotFound
from linkhub.favicons.models import LinkAddress

logger = logger.getChild("links")

STORE: "LinkStore"


def init(db_url):
    """Initialization of the global ``STORE``"""

    global STORE  # pylint: disable=global-statement
    STORE = LinkStore(db_url)


def get_store() -> "LinkStore":
    return STORE


class Link(BaseModel):
    id: str
    title: str
    url: str = ""
    external_url: str | None = None
    description: str | None = None
    icon: str | None = None
    is_internal_only: bool = False
    is_public: bool = True

    @property
    def address(self) -> LinkAddress:
        return LinkAddress(internal_url=self.url or None, external_url=self.external_url or None)


class LinkStore(sqlitedb.SQLiteAppl):
    """Link records in a SQLite DB."""

    DB_SCHEMA = 1

    DDL_LINKS = """\
CREATE TABLE IF NOT EXISTS links (
  id                TEXT,
  title             TEXT NOT NULL,
  url               TEXT NOT NULL DEFAULT '',
  external_url      TEXT,
  description       TEXT,
  icon              TEXT,
  is_internal_only  INTEGER NOT NULL DEFAULT 0,
  is_public         INTEGER NOT NULL DEFAULT 1,
  m_time            INTEGER DEFAULT (strftime('%s', 'now')),
  PRIMARY KEY (id))"""

    DDL_CREATE_TABLES = {"links": DDL_LINKS}

    COLUMNS = ("id", "title", "url", "external_url", "description", "icon", "is_internal_only", "is_public")

    def add(self, title: str, url: str = "", link_id: str | None = None, **kwargs) -> Link:
        link = Link(id=link_id or uuid.uuid4().hex, title=title, url=url, **kwargs)
        values = link.model_dump(include=set(self.COLUMNS))
        with self.connect() as conn:
            conn.execute(
                f"INSERT INTO links ({', '.join(self.COLUMNS)}) VALUES ({', '.join('?' * len(self.COLUMNS))})",
                tuple(values[col] for col in self.COLUMNS),
            )
        return link

    def get(self, link_id: str) -> Link:
        row = self.DB.execute(
            f"SELECT {', '.join(self.COLUMNS)} FROM links WHERE id = ?",
            (link_id,),
        ).fetchone()
        if row is None:
            raise LinkNotFound(link_id)
        return Link(**dict(zip(self.COLUMNS, row)))

    def all(self) -> list[Link]:
        rows = self.DB.execute(f"SELECT {', '.join(self.COLUMNS)} FROM links ORDER BY title").fetchall()
        return [Link(**dict(zip(self.COLUMNS, row))) for row in rows]

    def set_icon(self, link_id: str, icon: str | None):
        with self.connect() as conn:
            res = conn.execute(
                "UPDATE links SET icon = ?, m_time = strftime('%s', 'now') WHERE id = ?",
                (icon, link_id),
            )
        if res.rowcount == 0:
            raise LinkNotFound(link_id)
        logger.debug("icon of link %s updated", link_id)
