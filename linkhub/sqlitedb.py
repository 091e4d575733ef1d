# SPDX-License-Identifier: AGPL-3.0-or-later
"""Implementations to make access to SQLite databases a little more convenient.

:py:obj:`SQLiteAppl`
  Abstract class with which DB applications can be implemented.

:py:obj:`SQLiteProperties`:
  Class to manage properties stored in a database.

----

"""

from __future__ import annotations

import abc
import sqlite3
import threading

from linkhub import logger

logger = logger.getChild("sqlitedb")


class SQLiteAppl(abc.ABC):
    """Abstract base class for implementing convenient DB access in SQLite
    applications.  In the constructor, a :py:obj:`SQLiteProperties` instance is
    already aggregated under ``self.properties``.

    Each thread gets its own connection to the database (SQLite connections
    must not be shared between threads).
    """

    DB_SCHEMA: int = 1
    """As soon as changes are made to the DB schema, the version number must be
    increased.  Changes to the version number require the DB to be recreated
    (or migrated)."""

    DDL_CREATE_TABLES: dict[str, str] = {}
    """DDL statements (``CREATE TABLE IF NOT EXISTS ...``) by table name."""

    def __init__(self, db_url):
        self.db_url = str(db_url)
        self.properties = SQLiteProperties(self)
        self._thread_local = threading.local()

    @property
    def DB(self) -> sqlite3.Connection:  # pylint: disable=invalid-name
        conn = getattr(self._thread_local, "conn", None)
        if conn is None:
            conn = sqlite3.connect(self.db_url)
            self._thread_local.conn = conn
            self.create_schema(conn)
        return conn

    def connect(self) -> sqlite3.Connection:
        """Returns the connection of the current thread.  Used as context
        manager, the transaction is committed on success and rolled back on
        failure::

            with self.connect() as conn:
                conn.execute(...)
        """
        return self.DB

    def create_schema(self, conn: sqlite3.Connection):
        with conn:
            conn.execute(SQLiteProperties.DDL_PROPERTIES)
            for table_name, ddl in self.DDL_CREATE_TABLES.items():
                logger.debug("create table %s (if not exists) in %s", table_name, self.db_url)
                conn.execute(ddl)

        schema = self.properties.get("DB_SCHEMA", conn=conn)
        if schema is None:
            self.properties.set("DB_SCHEMA", str(self.DB_SCHEMA), conn=conn)
        elif int(schema) != self.DB_SCHEMA:
            logger.error(
                "DB schema of %s is %s, application requires schema %s",
                self.db_url,
                schema,
                self.DB_SCHEMA,
            )

    def close(self):
        conn = getattr(self._thread_local, "conn", None)
        if conn is not None:
            conn.close()
            self._thread_local.conn = None


class SQLiteProperties:
    """Simple class to manage properties of a DB application in the DB.  The
    properties are stored in the table ``properties``, each property has a
    modification time ``m_time`` (unix epoch)."""

    DDL_PROPERTIES = """\
CREATE TABLE IF NOT EXISTS properties (
  name       TEXT,
  value      TEXT,
  m_time     INTEGER DEFAULT (strftime('%s', 'now')),  -- last modified (unix epoch) time in sec.
  PRIMARY KEY (name))"""

    SQL_GET = "SELECT value FROM properties WHERE name = ?"
    SQL_M_TIME = "SELECT m_time FROM properties WHERE name = ?"
    SQL_SET = (
        "INSERT INTO properties (name, value) VALUES (?, ?)"
        "    ON CONFLICT(name) DO UPDATE"
        "   SET value=excluded.value, m_time=strftime('%s', 'now')"
    )

    def __init__(self, db: SQLiteAppl):
        self.db = db

    def get(self, name: str, default=None, conn: sqlite3.Connection | None = None):
        conn = conn or self.db.DB
        res = conn.execute(self.SQL_GET, (name,)).fetchone()
        if res is None:
            return default
        return res[0]

    def set(self, name: str, value: str, conn: sqlite3.Connection | None = None):
        conn = conn or self.db.DB
        with conn:
            conn.execute(self.SQL_SET, (name, value))

    def m_time(self, name: str, default: int = 0) -> int:
        """Last modification time of the property ``name`` (unix epoch)."""
        res = self.db.DB.execute(self.SQL_M_TIME, (name,)).fetchone()
        if res is None:
            return default
        return int(res[0])
