"""
Engine-specific pieces of bounded execution.

Each supported SQLAlchemy backend knows how to switch the active
catalog, how to put a deadline on the command it is about to run, and
how to recognise the error the driver raises when that deadline passes.
"""

from __future__ import annotations

import logging
import threading
import time
from contextlib import contextmanager
from typing import Dict, Iterator, Optional
from urllib.parse import quote

from sqlalchemy.engine import URL, Connection
from sqlalchemy.exc import DBAPIError

from ..errors import EngineError

logger = logging.getLogger(__name__)


def _driver_error_code(exc: DBAPIError) -> object:
    args = getattr(exc.orig, "args", ()) or ()
    return args[0] if args else None


class DialectSupport:
    """Fallback for backends without special handling."""

    name = "default"

    # whether the engine reads backslash as an escape inside '...'
    backslash_escapes = False

    def connect_url(self, url: URL, catalog: Optional[str]) -> URL:
        """URL to connect with. Backends that cannot switch catalogs in-session reconnect."""
        return url.set(database=catalog) if catalog else url

    def switch_catalog(self, connection: Connection, catalog: str) -> None:
        """Switch an open connection to ``catalog``; no-op when connect_url already did."""

    @contextmanager
    def deadline(
        self,
        connection: Connection,
        seconds: int,
        cancel_event: Optional[threading.Event] = None,
    ) -> Iterator[None]:
        logger.warning(
            "No command deadline support for dialect '%s'; query runs without a timeout",
            connection.dialect.name,
        )
        yield

    def is_timeout(self, exc: DBAPIError) -> bool:
        return False


class SQLiteSupport(DialectSupport):
    name = "sqlite"

    # VM instructions between progress callbacks
    PROGRESS_STEPS = 1000

    def connect_url(self, url: URL, catalog: Optional[str]) -> URL:
        if catalog:
            raise EngineError("Catalog switching is not supported for SQLite profiles.")
        return self.read_only_url(url)

    @staticmethod
    def read_only_url(url: URL) -> URL:
        """
        Open file databases with ``mode=ro`` so a missing file is an error
        instead of a newly created empty database.

        In-memory databases and URLs that already use ``uri=true`` are
        left alone.
        """
        database = url.database
        if not database or database == ":memory:" or "uri" in url.query:
            return url
        return url.set(database=f"file:{quote(database)}").update_query_dict(
            {"mode": "ro", "uri": "true"}
        )

    @contextmanager
    def deadline(self, connection, seconds, cancel_event=None):
        expires = time.monotonic() + seconds

        def interrupt() -> int:
            if cancel_event is not None and cancel_event.is_set():
                return 1
            return 1 if time.monotonic() >= expires else 0

        raw = connection.connection.driver_connection
        raw.set_progress_handler(interrupt, self.PROGRESS_STEPS)
        try:
            yield
        finally:
            raw.set_progress_handler(None, 0)

    def is_timeout(self, exc: DBAPIError) -> bool:
        return "interrupted" in str(exc.orig).lower()


class PostgreSQLSupport(DialectSupport):
    name = "postgresql"

    QUERY_CANCELED = "57014"

    @contextmanager
    def deadline(self, connection, seconds, cancel_event=None):
        connection.exec_driver_sql(f"SET statement_timeout = {int(seconds) * 1000}")
        yield

    def is_timeout(self, exc: DBAPIError) -> bool:
        # psycopg2 exposes pgcode, psycopg 3 exposes sqlstate
        code = getattr(exc.orig, "pgcode", None) or getattr(exc.orig, "sqlstate", None)
        return code == self.QUERY_CANCELED


class MySQLSupport(DialectSupport):
    name = "mysql"

    backslash_escapes = True

    TIMEOUT_ERRNO = 3024

    def connect_url(self, url, catalog):
        return url

    def switch_catalog(self, connection, catalog):
        quoted = catalog.replace("`", "``")
        connection.exec_driver_sql(f"USE `{quoted}`")

    @contextmanager
    def deadline(self, connection, seconds, cancel_event=None):
        connection.exec_driver_sql(f"SET SESSION MAX_EXECUTION_TIME = {int(seconds) * 1000}")
        yield

    def is_timeout(self, exc: DBAPIError) -> bool:
        return _driver_error_code(exc) == self.TIMEOUT_ERRNO


class MariaDBSupport(MySQLSupport):
    name = "mariadb"

    TIMEOUT_ERRNO = 1969

    @contextmanager
    def deadline(self, connection, seconds, cancel_event=None):
        connection.exec_driver_sql(f"SET SESSION max_statement_time = {int(seconds)}")
        yield


class MSSQLSupport(DialectSupport):
    name = "mssql"

    TIMEOUT_SQLSTATE = "HYT00"

    def connect_url(self, url, catalog):
        return url

    def switch_catalog(self, connection, catalog):
        quoted = catalog.replace("]", "]]")
        connection.exec_driver_sql(f"USE [{quoted}]")

    @contextmanager
    def deadline(self, connection, seconds, cancel_event=None):
        raw = connection.connection.driver_connection
        if hasattr(raw, "timeout"):
            # pyodbc: per-connection query timeout in seconds
            previous = raw.timeout
            raw.timeout = int(seconds)
            try:
                yield
            finally:
                raw.timeout = previous
        else:
            logger.warning(
                "Driver '%s' has no per-connection query timeout; query runs without a deadline",
                connection.dialect.driver,
            )
            yield

    def is_timeout(self, exc: DBAPIError) -> bool:
        code = _driver_error_code(exc)
        return code == self.TIMEOUT_SQLSTATE or self.TIMEOUT_SQLSTATE in str(exc.orig)


DIALECTS: Dict[str, DialectSupport] = {
    support.name: support
    for support in (
        SQLiteSupport(),
        PostgreSQLSupport(),
        MySQLSupport(),
        MariaDBSupport(),
        MSSQLSupport(),
    )
}

_FALLBACK = DialectSupport()


def dialect_for(url: URL) -> DialectSupport:
    return DIALECTS.get(url.get_backend_name(), _FALLBACK)
