"""
Bounded, read-only query execution.

Order of operations: resolve profile, guard, normalize parameters (all
before any I/O), then connect, switch catalog, run under the command
deadline and stream at most ``row_limit`` rows. The connection and its
engine are released on every exit path, and the implicit transaction
is never committed.
"""

from __future__ import annotations

import logging
import threading
import time
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional

from sqlalchemy import create_engine, text
from sqlalchemy.engine import URL, Connection, CursorResult, Engine, make_url
from sqlalchemy.exc import (
    ArgumentError,
    DBAPIError,
    NoSuchModuleError,
    SQLAlchemyError,
    StatementError,
)
from sqlalchemy.pool import NullPool

from ..config import Profile, ProfileTable, get_profile_table
from ..errors import (
    ConnectivityError,
    EngineError,
    QueryCancelled,
    QueryTimeoutError,
    SqlWardenError,
    UnsupportedParameterError,
    ValidationError,
)
from ..models import QueryResult
from .dialects import DialectSupport, dialect_for
from .params import BoundValue, normalize_max_rows, normalize_parameters, to_bindparams
from .safety import escape_inert_colons, validate_read_only

logger = logging.getLogger(__name__)

EngineFactory = Callable[..., Engine]


def _check_cancelled(cancel_event: Optional[threading.Event]) -> None:
    if cancel_event is not None and cancel_event.is_set():
        raise QueryCancelled("Query was cancelled.")


def _driver_message(exc: SQLAlchemyError) -> str:
    orig = getattr(exc, "orig", None)
    return str(orig) if orig is not None else str(exc)


def unique_columns(names: Iterable[Any]) -> List[str]:
    """Column names in projection order, suffixing repeats (``id``, ``id_2``)."""
    columns: List[str] = []
    taken = set()
    for raw in names:
        name = str(raw)
        candidate, n = name, 1
        while candidate in taken:
            n += 1
            candidate = f"{name}_{n}"
        taken.add(candidate)
        columns.append(candidate)
    return columns


def profile_url(profile: Profile) -> URL:
    try:
        return make_url(profile.connection_string)
    except ArgumentError as exc:
        raise ConnectivityError(
            f"Profile '{profile.name}' has an invalid connection string: {exc}"
        ) from exc


def create_bounded_engine(url: URL, engine_factory: EngineFactory = create_engine) -> Engine:
    """Engine without pooling: every connect opens a fresh connection, every close releases it."""
    try:
        return engine_factory(url, poolclass=NullPool)
    except (ArgumentError, NoSuchModuleError, ImportError) as exc:
        raise ConnectivityError(f"Cannot load a driver for '{url.drivername}': {exc}") from exc


def connect(engine: Engine, profile: Profile) -> Connection:
    try:
        return engine.connect()
    except SQLAlchemyError as exc:
        logger.warning("Could not connect for profile '%s': %s", profile.name, _driver_message(exc))
        raise ConnectivityError(_driver_message(exc)) from exc


class BoundedExecutor:
    """Runs guarded SELECT statements against a profile's engine."""

    def __init__(
        self,
        profiles: Optional[ProfileTable] = None,
        engine_factory: EngineFactory = create_engine,
    ):
        self._profiles = profiles
        self._engine_factory = engine_factory

    @property
    def profiles(self) -> ProfileTable:
        return self._profiles if self._profiles is not None else get_profile_table()

    @property
    def engine_factory(self) -> EngineFactory:
        return self._engine_factory

    def execute(
        self,
        sql: str,
        profile: Optional[str] = None,
        catalog: Optional[str] = None,
        parameters: Optional[Mapping[str, Any]] = None,
        max_rows: Optional[int] = None,
        cancel_event: Optional[threading.Event] = None,
    ) -> QueryResult:
        resolved = self.profiles.resolve(profile)

        try:
            validate_read_only(sql)
            bound = normalize_parameters(parameters)
            requested = normalize_max_rows(max_rows)
        except (ValidationError, UnsupportedParameterError) as exc:
            logger.info("Rejected query for profile '%s': %s", resolved.name, exc)
            raise

        row_limit = resolved.limits.row_limit(requested)
        catalog = catalog.strip() if isinstance(catalog, str) and catalog.strip() else None
        _check_cancelled(cancel_event)

        url = profile_url(resolved)
        dialect = dialect_for(url)
        engine = create_bounded_engine(dialect.connect_url(url, catalog), self._engine_factory)

        started = time.monotonic()
        try:
            result = self._run(
                engine, dialect, resolved, sql, bound, catalog, row_limit, cancel_event
            )
        finally:
            engine.dispose()

        logger.debug(
            "profile=%s rows=%d truncated=%s row_limit=%d elapsed=%.3fs",
            resolved.name, result.row_count, result.truncated, row_limit,
            time.monotonic() - started,
        )
        return result

    def _run(
        self,
        engine: Engine,
        dialect: DialectSupport,
        profile: Profile,
        sql: str,
        bound: Dict[str, BoundValue],
        catalog: Optional[str],
        row_limit: int,
        cancel_event: Optional[threading.Event],
    ) -> QueryResult:
        timeout = profile.limits.command_timeout_seconds
        logger.debug("profile=%s catalog=%s sql=%s", profile.name, catalog, sql)

        with connect(engine, profile) as connection:
            try:
                if catalog:
                    dialect.switch_catalog(connection, catalog)
                _check_cancelled(cancel_event)

                statement = text(escape_inert_colons(sql, dialect.backslash_escapes))
                referenced = statement.compile().params.keys()
                statement = statement.bindparams(*to_bindparams(bound, referenced))

                with dialect.deadline(connection, timeout, cancel_event):
                    _check_cancelled(cancel_event)
                    cursor = connection.execution_options(stream_results=True).execute(statement)
                    try:
                        return self._read(cursor, row_limit, cancel_event)
                    finally:
                        cursor.close()
            except SqlWardenError:
                raise
            except DBAPIError as exc:
                raise self._translate(exc, dialect, profile, cancel_event) from exc
            except StatementError as exc:
                raise EngineError(_driver_message(exc)) from exc

    @staticmethod
    def _read(
        cursor: CursorResult,
        row_limit: int,
        cancel_event: Optional[threading.Event],
    ) -> QueryResult:
        if not cursor.returns_rows:
            return QueryResult(columns=[], rows=[], truncated=False, row_limit=row_limit)

        columns = unique_columns(cursor.keys())
        rows: List[List[Any]] = []
        truncated = False

        for row in cursor:
            if len(rows) == row_limit:
                # one row past the limit proves there is more; it is not kept
                truncated = True
                break
            _check_cancelled(cancel_event)
            rows.append(list(row))

        return QueryResult(columns=columns, rows=rows, truncated=truncated, row_limit=row_limit)

    @staticmethod
    def _translate(
        exc: DBAPIError,
        dialect: DialectSupport,
        profile: Profile,
        cancel_event: Optional[threading.Event],
    ) -> Exception:
        if cancel_event is not None and cancel_event.is_set():
            return QueryCancelled("Query was cancelled.")

        message = _driver_message(exc)
        if dialect.is_timeout(exc):
            timeout = profile.limits.command_timeout_seconds
            logger.warning("Query on profile '%s' exceeded %ds", profile.name, timeout)
            return QueryTimeoutError(
                f"Query exceeded the {timeout}s command timeout: {message}"
            )
        if exc.connection_invalidated:
            logger.warning("Lost connection for profile '%s': %s", profile.name, message)
            return ConnectivityError(message)
        return EngineError(message)


def execute_query(
    sql: str,
    profile: Optional[str] = None,
    catalog: Optional[str] = None,
    parameters: Optional[Mapping[str, Any]] = None,
    max_rows: Optional[int] = None,
) -> QueryResult:
    """Run ``sql`` against the process-wide profile table."""
    return BoundedExecutor().execute(
        sql, profile=profile, catalog=catalog, parameters=parameters, max_rows=max_rows
    )
