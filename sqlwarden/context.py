"""
Read-only introspection of profiles, their effective limits and the
servers they point at.

Nothing here feeds back into enforcement; the executor reads the
profile table directly.
"""

from __future__ import annotations

import logging
from typing import Dict, Optional

from sqlalchemy import create_engine

from .config import HARD_ROW_LIMIT, ProfileTable, get_profile_table
from .models import (
    ConnectionContext,
    ExecutionLimits,
    OptionDescriptor,
    ProfileContext,
    ProfileInfo,
    QueryLimits,
)
from .sql.dialects import dialect_for
from .sql.executor import EngineFactory, connect, create_bounded_engine, profile_url

logger = logging.getLogger(__name__)

DEFAULT_PORTS: Dict[str, int] = {
    "postgresql": 5432,
    "mysql": 3306,
    "mariadb": 3306,
    "mssql": 1433,
}


class ExecutionContextService:
    """Describes the post-clamp limits a query against a profile will run under."""

    def __init__(self, profiles: Optional[ProfileTable] = None):
        self._profiles = profiles

    @property
    def profiles(self) -> ProfileTable:
        return self._profiles if self._profiles is not None else get_profile_table()

    def get_limits(self, profile: Optional[str] = None) -> ExecutionLimits:
        resolved = self.profiles.resolve(profile)
        limits = resolved.limits

        return ExecutionLimits(
            profile=resolved.name,
            query=QueryLimits(
                default_max_rows=OptionDescriptor(
                    value=limits.default_max_rows,
                    description=(
                        "Used when a query does not specify max_rows, "
                        "to prevent accidental large result sets."
                    ),
                    is_overridable=True,
                ),
                max_rows=OptionDescriptor(
                    value=limits.max_rows,
                    description=(
                        "Largest max_rows a query against this profile may request; "
                        "larger requests are clamped."
                    ),
                ),
                hard_row_limit=OptionDescriptor(
                    value=HARD_ROW_LIMIT,
                    description=(
                        "Absolute maximum number of rows any query may return, "
                        "regardless of profile or request."
                    ),
                ),
                command_timeout_seconds=OptionDescriptor(
                    value=limits.command_timeout_seconds,
                    description=(
                        "Maximum execution time for a query before it is terminated."
                    ),
                ),
            ),
        )


class ProfileService:
    """Lists configured profiles so callers can discover valid names."""

    def __init__(self, profiles: Optional[ProfileTable] = None):
        self._profiles = profiles

    @property
    def profiles(self) -> ProfileTable:
        return self._profiles if self._profiles is not None else get_profile_table()

    def get_context(self) -> ProfileContext:
        table = self.profiles
        return ProfileContext(
            profiles=[ProfileInfo(name=p.name, description=p.description) for p in table],
            default_profile=table.default_profile,
        )


def default_port(backend: str) -> Optional[int]:
    return DEFAULT_PORTS.get(backend)


def format_version(info) -> Optional[str]:
    """``(16, 2)`` -> ``"16.2"``; None when the dialect did not report one."""
    if not info:
        return None
    return ".".join(str(part) for part in info)


class ConnectionContextService:
    """
    Reports where a profile connects: backend, host, port, database,
    user and the server version.

    Opens one short-lived connection to read the version the dialect
    detected on connect. Passwords and other URL query options are
    never reported.
    """

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

    def get_context(self, profile: Optional[str] = None) -> ConnectionContext:
        resolved = self.profiles.resolve(profile)
        url = profile_url(resolved)
        dialect = dialect_for(url)
        engine = create_bounded_engine(dialect.connect_url(url, None), self._engine_factory)

        try:
            with connect(engine, resolved) as connection:
                version = format_version(connection.dialect.server_version_info)
                driver = connection.dialect.driver
        finally:
            engine.dispose()

        backend = url.get_backend_name()
        logger.debug("profile=%s backend=%s version=%s", resolved.name, backend, version)
        return ConnectionContext(
            profile=resolved.name,
            dialect=backend,
            driver=driver,
            server=url.host,
            port=url.port or (default_port(backend) if url.host else None),
            database=url.database,
            user=url.username,
            version=version,
        )
