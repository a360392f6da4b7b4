"""
Tool executors for sqlwarden.

This layer is intentionally:
- transport-free
- exception-free for expected failures (they come back as result dicts)
- safe to expose via MCP

This is the MCP BOUNDARY - all tool execution goes through here.
"""

from __future__ import annotations

from datetime import date, datetime, time, timedelta
from decimal import Decimal
from typing import Any, Dict, List, Mapping, Optional
from uuid import UUID

import pandas as pd

from ..config import ProfileTable
from ..context import ConnectionContextService, ExecutionContextService, ProfileService
from ..errors import SqlWardenError
from ..sql.executor import BoundedExecutor


def to_jsonable(value: Any) -> Any:
    """Convert one cell value into something json.dumps accepts."""
    if value is None or isinstance(value, (bool, int, float, str)):
        return value
    if isinstance(value, Decimal):
        return int(value) if value == value.to_integral_value() else float(value)
    if isinstance(value, (datetime, date, time)):
        return value.isoformat()
    if isinstance(value, timedelta):
        return value.total_seconds()
    if isinstance(value, (bytes, bytearray, memoryview)):
        return bytes(value).hex()
    if isinstance(value, UUID):
        return str(value)
    return str(value)


def _failure(exc: SqlWardenError) -> Dict[str, Any]:
    return {"success": False, "error": exc.to_dict()}


class DirectToolExecutor:
    """
    Executes tools directly (no transport, no orchestration).

    Used by:
    - MCP server
    - scripts and tests

    Expected failures (guard rejections, unknown profiles, engine errors,
    timeouts) are returned as ``{"success": False, "error": {...}}`` so
    the caller always sees the error kind.
    """

    def __init__(
        self,
        profiles: Optional[ProfileTable] = None,
        executor: Optional[BoundedExecutor] = None,
    ):
        # None means the process-wide table, looked up on each call
        self.executor = executor or BoundedExecutor(profiles)
        self.context = ExecutionContextService(profiles)
        self.profiles = ProfileService(profiles)
        self.connection = ConnectionContextService(profiles, self.executor.engine_factory)

    def execute_sql(
        self,
        sql: str,
        profile: Optional[str] = None,
        catalog: Optional[str] = None,
        parameters: Optional[Mapping[str, Any]] = None,
        max_rows: Optional[int] = None,
    ) -> Dict[str, Any]:
        """
        Execute a guarded, bounded read-only query.

        Returns:
            dict with success, columns, rows, row_count, truncated, row_limit
            or success=False with error {kind, message}
        """
        try:
            result = self.executor.execute(
                sql,
                profile=profile,
                catalog=catalog,
                parameters=parameters,
                max_rows=max_rows,
            )
        except SqlWardenError as exc:
            return _failure(exc)

        rows: List[List[Any]] = [[to_jsonable(v) for v in row] for row in result.rows]
        return {
            "success": True,
            "columns": list(result.columns),
            "rows": rows,
            "row_count": result.row_count,
            "truncated": result.truncated,
            "row_limit": result.row_limit,
        }

    def execute_sql_to_dataframe(
        self,
        sql: str,
        profile: Optional[str] = None,
        catalog: Optional[str] = None,
        parameters: Optional[Mapping[str, Any]] = None,
        max_rows: Optional[int] = None,
    ) -> pd.DataFrame:
        """
        Convenience method that returns just the DataFrame.
        Errors are raised, not wrapped.
        """
        result = self.executor.execute(
            sql,
            profile=profile,
            catalog=catalog,
            parameters=parameters,
            max_rows=max_rows,
        )
        return result.to_dataframe()

    def execution_context(self, profile: Optional[str] = None) -> Dict[str, Any]:
        try:
            limits = self.context.get_limits(profile)
        except SqlWardenError as exc:
            return _failure(exc)
        return {"success": True, **limits.to_dict()}

    def list_profiles(self) -> Dict[str, Any]:
        return {"success": True, **self.profiles.get_context().to_dict()}

    def connection_context(self, profile: Optional[str] = None) -> Dict[str, Any]:
        """Backend, server, database, user and version for a profile. Connects once."""
        try:
            context = self.connection.get_context(profile)
        except SqlWardenError as exc:
            return _failure(exc)
        return {"success": True, **context.to_dict()}
