"""
Result and introspection models returned to callers.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from typing import Any, Dict, List, Optional

import pandas as pd


@dataclass
class TabularResult:
    """Ordered column names plus rows aligned with them by index."""

    columns: List[str] = field(default_factory=list)
    rows: List[List[Any]] = field(default_factory=list)

    @property
    def row_count(self) -> int:
        return len(self.rows)

    def to_records(self) -> List[Dict[str, Any]]:
        return [dict(zip(self.columns, row)) for row in self.rows]

    def to_dataframe(self) -> pd.DataFrame:
        return pd.DataFrame(self.rows, columns=self.columns)


@dataclass
class QueryResult(TabularResult):
    """A bounded query result. ``truncated`` is set when rows were left unread."""

    truncated: bool = False
    row_limit: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "columns": list(self.columns),
            "rows": [list(row) for row in self.rows],
            "truncated": self.truncated,
            "row_limit": self.row_limit,
        }


@dataclass(frozen=True)
class OptionDescriptor:
    """An effective server-side limit, described for humans and agents. Informational only."""

    value: int
    description: str
    is_overridable: bool = False
    scope: str = "query"


@dataclass(frozen=True)
class QueryLimits:
    default_max_rows: OptionDescriptor
    max_rows: OptionDescriptor
    hard_row_limit: OptionDescriptor
    command_timeout_seconds: OptionDescriptor


@dataclass(frozen=True)
class ExecutionLimits:
    profile: str
    query: QueryLimits

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True)
class ProfileInfo:
    name: str
    description: Optional[str] = None


@dataclass(frozen=True)
class ProfileContext:
    profiles: List[ProfileInfo]
    default_profile: str

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True)
class ConnectionContext:
    """Where a profile connects and what it finds there. Credentials are never included."""

    profile: str
    dialect: str
    driver: str
    server: Optional[str] = None
    port: Optional[int] = None
    database: Optional[str] = None
    user: Optional[str] = None
    version: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)
