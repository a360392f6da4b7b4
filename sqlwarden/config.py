"""
Connection profiles and execution limits.

The profile table is built once at startup from structured settings
(pydantic-settings, ``SQLWARDEN_`` prefix) plus a legacy flat-variable
overlay for the default profile, clamped to the hard ceilings, and then
treated as read-only for the rest of the process.
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Dict, Iterable, Iterator, List, Mapping, Optional

from pydantic import BaseModel, Field
from pydantic_settings import BaseSettings, SettingsConfigDict
from sqlalchemy.engine import make_url
from sqlalchemy.exc import ArgumentError

from .errors import ConfigurationError, ProfileNotFoundError

logger = logging.getLogger(__name__)

# -------------------------
# Hard safety ceilings (not configurable)
# -------------------------
HARD_ROW_LIMIT = 50_000
HARD_COMMAND_TIMEOUT_SECONDS = 300

DEFAULT_PROFILE_NAME = "default"
DEFAULT_MAX_ROWS = 100
DEFAULT_ROW_CEILING = 5_000
DEFAULT_COMMAND_TIMEOUT_SECONDS = 30

# Single-profile deployments configured these flat variables; they only
# ever touch the default profile.
LEGACY_CONNECTION_STRING = "MCP_SQL_CONNECTION_STRING"
LEGACY_DESCRIPTION = "MCP_SQL_DESCRIPTION"
LEGACY_DEFAULT_MAX_ROWS = "MCP_SQL_DEFAULT_MAX_ROWS"
LEGACY_MAX_ROWS = "MCP_SQL_MAX_ROWS"
LEGACY_COMMAND_TIMEOUT_SECONDS = "MCP_SQL_COMMAND_TIMEOUT_SECONDS"


def clamp(value: int, low: int, high: int) -> int:
    return max(low, min(value, high))


@dataclass(frozen=True)
class ProfileLimits:
    default_max_rows: int = DEFAULT_MAX_ROWS
    max_rows: int = DEFAULT_ROW_CEILING
    command_timeout_seconds: int = DEFAULT_COMMAND_TIMEOUT_SECONDS

    def clamped(self) -> "ProfileLimits":
        max_rows = clamp(self.max_rows, 1, HARD_ROW_LIMIT)
        return ProfileLimits(
            default_max_rows=clamp(self.default_max_rows, 1, max_rows),
            max_rows=max_rows,
            command_timeout_seconds=clamp(
                self.command_timeout_seconds, 1, HARD_COMMAND_TIMEOUT_SECONDS
            ),
        )

    def row_limit(self, requested: Optional[int] = None) -> int:
        """Effective row cap for one call: the request, else the default, within [1, max_rows]."""
        limit = self.default_max_rows if requested is None else requested
        return clamp(limit, 1, self.max_rows)


@dataclass(frozen=True)
class Profile:
    name: str
    connection_string: str = field(repr=False)
    description: Optional[str] = None
    limits: ProfileLimits = field(default_factory=ProfileLimits)


class ProfileTable:
    """Case-insensitive, read-only lookup of configured profiles."""

    def __init__(self, profiles: Iterable[Profile], default_profile: str = DEFAULT_PROFILE_NAME):
        index: Dict[str, Profile] = {}
        for profile in profiles:
            key = profile.name.casefold()
            if key in index:
                raise ConfigurationError(
                    f"Profile '{profile.name}' is defined more than once "
                    "(profile names are case-insensitive)."
                )
            index[key] = profile

        default = index.get((default_profile or "").casefold())
        if default is None:
            raise ConfigurationError(
                f"Default profile '{default_profile}' was not found. "
                f"Available profiles: {', '.join(p.name for p in index.values())}"
            )

        self._profiles: Mapping[str, Profile] = MappingProxyType(index)
        self._default = default.name

    @property
    def default_profile(self) -> str:
        return self._default

    @property
    def names(self) -> List[str]:
        return [p.name for p in self._profiles.values()]

    def resolve(self, name: Optional[str] = None) -> Profile:
        wanted = name.strip() if isinstance(name, str) and name.strip() else self._default
        profile = self._profiles.get(wanted.casefold())
        if profile is None:
            raise ProfileNotFoundError(wanted, self.names)
        return profile

    def __contains__(self, name: object) -> bool:
        return isinstance(name, str) and name.casefold() in self._profiles

    def __iter__(self) -> Iterator[Profile]:
        return iter(self._profiles.values())

    def __len__(self) -> int:
        return len(self._profiles)


# -------------------------
# Structured settings
# -------------------------

class ProfileSettings(BaseModel):
    connection_string: str = ""
    description: Optional[str] = None
    default_max_rows: int = DEFAULT_MAX_ROWS
    max_rows: int = DEFAULT_ROW_CEILING
    command_timeout_seconds: int = DEFAULT_COMMAND_TIMEOUT_SECONDS


class SqlWardenSettings(BaseSettings):
    """
    Process settings read from ``SQLWARDEN_*`` environment variables.

    Profiles can be given as nested variables
    (``SQLWARDEN_PROFILES__WAREHOUSE__CONNECTION_STRING=...``) or as a
    JSON object in ``SQLWARDEN_PROFILES``.
    """

    default_profile: str = DEFAULT_PROFILE_NAME
    profiles: Dict[str, ProfileSettings] = Field(default_factory=dict)
    log_level: str = "INFO"

    model_config = SettingsConfigDict(
        env_prefix="SQLWARDEN_",
        env_nested_delimiter="__",
        extra="ignore",
    )


def _legacy_str(environ: Mapping[str, str], key: str) -> Optional[str]:
    value = environ.get(key)
    if value is None or not value.strip():
        return None
    return value.strip()


def _legacy_int(environ: Mapping[str, str], key: str) -> Optional[int]:
    value = _legacy_str(environ, key)
    if value is None:
        return None
    try:
        return int(value)
    except ValueError:
        logger.warning("Ignoring %s: '%s' is not an integer", key, value)
        return None


def apply_legacy_overlay(profile: ProfileSettings, environ: Mapping[str, str]) -> ProfileSettings:
    """Overlay the flat ``MCP_SQL_*`` variables onto the default profile's settings."""
    updates = {
        "connection_string": _legacy_str(environ, LEGACY_CONNECTION_STRING),
        "description": _legacy_str(environ, LEGACY_DESCRIPTION),
        "default_max_rows": _legacy_int(environ, LEGACY_DEFAULT_MAX_ROWS),
        "max_rows": _legacy_int(environ, LEGACY_MAX_ROWS),
        "command_timeout_seconds": _legacy_int(environ, LEGACY_COMMAND_TIMEOUT_SECONDS),
    }
    updates = {k: v for k, v in updates.items() if v is not None}
    if not updates:
        return profile
    logger.info("Applying legacy overrides to default profile: %s", ", ".join(sorted(updates)))
    return profile.model_copy(update=updates)


def _build_profile(name: str, settings: ProfileSettings) -> Profile:
    connection_string = (settings.connection_string or "").strip()
    if not connection_string:
        raise ConfigurationError(f"A connection string is required for profile '{name}'.")
    try:
        make_url(connection_string)
    except ArgumentError as exc:
        raise ConfigurationError(
            f"Profile '{name}' has an invalid connection string: {exc}"
        ) from exc

    requested = ProfileLimits(
        default_max_rows=settings.default_max_rows,
        max_rows=settings.max_rows,
        command_timeout_seconds=settings.command_timeout_seconds,
    )
    limits = requested.clamped()
    if limits != requested:
        logger.warning("Profile '%s' limits clamped from %s to %s", name, requested, limits)

    description = (settings.description or "").strip() or None
    return Profile(
        name=name,
        connection_string=connection_string,
        description=description,
        limits=limits,
    )


def build_profile_table(
    settings: Optional[SqlWardenSettings] = None,
    environ: Optional[Mapping[str, str]] = None,
) -> ProfileTable:
    """Bind, overlay, validate and clamp all profiles into a frozen table."""
    settings = settings if settings is not None else SqlWardenSettings()
    environ = os.environ if environ is None else environ

    profiles: Dict[str, ProfileSettings] = dict(settings.profiles)
    default_name = (settings.default_profile or "").strip() or DEFAULT_PROFILE_NAME

    default_key = next(
        (name for name in profiles if name.casefold() == default_name.casefold()),
        None,
    )
    if default_key is None:
        default_key = default_name
        profiles[default_key] = ProfileSettings()

    profiles[default_key] = apply_legacy_overlay(profiles[default_key], environ)

    table = ProfileTable(
        (_build_profile(name, ps) for name, ps in profiles.items()),
        default_profile=default_key,
    )
    logger.info(
        "Loaded %d profile(s): %s (default: %s)",
        len(table), ", ".join(table.names), table.default_profile,
    )
    return table


_profile_table: Optional[ProfileTable] = None


def install_profile_table(table: ProfileTable) -> ProfileTable:
    """Publish ``table`` as the process-wide profile table."""
    global _profile_table
    _profile_table = table
    return table


def get_profile_table() -> ProfileTable:
    """Return the published table, building it from the environment on first use."""
    if _profile_table is None:
        return install_profile_table(build_profile_table())
    return _profile_table
