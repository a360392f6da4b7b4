"""
Parameter normalization.

Caller-supplied parameter values arrive loosely typed (decoded JSON).
They are narrowed to a closed set of scalar kinds before binding;
anything else is rejected instead of being stringified.
"""

from __future__ import annotations

import math
import re
from dataclasses import dataclass
from decimal import Decimal
from enum import Enum
from typing import Any, Dict, Iterable, List, Mapping, Optional

from sqlalchemy import BigInteger, Boolean, Integer, Numeric, String, bindparam
from sqlalchemy.sql.elements import BindParameter
from sqlalchemy.types import NullType

from ..errors import UnsupportedParameterError

PARAMETER_SIGIL = ":"
ACCEPTED_SIGILS = ("@", ":")

INT32_MIN, INT32_MAX = -(2 ** 31), 2 ** 31 - 1
INT64_MIN, INT64_MAX = -(2 ** 63), 2 ** 63 - 1

NAME_RE = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")


class ParameterKind(str, Enum):
    NULL = "null"
    BOOL = "bool"
    INT32 = "int32"
    INT64 = "int64"
    DECIMAL = "decimal"
    STRING = "string"


@dataclass(frozen=True)
class BoundValue:
    kind: ParameterKind
    value: Any


NULL = BoundValue(ParameterKind.NULL, None)

# Typed binds let each dialect apply its own conversion (e.g. Decimal on SQLite).
SQL_TYPES = {
    ParameterKind.NULL: NullType,
    ParameterKind.BOOL: Boolean,
    ParameterKind.INT32: Integer,
    ParameterKind.INT64: BigInteger,
    ParameterKind.DECIMAL: lambda: Numeric(asdecimal=True),
    ParameterKind.STRING: String,
}


def normalize_value(value: Any, name: Optional[str] = None) -> BoundValue:
    label = f"'{name}'" if name else "value"

    if value is None:
        return NULL
    # bool is a subclass of int, so it has to be checked first
    if isinstance(value, bool):
        return BoundValue(ParameterKind.BOOL, value)
    if isinstance(value, int):
        if INT32_MIN <= value <= INT32_MAX:
            return BoundValue(ParameterKind.INT32, value)
        if INT64_MIN <= value <= INT64_MAX:
            return BoundValue(ParameterKind.INT64, value)
        return BoundValue(ParameterKind.DECIMAL, Decimal(value))
    if isinstance(value, float):
        if not math.isfinite(value):
            raise UnsupportedParameterError(
                f"Parameter {label} must be a finite number, got {value!r}."
            )
        # repr() gives the shortest round-tripping digits, not the binary expansion
        return BoundValue(ParameterKind.DECIMAL, Decimal(repr(value)))
    if isinstance(value, Decimal):
        if not value.is_finite():
            raise UnsupportedParameterError(
                f"Parameter {label} must be a finite number, got {value!r}."
            )
        return BoundValue(ParameterKind.DECIMAL, value)
    if isinstance(value, str):
        return BoundValue(ParameterKind.STRING, value)

    raise UnsupportedParameterError(
        f"Parameter {label} has unsupported type '{type(value).__name__}'. "
        "Only null, boolean, number and string values can be bound."
    )


def normalize_name(name: Any) -> str:
    """Strip an optional leading sigil and check the rest is an identifier."""
    if not isinstance(name, str):
        raise UnsupportedParameterError(
            f"Parameter names must be strings, got '{type(name).__name__}'."
        )
    bare = name.strip()
    if bare.startswith(ACCEPTED_SIGILS):
        bare = bare[1:]
    if not NAME_RE.match(bare):
        raise UnsupportedParameterError(f"Invalid parameter name: '{name}'.")
    return bare


def placeholder(name: str) -> str:
    """Render ``name`` the way it is referenced inside SQL text."""
    return f"{PARAMETER_SIGIL}{normalize_name(name)}"


def normalize_parameters(parameters: Optional[Mapping[str, Any]]) -> Dict[str, BoundValue]:
    if parameters is None:
        return {}
    if not isinstance(parameters, Mapping):
        raise UnsupportedParameterError(
            f"Parameters must be an object keyed by name, got '{type(parameters).__name__}'."
        )

    bound: Dict[str, BoundValue] = {}
    for raw_name, value in parameters.items():
        name = normalize_name(raw_name)
        if name in bound:
            raise UnsupportedParameterError(f"Duplicate parameter name: '{name}'.")
        bound[name] = normalize_value(value, name)
    return bound


def normalize_max_rows(value: Any) -> Optional[int]:
    """Accept ``None`` or a whole number; clamping is left to the profile limits."""
    if value is None:
        return None
    if isinstance(value, float) and value.is_integer():
        return int(value)
    if isinstance(value, bool) or not isinstance(value, int):
        raise UnsupportedParameterError(
            f"max_rows must be an integer, got {type(value).__name__} {value!r}."
        )
    return value


def to_bindparams(bound: Mapping[str, BoundValue], referenced: Iterable[str]) -> List[BindParameter]:
    """
    Build typed bind parameters for the names the statement references.

    Values the statement does not reference are dropped, the same way
    the engine would ignore an unused parameter.
    """
    wanted = set(referenced)
    return [
        bindparam(name, bv.value, type_=SQL_TYPES[bv.kind]())
        for name, bv in bound.items()
        if name in wanted
    ]
