"""SQL guard, parameter normalization and bounded execution."""
from .executor import BoundedExecutor, execute_query
from .params import normalize_parameters, normalize_value
from .safety import is_read_only, validate_read_only

__all__ = [
    "BoundedExecutor",
    "execute_query",
    "normalize_parameters",
    "normalize_value",
    "is_read_only",
    "validate_read_only",
]
