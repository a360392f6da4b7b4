# sqlwarden - bounded, read-only SQL for agents
"""
sqlwarden - read-only, row- and time-bounded SQL execution for AI agents.
"""

__version__ = "0.1.0"

from .config import HARD_COMMAND_TIMEOUT_SECONDS, HARD_ROW_LIMIT, ProfileTable
from .errors import SqlWardenError
from .sql.executor import BoundedExecutor
from .sql.safety import validate_read_only
from .tools.executor import DirectToolExecutor

__all__ = [
    "__version__",
    "HARD_COMMAND_TIMEOUT_SECONDS",
    "HARD_ROW_LIMIT",
    "ProfileTable",
    "SqlWardenError",
    "BoundedExecutor",
    "validate_read_only",
    "DirectToolExecutor",
]
