"""
Tools module for sqlwarden (MCP boundary).
"""

from .executor import DirectToolExecutor

__all__ = [
    "DirectToolExecutor",
]
