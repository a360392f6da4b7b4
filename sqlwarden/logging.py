"""
Logging setup for the sqlwarden server.

The MCP stdio transport owns stdout, so every log record goes to stderr.
"""

import logging
import sys

LOG_FORMAT = "%(asctime)s  %(name)-28s  %(levelname)-7s  %(message)s"


def setup_logging(level: str = "INFO") -> logging.Logger:
    """
    Configure root logging once for the process.

    Args:
        level: Log level string (e.g. 'INFO', 'DEBUG').

    Returns:
        The package logger.
    """
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format=LOG_FORMAT,
        stream=sys.stderr,
    )
    return logging.getLogger("sqlwarden")
