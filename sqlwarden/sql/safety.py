"""
Lexical read-only guard for ad hoc SQL.

This is not a SQL parser. It masks comments and quoted spans, then
checks the remaining identifier tokens against a fixed blocklist. The
guard only vetoes: it never rewrites or executes the statement.
"""

from __future__ import annotations

import re
from typing import List, Tuple

from ..errors import EmptyStatementError, UnsafeStatementError

BLOCKED_KEYWORDS = frozenset({
    # DML
    "INSERT", "UPDATE", "DELETE", "MERGE",
    # DDL
    "CREATE", "ALTER", "DROP", "TRUNCATE", "RENAME",
    # DCL
    "GRANT", "REVOKE", "DENY",
    # TCL
    "BEGIN", "COMMIT", "ROLLBACK", "TRANSACTION",
    # execution
    "EXEC", "EXECUTE",
    # administrative
    "BACKUP", "RESTORE", "BULK", "SHUTDOWN", "RECONFIGURE", "KILL",
    # external data access
    "OPENROWSET", "OPENQUERY", "OPENDATASOURCE", "OPENXML",
    # SELECT ... INTO creates a table
    "INTO",
})

BLOCKED_PREFIXES = ("SP_", "XP_")

TOKEN_RE = re.compile(r"[\w#]+")

EMPTY_MESSAGE = "SQL query cannot be empty."
MULTIPLE_STATEMENTS_MESSAGE = "Multiple SQL statements are not allowed."
NOT_SELECT_MESSAGE = (
    "Only read-only SELECT queries are allowed; the statement must begin with SELECT."
)

_CLOSERS = {"'": "'", "[": "]", '"': '"'}


def _blank(text: str) -> str:
    # keep newlines so line positions survive masking
    return "".join("\n" if ch == "\n" else " " for ch in text)


def _mask(sql: str, backslash_escapes: bool = False) -> Tuple[str, str]:
    """
    Return two views of ``sql`` with identical length.

    The first has comments blanked out. The second additionally blanks
    string literals, bracketed identifiers and quoted identifiers, so
    it holds only executable tokens.
    """
    code: List[str] = []
    executable: List[str] = []
    i, n = 0, len(sql)

    while i < n:
        ch = sql[i]
        pair = sql[i:i + 2]

        if pair == "--":
            end = sql.find("\n", i)
            end = n if end == -1 else end
            blank = _blank(sql[i:end])
            code.append(blank)
            executable.append(blank)
            i = end
            continue

        # MySQL runs the body of /*! ... */, so it is not a comment.
        if pair == "/*" and sql[i + 2:i + 3] != "!":
            end = sql.find("*/", i + 2)
            end = n if end == -1 else end + 2
            blank = _blank(sql[i:end])
            code.append(blank)
            executable.append(blank)
            i = end
            continue

        if ch in _CLOSERS:
            closer = _CLOSERS[ch]
            j = i + 1
            while j < n and sql[j] != closer:
                if backslash_escapes and ch == "'" and sql[j] == "\\":
                    j += 1
                j += 1
            end = min(j + 1, n)
            code.append(sql[i:end])
            executable.append(_blank(sql[i:end]))
            i = end
            continue

        code.append(ch)
        executable.append(ch)
        i += 1

    return "".join(code), "".join(executable)


def _statement_end(code: str) -> int:
    """Index just past the statement, ignoring one trailing semicolon."""
    stripped = code.rstrip()
    if stripped.endswith(";"):
        return len(stripped) - 1
    return len(stripped)


def tokenize(sql: str, backslash_escapes: bool = False) -> List[str]:
    """
    Split ``sql`` into identifier/keyword tokens.

    Comments, string literals, ``[bracketed]`` and ``"quoted"``
    identifiers never produce tokens. Qualified names split on ``.``.
    """
    _, executable = _mask(sql or "", backslash_escapes)
    return TOKEN_RE.findall(executable)


def escape_inert_colons(sql: str, backslash_escapes: bool = False) -> str:
    """
    Prefix every ``:`` inside a comment or quoted span with a backslash.

    SQLAlchemy ``text()`` reads ``:word`` as a bind placeholder wherever
    it appears. Escaped colons are not bound, and the compiler turns each
    ``\\:`` back into ``:``, so the engine receives the text as written.
    """
    _, executable = _mask(sql, backslash_escapes)
    out: List[str] = []
    for ch, visible in zip(sql, executable):
        if ch == ":" and visible != ":":
            out.append("\\")
        out.append(ch)
    return "".join(out)


def _check(sql: str, backslash_escapes: bool) -> None:
    code, executable = _mask(sql, backslash_escapes)
    end = _statement_end(code)

    if ";" in code[:end]:
        raise UnsafeStatementError(MULTIPLE_STATEMENTS_MESSAGE)

    tokens = TOKEN_RE.findall(executable[:end])
    upper = [t.upper() for t in tokens]

    first = upper[0] if upper else ""
    is_cte = first == "WITH" and "SELECT" in upper[1:]
    if first != "SELECT" and not is_cte:
        raise UnsafeStatementError(NOT_SELECT_MESSAGE)

    for token in upper:
        if token in BLOCKED_KEYWORDS:
            raise UnsafeStatementError(
                f"Statement must be read-only; forbidden operation: '{token}'."
            )
        if token.startswith(BLOCKED_PREFIXES):
            raise UnsafeStatementError(
                f"Statement must be read-only; procedure call not allowed: '{token}'."
            )


def validate_read_only(sql: str) -> str:
    """
    Ensure ``sql`` is a single read-only SELECT (or WITH ... SELECT).

    Returns the statement unchanged. Raises EmptyStatementError for
    missing text and UnsafeStatementError for anything else rejected.
    """
    if not isinstance(sql, str) or not sql.strip():
        raise EmptyStatementError(EMPTY_MESSAGE)

    # Engines disagree on whether backslash escapes a quote, so a
    # statement containing one has to pass under both readings.
    conventions = (False, True) if "\\" in sql else (False,)
    for backslash_escapes in conventions:
        _check(sql, backslash_escapes)
    return sql


def is_read_only(sql: str) -> bool:
    try:
        validate_read_only(sql)
    except (EmptyStatementError, UnsafeStatementError):
        return False
    return True
