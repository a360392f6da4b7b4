"""sqlwarden MCP server - thin wiring around sqlwarden.tools.executor.

Run standalone:  python -m sqlwarden.server   (or the `sqlwarden` script)
External use:    any MCP client via stdio

All query logic lives in DirectToolExecutor; this module only maps
tool and resource calls onto it.
"""

from __future__ import annotations

import json
from typing import Any, Dict, Optional

from dotenv import load_dotenv
from mcp.server.fastmcp import FastMCP
from mcp.server.fastmcp.exceptions import ToolError

from .config import SqlWardenSettings, build_profile_table, install_profile_table
from .logging import setup_logging
from .tools.executor import DirectToolExecutor

SERVER_NAME = "sqlwarden"


def _unwrap(result: Dict[str, Any]) -> Dict[str, Any]:
    """Drop the success flag, or raise the error as a tool error."""
    if not result.get("success"):
        error = result["error"]
        raise ToolError(f"{error['kind']}: {error['message']}")
    return {k: v for k, v in result.items() if k != "success"}


def create_server(tools: Optional[DirectToolExecutor] = None) -> FastMCP:
    tools = tools or DirectToolExecutor()
    mcp = FastMCP(SERVER_NAME)

    @mcp.tool()
    def query(
        sql: str,
        profile: Optional[str] = None,
        catalog: Optional[str] = None,
        parameters: Optional[Dict[str, Any]] = None,
        max_rows: Optional[int] = None,
    ) -> Dict[str, Any]:
        """Execute a read-only SELECT and return tabular results.

        Results are bounded by server-enforced limits; `truncated` is true
        when more rows existed than `row_limit`. Reference parameters as
        :name in the SQL and pass their values in `parameters` keyed by name.
        """
        return _unwrap(tools.execute_sql(
            sql,
            profile=profile,
            catalog=catalog,
            parameters=parameters,
            max_rows=max_rows,
        ))

    @mcp.tool()
    def list_profiles() -> Dict[str, Any]:
        """List configured connection profiles and the default profile name."""
        return _unwrap(tools.list_profiles())

    @mcp.tool()
    def get_execution_context(profile: Optional[str] = None) -> Dict[str, Any]:
        """Show the row limits and command timeout enforced for a profile."""
        return _unwrap(tools.execution_context(profile))

    @mcp.tool()
    def get_connection_context(profile: Optional[str] = None) -> Dict[str, Any]:
        """Show the backend, server, database, user and engine version a profile connects to.

        Use it to pick SQL syntax the engine understands. Opens one connection.
        """
        return _unwrap(tools.connection_context(profile))

    @mcp.resource("sqlwarden://context/profiles", mime_type="application/json")
    def profiles_resource() -> str:
        """Configured connection profiles and the default profile name."""
        return json.dumps(_unwrap(tools.list_profiles()))

    @mcp.resource("sqlwarden://context/execution", mime_type="application/json")
    def execution_resource() -> str:
        """Execution limits for the default profile."""
        return json.dumps(_unwrap(tools.execution_context()))

    @mcp.resource("sqlwarden://context/connection", mime_type="application/json")
    def connection_resource() -> str:
        """Connection context for the default profile."""
        return json.dumps(_unwrap(tools.connection_context()))

    return mcp


def main() -> None:
    load_dotenv()
    settings = SqlWardenSettings()
    logger = setup_logging(settings.log_level)

    # Build and freeze profiles before serving; configuration errors stop startup.
    table = install_profile_table(build_profile_table(settings))
    logger.info("Starting %s MCP server with profiles: %s", SERVER_NAME, ", ".join(table.names))

    create_server(DirectToolExecutor(table)).run(transport="stdio")


if __name__ == "__main__":
    main()
