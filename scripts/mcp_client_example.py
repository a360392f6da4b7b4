"""
Minimal MCP client against the sqlwarden server.

This proves:
- the server can be launched over stdio
- tools can be discovered
- a bounded query comes back with its row limit and truncation flag

Run with: python -m scripts.mcp_client_example
(after python -m scripts.create_sample_db)
"""

import asyncio
import os
import sys
from pathlib import Path

from mcp import ClientSession, StdioServerParameters
from mcp.client.stdio import stdio_client

DB_PATH = Path(__file__).resolve().parents[1] / "data" / "shop.sqlite"


async def main():
    env = dict(os.environ)
    env.setdefault("MCP_SQL_CONNECTION_STRING", f"sqlite:///{DB_PATH}")

    server = StdioServerParameters(
        command=sys.executable,
        args=["-m", "sqlwarden.server"],
        env=env,
    )

    async with stdio_client(server) as (read, write):
        async with ClientSession(read, write) as session:
            await session.initialize()

            tools = await session.list_tools()
            print("TOOLS:", [t.name for t in tools.tools])

            result = await session.call_tool(
                "query",
                {
                    "sql": "SELECT country, COUNT(*) AS orders FROM orders "
                           "JOIN customers ON customers.id = orders.customer_id "
                           "WHERE amount > :min_amount GROUP BY country",
                    "parameters": {"min_amount": 100},
                    "max_rows": 3,
                },
            )
            print("RESULT:", result)

            rejected = await session.call_tool("query", {"sql": "DELETE FROM orders"})
            print("REJECTED:", rejected)


if __name__ == "__main__":
    asyncio.run(main())
