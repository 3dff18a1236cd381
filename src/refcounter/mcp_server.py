"""MCP server that exposes reference counting to coding agents.

This server wraps the `refcount` CLI tool, giving agents structured access
to effective reference counts and unused symbol reports through the Model
Context Protocol.
"""

import json
import subprocess
from typing import Any

from mcp.server import Server
from mcp.server.stdio import stdio_server
from mcp.types import TextContent, Tool


app = Server("refcount")


@app.list_tools()
async def list_tools() -> list[Tool]:
    """Declare available tools."""
    return [
        Tool(
            name="refcount_unused",
            description=(
                "List functions, classes and methods in the current repository that "
                "have no effective references. Declarations, recursive calls from a "
                "symbol's own body and (by default) import lines do not count as "
                "references. Use this to find dead code candidates."
            ),
            inputSchema={
                "type": "object",
                "properties": {
                    "include_imports": {
                        "type": "boolean",
                        "description": "Count import lines as references (default: false)",
                    }
                },
            },
        ),
        Tool(
            name="refcount_counts",
            description=(
                "Get the effective reference count of every function, class and method "
                "defined in one file. Returns name, kind, zero-based line and count per symbol."
            ),
            inputSchema={
                "type": "object",
                "properties": {
                    "file": {
                        "type": "string",
                        "description": "Path of the source file, e.g. 'src/app.py'",
                    }
                },
                "required": ["file"],
            },
        ),
    ]


@app.call_tool()
async def call_tool(name: str, arguments: Any) -> list[TextContent]:
    """Handle tool calls by routing to the matching CLI command."""
    if name == "refcount_unused":
        return await _handle_unused(bool((arguments or {}).get("include_imports", False)))
    elif name == "refcount_counts":
        return await _handle_counts(arguments["file"])

    raise ValueError(f"Unknown tool: {name}")


def _run_cli(args: list[str]) -> Any:
    result = subprocess.run(
        ["refcount", *args, "--json"],
        capture_output=True,
        text=True,
        check=True,
    )
    return json.loads(result.stdout)


def _error_content(command: str, error: Exception) -> list[TextContent]:
    if isinstance(error, subprocess.CalledProcessError):
        message = error.stderr.strip() if error.stderr else str(error)
        text = f"Error running refcount {command}: {message}"
    elif isinstance(error, json.JSONDecodeError):
        text = f"Error parsing refcount output: {error}"
    else:
        text = f"Unexpected error: {error}"
    return [TextContent(type="text", text=text)]


async def _handle_unused(include_imports: bool) -> list[TextContent]:
    """Handle refcount_unused tool calls.

    Args:
        include_imports: Count import lines as references

    Returns:
        List containing a single TextContent with one line per unused symbol
    """
    flag = "--include-imports" if include_imports else "--no-include-imports"
    try:
        items = _run_cli(["unused", flag])
    except Exception as e:
        return _error_content("unused", e)

    if not items:
        return [TextContent(type="text", text="No unused symbols found")]

    lines = [
        f"{item['kind']} '{item['name']}' in {item['path']} (line {item['line'] + 1}) has no references"
        for item in items
    ]
    return [TextContent(type="text", text="\n".join(lines))]


async def _handle_counts(file: str) -> list[TextContent]:
    try:
        rows = _run_cli(["counts", file])
    except Exception as e:
        return _error_content("counts", e)

    return [TextContent(type="text", text=json.dumps(rows, indent=2))]


async def main():
    """Run the MCP server."""
    async with stdio_server() as (read_stream, write_stream):
        await app.run(read_stream, write_stream, app.create_initialization_options())


if __name__ == "__main__":
    import asyncio

    asyncio.run(main())
