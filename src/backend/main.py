"""
JS Sandbox MCP server entrypoint.

Runs a FastMCP server over stdio exposing the sandbox tools, the
run-node-js-script prompt and a file:// resource template for files that
runs write. SIGINT/SIGTERM stop the server, then the scavenger
is stopped and every registered sandbox is force-removed before exit.
"""

from __future__ import annotations

import asyncio
import contextlib
import signal

from collections.abc import Iterable
from pathlib import Path
from typing import Any

from mcp.server.fastmcp import FastMCP
from mcp.server.fastmcp.exceptions import ResourceError
from mcp.server.lowlevel.helper_types import ReadResourceContents
from pydantic import AnyUrl

from core.constants import get_settings
from core.lifecycle import SandboxManager
from tools.wrappers import create_sandbox_tools
from utils.content import read_file_resource
from utils.environment import get_mount_point_dir
from utils.logger import logger, setup_logging

SERVER_NAME = "js-sandbox-mcp"

SERVER_INSTRUCTIONS = (
    "Run arbitrary JavaScript inside disposable Docker containers and install npm dependencies on the fly."
)

FILE_RESOURCE_TEMPLATE = "file://{filepath}"


def run_node_js_script_prompt(prompt: str) -> str:
    """Wrap a user prompt with modern Node.js guidance."""
    return (
        f"Here is my prompt:\n\n{prompt}\n\n"
        "Follow modern Node.js best practices:\n"
        "- Use ECMAScript Modules (ESM) syntax (import/export), avoid CommonJS (require/module.exports)\n"
        "- Use native fetch, avoid node-fetch or axios unless absolutely necessary or requested\n"
        "- Prefer top-level await in ES modules when appropriate\n"
        "- Use async/await consistently for asynchronous code, avoid mixing with .then/.catch\n"
        "- Avoid callback-style code in favor of Promises and async/await\n"
        "- Avoid unnecessary dependencies if a native API is available\n"
        "Please write and run a Node.js script."
    )


class SandboxServer(FastMCP):
    """
    FastMCP server that also serves the `file://` URIs returned by runs.

    FastMCP templates match a single path segment, so absolute file URIs are
    routed here before falling back to the registered resources.
    """

    def __init__(self, files_dir: Path, **kwargs: Any) -> None:
        super().__init__(**kwargs)
        self.files_dir = files_dir

    def read_file(self, uri: str) -> tuple[bytes, str]:
        try:
            return read_file_resource(uri, self.files_dir, get_mount_point_dir(self.files_dir))
        except (OSError, ValueError) as e:
            logger.warning(f"Rejected resource read {uri}: {e}")
            raise ResourceError(f"Cannot read {uri}: {e}") from e

    async def read_resource(self, uri: AnyUrl | str) -> Iterable[ReadResourceContents]:
        uri_str = str(uri)
        if not uri_str.startswith("file://"):
            return await super().read_resource(uri)

        data, mime_type = self.read_file(uri_str)
        return [ReadResourceContents(content=data, mime_type=mime_type)]


def build_server(manager: SandboxManager) -> SandboxServer:
    """Create the MCP server with all tools bound to the given manager."""
    server = SandboxServer(manager.settings.files_path, name=SERVER_NAME, instructions=SERVER_INSTRUCTIONS)

    for spec in create_sandbox_tools(manager):
        server.add_tool(spec.func, name=spec.name, description=spec.description, structured_output=False)

    server.prompt(name="run-node-js-script", description="Write and run a Node.js script")(run_node_js_script_prompt)

    def read_output_file(filepath: str) -> bytes:
        data, _ = server.read_file(f"file://{filepath}")
        return data

    server.resource(FILE_RESOURCE_TEMPLATE, name="file", description="A file written by a sandbox run")(
        read_output_file
    )
    return server


async def serve() -> None:
    """Run the server until stdin closes or a shutdown signal arrives."""
    settings = get_settings()
    manager = SandboxManager(settings)
    server = build_server(manager)

    loop = asyncio.get_running_loop()
    server_task = asyncio.create_task(server.run_stdio_async(), name="mcp-stdio")

    def _request_shutdown(sig: signal.Signals) -> None:
        logger.info(f"Received {sig.name}. Starting graceful shutdown...")
        server_task.cancel()

    for sig in (signal.SIGINT, signal.SIGTERM):
        with contextlib.suppress(NotImplementedError):
            loop.add_signal_handler(sig, _request_shutdown, sig)

    manager.start()
    logger.info("Server started and connected successfully")
    logger.info(
        f"Container timeout set to: {settings.node_container_timeout} seconds ({settings.container_timeout_ms}ms)"
    )

    try:
        with contextlib.suppress(asyncio.CancelledError):
            await server_task
    finally:
        await manager.shutdown()
        logger.info("Exiting.")


def main() -> None:
    """Console script entry point."""
    setup_logging()
    asyncio.run(serve())


if __name__ == "__main__":
    main()
