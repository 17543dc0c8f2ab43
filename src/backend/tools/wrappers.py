"""
Manager-bound tool wrappers for the MCP server.

The MCP server calls tools with client arguments only, so the handlers in
tools.sandbox_tools are wrapped here in closures that capture the
SandboxManager at server creation time. Each wrapper carries the client-facing
signature (argument names, types and descriptions) the server publishes as
the tool's input schema, and is instrumented with metrics and call logging.
"""

from __future__ import annotations

import time

from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from functools import wraps
from typing import Annotated, Any

from pydantic import Field

from core.constants import DEFAULT_NODE_IMAGE, SUGGESTED_IMAGES
from core.lifecycle import SandboxManager
from models.sandbox_models import NodeDependency
from tools import sandbox_tools
from utils.content import Content
from utils.logger import logger
from utils.metrics import tool_call_duration_seconds, tool_calls_total

ToolFunc = Callable[..., Awaitable[list[Content]]]


def track_tool_execution(tool_name: str) -> Callable[[ToolFunc], ToolFunc]:
    """Decorator to track tool execution metrics and log each call."""

    def decorator(func: ToolFunc) -> ToolFunc:
        @wraps(func)
        async def wrapper(*args: Any, **kwargs: Any) -> list[Content]:
            start_time = time.perf_counter()
            status = "success"
            result: Any = None
            try:
                result = await func(*args, **kwargs)
                return result
            except Exception:
                status = "error"
                raise
            finally:
                duration = time.perf_counter() - start_time
                tool_calls_total.labels(tool_name=tool_name, status=status).inc()
                tool_call_duration_seconds.labels(tool_name=tool_name).observe(duration)
                logger.log_tool_call(tool_name, kwargs, result, duration_ms=duration * 1000)

        return wrapper

    return decorator


@dataclass(frozen=True)
class ToolSpec:
    """A tool ready to register with the MCP server."""

    name: str
    description: str
    func: ToolFunc


def generate_suggested_images() -> str:
    return "\n".join(
        f"- **{image}**: {description} ({reason})" for image, (description, reason) in SUGGESTED_IMAGES.items()
    )


FILES_DIR_HINT = (
    'When reading and writing from the Node.js processes, you always need to read from and write to the "./files" '
    "directory to ensure persistence on the mounted volume."
)

DEPENDENCIES_DESCRIPTION = (
    "A list of npm dependencies to install before running the code. "
    "Each item must have a `name` (package) and `version` (range). "
    "If none, returns an empty array."
)

SANDBOX_INITIALIZE_DESCRIPTION = (
    "Start a new isolated Docker container running Node.js. "
    "Used to set up a sandbox session for multiple commands and scripts."
)

SANDBOX_EXEC_DESCRIPTION = (
    "Execute one or more shell commands inside a running sandbox container. "
    "Requires a sandbox initialized beforehand."
)

RUN_JS_DESCRIPTION = (
    "Install npm dependencies and run JavaScript code inside a running sandbox container. "
    "After running, you must manually stop the sandbox to free resources. "
    "The code must be valid ESModules (import/export syntax). Best for complex workflows where you want "
    "to reuse the environment across multiple executions. " + FILES_DIR_HINT
)

RUN_JS_EPHEMERAL_DESCRIPTION = (
    "Run a JavaScript snippet in a temporary disposable container with optional npm dependencies, "
    "then automatically clean up. The code must be valid ESModules (import/export syntax). "
    "Ideal for simple one-shot executions without maintaining a sandbox or managing cleanup manually. "
    + FILES_DIR_HINT
    + "\nThis includes images (e.g., PNG, JPEG) and other files (e.g., text, JSON, binaries).\n"
    "Example:\n"
    "```js\n"
    'import fs from "fs/promises";\n'
    'await fs.writeFile("./files/hello.txt", "Hello world!");\n'
    'console.log("Saved ./files/hello.txt");\n'
    "```"
)

SANDBOX_STOP_DESCRIPTION = (
    "Terminate and remove a running sandbox container. "
    "Should be called after finishing work in a sandbox initialized with sandbox_initialize."
)


def create_sandbox_tools(manager: SandboxManager) -> list[ToolSpec]:
    """Create tool wrappers bound to a SandboxManager.

    Args:
        manager: Lifecycle manager shared by all tools

    Returns:
        ToolSpecs for sandbox_initialize, sandbox_exec, run_js,
        run_js_ephemeral and sandbox_stop
    """

    @track_tool_execution("sandbox_initialize")
    async def wrapped_sandbox_initialize(
        image: Annotated[str | None, Field(description="Docker image to use")] = None,
        port: Annotated[int | None, Field(description="If set, maps this container port to the host")] = None,
    ) -> list[Content]:
        return await sandbox_tools.sandbox_initialize(manager, image=image, port=port)

    @track_tool_execution("sandbox_exec")
    async def wrapped_sandbox_exec(
        container_id: Annotated[str, Field(description="Docker container identifier")],
        commands: Annotated[list[Annotated[str, Field(min_length=1)]], Field(description="Shell commands to run")],
    ) -> list[Content]:
        return await sandbox_tools.sandbox_exec(manager, container_id, commands)

    @track_tool_execution("run_js")
    async def wrapped_run_js(
        container_id: Annotated[str, Field(description="Docker container identifier")],
        code: Annotated[str, Field(description="JavaScript code to run inside the container.")],
        dependencies: Annotated[list[NodeDependency], Field(description=DEPENDENCIES_DESCRIPTION)] = [],  # noqa: B006
        listenOnPort: Annotated[  # noqa: N803
            int | None,
            Field(description="If set, leaves the process running and exposes this port to the host."),
        ] = None,
    ) -> list[Content]:
        return await sandbox_tools.run_js(manager, container_id, code, dependencies, listen_on_port=listenOnPort)

    @track_tool_execution("run_js_ephemeral")
    async def wrapped_run_js_ephemeral(
        code: Annotated[str, Field(description="JavaScript code to run inside the ephemeral container.")],
        image: Annotated[
            str,
            Field(description="Docker image to use for ephemeral execution. e.g. " + generate_suggested_images()),
        ] = DEFAULT_NODE_IMAGE,
        dependencies: Annotated[list[NodeDependency], Field(description=DEPENDENCIES_DESCRIPTION)] = [],  # noqa: B006
    ) -> list[Content]:
        return await sandbox_tools.run_js_ephemeral(manager, code, dependencies, image=image)

    @track_tool_execution("sandbox_stop")
    async def wrapped_sandbox_stop(
        container_id: Annotated[str, Field(description="Docker container identifier")],
    ) -> list[Content]:
        return await sandbox_tools.sandbox_stop(manager, container_id)

    logger.info("Creating sandbox tools")

    return [
        ToolSpec("sandbox_initialize", SANDBOX_INITIALIZE_DESCRIPTION, wrapped_sandbox_initialize),
        ToolSpec("sandbox_exec", SANDBOX_EXEC_DESCRIPTION, wrapped_sandbox_exec),
        ToolSpec("run_js", RUN_JS_DESCRIPTION, wrapped_run_js),
        ToolSpec("run_js_ephemeral", RUN_JS_EPHEMERAL_DESCRIPTION, wrapped_run_js_ephemeral),
        ToolSpec("sandbox_stop", SANDBOX_STOP_DESCRIPTION, wrapped_sandbox_stop),
    ]
