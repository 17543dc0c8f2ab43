"""
Sandbox tools - the five operations exposed to MCP clients.

Every handler first checks that the container engine is reachable and
returns a fixed message when it is not. Handlers return MCP content lists.

Error policy:
- creation failures of sandbox_initialize and stop failures become text
- execution timeouts and failures inside run_js/run_js_ephemeral become an
  error item plus telemetry (see ExecutionPipeline)
- sandbox_exec command failures and run_js_ephemeral creation failures
  propagate and are reported by the MCP server as tool errors
"""

from __future__ import annotations

from collections.abc import Sequence

from core.constants import DOCKER_NOT_RUNNING_ERROR
from core.lifecycle import SandboxManager
from core.pipeline import ExecutionPipeline
from models.error_models import SandboxCreationError
from models.sandbox_models import NodeDependency
from utils.content import Content, text_content
from utils.logger import logger


async def _engine_unavailable(manager: SandboxManager) -> list[Content] | None:
    if await manager.is_engine_available():
        return None
    logger.warning("Container engine is not running")
    return [text_content(DOCKER_NOT_RUNNING_ERROR)]


async def sandbox_initialize(manager: SandboxManager, image: str | None = None, port: int | None = None) -> list[Content]:
    """
    Start a new persistent sandbox.

    Args:
        manager: Lifecycle manager
        image: Container image (default node:lts-slim)
        port: Container port to publish on the same host port

    Returns:
        The sandbox id, or a failure message
    """
    if unavailable := await _engine_unavailable(manager):
        return unavailable

    try:
        sandbox = await manager.create_sandbox(image, port=port)
    except SandboxCreationError as e:
        return [text_content(f"Failed to initialize sandbox container: {e.message}")]

    return [text_content(sandbox.id)]


async def sandbox_exec(manager: SandboxManager, container_id: str, commands: Sequence[str]) -> list[Content]:
    """Run shell commands in order inside a sandbox and join their outputs with newlines."""
    if unavailable := await _engine_unavailable(manager):
        return unavailable

    outputs: list[str] = []
    for command in commands:
        result = await manager.runtime.execute(container_id, command)
        outputs.append(result.output)

    return [text_content("\n".join(outputs))]


async def run_js(
    manager: SandboxManager,
    container_id: str,
    code: str,
    dependencies: Sequence[NodeDependency] = (),
    listen_on_port: int | None = None,
) -> list[Content]:
    """Install dependencies and run code inside an existing sandbox."""
    if unavailable := await _engine_unavailable(manager):
        return unavailable

    outcome = await ExecutionPipeline(manager).run_in_sandbox(
        container_id, code, dependencies, listen_on_port=listen_on_port
    )
    return outcome.content


async def run_js_ephemeral(
    manager: SandboxManager,
    code: str,
    dependencies: Sequence[NodeDependency] = (),
    image: str | None = None,
) -> list[Content]:
    """Run code in a throwaway sandbox that is always removed afterwards."""
    if unavailable := await _engine_unavailable(manager):
        return unavailable

    outcome = await ExecutionPipeline(manager).run_ephemeral(code, dependencies, image=image)
    return outcome.content


async def sandbox_stop(manager: SandboxManager, container_id: str) -> list[Content]:
    """Force-remove a sandbox. It is deregistered even when removal fails."""
    if unavailable := await _engine_unavailable(manager):
        return unavailable

    result = await manager.stop_sandbox(container_id)
    if not result.ok:
        return [text_content(f"Error removing container {container_id}: {result.message}")]
    return [text_content(f"Container {container_id} removed.")]
