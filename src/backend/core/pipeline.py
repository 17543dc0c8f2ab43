"""
Execution pipeline for JavaScript runs.

One inner procedure serves both flavors:

    stage -> copy -> snapshot -> install -> run -> snapshot -> diff -> extract

The ephemeral flavor wraps it with create/force-remove of a throwaway sandbox;
the persistent flavor targets a caller-supplied sandbox and can launch the
script as a detached server, then wait for its port.

Timeouts and command failures end the run early. They become an error item
plus whatever telemetry was collected, never an exception to the caller.
"""

from __future__ import annotations

import asyncio
import time

from collections.abc import Sequence

import httpx

from core.constants import (
    BACKGROUND_RUN_COMMAND,
    BACKGROUND_RUN_OUTPUT,
    NPM_INSTALL_COMMAND,
    RUN_COMMAND,
    SKIPPED_INSTALL_OUTPUT,
)
from core.lifecycle import SandboxManager
from core.scavenger import now_ms
from models.error_models import ErrorCode, ExecutionRuntimeError, ExecutionTimeoutError
from models.sandbox_models import ExecutionTelemetry, NodeDependency, RunOutcome
from utils.content import changes_to_content, error_content, output_content, telemetry_content
from utils.environment import get_mount_point_dir
from utils.logger import logger
from utils.metrics import executions_total, install_duration_seconds, run_duration_seconds
from utils.snapshot import detect_changes, take_snapshot
from utils.workspace import preprocess_dependencies, staged_workspace


async def wait_for_port_http(port: int, timeout_ms: int = 10_000, interval_ms: int = 250) -> None:
    """
    Poll http://localhost:<port> until it answers with 2xx or 404.

    Raises:
        ExecutionTimeoutError: If the server is not up within timeout_ms
    """
    url = f"http://localhost:{port}"
    deadline = time.monotonic() + timeout_ms / 1000

    async with httpx.AsyncClient(timeout=interval_ms / 1000 * 4) as client:
        while time.monotonic() < deadline:
            try:
                response = await client.get(url)
                if response.is_success or response.status_code == 404:
                    return
            except httpx.HTTPError:
                pass  # server not ready yet
            await asyncio.sleep(interval_ms / 1000)

    raise ExecutionTimeoutError(
        f"Timeout: Server did not respond on {url} within {timeout_ms}ms",
        timeout_ms=timeout_ms,
    )


class ExecutionPipeline:
    """Runs JavaScript inside sandboxes owned by a SandboxManager."""

    def __init__(self, manager: SandboxManager) -> None:
        self.manager = manager
        self.runtime = manager.runtime
        self.settings = manager.settings

    async def run_in_sandbox(
        self,
        sandbox_id: str,
        code: str,
        dependencies: Sequence[NodeDependency] = (),
        listen_on_port: int | None = None,
    ) -> RunOutcome:
        """
        Run code in an existing sandbox. The sandbox is neither created nor removed.

        With listen_on_port the script is started detached (output goes to
        /workspace/output.log) and the run returns as soon as the port answers.
        """
        record = preprocess_dependencies(dependencies)
        outcome = await self._execute(sandbox_id, code, record, listen_on_port=listen_on_port)
        self._record_outcome("persistent", outcome)
        return outcome

    async def run_ephemeral(
        self,
        code: str,
        dependencies: Sequence[NodeDependency] = (),
        image: str | None = None,
    ) -> RunOutcome:
        """
        Run code in a fresh sandbox that is force-removed afterwards, on every exit path.

        Raises:
            SandboxCreationError: If the sandbox cannot be created
        """
        image = image or self.settings.default_image
        record = preprocess_dependencies(dependencies, image)
        sandbox = await self.manager.create_sandbox(image, ephemeral=True)
        try:
            outcome = await self._execute(sandbox.id, code, record)
        finally:
            await self.manager.stop_sandbox(sandbox.id, reason="ephemeral")

        self._record_outcome("ephemeral", outcome)
        return outcome

    async def _execute(
        self,
        sandbox_id: str,
        code: str,
        dependencies: dict[str, str],
        listen_on_port: int | None = None,
    ) -> RunOutcome:
        telemetry = ExecutionTelemetry()
        outcome = RunOutcome(sandbox_id=sandbox_id, telemetry=telemetry)
        files_dir = self.settings.files_path
        mount_dir = get_mount_point_dir(files_dir)

        with staged_workspace(code, dependencies) as workspace:
            try:
                await self.runtime.copy_into(sandbox_id, workspace)

                since_ms = now_ms()
                before = take_snapshot(mount_dir)

                await self._install(sandbox_id, dependencies, telemetry)

                if listen_on_port:
                    await self._run(sandbox_id, BACKGROUND_RUN_COMMAND, telemetry)
                    await wait_for_port_http(
                        listen_on_port,
                        timeout_ms=self.settings.port_poll_timeout_ms,
                        interval_ms=self.settings.port_poll_interval_ms,
                    )
                    outcome.stdout = BACKGROUND_RUN_OUTPUT
                else:
                    outcome.stdout = await self._run(sandbox_id, RUN_COMMAND, telemetry)
            except (ExecutionTimeoutError, ExecutionRuntimeError) as e:
                log_fields = {"sandbox_id": sandbox_id, **e.to_dict()}
                logger.warning(f"Execution failed in {sandbox_id}: {e.message}", **log_fields)
                outcome.error = e.message
                outcome.error_code = e.code
                outcome.content = [error_content(e.message)]
                if isinstance(e, ExecutionRuntimeError) and e.output:
                    outcome.stdout = e.output
                    outcome.content.append(output_content(e.output))
                outcome.content.append(telemetry_content(telemetry))
                return outcome

            after = take_snapshot(mount_dir)

        outcome.changes = detect_changes(before, after, since_ms)
        outcome.content = [
            output_content(outcome.stdout),
            *changes_to_content(outcome.changes, files_dir),
            telemetry_content(telemetry),
        ]
        return outcome

    async def _install(self, sandbox_id: str, dependencies: dict[str, str], telemetry: ExecutionTelemetry) -> None:
        if not dependencies:
            telemetry.install_duration_ms = 0
            telemetry.install_output = SKIPPED_INSTALL_OUTPUT
            return

        logger.info(f"Installing {len(dependencies)} dependencies in {sandbox_id}", sandbox_id=sandbox_id)
        result = await self.runtime.execute(sandbox_id, NPM_INSTALL_COMMAND)
        telemetry.install_duration_ms = result.duration_ms
        telemetry.install_output = result.output
        install_duration_seconds.observe(result.duration_ms / 1000)

    async def _run(self, sandbox_id: str, command: str, telemetry: ExecutionTelemetry) -> str:
        """Run the entry script, recording its duration even when it fails."""
        start = time.perf_counter()
        try:
            result = await self.runtime.execute(sandbox_id, command, timeout_ms=self.settings.run_script_timeout)
        finally:
            elapsed_ms = int((time.perf_counter() - start) * 1000)
            telemetry.run_duration_ms = elapsed_ms
            run_duration_seconds.observe(elapsed_ms / 1000)
        return result.output

    @staticmethod
    def _record_outcome(mode: str, outcome: RunOutcome) -> None:
        if outcome.success:
            status = "success"
        elif outcome.error_code is ErrorCode.EXECUTION_TIMEOUT:
            status = "timeout"
        else:
            status = "error"
        executions_total.labels(mode=mode, outcome=status).inc()

