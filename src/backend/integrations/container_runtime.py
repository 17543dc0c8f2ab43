"""
Container Runtime - async wrapper around the docker CLI.

Every engine interaction (create, exec, cp, force-remove, liveness check) is a
`docker` subprocess run through asyncio. Timeouts kill the subprocess. Creation
and execution failures raise typed errors; force-removal never raises and
reports its outcome as a CleanupResult instead.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
import time

from collections.abc import Iterable
from dataclasses import dataclass
from pathlib import Path

from core.constants import (
    CONTAINER_FILES_DIR,
    CONTAINER_WORKDIR,
    DOCKER_COMMAND_TIMEOUT_SECONDS,
    ENGINE_CHECK_TIMEOUT_SECONDS,
    KEEPALIVE_COMMAND,
)
from core.resource_limits import ResourceLimits
from models.error_models import (
    CleanupError,
    EngineUnavailableError,
    ExecutionRuntimeError,
    ExecutionTimeoutError,
    SandboxCreationError,
)
from models.sandbox_models import ExecResult

logger = logging.getLogger(__name__)

#: Engine stderr marker for a container that no longer exists.
NO_SUCH_CONTAINER = "No such container"


@dataclass
class CleanupResult:
    """Outcome of a best-effort force-removal."""

    ok: bool
    error: CleanupError | None = None

    @property
    def message(self) -> str | None:
        return self.error.message if self.error else None


@dataclass
class _CommandOutput:
    returncode: int
    stdout: str
    stderr: str


def _decode(data: bytes | None) -> str:
    return data.decode("utf-8", errors="replace") if data else ""


class DockerRuntime:
    """
    Typed async operations over the docker CLI.

    Args:
        binary: Docker-compatible CLI binary (e.g. "docker", "podman")
        command_timeout: Seconds allowed for create/cp/rm commands
    """

    def __init__(self, binary: str = "docker", command_timeout: float = DOCKER_COMMAND_TIMEOUT_SECONDS) -> None:
        self.binary = binary
        self.command_timeout = command_timeout

    async def _run(self, *args: str, timeout: float | None = None) -> _CommandOutput:
        """
        Run one docker command and capture its output.

        Raises:
            EngineUnavailableError: If the binary cannot be executed
            asyncio.TimeoutError: If the command outlives `timeout` (process is killed)
        """
        try:
            proc = await asyncio.create_subprocess_exec(
                self.binary,
                *args,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except (FileNotFoundError, PermissionError) as e:
            raise EngineUnavailableError(f"Cannot execute {self.binary}: {e}") from e

        try:
            stdout, stderr = await asyncio.wait_for(proc.communicate(), timeout=timeout)
        except BaseException:
            # Timeout or cancellation of the caller: never leave the docker CLI running
            if proc.returncode is None:
                with contextlib.suppress(ProcessLookupError):
                    proc.kill()
                await proc.wait()
            raise

        return _CommandOutput(
            returncode=proc.returncode or 0,
            stdout=_decode(stdout),
            stderr=_decode(stderr),
        )

    async def is_engine_available(self) -> bool:
        """Check that the engine answers `docker info` within a short timeout."""
        try:
            result = await self._run("info", timeout=ENGINE_CHECK_TIMEOUT_SECONDS)
        except EngineUnavailableError as e:
            logger.warning(f"Container engine unavailable: {e}")
            return False
        except asyncio.TimeoutError:
            logger.warning("Container engine check timed out")
            return False
        return result.returncode == 0

    async def create(
        self,
        sandbox_id: str,
        image: str,
        limits: ResourceLimits,
        mount_dir: Path,
        port: int | None = None,
        labels: Iterable[str] = (),
    ) -> None:
        """
        Start a detached sandbox container kept alive by `tail -f /dev/null`.

        With a port the container publishes it on the same host port; without
        one it shares the host network.

        Raises:
            SandboxCreationError: If the engine fails to create the container.
                A best-effort force-removal of any partial container runs first.
        """
        cmd_args = ["run", "-d"]
        if port:
            cmd_args.extend(["-p", f"{port}:{port}"])
        else:
            cmd_args.extend(["--network", "host"])
        cmd_args.extend(limits.to_docker_args())
        cmd_args.extend(["--workdir", CONTAINER_WORKDIR, "-v", f"{mount_dir}:{CONTAINER_FILES_DIR}"])
        for label in labels:
            cmd_args.extend(["--label", label])
        cmd_args.extend(["--name", sandbox_id, image, *KEEPALIVE_COMMAND])

        logger.info(f"Creating sandbox {sandbox_id} from {image}")
        try:
            result = await self._run(*cmd_args, timeout=self.command_timeout)
        except EngineUnavailableError as e:
            raise SandboxCreationError(str(e), sandbox_id=sandbox_id) from e
        except asyncio.TimeoutError as e:
            await self.force_remove(sandbox_id)
            raise SandboxCreationError(
                f"Timed out after {self.command_timeout}s creating {sandbox_id}", sandbox_id=sandbox_id
            ) from e

        if result.returncode != 0:
            await self.force_remove(sandbox_id)
            message = result.stderr.strip() or f"docker run exited with code {result.returncode}"
            raise SandboxCreationError(message, sandbox_id=sandbox_id)

    async def execute(self, sandbox_id: str, command: str, timeout_ms: int | None = None) -> ExecResult:
        """
        Run a shell command inside a sandbox via `docker exec ... /bin/sh -c`.

        Args:
            sandbox_id: Target sandbox
            command: Shell command string
            timeout_ms: Hard deadline; the exec process is killed when exceeded

        Returns:
            ExecResult with stdout and duration

        Raises:
            ExecutionTimeoutError: If the deadline passes
            ExecutionRuntimeError: If the command exits non-zero
        """
        start = time.perf_counter()
        timeout = timeout_ms / 1000 if timeout_ms else None
        try:
            result = await self._run("exec", sandbox_id, "/bin/sh", "-c", command, timeout=timeout)
        except asyncio.TimeoutError as e:
            raise ExecutionTimeoutError(
                f"Command timed out after {timeout_ms}ms: {command}",
                sandbox_id=sandbox_id,
                timeout_ms=timeout_ms,
            ) from e
        except EngineUnavailableError as e:
            raise ExecutionRuntimeError(str(e), sandbox_id=sandbox_id) from e

        duration_ms = int((time.perf_counter() - start) * 1000)
        if result.returncode != 0:
            raise ExecutionRuntimeError(
                f"Command failed: {command}\n{result.stderr or result.stdout}".rstrip(),
                sandbox_id=sandbox_id,
                exit_code=result.returncode,
                output=result.stdout,
            )
        return ExecResult(output=result.stdout, duration_ms=duration_ms)

    async def copy_into(self, sandbox_id: str, local_dir: Path) -> None:
        """
        Recursively copy a local directory's contents into the sandbox workdir.

        Raises:
            ExecutionRuntimeError: If the copy fails or times out
        """
        src = f"{local_dir}/."
        dst = f"{sandbox_id}:{CONTAINER_WORKDIR}"
        try:
            result = await self._run("cp", src, dst, timeout=self.command_timeout)
        except asyncio.TimeoutError as e:
            raise ExecutionRuntimeError(
                f"Container cp timed out after {self.command_timeout}s: {src} -> {dst}", sandbox_id=sandbox_id
            ) from e
        except EngineUnavailableError as e:
            raise ExecutionRuntimeError(str(e), sandbox_id=sandbox_id) from e

        if result.returncode != 0:
            err_msg = result.stderr.strip()
            logger.warning(f"Container cp failed: {err_msg}")
            raise ExecutionRuntimeError(
                f"Failed to copy workspace into {sandbox_id}: {err_msg}",
                sandbox_id=sandbox_id,
                exit_code=result.returncode,
            )

    async def force_remove(self, sandbox_id: str) -> CleanupResult:
        """
        Force stop-and-remove a container. A container that is already gone counts as removed.

        Never raises; failures are logged and returned.
        """
        logger.info(f"Removing container {sandbox_id}...")
        try:
            result = await self._run("rm", "-f", sandbox_id, timeout=self.command_timeout)
        except asyncio.TimeoutError:
            return self._cleanup_failed(sandbox_id, f"Timed out after {self.command_timeout}s removing {sandbox_id}")
        except Exception as e:
            return self._cleanup_failed(sandbox_id, str(e))

        if result.returncode != 0 and NO_SUCH_CONTAINER in result.stderr:
            logger.info(f"Container {sandbox_id} already removed")
            return CleanupResult(ok=True)

        if result.returncode != 0:
            message = result.stderr.strip() or f"docker rm exited with code {result.returncode}"
            return self._cleanup_failed(sandbox_id, message)

        return CleanupResult(ok=True)

    @staticmethod
    def _cleanup_failed(sandbox_id: str, message: str) -> CleanupResult:
        error = CleanupError(message, sandbox_id=sandbox_id)
        logger.error(f"Error removing container {sandbox_id}: {message}", extra=error.to_dict())
        return CleanupResult(ok=False, error=error)
