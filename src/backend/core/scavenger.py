"""
Scavenger background worker.

Periodically force-removes sandboxes older than the container timeout and
drops them from the registry. A sandbox is deregistered after the removal
attempt whether or not the engine reported success.
"""

from __future__ import annotations

import asyncio
import contextlib
import time

from core.registry import SandboxRegistry
from integrations.container_runtime import DockerRuntime
from utils.logger import logger
from utils.metrics import sandboxes_active, sandboxes_removed_total


def now_ms() -> int:
    """Wall-clock time in epoch milliseconds."""
    return int(time.time() * 1000)


class Scavenger:
    """Background worker reclaiming timed-out sandboxes.

    Lifecycle: Idle -> Running(check) -> Idle on every interval, Stopped only
    after stop(). stop() sets a stop event so a sleeping loop wakes up at once,
    then cancels the task if a check is still in flight.
    """

    def __init__(
        self,
        registry: SandboxRegistry,
        runtime: DockerRuntime,
        timeout_ms: int,
        interval_seconds: float = 60.0,
    ) -> None:
        """Initialize the scavenger.

        Args:
            registry: Registry shared with the lifecycle manager
            runtime: Adapter used to force-remove containers
            timeout_ms: Maximum sandbox age before reclamation
            interval_seconds: Seconds between checks
        """
        self.registry = registry
        self.runtime = runtime
        self.timeout_ms = timeout_ms
        self.interval_seconds = interval_seconds
        self._stop_event = asyncio.Event()
        self._task: asyncio.Task[None] | None = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        """Start the background loop. Must be called from a running event loop."""
        if self.running:
            logger.warning("Scavenger already running")
            return

        self._stop_event = asyncio.Event()
        self._task = asyncio.create_task(self._run_loop(), name="sandbox-scavenger")
        logger.info(
            f"Starting container scavenger. Timeout: {self.timeout_ms // 1000}s, "
            f"Check Interval: {self.interval_seconds}s"
        )

    async def stop(self) -> None:
        """Stop the background loop and wait for it to exit."""
        self._stop_event.set()
        if self._task:
            self._task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._task
            self._task = None
        logger.info("Scavenger stopped")

    async def _run_loop(self) -> None:
        while not self._stop_event.is_set():
            with contextlib.suppress(asyncio.TimeoutError):
                await asyncio.wait_for(self._stop_event.wait(), timeout=self.interval_seconds)
            if self._stop_event.is_set():
                break

            try:
                await self.tick()
            except Exception as e:
                logger.error(f"Scavenger check failed: {e}", exc_info=True)

    async def tick(self, now: int | None = None) -> list[str]:
        """Run one check.

        Args:
            now: Current time in epoch ms (wall clock when None)

        Returns:
            Ids of the sandboxes that were reclaimed
        """
        current = now if now is not None else now_ms()
        entries = self.registry.list()
        if entries:
            logger.debug(f"Checking {len(entries)} active containers for timeout ({self.timeout_ms // 1000}s)...")

        expired = [sandbox_id for sandbox_id, created_at in entries if current - created_at > self.timeout_ms]
        if not expired:
            return []

        results = await asyncio.gather(*(self._reclaim(sid) for sid in expired), return_exceptions=True)
        for sandbox_id, result in zip(expired, results, strict=True):
            if isinstance(result, BaseException):
                logger.error(f"Error during forced stop of {sandbox_id}: {result}", sandbox_id=sandbox_id)
                self.registry.remove(sandbox_id)

        sandboxes_active.set(len(self.registry))
        return expired

    async def _reclaim(self, sandbox_id: str) -> None:
        logger.warning(f"Container {sandbox_id} timed out. Forcing removal.", sandbox_id=sandbox_id)
        try:
            result = await self.runtime.force_remove(sandbox_id)
        finally:
            self.registry.remove(sandbox_id)

        status = "success" if result.ok else "error"
        sandboxes_removed_total.labels(reason="scavenged", status=status).inc()
        logger.info(f"Removed container {sandbox_id} from registry.", sandbox_id=sandbox_id)
