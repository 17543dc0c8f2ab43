"""
Sandbox lifecycle manager.

SandboxManager is the single owner of the registry, the container runtime
adapter and the scavenger. Tool handlers and the execution pipeline receive
it by reference instead of reaching for module-level state.

Shutdown stops the scavenger and force-removes every registered sandbox.
Pipeline runs still in flight are not awaited; because ephemeral sandboxes
are registered for the duration of their run, the drain removes their
containers as well.
"""

from __future__ import annotations

import asyncio
import uuid

from core.constants import (
    CREATION_TIMESTAMP_LABEL_KEY,
    EPHEMERAL_ID_PREFIX,
    RUN_ID_LABEL_KEY,
    SANDBOX_ID_PREFIX,
    SANDBOX_LABEL,
    Settings,
    get_settings,
)
from core.registry import SandboxRegistry
from core.resource_limits import resolve_resource_limits
from core.scavenger import Scavenger, now_ms
from integrations.container_runtime import CleanupResult, DockerRuntime
from models.error_models import SandboxCreationError
from models.sandbox_models import Sandbox
from utils.logger import logger
from utils.metrics import (
    sandbox_creation_failures_total,
    sandboxes_active,
    sandboxes_created_total,
    sandboxes_removed_total,
)


class SandboxManager:
    """Creates, tracks and removes sandboxes."""

    def __init__(
        self,
        settings: Settings | None = None,
        runtime: DockerRuntime | None = None,
        registry: SandboxRegistry | None = None,
        run_id: str | None = None,
    ) -> None:
        self.settings = settings or get_settings()
        self.runtime = runtime or DockerRuntime(binary=self.settings.docker_binary)
        self.registry = registry or SandboxRegistry()
        self.run_id = run_id or str(uuid.uuid4())
        self.scavenger = Scavenger(
            self.registry,
            self.runtime,
            timeout_ms=self.settings.container_timeout_ms,
            interval_seconds=self.settings.scavenger_interval_seconds,
        )

    async def is_engine_available(self) -> bool:
        return await self.runtime.is_engine_available()

    def start(self) -> None:
        """Start background reclamation."""
        self.scavenger.start()

    async def create_sandbox(
        self,
        image: str | None = None,
        port: int | None = None,
        ephemeral: bool = False,
    ) -> Sandbox:
        """
        Create a sandbox and register it once the engine confirms creation.

        Args:
            image: Container image (defaults to the configured default image)
            port: Host port to publish (shares host network when None)
            ephemeral: Use the ephemeral id prefix

        Returns:
            The registered Sandbox

        Raises:
            SandboxCreationError: If the engine fails to create the container
        """
        image = image or self.settings.default_image
        prefix = EPHEMERAL_ID_PREFIX if ephemeral else SANDBOX_ID_PREFIX
        sandbox_id = f"{prefix}{uuid.uuid4()}"
        created_at = now_ms()

        limits = resolve_resource_limits(
            image,
            memory_override=self.settings.sandbox_memory_limit,
            cpu_override=self.settings.sandbox_cpu_limit,
        )
        labels = [
            SANDBOX_LABEL,
            f"{RUN_ID_LABEL_KEY}={self.run_id}",
            f"{CREATION_TIMESTAMP_LABEL_KEY}={created_at}",
        ]

        try:
            await self.runtime.create(
                sandbox_id,
                image,
                limits,
                mount_dir=self.settings.files_path,
                port=port,
                labels=labels,
            )
        except SandboxCreationError as e:
            sandbox_creation_failures_total.inc()
            logger.error(f"Failed to create sandbox {sandbox_id}: {e.message}", sandbox_id=sandbox_id)
            raise

        self.registry.register(sandbox_id, created_at)
        sandboxes_created_total.labels(kind="ephemeral" if ephemeral else "persistent").inc()
        sandboxes_active.set(len(self.registry))
        logger.info(f"Sandbox {sandbox_id} ready", sandbox_id=sandbox_id)
        return Sandbox(id=sandbox_id, created_at=created_at, image=image)

    async def stop_sandbox(self, sandbox_id: str, reason: str = "stop") -> CleanupResult:
        """Force-remove a sandbox and deregister it whatever the outcome."""
        try:
            result = await self.runtime.force_remove(sandbox_id)
        finally:
            self.registry.remove(sandbox_id)
            sandboxes_active.set(len(self.registry))

        sandboxes_removed_total.labels(reason=reason, status="success" if result.ok else "error").inc()
        return result

    async def drain(self) -> None:
        """Force-remove every registered sandbox, tolerating partial failure."""
        sandbox_ids = [sandbox_id for sandbox_id, _ in self.registry.list()]
        if not sandbox_ids:
            logger.info("[Shutdown Cleanup] No active containers to clean up.")
            return

        logger.info(f"[Shutdown Cleanup] Cleaning up {len(sandbox_ids)} active containers...")
        results = await asyncio.gather(
            *(self.stop_sandbox(sid, reason="shutdown") for sid in sandbox_ids),
            return_exceptions=True,
        )
        for sandbox_id, result in zip(sandbox_ids, results, strict=True):
            if isinstance(result, BaseException):
                logger.error(f"[Shutdown Cleanup] Error stopping container {sandbox_id}: {result}")
                self.registry.remove(sandbox_id)

        sandboxes_active.set(len(self.registry))
        logger.info("[Shutdown Cleanup] Container cleanup finished.")

    async def shutdown(self) -> None:
        """Stop the scavenger, then drain the registry."""
        await self.scavenger.stop()
        await self.drain()
