"""Shared test fixtures for JS Sandbox test suite.

This module provides common fixtures used across all test modules,
including real settings pointed at a temp directory and a mocked
container runtime so no test needs a Docker engine.
"""

from __future__ import annotations

from collections.abc import Generator
from pathlib import Path
from unittest.mock import AsyncMock, MagicMock

import pytest

from core.constants import Settings
from core.lifecycle import SandboxManager
from integrations.container_runtime import CleanupResult, DockerRuntime
from models.sandbox_models import ExecResult

# ============================================================================
# Test Isolation: Settings Management (MUST BE FIRST)
# ============================================================================


@pytest.fixture(autouse=True, scope="function")
def reset_settings_singleton(monkeypatch: pytest.MonkeyPatch) -> Generator[None, None, None]:
    """Reset settings singleton before each test to prevent state pollution.

    Also stops dotenv files on the developer machine from leaking into tests.
    """
    from core import constants

    constants._settings_manager._instance = None
    monkeypatch.setattr("core.constants._get_env_files", lambda: [])

    yield

    constants._settings_manager._instance = None


@pytest.fixture
def files_dir(tmp_path_factory: pytest.TempPathFactory) -> Path:
    """Host files directory mounted into sandboxes.

    Kept outside tmp_path so tests that walk tmp_path see only their own entries.
    """
    return tmp_path_factory.mktemp("files")


@pytest.fixture(autouse=True)
def sandbox_settings(
    reset_settings_singleton: None, tmp_path: Path, files_dir: Path, monkeypatch: pytest.MonkeyPatch
) -> Settings:
    """Provide real settings that work without .env files or environment.

    Patched into every module that reads settings through get_settings().
    """
    settings = Settings(
        files_dir=str(files_dir),
        log_dir=str(tmp_path / "logs"),
        node_container_timeout=3600,
        run_script_timeout=30_000,
        sandbox_memory_limit=None,
        sandbox_cpu_limit=None,
        scavenger_interval_seconds=60,
        port_poll_timeout_ms=500,
        port_poll_interval_ms=10,
        docker_binary="docker",
        default_image="node:lts-slim",
        debug=False,
        enable_content_logging=False,
    )

    monkeypatch.setattr("utils.logger.get_settings", lambda: settings)
    monkeypatch.setattr("core.lifecycle.get_settings", lambda: settings)

    return settings


# ============================================================================
# Container runtime mocks
# ============================================================================


@pytest.fixture
def mock_runtime() -> MagicMock:
    """DockerRuntime with every engine call mocked to succeed."""
    runtime = MagicMock(spec=DockerRuntime)
    runtime.is_engine_available = AsyncMock(return_value=True)
    runtime.create = AsyncMock(return_value=None)
    runtime.execute = AsyncMock(return_value=ExecResult(output="", duration_ms=5))
    runtime.copy_into = AsyncMock(return_value=None)
    runtime.force_remove = AsyncMock(return_value=CleanupResult(ok=True))
    return runtime


@pytest.fixture
def manager(sandbox_settings: Settings, mock_runtime: MagicMock) -> SandboxManager:
    """SandboxManager wired to the mocked runtime."""
    return SandboxManager(settings=sandbox_settings, runtime=mock_runtime, run_id="test-run")
