"""
Constants and configuration for JS Sandbox.
Centralizes all magic numbers and configuration values.
Includes Pydantic validation for environment variables.
"""

from __future__ import annotations

import os
import threading

from pathlib import Path
from typing import Any, Literal

from pydantic import AliasChoices, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic_settings.sources import (
    DotEnvSettingsSource,
    PydanticBaseSettingsSource,
)

# ============================================================================
# Project Paths
# ============================================================================

#: Project root directory (parent of src/)
PROJECT_ROOT = Path(__file__).parent.parent.parent.parent

# ============================================================================
# Sandbox Images
# ============================================================================

#: Image used when a caller does not name one.
DEFAULT_NODE_IMAGE = "node:lts-slim"

#: Images suggested to callers in the run_js_ephemeral tool description.
#: Maps image name to (description, reason).
SUGGESTED_IMAGES: dict[str, tuple[str, str]] = {
    "node:lts-slim": (
        "Node.js LTS version, slim variant.",
        "Lightweight and fast for JavaScript execution tasks.",
    ),
    "mcr.microsoft.com/playwright:v1.52.0-noble": (
        "Playwright image for browser automation.",
        "Preconfigured for running Playwright scripts.",
    ),
    "alfonsograziano/node-chartjs-canvas:latest": (
        "Chart.js image for chart generation and mermaid charts generation.",
        "Preconfigured for generating charts with chartjs-node-canvas and Mermaid.",
    ),
}

#: Substring identifying the chart.js image, which ships pre-cached packages
#: that still have to be declared in package.json.
CHARTJS_IMAGE_MARKER = "alfonsograziano/node-chartjs-canvas"

#: Packages pre-cached in the chart.js image.
CHARTJS_PRECACHED_DEPENDENCIES: dict[str, str] = {
    "chartjs-node-canvas": "4.0.0",
    "@mermaid-js/mermaid-cli": "^11.4.2",
}

# ============================================================================
# Container Layout
# ============================================================================

#: Working directory inside every sandbox container.
CONTAINER_WORKDIR = "/workspace"

#: Mount point of the host files directory inside the container.
CONTAINER_FILES_DIR = "/workspace/files"

#: Prefix for persistent sandbox container names.
SANDBOX_ID_PREFIX = "js-sbx-"

#: Prefix for ephemeral sandbox container names.
EPHEMERAL_ID_PREFIX = "js-ephemeral-"

#: Label marking containers created by this server.
SANDBOX_LABEL = "mcp-sandbox=true"

#: Label key carrying the server run identifier.
RUN_ID_LABEL_KEY = "mcp-server-run-id"

#: Label key carrying the creation timestamp (epoch ms).
CREATION_TIMESTAMP_LABEL_KEY = "mcp-creation-timestamp"

#: Command that keeps an idle sandbox alive.
KEEPALIVE_COMMAND = ("tail", "-f", "/dev/null")

# ============================================================================
# Workspace Files
# ============================================================================

#: Entry script written into every staged workspace.
ENTRY_SCRIPT_NAME = "index.js"

#: Dependency manifest written next to the entry script.
MANIFEST_NAME = "package.json"

#: Directory names never included in filesystem snapshots, at any depth.
SNAPSHOT_EXCLUDES: frozenset[str] = frozenset({".git", "node_modules"})

#: Mount point used for snapshots when this server itself runs in a container.
IN_CONTAINER_MOUNT_POINT = Path("/root")

# ============================================================================
# Execution Commands
# ============================================================================

#: Dependency installation command run inside the sandbox.
NPM_INSTALL_COMMAND = "npm install --omit=dev --prefer-offline --no-audit --loglevel=error"

#: Entry script command for synchronous runs.
RUN_COMMAND = "node index.js"

#: Entry script command for listen-on-port runs (detached, output to a log file).
BACKGROUND_RUN_COMMAND = "nohup node index.js > output.log 2>&1 &"

#: Install output recorded when there is nothing to install.
SKIPPED_INSTALL_OUTPUT = "Skipped npm install (no dependencies)"

#: Stdout reported for listen-on-port runs.
BACKGROUND_RUN_OUTPUT = "Server started in background; logs at /output.log"

#: Timeout for the `docker info` liveness check.
ENGINE_CHECK_TIMEOUT_SECONDS = 10.0

#: Timeout for docker create/cp/rm commands (not the script itself).
DOCKER_COMMAND_TIMEOUT_SECONDS = 120.0

# ============================================================================
# Output Extraction
# ============================================================================

#: MIME types returned inline as base64 image content.
IMAGE_MIME_TYPES: frozenset[str] = frozenset({"image/jpeg", "image/png"})

#: Fallback MIME type for unknown extensions.
DEFAULT_MIME_TYPE = "application/octet-stream"

# ============================================================================
# Logging Configuration
# ============================================================================

#: Maximum size in bytes for log files before rotation (10MB).
LOG_MAX_SIZE = 10 * 1024 * 1024

#: Number of sandbox log backups to retain during rotation.
LOG_BACKUP_COUNT_SANDBOX = 5

#: Number of error log backups to retain during rotation.
LOG_BACKUP_COUNT_ERRORS = 3

#: Maximum characters of tool arguments/results shown in log previews.
LOG_PREVIEW_LENGTH = 50

# ============================================================================
# Error Messages
# ============================================================================

#: Returned verbatim by every sandbox tool when the engine is unreachable.
DOCKER_NOT_RUNNING_ERROR = "Error: Docker is not running. Please start Docker and try again."

# ============================================================================
# Defaults
# ============================================================================

#: Sandbox idle timeout before the scavenger reclaims it.
DEFAULT_CONTAINER_TIMEOUT_SECONDS = 3600

#: Entry script execution timeout.
DEFAULT_RUN_SCRIPT_TIMEOUT_MS = 30_000

#: How often the scavenger checks the registry.
DEFAULT_SCAVENGER_INTERVAL_SECONDS = 60.0

#: Port readiness polling ceiling and interval.
DEFAULT_PORT_POLL_TIMEOUT_MS = 10_000
DEFAULT_PORT_POLL_INTERVAL_MS = 250

# ============================================================================
# Environment Configuration with Pydantic Validation
# ============================================================================

#: Valid environment names for configuration loading
Environment = Literal["development", "production", "test"]

#: Backend source directory for .env file resolution
_BACKEND_DIR = Path(__file__).parent.parent


def _get_env_files() -> list[Path]:
    """Determine which .env files to load based on APP_ENV.

    Load order (later files override earlier - pydantic-settings last-wins):
    1. .env (base defaults) - lowest priority
    2. .env.{environment} (environment-specific overrides)
    3. .env.local (local developer overrides, gitignored) - highest priority

    Returns:
        List of Path objects for env files that exist.
    """
    env_name = os.getenv("APP_ENV", "development").lower()
    if env_name not in ("development", "production", "test"):
        env_name = "development"

    candidates = [
        _BACKEND_DIR / ".env",
        _BACKEND_DIR / f".env.{env_name}",
        _BACKEND_DIR / ".env.local",
    ]
    return [p for p in candidates if p.exists()]


def _reload_dotenv_into_environ() -> None:
    """Reload our dotenv files into os.environ so environment-specific values win."""
    from dotenv import load_dotenv

    for env_file in _get_env_files():
        load_dotenv(env_file, override=True)


def _positive_int_or_default(value: Any, default: int) -> int:
    """Parse a positive integer, falling back to the default on anything else."""
    if value is None or value == "":
        return default
    try:
        parsed = int(str(value).strip())
    except ValueError:
        return default
    return parsed if parsed > 0 else default


class Settings(BaseSettings):
    """Environment settings with validation and environment-specific file support.

    Configuration priority (highest to lowest):
    1. Values passed to Settings() constructor
    2. Environment variables
    3. .env.local > .env.{APP_ENV} > .env (dotenv files, last wins)

    Timeouts that fail to parse, or are not positive, fall back to their
    defaults. Resource-limit overrides are validated against fixed patterns
    and fail fast at startup.
    """

    app_env: Environment = Field(default="development", description="Application environment")

    # Host directory bind-mounted into every sandbox at /workspace/files
    files_dir: str = Field(
        default="",
        validation_alias=AliasChoices("files_dir", "js_sandbox_output_dir"),
        description="Host directory mounted into sandboxes (FILES_DIR or legacy JS_SANDBOX_OUTPUT_DIR)",
    )

    # Lifecycle
    node_container_timeout: int = Field(
        default=DEFAULT_CONTAINER_TIMEOUT_SECONDS,
        description="Seconds a sandbox may live before the scavenger removes it",
    )
    run_script_timeout: int = Field(
        default=DEFAULT_RUN_SCRIPT_TIMEOUT_MS,
        description="Milliseconds an entry script may run before it is killed",
    )
    scavenger_interval_seconds: float = Field(
        default=DEFAULT_SCAVENGER_INTERVAL_SECONDS,
        gt=0,
        description="Seconds between scavenger checks",
    )

    # Resource limit overrides (take precedence over image profiles)
    sandbox_memory_limit: str | None = Field(
        default=None,
        pattern=r"^\d+(\.\d+)?[mMgG]?$",
        description='Memory limit override, e.g. "512m", "1g", or bytes',
    )
    sandbox_cpu_limit: str | None = Field(
        default=None,
        pattern=r"^\d+(\.\d+)?$",
        description='CPU limit override, e.g. "0.5", "2"',
    )

    # Port readiness polling for listen-on-port runs
    port_poll_timeout_ms: int = Field(default=DEFAULT_PORT_POLL_TIMEOUT_MS, gt=0)
    port_poll_interval_ms: int = Field(default=DEFAULT_PORT_POLL_INTERVAL_MS, gt=0)

    # Container engine
    docker_binary: str = Field(default="docker", description="Container engine CLI binary")
    default_image: str = Field(default=DEFAULT_NODE_IMAGE, description="Image used when none is given")

    # Debug and logging
    debug: bool = Field(default=False, description="Enable debug logging")
    enable_content_logging: bool = Field(
        default=False,
        description="Log (redacted) tool arguments and results instead of hiding them",
    )
    log_dir: str = Field(default="", description="Directory for JSON log files (default: <project>/logs)")

    model_config = SettingsConfigDict(
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
        populate_by_name=True,
    )

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ) -> tuple[PydanticBaseSettingsSource, ...]:
        """Environment variables override dotenv files; constructor values override both."""
        dotenv_source = DotEnvSettingsSource(
            settings_cls,
            env_file=_get_env_files(),
            env_file_encoding="utf-8",
        )
        return (init_settings, env_settings, dotenv_source)

    @field_validator("node_container_timeout", mode="before")
    @classmethod
    def validate_container_timeout(cls, v: Any) -> int:
        """Fall back to the default timeout on non-positive or unparsable values."""
        return _positive_int_or_default(v, DEFAULT_CONTAINER_TIMEOUT_SECONDS)

    @field_validator("run_script_timeout", mode="before")
    @classmethod
    def validate_run_script_timeout(cls, v: Any) -> int:
        """Fall back to the default run timeout on non-positive or unparsable values."""
        return _positive_int_or_default(v, DEFAULT_RUN_SCRIPT_TIMEOUT_MS)

    @field_validator("sandbox_memory_limit", "sandbox_cpu_limit", mode="before")
    @classmethod
    def empty_limit_is_unset(cls, v: Any) -> Any:
        """Treat empty strings as "no override"."""
        if isinstance(v, str) and not v.strip():
            return None
        return v

    @property
    def container_timeout_ms(self) -> int:
        """Sandbox idle timeout in milliseconds."""
        return self.node_container_timeout * 1000

    @property
    def files_path(self) -> Path:
        """Host files directory as a Path (current directory when unset)."""
        return Path(self.files_dir).expanduser() if self.files_dir else Path.cwd()

    @property
    def log_path(self) -> Path:
        """Directory for rotating JSON log files."""
        return Path(self.log_dir).expanduser() if self.log_dir else PROJECT_ROOT / "logs"


# ============================================================================
# Settings Management (Thread-safe)
# ============================================================================


class _SettingsManager:
    """Thread-safe settings manager.

    Uses a class to avoid global statement warnings from linters.
    """

    __slots__ = ("_instance", "_lock")

    def __init__(self) -> None:
        self._instance: Settings | None = None
        self._lock = threading.Lock()

    def get(self) -> Settings:
        """Get the cached settings instance, loading it on first use.

        Raises:
            ValueError: If configuration is invalid.
        """
        if self._instance is not None:
            return self._instance

        with self._lock:
            if self._instance is not None:
                return self._instance

            _reload_dotenv_into_environ()
            self._instance = Settings()
            return self._instance

    def reload(self) -> Settings:
        """Force reload settings from environment files."""
        with self._lock:
            _reload_dotenv_into_environ()
            self._instance = Settings()
            return self._instance

    def clear(self) -> None:
        """Clear cached settings instance."""
        with self._lock:
            self._instance = None


# Module-level singleton manager
_settings_manager = _SettingsManager()


def get_settings() -> Settings:
    """Get settings instance.

    This is the primary entry point for accessing application settings.
    Settings are validated on first access and cached.

    Raises:
        ValueError: If required configuration is missing or invalid.
    """
    return _settings_manager.get()


def reload_settings() -> Settings:
    """Force reload settings from environment files."""
    return _settings_manager.reload()


def clear_settings_cache() -> None:
    """Clear cached settings instance.

    Primarily useful for testing to ensure fresh settings on each test.
    """
    _settings_manager.clear()
