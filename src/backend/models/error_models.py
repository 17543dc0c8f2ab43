"""
Error types for JS Sandbox.

Every failure the engine can report maps to one SandboxError subclass and one
ErrorCode, so callers can branch on type and logs can group by code.
"""

from __future__ import annotations

from enum import Enum
from typing import Any


class ErrorCode(str, Enum):
    """Application-specific error codes for categorization."""

    # Container engine errors (1xxx)
    ENGINE_UNAVAILABLE = "ENG_1001"

    # Sandbox lifecycle errors (2xxx)
    SANDBOX_CREATION_FAILED = "SBX_2001"
    SANDBOX_CLEANUP_FAILED = "SBX_2002"

    # Execution errors (3xxx)
    EXECUTION_TIMEOUT = "EXE_3001"
    EXECUTION_FAILED = "EXE_3002"

    # Internal errors (9xxx)
    INTERNAL_ERROR = "INT_9001"


class SandboxError(Exception):
    """Base class for all sandbox engine errors."""

    code: ErrorCode = ErrorCode.INTERNAL_ERROR

    def __init__(self, message: str, *, sandbox_id: str | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.sandbox_id = sandbox_id

    def to_dict(self) -> dict[str, Any]:
        """Structured form for log records (safe to pass as logging `extra`)."""
        data: dict[str, Any] = {"error_code": self.code.value, "error_message": self.message}
        if self.sandbox_id:
            data["sandbox_id"] = self.sandbox_id
        return data


class EngineUnavailableError(SandboxError):
    """The container engine cannot be reached."""

    code = ErrorCode.ENGINE_UNAVAILABLE


class SandboxCreationError(SandboxError):
    """The container engine refused or failed to create a sandbox."""

    code = ErrorCode.SANDBOX_CREATION_FAILED


class ExecutionTimeoutError(SandboxError):
    """A command or readiness wait exceeded its deadline."""

    code = ErrorCode.EXECUTION_TIMEOUT

    def __init__(self, message: str, *, sandbox_id: str | None = None, timeout_ms: int | None = None) -> None:
        super().__init__(message, sandbox_id=sandbox_id)
        self.timeout_ms = timeout_ms


class ExecutionRuntimeError(SandboxError):
    """A command ran and exited non-zero, or a copy into the sandbox failed."""

    code = ErrorCode.EXECUTION_FAILED

    def __init__(
        self,
        message: str,
        *,
        sandbox_id: str | None = None,
        exit_code: int | None = None,
        output: str = "",
    ) -> None:
        super().__init__(message, sandbox_id=sandbox_id)
        self.exit_code = exit_code
        self.output = output


class CleanupError(SandboxError):
    """Force-removal of a sandbox failed. Reported, never raised past the adapter."""

    code = ErrorCode.SANDBOX_CLEANUP_FAILED
