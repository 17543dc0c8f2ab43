"""
Data models for sandboxes and execution runs.

Plain dataclasses for internal records that never cross a boundary, Pydantic
models for anything serialized back to the caller (telemetry, dependencies).
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from models.error_models import ErrorCode


class ChangeType(str, Enum):
    """How a path differs between two filesystem snapshots."""

    CREATED = "created"
    UPDATED = "updated"
    DELETED = "deleted"


@dataclass(frozen=True)
class Sandbox:
    """A live sandbox as recorded at creation time."""

    id: str
    created_at: int  # epoch ms
    image: str


@dataclass(frozen=True)
class FileState:
    """Snapshot entry for a single path."""

    mtime_ms: float
    is_directory: bool


#: Mapping of absolute path to its state at snapshot time.
FilesystemSnapshot = dict[str, FileState]


@dataclass(frozen=True)
class Change:
    """A single created/updated/deleted path detected after a run."""

    type: ChangeType
    path: str
    is_directory: bool = False


@dataclass
class ExecResult:
    """Output and duration of one command run inside a sandbox."""

    output: str
    duration_ms: int


class NodeDependency(BaseModel):
    """An npm package requested by a caller."""

    name: str = Field(description="npm package name")
    version: str = Field(description="Version or semver range")


class ExecutionTelemetry(BaseModel):
    """Timings and install output for one pipeline run.

    Serialized with camelCase keys, e.g.
    {"installDurationMs": 0, "installOutput": "...", "runDurationMs": 12}
    """

    model_config = ConfigDict(populate_by_name=True)

    install_duration_ms: int | None = Field(default=None, alias="installDurationMs")
    install_output: str | None = Field(default=None, alias="installOutput")
    run_duration_ms: int | None = Field(default=None, alias="runDurationMs")

    def to_json(self) -> str:
        return self.model_dump_json(by_alias=True, exclude_none=True, indent=2)


@dataclass
class RunOutcome:
    """Everything one pipeline run produced, success or failure."""

    sandbox_id: str
    stdout: str = ""
    changes: list[Change] = field(default_factory=list)
    content: list[Any] = field(default_factory=list)
    telemetry: ExecutionTelemetry = field(default_factory=ExecutionTelemetry)
    error: str | None = None
    error_code: ErrorCode | None = None

    @property
    def success(self) -> bool:
        return self.error is None
