"""Tests for sandbox and execution data models."""

from __future__ import annotations

import dataclasses
import json

import pytest

from pydantic import ValidationError

from models.error_models import ErrorCode
from models.sandbox_models import ChangeType, ExecutionTelemetry, NodeDependency, RunOutcome, Sandbox


class TestExecutionTelemetry:
    """Tests for telemetry serialization."""

    def test_serializes_camel_case(self) -> None:
        telemetry = ExecutionTelemetry(install_duration_ms=0, install_output="skipped", run_duration_ms=12)

        assert json.loads(telemetry.to_json()) == {
            "installDurationMs": 0,
            "installOutput": "skipped",
            "runDurationMs": 12,
        }

    def test_omits_unset_fields(self) -> None:
        telemetry = ExecutionTelemetry(install_duration_ms=5, install_output="ok")
        assert "runDurationMs" not in json.loads(telemetry.to_json())

    def test_accepts_aliases(self) -> None:
        telemetry = ExecutionTelemetry.model_validate({"installDurationMs": 3, "runDurationMs": 4})
        assert telemetry.install_duration_ms == 3
        assert telemetry.run_duration_ms == 4

    def test_pretty_printed(self) -> None:
        assert "\n  " in ExecutionTelemetry(run_duration_ms=1).to_json()


class TestNodeDependency:
    """Tests for dependency validation."""

    def test_requires_name_and_version(self) -> None:
        with pytest.raises(ValidationError):
            NodeDependency.model_validate({"name": "lodash"})

    def test_valid(self) -> None:
        dep = NodeDependency(name="lodash", version="^4.17.21")
        assert dep.model_dump() == {"name": "lodash", "version": "^4.17.21"}


class TestRunOutcome:
    """Tests for the run result record."""

    def test_success_without_error(self) -> None:
        outcome = RunOutcome(sandbox_id="js-sbx-1", stdout="ok")
        assert outcome.success
        assert outcome.changes == []
        assert outcome.telemetry.to_json() == "{}"

    def test_failure_with_error(self) -> None:
        outcome = RunOutcome(sandbox_id="js-sbx-1", error="boom", error_code=ErrorCode.EXECUTION_FAILED)
        assert not outcome.success

    def test_defaults_are_not_shared(self) -> None:
        first = RunOutcome(sandbox_id="a")
        second = RunOutcome(sandbox_id="b")
        first.content.append("x")
        assert second.content == []


class TestSandbox:
    """Tests for immutable records."""

    def test_frozen(self) -> None:
        sandbox = Sandbox(id="js-sbx-1", created_at=1, image="node:lts-slim")
        with pytest.raises(dataclasses.FrozenInstanceError):
            sandbox.id = "other"  # type: ignore[misc]

    def test_change_type_values(self) -> None:
        assert [t.value for t in ChangeType] == ["created", "updated", "deleted"]
