"""Tests for workspace staging."""

from __future__ import annotations

import json

from pathlib import Path

import pytest

from models.sandbox_models import NodeDependency
from utils.workspace import STAGING_PREFIX, prepare_workspace, preprocess_dependencies, staged_workspace


class TestPreprocessDependencies:
    """Tests for dependency record building."""

    def test_plain_image(self) -> None:
        deps = [NodeDependency(name="lodash", version="^4"), NodeDependency(name="zod", version="3.23.8")]
        assert preprocess_dependencies(deps, "node:lts-slim") == {"lodash": "^4", "zod": "3.23.8"}

    def test_empty(self) -> None:
        assert preprocess_dependencies([]) == {}

    def test_later_duplicate_wins(self) -> None:
        deps = [NodeDependency(name="lodash", version="1"), NodeDependency(name="lodash", version="2")]
        assert preprocess_dependencies(deps) == {"lodash": "2"}

    def test_chartjs_image_adds_precached_packages(self) -> None:
        record = preprocess_dependencies([], "alfonsograziano/node-chartjs-canvas:latest")
        assert record == {"chartjs-node-canvas": "4.0.0", "@mermaid-js/mermaid-cli": "^11.4.2"}

    def test_chartjs_versions_are_pinned(self) -> None:
        deps = [NodeDependency(name="chartjs-node-canvas", version="3.0.0")]
        record = preprocess_dependencies(deps, "alfonsograziano/node-chartjs-canvas:v2")
        assert record["chartjs-node-canvas"] == "4.0.0"


class TestPrepareWorkspace:
    """Tests for on-disk staging."""

    def test_writes_entry_and_manifest(self, tmp_path: Path) -> None:
        workspace = prepare_workspace("console.log(1)", {"lodash": "^4"}, directory=tmp_path)

        assert workspace == tmp_path
        assert (tmp_path / "index.js").read_text() == "console.log(1)"
        manifest_text = (tmp_path / "package.json").read_text()
        assert json.loads(manifest_text) == {"type": "module", "dependencies": {"lodash": "^4"}}
        assert '\n  "type"' in manifest_text

    def test_creates_temp_directory(self) -> None:
        with staged_workspace("", {}) as workspace:
            assert workspace.name.startswith(STAGING_PREFIX)
            assert json.loads((workspace / "package.json").read_text())["dependencies"] == {}

    def test_staged_workspace_removed_on_error(self) -> None:
        with pytest.raises(ValueError):
            with staged_workspace("code", {}) as workspace:
                raise ValueError("boom")

        assert not workspace.exists()

    def test_staged_workspace_removed_on_success(self) -> None:
        with staged_workspace("code", {}) as workspace:
            assert (workspace / "index.js").exists()

        assert not workspace.exists()
