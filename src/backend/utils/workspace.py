"""
Local staging of the code and manifest copied into a sandbox.
"""

from __future__ import annotations

import json
import logging
import shutil
import tempfile

from collections.abc import Iterable, Iterator
from contextlib import contextmanager
from pathlib import Path

from core.constants import (
    CHARTJS_IMAGE_MARKER,
    CHARTJS_PRECACHED_DEPENDENCIES,
    ENTRY_SCRIPT_NAME,
    MANIFEST_NAME,
)
from models.sandbox_models import NodeDependency

logger = logging.getLogger(__name__)

STAGING_PREFIX = "js-sandbox-"


def preprocess_dependencies(dependencies: Iterable[NodeDependency], image: str | None = None) -> dict[str, str]:
    """
    Convert a dependency list into the `name -> version` record for package.json.

    The chart.js image ships pre-cached packages that still have to be
    declared, so they are added (and pinned) when that image is used.
    """
    record = {dep.name: dep.version for dep in dependencies}
    if image and CHARTJS_IMAGE_MARKER in image:
        record.update(CHARTJS_PRECACHED_DEPENDENCIES)
    return record


def prepare_workspace(code: str, dependencies: dict[str, str], directory: Path | None = None) -> Path:
    """
    Write the entry script and an ES-module manifest into a staging directory.

    Args:
        code: JavaScript source for index.js
        dependencies: Record of npm package name to version range
        directory: Existing directory to write into (a new temp dir when None)

    Returns:
        Path to the staging directory
    """
    workspace = directory or Path(tempfile.mkdtemp(prefix=STAGING_PREFIX))
    (workspace / ENTRY_SCRIPT_NAME).write_text(code, encoding="utf-8")
    manifest = {"type": "module", "dependencies": dependencies}
    (workspace / MANIFEST_NAME).write_text(json.dumps(manifest, indent=2), encoding="utf-8")
    return workspace


@contextmanager
def staged_workspace(code: str, dependencies: dict[str, str]) -> Iterator[Path]:
    """Prepare a workspace and remove it on every exit path."""
    workspace = prepare_workspace(code, dependencies)
    try:
        yield workspace
    finally:
        shutil.rmtree(workspace, ignore_errors=True)
        logger.debug(f"Removed staging directory {workspace}")
