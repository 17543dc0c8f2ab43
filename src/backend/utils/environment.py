"""Host environment detection."""

from __future__ import annotations

import os

from pathlib import Path

from core.constants import IN_CONTAINER_MOUNT_POINT

_DOCKERENV = Path("/.dockerenv")
_CGROUP = Path("/proc/1/cgroup")


def is_running_in_docker() -> bool:
    """Detect whether this server process itself runs inside a container."""
    if _DOCKERENV.exists():
        return True

    try:
        cgroup = _CGROUP.read_text(encoding="utf-8")
    except OSError:
        cgroup = ""
    if "docker" in cgroup or "kubepods" in cgroup:
        return True

    return bool(os.environ.get("DOCKER_CONTAINER") or os.environ.get("DOCKER_ENV"))


def get_mount_point_dir(files_dir: Path) -> Path:
    """Directory the snapshot differ watches for execution output.

    Inside a container the files directory is mounted under /root; on a
    plain host it is the configured files directory itself.
    """
    if is_running_in_docker():
        return IN_CONTAINER_MOUNT_POINT
    return files_dir
