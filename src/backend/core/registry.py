"""
Registry of live sandboxes.

The registry is the only mutable state shared between the tool handlers, the
scavenger and the shutdown drain. Each call is atomic on its own; callers get
no cross-call guarantees.
"""

from __future__ import annotations

import threading


class SandboxRegistry:
    """Thread-safe map of sandbox id to creation timestamp (epoch ms)."""

    def __init__(self) -> None:
        self._entries: dict[str, int] = {}
        self._lock = threading.Lock()

    def register(self, sandbox_id: str, created_at: int) -> None:
        """Record a sandbox. Re-registering an id overwrites its timestamp."""
        with self._lock:
            self._entries[sandbox_id] = created_at

    def remove(self, sandbox_id: str) -> None:
        """Forget a sandbox. Removing an unknown id is a no-op."""
        with self._lock:
            self._entries.pop(sandbox_id, None)

    def get(self, sandbox_id: str) -> int | None:
        with self._lock:
            return self._entries.get(sandbox_id)

    def list(self) -> list[tuple[str, int]]:
        """Point-in-time copy of all (id, created_at) pairs."""
        with self._lock:
            return list(self._entries.items())

    def __contains__(self, sandbox_id: object) -> bool:
        with self._lock:
            return sandbox_id in self._entries

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)
