"""In-memory snapshot backend for tests and throwaway runs."""

from __future__ import annotations

import copy
from typing import Any

from virtualco.company_runtime.store.base import empty_snapshot


class MemorySnapshotBackend:
    """Keeps the last saved snapshot in memory and counts saves."""

    def __init__(self, snapshot: dict[str, Any] | None = None) -> None:
        self.snapshot: dict[str, Any] | None = copy.deepcopy(snapshot) if snapshot else None
        self.save_count = 0

    def load(self) -> dict[str, Any]:
        if self.snapshot is None:
            return empty_snapshot()
        return copy.deepcopy(self.snapshot)

    def save(self, snapshot: dict[str, Any]) -> None:
        self.snapshot = copy.deepcopy(snapshot)
        self.save_count += 1

    def clear(self) -> None:
        self.snapshot = None
