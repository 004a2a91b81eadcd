"""Snapshot backend interface for company persistence.

The company store keeps every collection hot in memory and periodically
hands a full snapshot to a backend.  A snapshot is a plain JSON-compatible
dict with exactly five top-level collections::

    {
        "workspaces": {workspace_id: {...}},
        "agents":     {agent_id: {...}},
        "groups":     {group_id: {...}},
        "messages":   {group_id: [{...}, ...]},
        "lastReads":  {"agent_id:group_id": message_id},
    }

Backends are synchronous: ``CompanyStore`` runs debounced saves in a worker
thread and the shutdown flush inline.
"""

from __future__ import annotations

from typing import Any, Protocol, runtime_checkable

SNAPSHOT_KEYS = ("workspaces", "agents", "groups", "messages", "lastReads")


def empty_snapshot() -> dict[str, Any]:
    return {key: {} for key in SNAPSHOT_KEYS}


@runtime_checkable
class SnapshotBackend(Protocol):
    """Reads and writes the single company snapshot document."""

    def load(self) -> dict[str, Any]:
        """Return the last saved snapshot, or an empty snapshot if none exists."""
        ...

    def save(self, snapshot: dict[str, Any]) -> None:
        """Persist the snapshot atomically (readers never see a partial write)."""
        ...

    def clear(self) -> None:
        """Remove the persisted snapshot.  No-op if nothing was saved."""
        ...
