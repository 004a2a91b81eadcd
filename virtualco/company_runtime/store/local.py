"""Local filesystem snapshot backend.

Stores the company snapshot as one JSON document under the data root with an
optional namespace prefix::

    {data_root}/{prefix}/company.json

When prefix is None, the path collapses to::

    {data_root}/company.json

Writes are atomic: data is written to a temporary file in the same directory,
then renamed to the target path.  This prevents corrupt reads if the process
crashes mid-write.
"""

from __future__ import annotations

import contextlib
import json
import os
import tempfile
from pathlib import Path
from typing import Any

from virtualco.company_runtime.store.base import SNAPSHOT_KEYS, empty_snapshot

SNAPSHOT_FILENAME = "company.json"


class LocalSnapshotBackend:
    """Local filesystem implementation of the SnapshotBackend protocol."""

    def __init__(self, data_root: str | Path, prefix: str | None = None) -> None:
        base = Path(data_root)
        if prefix:
            base = base / prefix
        self._path = base / SNAPSHOT_FILENAME

    @property
    def path(self) -> Path:
        return self._path

    def load(self) -> dict[str, Any]:
        if not self._path.exists():
            return empty_snapshot()
        raw = json.loads(self._path.read_text(encoding="utf-8"))
        snapshot = empty_snapshot()
        for key in SNAPSHOT_KEYS:
            snapshot[key] = raw.get(key) or {}
        return snapshot

    def save(self, snapshot: dict[str, Any]) -> None:
        _atomic_write(self._path, json.dumps(snapshot, ensure_ascii=False, indent=2))

    def clear(self) -> None:
        with contextlib.suppress(FileNotFoundError):
            self._path.unlink()


def _atomic_write(path: Path, data: str) -> None:
    """Write data atomically: temp file + rename.

    Ensures readers never see a partially-written file.  The temp file is
    created in the same directory so ``os.replace`` is atomic on POSIX.
    """
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp_path = tempfile.mkstemp(dir=path.parent, suffix=".tmp")
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            f.write(data)
        os.replace(tmp_path, path)
    except BaseException:
        # Clean up temp file on any failure.
        with contextlib.suppress(OSError):
            os.unlink(tmp_path)
        raise
