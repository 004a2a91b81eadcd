"""Company store and its snapshot backends."""

from virtualco.company_runtime.store.base import SnapshotBackend
from virtualco.company_runtime.store.company import MAX_MESSAGES_PER_GROUP, CompanyStore, open_store
from virtualco.company_runtime.store.local import LocalSnapshotBackend
from virtualco.company_runtime.store.memory import MemorySnapshotBackend

__all__ = [
    "MAX_MESSAGES_PER_GROUP",
    "CompanyStore",
    "LocalSnapshotBackend",
    "MemorySnapshotBackend",
    "SnapshotBackend",
    "open_store",
]
