from __future__ import annotations

from collections.abc import Mapping
from typing import Any

from streetwise.storage.base import ALL, RecordStore
from streetwise.storage.memory import DEFAULT_DEBOUNCE_SECONDS, MemoryRecordStore
from streetwise.storage.sql import SqlRecordStore

BACKENDS = ("memory", "sql")

__all__ = [
    "ALL",
    "BACKENDS",
    "MemoryRecordStore",
    "RecordStore",
    "SqlRecordStore",
    "build_store",
]


def build_store(config: Mapping[str, Any]) -> RecordStore:
    backend = (config.get("STORAGE_BACKEND") or "memory").strip().lower()
    if backend == "memory":
        return MemoryRecordStore(
            snapshot_path=config.get("SNAPSHOT_PATH") or None,
            debounce_seconds=float(config.get("SNAPSHOT_DEBOUNCE_SECONDS", DEFAULT_DEBOUNCE_SECONDS)),
        )
    if backend == "sql":
        return SqlRecordStore()
    raise ValueError(f"Unknown STORAGE_BACKEND {backend!r}, expected one of {', '.join(BACKENDS)}")
