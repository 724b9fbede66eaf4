"""
Snapshot file format for the in-memory record store.

The snapshot is a single JSON document with one section per record kind,
each mapping id to the full record. Instants are written as ISO-8601 text
with their UTC offset, amounts as decimal strings and enums by value, so a
load gives back exactly the records that were saved.

The file is a best-effort mirror of the live maps and is only read at
startup.
"""
from __future__ import annotations

import json
import logging
import os
import tempfile
from dataclasses import asdict, fields
from datetime import datetime, timezone
from decimal import Decimal, InvalidOperation
from enum import Enum
from pathlib import Path
from typing import Any

from streetwise.core.entities import (
    Caseworker,
    Organization,
    Record,
    Session,
    Transaction,
    User,
    WorkType,
    utcnow,
)
from streetwise.core.errors import CorruptSnapshotError
from streetwise.core.schemas import CaseworkerRole, OrganizationTier, TransactionType

logger = logging.getLogger(__name__)

SNAPSHOT_VERSION = 1

SECTIONS: dict[str, type] = {
    "organizations": Organization,
    "caseworkers": Caseworker,
    "users": User,
    "work_types": WorkType,
    "sessions": Session,
    "transactions": Transaction,
}

INSTANT_FIELDS = {"created_at", "start_time", "end_time", "timestamp"}
DECIMAL_FIELDS = {"amount"}
ENUM_FIELDS: dict[str, type[Enum]] = {
    "tier": OrganizationTier,
    "role": CaseworkerRole,
    "type": TransactionType,
}

State = dict[str, dict[str, Record]]


def empty_state() -> State:
    return {section: {} for section in SECTIONS}


def encode_record(record: Record) -> dict[str, Any]:
    encoded: dict[str, Any] = {}
    for key, value in asdict(record).items():
        if isinstance(value, datetime):
            encoded[key] = value.isoformat()
        elif isinstance(value, Decimal):
            encoded[key] = str(value)
        elif isinstance(value, Enum):
            encoded[key] = value.value
        else:
            encoded[key] = value
    return encoded


def decode_record(kind: type, raw: dict[str, Any]) -> Record:
    values: dict[str, Any] = {}
    for field in fields(kind):
        if field.name not in raw:
            raise KeyError(f"{kind.__name__}.{field.name}")
        value = raw[field.name]
        if value is not None:
            if field.name in INSTANT_FIELDS:
                value = _parse_instant(value)
            elif field.name in DECIMAL_FIELDS:
                value = Decimal(value)
            elif field.name in ENUM_FIELDS:
                value = ENUM_FIELDS[field.name](value)
        values[field.name] = value
    return kind(**values)


def _parse_instant(value: str) -> datetime:
    instant = datetime.fromisoformat(value)
    if instant.tzinfo is None:
        instant = instant.replace(tzinfo=timezone.utc)
    return instant


def dump_state(state: State) -> str:
    document: dict[str, Any] = {
        "version": SNAPSHOT_VERSION,
        "saved_at": utcnow().isoformat(),
    }
    for section in SECTIONS:
        document[section] = {
            record_id: encode_record(record) for record_id, record in state.get(section, {}).items()
        }
    return json.dumps(document, indent=2, ensure_ascii=False)


def load_state(text: str, path: str = "<memory>") -> State:
    try:
        document = json.loads(text)
    except json.JSONDecodeError as exc:
        raise CorruptSnapshotError(path, f"invalid JSON ({exc})") from exc
    if not isinstance(document, dict):
        raise CorruptSnapshotError(path, "top level is not an object")

    state = empty_state()
    for section, kind in SECTIONS.items():
        records = document.get(section) or {}
        if not isinstance(records, dict):
            raise CorruptSnapshotError(path, f"section {section} is not an object")
        for record_id, raw in records.items():
            try:
                state[section][record_id] = decode_record(kind, raw)
            except (KeyError, TypeError, ValueError, InvalidOperation) as exc:
                raise CorruptSnapshotError(path, f"bad {section} record {record_id}: {exc!r}") from exc
    return state


def read_snapshot(path: Path) -> State | None:
    """Load a snapshot file; ``None`` when there is no file yet."""
    try:
        text = path.read_text(encoding="utf-8")
    except FileNotFoundError:
        return None
    except (OSError, UnicodeDecodeError) as exc:
        raise CorruptSnapshotError(str(path), str(exc)) from exc
    return load_state(text, str(path))


def write_snapshot(path: Path, state: State) -> None:
    """Write the snapshot next to its final name and swap it in atomically."""
    payload = dump_state(state)
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp_name = tempfile.mkstemp(prefix=f".{path.name}.", suffix=".tmp", dir=path.parent)
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as handle:
            handle.write(payload)
            handle.flush()
            os.fsync(handle.fileno())
        os.replace(tmp_name, path)
    except BaseException:
        Path(tmp_name).unlink(missing_ok=True)
        raise


def quarantine(path: Path) -> Path | None:
    """Move an unreadable snapshot aside so the next flush does not overwrite it."""
    target = path.with_name(f"{path.name}.corrupt-{utcnow().strftime('%Y%m%dT%H%M%S')}")
    try:
        os.replace(path, target)
    except OSError as exc:
        logger.warning("Could not move corrupt snapshot %s aside: %s", path, exc)
        return None
    return target
