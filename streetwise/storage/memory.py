"""
In-memory record store with debounced snapshots to a JSON file.

The dictionaries held by the store are the source of truth for every read.
After each mutation a flush is scheduled on a timer; a further mutation
before the timer fires resets it, so a burst of writes costs one file write.
Writes made inside the debounce window are lost if the process dies before
the timer fires.
"""
from __future__ import annotations

import logging
import threading
from collections.abc import Callable, Mapping
from pathlib import Path
from typing import Any

from streetwise.core.entities import (
    Caseworker,
    Organization,
    Payload,
    Record,
    Session,
    Transaction,
    User,
    WorkType,
    closed,
    merge_update,
    new_caseworker,
    new_organization,
    new_session,
    new_transaction,
    new_user,
    new_work_type,
)
from streetwise.core.errors import ConflictError, CorruptSnapshotError, PersistenceWarning
from streetwise.core.tenancy import ScopeFilter, owner_scope
from streetwise.storage.base import ALL, RecordStore
from streetwise.storage.snapshot import State, empty_state, quarantine, read_snapshot, write_snapshot

logger = logging.getLogger(__name__)

DEFAULT_DEBOUNCE_SECONDS = 0.5


class MemoryRecordStore(RecordStore):
    """Record store backed by process memory.

    With ``snapshot_path=None`` nothing is persisted, which is what most
    tests want.
    """

    def __init__(
        self,
        snapshot_path: str | Path | None = None,
        debounce_seconds: float = DEFAULT_DEBOUNCE_SECONDS,
    ):
        self.snapshot_path = Path(snapshot_path) if snapshot_path else None
        self.debounce_seconds = debounce_seconds
        self.last_flush_error: PersistenceWarning | None = None
        self.flush_count = 0
        self._state: State = empty_state()
        self._lock = threading.RLock()
        self._flush_lock = threading.Lock()
        self._timer_lock = threading.Lock()
        self._timer: threading.Timer | None = None
        self._load()

    # =========================================================================
    # SNAPSHOTS
    # =========================================================================

    def _load(self) -> None:
        if self.snapshot_path is None:
            return
        try:
            state = read_snapshot(self.snapshot_path)
        except CorruptSnapshotError as exc:
            moved = quarantine(self.snapshot_path)
            logger.error(
                "CORRUPT SNAPSHOT: %s. Starting with an empty store; the unreadable file was moved to %s",
                exc,
                moved,
            )
            return
        if state is None:
            logger.info("No snapshot at %s, starting with an empty store", self.snapshot_path)
            return
        self._state = state
        logger.info(
            "Loaded %d organizations, %d caseworkers, %d users, %d work types, %d sessions, "
            "%d transactions from %s",
            *(len(state[section]) for section in state),
            self.snapshot_path,
        )

    @property
    def flush_pending(self) -> bool:
        with self._timer_lock:
            return self._timer is not None and self._timer.is_alive()

    def _schedule_flush(self) -> None:
        if self.snapshot_path is None:
            return
        with self._timer_lock:
            if self._timer is not None:
                self._timer.cancel()
            timer = threading.Timer(self.debounce_seconds, self._flush_from_timer)
            timer.daemon = True
            timer.name = "snapshot-flush"
            self._timer = timer
            timer.start()

    def _flush_from_timer(self) -> None:
        self._write()
        with self._timer_lock:
            if self._timer is threading.current_thread():
                self._timer = None

    def _write(self) -> bool:
        with self._flush_lock:
            with self._lock:
                state = {section: dict(records) for section, records in self._state.items()}
            try:
                write_snapshot(self.snapshot_path, state)
            except (OSError, TypeError, ValueError) as exc:
                self.last_flush_error = PersistenceWarning(
                    f"Snapshot flush to {self.snapshot_path} failed: {exc}"
                )
                logger.warning(
                    "%s; the in-memory state is unaffected and the next write will retry",
                    self.last_flush_error,
                )
                return False
            self.last_flush_error = None
            self.flush_count += 1
            logger.debug("Snapshot saved to %s", self.snapshot_path)
            return True

    def flush(self) -> None:
        if self.snapshot_path is None:
            return
        with self._timer_lock:
            if self._timer is not None:
                self._timer.cancel()
                self._timer = None
        self._write()

    # =========================================================================
    # HELPERS
    # =========================================================================

    def _insert(self, section: str, record: Record) -> Record:
        with self._lock:
            self._state[section][record.id] = record
        self._schedule_flush()
        return record

    def _get(self, section: str, record_id: str, scope: ScopeFilter) -> Any:
        with self._lock:
            record = self._state[section].get(record_id)
        if record is None or not scope.matches_record(record):
            return None
        return record

    def _update(self, section: str, record_id: str, fields: Mapping[str, Any]) -> Any:
        with self._lock:
            record = self._state[section].get(record_id)
            if record is None:
                return None
            updated = merge_update(record, fields)
            self._state[section][record_id] = updated
        self._schedule_flush()
        return updated

    def _select(self, section: str, predicate: Callable[[Any], bool]) -> list[Any]:
        with self._lock:
            return [record for record in self._state[section].values() if predicate(record)]

    # =========================================================================
    # ORGANIZATIONS
    # =========================================================================

    def create_organization(self, data: Payload) -> Organization:
        organization = new_organization(data)
        with self._lock:
            self._check_subdomain(organization)
            self._state["organizations"][organization.id] = organization
        self._schedule_flush()
        return organization

    def get_organization(self, org_id: str) -> Organization | None:
        return self._get("organizations", org_id, ALL)

    def update_organization(self, org_id: str, fields: Mapping[str, Any]) -> Organization | None:
        with self._lock:
            current = self._state["organizations"].get(org_id)
            if current is None:
                return None
            updated = merge_update(current, fields)
            self._check_subdomain(updated)
            self._state["organizations"][org_id] = updated
        self._schedule_flush()
        return updated

    def _check_subdomain(self, organization: Organization) -> None:
        if organization.subdomain is None:
            return
        for other in self._state["organizations"].values():
            if other.subdomain == organization.subdomain and other.id != organization.id:
                raise ConflictError("Another organization already uses that subdomain")

    def list_organizations(self, include_inactive: bool = False) -> list[Organization]:
        rows = self._select("organizations", lambda org: include_inactive or org.is_active)
        return sorted(rows, key=lambda org: org.created_at, reverse=True)

    # =========================================================================
    # CASEWORKERS
    # =========================================================================

    def create_caseworker(self, data: Payload) -> Caseworker:
        caseworker = new_caseworker(data)
        with self._lock:
            if self._find_caseworker_by_email(caseworker.email) is not None:
                raise ConflictError(f"A caseworker with email {caseworker.email} already exists")
            self._state["caseworkers"][caseworker.id] = caseworker
        self._schedule_flush()
        return caseworker

    def get_caseworker(self, caseworker_id: str, scope: ScopeFilter = ALL) -> Caseworker | None:
        return self._get("caseworkers", caseworker_id, ScopeFilter(org_id=scope.org_id))

    def get_caseworker_by_email(self, email: str) -> Caseworker | None:
        with self._lock:
            return self._find_caseworker_by_email((email or "").strip().lower())

    def _find_caseworker_by_email(self, email: str) -> Caseworker | None:
        for caseworker in self._state["caseworkers"].values():
            if caseworker.email == email:
                return caseworker
        return None

    def update_caseworker(self, caseworker_id: str, fields: Mapping[str, Any]) -> Caseworker | None:
        with self._lock:
            current = self._state["caseworkers"].get(caseworker_id)
            if current is None:
                return None
            updated = merge_update(current, fields)
            other = self._find_caseworker_by_email(updated.email)
            if other is not None and other.id != caseworker_id:
                raise ConflictError(f"A caseworker with email {updated.email} already exists")
            self._state["caseworkers"][caseworker_id] = updated
        self._schedule_flush()
        return updated

    def list_caseworkers(self, org_id: str) -> list[Caseworker]:
        rows = self._select("caseworkers", lambda cw: cw.org_id == org_id)
        return sorted(rows, key=lambda cw: cw.created_at, reverse=True)

    # =========================================================================
    # USERS
    # =========================================================================

    def create_user(self, data: Payload) -> User:
        return self._insert("users", new_user(data))

    def get_user(self, user_id: str, scope: ScopeFilter = ALL) -> User | None:
        return self._get("users", user_id, ScopeFilter(org_id=scope.org_id))

    def get_user_by_device(self, device_id: str) -> User | None:
        rows = self._select("users", lambda user: user.device_id == device_id)
        rows.sort(key=lambda user: user.created_at, reverse=True)
        return rows[0] if rows else None

    def update_user(self, user_id: str, fields: Mapping[str, Any]) -> User | None:
        return self._update("users", user_id, fields)

    def list_users(self, scope: ScopeFilter = ALL) -> list[User]:
        org_scope = ScopeFilter(org_id=scope.org_id)
        rows = self._select("users", org_scope.matches_record)
        return sorted(rows, key=lambda user: user.created_at, reverse=True)

    # =========================================================================
    # WORK TYPES
    # =========================================================================

    def create_work_type(self, data: Payload) -> WorkType:
        return self._insert("work_types", new_work_type(data))

    def get_work_type(self, work_type_id: str, scope: ScopeFilter = ALL) -> WorkType | None:
        return self._get("work_types", work_type_id, scope)

    def update_work_type(self, work_type_id: str, fields: Mapping[str, Any]) -> WorkType | None:
        return self._update("work_types", work_type_id, fields)

    def list_work_types(self, scope: ScopeFilter = ALL) -> list[WorkType]:
        rows = self._select("work_types", lambda wt: wt.is_active and scope.matches_record(wt))
        # Dict order is insertion order, and sorted() is stable.
        return sorted(rows, key=lambda wt: wt.sort_order)

    # =========================================================================
    # SESSIONS
    # =========================================================================

    def create_session(self, data: Payload) -> Session:
        return self._insert("sessions", new_session(data))

    def start_session(self, data: Payload) -> Session:
        session = new_session(data)
        with self._lock:
            if self._find_active(owner_scope(session)) is not None:
                raise ConflictError("A session is already active for this user and organization")
            self._state["sessions"][session.id] = session
        self._schedule_flush()
        return session

    def get_session(self, session_id: str, scope: ScopeFilter = ALL) -> Session | None:
        return self._get("sessions", session_id, scope)

    def update_session(self, session_id: str, fields: Mapping[str, Any]) -> Session | None:
        return self._update("sessions", session_id, fields)

    def close_session(self, session_id: str) -> Session | None:
        with self._lock:
            session = self._state["sessions"].get(session_id)
            if session is None:
                return None
            if not session.is_active:
                return session
            session = closed(session)
            self._state["sessions"][session_id] = session
        self._schedule_flush()
        return session

    def delete_session(self, session_id: str) -> bool:
        with self._lock:
            if self._state["sessions"].pop(session_id, None) is None:
                return False
            transactions = self._state["transactions"]
            for transaction_id in [t.id for t in transactions.values() if t.session_id == session_id]:
                del transactions[transaction_id]
        self._schedule_flush()
        return True

    def list_sessions(self, scope: ScopeFilter = ALL) -> list[Session]:
        rows = self._select("sessions", scope.matches_record)
        return sorted(rows, key=lambda s: s.start_time, reverse=True)

    def find_active_session(self, scope: ScopeFilter = ALL) -> Session | None:
        with self._lock:
            return self._find_active(scope)

    def _find_active(self, scope: ScopeFilter) -> Session | None:
        active = [s for s in self._state["sessions"].values() if s.is_active and scope.matches_record(s)]
        if not active:
            return None
        return max(active, key=lambda s: s.start_time)

    # =========================================================================
    # TRANSACTIONS
    # =========================================================================

    def create_transaction(self, data: Payload) -> Transaction:
        return self._insert("transactions", new_transaction(data))

    def get_transaction(self, transaction_id: str, scope: ScopeFilter = ALL) -> Transaction | None:
        return self._get("transactions", transaction_id, scope)

    def list_transactions(self, scope: ScopeFilter = ALL) -> list[Transaction]:
        rows = self._select("transactions", scope.matches_record)
        return sorted(rows, key=lambda t: t.timestamp, reverse=True)

    def list_session_transactions(self, session_id: str) -> list[Transaction]:
        rows = self._select("transactions", lambda t: t.session_id == session_id)
        return sorted(rows, key=lambda t: t.timestamp, reverse=True)
