"""
Relational record store on Flask-SQLAlchemy.

Each operation maps to one indexed query and every write commits before
returning. Rows are converted to the same frozen records the memory store
hands out, so callers cannot tell the backends apart.
"""
from __future__ import annotations

import logging
from collections.abc import Mapping
from dataclasses import asdict, fields
from datetime import datetime
from decimal import Decimal
from typing import Any

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from streetwise.core import entities, models
from streetwise.core.entities import Payload, Record, closed, merge_update
from streetwise.core.errors import ConflictError
from streetwise.core.extensions import db
from streetwise.core.tenancy import ScopeFilter, owner_key, owner_scope
from streetwise.core.utils import CENT, as_utc
from streetwise.storage.base import ALL, RecordStore

logger = logging.getLogger(__name__)


def to_record(kind: type, row: Any) -> Any:
    if row is None:
        return None
    values: dict[str, Any] = {}
    for field in fields(kind):
        value = getattr(row, field.name)
        if isinstance(value, datetime):
            value = as_utc(value)
        elif isinstance(value, Decimal):
            value = value.quantize(CENT)
        elif isinstance(value, dict):
            value = dict(value)
        values[field.name] = value
    return kind(**values)


def is_unique_violation(exc: IntegrityError) -> bool:
    # SQLSTATE 23505 on PostgreSQL; SQLite only reports it in the message.
    orig = exc.orig
    code = getattr(orig, "sqlstate", None) or getattr(orig, "pgcode", None)
    if code is not None:
        return code == "23505"
    return "unique constraint" in str(orig).lower()


class SqlRecordStore(RecordStore):
    def __init__(self, session=None):
        self._session = session

    @property
    def session(self):
        return self._session if self._session is not None else db.session

    # =========================================================================
    # HELPERS
    # =========================================================================

    def _commit(self, conflict_message: str = "Record conflicts with existing data") -> None:
        try:
            self.session.commit()
        except IntegrityError as exc:
            self.session.rollback()
            if not is_unique_violation(exc):
                raise
            logger.info("Rejected write: %s (%s)", conflict_message, exc.orig)
            raise ConflictError(conflict_message) from exc
        except SQLAlchemyError:
            self.session.rollback()
            logger.exception("Write failed and was rolled back")
            raise

    def _insert(
        self,
        model: type,
        record: Record,
        conflict_message: str = "Record conflicts with existing data",
        **extra: Any,
    ) -> Record:
        self.session.add(model(**asdict(record), **extra))
        self._commit(conflict_message)
        return record

    def _get(self, model: type, kind: type, record_id: str, scope: ScopeFilter) -> Any:
        record = to_record(kind, self.session.get(model, record_id))
        if record is None or not scope.matches_record(record):
            return None
        return record

    def _update(
        self,
        model: type,
        kind: type,
        record_id: str,
        fields_: Mapping[str, Any],
        conflict_message: str = "Record conflicts with existing data",
    ) -> Any:
        row = self.session.get(model, record_id)
        if row is None:
            return None
        updated = merge_update(to_record(kind, row), fields_)
        self._apply(row, updated)
        self._commit(conflict_message)
        return updated

    @staticmethod
    def _apply(row: Any, record: Record) -> None:
        for key, value in asdict(record).items():
            if getattr(row, key) != value:
                setattr(row, key, value)

    def _all(self, kind: type, query) -> list[Any]:
        return [to_record(kind, row) for row in query.all()]

    # =========================================================================
    # ORGANIZATIONS
    # =========================================================================

    def create_organization(self, data: Payload) -> entities.Organization:
        return self._insert(
            models.Organization,
            entities.new_organization(data),
            "Another organization already uses that subdomain",
        )

    def get_organization(self, org_id: str) -> entities.Organization | None:
        return self._get(models.Organization, entities.Organization, org_id, ALL)

    def update_organization(self, org_id: str, fields_: Mapping[str, Any]) -> entities.Organization | None:
        return self._update(
            models.Organization,
            entities.Organization,
            org_id,
            fields_,
            "Another organization already uses that subdomain",
        )

    def list_organizations(self, include_inactive: bool = False) -> list[entities.Organization]:
        query = self.session.query(models.Organization)
        if not include_inactive:
            query = query.filter(models.Organization.is_active.is_(True))
        return self._all(entities.Organization, query.order_by(models.Organization.created_at.desc()))

    # =========================================================================
    # CASEWORKERS
    # =========================================================================

    def create_caseworker(self, data: Payload) -> entities.Caseworker:
        caseworker = entities.new_caseworker(data)
        self.session.add(models.Caseworker(**asdict(caseworker)))
        self._commit(f"A caseworker with email {caseworker.email} already exists")
        return caseworker

    def get_caseworker(self, caseworker_id: str, scope: ScopeFilter = ALL) -> entities.Caseworker | None:
        return self._get(
            models.Caseworker,
            entities.Caseworker,
            caseworker_id,
            ScopeFilter(org_id=scope.org_id),
        )

    def get_caseworker_by_email(self, email: str) -> entities.Caseworker | None:
        row = (
            self.session.query(models.Caseworker)
            .filter_by(email=(email or "").strip().lower())
            .first()
        )
        return to_record(entities.Caseworker, row)

    def update_caseworker(self, caseworker_id: str, fields_: Mapping[str, Any]) -> entities.Caseworker | None:
        return self._update(
            models.Caseworker,
            entities.Caseworker,
            caseworker_id,
            fields_,
            "A caseworker with that email already exists",
        )

    def list_caseworkers(self, org_id: str) -> list[entities.Caseworker]:
        query = (
            self.session.query(models.Caseworker)
            .filter_by(org_id=org_id)
            .order_by(models.Caseworker.created_at.desc())
        )
        return self._all(entities.Caseworker, query)

    # =========================================================================
    # USERS
    # =========================================================================

    def create_user(self, data: Payload) -> entities.User:
        return self._insert(models.User, entities.new_user(data))

    def get_user(self, user_id: str, scope: ScopeFilter = ALL) -> entities.User | None:
        return self._get(models.User, entities.User, user_id, ScopeFilter(org_id=scope.org_id))

    def get_user_by_device(self, device_id: str) -> entities.User | None:
        row = (
            self.session.query(models.User)
            .filter_by(device_id=device_id)
            .order_by(models.User.created_at.desc())
            .first()
        )
        return to_record(entities.User, row)

    def update_user(self, user_id: str, fields_: Mapping[str, Any]) -> entities.User | None:
        return self._update(models.User, entities.User, user_id, fields_)

    def list_users(self, scope: ScopeFilter = ALL) -> list[entities.User]:
        criteria = ScopeFilter(org_id=scope.org_id).criteria(None, models.User.org_id)
        query = (
            self.session.query(models.User)
            .filter(*criteria)
            .order_by(models.User.created_at.desc())
        )
        return self._all(entities.User, query)

    # =========================================================================
    # WORK TYPES
    # =========================================================================

    def create_work_type(self, data: Payload) -> entities.WorkType:
        next_position = select(func.coalesce(func.max(models.WorkType.position), 0) + 1).scalar_subquery()
        return self._insert(models.WorkType, entities.new_work_type(data), position=next_position)

    def get_work_type(self, work_type_id: str, scope: ScopeFilter = ALL) -> entities.WorkType | None:
        return self._get(models.WorkType, entities.WorkType, work_type_id, scope)

    def update_work_type(self, work_type_id: str, fields_: Mapping[str, Any]) -> entities.WorkType | None:
        return self._update(models.WorkType, entities.WorkType, work_type_id, fields_)

    def list_work_types(self, scope: ScopeFilter = ALL) -> list[entities.WorkType]:
        query = (
            self.session.query(models.WorkType)
            .filter(models.WorkType.is_active.is_(True))
            .filter(*scope.criteria(models.WorkType.user_id, models.WorkType.org_id))
            .order_by(models.WorkType.sort_order.asc(), models.WorkType.position.asc())
        )
        return self._all(entities.WorkType, query)

    # =========================================================================
    # SESSIONS
    # =========================================================================

    def create_session(self, data: Payload) -> entities.Session:
        session = entities.new_session(data)
        # Plain inserts carry a per-row key so only start_session is held to
        # the one-active-session index, as in the memory store.
        return self._insert(
            models.Session,
            session,
            scope_key=f"{owner_key(session.user_id, session.org_id)}:{session.id}",
        )

    def start_session(self, data: Payload) -> entities.Session:
        session = entities.new_session(data)
        message = "A session is already active for this user and organization"
        if self._active_query(owner_scope(session)).first() is not None:
            self.session.rollback()
            raise ConflictError(message)
        # The partial unique index on scope_key rejects a concurrent insert.
        self.session.add(
            models.Session(**asdict(session), scope_key=owner_key(session.user_id, session.org_id))
        )
        self._commit(message)
        return session

    def get_session(self, session_id: str, scope: ScopeFilter = ALL) -> entities.Session | None:
        return self._get(models.Session, entities.Session, session_id, scope)

    def update_session(self, session_id: str, fields_: Mapping[str, Any]) -> entities.Session | None:
        return self._update(models.Session, entities.Session, session_id, fields_)

    def close_session(self, session_id: str) -> entities.Session | None:
        row = self.session.get(models.Session, session_id)
        if row is None:
            return None
        current = to_record(entities.Session, row)
        if not current.is_active:
            return current
        updated = closed(current)
        self._apply(row, updated)
        self._commit()
        return updated

    def delete_session(self, session_id: str) -> bool:
        row = self.session.get(models.Session, session_id)
        if row is None:
            return False
        self.session.delete(row)
        self._commit()
        return True

    def list_sessions(self, scope: ScopeFilter = ALL) -> list[entities.Session]:
        query = (
            self.session.query(models.Session)
            .filter(*scope.criteria(models.Session.user_id, models.Session.org_id))
            .order_by(models.Session.start_time.desc())
        )
        return self._all(entities.Session, query)

    def find_active_session(self, scope: ScopeFilter = ALL) -> entities.Session | None:
        return to_record(entities.Session, self._active_query(scope).first())

    def _active_query(self, scope: ScopeFilter):
        return (
            self.session.query(models.Session)
            .filter(models.Session.is_active.is_(True))
            .filter(*scope.criteria(models.Session.user_id, models.Session.org_id))
            .order_by(models.Session.start_time.desc())
        )

    # =========================================================================
    # TRANSACTIONS
    # =========================================================================

    def create_transaction(self, data: Payload) -> entities.Transaction:
        return self._insert(models.Transaction, entities.new_transaction(data))

    def get_transaction(self, transaction_id: str, scope: ScopeFilter = ALL) -> entities.Transaction | None:
        return self._get(models.Transaction, entities.Transaction, transaction_id, scope)

    def list_transactions(self, scope: ScopeFilter = ALL) -> list[entities.Transaction]:
        query = (
            self.session.query(models.Transaction)
            .filter(*scope.criteria(models.Transaction.user_id, models.Transaction.org_id))
            .order_by(models.Transaction.timestamp.desc())
        )
        return self._all(entities.Transaction, query)

    def list_session_transactions(self, session_id: str) -> list[entities.Transaction]:
        query = (
            self.session.query(models.Transaction)
            .filter_by(session_id=session_id)
            .order_by(models.Transaction.timestamp.desc())
        )
        return self._all(entities.Transaction, query)
