from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, replace
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, Union
from uuid import uuid4

from pydantic import BaseModel

from streetwise.core.errors import ValidationError
from streetwise.core.schemas import (
    CaseworkerInsert,
    CaseworkerRole,
    CaseworkerUpdate,
    OrganizationInsert,
    OrganizationTier,
    OrganizationUpdate,
    SessionInsert,
    SessionUpdate,
    TransactionInsert,
    TransactionType,
    UserInsert,
    UserUpdate,
    WorkTypeInsert,
    WorkTypeUpdate,
    parse_payload,
    parse_update,
)

Payload = Union[Mapping[str, Any], BaseModel]


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def new_id() -> str:
    return str(uuid4())


@dataclass(frozen=True)
class Organization:
    id: str
    name: str
    tier: OrganizationTier
    features: dict[str, bool]
    subdomain: str | None
    branding: dict[str, Any]
    created_at: datetime
    is_active: bool


@dataclass(frozen=True)
class Caseworker:
    id: str
    org_id: str
    email: str
    name: str
    password_hash: str
    role: CaseworkerRole
    created_at: datetime
    is_active: bool


@dataclass(frozen=True)
class User:
    id: str
    org_id: str | None
    caseworker_id: str | None
    pin_hash: str | None
    device_id: str | None
    created_at: datetime
    is_active: bool


@dataclass(frozen=True)
class WorkType:
    id: str
    name: str
    user_id: str | None
    org_id: str | None
    icon: str | None
    color: str | None
    is_default: bool
    sort_order: int
    created_at: datetime
    is_active: bool


@dataclass(frozen=True)
class Session:
    id: str
    user_id: str | None
    org_id: str | None
    work_type_id: str | None
    location: str
    start_time: datetime
    end_time: datetime | None
    is_test: bool
    is_active: bool


@dataclass(frozen=True)
class Transaction:
    id: str
    session_id: str | None
    user_id: str | None
    org_id: str | None
    work_type_id: str | None
    timestamp: datetime
    amount: Decimal
    type: TransactionType
    note: str | None
    product_id: str | None
    pennies: int

    @property
    def is_quick(self) -> bool:
        return self.session_id is None


Record = Union[Organization, Caseworker, User, WorkType, Session, Transaction]


def new_organization(data: Payload) -> Organization:
    shape = parse_payload(OrganizationInsert, data)
    return Organization(
        id=new_id(),
        name=shape.name,
        tier=shape.tier,
        features=dict(shape.features),
        subdomain=shape.subdomain,
        branding=dict(shape.branding),
        created_at=utcnow(),
        is_active=shape.is_active,
    )


def new_caseworker(data: Payload) -> Caseworker:
    shape = parse_payload(CaseworkerInsert, data)
    return Caseworker(
        id=new_id(),
        org_id=shape.org_id,
        email=shape.email,
        name=shape.name,
        password_hash=shape.password_hash,
        role=shape.role,
        created_at=utcnow(),
        is_active=shape.is_active,
    )


def new_user(data: Payload) -> User:
    shape = parse_payload(UserInsert, data)
    return User(
        id=new_id(),
        org_id=shape.org_id,
        caseworker_id=shape.caseworker_id,
        pin_hash=shape.pin_hash,
        device_id=shape.device_id,
        created_at=utcnow(),
        is_active=shape.is_active,
    )


def new_work_type(data: Payload) -> WorkType:
    shape = parse_payload(WorkTypeInsert, data)
    return WorkType(
        id=new_id(),
        name=shape.name,
        user_id=shape.user_id,
        org_id=shape.org_id,
        icon=shape.icon,
        color=shape.color,
        is_default=shape.is_default,
        sort_order=shape.sort_order,
        created_at=utcnow(),
        is_active=shape.is_active,
    )


def new_session(data: Payload) -> Session:
    shape = parse_payload(SessionInsert, data)
    return Session(
        id=new_id(),
        user_id=shape.user_id,
        org_id=shape.org_id,
        work_type_id=shape.work_type_id,
        location=shape.location,
        start_time=utcnow(),
        end_time=None,
        is_test=shape.is_test,
        is_active=True,
    )


def new_transaction(data: Payload) -> Transaction:
    shape = parse_payload(TransactionInsert, data)
    return Transaction(
        id=new_id(),
        session_id=shape.session_id,
        user_id=shape.user_id,
        org_id=shape.org_id,
        work_type_id=shape.work_type_id,
        timestamp=utcnow(),
        amount=shape.amount,
        type=shape.type,
        note=shape.note,
        product_id=shape.product_id,
        pennies=shape.pennies,
    )


UPDATE_SHAPES: dict[type, type[BaseModel]] = {
    Organization: OrganizationUpdate,
    Caseworker: CaseworkerUpdate,
    User: UserUpdate,
    WorkType: WorkTypeUpdate,
    Session: SessionUpdate,
}


def merge_update(record: Record, fields: Mapping[str, Any]) -> Record:
    shape = UPDATE_SHAPES.get(type(record))
    if shape is None:
        raise ValidationError("payload", f"{type(record).__name__} records cannot be updated")
    changes = parse_update(shape, fields)
    if isinstance(record, Session):
        changes = _session_transition(record, changes)
    return replace(record, **changes)


def _session_transition(session: Session, changes: dict[str, Any]) -> dict[str, Any]:
    if "is_active" not in changes:
        return changes
    if changes["is_active"] and not session.is_active:
        raise ValidationError("is_active", "a closed session cannot be reopened")
    if not changes["is_active"] and session.is_active:
        changes["end_time"] = utcnow()
    return changes


def closed(session: Session, at: datetime | None = None) -> Session:
    if not session.is_active:
        return session
    return replace(session, is_active=False, end_time=at or utcnow())
