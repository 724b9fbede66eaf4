from __future__ import annotations

import logging
from collections.abc import Mapping
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any

from werkzeug.security import generate_password_hash

from streetwise.collection.seeding import ensure_defaults
from streetwise.core.entities import Caseworker, Organization, Session, Transaction, User, WorkType
from streetwise.core.errors import ConflictError, NotFoundError, ValidationError
from streetwise.core.schemas import CaseworkerRole, SessionInsert, TransactionType, parse_payload
from streetwise.core.tenancy import ScopeFilter
from streetwise.storage.base import ALL, RecordStore

logger = logging.getLogger(__name__)


@dataclass
class OnboardingResult:
    organization: Organization
    admin: Caseworker
    work_types: list[WorkType] = field(default_factory=list)


def active_session(store: RecordStore, scope: ScopeFilter) -> Session | None:
    return store.find_active_session(scope)


def start_session(store: RecordStore, data: Mapping[str, Any]) -> Session:
    shape = parse_payload(SessionInsert, data)
    if shape.work_type_id:
        _owned_work_type(store, shape.work_type_id, shape.user_id, shape.org_id)
    session = store.start_session(shape)
    logger.info(
        "Started session %s at %s (user=%s org=%s)",
        session.id,
        session.location,
        session.user_id,
        session.org_id,
    )
    return session


def stop_session(store: RecordStore, scope: ScopeFilter) -> Session:
    active = store.find_active_session(scope)
    if active is None:
        raise NotFoundError("Active session")
    session = store.close_session(active.id)
    if session is None:
        raise NotFoundError("Session", active.id)
    logger.info("Stopped session %s", session.id)
    return session


def record_donation(
    store: RecordStore,
    session_id: str,
    amount: Decimal | str | int | float,
    scope: ScopeFilter = ALL,
    pennies: int = 0,
    note: str | None = None,
) -> Transaction:
    session = store.get_session(session_id, scope)
    if session is None:
        raise NotFoundError("Session", session_id)
    return store.create_transaction(
        {
            "session_id": session.id,
            "user_id": session.user_id,
            "org_id": session.org_id,
            "work_type_id": session.work_type_id,
            "amount": amount,
            "type": TransactionType.DONATION,
            "pennies": pennies,
            "note": note,
        }
    )


def record_quick_donation(
    store: RecordStore,
    amount: Decimal | str | int | float,
    user_id: str | None = None,
    org_id: str | None = None,
    work_type_id: str | None = None,
    note: str | None = None,
) -> Transaction:
    if work_type_id:
        _owned_work_type(store, work_type_id, user_id, org_id)
    return store.create_transaction(
        {
            "user_id": user_id,
            "org_id": org_id,
            "work_type_id": work_type_id,
            "amount": amount,
            "type": TransactionType.DONATION,
            "note": note,
        }
    )


def session_transactions(store: RecordStore, session_id: str, scope: ScopeFilter = ALL) -> list[Transaction]:
    if store.get_session(session_id, scope) is None:
        raise NotFoundError("Session", session_id)
    return store.list_session_transactions(session_id)


def delete_work_type(store: RecordStore, work_type_id: str, scope: ScopeFilter = ALL) -> WorkType:
    if store.get_work_type(work_type_id, scope) is None:
        raise NotFoundError("WorkType", work_type_id)
    return store.delete_work_type(work_type_id)


def onboard_organization(
    store: RecordStore,
    name: str,
    admin_email: str,
    admin_name: str,
    admin_password: str,
    tier: str = "free",
    subdomain: str | None = None,
) -> OnboardingResult:
    if not (admin_password or "").strip():
        raise ValidationError("admin_password", "field is required")
    if store.get_caseworker_by_email(admin_email) is not None:
        raise ConflictError(f"A caseworker with email {admin_email.strip().lower()} already exists")

    organization = store.create_organization({"name": name, "tier": tier, "subdomain": subdomain})
    admin = store.create_caseworker(
        {
            "org_id": organization.id,
            "email": admin_email,
            "name": admin_name,
            "password_hash": generate_password_hash(admin_password),
            "role": CaseworkerRole.ADMIN,
        }
    )
    work_types = ensure_defaults(store, org_id=organization.id)
    logger.info("Onboarded organization %s (%s) with admin %s", organization.name, organization.id, admin.email)
    return OnboardingResult(organization=organization, admin=admin, work_types=work_types)


def register_device_user(
    store: RecordStore,
    device_id: str,
    pin: str | None = None,
    org_id: str | None = None,
) -> User:
    device_id = (device_id or "").strip()
    if not device_id:
        raise ValidationError("device_id", "field is required")
    existing = store.get_user_by_device(device_id)
    if existing is not None:
        return existing

    pin_hash = None
    if pin is not None:
        pin = pin.strip()
        if not pin.isdigit() or not 4 <= len(pin) <= 8:
            raise ValidationError("pin", "PIN must be 4 to 8 digits")
        pin_hash = generate_password_hash(pin)
    user = store.create_user({"device_id": device_id, "pin_hash": pin_hash, "org_id": org_id})
    ensure_defaults(store, user_id=user.id)
    return user


def _owned_work_type(store: RecordStore, work_type_id: str, user_id: str | None, org_id: str | None) -> WorkType:
    work_type = store.get_work_type(work_type_id)
    if work_type is None or not work_type.is_active:
        raise NotFoundError("WorkType", work_type_id)
    if work_type.user_id is not None:
        owned = work_type.user_id == user_id
    else:
        owned = work_type.org_id == org_id
    if not owned:
        raise NotFoundError("WorkType", work_type_id)
    return work_type
