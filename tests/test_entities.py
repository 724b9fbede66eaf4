from __future__ import annotations

from datetime import timezone
from decimal import Decimal

import pytest

from streetwise.core.entities import (
    closed,
    merge_update,
    new_caseworker,
    new_organization,
    new_session,
    new_transaction,
    new_work_type,
)
from streetwise.core.errors import ValidationError
from streetwise.core.schemas import CaseworkerRole, OrganizationTier, TransactionType


def test_new_organization_defaults():
    org = new_organization({"name": "  Hope Street  "})
    assert org.name == "Hope Street"
    assert org.tier is OrganizationTier.FREE
    assert org.features == {}
    assert org.branding == {}
    assert org.is_active is True
    assert org.created_at.tzinfo is not None
    assert len(org.id) == 36


def test_server_owned_fields_are_rejected_on_insert():
    with pytest.raises(ValidationError) as excinfo:
        new_organization({"name": "Org", "id": "chosen-by-client"})
    assert excinfo.value.field == "id"

    with pytest.raises(ValidationError) as excinfo:
        new_session({"location": "Main St", "start_time": "2024-01-01T00:00:00Z"})
    assert excinfo.value.field == "start_time"


def test_unknown_fields_are_rejected():
    with pytest.raises(ValidationError) as excinfo:
        new_work_type({"name": "Busking", "colour": "#fff"})
    assert excinfo.value.field == "colour"
    assert excinfo.value.message == "field is not accepted"


def test_missing_required_field_names_the_field():
    with pytest.raises(ValidationError) as excinfo:
        new_session({"user_id": "u1"})
    assert excinfo.value.field == "location"
    assert excinfo.value.message == "field is required"


def test_caseworker_email_is_normalized_and_checked():
    caseworker = new_caseworker(
        {"org_id": "o1", "email": "  Admin@Example.ORG ", "name": "Ada", "password_hash": "x"}
    )
    assert caseworker.email == "admin@example.org"
    assert caseworker.role is CaseworkerRole.CASEWORKER

    with pytest.raises(ValidationError) as excinfo:
        new_caseworker({"org_id": "o1", "email": "not-an-email", "name": "Ada", "password_hash": "x"})
    assert excinfo.value.field == "email"


@pytest.mark.parametrize("amount", ["0", 0, "-1.00", "abc", None, True])
def test_transaction_amount_must_be_a_positive_number(amount):
    with pytest.raises(ValidationError) as excinfo:
        new_transaction({"amount": amount, "type": "donation"})
    assert excinfo.value.field == "amount"


def test_transaction_amount_is_kept_to_cents():
    transaction = new_transaction({"amount": "2.5", "type": "donation"})
    assert transaction.amount == Decimal("2.50")
    assert transaction.type is TransactionType.DONATION
    assert transaction.is_quick

    with pytest.raises(ValidationError):
        new_transaction({"amount": "1.005", "type": "donation"})


def test_transaction_type_is_required():
    with pytest.raises(ValidationError) as excinfo:
        new_transaction({"amount": "1.00"})
    assert excinfo.value.field == "type"


def test_transactions_cannot_be_updated():
    transaction = new_transaction({"amount": "1.00", "type": "product", "session_id": "s1"})
    assert not transaction.is_quick
    with pytest.raises(ValidationError):
        merge_update(transaction, {"amount": "5.00"})


def test_merge_update_keeps_unlisted_fields():
    work_type = new_work_type({"name": "Odd Jobs", "icon": "🔧", "sort_order": 3})
    updated = merge_update(work_type, {"name": "Chores"})
    assert updated.name == "Chores"
    assert updated.icon == "🔧"
    assert updated.sort_order == 3
    assert updated.id == work_type.id
    assert updated.created_at == work_type.created_at


def test_merge_update_rejects_server_owned_fields():
    work_type = new_work_type({"name": "Odd Jobs"})
    with pytest.raises(ValidationError) as excinfo:
        merge_update(work_type, {"created_at": "2020-01-01T00:00:00Z"})
    assert excinfo.value.field == "created_at"


def test_closing_a_session_stamps_end_time():
    session = new_session({"location": "Market Square", "user_id": "u1"})
    assert session.is_active and session.end_time is None

    ended = merge_update(session, {"is_active": False})
    assert ended.is_active is False
    assert ended.end_time is not None
    assert ended.end_time.tzinfo == timezone.utc
    assert ended.end_time >= ended.start_time


def test_closed_session_cannot_be_reopened():
    ended = closed(new_session({"location": "Market Square"}))
    assert closed(ended) is ended
    with pytest.raises(ValidationError) as excinfo:
        merge_update(ended, {"is_active": True})
    assert excinfo.value.field == "is_active"


@pytest.mark.parametrize("pennies", [True, "7", 1.0])
def test_pennies_must_be_a_real_integer(pennies):
    with pytest.raises(ValidationError) as excinfo:
        new_transaction({"amount": "1.00", "type": "donation", "pennies": pennies})
    assert excinfo.value.field == "pennies"


@pytest.mark.parametrize("sort_order", [True, "2"])
def test_sort_order_must_be_a_real_integer(sort_order):
    with pytest.raises(ValidationError) as excinfo:
        new_work_type({"name": "Busking", "sort_order": sort_order})
    assert excinfo.value.field == "sort_order"

    with pytest.raises(ValidationError):
        merge_update(new_work_type({"name": "Busking"}), {"sort_order": sort_order})


@pytest.mark.parametrize("field", ["session_id", "user_id", "org_id", "work_type_id", "product_id"])
def test_reference_ids_are_limited_to_uuid_length(field):
    with pytest.raises(ValidationError) as excinfo:
        new_transaction({"amount": "1.00", "type": "donation", field: "x" * 37})
    assert excinfo.value.field == field

    transaction = new_transaction({"amount": "1.00", "type": "donation", field: "x" * 36})
    assert getattr(transaction, field) == "x" * 36


def test_caseworker_org_id_length():
    with pytest.raises(ValidationError) as excinfo:
        new_caseworker({"org_id": "o" * 40, "email": "a@b.org", "name": "A", "password_hash": "x"})
    assert excinfo.value.field == "org_id"
