from __future__ import annotations

from datetime import datetime, timedelta, timezone
from decimal import Decimal

import pytest

from streetwise.collection.totals import (
    TIMEFRAMES,
    collection_total,
    timeframe_cutoff,
    totals_by_work_type,
    totals_summary,
)
from streetwise.core.tenancy import ScopeFilter

NOW = datetime(2024, 6, 15, 18, 30, tzinfo=timezone.utc)
USER = ScopeFilter(user_id="u1")


def _donation(store, amount, **extra):
    return store.create_transaction({"amount": amount, "type": "donation", "user_id": "u1", **extra})


def test_test_sessions_do_not_count(store):
    rehearsal = store.create_session({"location": "Yard", "user_id": "u1", "is_test": True})
    live = store.create_session({"location": "Corner", "user_id": "u1"})
    _donation(store, "5.00", session_id=rehearsal.id)
    _donation(store, "3.00", session_id=live.id)

    assert collection_total(store, USER, "all-time") == Decimal("3.00")


def test_quick_transactions_count(store):
    _donation(store, "2.00")
    assert collection_total(store, USER, "all-time") == Decimal("2.00")


def test_today_excludes_older_transactions(store, freeze_time):
    freeze_time(NOW - timedelta(days=8))
    _donation(store, "1.00")
    freeze_time(NOW - timedelta(hours=2))
    _donation(store, "4.00")

    assert collection_total(store, USER, "today", now=NOW) == Decimal("4.00")
    assert collection_total(store, USER, "all-time", now=NOW) == Decimal("5.00")


def test_summary_covers_every_timeframe(store, freeze_time):
    for age, amount in ((timedelta(days=40), "8.00"), (timedelta(days=10), "4.00"),
                        (timedelta(days=3), "2.00"), (timedelta(hours=1), "1.00")):
        freeze_time(NOW - age)
        _donation(store, amount)

    summary = totals_summary(store, USER, now=NOW)
    assert list(summary) == list(TIMEFRAMES)
    assert summary == {
        "today": Decimal("1.00"),
        "week": Decimal("3.00"),
        "month": Decimal("7.00"),
        "all-time": Decimal("15.00"),
    }


def test_unknown_timeframe_counts_everything(store):
    _donation(store, "2.50")
    assert collection_total(store, USER, "Today") == Decimal("2.50")
    assert collection_total(store, USER, None) == Decimal("2.50")


def test_empty_scope_totals_zero(store):
    assert collection_total(store, ScopeFilter(org_id="nobody")) == Decimal("0.00")


def test_organization_totals_do_not_leak(store):
    org = store.create_organization({"name": "Org1"})
    user = store.create_user({"org_id": org.id})
    session = store.create_session(
        {"location": "Corner", "is_test": False, "user_id": user.id, "org_id": org.id}
    )
    for amount in ("5.00", "10.00"):
        store.create_transaction(
            {"amount": amount, "type": "donation", "session_id": session.id, "user_id": user.id, "org_id": org.id}
        )

    assert collection_total(store, ScopeFilter(org_id=org.id), "all-time") == Decimal("15.00")
    assert collection_total(store, ScopeFilter(org_id=None), "all-time") == Decimal("0.00")


def test_totals_by_work_type(store):
    _donation(store, "1.00", work_type_id="wt-a")
    _donation(store, "2.00", work_type_id="wt-a")
    _donation(store, "4.00")

    assert totals_by_work_type(store, USER) == {"wt-a": Decimal("3.00"), None: Decimal("4.00")}


@pytest.mark.parametrize(
    "timeframe, expected",
    [
        ("today", datetime(2024, 6, 15, tzinfo=timezone.utc)),
        ("week", datetime(2024, 6, 8, 18, 30, tzinfo=timezone.utc)),
        ("month", datetime(2024, 6, 1, tzinfo=timezone.utc)),
        ("all-time", None),
        ("fortnight", None),
    ],
)
def test_timeframe_cutoff(timeframe, expected):
    assert timeframe_cutoff(timeframe, NOW) == expected


def test_timeframe_cutoff_uses_the_callers_timezone():
    local = timezone(timedelta(hours=-5))
    now = datetime(2024, 6, 15, 1, 0, tzinfo=local)
    assert timeframe_cutoff("today", now) == datetime(2024, 6, 15, tzinfo=local)
    assert timeframe_cutoff("today", now.replace(tzinfo=None)) == datetime(2024, 6, 15, tzinfo=timezone.utc)
