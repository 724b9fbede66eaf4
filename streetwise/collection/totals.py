"""
Monetary totals over the transactions visible in a tenant scope.

Transactions recorded in a test session never count. Quick transactions,
recorded without a session, always count. Totals work only on what the
store's list operations return, so both backends give the same answer.
"""
from __future__ import annotations

from collections.abc import Iterable
from datetime import datetime, timedelta, timezone
from decimal import Decimal

from streetwise.core.entities import Transaction, utcnow
from streetwise.core.tenancy import ScopeFilter
from streetwise.core.utils import CENT
from streetwise.storage.base import RecordStore

TIMEFRAMES = ("today", "week", "month", "all-time")
ZERO = Decimal("0.00")


def timeframe_cutoff(timeframe: str | None, now: datetime | None = None) -> datetime | None:
    """Earliest instant counted for ``timeframe``; ``None`` means no cutoff.

    ``today`` and ``month`` use calendar boundaries in ``now``'s own
    timezone. Unknown values behave like ``all-time``.
    """
    now = _aware(now)
    if timeframe == "today":
        return now.replace(hour=0, minute=0, second=0, microsecond=0)
    if timeframe == "week":
        return now - timedelta(days=7)
    if timeframe == "month":
        return now.replace(day=1, hour=0, minute=0, second=0, microsecond=0)
    return None


def eligible_transactions(store: RecordStore, scope: ScopeFilter) -> list[Transaction]:
    live_session_ids = {session.id for session in store.list_sessions(scope) if not session.is_test}
    return [
        transaction
        for transaction in store.list_transactions(scope)
        if transaction.session_id is None or transaction.session_id in live_session_ids
    ]


def collection_total(
    store: RecordStore,
    scope: ScopeFilter,
    timeframe: str | None = "all-time",
    now: datetime | None = None,
) -> Decimal:
    transactions = eligible_transactions(store, scope)
    return sum_amounts(_since(transactions, timeframe_cutoff(timeframe, now)))


def totals_summary(
    store: RecordStore,
    scope: ScopeFilter,
    now: datetime | None = None,
) -> dict[str, Decimal]:
    now = _aware(now)
    transactions = eligible_transactions(store, scope)
    return {
        timeframe: sum_amounts(_since(transactions, timeframe_cutoff(timeframe, now)))
        for timeframe in TIMEFRAMES
    }


def totals_by_work_type(
    store: RecordStore,
    scope: ScopeFilter,
    timeframe: str | None = "all-time",
    now: datetime | None = None,
) -> dict[str | None, Decimal]:
    grouped: dict[str | None, list[Transaction]] = {}
    cutoff = timeframe_cutoff(timeframe, now)
    for transaction in _since(eligible_transactions(store, scope), cutoff):
        grouped.setdefault(transaction.work_type_id, []).append(transaction)
    return {work_type_id: sum_amounts(rows) for work_type_id, rows in grouped.items()}


def sum_amounts(transactions: Iterable[Transaction]) -> Decimal:
    total = sum((transaction.amount for transaction in transactions), ZERO)
    return total.quantize(CENT)


def _since(transactions: Iterable[Transaction], cutoff: datetime | None) -> list[Transaction]:
    if cutoff is None:
        return list(transactions)
    return [transaction for transaction in transactions if transaction.timestamp >= cutoff]


def _aware(now: datetime | None) -> datetime:
    if now is None:
        return utcnow()
    if now.tzinfo is None:
        return now.replace(tzinfo=timezone.utc)
    return now
