from __future__ import annotations

from datetime import datetime, timezone
from decimal import Decimal

CENT = Decimal("0.01")


def money(value: Decimal | float | int) -> str:
    return f"${Decimal(value).quantize(CENT):,}"


def as_utc(value: datetime) -> datetime:
    # SQLite hands DateTime(timezone=True) columns back without tzinfo.
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)
