from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any, Union

from sqlalchemy import ColumnElement


class _Unset:
    _instance: "_Unset | None" = None

    def __new__(cls) -> "_Unset":
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self) -> str:
        return "UNSET"

    def __bool__(self) -> bool:
        return False

    def __reduce__(self) -> str:
        return "UNSET"


UNSET = _Unset()

ScopeValue = Union[str, None, _Unset]

FREE_TIER_PARAM_VALUES = {"", "null"}


@dataclass(frozen=True)
class ScopeFilter:
    """Tenant filter over the (user_id, org_id) owner fields of a record.

    ``UNSET`` leaves a dimension unfiltered. Any concrete value, ``None``
    included, restricts that dimension to an exact match, so ``org_id=None``
    selects free-tier records only.
    """

    user_id: ScopeValue = UNSET
    org_id: ScopeValue = UNSET

    @classmethod
    def from_params(cls, params: Mapping[str, Any]) -> "ScopeFilter":
        return cls(
            user_id=_param(params, "userId", "user_id"),
            org_id=_param(params, "orgId", "org_id"),
        )

    @property
    def is_unscoped(self) -> bool:
        return self.user_id is UNSET and self.org_id is UNSET

    @property
    def is_concrete(self) -> bool:
        return self.user_id is not UNSET and self.org_id is not UNSET

    def matches(self, user_id: str | None, org_id: str | None) -> bool:
        if self.user_id is not UNSET and user_id != self.user_id:
            return False
        if self.org_id is not UNSET and org_id != self.org_id:
            return False
        return True

    def matches_record(self, record: Any) -> bool:
        return self.matches(getattr(record, "user_id", None), getattr(record, "org_id", None))

    def criteria(self, user_column: Any, org_column: Any) -> list[ColumnElement[bool]]:
        clauses: list[ColumnElement[bool]] = []
        for value, column in ((self.user_id, user_column), (self.org_id, org_column)):
            if value is UNSET:
                continue
            if column is None:
                raise ValueError("scope dimension has no column to filter on")
            clauses.append(column.is_(None) if value is None else column == value)
        return clauses

    def owner_key(self) -> str:
        if not self.is_concrete:
            raise ValueError("owner key needs both user_id and org_id")
        return owner_key(self.user_id, self.org_id)


def resolve_scope(user_id: ScopeValue = UNSET, org_id: ScopeValue = UNSET) -> ScopeFilter:
    return ScopeFilter(user_id=user_id, org_id=org_id)


def owner_scope(record: Any) -> ScopeFilter:
    return ScopeFilter(user_id=record.user_id, org_id=record.org_id)


def owner_key(user_id: str | None, org_id: str | None) -> str:
    return f"{user_id or '-'}:{org_id or '-'}"


def _param(params: Mapping[str, Any], *names: str) -> ScopeValue:
    for name in names:
        if name in params:
            raw = params[name]
            if raw is None:
                return None
            value = str(raw).strip()
            return None if value in FREE_TIER_PARAM_VALUES else value
    return UNSET
