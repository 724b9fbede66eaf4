"""
Record store contract shared by the memory and relational backends.

Every backend exposes the same operations per record kind. Lookups return
``None`` for a missing record, and for a record that exists outside the
``scope`` the caller passes, so the two cases cannot be told apart.
Successful writes are visible to the next read in the same process.
"""
from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Mapping
from typing import Any

from streetwise.core.entities import (
    Caseworker,
    Organization,
    Payload,
    Session,
    Transaction,
    User,
    WorkType,
)
from streetwise.core.tenancy import ScopeFilter

ALL = ScopeFilter()


class RecordStore(ABC):
    """Abstract base class for record store backends."""

    # Organizations

    @abstractmethod
    def create_organization(self, data: Payload) -> Organization:
        pass

    @abstractmethod
    def get_organization(self, org_id: str) -> Organization | None:
        pass

    @abstractmethod
    def update_organization(self, org_id: str, fields: Mapping[str, Any]) -> Organization | None:
        pass

    @abstractmethod
    def list_organizations(self, include_inactive: bool = False) -> list[Organization]:
        """Organizations, newest first."""
        pass

    def deactivate_organization(self, org_id: str) -> Organization | None:
        return self.update_organization(org_id, {"is_active": False})

    # Caseworkers

    @abstractmethod
    def create_caseworker(self, data: Payload) -> Caseworker:
        """Create a caseworker; a duplicate email raises ConflictError."""
        pass

    @abstractmethod
    def get_caseworker(self, caseworker_id: str, scope: ScopeFilter = ALL) -> Caseworker | None:
        pass

    @abstractmethod
    def get_caseworker_by_email(self, email: str) -> Caseworker | None:
        pass

    @abstractmethod
    def update_caseworker(self, caseworker_id: str, fields: Mapping[str, Any]) -> Caseworker | None:
        pass

    @abstractmethod
    def list_caseworkers(self, org_id: str) -> list[Caseworker]:
        pass

    # Users

    @abstractmethod
    def create_user(self, data: Payload) -> User:
        pass

    @abstractmethod
    def get_user(self, user_id: str, scope: ScopeFilter = ALL) -> User | None:
        pass

    @abstractmethod
    def get_user_by_device(self, device_id: str) -> User | None:
        pass

    @abstractmethod
    def update_user(self, user_id: str, fields: Mapping[str, Any]) -> User | None:
        pass

    @abstractmethod
    def list_users(self, scope: ScopeFilter = ALL) -> list[User]:
        """Users whose org_id matches the scope's org dimension, newest first."""
        pass

    # Work types

    @abstractmethod
    def create_work_type(self, data: Payload) -> WorkType:
        pass

    @abstractmethod
    def get_work_type(self, work_type_id: str, scope: ScopeFilter = ALL) -> WorkType | None:
        """Fetch by id, including soft-deleted work types."""
        pass

    @abstractmethod
    def update_work_type(self, work_type_id: str, fields: Mapping[str, Any]) -> WorkType | None:
        pass

    @abstractmethod
    def list_work_types(self, scope: ScopeFilter = ALL) -> list[WorkType]:
        """Active work types by ascending sort_order, ties in creation order."""
        pass

    def delete_work_type(self, work_type_id: str) -> WorkType | None:
        return self.update_work_type(work_type_id, {"is_active": False})

    # Sessions

    @abstractmethod
    def create_session(self, data: Payload) -> Session:
        """Insert a session without checking for an active one in its scope."""
        pass

    @abstractmethod
    def start_session(self, data: Payload) -> Session:
        """Create a session unless its owner scope already has an active one.

        The check and the insert happen as one step; a second active session
        raises ConflictError.
        """
        pass

    @abstractmethod
    def get_session(self, session_id: str, scope: ScopeFilter = ALL) -> Session | None:
        pass

    @abstractmethod
    def update_session(self, session_id: str, fields: Mapping[str, Any]) -> Session | None:
        pass

    @abstractmethod
    def close_session(self, session_id: str) -> Session | None:
        pass

    @abstractmethod
    def delete_session(self, session_id: str) -> bool:
        """Hard delete a session together with its transactions."""
        pass

    @abstractmethod
    def list_sessions(self, scope: ScopeFilter = ALL) -> list[Session]:
        """Sessions, most recently started first."""
        pass

    @abstractmethod
    def find_active_session(self, scope: ScopeFilter = ALL) -> Session | None:
        """The most recently started active session matching the scope."""
        pass

    # Transactions

    @abstractmethod
    def create_transaction(self, data: Payload) -> Transaction:
        pass

    @abstractmethod
    def get_transaction(self, transaction_id: str, scope: ScopeFilter = ALL) -> Transaction | None:
        pass

    @abstractmethod
    def list_transactions(self, scope: ScopeFilter = ALL) -> list[Transaction]:
        """Transactions, newest first."""
        pass

    @abstractmethod
    def list_session_transactions(self, session_id: str) -> list[Transaction]:
        pass

    # Lifecycle

    def flush(self) -> None:
        """Force pending writes to durable storage."""

    def close(self) -> None:
        self.flush()
