from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import Any

from sqlalchemy import Enum as SAEnum, Index, text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from streetwise.core.extensions import db
from streetwise.core.schemas import ID_LENGTH, CaseworkerRole, OrganizationTier, TransactionType

# Reference columns (owner ids, work type, session) carry no FOREIGN KEY
# constraint: the store accepts ids it has not seen, on every backend.


class Organization(db.Model):
    __tablename__ = "organization"

    id: Mapped[str] = mapped_column(db.String(ID_LENGTH), primary_key=True)
    name: Mapped[str] = mapped_column(db.String(120), nullable=False)
    tier: Mapped[OrganizationTier] = mapped_column(
        SAEnum(OrganizationTier, name="organization_tier"),
        nullable=False,
        default=OrganizationTier.FREE,
    )
    features: Mapped[dict[str, Any]] = mapped_column(db.JSON, nullable=False, default=dict)
    subdomain: Mapped[str | None] = mapped_column(db.String(63), unique=True, nullable=True)
    branding: Mapped[dict[str, Any]] = mapped_column(db.JSON, nullable=False, default=dict)
    created_at: Mapped[datetime] = mapped_column(db.DateTime(timezone=True), nullable=False)
    is_active: Mapped[bool] = mapped_column(default=True, nullable=False)


class Caseworker(db.Model):
    __tablename__ = "caseworker"

    id: Mapped[str] = mapped_column(db.String(ID_LENGTH), primary_key=True)
    org_id: Mapped[str] = mapped_column(db.String(ID_LENGTH), nullable=False, index=True)
    email: Mapped[str] = mapped_column(db.String(255), unique=True, nullable=False)
    name: Mapped[str] = mapped_column(db.String(120), nullable=False)
    password_hash: Mapped[str] = mapped_column(db.String(255), nullable=False)
    role: Mapped[CaseworkerRole] = mapped_column(
        SAEnum(CaseworkerRole, name="caseworker_role"),
        nullable=False,
        default=CaseworkerRole.CASEWORKER,
    )
    created_at: Mapped[datetime] = mapped_column(db.DateTime(timezone=True), nullable=False)
    is_active: Mapped[bool] = mapped_column(default=True, nullable=False)


class User(db.Model):
    __tablename__ = "user_account"

    id: Mapped[str] = mapped_column(db.String(ID_LENGTH), primary_key=True)
    org_id: Mapped[str | None] = mapped_column(db.String(ID_LENGTH), nullable=True, index=True)
    caseworker_id: Mapped[str | None] = mapped_column(db.String(ID_LENGTH), nullable=True)
    pin_hash: Mapped[str | None] = mapped_column(db.String(255), nullable=True)
    device_id: Mapped[str | None] = mapped_column(db.String(255), nullable=True, index=True)
    created_at: Mapped[datetime] = mapped_column(db.DateTime(timezone=True), nullable=False)
    is_active: Mapped[bool] = mapped_column(default=True, nullable=False)


class WorkType(db.Model):
    __tablename__ = "work_type"
    __table_args__ = (Index("ix_work_type_owner_active", "user_id", "org_id", "is_active"),)

    id: Mapped[str] = mapped_column(db.String(ID_LENGTH), primary_key=True)
    name: Mapped[str] = mapped_column(db.String(80), nullable=False)
    user_id: Mapped[str | None] = mapped_column(db.String(ID_LENGTH), nullable=True)
    org_id: Mapped[str | None] = mapped_column(db.String(ID_LENGTH), nullable=True)
    icon: Mapped[str | None] = mapped_column(db.String(16), nullable=True)
    color: Mapped[str | None] = mapped_column(db.String(16), nullable=True)
    is_default: Mapped[bool] = mapped_column(default=False, nullable=False)
    sort_order: Mapped[int] = mapped_column(default=0, nullable=False)
    created_at: Mapped[datetime] = mapped_column(db.DateTime(timezone=True), nullable=False)
    is_active: Mapped[bool] = mapped_column(default=True, nullable=False)
    # Insertion counter, the tiebreak after sort_order.
    position: Mapped[int] = mapped_column(nullable=False, index=True)


class Session(db.Model):
    __tablename__ = "collection_session"
    __table_args__ = (
        # One active session per owner scope; closed rows are outside the index.
        Index(
            "ix_collection_session_one_active",
            "scope_key",
            unique=True,
            sqlite_where=text("is_active = 1"),
            postgresql_where=text("is_active"),
        ),
        Index("ix_collection_session_org_start", "org_id", "start_time"),
        Index("ix_collection_session_user_start", "user_id", "start_time"),
    )

    id: Mapped[str] = mapped_column(db.String(ID_LENGTH), primary_key=True)
    user_id: Mapped[str | None] = mapped_column(db.String(ID_LENGTH), nullable=True)
    org_id: Mapped[str | None] = mapped_column(db.String(ID_LENGTH), nullable=True)
    work_type_id: Mapped[str | None] = mapped_column(db.String(ID_LENGTH), nullable=True)
    location: Mapped[str] = mapped_column(db.String(255), nullable=False)
    start_time: Mapped[datetime] = mapped_column(db.DateTime(timezone=True), nullable=False)
    end_time: Mapped[datetime | None] = mapped_column(db.DateTime(timezone=True), nullable=True)
    is_test: Mapped[bool] = mapped_column(default=False, nullable=False)
    is_active: Mapped[bool] = mapped_column(default=True, nullable=False)
    scope_key: Mapped[str] = mapped_column(db.String(120), nullable=False)

    transactions = relationship(
        "Transaction",
        primaryjoin="Session.id == foreign(Transaction.session_id)",
        back_populates="session",
        cascade="all, delete-orphan",
    )


class Transaction(db.Model):
    __tablename__ = "collection_transaction"
    __table_args__ = (
        Index("ix_collection_transaction_org_timestamp", "org_id", "timestamp"),
        Index("ix_collection_transaction_user_timestamp", "user_id", "timestamp"),
    )

    id: Mapped[str] = mapped_column(db.String(ID_LENGTH), primary_key=True)
    session_id: Mapped[str | None] = mapped_column(db.String(ID_LENGTH), nullable=True, index=True)
    user_id: Mapped[str | None] = mapped_column(db.String(ID_LENGTH), nullable=True)
    org_id: Mapped[str | None] = mapped_column(db.String(ID_LENGTH), nullable=True)
    work_type_id: Mapped[str | None] = mapped_column(db.String(ID_LENGTH), nullable=True)
    timestamp: Mapped[datetime] = mapped_column(db.DateTime(timezone=True), nullable=False)
    amount: Mapped[Decimal] = mapped_column(db.Numeric(10, 2), nullable=False)
    type: Mapped[TransactionType] = mapped_column(
        SAEnum(TransactionType, name="transaction_type"),
        nullable=False,
    )
    note: Mapped[str | None] = mapped_column(db.String(500), nullable=True)
    product_id: Mapped[str | None] = mapped_column(db.String(ID_LENGTH), nullable=True)
    pennies: Mapped[int] = mapped_column(default=0, nullable=False)

    session = relationship(
        "Session",
        primaryjoin="Session.id == foreign(Transaction.session_id)",
        back_populates="transactions",
    )
