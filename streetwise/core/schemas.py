from __future__ import annotations

from collections.abc import Mapping
from decimal import Decimal
from enum import Enum
from typing import Any, TypeVar

from pydantic import BaseModel, ConfigDict, Field, StrictBool, StrictInt, field_validator
from pydantic import ValidationError as PydanticValidationError

from streetwise.core.errors import ValidationError
from streetwise.core.utils import CENT

ID_LENGTH = 36


class OrganizationTier(str, Enum):
    FREE = "free"
    BASIC = "basic"
    PROFESSIONAL = "professional"
    ENTERPRISE = "enterprise"


class CaseworkerRole(str, Enum):
    ADMIN = "admin"
    CASEWORKER = "caseworker"
    READONLY = "readonly"


class TransactionType(str, Enum):
    DONATION = "donation"
    PRODUCT = "product"


class _Shape(BaseModel):
    model_config = ConfigDict(extra="forbid", str_strip_whitespace=True)


def _clean_email(value: str) -> str:
    email = value.strip().lower()
    if "@" not in email or email.startswith("@") or email.endswith("@"):
        raise ValueError("invalid email address")
    return email


class OrganizationInsert(_Shape):
    name: str = Field(min_length=1, max_length=120)
    tier: OrganizationTier = OrganizationTier.FREE
    features: dict[str, StrictBool] = Field(default_factory=dict)
    subdomain: str | None = Field(default=None, max_length=63)
    branding: dict[str, Any] = Field(default_factory=dict)
    is_active: StrictBool = True


class OrganizationUpdate(_Shape):
    name: str = Field(default=None, min_length=1, max_length=120)
    tier: OrganizationTier = None
    features: dict[str, StrictBool] = None
    subdomain: str | None = Field(default=None, max_length=63)
    branding: dict[str, Any] = None
    is_active: StrictBool = None


class CaseworkerInsert(_Shape):
    org_id: str = Field(min_length=1, max_length=ID_LENGTH)
    email: str = Field(min_length=3, max_length=255)
    name: str = Field(min_length=1, max_length=120)
    password_hash: str = Field(min_length=1)
    role: CaseworkerRole = CaseworkerRole.CASEWORKER
    is_active: StrictBool = True

    @field_validator("email")
    @classmethod
    def normalize_email(cls, value: str) -> str:
        return _clean_email(value)


class CaseworkerUpdate(_Shape):
    email: str = Field(default=None, min_length=3, max_length=255)
    name: str = Field(default=None, min_length=1, max_length=120)
    password_hash: str = Field(default=None, min_length=1)
    role: CaseworkerRole = None
    is_active: StrictBool = None

    @field_validator("email")
    @classmethod
    def normalize_email(cls, value: str) -> str:
        return _clean_email(value)


class UserInsert(_Shape):
    org_id: str | None = Field(default=None, max_length=ID_LENGTH)
    caseworker_id: str | None = Field(default=None, max_length=ID_LENGTH)
    pin_hash: str | None = None
    device_id: str | None = Field(default=None, max_length=255)
    is_active: StrictBool = True


class UserUpdate(_Shape):
    org_id: str | None = Field(default=None, max_length=ID_LENGTH)
    caseworker_id: str | None = Field(default=None, max_length=ID_LENGTH)
    pin_hash: str | None = None
    device_id: str | None = Field(default=None, max_length=255)
    is_active: StrictBool = None


class WorkTypeInsert(_Shape):
    name: str = Field(min_length=1, max_length=80)
    user_id: str | None = Field(default=None, max_length=ID_LENGTH)
    org_id: str | None = Field(default=None, max_length=ID_LENGTH)
    icon: str | None = Field(default=None, max_length=16)
    color: str | None = Field(default=None, max_length=16)
    is_default: StrictBool = False
    sort_order: StrictInt = Field(default=0, ge=0)
    is_active: StrictBool = True


class WorkTypeUpdate(_Shape):
    name: str = Field(default=None, min_length=1, max_length=80)
    icon: str | None = Field(default=None, max_length=16)
    color: str | None = Field(default=None, max_length=16)
    is_default: StrictBool = None
    sort_order: StrictInt = Field(default=None, ge=0)
    is_active: StrictBool = None


class SessionInsert(_Shape):
    location: str = Field(min_length=1, max_length=255)
    user_id: str | None = Field(default=None, max_length=ID_LENGTH)
    org_id: str | None = Field(default=None, max_length=ID_LENGTH)
    work_type_id: str | None = Field(default=None, max_length=ID_LENGTH)
    is_test: StrictBool = False


class SessionUpdate(_Shape):
    location: str = Field(default=None, min_length=1, max_length=255)
    work_type_id: str | None = Field(default=None, max_length=ID_LENGTH)
    is_test: StrictBool = None
    is_active: StrictBool = None


class TransactionInsert(_Shape):
    amount: Decimal = Field(gt=0, max_digits=10, decimal_places=2)
    type: TransactionType
    session_id: str | None = Field(default=None, max_length=ID_LENGTH)
    user_id: str | None = Field(default=None, max_length=ID_LENGTH)
    org_id: str | None = Field(default=None, max_length=ID_LENGTH)
    work_type_id: str | None = Field(default=None, max_length=ID_LENGTH)
    note: str | None = Field(default=None, max_length=500)
    product_id: str | None = Field(default=None, max_length=ID_LENGTH)
    pennies: StrictInt = Field(default=0, ge=0)

    @field_validator("amount", mode="before")
    @classmethod
    def reject_non_numeric_amount(cls, value: Any) -> Any:
        if isinstance(value, bool) or value is None:
            raise ValueError("amount must be a decimal number")
        if isinstance(value, str):
            return value.strip()
        return value

    @field_validator("amount")
    @classmethod
    def quantize_amount(cls, value: Decimal) -> Decimal:
        return value.quantize(CENT)


ShapeT = TypeVar("ShapeT", bound=_Shape)


def parse_payload(shape: type[ShapeT], data: Mapping[str, Any] | BaseModel) -> ShapeT:
    if isinstance(data, shape):
        return data
    if isinstance(data, BaseModel):
        data = data.model_dump(exclude_unset=True)
    if not isinstance(data, Mapping):
        raise ValidationError("payload", "expected a mapping of fields")
    try:
        return shape.model_validate(dict(data))
    except PydanticValidationError as exc:
        raise _as_validation_error(exc) from exc


def parse_update(shape: type[ShapeT], fields: Mapping[str, Any]) -> dict[str, Any]:
    return parse_payload(shape, fields).model_dump(exclude_unset=True)


def _as_validation_error(exc: PydanticValidationError) -> ValidationError:
    first = exc.errors()[0]
    loc = [str(part) for part in first.get("loc", ()) if not isinstance(part, int)]
    field = loc[0] if loc else "payload"
    if first.get("type") == "extra_forbidden":
        return ValidationError(field, "field is not accepted")
    if first.get("type") == "missing":
        return ValidationError(field, "field is required")
    return ValidationError(field, first.get("msg", "invalid value"))
