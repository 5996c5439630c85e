"""Request and response schemas shared by every endpoint."""

from datetime import datetime
from typing import Annotated, Literal, Optional

from email_validator import EmailNotValidError, validate_email
from pydantic import (
    BaseModel,
    BeforeValidator,
    ConfigDict,
    Field,
    confloat,
    field_validator,
    model_validator,
)

REGISTRABLE_ROLES = ("user", "vendor")
TARGET_STATUSES = ("confirmed", "in_progress", "completed", "cancelled")

# Largest value a SQLite/SQL INTEGER primary key can hold
MAX_RECORD_ID = 2**63 - 1


def _reject_bool(value):
    if isinstance(value, bool):
        raise ValueError("must be an integer, not a boolean")
    return value


RecordId = Annotated[int, BeforeValidator(_reject_bool), Field(gt=0, le=MAX_RECORD_ID)]


def _strip_optional(value: Optional[str]) -> Optional[str]:
    if value is None:
        return None
    value = value.strip()
    return value or None


class RegisterRequest(BaseModel):
    """Request body for registering a user or vendor."""

    username: str
    password: str
    email: str
    role: str
    company_name: Optional[str] = None
    description: Optional[str] = None

    @field_validator("username", "email")
    @classmethod
    def strip_and_require(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("must not be empty")
        return value

    @field_validator("password")
    @classmethod
    def require_password(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("must not be empty")
        return value

    @field_validator("email")
    @classmethod
    def check_email_format(cls, value: str) -> str:
        try:
            validate_email(value, check_deliverability=False)
        except EmailNotValidError as exc:
            raise ValueError("Invalid email format.") from exc
        return value

    @field_validator("role")
    @classmethod
    def check_role(cls, value: str) -> str:
        if value not in REGISTRABLE_ROLES:
            raise ValueError('Invalid role. Must be either "user" or "vendor".')
        return value

    @field_validator("company_name", "description")
    @classmethod
    def strip_optional(cls, value: Optional[str]) -> Optional[str]:
        return _strip_optional(value)

    @model_validator(mode="after")
    def vendor_needs_company(self) -> "RegisterRequest":
        if self.role == "vendor" and not self.company_name:
            raise ValueError('Vendor registration requires a non-empty "company_name".')
        return self


class LoginRequest(BaseModel):
    """Request body for user login."""

    username: str
    password: str

    @field_validator("username")
    @classmethod
    def strip_username(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("must not be empty")
        return value


class OrderCreateRequest(BaseModel):
    """Request body for placing an order.

    Unknown keys such as ``status`` are dropped; new orders always start as
    ``pending``.
    """

    model_config = ConfigDict(extra="ignore")

    user_id: RecordId
    vendor_id: RecordId
    service_id: RecordId
    total_amount: confloat(allow_inf_nan=False)
    order_details: Optional[str] = None


class StatusUpdateRequest(BaseModel):
    """Request body for a vendor changing an order's status."""

    vendor_id: RecordId
    order_id: RecordId
    new_status: Literal["confirmed", "in_progress", "completed", "cancelled"]


class OrderResponse(BaseModel):
    """Serialized order."""

    model_config = ConfigDict(from_attributes=True)

    order_id: int
    user_id: int
    vendor_id: int
    service_id: int
    order_details: Optional[str] = None
    total_amount: float
    status: str
    created_at: datetime


class VendorSummary(BaseModel):
    """Row of the pending-approval queue."""

    vendor_id: int
    company_name: str
    description: Optional[str] = None
    username: str
    email: str
    created_at: datetime


class LoginResult(BaseModel):
    """Identity of an authenticated account."""

    user_id: int
    role: str
    vendor_id: Optional[int] = Field(None, description="Set for vendor accounts")
