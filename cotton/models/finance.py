"""
Finance Entity Models for Cotton

These models define the shapes of every record the cache mirrors:
projects, categories, contacts and transactions.

DESIGN DECISION: Entities are frozen.
The cache hands the same instances to every screen, so an in-place edit
on one screen would silently corrupt what another screen shows. All
changes go through model_copy(update=...) and the mutation helpers.

The backend speaks camelCase JSON (createdAt, monthlyBudget, ...).
We accept both spellings on input and dump snake_case by default.
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    field_validator,
    model_validator,
)
from pydantic.alias_generators import to_camel


def utc_now() -> datetime:
    """Current time as an aware UTC datetime."""
    return datetime.now(timezone.utc)


# =============================================================================
# ENUMS - Finite set of valid values
# =============================================================================

class TransactionType(str, Enum):
    """Direction of a money movement."""
    INCOME = "income"
    EXPENSE = "expense"


class Currency(str, Enum):
    """Supported currencies. Reporting is normalized to INR."""
    INR = "INR"
    USD = "USD"


class ProjectStatus(str, Enum):
    ACTIVE = "active"
    PAUSED = "paused"
    CLOSED = "closed"


class ProjectType(str, Enum):
    SERVICE = "service"
    PRODUCT = "product"
    INVESTMENT = "investment"
    OTHER = "other"


class ContactType(str, Enum):
    """
    Roles a contact can play.

    A single contact may hold several roles (e.g. a customer who is
    also a supplier).
    """
    CUSTOMER = "customer"
    SUPPLIER = "supplier"
    EMPLOYEE = "employee"


class EmployeeStatus(str, Enum):
    ACTIVE = "active"
    INACTIVE = "inactive"


# =============================================================================
# BASE ENTITY
# =============================================================================

class Entity(BaseModel):
    """
    Base for every cached record.

    Identity is the backend-assigned `id`. Two entities with the same id
    never coexist inside one collection.
    """
    model_config = ConfigDict(
        frozen=True,
        populate_by_name=True,
        alias_generator=to_camel,
        str_strip_whitespace=True,
    )

    id: str = Field(
        ...,
        min_length=1,
        description="Backend-assigned unique identifier"
    )
    created_at: datetime = Field(
        default_factory=utc_now,
        description="When the record was created"
    )
    updated_at: datetime = Field(
        default_factory=utc_now,
        description="Last update timestamp"
    )

    @model_validator(mode="before")
    @classmethod
    def unwrap_parse_dates(cls, data: Any) -> Any:
        """Accept Parse-encoded dates: {"__type": "Date", "iso": "..."}."""
        if not isinstance(data, dict):
            return data
        unwrapped = {}
        for key, value in data.items():
            if isinstance(value, dict) and value.get("__type") == "Date":
                value = value.get("iso")
            unwrapped[key] = value
        return unwrapped


# =============================================================================
# CORE MODELS
# =============================================================================

class Project(Entity):
    """A business venture or investment."""

    name: str = Field(..., min_length=1, max_length=200)
    type: ProjectType = ProjectType.OTHER
    status: ProjectStatus = ProjectStatus.ACTIVE
    description: Optional[str] = None
    color: str = Field(
        default="#6366F1",
        description="Hex color for UI"
    )
    monthly_budget: Optional[float] = Field(default=None, ge=0)
    currency: Currency = Currency.INR


class Category(Entity):
    """Transaction categorization."""

    name: str = Field(..., min_length=1, max_length=100)
    type: TransactionType
    icon: str = Field(
        default="tag",
        description="Icon name"
    )
    color: str = "#6B7280"
    is_system: bool = Field(
        default=False,
        description="System categories can't be deleted"
    )


class Contact(Entity):
    """
    Unified entity for customers, suppliers and employees.

    Totals are aggregated by the backend; the cache only mirrors them.
    """

    name: str = Field(..., min_length=1, max_length=200)
    types: list[ContactType] = Field(..., min_length=1)
    aliases: list[str] = Field(
        default_factory=list,
        description="Alternative names used for matching"
    )
    email: Optional[str] = None
    phone: Optional[str] = None
    company: Optional[str] = None
    website: Optional[str] = None
    notes: Optional[str] = None
    total_spent: float = 0.0
    total_received: float = 0.0
    transaction_count: int = Field(default=0, ge=0)
    default_category_id: Optional[str] = None

    # Employee-specific fields
    role: Optional[str] = None
    monthly_salary: Optional[float] = Field(default=None, ge=0)
    salary_currency: Optional[Currency] = None
    employee_status: Optional[EmployeeStatus] = None
    project_id: Optional[str] = None
    project_name: Optional[str] = None

    @property
    def is_employee(self) -> bool:
        return ContactType.EMPLOYEE in self.types


class Allocation(BaseModel):
    """Share of a shared expense attributed to one project."""
    model_config = ConfigDict(
        frozen=True,
        populate_by_name=True,
        alias_generator=to_camel,
    )

    project_id: str
    project_name: Optional[str] = None
    amount: float = Field(..., ge=0)
    percentage: float = Field(..., ge=0, le=100)


class Transaction(Entity):
    """A single money movement."""

    amount: float = Field(..., gt=0)
    currency: Currency = Currency.INR
    amount_inr: Optional[float] = Field(
        default=None,
        alias="amountINR",
        description="Amount normalized to INR for reporting"
    )
    type: TransactionType
    date: datetime
    contact_id: Optional[str] = None
    contact_name: Optional[str] = None
    category_id: Optional[str] = None
    category_name: Optional[str] = None
    project_id: Optional[str] = Field(
        default=None,
        description="None for shared expenses"
    )
    project_name: Optional[str] = None
    allocations: list[Allocation] = Field(default_factory=list)
    description: Optional[str] = None
    notes: Optional[str] = None
    is_recurring: bool = False
    needs_review: bool = False
    confidence: Optional[float] = Field(default=None, ge=0.0, le=1.0)

    @field_validator("allocations", mode="before")
    @classmethod
    def none_allocations_to_empty(cls, v: Any) -> Any:
        return [] if v is None else v

    @property
    def reporting_amount(self) -> float:
        """
        Amount in INR for reporting.

        Falls back to the raw amount whenever no conversion was recorded,
        whatever the currency.
        """
        if self.amount_inr is not None:
            return self.amount_inr
        return self.amount


# Model for each cached collection, keyed by collection name
COLLECTION_MODELS: dict[str, type[Entity]] = {
    "projects": Project,
    "categories": Category,
    "contacts": Contact,
    "transactions": Transaction,
}
