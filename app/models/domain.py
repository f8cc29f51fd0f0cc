"""
Domain Models - Internal business logic models using dataclasses.

NO DICTIONARIES - All data structures are strongly typed immutable dataclasses.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Generic, TypeVar
from uuid import UUID

from app.models.api import (
    BillableAction,
    InterestStatus,
    PlanType,
    PointTransactionType,
    SenderType,
    SubscriptionStatus,
)

T = TypeVar("T")


@dataclass(frozen=True)
class SubscriptionData:
    """Immutable subscription snapshot."""

    subscription_id: UUID
    tenant_id: str
    point_balance: int
    points_included: int
    status: SubscriptionStatus
    plan_type: PlanType

    def __post_init__(self) -> None:
        """Validate balance constraints."""
        if self.point_balance < 0:
            raise ValueError(f"Point balance cannot be negative: {self.point_balance}")


@dataclass(frozen=True)
class PointTransactionData:
    """Immutable ledger entry after persistence."""

    transaction_id: UUID
    tenant_id: str
    type: PointTransactionType
    action: BillableAction | None
    amount: int
    balance_after: int
    related_id: str | None
    description: str
    expires_at: datetime | None
    expired: bool
    created_at: datetime


@dataclass(frozen=True)
class ConsumeResult(Generic[T]):
    """Outcome of a consumption, carrying the side-effect result."""

    new_balance: int
    consumed: int
    result: T | None = None


@dataclass(frozen=True)
class GrantResult:
    """Outcome of a grant or purchase credit."""

    new_balance: int


@dataclass(frozen=True)
class PurchaseResult:
    """Outcome of an additional point purchase."""

    new_balance: int
    purchased: int
    price: int


@dataclass(frozen=True)
class BalanceCheck:
    """Advisory balance check - the authoritative check happens under lock."""

    can_proceed: bool
    required: int
    available: int


@dataclass(frozen=True)
class TenantExpiration:
    """Points retired for a single tenant by the batch job."""

    tenant_id: str
    expired: int


@dataclass(frozen=True)
class BatchExpirationResult:
    """Summary of a batch expiration run."""

    processed: int
    failed: int = 0
    results: list[TenantExpiration] = field(default_factory=list)


@dataclass(frozen=True)
class PlanInfo:
    """Plan catalog entry."""

    plan_type: PlanType
    name: str
    points_included: int
    additional_point_price: int

    def __post_init__(self) -> None:
        """Validate plan configuration."""
        if self.points_included <= 0:
            raise ValueError(f"Points included must be positive: {self.points_included}")
        if self.additional_point_price <= 0:
            raise ValueError(
                f"Additional point price must be positive: {self.additional_point_price}"
            )


@dataclass(frozen=True)
class ContactDetails:
    """Candidate contact details revealed on disclosure."""

    name: str
    email: str
    phone: str | None


@dataclass(frozen=True)
class InterestOutcome:
    """Interest state after a contact action."""

    interest_id: UUID
    status: InterestStatus
    auto: bool = False
    contact: ContactDetails | None = None


@dataclass(frozen=True)
class SentMessage:
    """Direct message after persistence."""

    message_id: UUID
    interest_id: UUID
    sender_type: SenderType
    content: str
    created_at: datetime
    points_consumed: int


@dataclass(frozen=True)
class OpenedSession:
    """Chat session handed back to the caller, with what it cost."""

    session_id: UUID
    tenant_id: str
    member_id: UUID
    agent_id: str
    created: bool
    points_consumed: int
