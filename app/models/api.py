"""
API Models - Pydantic models for request/response validation.

NO DICTIONARIES - All data structures are strongly typed.
"""

from enum import Enum
from typing import Literal
from uuid import UUID

from pydantic import BaseModel, Field, field_validator


class SubscriptionStatus(str, Enum):
    """Subscription status enumeration."""

    ACTIVE = "ACTIVE"
    PAST_DUE = "PAST_DUE"
    CANCELED = "CANCELED"


class PlanType(str, Enum):
    """Subscription plan enumeration."""

    LIGHT = "LIGHT"
    STANDARD = "STANDARD"
    ENTERPRISE = "ENTERPRISE"


class PointTransactionType(str, Enum):
    """Point ledger entry type."""

    GRANT = "GRANT"
    PURCHASE = "PURCHASE"
    CONSUME = "CONSUME"
    EXPIRE = "EXPIRE"


class BillableAction(str, Enum):
    """Metered actions a tenant pays points for."""

    CONVERSATION = "CONVERSATION"
    INTEREST = "INTEREST"
    CONTACT_DISCLOSURE = "CONTACT_DISCLOSURE"
    MESSAGE_SEND = "MESSAGE_SEND"


class InterestStatus(str, Enum):
    """Interest (candidate/company contact) lifecycle."""

    INTERESTED = "INTERESTED"
    CONTACT_REQUESTED = "CONTACT_REQUESTED"
    CONTACT_DISCLOSED = "CONTACT_DISCLOSED"
    DECLINED = "DECLINED"


class MemberStatus(str, Enum):
    """Team member (recruiter seat) status."""

    ACTIVE = "ACTIVE"
    SUSPENDED = "SUSPENDED"
    DISABLED = "DISABLED"


class InviteStatus(str, Enum):
    """Team invite status."""

    PENDING = "PENDING"
    USED = "USED"
    REVOKED = "REVOKED"


class AccessPreference(str, Enum):
    """Standing candidate preference towards a company."""

    ALLOW = "ALLOW"
    DENY = "DENY"


class NotificationType(str, Enum):
    """Notification category."""

    SYSTEM = "SYSTEM"
    PIPELINE_UPDATE = "PIPELINE_UPDATE"


class SenderType(str, Enum):
    """Direct message sender side."""

    RECRUITER = "RECRUITER"
    USER = "USER"


class SessionType(str, Enum):
    """Billed chat session type."""

    RECRUITER_AGENT_CHAT = "RECRUITER_AGENT_CHAT"


# ============================================================================
# Point Balance Models
# ============================================================================


class PointBalanceResponse(BaseModel):
    """GET /v1/tenants/{tenant_id}/points response."""

    tenant_id: str
    point_balance: int
    points_included: int
    plan_type: PlanType
    status: SubscriptionStatus
    additional_point_price: int


class BalanceCheckResponse(BaseModel):
    """GET /v1/tenants/{tenant_id}/points/check response (advisory only)."""

    can_proceed: bool
    required: int
    available: int


# ============================================================================
# Consume / Grant / Purchase Models
# ============================================================================


class ConsumePointsRequest(BaseModel):
    """POST /v1/tenants/{tenant_id}/points/consume request body."""

    action: BillableAction
    related_id: str | None = Field(None, max_length=255)
    description: str | None = Field(None, min_length=1, max_length=500)


class ConsumePointsResponse(BaseModel):
    """POST /v1/tenants/{tenant_id}/points/consume response."""

    new_balance: int
    consumed: int


class GrantPointsRequest(BaseModel):
    """POST /v1/tenants/{tenant_id}/points/grant request body."""

    amount: int = Field(..., gt=0)
    transaction_type: PointTransactionType = PointTransactionType.GRANT
    description: str | None = Field(None, min_length=1, max_length=500)

    @field_validator("transaction_type")
    @classmethod
    def validate_credit_type(cls, v: PointTransactionType) -> PointTransactionType:
        """Only credit entry types can be granted."""
        if v not in (PointTransactionType.GRANT, PointTransactionType.PURCHASE):
            raise ValueError("transaction_type must be GRANT or PURCHASE")
        return v


class GrantPointsResponse(BaseModel):
    """POST /v1/tenants/{tenant_id}/points/grant response."""

    new_balance: int


class PurchasePointsRequest(BaseModel):
    """POST /v1/tenants/{tenant_id}/points/purchase request body."""

    amount: int = Field(..., gt=0)


class PurchasePointsResponse(BaseModel):
    """POST /v1/tenants/{tenant_id}/points/purchase response."""

    new_balance: int
    purchased: int
    price: int


# ============================================================================
# History Models
# ============================================================================


class PointTransactionItem(BaseModel):
    """Single ledger entry in history response."""

    transaction_id: UUID
    type: PointTransactionType
    action: BillableAction | None = None
    amount: int  # Negative for CONSUME/EXPIRE
    balance_after: int
    related_id: str | None = None
    description: str
    expires_at: str | None = None  # ISO 8601 timestamp
    expired: bool
    created_at: str  # ISO 8601 timestamp


class PointHistoryResponse(BaseModel):
    """GET /v1/tenants/{tenant_id}/points/history response."""

    transactions: list[PointTransactionItem]
    limit: int
    offset: int


# ============================================================================
# Batch Expiration Models
# ============================================================================


class TenantExpirationItem(BaseModel):
    """Tenant that had points retired by the batch job."""

    tenant_id: str
    expired: int


class ExpirePointsResponse(BaseModel):
    """POST /v1/internal/points/expire response."""

    processed: int
    failed: int
    results: list[TenantExpirationItem]


# ============================================================================
# Interest / Messaging Models
# ============================================================================


class RequestContactRequest(BaseModel):
    """POST /v1/interests/{interest_id}/request-contact request body."""

    member_id: UUID


class ApproveContactRequest(BaseModel):
    """POST /v1/interests/{interest_id}/approve request body."""

    candidate_id: UUID
    preference: Literal["ALLOW", "NONE"] = "NONE"


class DeclineContactRequest(BaseModel):
    """POST /v1/interests/{interest_id}/decline request body."""

    candidate_id: UUID
    preference: Literal["DENY", "NONE"] = "NONE"


class ContactInfo(BaseModel):
    """Disclosed candidate contact details."""

    name: str
    email: str
    phone: str | None = None


class InterestStatusResponse(BaseModel):
    """Result of an interest state change."""

    status: InterestStatus
    auto: bool = False
    contact: ContactInfo | None = None


class SendMessageRequest(BaseModel):
    """POST /v1/interests/{interest_id}/messages request body."""

    sender_type: SenderType
    sender_id: UUID
    content: str = Field(..., min_length=1, max_length=5000)

    @field_validator("content")
    @classmethod
    def validate_content(cls, v: str) -> str:
        """Reject whitespace-only messages."""
        if not v.strip():
            raise ValueError("content cannot be blank")
        return v.strip()


class DirectMessageResponse(BaseModel):
    """POST /v1/interests/{interest_id}/messages response."""

    message_id: UUID
    interest_id: UUID
    sender_type: SenderType
    content: str
    created_at: str
    points_consumed: int


# ============================================================================
# Health Check Models
# ============================================================================


class HealthResponse(BaseModel):
    """GET /health response."""

    status: Literal["healthy", "unhealthy"]
    database: Literal["connected", "disconnected"]
    timestamp: str


# ============================================================================
# Chat Session Models
# ============================================================================


class OpenChatSessionRequest(BaseModel):
    """POST /v1/tenants/{tenant_id}/chat-sessions request body."""

    member_id: UUID
    agent_id: str = Field(..., min_length=1, max_length=255)


class ChatSessionResponse(BaseModel):
    """Chat session and what opening it cost."""

    session_id: UUID
    tenant_id: str
    member_id: UUID
    agent_id: str
    created: bool
    points_consumed: int


# ============================================================================
# Membership Models
# ============================================================================


class ChangeMemberStatusRequest(BaseModel):
    """POST /v1/tenants/{tenant_id}/members/{member_id}/status request body."""

    status: MemberStatus

    @field_validator("status")
    @classmethod
    def validate_reversible(cls, v: MemberStatus) -> MemberStatus:
        """DISABLED is only reachable through the disable endpoint."""
        if v == MemberStatus.DISABLED:
            raise ValueError("use the disable endpoint to disable a member")
        return v


class DisableMemberRequest(BaseModel):
    """POST /v1/tenants/{tenant_id}/members/{member_id}/disable request body."""

    acting_member_id: UUID


class MemberStatusResponse(BaseModel):
    """Team member status after a change."""

    member_id: UUID
    status: MemberStatus


class AcceptInviteRequest(BaseModel):
    """POST /v1/invites/accept request body."""

    token: str = Field(..., min_length=1, max_length=512)
    account_id: UUID
    display_name: str = Field(..., min_length=1, max_length=255)


class TeamMemberResponse(BaseModel):
    """Team member created from an invite."""

    member_id: UUID
    tenant_id: str
    account_id: UUID
    display_name: str
    status: MemberStatus


class VerifyEmailRequest(BaseModel):
    """POST /v1/verification/consume request body."""

    token: str = Field(..., min_length=1, max_length=512)


class VerifyEmailResponse(BaseModel):
    """Account whose email was verified."""

    account_id: UUID
    email_verified: bool = True
