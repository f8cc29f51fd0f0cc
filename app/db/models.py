"""
Database Models - SQLAlchemy ORM models with strict typing.

NO DICTIONARIES - All columns use Mapped[] type annotations.
"""

from datetime import UTC, datetime
from enum import Enum
from uuid import UUID, uuid4

from sqlalchemy import (
    BigInteger,
    Boolean,
    CheckConstraint,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
    Uuid,
    text,
)
from sqlalchemy import Enum as SQLEnum
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

from app.models.api import (
    AccessPreference,
    BillableAction,
    InterestStatus,
    InviteStatus,
    MemberStatus,
    NotificationType,
    PlanType,
    PointTransactionType,
    SenderType,
    SessionType,
    SubscriptionStatus,
)


class Base(DeclarativeBase):
    """Base class for all ORM models."""

    pass


def utc_now() -> datetime:
    """Get current UTC timestamp."""
    return datetime.now(UTC)


def _values_check(column: str, enum_cls: type[Enum], name: str) -> CheckConstraint:
    """CHECK constraint restricting a string-backed enum column to its member values."""
    values = ", ".join(f"'{member.value}'" for member in enum_cls)
    return CheckConstraint(f"{column} IN ({values})", name=name)


def _enum_column(enum_cls: type[Enum], name: str) -> SQLEnum:
    """String-backed enum column storing member values."""
    return SQLEnum(
        enum_cls,
        name=name,
        native_enum=False,
        length=30,
        values_callable=lambda x: [e.value for e in x],
    )


# ============================================================================
# Ledger
# ============================================================================


class Subscription(Base):
    """
    ORM model for subscriptions table.

    One row per tenant. The row is the lock target for every ledger mutation.
    """

    __tablename__ = "subscriptions"

    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)
    tenant_id: Mapped[str] = mapped_column(String(255), nullable=False, unique=True)

    point_balance: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)
    points_included: Mapped[int] = mapped_column(Integer, nullable=False)

    status: Mapped[SubscriptionStatus] = mapped_column(
        _enum_column(SubscriptionStatus, "subscription_status"),
        nullable=False,
        default=SubscriptionStatus.ACTIVE,
    )
    plan_type: Mapped[PlanType] = mapped_column(
        _enum_column(PlanType, "plan_type"), nullable=False
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utc_now
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utc_now, onupdate=utc_now
    )

    __table_args__ = (
        CheckConstraint("point_balance >= 0", name="ck_point_balance_non_negative"),
        CheckConstraint("points_included > 0", name="ck_points_included_positive"),
        _values_check("status", SubscriptionStatus, "ck_subscription_status"),
        _values_check("plan_type", PlanType, "ck_subscription_plan_type"),
        Index("idx_subscriptions_status", "status"),
    )

    def __repr__(self) -> str:
        """String representation for debugging."""
        return (
            f"<Subscription(tenant_id={self.tenant_id}, balance={self.point_balance}, "
            f"status={self.status})>"
        )


class PointTransaction(Base):
    """
    ORM model for point_transactions table.

    Append-only ledger. Only the expired flag is ever updated.
    """

    __tablename__ = "point_transactions"

    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)
    tenant_id: Mapped[str] = mapped_column(String(255), nullable=False)

    type: Mapped[PointTransactionType] = mapped_column(
        _enum_column(PointTransactionType, "point_transaction_type"), nullable=False
    )
    action: Mapped[BillableAction | None] = mapped_column(
        _enum_column(BillableAction, "billable_action"), nullable=True
    )

    # Signed: positive for GRANT/PURCHASE, negative for CONSUME/EXPIRE
    amount: Mapped[int] = mapped_column(BigInteger, nullable=False)
    balance_after: Mapped[int] = mapped_column(BigInteger, nullable=False)

    related_id: Mapped[str | None] = mapped_column(String(255), nullable=True)
    description: Mapped[str] = mapped_column(String, nullable=False)

    expires_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    expired: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utc_now
    )

    __table_args__ = (
        CheckConstraint("amount <> 0", name="ck_point_amount_non_zero"),
        CheckConstraint("balance_after >= 0", name="ck_point_balance_after_non_negative"),
        _values_check("type", PointTransactionType, "ck_point_transaction_type"),
        CheckConstraint(
            "(type IN ('GRANT', 'PURCHASE') AND amount > 0) "
            "OR (type IN ('CONSUME', 'EXPIRE') AND amount < 0)",
            name="ck_point_amount_sign",
        ),
        Index("idx_point_transactions_tenant_created", "tenant_id", "created_at"),
        Index(
            "idx_point_transactions_expirable",
            "tenant_id",
            "expires_at",
            postgresql_where=text("expired = false"),
        ),
    )

    def __repr__(self) -> str:
        """String representation for debugging."""
        return (
            f"<PointTransaction(tenant_id={self.tenant_id}, type={self.type}, "
            f"amount={self.amount}, balance_after={self.balance_after})>"
        )


# ============================================================================
# Accounts and Team Membership
# ============================================================================


class Account(Base):
    """Login account shared by candidates and team members."""

    __tablename__ = "accounts"

    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)
    email: Mapped[str] = mapped_column(String(255), nullable=False, unique=True)
    email_verified: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utc_now
    )


class Candidate(Base):
    """Job seeker whose contact details are disclosed for points."""

    __tablename__ = "candidates"

    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)
    account_id: Mapped[UUID] = mapped_column(Uuid, ForeignKey("accounts.id"), nullable=False)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    email: Mapped[str] = mapped_column(String(255), nullable=False)
    phone: Mapped[str | None] = mapped_column(String(50), nullable=True)


class TeamMember(Base):
    """Recruiter seat belonging to a tenant."""

    __tablename__ = "team_members"

    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)
    tenant_id: Mapped[str] = mapped_column(String(255), nullable=False, index=True)
    account_id: Mapped[UUID] = mapped_column(Uuid, ForeignKey("accounts.id"), nullable=False)
    display_name: Mapped[str] = mapped_column(String(255), nullable=False)
    status: Mapped[MemberStatus] = mapped_column(
        _enum_column(MemberStatus, "member_status"),
        nullable=False,
        default=MemberStatus.ACTIVE,
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utc_now
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utc_now, onupdate=utc_now
    )

    __table_args__ = (
        UniqueConstraint("tenant_id", "account_id", name="uq_team_member"),
        _values_check("status", MemberStatus, "ck_team_member_status"),
    )


class Invite(Base):
    """One-time team invitation."""

    __tablename__ = "invites"

    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)
    tenant_id: Mapped[str] = mapped_column(String(255), nullable=False, index=True)
    email: Mapped[str] = mapped_column(String(255), nullable=False)
    token_hash: Mapped[str] = mapped_column(String(64), nullable=False, unique=True)
    status: Mapped[InviteStatus] = mapped_column(
        _enum_column(InviteStatus, "invite_status"),
        nullable=False,
        default=InviteStatus.PENDING,
    )
    used_account_id: Mapped[UUID | None] = mapped_column(Uuid, nullable=True)
    used_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    expires_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utc_now
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utc_now, onupdate=utc_now
    )

    __table_args__ = (_values_check("status", InviteStatus, "ck_invite_status"),)


class VerificationToken(Base):
    """One-time email verification token (stored hashed)."""

    __tablename__ = "verification_tokens"

    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)
    account_id: Mapped[UUID] = mapped_column(Uuid, ForeignKey("accounts.id"), nullable=False)
    token_hash: Mapped[str] = mapped_column(String(64), nullable=False, unique=True)
    expires_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    used_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utc_now
    )


# ============================================================================
# Interests, Messaging and Sessions
# ============================================================================


class Interest(Base):
    """Contact pipeline between a recruiter and a candidate."""

    __tablename__ = "interests"

    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)
    candidate_id: Mapped[UUID] = mapped_column(
        Uuid, ForeignKey("candidates.id"), nullable=False
    )
    member_id: Mapped[UUID] = mapped_column(Uuid, ForeignKey("team_members.id"), nullable=False)
    tenant_id: Mapped[str] = mapped_column(String(255), nullable=False)
    status: Mapped[InterestStatus] = mapped_column(
        _enum_column(InterestStatus, "interest_status"),
        nullable=False,
        default=InterestStatus.INTERESTED,
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utc_now
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utc_now, onupdate=utc_now
    )

    __table_args__ = (
        UniqueConstraint("candidate_id", "member_id", name="uq_interest_pair"),
        _values_check("status", InterestStatus, "ck_interest_status"),
        Index("idx_interests_tenant_status", "tenant_id", "status"),
    )


class CompanyAccess(Base):
    """Candidate's standing ALLOW/DENY preference towards a tenant."""

    __tablename__ = "company_access"

    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)
    candidate_id: Mapped[UUID] = mapped_column(
        Uuid, ForeignKey("candidates.id"), nullable=False
    )
    tenant_id: Mapped[str] = mapped_column(String(255), nullable=False)
    preference: Mapped[AccessPreference] = mapped_column(
        _enum_column(AccessPreference, "access_preference"), nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utc_now, onupdate=utc_now
    )

    __table_args__ = (
        UniqueConstraint("candidate_id", "tenant_id", name="uq_company_access"),
        _values_check("preference", AccessPreference, "ck_company_access_preference"),
    )


class Notification(Base):
    """In-app notification."""

    __tablename__ = "notifications"

    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)
    account_id: Mapped[UUID] = mapped_column(Uuid, nullable=False, index=True)
    type: Mapped[NotificationType] = mapped_column(
        _enum_column(NotificationType, "notification_type"), nullable=False
    )
    title: Mapped[str] = mapped_column(String(255), nullable=False)
    body: Mapped[str] = mapped_column(Text, nullable=False)
    interest_id: Mapped[UUID | None] = mapped_column(Uuid, nullable=True)
    message_id: Mapped[UUID | None] = mapped_column(Uuid, nullable=True)
    is_read: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utc_now
    )


class DirectMessage(Base):
    """Message exchanged on a disclosed interest."""

    __tablename__ = "direct_messages"

    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)
    interest_id: Mapped[UUID] = mapped_column(
        Uuid, ForeignKey("interests.id"), nullable=False, index=True
    )
    sender_type: Mapped[SenderType] = mapped_column(
        _enum_column(SenderType, "sender_type"), nullable=False
    )
    sender_id: Mapped[UUID] = mapped_column(Uuid, nullable=False)
    content: Mapped[str] = mapped_column(Text, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utc_now
    )


class ChatSession(Base):
    """Billed conversation between a team member and a candidate agent."""

    __tablename__ = "chat_sessions"

    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)
    tenant_id: Mapped[str] = mapped_column(String(255), nullable=False)
    member_id: Mapped[UUID] = mapped_column(Uuid, ForeignKey("team_members.id"), nullable=False)
    agent_id: Mapped[str] = mapped_column(String(255), nullable=False)
    session_type: Mapped[SessionType] = mapped_column(
        _enum_column(SessionType, "session_type"), nullable=False
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utc_now
    )

    __table_args__ = (
        UniqueConstraint("member_id", "agent_id", "session_type", name="uq_chat_session"),
    )
