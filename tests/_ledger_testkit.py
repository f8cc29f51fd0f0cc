"""
Shared builders for ledger tests: mock rows, seeded rows and read-back helpers.
"""

from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from unittest.mock import MagicMock
from uuid import uuid4

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.db.models import (
    Account,
    Candidate,
    Interest,
    PointTransaction,
    Subscription,
    TeamMember,
)
from app.models.api import (
    InterestStatus,
    MemberStatus,
    PlanType,
    PointTransactionType,
    SubscriptionStatus,
)

API_KEY = "test-internal-key"
NOW = datetime(2026, 6, 15, 12, 0, tzinfo=UTC)


def fixed_clock(moment: datetime = NOW):
    """Clock returning a fixed instant."""
    return lambda: moment


# ============================================================================
# Mock builders
# ============================================================================


def make_result(scalar: object = None, rows: list | None = None, rowcount: int = 0) -> MagicMock:
    """Build a mock execute() result."""
    result = MagicMock()
    result.scalar_one_or_none = MagicMock(return_value=scalar)
    result.scalars = MagicMock(return_value=MagicMock(all=MagicMock(return_value=rows or [])))
    result.rowcount = rowcount
    return result


def create_mock_subscription(
    tenant_id: str = "company-1",
    point_balance: int = 100,
    points_included: int = 100,
    status: SubscriptionStatus = SubscriptionStatus.ACTIVE,
    plan_type: PlanType = PlanType.LIGHT,
) -> MagicMock:
    """Create a mock Subscription row."""
    subscription = MagicMock(spec=Subscription)
    subscription.id = uuid4()
    subscription.tenant_id = tenant_id
    subscription.point_balance = point_balance
    subscription.points_included = points_included
    subscription.status = status
    subscription.plan_type = plan_type
    return subscription


def create_mock_credit(amount: int, expires_at: datetime = NOW - timedelta(days=1)) -> MagicMock:
    """Create a mock expirable GRANT entry."""
    entry = MagicMock(spec=PointTransaction)
    entry.id = uuid4()
    entry.type = PointTransactionType.GRANT
    entry.amount = amount
    entry.expires_at = expires_at
    entry.expired = False
    return entry


# ============================================================================
# Seeded rows (SQLite integration tests)
# ============================================================================


async def seed_subscription(
    session: AsyncSession,
    tenant_id: str = "company-1",
    point_balance: int = 0,
    points_included: int = 100,
    status: SubscriptionStatus = SubscriptionStatus.ACTIVE,
    plan_type: PlanType = PlanType.LIGHT,
) -> Subscription:
    """Insert a subscription row and commit."""
    subscription = Subscription(
        tenant_id=tenant_id,
        point_balance=point_balance,
        points_included=points_included,
        status=status,
        plan_type=plan_type,
    )
    session.add(subscription)
    await session.commit()
    return subscription


async def seed_credit(
    session: AsyncSession,
    tenant_id: str,
    amount: int,
    balance_after: int,
    expires_at: datetime,
    transaction_type: PointTransactionType = PointTransactionType.GRANT,
) -> PointTransaction:
    """Insert a GRANT/PURCHASE ledger entry directly (balance is set separately)."""
    entry = PointTransaction(
        tenant_id=tenant_id,
        type=transaction_type,
        amount=amount,
        balance_after=balance_after,
        description="seeded credit",
        expires_at=expires_at,
        expired=False,
        created_at=expires_at - timedelta(days=90),
    )
    session.add(entry)
    await session.commit()
    return entry


async def balance_of(session: AsyncSession, tenant_id: str) -> int:
    """Persisted balance read straight from the database."""
    result = await session.execute(
        select(Subscription.point_balance).where(Subscription.tenant_id == tenant_id)
    )
    return result.scalar_one()


async def ledger_of(session: AsyncSession, tenant_id: str) -> list[PointTransaction]:
    """Ledger entries in balance order (oldest first)."""
    result = await session.execute(
        select(PointTransaction)
        .where(PointTransaction.tenant_id == tenant_id)
        .order_by(PointTransaction.created_at)
        .execution_options(populate_existing=True)
    )
    return list(result.scalars().all())


async def ledger_sum(session: AsyncSession, tenant_id: str) -> int:
    """Sum of every ledger amount for a tenant."""
    return sum(entry.amount for entry in await ledger_of(session, tenant_id))


@dataclass
class Pipeline:
    """Seeded tenant, recruiter, candidate and interest."""

    tenant_id: str
    member: TeamMember
    member_account: Account
    candidate: Candidate
    candidate_account: Account
    interest: Interest


async def seed_pipeline(
    session: AsyncSession,
    tenant_id: str = "company-1",
    point_balance: int = 100,
    interest_status: InterestStatus = InterestStatus.INTERESTED,
) -> Pipeline:
    """Insert a subscription plus one recruiter/candidate interest."""
    await seed_subscription(session, tenant_id=tenant_id, point_balance=point_balance)

    member_account = Account(email=f"recruiter-{uuid4().hex[:8]}@example.com")
    candidate_account = Account(email=f"candidate-{uuid4().hex[:8]}@example.com")
    session.add_all([member_account, candidate_account])
    await session.flush()

    member = TeamMember(
        tenant_id=tenant_id,
        account_id=member_account.id,
        display_name="Recruiter",
        status=MemberStatus.ACTIVE,
    )
    candidate = Candidate(
        account_id=candidate_account.id,
        name="Hanako Yamada",
        email=candidate_account.email,
        phone="090-0000-0000",
    )
    session.add_all([member, candidate])
    await session.flush()

    interest = Interest(
        candidate_id=candidate.id,
        member_id=member.id,
        tenant_id=tenant_id,
        status=interest_status,
    )
    session.add(interest)
    await session.commit()

    return Pipeline(
        tenant_id=tenant_id,
        member=member,
        member_account=member_account,
        candidate=candidate,
        candidate_account=candidate_account,
        interest=interest,
    )


async def interest_status_of(session: AsyncSession, interest_id: object) -> InterestStatus:
    """Persisted interest status."""
    result = await session.execute(select(Interest.status).where(Interest.id == interest_id))
    return InterestStatus(result.scalar_one())
