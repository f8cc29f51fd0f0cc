"""
Ledger Store - Persisted point balance and append-only transaction log.

Every mutation goes through a tenant row lock (SELECT ... FOR UPDATE) held
for the enclosing database transaction. Concurrent transactions on the same
tenant queue behind the lock; different tenants never block each other.

NO DICTIONARIES - Ledger entries are ORM rows, results are domain models.
"""

from collections.abc import Sequence
from datetime import datetime
from uuid import UUID

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from app.db.models import PointTransaction, Subscription
from app.exceptions import (
    DataIntegrityError,
    LockNotHeldError,
    NoSubscriptionError,
    SubscriptionInactiveError,
)
from app.models.api import BillableAction, PointTransactionType, SubscriptionStatus
from app.models.domain import PointTransactionData, SubscriptionData

CREDIT_TYPES = (PointTransactionType.GRANT, PointTransactionType.PURCHASE)
DEBIT_TYPES = (PointTransactionType.CONSUME, PointTransactionType.EXPIRE)


class LedgerStore:
    """
    Tenant balance and ledger access bound to one session.

    Locks acquired through lock_tenant() are tracked on the instance and
    released by commit() / rollback(). Mutating a tenant that is not locked
    raises LockNotHeldError.
    """

    def __init__(self, session: AsyncSession) -> None:
        """Initialize ledger store with database session."""
        self.session = session
        self._locked: dict[str, Subscription] = {}

    # ========================================================================
    # Locking
    # ========================================================================

    async def lock_tenant(self, tenant_id: str, require_active: bool = True) -> Subscription:
        """
        Lock the tenant's subscription row for the rest of the transaction.

        Raises:
            NoSubscriptionError: Tenant has never subscribed
            SubscriptionInactiveError: Status is not ACTIVE and require_active is set
        """
        subscription = self._locked.get(tenant_id)
        if subscription is None:
            stmt = (
                select(Subscription)
                .where(Subscription.tenant_id == tenant_id)
                .with_for_update()
                .execution_options(populate_existing=True)
            )
            result = await self.session.execute(stmt)
            subscription = result.scalar_one_or_none()

            if subscription is None:
                raise NoSubscriptionError(tenant_id)

            # The row lock is held from here on, even if the status check fails
            self._locked[tenant_id] = subscription

        if require_active and subscription.status != SubscriptionStatus.ACTIVE:
            raise SubscriptionInactiveError(tenant_id, SubscriptionStatus(subscription.status).value)

        return subscription

    def holds_lock(self, tenant_id: str) -> bool:
        """Whether this store holds the tenant's row lock."""
        return tenant_id in self._locked

    def _require_lock(self, tenant_id: str) -> Subscription:
        subscription = self._locked.get(tenant_id)
        if subscription is None:
            raise LockNotHeldError(tenant_id)
        return subscription

    async def commit(self) -> None:
        """Commit the transaction and release every row lock."""
        try:
            await self.session.commit()
        finally:
            self._locked.clear()

    async def rollback(self) -> None:
        """Roll back the transaction and release every row lock."""
        try:
            await self.session.rollback()
        finally:
            self._locked.clear()

    # ========================================================================
    # Locked operations
    # ========================================================================

    def balance(self, tenant_id: str) -> int:
        """Current balance of a locked tenant."""
        return self._require_lock(tenant_id).point_balance

    async def apply_delta(
        self,
        tenant_id: str,
        delta: int,
        transaction_type: PointTransactionType,
        *,
        description: str,
        action: BillableAction | None = None,
        related_id: str | None = None,
        expires_at: datetime | None = None,
    ) -> int:
        """
        Update the balance and append the matching ledger entry.

        Returns the new balance.

        Raises:
            LockNotHeldError: Tenant is not locked by this store
            DataIntegrityError: Delta sign doesn't match the type, or balance would go negative
        """
        subscription = self._require_lock(tenant_id)

        if transaction_type in CREDIT_TYPES and delta <= 0:
            raise DataIntegrityError(f"{transaction_type.value} requires a positive amount: {delta}")
        if transaction_type in DEBIT_TYPES and delta >= 0:
            raise DataIntegrityError(f"{transaction_type.value} requires a negative amount: {delta}")
        if expires_at is not None and transaction_type not in CREDIT_TYPES:
            raise DataIntegrityError(f"{transaction_type.value} entries never expire")

        balance_before = subscription.point_balance
        balance_after = balance_before + delta
        if balance_after < 0:
            raise DataIntegrityError(
                f"Balance for tenant {tenant_id} would go negative: {balance_before} + {delta}"
            )

        subscription.point_balance = balance_after
        self.session.add(
            PointTransaction(
                tenant_id=tenant_id,
                type=transaction_type,
                action=action,
                amount=delta,
                balance_after=balance_after,
                related_id=related_id,
                description=description,
                expires_at=expires_at,
                expired=False,
            )
        )
        await self.session.flush()

        return balance_after

    async def find_expirable(self, tenant_id: str, now: datetime) -> Sequence[PointTransaction]:
        """Unexpired GRANT/PURCHASE entries whose expiry is before now."""
        self._require_lock(tenant_id)
        stmt = select(PointTransaction).where(
            PointTransaction.tenant_id == tenant_id,
            PointTransaction.expired.is_(False),
            PointTransaction.expires_at < now,
            PointTransaction.type.in_(CREDIT_TYPES),
        )
        result = await self.session.execute(stmt)
        return result.scalars().all()

    async def mark_expired(self, tenant_id: str, transaction_ids: Sequence[UUID]) -> None:
        """Flag credit entries as retired. The only mutation a ledger row ever gets."""
        self._require_lock(tenant_id)
        if not transaction_ids:
            return
        stmt = (
            update(PointTransaction)
            .where(
                PointTransaction.tenant_id == tenant_id,
                PointTransaction.id.in_(list(transaction_ids)),
            )
            .values(expired=True)
        )
        await self.session.execute(stmt)

    # ========================================================================
    # Unlocked reads
    # ========================================================================

    async def get_subscription(self, tenant_id: str) -> Subscription | None:
        """Read the subscription without locking (advisory reads only)."""
        stmt = select(Subscription).where(Subscription.tenant_id == tenant_id)
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()

    async def history(
        self, tenant_id: str, limit: int = 50, offset: int = 0
    ) -> list[PointTransactionData]:
        """Ledger entries for a tenant, newest first."""
        stmt = (
            select(PointTransaction)
            .where(PointTransaction.tenant_id == tenant_id)
            .order_by(PointTransaction.created_at.desc())
            .limit(limit)
            .offset(offset)
        )
        result = await self.session.execute(stmt)
        return [_transaction_to_domain(row) for row in result.scalars().all()]

    async def list_active_tenant_ids(self) -> list[str]:
        """Tenants with an ACTIVE subscription."""
        stmt = (
            select(Subscription.tenant_id)
            .where(Subscription.status == SubscriptionStatus.ACTIVE)
            .order_by(Subscription.tenant_id)
        )
        result = await self.session.execute(stmt)
        return list(result.scalars().all())


def subscription_to_domain(subscription: Subscription) -> SubscriptionData:
    """Convert ORM subscription to domain model."""
    return SubscriptionData(
        subscription_id=subscription.id,
        tenant_id=subscription.tenant_id,
        point_balance=subscription.point_balance,
        points_included=subscription.points_included,
        status=SubscriptionStatus(subscription.status),
        plan_type=subscription.plan_type,
    )


def _transaction_to_domain(row: PointTransaction) -> PointTransactionData:
    """Convert ORM ledger entry to domain model."""
    return PointTransactionData(
        transaction_id=row.id,
        tenant_id=row.tenant_id,
        type=PointTransactionType(row.type),
        action=BillableAction(row.action) if row.action is not None else None,
        amount=row.amount,
        balance_after=row.balance_after,
        related_id=row.related_id,
        description=row.description,
        expires_at=row.expires_at,
        expired=row.expired,
        created_at=row.created_at,
    )
