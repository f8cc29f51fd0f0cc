"""
Consumption Coordinator - Atomic point deduction for billable actions.

A consumption is one database transaction:

    lock tenant -> expire -> re-read balance -> check -> CONSUME entry
    -> caller's side effects -> commit

Any failure rolls back everything, including the side effects, so points
are never lost for an action that didn't happen and an action never happens
without its points.
"""

import time
from collections.abc import Awaitable, Callable
from datetime import datetime
from typing import TypeVar

from sqlalchemy.ext.asyncio import AsyncSession

from app.db.models import utc_now
from app.exceptions import InsufficientPointsError, NoSubscriptionError
from app.models.api import BillableAction, PointTransactionType
from app.models.domain import BalanceCheck, ConsumeResult, SubscriptionData
from app.observability import get_logger, metrics, trace_operation
from app.services.expiration import ExpirationEngine
from app.services.ledger import LedgerStore, subscription_to_domain
from app.services.point_catalog import action_cost, action_label

logger = get_logger(__name__)

T = TypeVar("T")

# Side effects receive the transaction's session and must not commit it
SideEffects = Callable[[AsyncSession], Awaitable[T]]


class ConsumptionCoordinator:
    """Deducts points for billable actions and runs their side effects atomically."""

    def __init__(self, session: AsyncSession, clock: Callable[[], datetime] = utc_now) -> None:
        """Initialize coordinator with database session."""
        self.session = session
        self.ledger = LedgerStore(session)
        self.expiration = ExpirationEngine(self.ledger, clock)

    async def consume(
        self,
        tenant_id: str,
        action: BillableAction,
        side_effects: SideEffects[T] | None = None,
        related_id: str | None = None,
        description: str | None = None,
    ) -> ConsumeResult[T]:
        """
        Deduct the action's cost and run side effects in one transaction.

        Zero-cost actions take no lock and write no ledger entry; the side
        effects still run and commit.

        Raises:
            NoSubscriptionError: Tenant has never subscribed
            SubscriptionInactiveError: Subscription is not ACTIVE
            InsufficientPointsError: Balance after expiration can't cover the cost
            Any exception raised by side_effects (after rollback)
        """
        cost = action_cost(action)
        if cost == 0:
            return await self._consume_free(tenant_id, action, side_effects)

        with trace_operation(
            "points.consume", tenant_id=tenant_id, action=action.value, cost=cost
        ) as span:
            locked_at: float | None = None
            try:
                await self.ledger.lock_tenant(tenant_id)
                locked_at = time.perf_counter()

                await self.expiration.expire(tenant_id)

                available = self.ledger.balance(tenant_id)
                if available < cost:
                    raise InsufficientPointsError(required=cost, available=available)

                new_balance = await self.ledger.apply_delta(
                    tenant_id,
                    -cost,
                    PointTransactionType.CONSUME,
                    action=action,
                    related_id=related_id,
                    description=description or action_label(action),
                )

                result = await side_effects(self.session) if side_effects else None

                await self.ledger.commit()

            except Exception as e:
                await self.ledger.rollback()
                metrics.record_consumption(
                    action.value, 0, success=False, error_type=type(e).__name__
                )
                logger.info(
                    "points_consumption_failed",
                    tenant_id=tenant_id,
                    action=action.value,
                    cost=cost,
                    error_type=type(e).__name__,
                    error=str(e),
                )
                raise

            finally:
                if locked_at is not None:
                    metrics.lock_hold_seconds.labels(operation="consume").observe(
                        time.perf_counter() - locked_at
                    )

            span.set_attribute("points.new_balance", new_balance)

        metrics.record_consumption(action.value, cost, success=True)
        logger.info(
            "points_consumed",
            tenant_id=tenant_id,
            action=action.value,
            consumed=cost,
            new_balance=new_balance,
            related_id=related_id,
        )

        return ConsumeResult(new_balance=new_balance, consumed=cost, result=result)

    async def _consume_free(
        self,
        tenant_id: str,
        action: BillableAction,
        side_effects: SideEffects[T] | None,
    ) -> ConsumeResult[T]:
        """Zero-cost path: no lock, no ledger entry, no status check."""
        try:
            subscription = await self.ledger.get_subscription(tenant_id)
            balance = subscription.point_balance if subscription else 0
            result = await side_effects(self.session) if side_effects else None
            await self.session.commit()
        except Exception:
            await self.session.rollback()
            raise

        metrics.record_consumption(action.value, 0, success=True)
        logger.debug("free_action_recorded", tenant_id=tenant_id, action=action.value)

        return ConsumeResult(new_balance=balance, consumed=0, result=result)

    async def check_balance(self, tenant_id: str, action: BillableAction) -> BalanceCheck:
        """
        Advisory check whether the tenant can afford an action.

        Unlocked and without expiration; only consume() is authoritative.

        Raises:
            NoSubscriptionError: Tenant has never subscribed (billable actions only)
        """
        cost = action_cost(action)
        if cost == 0:
            return BalanceCheck(can_proceed=True, required=0, available=0)

        subscription = await self.ledger.get_subscription(tenant_id)
        if subscription is None:
            raise NoSubscriptionError(tenant_id)

        return BalanceCheck(
            can_proceed=subscription.point_balance >= cost,
            required=cost,
            available=subscription.point_balance,
        )

    async def get_balance(self, tenant_id: str) -> SubscriptionData:
        """
        Current subscription snapshot (unlocked read).

        Raises:
            NoSubscriptionError: Tenant has never subscribed
        """
        subscription = await self.ledger.get_subscription(tenant_id)
        if subscription is None:
            raise NoSubscriptionError(tenant_id)
        return subscription_to_domain(subscription)
