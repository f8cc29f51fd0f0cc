"""
Grant Manager - Credits points for plan renewals and purchases.

Grants run under the same tenant lock as consumption. Expiration runs first,
then a GRANT applies the carryover cap before the new allotment lands.
"""

import time
from collections.abc import Callable
from datetime import datetime

from sqlalchemy.ext.asyncio import AsyncSession

from app.config import settings
from app.db.models import utc_now
from app.exceptions import InvalidRequestError, NoSubscriptionError
from app.models.api import PointTransactionType
from app.models.domain import GrantResult, PurchaseResult
from app.observability import get_logger, metrics, trace_operation
from app.services.expiration import ExpirationEngine
from app.services.ledger import LedgerStore
from app.services.point_catalog import carryover_cap, credit_expires_at, get_plan

logger = get_logger(__name__)

GRANTABLE_TYPES = (PointTransactionType.GRANT, PointTransactionType.PURCHASE)


class GrantManager:
    """Credits points to a tenant's ledger."""

    def __init__(self, session: AsyncSession, clock: Callable[[], datetime] = utc_now) -> None:
        """Initialize grant manager with database session."""
        self.session = session
        self.clock = clock
        self.ledger = LedgerStore(session)
        self.expiration = ExpirationEngine(self.ledger, clock)

    async def grant(
        self,
        tenant_id: str,
        amount: int,
        transaction_type: PointTransactionType = PointTransactionType.GRANT,
        description: str | None = None,
    ) -> GrantResult:
        """
        Credit points in one locked transaction.

        For GRANT, any balance above floor(points_included * carryover ratio)
        is force-expired before the credit. PURCHASE keeps the full balance.
        The new entry expires point_expiration_months after now.

        Raises:
            InvalidRequestError: Non-positive amount or non-credit type
            NoSubscriptionError: Tenant has never subscribed
        """
        if amount <= 0:
            raise InvalidRequestError(f"Grant amount must be positive: {amount}")
        if transaction_type not in GRANTABLE_TYPES:
            raise InvalidRequestError(
                f"Transaction type must be GRANT or PURCHASE: {transaction_type.value}"
            )

        with trace_operation(
            "points.grant",
            tenant_id=tenant_id,
            amount=amount,
            transaction_type=transaction_type.value,
        ):
            locked_at: float | None = None
            carryover_expired = 0
            try:
                subscription = await self.ledger.lock_tenant(tenant_id, require_active=False)
                locked_at = time.perf_counter()

                await self.expiration.expire(tenant_id)

                if transaction_type == PointTransactionType.GRANT:
                    cap = carryover_cap(subscription.points_included)
                    balance = self.ledger.balance(tenant_id)
                    if balance > cap:
                        carryover_expired = balance - cap
                        await self.ledger.apply_delta(
                            tenant_id,
                            -carryover_expired,
                            PointTransactionType.EXPIRE,
                            description=(
                                f"{carryover_expired} points expired (carryover limit {cap})"
                            ),
                        )

                new_balance = await self.ledger.apply_delta(
                    tenant_id,
                    amount,
                    transaction_type,
                    description=description or _default_description(transaction_type, amount),
                    expires_at=credit_expires_at(self.clock()),
                )

                await self.ledger.commit()

            except Exception as e:
                await self.ledger.rollback()
                metrics.record_error(type(e).__name__, "grant")
                raise

            finally:
                if locked_at is not None:
                    metrics.lock_hold_seconds.labels(operation="grant").observe(
                        time.perf_counter() - locked_at
                    )

        if carryover_expired > 0:
            logger.info(
                "carryover_excess_expired",
                tenant_id=tenant_id,
                expired=carryover_expired,
            )
        metrics.record_grant(transaction_type.value, amount, carryover_expired)
        logger.info(
            "points_granted",
            tenant_id=tenant_id,
            amount=amount,
            transaction_type=transaction_type.value,
            new_balance=new_balance,
        )

        return GrantResult(new_balance=new_balance)

    async def purchase(self, tenant_id: str, amount: int) -> PurchaseResult:
        """
        Buy additional points at the tenant's plan price.

        Raises:
            InvalidRequestError: Amount below the purchase minimum
            NoSubscriptionError: Tenant has never subscribed
        """
        if amount < settings.min_purchase_points:
            raise InvalidRequestError(
                f"Minimum purchase is {settings.min_purchase_points} points, got {amount}"
            )

        subscription = await self.ledger.get_subscription(tenant_id)
        if subscription is None:
            raise NoSubscriptionError(tenant_id)

        price = amount * get_plan(subscription.plan_type).additional_point_price

        result = await self.grant(
            tenant_id,
            amount,
            PointTransactionType.PURCHASE,
            description=f"Purchased {amount} additional points (¥{price:,})",
        )

        logger.info("points_purchased", tenant_id=tenant_id, amount=amount, price=price)

        return PurchaseResult(new_balance=result.new_balance, purchased=amount, price=price)


def _default_description(transaction_type: PointTransactionType, amount: int) -> str:
    if transaction_type == PointTransactionType.PURCHASE:
        return f"Purchased {amount} additional points"
    return f"Monthly grant of {amount} points"
