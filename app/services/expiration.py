"""
Expiration Engine - Retires time-expired credit entries.

Runs first inside every consume and grant transaction, under the tenant lock,
so the balance checked afterwards never includes stale points. The batch job
walks every ACTIVE tenant in its own short transaction.
"""

import time
from collections.abc import Callable
from datetime import datetime

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.db.models import utc_now
from app.models.api import PointTransactionType
from app.models.domain import BatchExpirationResult, TenantExpiration
from app.observability import get_logger, metrics, trace_operation
from app.services.ledger import LedgerStore

logger = get_logger(__name__)


class ExpirationEngine:
    """Expiration step for a transaction that already holds the tenant lock."""

    def __init__(self, ledger: LedgerStore, clock: Callable[[], datetime] = utc_now) -> None:
        self.ledger = ledger
        self.clock = clock

    async def expire(self, tenant_id: str) -> int:
        """
        Retire credit entries whose expiry has passed.

        The deduction is capped at the current balance: points already spent
        can't expire again. Every scanned entry is marked expired even when the
        capped amount is zero, so it is never scanned twice.

        Returns:
            Points actually deducted
        """
        now = self.clock()
        expirable = await self.ledger.find_expirable(tenant_id, now)
        if not expirable:
            return 0

        total = sum(entry.amount for entry in expirable)
        current = self.ledger.balance(tenant_id)
        expire_amount = min(total, current)

        if expire_amount > 0:
            await self.ledger.apply_delta(
                tenant_id,
                -expire_amount,
                PointTransactionType.EXPIRE,
                description=f"{expire_amount} points expired (validity period elapsed)",
            )

        await self.ledger.mark_expired(tenant_id, [entry.id for entry in expirable])

        logger.info(
            "points_expired",
            tenant_id=tenant_id,
            expired=expire_amount,
            entries=len(expirable),
            expirable_total=total,
        )
        metrics.record_expiration(expire_amount)

        return expire_amount


class ExpirationJob:
    """
    Batch expiration across tenants.

    Each tenant gets its own session and transaction: a failure for one tenant
    is logged and skipped without affecting the others.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self.session_factory = session_factory
        self.clock = clock

    async def expire_tenant(self, tenant_id: str) -> int:
        """Lock one tenant, run expiration and commit."""
        async with self.session_factory() as session:
            ledger = LedgerStore(session)
            try:
                await ledger.lock_tenant(tenant_id, require_active=False)
                locked_at = time.perf_counter()
                expired = await ExpirationEngine(ledger, self.clock).expire(tenant_id)
                await ledger.commit()
            except Exception:
                await ledger.rollback()
                raise

        metrics.lock_hold_seconds.labels(operation="expire").observe(
            time.perf_counter() - locked_at
        )
        return expired

    async def expire_all(self) -> BatchExpirationResult:
        """
        Run expiration for every ACTIVE tenant.

        Returns:
            Tenants processed, tenants that failed, and per-tenant amounts for
            those where something actually expired
        """
        with trace_operation("points.expire_all"):
            async with self.session_factory() as session:
                tenant_ids = await LedgerStore(session).list_active_tenant_ids()

            results: list[TenantExpiration] = []
            failed = 0
            for tenant_id in tenant_ids:
                try:
                    expired = await self.expire_tenant(tenant_id)
                except Exception as e:
                    failed += 1
                    metrics.batch_expiration_failures_total.inc()
                    logger.error(
                        "batch_expiration_failed",
                        tenant_id=tenant_id,
                        error=str(e),
                        error_type=type(e).__name__,
                        exc_info=True,
                    )
                    continue

                if expired > 0:
                    results.append(TenantExpiration(tenant_id=tenant_id, expired=expired))

        metrics.batch_expiration_runs_total.inc()
        logger.info(
            "batch_expiration_completed",
            processed=len(tenant_ids),
            failed=failed,
            tenants_with_expirations=len(results),
        )

        return BatchExpirationResult(processed=len(tenant_ids), failed=failed, results=results)
