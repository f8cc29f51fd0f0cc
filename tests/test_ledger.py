"""
Tests for LedgerStore.

Lock acquisition, lock enforcement and balance/ledger bookkeeping.
"""

from datetime import timedelta
from unittest.mock import AsyncMock

import pytest
from sqlalchemy.dialects import postgresql

from app.exceptions import (
    DataIntegrityError,
    LockNotHeldError,
    NoSubscriptionError,
    SubscriptionInactiveError,
)
from app.models.api import BillableAction, PointTransactionType, SubscriptionStatus
from app.services.ledger import LedgerStore
from tests._ledger_testkit import (
    NOW,
    balance_of,
    create_mock_subscription,
    ledger_of,
    make_result,
    seed_credit,
    seed_subscription,
)


class TestLockTenant:
    """Tests for row lock acquisition."""

    @pytest.mark.asyncio
    async def test_issues_select_for_update(self, db_session: AsyncMock) -> None:
        """Lock query compiles to SELECT ... FOR UPDATE on PostgreSQL."""
        db_session.execute = AsyncMock(return_value=make_result(create_mock_subscription()))
        ledger = LedgerStore(db_session)

        await ledger.lock_tenant("company-1")

        stmt = db_session.execute.call_args[0][0]
        sql = str(stmt.compile(dialect=postgresql.dialect()))
        assert "FOR UPDATE" in sql
        assert "subscriptions" in sql

    @pytest.mark.asyncio
    async def test_missing_subscription_raises(self, db_session: AsyncMock) -> None:
        ledger = LedgerStore(db_session)

        with pytest.raises(NoSubscriptionError) as exc_info:
            await ledger.lock_tenant("ghost")

        assert exc_info.value.tenant_id == "ghost"
        assert not ledger.holds_lock("ghost")

    @pytest.mark.asyncio
    async def test_inactive_subscription_raises_but_lock_is_held(
        self, db_session: AsyncMock
    ) -> None:
        """Status check happens after the lock; rollback is what releases it."""
        subscription = create_mock_subscription(status=SubscriptionStatus.PAST_DUE)
        db_session.execute = AsyncMock(return_value=make_result(subscription))
        ledger = LedgerStore(db_session)

        with pytest.raises(SubscriptionInactiveError) as exc_info:
            await ledger.lock_tenant("company-1")

        assert exc_info.value.status == "PAST_DUE"
        assert ledger.holds_lock("company-1")

        await ledger.rollback()
        assert not ledger.holds_lock("company-1")

    @pytest.mark.asyncio
    async def test_inactive_allowed_when_not_required(self, db_session: AsyncMock) -> None:
        subscription = create_mock_subscription(status=SubscriptionStatus.CANCELED)
        db_session.execute = AsyncMock(return_value=make_result(subscription))
        ledger = LedgerStore(db_session)

        locked = await ledger.lock_tenant("company-1", require_active=False)

        assert locked is subscription

    @pytest.mark.asyncio
    async def test_relock_in_same_transaction_reuses_row(self, db_session: AsyncMock) -> None:
        db_session.execute = AsyncMock(return_value=make_result(create_mock_subscription()))
        ledger = LedgerStore(db_session)

        first = await ledger.lock_tenant("company-1")
        second = await ledger.lock_tenant("company-1")

        assert first is second
        assert db_session.execute.await_count == 1

    @pytest.mark.asyncio
    async def test_commit_releases_locks(self, db_session: AsyncMock) -> None:
        db_session.execute = AsyncMock(return_value=make_result(create_mock_subscription()))
        ledger = LedgerStore(db_session)
        await ledger.lock_tenant("company-1")

        await ledger.commit()

        db_session.commit.assert_awaited_once()
        assert not ledger.holds_lock("company-1")


class TestLockEnforcement:
    """Mutations without the lock are programming errors."""

    @pytest.mark.asyncio
    async def test_apply_delta_without_lock(self, db_session: AsyncMock) -> None:
        ledger = LedgerStore(db_session)

        with pytest.raises(LockNotHeldError):
            await ledger.apply_delta(
                "company-1", -1, PointTransactionType.CONSUME, description="x"
            )

        db_session.add.assert_not_called()

    def test_balance_without_lock(self, db_session: AsyncMock) -> None:
        with pytest.raises(LockNotHeldError):
            LedgerStore(db_session).balance("company-1")

    @pytest.mark.asyncio
    async def test_find_expirable_without_lock(self, db_session: AsyncMock) -> None:
        with pytest.raises(LockNotHeldError):
            await LedgerStore(db_session).find_expirable("company-1", NOW)

    @pytest.mark.asyncio
    async def test_mark_expired_without_lock(self, db_session: AsyncMock) -> None:
        with pytest.raises(LockNotHeldError):
            await LedgerStore(db_session).mark_expired("company-1", [])

    def test_lock_not_held_is_not_a_billing_error(self) -> None:
        """Routes map BillingError to responses; this one must surface as a 500."""
        from app.exceptions import BillingError

        assert not issubclass(LockNotHeldError, BillingError)
        assert issubclass(LockNotHeldError, RuntimeError)


class TestApplyDelta:
    """Tests for balance updates and entry validation."""

    @pytest.fixture
    async def locked(self, db_session: AsyncMock) -> tuple[LedgerStore, object]:
        subscription = create_mock_subscription(point_balance=50)
        db_session.execute = AsyncMock(return_value=make_result(subscription))
        ledger = LedgerStore(db_session)
        await ledger.lock_tenant("company-1")
        return ledger, subscription

    @pytest.mark.asyncio
    async def test_consume_updates_balance_and_appends_entry(
        self, locked: tuple[LedgerStore, object], db_session: AsyncMock
    ) -> None:
        ledger, subscription = locked

        new_balance = await ledger.apply_delta(
            "company-1",
            -10,
            PointTransactionType.CONSUME,
            action=BillableAction.CONTACT_DISCLOSURE,
            related_id="interest-1",
            description="Contact disclosure",
        )

        assert new_balance == 40
        assert subscription.point_balance == 40
        entry = db_session.add.call_args[0][0]
        assert entry.amount == -10
        assert entry.balance_after == 40
        assert entry.type == PointTransactionType.CONSUME
        assert entry.action == BillableAction.CONTACT_DISCLOSURE
        assert entry.related_id == "interest-1"
        assert entry.expires_at is None
        db_session.flush.assert_awaited()

    @pytest.mark.asyncio
    async def test_negative_balance_rejected(
        self, locked: tuple[LedgerStore, object], db_session: AsyncMock
    ) -> None:
        ledger, subscription = locked

        with pytest.raises(DataIntegrityError):
            await ledger.apply_delta(
                "company-1", -51, PointTransactionType.CONSUME, description="x"
            )

        assert subscription.point_balance == 50
        db_session.add.assert_not_called()

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        ("transaction_type", "delta"),
        [
            (PointTransactionType.GRANT, -5),
            (PointTransactionType.PURCHASE, 0),
            (PointTransactionType.CONSUME, 5),
            (PointTransactionType.EXPIRE, 5),
        ],
    )
    async def test_sign_must_match_type(
        self,
        locked: tuple[LedgerStore, object],
        transaction_type: PointTransactionType,
        delta: int,
    ) -> None:
        ledger, _ = locked

        with pytest.raises(DataIntegrityError):
            await ledger.apply_delta("company-1", delta, transaction_type, description="x")

    @pytest.mark.asyncio
    async def test_debits_never_carry_expiry(self, locked: tuple[LedgerStore, object]) -> None:
        ledger, _ = locked

        with pytest.raises(DataIntegrityError):
            await ledger.apply_delta(
                "company-1",
                -1,
                PointTransactionType.CONSUME,
                description="x",
                expires_at=NOW,
            )


class TestLedgerStoreDatabase:
    """Integration tests against the in-memory database."""

    @pytest.mark.asyncio
    async def test_apply_delta_persists_balance_and_entry(self, session) -> None:
        await seed_subscription(session, point_balance=0)
        ledger = LedgerStore(session)

        await ledger.lock_tenant("company-1")
        await ledger.apply_delta(
            "company-1",
            100,
            PointTransactionType.GRANT,
            description="Monthly grant",
            expires_at=NOW + timedelta(days=90),
        )
        await ledger.commit()

        assert await balance_of(session, "company-1") == 100
        entries = await ledger_of(session, "company-1")
        assert [e.amount for e in entries] == [100]
        assert entries[0].balance_after == 100

    @pytest.mark.asyncio
    async def test_rollback_discards_delta(self, session) -> None:
        await seed_subscription(session, point_balance=30)
        ledger = LedgerStore(session)

        await ledger.lock_tenant("company-1")
        await ledger.apply_delta("company-1", -10, PointTransactionType.CONSUME, description="x")
        await ledger.rollback()

        assert await balance_of(session, "company-1") == 30
        assert await ledger_of(session, "company-1") == []

    @pytest.mark.asyncio
    async def test_find_expirable_only_returns_past_unexpired_credits(self, session) -> None:
        await seed_subscription(session, point_balance=30)
        past = await seed_credit(session, "company-1", 10, 10, NOW - timedelta(days=1))
        await seed_credit(session, "company-1", 20, 30, NOW + timedelta(days=1))
        await seed_credit(session, "company-2", 10, 10, NOW - timedelta(days=1))
        ledger = LedgerStore(session)

        await ledger.lock_tenant("company-1")
        expirable = await ledger.find_expirable("company-1", NOW)

        assert [e.id for e in expirable] == [past.id]

        await ledger.mark_expired("company-1", [past.id])
        assert await ledger.find_expirable("company-1", NOW) == []
        await ledger.commit()

    @pytest.mark.asyncio
    async def test_history_newest_first_with_paging(self, session) -> None:
        await seed_subscription(session, point_balance=0)
        ledger = LedgerStore(session)
        await ledger.lock_tenant("company-1")
        for amount in (10, 20, 30):
            await ledger.apply_delta(
                "company-1", amount, PointTransactionType.PURCHASE, description=f"+{amount}"
            )
        await ledger.commit()

        page = await ledger.history("company-1", limit=2, offset=0)
        rest = await ledger.history("company-1", limit=2, offset=2)

        assert [e.amount for e in page] == [30, 20]
        assert [e.amount for e in rest] == [10]

    @pytest.mark.asyncio
    async def test_list_active_tenant_ids(self, session) -> None:
        await seed_subscription(session, tenant_id="b-active")
        await seed_subscription(session, tenant_id="a-active")
        await seed_subscription(
            session, tenant_id="c-canceled", status=SubscriptionStatus.CANCELED
        )

        assert await LedgerStore(session).list_active_tenant_ids() == ["a-active", "b-active"]
