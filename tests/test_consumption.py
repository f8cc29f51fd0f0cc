"""
Tests for ConsumptionCoordinator.

Atomic deduction, rollback of side effects, zero-cost actions and the
advisory balance check.
"""

from datetime import timedelta
from unittest.mock import AsyncMock

import pytest
from sqlalchemy import func, select
from sqlalchemy.dialects import postgresql

from app.db.models import Account
from app.exceptions import (
    InsufficientPointsError,
    NoSubscriptionError,
    SubscriptionInactiveError,
)
from app.models.api import BillableAction, PointTransactionType, SubscriptionStatus
from app.services.consumption import ConsumptionCoordinator
from app.services.grants import GrantManager
from tests._ledger_testkit import (
    NOW,
    balance_of,
    create_mock_subscription,
    fixed_clock,
    ledger_of,
    ledger_sum,
    make_result,
    seed_credit,
    seed_subscription,
)


async def account_count(session) -> int:
    result = await session.execute(select(func.count()).select_from(Account))
    return result.scalar_one()


class TestConsume:
    """Billable consumption against the in-memory database."""

    @pytest.mark.asyncio
    async def test_deducts_cost_and_writes_entry(self, session) -> None:
        await seed_subscription(session, point_balance=25)
        coordinator = ConsumptionCoordinator(session, clock=fixed_clock())

        result = await coordinator.consume(
            "company-1", BillableAction.CONTACT_DISCLOSURE, related_id="interest-9"
        )

        assert result.consumed == 10
        assert result.new_balance == 15
        assert result.result is None
        assert await balance_of(session, "company-1") == 15

        [entry] = await ledger_of(session, "company-1")
        assert PointTransactionType(entry.type) == PointTransactionType.CONSUME
        assert BillableAction(entry.action) == BillableAction.CONTACT_DISCLOSURE
        assert entry.amount == -10
        assert entry.balance_after == 15
        assert entry.related_id == "interest-9"
        assert entry.description == "Contact disclosure"
        assert entry.expires_at is None

    @pytest.mark.asyncio
    async def test_custom_description(self, session) -> None:
        await seed_subscription(session, point_balance=5)
        coordinator = ConsumptionCoordinator(session, clock=fixed_clock())

        await coordinator.consume(
            "company-1", BillableAction.CONVERSATION, description="Agent conversation: agent-7"
        )

        [entry] = await ledger_of(session, "company-1")
        assert entry.description == "Agent conversation: agent-7"

    @pytest.mark.asyncio
    async def test_insufficient_points(self, session) -> None:
        await seed_subscription(session, point_balance=9)
        coordinator = ConsumptionCoordinator(session, clock=fixed_clock())

        with pytest.raises(InsufficientPointsError) as exc_info:
            await coordinator.consume("company-1", BillableAction.CONTACT_DISCLOSURE)

        assert exc_info.value.required == 10
        assert exc_info.value.available == 9
        assert await balance_of(session, "company-1") == 9
        assert await ledger_of(session, "company-1") == []

    @pytest.mark.asyncio
    async def test_second_spend_of_same_points_fails(self, session) -> None:
        """Two consumptions against a balance that covers only one.

        The parallel version lives in test_postgres_concurrency.py.
        """
        await seed_subscription(session, point_balance=10)
        coordinator = ConsumptionCoordinator(session, clock=fixed_clock())

        await coordinator.consume("company-1", BillableAction.CONTACT_DISCLOSURE)
        with pytest.raises(InsufficientPointsError) as exc_info:
            await coordinator.consume("company-1", BillableAction.CONTACT_DISCLOSURE)

        assert exc_info.value.available == 0
        assert await balance_of(session, "company-1") == 0
        assert len(await ledger_of(session, "company-1")) == 1

    @pytest.mark.asyncio
    async def test_expired_points_are_not_spendable(self, session) -> None:
        await seed_subscription(session, point_balance=10)
        await seed_credit(session, "company-1", 10, 10, NOW - timedelta(days=1))
        coordinator = ConsumptionCoordinator(session, clock=fixed_clock())

        with pytest.raises(InsufficientPointsError) as exc_info:
            await coordinator.consume("company-1", BillableAction.MESSAGE_SEND)

        assert exc_info.value.available == 0
        # Expiration is rolled back together with the failed consumption
        assert await balance_of(session, "company-1") == 10

    @pytest.mark.asyncio
    async def test_expiration_committed_with_successful_consume(self, session) -> None:
        await seed_subscription(session, point_balance=30)
        await seed_credit(session, "company-1", 10, 10, NOW - timedelta(days=1))
        await seed_credit(session, "company-1", 20, 30, NOW + timedelta(days=10))
        coordinator = ConsumptionCoordinator(session, clock=fixed_clock())

        result = await coordinator.consume("company-1", BillableAction.CONTACT_DISCLOSURE)

        assert result.new_balance == 10
        amounts = [e.amount for e in await ledger_of(session, "company-1")]
        assert amounts == [10, 20, -10, -10]

    @pytest.mark.asyncio
    async def test_inactive_subscription(self, session) -> None:
        await seed_subscription(session, point_balance=50, status=SubscriptionStatus.PAST_DUE)
        coordinator = ConsumptionCoordinator(session, clock=fixed_clock())

        with pytest.raises(SubscriptionInactiveError):
            await coordinator.consume("company-1", BillableAction.MESSAGE_SEND)

        assert await balance_of(session, "company-1") == 50

    @pytest.mark.asyncio
    async def test_no_subscription(self, session) -> None:
        coordinator = ConsumptionCoordinator(session, clock=fixed_clock())

        with pytest.raises(NoSubscriptionError):
            await coordinator.consume("ghost", BillableAction.MESSAGE_SEND)


class TestSideEffects:
    """Side effects share the consumption's transaction."""

    @pytest.mark.asyncio
    async def test_side_effect_result_and_writes_are_committed(self, session) -> None:
        await seed_subscription(session, point_balance=5)
        coordinator = ConsumptionCoordinator(session, clock=fixed_clock())

        async def create_account(tx_session) -> str:
            tx_session.add(Account(email="new@example.com"))
            await tx_session.flush()
            return "created"

        result = await coordinator.consume(
            "company-1", BillableAction.MESSAGE_SEND, side_effects=create_account
        )

        assert result.result == "created"
        assert result.new_balance == 2
        assert await account_count(session) == 1

    @pytest.mark.asyncio
    async def test_failing_side_effect_rolls_back_points_and_writes(self, session) -> None:
        await seed_subscription(session, point_balance=5)
        coordinator = ConsumptionCoordinator(session, clock=fixed_clock())

        async def explode(tx_session) -> None:
            tx_session.add(Account(email="orphan@example.com"))
            await tx_session.flush()
            raise RuntimeError("downstream write failed")

        with pytest.raises(RuntimeError, match="downstream write failed"):
            await coordinator.consume("company-1", BillableAction.MESSAGE_SEND, side_effects=explode)

        assert await balance_of(session, "company-1") == 5
        assert await ledger_of(session, "company-1") == []
        assert await account_count(session) == 0

    @pytest.mark.asyncio
    async def test_side_effect_not_run_when_points_insufficient(self, session) -> None:
        await seed_subscription(session, point_balance=0)
        coordinator = ConsumptionCoordinator(session, clock=fixed_clock())
        side_effects = AsyncMock()

        with pytest.raises(InsufficientPointsError):
            await coordinator.consume(
                "company-1", BillableAction.MESSAGE_SEND, side_effects=side_effects
            )

        side_effects.assert_not_awaited()


class TestFreeActions:
    """Zero-cost actions take no lock and write no ledger entry."""

    @pytest.mark.asyncio
    async def test_no_lock_taken(self, db_session: AsyncMock) -> None:
        db_session.execute = AsyncMock(return_value=make_result(create_mock_subscription()))
        coordinator = ConsumptionCoordinator(db_session)

        result = await coordinator.consume("company-1", BillableAction.INTEREST)

        assert result.consumed == 0
        assert result.new_balance == 100
        for call in db_session.execute.call_args_list:
            sql = str(call[0][0].compile(dialect=postgresql.dialect()))
            assert "FOR UPDATE" not in sql
        db_session.add.assert_not_called()
        db_session.commit.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_billable_action_takes_lock_first(self, db_session: AsyncMock) -> None:
        db_session.execute = AsyncMock(
            side_effect=[make_result(create_mock_subscription()), make_result()]
        )
        coordinator = ConsumptionCoordinator(db_session, clock=fixed_clock())

        await coordinator.consume("company-1", BillableAction.MESSAGE_SEND)

        first = db_session.execute.call_args_list[0][0][0]
        assert "FOR UPDATE" in str(first.compile(dialect=postgresql.dialect()))

    @pytest.mark.asyncio
    async def test_free_action_without_subscription(self, session) -> None:
        coordinator = ConsumptionCoordinator(session)
        side_effects = AsyncMock(return_value="recorded")

        result = await coordinator.consume(
            "ghost", BillableAction.INTEREST, side_effects=side_effects
        )

        assert result.new_balance == 0
        assert result.result == "recorded"
        side_effects.assert_awaited_once_with(session)

    @pytest.mark.asyncio
    async def test_free_action_ignores_status(self, session) -> None:
        await seed_subscription(session, point_balance=7, status=SubscriptionStatus.CANCELED)
        coordinator = ConsumptionCoordinator(session)

        result = await coordinator.consume("company-1", BillableAction.INTEREST)

        assert result.new_balance == 7
        assert await ledger_of(session, "company-1") == []

    @pytest.mark.asyncio
    async def test_free_action_side_effect_failure_rolls_back(self, db_session: AsyncMock) -> None:
        coordinator = ConsumptionCoordinator(db_session)

        with pytest.raises(ValueError):
            await coordinator.consume(
                "company-1",
                BillableAction.INTEREST,
                side_effects=AsyncMock(side_effect=ValueError("bad")),
            )

        db_session.rollback.assert_awaited_once()
        db_session.commit.assert_not_awaited()


class TestBalanceReads:
    """Advisory check and balance snapshot."""

    @pytest.mark.asyncio
    async def test_check_balance(self, session) -> None:
        await seed_subscription(session, point_balance=12)
        coordinator = ConsumptionCoordinator(session)

        ok = await coordinator.check_balance("company-1", BillableAction.CONTACT_DISCLOSURE)
        assert (ok.can_proceed, ok.required, ok.available) == (True, 10, 12)

        await seed_subscription(session, tenant_id="company-2", point_balance=2)
        short = await coordinator.check_balance("company-2", BillableAction.MESSAGE_SEND)
        assert (short.can_proceed, short.required, short.available) == (False, 3, 2)

    @pytest.mark.asyncio
    async def test_check_balance_free_action(self, session) -> None:
        coordinator = ConsumptionCoordinator(session)

        check = await coordinator.check_balance("ghost", BillableAction.INTEREST)

        assert (check.can_proceed, check.required, check.available) == (True, 0, 0)

    @pytest.mark.asyncio
    async def test_check_balance_no_subscription(self, session) -> None:
        with pytest.raises(NoSubscriptionError):
            await ConsumptionCoordinator(session).check_balance(
                "ghost", BillableAction.MESSAGE_SEND
            )

    @pytest.mark.asyncio
    async def test_check_balance_does_not_write(self, session) -> None:
        await seed_subscription(session, point_balance=10)
        await seed_credit(session, "company-1", 10, 10, NOW - timedelta(days=1))

        check = await ConsumptionCoordinator(session).check_balance(
            "company-1", BillableAction.MESSAGE_SEND
        )

        # Stale points still show; only consume() expires
        assert check.available == 10
        assert len(await ledger_of(session, "company-1")) == 1

    @pytest.mark.asyncio
    async def test_get_balance(self, session) -> None:
        await seed_subscription(session, point_balance=42, points_included=300)

        data = await ConsumptionCoordinator(session).get_balance("company-1")

        assert data.point_balance == 42
        assert data.points_included == 300
        assert data.status == SubscriptionStatus.ACTIVE

    @pytest.mark.asyncio
    async def test_get_balance_no_subscription(self, session) -> None:
        with pytest.raises(NoSubscriptionError):
            await ConsumptionCoordinator(session).get_balance("ghost")


class TestConservation:
    """Balance always equals the sum of the ledger."""

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "actions",
        [
            [BillableAction.MESSAGE_SEND] * 5,
            [BillableAction.CONTACT_DISCLOSURE, BillableAction.CONVERSATION] * 4,
            [BillableAction.CONTACT_DISCLOSURE] * 20,
        ],
    )
    async def test_balance_matches_ledger_sum(self, session, actions) -> None:
        await seed_subscription(session, point_balance=0)
        grants = GrantManager(session, clock=fixed_clock())
        coordinator = ConsumptionCoordinator(session, clock=fixed_clock())

        await grants.grant("company-1", 100)
        for action in actions:
            try:
                await coordinator.consume("company-1", action)
            except InsufficientPointsError:
                pass
        await grants.grant("company-1", 25, PointTransactionType.PURCHASE)

        balance = await balance_of(session, "company-1")
        assert balance >= 0
        assert balance == await ledger_sum(session, "company-1")

        entries = await ledger_of(session, "company-1")
        running = 0
        for entry in entries:
            running += entry.amount
            assert entry.balance_after == running
