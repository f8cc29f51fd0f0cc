"""
Tests for domain models.
"""

from dataclasses import FrozenInstanceError
from uuid import uuid4

import pytest

from app.models.api import PlanType, SubscriptionStatus
from app.models.domain import (
    BatchExpirationResult,
    ConsumeResult,
    PlanInfo,
    SubscriptionData,
)


class TestSubscriptionData:
    """Tests for SubscriptionData domain model."""

    def _make(self, point_balance: int) -> SubscriptionData:
        return SubscriptionData(
            subscription_id=uuid4(),
            tenant_id="company-1",
            point_balance=point_balance,
            points_included=100,
            status=SubscriptionStatus.ACTIVE,
            plan_type=PlanType.LIGHT,
        )

    def test_zero_balance_allowed(self):
        assert self._make(0).point_balance == 0

    def test_negative_balance_rejected(self):
        with pytest.raises(ValueError, match="cannot be negative"):
            self._make(-1)

    def test_frozen(self):
        data = self._make(10)
        with pytest.raises(FrozenInstanceError):
            data.point_balance = 20  # type: ignore[misc]


class TestPlanInfo:
    """Tests for PlanInfo domain model."""

    def test_valid(self):
        plan = PlanInfo(
            plan_type=PlanType.STANDARD,
            name="Standard",
            points_included=300,
            additional_point_price=300,
        )
        assert plan.points_included == 300

    @pytest.mark.parametrize(
        ("points_included", "price"),
        [(0, 300), (300, 0), (-1, 300)],
    )
    def test_non_positive_values_rejected(self, points_included, price):
        with pytest.raises(ValueError):
            PlanInfo(
                plan_type=PlanType.STANDARD,
                name="Standard",
                points_included=points_included,
                additional_point_price=price,
            )


class TestResults:
    """Result containers."""

    def test_consume_result_default_payload(self):
        result: ConsumeResult[str] = ConsumeResult(new_balance=5, consumed=3)
        assert result.result is None

    def test_batch_result_defaults(self):
        result = BatchExpirationResult(processed=0)
        assert result.failed == 0
        assert result.results == []
