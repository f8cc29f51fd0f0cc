"""
Point catalog configuration.

Maps billable actions to point costs and plans to monthly allotments.
Values come from settings so deployments can tune prices without a release.
"""

import calendar
import math
from datetime import datetime

from app.config import settings
from app.models.api import BillableAction, PlanType
from app.models.domain import PlanInfo

ACTION_LABELS: dict[BillableAction, str] = {
    BillableAction.CONVERSATION: "Agent conversation",
    BillableAction.INTEREST: "Interest",
    BillableAction.CONTACT_DISCLOSURE: "Contact disclosure",
    BillableAction.MESSAGE_SEND: "Message",
}


def action_cost(action: BillableAction) -> int:
    """
    Get the point cost of a billable action.

    Args:
        action: Billable action

    Returns:
        Points deducted per occurrence (0 means free)
    """
    costs = {
        BillableAction.CONVERSATION: settings.cost_conversation,
        BillableAction.INTEREST: settings.cost_interest,
        BillableAction.CONTACT_DISCLOSURE: settings.cost_contact_disclosure,
        BillableAction.MESSAGE_SEND: settings.cost_message_send,
    }
    return costs[action]


def action_label(action: BillableAction) -> str:
    """Human-readable label used in default ledger descriptions."""
    return ACTION_LABELS[action]


def get_plans() -> dict[PlanType, PlanInfo]:
    """Plan catalog built from current settings."""
    return {
        PlanType.LIGHT: PlanInfo(
            plan_type=PlanType.LIGHT,
            name="Light",
            points_included=settings.light_points_included,
            additional_point_price=settings.light_additional_point_price,
        ),
        PlanType.STANDARD: PlanInfo(
            plan_type=PlanType.STANDARD,
            name="Standard",
            points_included=settings.standard_points_included,
            additional_point_price=settings.standard_additional_point_price,
        ),
        PlanType.ENTERPRISE: PlanInfo(
            plan_type=PlanType.ENTERPRISE,
            name="Enterprise",
            points_included=settings.enterprise_points_included,
            additional_point_price=settings.enterprise_additional_point_price,
        ),
    }


def get_plan(plan_type: PlanType) -> PlanInfo:
    """
    Get plan configuration by type.

    Raises:
        ValueError: If plan type not found
    """
    plan = get_plans().get(PlanType(plan_type))
    if not plan:
        raise ValueError(f"Unknown plan type: {plan_type}")
    return plan


def carryover_cap(points_included: int, ratio: float | None = None) -> int:
    """Maximum balance that survives into a new GRANT period."""
    if ratio is None:
        ratio = settings.carryover_cap_ratio
    return math.floor(points_included * ratio)


def add_months(moment: datetime, months: int) -> datetime:
    """
    Shift a datetime by calendar months.

    Days past the end of the target month clamp to its last day
    (Jan 31 + 1 month = Feb 28/29).
    """
    month_index = moment.month - 1 + months
    year = moment.year + month_index // 12
    month = month_index % 12 + 1
    day = min(moment.day, calendar.monthrange(year, month)[1])
    return moment.replace(year=year, month=month, day=day)


def credit_expires_at(granted_at: datetime) -> datetime:
    """Expiry for GRANT/PURCHASE entries created at granted_at."""
    return add_months(granted_at, settings.point_expiration_months)
