"""
API Routes - FastAPI endpoints for point ledger operations.

NO DICTIONARIES - All requests/responses use Pydantic models.
"""

from datetime import UTC, datetime

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.api.dependencies import require_api_key
from app.api.errors import http_error
from app.db.session import get_read_db, get_write_db, get_write_session_factory
from app.exceptions import BillingError
from app.models.api import (
    BalanceCheckResponse,
    BillableAction,
    ChatSessionResponse,
    ConsumePointsRequest,
    ConsumePointsResponse,
    ExpirePointsResponse,
    GrantPointsRequest,
    GrantPointsResponse,
    HealthResponse,
    OpenChatSessionRequest,
    PointBalanceResponse,
    PointHistoryResponse,
    PointTransactionItem,
    PurchasePointsRequest,
    PurchasePointsResponse,
    TenantExpirationItem,
)
from app.services.chat_sessions import ChatSessionService
from app.services.consumption import ConsumptionCoordinator
from app.services.expiration import ExpirationJob
from app.services.grants import GrantManager
from app.services.ledger import LedgerStore
from app.services.point_catalog import get_plan

router = APIRouter()


@router.get(
    "/v1/tenants/{tenant_id}/points",
    response_model=PointBalanceResponse,
    dependencies=[Depends(require_api_key)],
)
async def get_point_balance(
    tenant_id: str,
    db: AsyncSession = Depends(get_read_db),
) -> PointBalanceResponse:
    """
    Get the tenant's balance and plan summary.

    Read-only operation - can use read replica. The balance may include
    points the next locked operation will expire.
    """
    try:
        subscription = await ConsumptionCoordinator(db).get_balance(tenant_id)
    except BillingError as exc:
        raise http_error(exc) from exc

    plan = get_plan(subscription.plan_type)
    return PointBalanceResponse(
        tenant_id=subscription.tenant_id,
        point_balance=subscription.point_balance,
        points_included=subscription.points_included,
        plan_type=subscription.plan_type,
        status=subscription.status,
        additional_point_price=plan.additional_point_price,
    )


@router.get(
    "/v1/tenants/{tenant_id}/points/check",
    response_model=BalanceCheckResponse,
    dependencies=[Depends(require_api_key)],
)
async def check_point_balance(
    tenant_id: str,
    action: BillableAction = Query(...),
    db: AsyncSession = Depends(get_read_db),
) -> BalanceCheckResponse:
    """
    Advisory check whether the tenant can afford an action.

    Use for UI hints only; consume re-checks under lock.
    """
    try:
        check = await ConsumptionCoordinator(db).check_balance(tenant_id, action)
    except BillingError as exc:
        raise http_error(exc) from exc

    return BalanceCheckResponse(
        can_proceed=check.can_proceed, required=check.required, available=check.available
    )


@router.get(
    "/v1/tenants/{tenant_id}/points/history",
    response_model=PointHistoryResponse,
    dependencies=[Depends(require_api_key)],
)
async def get_point_history(
    tenant_id: str,
    limit: int = Query(50, ge=1, le=1000),
    offset: int = Query(0, ge=0),
    db: AsyncSession = Depends(get_read_db),
) -> PointHistoryResponse:
    """
    List ledger entries, newest first.

    Read-only operation - can use read replica.
    """
    entries = await LedgerStore(db).history(tenant_id, limit=limit, offset=offset)

    return PointHistoryResponse(
        transactions=[
            PointTransactionItem(
                transaction_id=entry.transaction_id,
                type=entry.type,
                action=entry.action,
                amount=entry.amount,
                balance_after=entry.balance_after,
                related_id=entry.related_id,
                description=entry.description,
                expires_at=entry.expires_at.isoformat() if entry.expires_at else None,
                expired=entry.expired,
                created_at=entry.created_at.isoformat(),
            )
            for entry in entries
        ],
        limit=limit,
        offset=offset,
    )


@router.post(
    "/v1/tenants/{tenant_id}/points/consume",
    response_model=ConsumePointsResponse,
    dependencies=[Depends(require_api_key)],
)
async def consume_points(
    tenant_id: str,
    request: ConsumePointsRequest,
    db: AsyncSession = Depends(get_write_db),
) -> ConsumePointsResponse:
    """
    Deduct points for a billable action.

    Write operation - requires primary database.
    Returns 402 with required/available when the balance is short.
    """
    try:
        result = await ConsumptionCoordinator(db).consume(
            tenant_id,
            request.action,
            related_id=request.related_id,
            description=request.description,
        )
    except BillingError as exc:
        raise http_error(exc) from exc

    return ConsumePointsResponse(new_balance=result.new_balance, consumed=result.consumed)


@router.post(
    "/v1/tenants/{tenant_id}/points/grant",
    response_model=GrantPointsResponse,
    status_code=status.HTTP_201_CREATED,
    dependencies=[Depends(require_api_key)],
)
async def grant_points(
    tenant_id: str,
    request: GrantPointsRequest,
    db: AsyncSession = Depends(get_write_db),
) -> GrantPointsResponse:
    """
    Credit points (monthly GRANT or PURCHASE).

    GRANT applies the carryover cap first. Write operation - requires primary database.
    """
    try:
        result = await GrantManager(db).grant(
            tenant_id,
            request.amount,
            request.transaction_type,
            description=request.description,
        )
    except BillingError as exc:
        raise http_error(exc) from exc

    return GrantPointsResponse(new_balance=result.new_balance)


@router.post(
    "/v1/tenants/{tenant_id}/points/purchase",
    response_model=PurchasePointsResponse,
    status_code=status.HTTP_201_CREATED,
    dependencies=[Depends(require_api_key)],
)
async def purchase_points(
    tenant_id: str,
    request: PurchasePointsRequest,
    db: AsyncSession = Depends(get_write_db),
) -> PurchasePointsResponse:
    """
    Buy additional points at the plan's per-point price.

    Payment capture happens upstream; this records the credit.
    """
    try:
        result = await GrantManager(db).purchase(tenant_id, request.amount)
    except BillingError as exc:
        raise http_error(exc) from exc

    return PurchasePointsResponse(
        new_balance=result.new_balance, purchased=result.purchased, price=result.price
    )


@router.post(
    "/v1/tenants/{tenant_id}/chat-sessions",
    response_model=ChatSessionResponse,
    dependencies=[Depends(require_api_key)],
)
async def open_chat_session(
    tenant_id: str,
    request: OpenChatSessionRequest,
    db: AsyncSession = Depends(get_write_db),
) -> ChatSessionResponse:
    """
    Open (or reuse) a member's chat session with a candidate agent.

    Only a newly created session is charged.
    """
    try:
        opened = await ChatSessionService(db).open_session(
            tenant_id, request.member_id, request.agent_id
        )
    except BillingError as exc:
        raise http_error(exc) from exc

    return ChatSessionResponse(
        session_id=opened.session_id,
        tenant_id=opened.tenant_id,
        member_id=opened.member_id,
        agent_id=opened.agent_id,
        created=opened.created,
        points_consumed=opened.points_consumed,
    )


@router.post(
    "/v1/internal/points/expire",
    response_model=ExpirePointsResponse,
    dependencies=[Depends(require_api_key)],
)
async def expire_points(
    session_factory: async_sessionmaker[AsyncSession] = Depends(get_write_session_factory),
) -> ExpirePointsResponse:
    """
    Run batch expiration for every ACTIVE tenant.

    Called by the scheduler. Per-tenant failures are skipped and counted.
    """
    result = await ExpirationJob(session_factory).expire_all()

    return ExpirePointsResponse(
        processed=result.processed,
        failed=result.failed,
        results=[
            TenantExpirationItem(tenant_id=item.tenant_id, expired=item.expired)
            for item in result.results
        ],
    )


@router.get("/health", response_model=HealthResponse)
async def health_check(db: AsyncSession = Depends(get_read_db)) -> HealthResponse:
    """
    Health check for load balancer.

    Verifies database connectivity.
    """
    try:
        await db.execute(text("SELECT 1"))

        return HealthResponse(
            status="healthy",
            database="connected",
            timestamp=datetime.now(UTC).isoformat(),
        )

    except Exception as exc:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail={
                "status": "unhealthy",
                "database": "disconnected",
                "error": str(exc),
                "timestamp": datetime.now(UTC).isoformat(),
            },
        ) from exc
