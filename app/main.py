"""
Points ledger API - FastAPI application wiring.

Startup runs pending migrations when AUTO_MIGRATE is set, every request is
tagged with a request id that is bound into the structlog context, and
request metrics are labelled by route template so tenant ids in paths do not
explode label cardinality.
"""

import time
from collections.abc import AsyncIterator, Awaitable, Callable
from contextlib import asynccontextmanager
from typing import Any
from uuid import uuid4

from fastapi import FastAPI, Request, Response
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse, PlainTextResponse
from prometheus_client import generate_latest
from starlette.concurrency import run_in_threadpool
from starlette.routing import Match

from app.api.interest_routes import router as interest_router
from app.api.member_routes import router as member_router
from app.api.routes import router as ledger_router
from app.config import settings
from app.db.migration_runner import run_migrations
from app.db.session import close_engines
from app.observability import get_logger, log_context, metrics, setup_logging, setup_tracing
from app.observability.tracing import instrument_fastapi

REQUEST_ID_HEADER = "X-Request-ID"
UNMATCHED_ROUTE = "unmatched"

setup_logging()
logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    logger.info(
        "ledger_api_starting",
        version=settings.api_version,
        auto_migrate=settings.auto_migrate,
        tracing_enabled=settings.tracing_enabled,
        metrics_enabled=settings.metrics_enabled,
    )
    if settings.auto_migrate:
        # Alembic is synchronous; keep it off the event loop.
        await run_in_threadpool(run_migrations)

    yield

    await close_engines()
    logger.info("ledger_api_stopped")


def create_app() -> FastAPI:
    application = FastAPI(
        title=settings.api_title,
        version=settings.api_version,
        description=settings.api_description,
        lifespan=lifespan,
    )
    application.add_exception_handler(RequestValidationError, validation_exception_handler)
    application.middleware("http")(request_context_middleware)

    application.include_router(ledger_router)
    application.include_router(interest_router)
    application.include_router(member_router)
    application.add_api_route("/", root, methods=["GET"])
    application.add_api_route("/metrics", metrics_endpoint, methods=["GET"])

    setup_tracing()
    instrument_fastapi(application)
    return application


def sanitize_validation_errors(exc: RequestValidationError) -> list[dict[str, Any]]:
    """
    Strip submitted values out of pydantic errors.

    Invite and verification tokens travel in request bodies, so "input" is
    never returned or logged. ctx values are stringified for JSON.
    """
    sanitized: list[dict[str, Any]] = []
    for error in exc.errors():
        item: dict[str, Any] = {
            "type": error.get("type"),
            "loc": error.get("loc"),
            "msg": error.get("msg"),
        }
        if error.get("ctx"):
            item["ctx"] = {key: str(value) for key, value in error["ctx"].items()}
        sanitized.append(item)
    return sanitized


async def validation_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    assert isinstance(exc, RequestValidationError)
    errors = sanitize_validation_errors(exc)
    logger.warning(
        "request_validation_failed",
        method=request.method,
        route=route_label(request),
        error_count=len(errors),
        fields=[".".join(str(part) for part in error["loc"] or ()) for error in errors],
    )
    return JSONResponse(status_code=422, content={"detail": errors})


def route_label(request: Request) -> str:
    """Route template for metric labels, e.g. /v1/points/{tenant_id}/balance."""
    for route in request.app.router.routes:
        match, _ = route.matches(request.scope)
        if match == Match.FULL:
            return getattr(route, "path", UNMATCHED_ROUTE)
    return UNMATCHED_ROUTE


async def request_context_middleware(
    request: Request, call_next: Callable[[Request], Awaitable[Response]]
) -> Response:
    request_id = request.headers.get(REQUEST_ID_HEADER) or uuid4().hex
    route = route_label(request)
    method = request.method
    in_progress = metrics.http_requests_in_progress.labels(endpoint=route, method=method)

    started = time.perf_counter()
    in_progress.inc()
    with log_context(request_id=request_id):
        try:
            response = await call_next(request)
        except Exception as exc:
            elapsed = time.perf_counter() - started
            metrics.record_http_request(route, method, 500, elapsed)
            metrics.record_error(type(exc).__name__, "http_request")
            logger.exception(
                "request_crashed", method=method, route=route, duration_seconds=elapsed
            )
            raise
        finally:
            in_progress.dec()

        elapsed = time.perf_counter() - started
        metrics.record_http_request(route, method, response.status_code, elapsed)
        logger.info(
            "request_handled",
            method=method,
            path=request.url.path,
            status_code=response.status_code,
            duration_seconds=round(elapsed, 4),
        )

    response.headers[REQUEST_ID_HEADER] = request_id
    return response


async def root() -> dict[str, str]:
    return {
        "service": settings.service_name,
        "version": settings.api_version,
        "status": "running",
    }


async def metrics_endpoint() -> Response:
    """Prometheus text exposition; 404 when METRICS_ENABLED is off."""
    if not settings.metrics_enabled:
        return PlainTextResponse("metrics disabled", status_code=404)
    return PlainTextResponse(generate_latest())


app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "app.main:app",
        host=settings.api_host,
        port=settings.api_port,
        log_level=settings.log_level.lower(),
    )
