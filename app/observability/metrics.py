"""
Metrics Collection with Prometheus.

Exposes ledger and state-transition metrics for monitoring.
"""

from enum import StrEnum

from prometheus_client import Counter, Gauge, Histogram, Info

from app.config import settings


class MetricLabels(StrEnum):
    """Standard metric label names."""

    ENDPOINT = "endpoint"
    METHOD = "method"
    STATUS_CODE = "status_code"
    OPERATION = "operation"
    ACTION = "action"
    TRANSACTION_TYPE = "transaction_type"
    ERROR_TYPE = "error_type"
    ENTITY = "entity"


class LedgerMetrics:
    """
    Centralized metrics for the points ledger.

    Covers:
    - HTTP requests (rate, duration, errors)
    - Consumption (points per action, failures by error type, lock-hold time)
    - Grants and purchases
    - Expiration (per-tenant and batch)
    - CAS conflicts per entity
    """

    def __init__(self) -> None:
        """Initialize all Prometheus metrics."""

        self.service_info = Info("ledger_service", "Service information")
        self.service_info.info(
            {
                "version": settings.api_version,
                "service_name": settings.service_name,
            }
        )

        # ====================================================================
        # HTTP Metrics
        # ====================================================================
        self.http_requests_total = Counter(
            "ledger_http_requests_total",
            "Total HTTP requests",
            [MetricLabels.ENDPOINT, MetricLabels.METHOD, MetricLabels.STATUS_CODE],
        )

        self.http_request_duration_seconds = Histogram(
            "ledger_http_request_duration_seconds",
            "HTTP request duration in seconds",
            [MetricLabels.ENDPOINT, MetricLabels.METHOD],
            buckets=(0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0),
        )

        self.http_requests_in_progress = Gauge(
            "ledger_http_requests_in_progress",
            "Number of HTTP requests currently being processed",
            [MetricLabels.ENDPOINT, MetricLabels.METHOD],
        )

        # ====================================================================
        # Consumption Metrics
        # ====================================================================
        self.points_consumed_total = Counter(
            "ledger_points_consumed_total",
            "Total points consumed",
            [MetricLabels.ACTION],
        )

        self.consumptions_total = Counter(
            "ledger_consumptions_total",
            "Total consumption attempts",
            ["success", MetricLabels.ERROR_TYPE],
        )

        self.lock_hold_seconds = Histogram(
            "ledger_lock_hold_seconds",
            "Time a tenant row lock was held by a ledger transaction",
            [MetricLabels.OPERATION],
            buckets=(0.001, 0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0),
        )

        # ====================================================================
        # Grant Metrics
        # ====================================================================
        self.points_granted_total = Counter(
            "ledger_points_granted_total",
            "Total points credited",
            [MetricLabels.TRANSACTION_TYPE],
        )

        self.carryover_expired_total = Counter(
            "ledger_carryover_expired_total",
            "Points force-expired by the carryover cap",
        )

        # ====================================================================
        # Expiration Metrics
        # ====================================================================
        self.points_expired_total = Counter(
            "ledger_points_expired_total",
            "Points retired by the expiration engine",
        )

        self.batch_expiration_runs_total = Counter(
            "ledger_batch_expiration_runs_total",
            "Batch expiration runs",
        )

        self.batch_expiration_failures_total = Counter(
            "ledger_batch_expiration_failures_total",
            "Tenants skipped by the batch job after an error",
        )

        # ====================================================================
        # State Transition Metrics
        # ====================================================================
        self.state_transition_conflicts_total = Counter(
            "ledger_state_transition_conflicts_total",
            "Conditional updates that matched no row",
            [MetricLabels.ENTITY],
        )

        # ====================================================================
        # Error Metrics
        # ====================================================================
        self.errors_total = Counter(
            "ledger_errors_total",
            "Total errors by type",
            [MetricLabels.ERROR_TYPE, MetricLabels.OPERATION],
        )

    # ========================================================================
    # Helper Methods
    # ========================================================================

    def record_http_request(
        self, endpoint: str, method: str, status_code: int, duration: float
    ) -> None:
        """Record HTTP request metrics."""
        self.http_requests_total.labels(
            endpoint=endpoint, method=method, status_code=status_code
        ).inc()
        self.http_request_duration_seconds.labels(endpoint=endpoint, method=method).observe(
            duration
        )

    def record_consumption(
        self, action: str, consumed: int, success: bool, error_type: str | None = None
    ) -> None:
        """Record a consumption attempt."""
        self.consumptions_total.labels(success=str(success), error_type=error_type or "none").inc()
        if success and consumed > 0:
            self.points_consumed_total.labels(action=action).inc(consumed)

    def record_grant(self, transaction_type: str, amount: int, carryover_expired: int) -> None:
        """Record a grant or purchase credit."""
        self.points_granted_total.labels(transaction_type=transaction_type).inc(amount)
        if carryover_expired > 0:
            self.carryover_expired_total.inc(carryover_expired)

    def record_expiration(self, amount: int) -> None:
        """Record points retired for a tenant."""
        if amount > 0:
            self.points_expired_total.inc(amount)

    def record_transition_conflict(self, entity: str) -> None:
        """Record a lost compare-and-swap."""
        self.state_transition_conflicts_total.labels(entity=entity).inc()

    def record_error(self, error_type: str, operation: str) -> None:
        """Record error occurrence."""
        self.errors_total.labels(error_type=error_type, operation=operation).inc()


# Global metrics instance
metrics = LedgerMetrics()
