"""
Exception Classes - Strongly typed exception hierarchy.

NO DICTIONARIES - All exceptions have typed attributes.
"""


class BillingError(Exception):
    """Base exception for all billing errors."""

    pass


class NoSubscriptionError(BillingError):
    """Raised when a tenant has never subscribed."""

    def __init__(self, tenant_id: str) -> None:
        self.tenant_id = tenant_id
        super().__init__(f"No subscription for tenant {tenant_id}")


class SubscriptionInactiveError(BillingError):
    """Raised when a tenant's subscription is not ACTIVE."""

    def __init__(self, tenant_id: str, status: str) -> None:
        self.tenant_id = tenant_id
        self.status = status
        super().__init__(f"Subscription for tenant {tenant_id} is not active: {status}")


class InsufficientPointsError(BillingError):
    """Raised when the balance cannot cover an action."""

    def __init__(self, required: int, available: int) -> None:
        self.required = required
        self.available = available
        super().__init__(f"Insufficient points. Required: {required}, Available: {available}")


class ConflictError(BillingError):
    """Raised when a conditional state transition lost a race."""

    def __init__(self, resource: str, message: str | None = None) -> None:
        self.resource = resource
        self.message = message or f"{resource} was modified by another request"
        super().__init__(f"Conflict on {resource}: {self.message}")


class DuplicateSessionError(BillingError):
    """Raised inside a billed transaction when the session already exists."""

    def __init__(self, member_id: object, agent_id: object) -> None:
        self.member_id = member_id
        self.agent_id = agent_id
        super().__init__(f"Session already exists for member {member_id} and agent {agent_id}")


class ResourceNotFoundError(BillingError):
    """Raised when a requested entity doesn't exist."""

    def __init__(self, resource: str, resource_id: object) -> None:
        self.resource = resource
        self.resource_id = resource_id
        super().__init__(f"{resource} not found: {resource_id}")


class ForbiddenError(BillingError):
    """Raised when the acting principal may not touch an entity."""

    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(f"Forbidden: {message}")


class InvalidRequestError(BillingError):
    """Raised when a request is well-formed but not acceptable."""

    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(f"Invalid request: {message}")


class WriteVerificationError(BillingError):
    """Raised when database write verification fails."""

    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(f"Write verification failed: {message}")


class DataIntegrityError(BillingError):
    """Raised when data integrity constraint violated."""

    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(f"Data integrity error: {message}")


class AuthenticationError(BillingError):
    """Raised when authentication fails (missing or invalid API key)."""

    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(f"Authentication failed: {message}")


class LockNotHeldError(RuntimeError):
    """
    Raised when a ledger mutation is attempted without the tenant row lock.

    This is a programming error, not a billing condition, so it is not a
    BillingError and routes never map it to a client response.
    """

    def __init__(self, tenant_id: str) -> None:
        self.tenant_id = tenant_id
        super().__init__(f"Ledger mutation for tenant {tenant_id} without holding its lock")
