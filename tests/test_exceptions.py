"""
Tests for exception classes.

Covers the typed attributes and string representations, and the HTTP
mapping routes apply to them.
"""

from uuid import uuid4

import pytest

from app.api.errors import http_error
from app.exceptions import (
    AuthenticationError,
    BillingError,
    ConflictError,
    DataIntegrityError,
    DuplicateSessionError,
    ForbiddenError,
    InsufficientPointsError,
    InvalidRequestError,
    LockNotHeldError,
    NoSubscriptionError,
    ResourceNotFoundError,
    SubscriptionInactiveError,
    WriteVerificationError,
)


class TestBillingError:
    """Tests for base BillingError."""

    def test_billing_error_is_exception(self):
        """BillingError is a subclass of Exception."""
        assert issubclass(BillingError, Exception)

    def test_billing_error_can_be_raised(self):
        """BillingError can be raised and caught."""
        with pytest.raises(BillingError):
            raise BillingError("test error")


class TestInsufficientPointsError:
    """Tests for InsufficientPointsError."""

    def test_attributes(self):
        exc = InsufficientPointsError(required=10, available=3)
        assert exc.required == 10
        assert exc.available == 3

    def test_message_format(self):
        exc = InsufficientPointsError(required=10, available=3)
        assert str(exc) == "Insufficient points. Required: 10, Available: 3"

    def test_is_billing_error(self):
        assert isinstance(InsufficientPointsError(required=1, available=0), BillingError)


class TestSubscriptionErrors:
    """Missing and inactive subscriptions."""

    def test_no_subscription(self):
        exc = NoSubscriptionError("company-1")
        assert exc.tenant_id == "company-1"
        assert "company-1" in str(exc)

    def test_inactive(self):
        exc = SubscriptionInactiveError("company-1", "PAST_DUE")
        assert exc.status == "PAST_DUE"
        assert "not active" in str(exc)


class TestConflictError:
    """Tests for ConflictError."""

    def test_default_message(self):
        exc = ConflictError("Interest")
        assert exc.resource == "Interest"
        assert exc.message == "Interest was modified by another request"

    def test_custom_message(self):
        exc = ConflictError("Invite", "Invite was already used")
        assert exc.message == "Invite was already used"
        assert "Conflict on Invite" in str(exc)


class TestOtherErrors:
    """Remaining typed exceptions."""

    def test_duplicate_session(self):
        member_id = uuid4()
        exc = DuplicateSessionError(member_id, "agent-1")
        assert exc.member_id == member_id
        assert exc.agent_id == "agent-1"

    def test_resource_not_found(self):
        resource_id = uuid4()
        exc = ResourceNotFoundError("Interest", resource_id)
        assert str(exc) == f"Interest not found: {resource_id}"

    @pytest.mark.parametrize(
        ("exc_class", "prefix"),
        [
            (ForbiddenError, "Forbidden"),
            (InvalidRequestError, "Invalid request"),
            (WriteVerificationError, "Write verification failed"),
            (DataIntegrityError, "Data integrity error"),
            (AuthenticationError, "Authentication failed"),
        ],
    )
    def test_message_prefix(self, exc_class, prefix):
        exc = exc_class("details")
        assert exc.message == "details"
        assert str(exc).startswith(prefix)

    def test_lock_not_held(self):
        exc = LockNotHeldError("company-1")
        assert exc.tenant_id == "company-1"
        assert not isinstance(exc, BillingError)


class TestHttpMapping:
    """BillingError -> HTTPException."""

    @pytest.mark.parametrize(
        ("exc", "status_code"),
        [
            (InsufficientPointsError(required=10, available=0), 402),
            (NoSubscriptionError("t"), 402),
            (SubscriptionInactiveError("t", "CANCELED"), 403),
            (ForbiddenError("no"), 403),
            (ResourceNotFoundError("Interest", "x"), 404),
            (ConflictError("Interest"), 409),
            (InvalidRequestError("bad"), 400),
            (WriteVerificationError("lost"), 500),
            (DataIntegrityError("negative"), 500),
            (BillingError("other"), 400),
        ],
    )
    def test_status_codes(self, exc, status_code):
        assert http_error(exc).status_code == status_code

    def test_insufficient_points_detail(self):
        detail = http_error(InsufficientPointsError(required=10, available=4)).detail
        assert detail["required"] == 10
        assert detail["available"] == 4

    def test_server_errors_hide_details(self):
        detail = http_error(DataIntegrityError("balance would go negative")).detail
        assert "negative" not in detail
