# Overview: Error taxonomy shared by services and routes; every failure carries a stable code.

"""
Error taxonomy

Every failure that can reach a client maps to:
- a stable machine-readable code (e.g. "insufficient_stock")
- a human message
- an HTTP status used by the routes

Services raise these; routes never build error payloads by hand.

CATEGORIES:
- ValidationError: input problem, raised before any side effect (400)
- UnauthenticatedError: no actor on an authenticated-only operation (401)
- ForbiddenError: actor or client may not touch this resource (403)
- NotFoundError: referenced entity does not exist (404)
- ConflictError: business rule rejects the change (409)
- RateLimitedError: retry after the window moves (429)
- InternalError: unexpected failure, details logged server-side only (500)
"""

from __future__ import annotations

from flask import jsonify


class TablePosError(Exception):
    """Base class for failures with a stable client-facing code."""

    status = 500
    code = "internal_error"
    default_message = "Internal server error"

    def __init__(self, message: str | None = None, *, code: str | None = None, details: dict | None = None):
        super().__init__(message or self.default_message)
        self.message = message or self.default_message
        if code:
            self.code = code
        self.details = details or {}

    def to_dict(self) -> dict:
        body = {"error": self.code, "message": self.message}
        if self.details:
            body["details"] = self.details
        return body


class ValidationError(TablePosError, ValueError):
    status = 400
    code = "validation_error"
    default_message = "Invalid request"


class UnauthenticatedError(TablePosError):
    status = 401
    code = "auth_required"
    default_message = "Authentication required"


class ForbiddenError(TablePosError):
    status = 403
    code = "forbidden"
    default_message = "Forbidden"


class NotFoundError(TablePosError):
    status = 404
    code = "not_found"
    default_message = "Not found"


class ConflictError(TablePosError):
    status = 409
    code = "conflict"
    default_message = "Request conflicts with current state"


class RateLimitedError(TablePosError):
    status = 429
    code = "rate_limit_exceeded"
    default_message = "Too many requests. Please wait a moment before trying again."
    retryable = True

    def __init__(self, message: str | None = None, *, retry_after: int | None = None, **kwargs):
        super().__init__(message, **kwargs)
        self.retry_after = retry_after


class InternalError(TablePosError):
    status = 500
    code = "internal_error"
    default_message = "Internal server error"
    retryable = False


# =============================================================================
# NAMED FAILURES
# =============================================================================

class EmptyOrder(ValidationError):
    code = "empty_order"
    default_message = "Order must contain at least one item"


class ProductUnavailable(ValidationError):
    code = "product_not_available"
    default_message = "Product is not available"


class InvalidStatus(ValidationError):
    code = "invalid_status"
    default_message = "Invalid order status"


class InvalidPaymentMethod(ValidationError):
    code = "invalid_payment_method"
    default_message = "Invalid payment method"


class InvalidAmount(ValidationError):
    code = "invalid_amount"
    default_message = "Payment amount must be greater than zero"


class AmountExceedsLimit(ValidationError):
    code = "amount_exceeds_limit"
    default_message = "Payment amount exceeds maximum allowed limit"


class TableNotFound(ValidationError):
    code = "table_not_found"
    default_message = "Selected table does not exist"


class OrderNotFound(NotFoundError):
    code = "order_not_found"
    default_message = "Order not found"


class ProductNotFound(NotFoundError):
    code = "product_not_found"
    default_message = "Product not found"


class InvalidOrderStatus(ConflictError):
    code = "invalid_order_status"
    default_message = "Order cannot be paid in its current status"


class InvalidTransition(ConflictError):
    code = "invalid_transition"
    default_message = "Status transition is not allowed"


class OrderFullyPaid(ConflictError):
    code = "order_fully_paid"
    default_message = "Order is already fully paid"


class AmountExceedsBalance(ConflictError):
    code = "amount_exceeds_balance"
    default_message = "Payment amount exceeds remaining balance"


class BalanceMismatch(ConflictError):
    code = "amount_mismatch"
    default_message = "Payment amount must match remaining balance"


class InsufficientStock(ConflictError):
    code = "insufficient_stock"
    default_message = "Insufficient stock"


class RateLimitExceeded(RateLimitedError):
    code = "rate_limit_exceeded"


class ForbiddenCrossTable(ForbiddenError):
    code = "cross_table_forbidden"
    default_message = "You can only pay for orders from your table"


class InvalidToken(ForbiddenError):
    code = "invalid_csrf_token"
    default_message = "Invalid or expired security token. Please refresh and try again."


class TransactionTimeout(InternalError):
    status = 503
    code = "transaction_timeout"
    default_message = "The operation timed out. Please retry."
    retryable = True


def error_response(exc: TablePosError):
    """Build the JSON error envelope for a TablePosError."""
    response = jsonify(exc.to_dict())
    response.status_code = exc.status
    retry_after = getattr(exc, "retry_after", None)
    if retry_after:
        response.headers["Retry-After"] = str(retry_after)
    return response
