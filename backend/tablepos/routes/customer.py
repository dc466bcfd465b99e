# Overview: Public (QR self-service) routes; unauthenticated, rate limited and token protected.

"""
Customer Self-Service API Routes

WHY: Customers scan the QR code on their table, order and pay from their
own phone. None of these routes require a login, so each one is throttled
per client IP before it reaches the database.

SECURITY:
- Sliding-window rate limits per client and action (qr:, order:, payment:)
- One-time form tokens (X-CSRF-Token) on order creation: consumed when
  present, required when CSRF_REQUIRE_TOKEN is set
- Text inputs are trimmed, length limited and stripped of HTML tags
- Payments must carry the client's table (X-Table-ID); paying for another
  table's order is refused
"""

from datetime import timedelta

from flask import Blueprint, current_app, g, jsonify, request

from ..components import get_components
from ..errors import (
    InternalError,
    InvalidToken,
    NotFoundError,
    RateLimitExceeded,
    TablePosError,
    ValidationError,
    error_response,
)
from ..services import order_service, payment_service
from ..validation import (
    MAX_CUSTOMER_NAME_LENGTH,
    MAX_NOTES_LENGTH,
    MAX_REFERENCE_NUMBER_LENGTH,
    clean_text,
    json_body,
    parse_amount,
    parse_int,
    parse_order_items,
)


customer_bp = Blueprint("customer", __name__, url_prefix="/api/customer")

RATE_WINDOW = timedelta(minutes=1)


def _client_ip() -> str:
    return request.remote_addr or "unknown"


def _enforce_rate_limit(action: str, limit: int, message: str) -> None:
    key = f"{action}:{_client_ip()}"
    limiter = get_components().rate_limiter
    allowed = limiter.allow(key, limit, RATE_WINDOW)
    g.rate_limit = (limit, limiter.remaining(key, limit, RATE_WINDOW))
    if not allowed:
        current_app.logger.warning("RATE_LIMIT: %s limit exceeded for IP %s", action, _client_ip())
        raise RateLimitExceeded(message, retry_after=limiter.retry_after(key, RATE_WINDOW))


@customer_bp.after_request
def _rate_limit_headers(response):
    quota = g.pop("rate_limit", None)
    if quota is not None:
        limit, remaining = quota
        response.headers["X-RateLimit-Limit"] = str(limit)
        response.headers["X-RateLimit-Remaining"] = str(remaining)
    return response


def _check_form_token() -> None:
    config = current_app.config
    if not config["CSRF_ENABLED"]:
        return

    token = request.headers.get("X-CSRF-Token", "").strip()
    if not token:
        if config["CSRF_REQUIRE_TOKEN"]:
            current_app.logger.warning("CSRF_ALERT: Missing CSRF token from IP %s", _client_ip())
            raise InvalidToken()
        return

    if not get_components().token_store.consume(token):
        current_app.logger.warning("CSRF_ALERT: Invalid CSRF token from IP %s", _client_ip())
        raise InvalidToken()


@customer_bp.get("/csrf-token")
def get_csrf_token_route():
    token = get_components().token_store.issue()
    return jsonify({"csrf_token": token, "expires_in": current_app.config["CSRF_TOKEN_TTL_SECONDS"]}), 200


@customer_bp.get("/tables/<string:qr_code>")
def get_table_by_qr_route(qr_code: str):
    """Resolve a scanned QR code to its table."""
    try:
        _enforce_rate_limit(
            "qr",
            current_app.config["QR_SCAN_RATE_LIMIT"],
            "Too many requests. Please wait a moment before scanning again.",
        )
        table = get_components().catalog.get_table_by_qr(qr_code.strip())
        if table is None:
            raise NotFoundError("Table not found. Please scan a valid QR code.", code="table_not_found")
        return jsonify(table.to_public_dict()), 200

    except TablePosError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to fetch table information")
        return error_response(InternalError())


@customer_bp.post("/orders")
def create_customer_order_route():
    """
    Place a dine-in order from a table.

    Request body:
    {
        "table_id": 3,
        "customer_name": "Sari",   (optional)
        "notes": "...",            (optional)
        "items": [{"product_id": 1, "quantity": 2, "special_instructions": "..."}]
    }
    """
    try:
        _enforce_rate_limit(
            "order",
            current_app.config["CUSTOMER_ORDER_RATE_LIMIT"],
            "Too many order attempts. Please wait a moment before trying again.",
        )
        _check_form_token()

        data = json_body()
        table_id = data.get("table_id")
        if table_id is None:
            raise ValidationError(
                "Table selection is required for dine-in orders",
                code="table_required_for_dine_in",
            )

        order = order_service.create_order(
            items=parse_order_items(data.get("items")),
            order_type="dine_in",
            table_id=parse_int(table_id, "table_id", minimum=1),
            customer_name=clean_text(data.get("customer_name"), "customer_name", max_length=MAX_CUSTOMER_NAME_LENGTH),
            notes=clean_text(data.get("notes"), "notes", max_length=MAX_NOTES_LENGTH),
        )
        return jsonify(order.to_dict(include_payments=False)), 201

    except TablePosError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to create customer order")
        return error_response(InternalError())


@customer_bp.post("/orders/<int:order_id>/payments")
def create_customer_payment_route(order_id: int):
    """
    Pay the full remaining balance of an order from the table.

    Headers:
    - X-Table-ID: the table the client scanned

    Request body:
    {
        "payment_method": "digital_wallet",
        "amount": 355200,
        "reference_number": "..."  (optional)
    }
    """
    try:
        _enforce_rate_limit(
            "payment",
            current_app.config["CUSTOMER_PAYMENT_RATE_LIMIT"],
            "Too many payment attempts. Please wait a moment before trying again.",
        )

        table_header = request.headers.get("X-Table-ID", "").strip()
        table_id = parse_int(table_header, "table_id") if table_header else None

        data = json_body()
        payment = payment_service.create_customer_payment(
            order_id,
            payment_method=data.get("payment_method"),
            amount=parse_amount(data.get("amount")),
            reference_number=clean_text(
                data.get("reference_number"),
                "reference_number",
                max_length=MAX_REFERENCE_NUMBER_LENGTH,
            ),
            table_id=table_id,
        )
        return jsonify({
            "payment_id": payment.id,
            "order_id": payment.order_id,
            "amount": payment.amount,
            "payment_method": payment.payment_method,
            "status": payment.status,
        }), 201

    except TablePosError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to process customer payment")
        return error_response(InternalError())
