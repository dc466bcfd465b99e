# Overview: Flask API routes for order payments; parses input and returns JSON responses.

"""
Payment Processing API Routes

WHY: Counter staff settle orders in one or more payments (split bills).

DESIGN:
- Add payments to orders (partial payments allowed)
- The payment that covers the remaining balance completes the order
- Get payment list and remaining balance

SECURITY:
- Processing payments: counter, manager, admin
- Reading payments: any authenticated staff member
"""

from flask import Blueprint, current_app, g, jsonify

from ..errors import TablePosError, InternalError, error_response
from ..decorators import require_auth, require_role
from ..services import payment_service
from ..validation import MAX_REFERENCE_NUMBER_LENGTH, clean_text, json_body, parse_amount


payments_bp = Blueprint("payments", __name__, url_prefix="/api/orders")

PAYMENT_ROLES = ("counter", "manager", "admin")
STAFF_ROLES = ("admin", "manager", "server", "counter", "kitchen")


@payments_bp.post("/<int:order_id>/payments")
@require_auth
@require_role(*PAYMENT_ROLES)
def process_payment_route(order_id: int):
    """
    Add a payment to an order.

    Request body:
    {
        "payment_method": "cash" | "credit_card" | "debit_card" | "digital_wallet",
        "amount": 200000,                 (minor units)
        "reference_number": "AUTH-12345"  (optional)
    }

    Returns:
        201: Payment plus the updated summary
        400: Invalid method or amount
        404: Order not found
        409: Order not payable, already paid, or amount over balance
        429: Too many payments from this staff member
    """
    try:
        data = json_body()
        payment = payment_service.process_payment(
            order_id,
            user_id=g.actor.user_id,
            payment_method=data.get("payment_method"),
            amount=parse_amount(data.get("amount")),
            reference_number=clean_text(
                data.get("reference_number"),
                "reference_number",
                max_length=MAX_REFERENCE_NUMBER_LENGTH,
            ),
        )
        summary = payment_service.get_payment_summary(order_id)
        return jsonify({
            "payment": payment.to_dict(),
            "summary": summary,
        }), 201

    except TablePosError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to process payment")
        return error_response(InternalError())


@payments_bp.get("/<int:order_id>/payments")
@require_auth
@require_role(*STAFF_ROLES)
def get_order_payments_route(order_id: int):
    try:
        payments = payment_service.get_order_payments(order_id)
        return jsonify({"payments": [payment.to_dict() for payment in payments]}), 200
    except TablePosError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to fetch payments")
        return error_response(InternalError())


@payments_bp.get("/<int:order_id>/payments/summary")
@require_auth
@require_role(*STAFF_ROLES)
def get_payment_summary_route(order_id: int):
    """
    Balance view for an order.

    Returns:
    {
        "order_id": 1,
        "total_amount": 355200,
        "total_paid": 200000,
        "pending_amount": 0,
        "remaining_amount": 155200,
        "is_fully_paid": false,
        "payment_count": 1
    }
    """
    try:
        return jsonify(payment_service.get_payment_summary(order_id)), 200
    except TablePosError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to fetch payment summary")
        return error_response(InternalError())
