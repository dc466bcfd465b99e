# Overview: Flask API routes for staff order operations; parses input and returns JSON responses.

"""
Order API Routes

WHY: Staff terminals create orders, move them through the kitchen workflow
and look them up. All business rules live in order_service; these routes
only parse input and shape responses.

SECURITY:
- Every route requires a bearer token
- Servers may create dine-in orders only (order_type is forced)
- Counter, manager and admin may create any order type
"""

from flask import Blueprint, current_app, g, jsonify, request

from ..errors import TablePosError, InternalError, error_response
from ..decorators import require_auth, require_role
from ..services import order_service
from ..validation import (
    MAX_CUSTOMER_NAME_LENGTH,
    MAX_NOTES_LENGTH,
    clean_text,
    json_body,
    parse_datetime_param,
    parse_int,
    parse_order_items,
    query_int,
)


orders_bp = Blueprint("orders", __name__, url_prefix="/api/orders")

ORDER_CREATOR_ROLES = ("server", "counter", "manager", "admin")
STAFF_ROLES = ("admin", "manager", "server", "counter", "kitchen")


@orders_bp.post("")
@require_auth
@require_role(*ORDER_CREATOR_ROLES)
def create_order_route():
    """
    Create an order.

    Request body:
    {
        "order_type": "dine_in" | "takeout" | "delivery",
        "table_id": 3,                    (required for dine_in)
        "customer_name": "Budi",          (optional)
        "notes": "No onions",             (optional)
        "items": [
            {"product_id": 1, "quantity": 2, "special_instructions": "..."}
        ]
    }

    Returns:
        201: Order with items and payments
        400: Invalid input, unavailable product or unknown table
    """
    try:
        data = json_body()
        actor = g.actor

        order_type = data.get("order_type")
        if actor.role == "server":
            order_type = "dine_in"

        table_id = data.get("table_id")
        if table_id is not None:
            table_id = parse_int(table_id, "table_id", minimum=1)

        order = order_service.create_order(
            items=parse_order_items(data.get("items")),
            order_type=order_type,
            table_id=table_id,
            customer_name=clean_text(data.get("customer_name"), "customer_name", max_length=MAX_CUSTOMER_NAME_LENGTH),
            notes=clean_text(data.get("notes"), "notes", max_length=MAX_NOTES_LENGTH),
            user_id=actor.user_id,
        )
        return jsonify(order.to_dict()), 201

    except TablePosError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to create order")
        return error_response(InternalError())


@orders_bp.get("")
@require_auth
@require_role(*STAFF_ROLES)
def list_orders_route():
    """
    List orders, newest first.

    Query params:
    - status, order_type
    - date_from, date_to (ISO-8601, inclusive)
    - page (default 1), per_page (default 20, max 100)
    """
    try:
        orders, meta = order_service.list_orders(
            status=request.args.get("status") or None,
            order_type=request.args.get("order_type") or None,
            date_from=parse_datetime_param(request.args.get("date_from"), "date_from"),
            date_to=parse_datetime_param(request.args.get("date_to"), "date_to", end_of_day=True),
            page=query_int("page", 1),
            per_page=query_int("per_page", order_service.DEFAULT_PER_PAGE),
        )
        return jsonify({
            "orders": [order.to_dict() for order in orders],
            "meta": meta,
        }), 200

    except TablePosError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to list orders")
        return error_response(InternalError())


@orders_bp.get("/<int:order_id>")
@require_auth
@require_role(*STAFF_ROLES)
def get_order_route(order_id: int):
    try:
        order = order_service.get_order(order_id)
        return jsonify(order.to_dict()), 200
    except TablePosError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to fetch order")
        return error_response(InternalError())


@orders_bp.patch("/<int:order_id>/status")
@require_auth
@require_role(*STAFF_ROLES)
def update_order_status_route(order_id: int):
    """
    Change an order's status.

    Request body:
    {
        "status": "preparing",
        "notes": "Started grill"  (optional)
    }
    """
    try:
        data = json_body()
        order = order_service.update_order_status(
            order_id,
            data.get("status"),
            user_id=g.actor.user_id,
            notes=clean_text(data.get("notes"), "notes", max_length=MAX_NOTES_LENGTH),
        )
        return jsonify(order.to_dict()), 200

    except TablePosError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to update order status")
        return error_response(InternalError())


@orders_bp.get("/<int:order_id>/history")
@require_auth
@require_role(*STAFF_ROLES)
def get_order_history_route(order_id: int):
    try:
        entries = order_service.get_order_status_history(order_id)
        return jsonify({"history": [entry.to_dict() for entry in entries]}), 200
    except TablePosError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to fetch order status history")
        return error_response(InternalError())
