# Overview: Flask API routes for inventory operations; parses input and returns JSON responses.

from flask import Blueprint, current_app, g, jsonify

from ..errors import TablePosError, InternalError, error_response
from ..decorators import require_auth, require_role
from ..services import inventory_service
from ..validation import MAX_NOTES_LENGTH, clean_text, json_body, parse_int


inventory_bp = Blueprint("inventory", __name__, url_prefix="/api/inventory")

INVENTORY_ROLES = ("manager", "admin")


@inventory_bp.get("")
@require_auth
@require_role(*INVENTORY_ROLES)
def get_inventory_route():
    """Stock levels of every available product (out, then low, then ok)."""
    try:
        return jsonify({"items": inventory_service.get_inventory()}), 200
    except TablePosError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to fetch inventory")
        return error_response(InternalError())


@inventory_bp.get("/low-stock")
@require_auth
@require_role(*INVENTORY_ROLES)
def get_low_stock_route():
    try:
        return jsonify({"items": inventory_service.get_low_stock()}), 200
    except TablePosError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to fetch low stock items")
        return error_response(InternalError())


@inventory_bp.get("/<int:product_id>")
@require_auth
@require_role(*INVENTORY_ROLES)
def get_product_inventory_route(product_id: int):
    try:
        return jsonify(inventory_service.get_product_inventory(product_id)), 200
    except TablePosError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to fetch product inventory")
        return error_response(InternalError())


@inventory_bp.get("/<int:product_id>/history")
@require_auth
@require_role(*INVENTORY_ROLES)
def get_stock_history_route(product_id: int):
    """Latest 100 stock movements for a product, newest first."""
    try:
        entries = inventory_service.get_stock_history(product_id)
        return jsonify({"history": [entry.to_dict() for entry in entries]}), 200
    except TablePosError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to fetch stock history")
        return error_response(InternalError())


@inventory_bp.post("/adjust")
@require_auth
@require_role(*INVENTORY_ROLES)
def adjust_stock_route():
    """
    Add or remove stock.

    Request body:
    {
        "product_id": 1,
        "operation": "add" | "remove",
        "quantity": 5,
        "reason": "purchase",
        "notes": "Weekly delivery"  (optional)
    }

    REASONS: purchase, sale, spoilage, manual_adjustment, inventory_count,
    return, damage, theft, expired

    Returns:
        200: The adjustment (previous_stock / new_stock)
        400: Invalid input
        404: Product not found
        409: Insufficient stock
    """
    try:
        data = json_body()
        entry = inventory_service.adjust_stock(
            parse_int(data.get("product_id"), "product_id", minimum=1),
            operation=data.get("operation"),
            quantity=parse_int(data.get("quantity"), "quantity"),
            reason=data.get("reason"),
            notes=clean_text(data.get("notes"), "notes", max_length=MAX_NOTES_LENGTH),
            user_id=g.actor.user_id,
        )
        body = entry.to_dict()
        body["product_id"] = entry.product_id
        return jsonify(body), 200

    except TablePosError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to adjust stock")
        return error_response(InternalError())
