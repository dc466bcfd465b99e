# Overview: Service-layer operations for orders; creation, status changes and aggregate reads.

"""
Order Lifecycle Service

WHY: An order ties together three things that must never disagree: its own
status and totals, the table it occupies, and its status history. Every
mutation here changes them in ONE transaction.

MONEY:
- All amounts are integer minor units
- unit_price is snapshotted from the catalog at creation
- tax_amount = subtotal * tax_rate / 100, rounded half-up to a minor unit
- total_amount = subtotal + tax_amount - discount_amount (discount is 0 at creation)

SIDE EFFECTS OUTSIDE THE TRANSACTION:
- Customer-facing order notifications are submitted to the dispatcher after
  commit; a failure there never affects the status change.
"""

from __future__ import annotations

import math
import secrets
from decimal import Decimal, ROUND_HALF_UP

from sqlalchemy.orm import joinedload, selectinload

from ..components import get_components
from ..errors import (
    EmptyOrder,
    InvalidStatus,
    OrderNotFound,
    ProductUnavailable,
    TableNotFound,
    ValidationError,
)
from ..extensions import db
from ..models import DiningTable, Order, OrderItem, OrderStatusHistory, Payment
from ..time_utils import utcnow
from ..validation import MAX_ITEM_QUANTITY
from .concurrency import begin_write, lock_for_update, run_with_retry
from .notification_service import ORDER_STATUS_MESSAGES
from .transition_policy import ORDER_STATUSES, STAFF_SETTABLE_STATUSES, TABLE_RELEASE_STATUSES


ORDER_TYPES = ("dine_in", "takeout", "delivery")

DEFAULT_PER_PAGE = 20
MAX_PER_PAGE = 100


def generate_order_number(now=None) -> str:
    """ORD<yyyymmdd>-<8 hex chars>; the random suffix makes collisions negligible."""
    now = now or utcnow()
    return f"ORD{now:%Y%m%d}-{secrets.token_hex(4).upper()}"


def compute_tax(subtotal: int, rate: Decimal) -> int:
    """Tax in minor units for a percentage rate, rounded half-up."""
    tax = (Decimal(subtotal) * Decimal(rate) / Decimal(100)).quantize(Decimal("1"), rounding=ROUND_HALF_UP)
    return int(tax)


def release_table(table_id: int | None) -> None:
    """Mark a table free. Runs inside the caller's transaction."""
    if table_id is None:
        return
    db.session.query(DiningTable).filter(DiningTable.id == table_id).update(
        {DiningTable.is_occupied: False}, synchronize_session="fetch"
    )


def _check_items(items: list[dict]) -> None:
    """
    Shape check for service callers that bypass the HTTP parser.

    Runs before the transaction so a bad line fails as a ValidationError
    instead of a constraint violation deep inside the write.
    """
    for item in items:
        if not isinstance(item, dict):
            raise ValidationError("each item must be an object", code="invalid_items")
        product_id = item.get("product_id")
        if isinstance(product_id, bool) or not isinstance(product_id, int) or product_id < 1:
            raise ValidationError("each item needs an integer product_id", code="invalid_items")
        quantity = item.get("quantity")
        if isinstance(quantity, bool) or not isinstance(quantity, int):
            raise ValidationError("quantity must be an integer", code="invalid_quantity")
        if quantity < 1 or quantity > MAX_ITEM_QUANTITY:
            raise ValidationError(
                f"quantity must be between 1 and {MAX_ITEM_QUANTITY}",
                code="invalid_quantity",
            )


def _aggregate_query():
    return db.session.query(Order).options(
        joinedload(Order.table),
        joinedload(Order.user),
        selectinload(Order.items).joinedload(OrderItem.product),
        selectinload(Order.payments).joinedload(Payment.processed_by_user),
    )


# =============================================================================
# CREATE
# =============================================================================

def create_order(
    *,
    items: list[dict],
    order_type: str,
    table_id: int | None = None,
    customer_name: str | None = None,
    notes: str | None = None,
    user_id: int | None = None,
) -> Order:
    """
    Create an order with its items in one transaction.

    Items: [{"product_id": int, "quantity": int, "special_instructions": str?}]

    Every product is resolved at call time; one missing or unavailable
    product rejects the whole order. For dine-in orders the table is marked
    occupied in the same transaction.

    Raises:
        EmptyOrder, ValidationError, TableNotFound, ProductUnavailable
    """
    if order_type not in ORDER_TYPES:
        raise ValidationError(
            f"order_type must be one of: {', '.join(ORDER_TYPES)}",
            code="invalid_order_type",
        )
    if not items:
        raise EmptyOrder()
    _check_items(items)
    if order_type == "dine_in" and table_id is None:
        raise ValidationError(
            "Table selection is required for dine-in orders",
            code="table_required_for_dine_in",
        )

    components = get_components()
    catalog = components.catalog
    settings = components.settings

    def _op():
        begin_write()

        table = None
        if table_id is not None:
            table = lock_for_update(db.session.query(DiningTable).filter_by(id=table_id)).first()
            if table is None:
                raise TableNotFound()

        lines = []
        subtotal = 0
        for item in items:
            product_id = item["product_id"]
            if not catalog.is_available(product_id):
                raise ProductUnavailable(
                    f"Product with ID '{product_id}' is not available",
                    details={"product_id": product_id},
                )
            unit_price = catalog.get_price(product_id)
            line_total = unit_price * item["quantity"]
            subtotal += line_total
            lines.append((item, unit_price, line_total))

        tax_amount = compute_tax(subtotal, settings.get_tax_rate())
        now = utcnow()

        order = Order(
            order_number=generate_order_number(now),
            table_id=table.id if table is not None else None,
            user_id=user_id,
            customer_name=customer_name,
            order_type=order_type,
            status="pending",
            subtotal=subtotal,
            tax_amount=tax_amount,
            discount_amount=0,
            total_amount=subtotal + tax_amount,
            notes=notes,
            created_at=now,
            updated_at=now,
        )
        for item, unit_price, line_total in lines:
            order.items.append(OrderItem(
                product_id=item["product_id"],
                quantity=item["quantity"],
                unit_price=unit_price,
                total_price=line_total,
                special_instructions=item.get("special_instructions"),
                created_at=now,
            ))
        db.session.add(order)

        if order_type == "dine_in" and table is not None:
            table.is_occupied = True

        db.session.commit()
        return order.id

    order_id = run_with_retry(_op, operation="create_order")
    return get_order(order_id)


# =============================================================================
# STATUS
# =============================================================================

def update_order_status(
    order_id: int,
    new_status: str,
    *,
    user_id: int | None = None,
    notes: str | None = None,
) -> Order:
    """
    Change an order's status.

    In one transaction: lock the order, apply the transition policy, write
    the status (stamping served_at / completed_at), append history, and
    release the table when the order becomes completed or cancelled.

    Raises:
        InvalidStatus: not a status staff can set
        OrderNotFound
        InvalidTransition: only under the strict policy
    """
    if new_status not in STAFF_SETTABLE_STATUSES:
        raise InvalidStatus()

    components = get_components()
    policy = components.transition_policy

    def _op():
        begin_write()
        order = lock_for_update(db.session.query(Order).filter_by(id=order_id)).first()
        if order is None:
            raise OrderNotFound()

        previous_status = order.status
        policy.check(previous_status, new_status)

        now = utcnow()
        order.status = new_status
        order.updated_at = now
        if new_status == "served":
            order.served_at = now
        elif new_status == "completed":
            order.completed_at = now

        db.session.add(OrderStatusHistory(
            order_id=order.id,
            previous_status=previous_status,
            new_status=new_status,
            changed_by=user_id,
            notes=notes,
            created_at=now,
        ))

        if new_status in TABLE_RELEASE_STATUSES:
            release_table(order.table_id)

        db.session.commit()

    run_with_retry(_op, operation="update_order_status")

    if new_status in ORDER_STATUS_MESSAGES:
        components.dispatcher.submit(components.notifications.notify_order_status, order_id, new_status)

    return get_order(order_id)


# =============================================================================
# READS
# =============================================================================

def get_order(order_id: int) -> Order:
    order = _aggregate_query().filter(Order.id == order_id).first()
    if order is None:
        raise OrderNotFound()
    return order


def list_orders(
    *,
    status: str | None = None,
    order_type: str | None = None,
    date_from=None,
    date_to=None,
    page: int = 1,
    per_page: int = DEFAULT_PER_PAGE,
) -> tuple[list[Order], dict]:
    """
    Paginated order list, newest first.

    Filters are applied as bound query parameters; date_from / date_to are
    inclusive bounds on created_at (UTC-naive datetimes).

    Returns:
        (orders, meta) where meta = {current_page, per_page, total, total_pages}
    """
    if status is not None and status not in ORDER_STATUSES:
        raise InvalidStatus()
    if order_type is not None and order_type not in ORDER_TYPES:
        raise ValidationError(
            f"order_type must be one of: {', '.join(ORDER_TYPES)}",
            code="invalid_order_type",
        )
    if page < 1:
        raise ValidationError("page must be at least 1", code="invalid_page")
    if per_page < 1 or per_page > MAX_PER_PAGE:
        raise ValidationError(f"per_page must be between 1 and {MAX_PER_PAGE}", code="invalid_per_page")

    filters = []
    if status is not None:
        filters.append(Order.status == status)
    if order_type is not None:
        filters.append(Order.order_type == order_type)
    if date_from is not None:
        filters.append(Order.created_at >= date_from)
    if date_to is not None:
        filters.append(Order.created_at <= date_to)

    total = db.session.query(db.func.count(Order.id)).filter(*filters).scalar() or 0
    orders = (
        _aggregate_query()
        .filter(*filters)
        .order_by(Order.created_at.desc(), Order.id.desc())
        .offset((page - 1) * per_page)
        .limit(per_page)
        .all()
    )

    meta = {
        "current_page": page,
        "per_page": per_page,
        "total": int(total),
        "total_pages": math.ceil(total / per_page) if total else 0,
    }
    return orders, meta


def get_order_status_history(order_id: int) -> list[OrderStatusHistory]:
    """Status history oldest first."""
    exists = db.session.query(Order.id).filter_by(id=order_id).first()
    if exists is None:
        raise OrderNotFound()
    return (
        db.session.query(OrderStatusHistory)
        .options(joinedload(OrderStatusHistory.changed_by_user))
        .filter(OrderStatusHistory.order_id == order_id)
        .order_by(OrderStatusHistory.created_at.asc(), OrderStatusHistory.id.asc())
        .all()
    )

