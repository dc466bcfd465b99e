# Overview: Service-layer operations for the stock ledger; adjustments, stock views and history.

"""
Inventory Ledger Service

Stock model:
- One InventoryRecord per product holds current_stock; it is created lazily
  (stock 0, thresholds 10/100) on the first adjustment.
- Every adjustment appends an InventoryHistory row in the same transaction
  as the stock change. No history row exists for a rejected adjustment.

Business invariants:
- current_stock never goes below zero. A removal larger than the stock on
  hand fails with InsufficientStock and writes nothing.
- minimum_stock / maximum_stock are alert thresholds, not hard bounds.

Status semantics (derived, never stored):
- out: current_stock == 0
- low: current_stock < minimum_stock
- ok:  otherwise

Low-stock alerting happens after commit through the notification
dispatcher. A failed alert never rolls back or fails the adjustment.
"""

from __future__ import annotations

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import joinedload

from ..components import get_components
from ..errors import InsufficientStock, ProductNotFound, ValidationError
from ..extensions import db
from ..models import Category, InventoryHistory, InventoryRecord, Product
from ..models.inventory import DEFAULT_MAXIMUM_STOCK, DEFAULT_MINIMUM_STOCK
from ..time_utils import to_utc_z, utcnow
from .concurrency import begin_write, lock_for_update, run_with_retry


OPERATIONS = ("add", "remove")

ADJUSTMENT_REASONS = (
    "purchase",
    "sale",
    "spoilage",
    "manual_adjustment",
    "inventory_count",
    "return",
    "damage",
    "theft",
    "expired",
)

STATUS_PRIORITY = {"out": 0, "low": 1, "ok": 2}

HISTORY_LIMIT = 100

STOCK_UNIT = "pcs"


def stock_status(current_stock: int, minimum_stock: int) -> str:
    if current_stock == 0:
        return "out"
    if current_stock < minimum_stock:
        return "low"
    return "ok"


def _get_or_create_record(product_id: int) -> InventoryRecord:
    """
    Locked inventory row for a product, created at stock 0 if missing.

    A concurrent first adjustment may insert the row between our read and our
    insert; the savepoint lets us fall back to the winner's row.
    """
    query = db.session.query(InventoryRecord).filter_by(product_id=product_id)
    record = lock_for_update(query).first()
    if record is not None:
        return record

    record = InventoryRecord(
        product_id=product_id,
        current_stock=0,
        minimum_stock=DEFAULT_MINIMUM_STOCK,
        maximum_stock=DEFAULT_MAXIMUM_STOCK,
        unit_cost=0,
        created_at=utcnow(),
    )
    try:
        with db.session.begin_nested():
            db.session.add(record)
    except IntegrityError:
        record = lock_for_update(query).one()
    return record


# =============================================================================
# ADJUSTMENTS
# =============================================================================

def adjust_stock(
    product_id: int,
    *,
    operation: str,
    quantity: int,
    reason: str,
    notes: str | None = None,
    user_id: int | None = None,
) -> InventoryHistory:
    """
    Add or remove stock for a product.

    Steps 1-3 are all-or-nothing: load/create the record, apply the change,
    append history, commit. Only then is a low-stock alert scheduled.

    Returns:
        The InventoryHistory entry written for this adjustment.

    Raises:
        ValidationError: bad operation, quantity or reason
        ProductNotFound
        InsufficientStock: removal would take stock below zero
    """
    if operation not in OPERATIONS:
        raise ValidationError("Operation must be 'add' or 'remove'", code="invalid_operation")
    if quantity is None or quantity <= 0:
        raise ValidationError("quantity must be greater than 0", code="invalid_quantity")
    if reason not in ADJUSTMENT_REASONS:
        raise ValidationError("Invalid reason", code="invalid_reason")

    components = get_components()

    def _op():
        begin_write()
        product = components.catalog.get_product(product_id)
        if product is None:
            raise ProductNotFound()

        record = _get_or_create_record(product_id)
        previous_stock = record.current_stock

        if operation == "add":
            new_stock = previous_stock + quantity
        else:
            new_stock = previous_stock - quantity
            if new_stock < 0:
                raise InsufficientStock(
                    f"Insufficient stock. Current stock: {previous_stock}",
                    details={"current_stock": previous_stock, "requested": quantity},
                )

        now = utcnow()
        record.current_stock = new_stock
        record.last_restocked_at = now
        record.updated_at = now

        entry = InventoryHistory(
            product_id=product_id,
            operation=operation,
            quantity=quantity,
            previous_stock=previous_stock,
            new_stock=new_stock,
            reason=reason,
            notes=notes,
            adjusted_by=user_id,
            created_at=now,
        )
        db.session.add(entry)
        db.session.commit()
        return entry.id, product.name, new_stock, record.minimum_stock

    entry_id, product_name, new_stock, minimum_stock = run_with_retry(_op, operation="adjust_stock")

    if new_stock < minimum_stock:
        components.dispatcher.submit(
            components.notifications.notify_low_stock, product_name, new_stock, minimum_stock
        )

    return (
        db.session.query(InventoryHistory)
        .options(joinedload(InventoryHistory.adjusted_by_user))
        .filter(InventoryHistory.id == entry_id)
        .one()
    )


# =============================================================================
# STOCK VIEWS
# =============================================================================

def _stock_rows(*filters):
    return (
        db.session.query(Product, InventoryRecord, Category.name)
        .outerjoin(InventoryRecord, InventoryRecord.product_id == Product.id)
        .outerjoin(Category, Category.id == Product.category_id)
        .filter(*filters)
        .all()
    )


def _stock_item(product: Product, record: InventoryRecord | None, category_name: str | None) -> dict:
    """
    Stock view of a product. Products never adjusted report the defaults
    a lazily created record would get.
    """
    if record is None:
        current_stock, minimum_stock, maximum_stock, unit_cost = 0, DEFAULT_MINIMUM_STOCK, DEFAULT_MAXIMUM_STOCK, 0
        last_restocked = product.created_at
    else:
        current_stock = record.current_stock
        minimum_stock = record.minimum_stock
        maximum_stock = record.maximum_stock
        unit_cost = record.unit_cost or 0
        last_restocked = record.last_restocked_at or product.created_at

    return {
        "product_id": product.id,
        "product_name": product.name,
        "category_name": category_name,
        "current_stock": current_stock,
        "min_stock": minimum_stock,
        "max_stock": maximum_stock,
        "unit": STOCK_UNIT,
        "unit_cost": unit_cost,
        "total_value": current_stock * unit_cost,
        "last_restocked": to_utc_z(last_restocked),
        "price": product.price,
        "status": stock_status(current_stock, minimum_stock),
    }


def _sorted(items: list[dict]) -> list[dict]:
    return sorted(items, key=lambda item: (STATUS_PRIORITY[item["status"]], item["product_name"], item["product_id"]))


def get_inventory() -> list[dict]:
    """Stock of every available product, out first, then low, then ok; by name within."""
    rows = _stock_rows(Product.is_available.is_(True))
    return _sorted([_stock_item(product, record, category) for product, record, category in rows])


def get_low_stock() -> list[dict]:
    """Available products that are out of stock or below their minimum."""
    return [item for item in get_inventory() if item["status"] != "ok"]


def get_product_inventory(product_id: int) -> dict:
    rows = _stock_rows(Product.id == product_id)
    if not rows:
        raise ProductNotFound()
    product, record, category = rows[0]
    return _stock_item(product, record, category)


def get_stock_history(product_id: int, limit: int = HISTORY_LIMIT) -> list[InventoryHistory]:
    """Latest adjustments for a product, newest first."""
    if db.session.get(Product, product_id) is None:
        raise ProductNotFound()
    return (
        db.session.query(InventoryHistory)
        .options(joinedload(InventoryHistory.adjusted_by_user))
        .filter(InventoryHistory.product_id == product_id)
        .order_by(InventoryHistory.created_at.desc(), InventoryHistory.id.desc())
        .limit(limit)
        .all()
    )
