from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z


DEFAULT_MINIMUM_STOCK = 10
DEFAULT_MAXIMUM_STOCK = 100


class InventoryRecord(db.Model):
    """
    Current stock level for one product.

    WHY a mutable counter: the kitchen needs an O(1) read of what is on hand;
    the full audit trail lives in InventoryHistory, written in the same
    transaction as every change to current_stock.

    INVARIANT: current_stock >= 0 (also enforced by a CHECK constraint).
    minimum_stock / maximum_stock are alert thresholds, not hard bounds.
    Created lazily (stock 0) on the first adjustment for a product.
    """
    __tablename__ = "inventory"
    __table_args__ = (
        db.CheckConstraint("current_stock >= 0", name="ck_inventory_stock_non_negative"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, unique=True)

    current_stock = db.Column(db.Integer, nullable=False, default=0)
    minimum_stock = db.Column(db.Integer, nullable=False, default=DEFAULT_MINIMUM_STOCK)
    maximum_stock = db.Column(db.Integer, nullable=False, default=DEFAULT_MAXIMUM_STOCK)

    # Minor units per piece
    unit_cost = db.Column(db.Integer, nullable=False, default=0)

    last_restocked_at = db.Column(db.DateTime(timezone=True), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=True)

    version_id = db.Column(db.Integer, nullable=False, default=1)

    product = db.relationship("Product", backref=db.backref("inventory", uselist=False, lazy=True))
    __mapper_args__ = {"version_id_col": version_id}

    def __repr__(self) -> str:
        return f"<InventoryRecord product_id={self.product_id} stock={self.current_stock}>"


class InventoryHistory(db.Model):
    """
    Append-only ledger of stock movements.

    IMMUTABLE: Records are never updated or deleted.
    adjusted_by is NULL for system-initiated movements.
    """
    __tablename__ = "inventory_history"
    __table_args__ = (
        db.Index("ix_inventory_history_product_created", "product_id", "created_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)

    operation = db.Column(db.String(16), nullable=False)  # add, remove
    quantity = db.Column(db.Integer, nullable=False)
    previous_stock = db.Column(db.Integer, nullable=False)
    new_stock = db.Column(db.Integer, nullable=False)

    reason = db.Column(db.String(32), nullable=False)
    notes = db.Column(db.String(500), nullable=True)

    adjusted_by = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    adjusted_by_user = db.relationship("User")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "operation": self.operation,
            "quantity": self.quantity,
            "previous_stock": self.previous_stock,
            "new_stock": self.new_stock,
            "reason": self.reason,
            "notes": self.notes or "",
            "adjusted_by": self.adjusted_by_user.username if self.adjusted_by_user else "System",
            "created_at": to_utc_z(self.created_at),
        }
