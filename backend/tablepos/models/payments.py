from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z


class Payment(db.Model):
    """
    Payment against an order.

    WHY: Orders can be split across several payments (partial payments,
    split bills). Each payment is its own row.

    METHODS: cash, credit_card, debit_card, digital_wallet
    STATUS: completed, pending, failed

    INVARIANT: sum(amount of completed payments) <= order.total_amount.
    processed_by is NULL for customer self-service payments.
    """
    __tablename__ = "payments"
    __table_args__ = (
        db.CheckConstraint("amount > 0", name="ck_payments_amount_positive"),
        db.Index("ix_payments_order_status", "order_id", "status"),
        db.Index("ix_payments_processed_by_created", "processed_by", "created_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    order_id = db.Column(db.Integer, db.ForeignKey("orders.id"), nullable=False, index=True)

    payment_method = db.Column(db.String(32), nullable=False)
    amount = db.Column(db.Integer, nullable=False)
    reference_number = db.Column(db.String(100), nullable=True)
    status = db.Column(db.String(16), nullable=False, default="completed", index=True)

    processed_by = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    processed_at = db.Column(db.DateTime(timezone=True), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), index=True)

    order = db.relationship("Order", back_populates="payments")
    processed_by_user = db.relationship("User")

    def to_dict(self) -> dict:
        data = {
            "id": self.id,
            "order_id": self.order_id,
            "payment_method": self.payment_method,
            "amount": self.amount,
            "reference_number": self.reference_number,
            "status": self.status,
            "processed_by": self.processed_by,
            "processed_at": to_utc_z(self.processed_at),
            "created_at": to_utc_z(self.created_at),
        }
        if self.processed_by_user is not None:
            data["processed_by_user"] = self.processed_by_user.to_summary()
        return data
