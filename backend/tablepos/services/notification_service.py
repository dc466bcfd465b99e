# Overview: Staff and customer notifications written outside the main business transaction.

"""
Notification Gateway

WHY: Low stock and order progress have to reach people, but delivering a
notification is never allowed to fail the business operation that caused it.
Callers submit these methods to the NotificationDispatcher after their own
commit, so everything here runs in its own short transaction.

DELIVERY:
- Low stock: one inbox row per active manager/admin
- Order progress: one row in order_notifications for the tracking screen
"""

from __future__ import annotations

from flask import current_app

from ..extensions import db
from ..models import Notification, OrderNotification, User
from ..time_utils import utcnow


LOW_STOCK_RECIPIENT_ROLES = ("manager", "admin")

ORDER_STATUS_MESSAGES = {
    "preparing": "Your order is now being prepared in the kitchen.",
    "ready": "Your order is ready for pickup! Please proceed to the counter.",
    "completed": "Your order has been completed. Thank you for dining with us!",
}


class NotificationGateway:
    def __init__(self, recipient_roles=LOW_STOCK_RECIPIENT_ROLES):
        self.recipient_roles = tuple(recipient_roles)

    def notify_low_stock(self, name: str, current: int, minimum: int) -> int:
        """
        Fan a low-stock alert out to every active manager/admin.

        Returns the number of notifications written.
        """
        current_app.logger.warning(
            "LOW_STOCK: product=%s current=%s minimum=%s", name, current, minimum
        )
        recipients = (
            db.session.query(User.id)
            .filter(User.role.in_(self.recipient_roles), User.is_active.is_(True))
            .order_by(User.id.asc())
            .all()
        )
        message = f"{name} has {current} left (minimum: {minimum})"
        now = utcnow()
        for (user_id,) in recipients:
            db.session.add(Notification(
                user_id=user_id,
                type="inventory",
                title="Low stock",
                message=message,
                created_at=now,
            ))
        db.session.commit()
        return len(recipients)

    def notify_order_status(self, order_id: int, status: str) -> bool:
        """Write the customer-facing message for a status, if it has one."""
        message = ORDER_STATUS_MESSAGES.get(status)
        if message is None:
            return False
        db.session.add(OrderNotification(
            order_id=order_id,
            status=status,
            message=message,
            created_at=utcnow(),
        ))
        db.session.commit()
        return True
