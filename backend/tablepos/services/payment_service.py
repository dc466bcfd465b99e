# Overview: Service-layer operations for payments; staff and customer payment flows plus summaries.

"""
Payment Processing Service

WHY: Orders are paid in one or more payments (split bills, partial cash).
The ledger of payments must never exceed the order total, and the order must
reach its paid/completed state exactly once.

DESIGN:
- Payments are settled synchronously: every inserted payment is "completed"
- The order row is locked for the whole read-check-insert sequence, so two
  concurrent payments can never both see the same remaining balance
- The order completion (status, completed_at, table release, history) is in
  the SAME transaction as the payment that completes it

FRAUD HEURISTICS (staff payments):
- Hard ceiling per payment: blocks (AmountExceedsLimit)
- Velocity per staff member: blocks (RateLimitExceeded)
- Repeated failed payments: logged only

All blocking decisions are logged with a FRAUD_ALERT prefix.
"""

from __future__ import annotations

from datetime import timedelta

from flask import current_app
from sqlalchemy import case, func
from sqlalchemy.orm import joinedload

from ..components import get_components
from ..errors import (
    AmountExceedsBalance,
    AmountExceedsLimit,
    BalanceMismatch,
    ForbiddenCrossTable,
    InvalidAmount,
    InvalidOrderStatus,
    InvalidPaymentMethod,
    OrderFullyPaid,
    OrderNotFound,
    RateLimitExceeded,
    UnauthenticatedError,
)
from ..extensions import db
from ..models import Order, OrderStatusHistory, Payment
from ..time_utils import utcnow
from .concurrency import begin_write, lock_for_update, run_with_retry
from .order_service import release_table


PAYMENT_METHODS = ("cash", "credit_card", "debit_card", "digital_wallet")

# Orders in these statuses accept no further payments
UNPAYABLE_STATUSES = ("cancelled", "completed")


def _validate_payment_input(payment_method: str, amount: int) -> None:
    if payment_method not in PAYMENT_METHODS:
        raise InvalidPaymentMethod()
    if amount is None or amount <= 0:
        raise InvalidAmount()


def _completed_total(order_id: int) -> int:
    total = (
        db.session.query(func.coalesce(func.sum(Payment.amount), 0))
        .filter(Payment.order_id == order_id, Payment.status == "completed")
        .scalar()
    )
    return int(total or 0)


def _lock_order(order_id: int) -> Order:
    order = lock_for_update(db.session.query(Order).filter_by(id=order_id)).first()
    if order is None:
        raise OrderNotFound()
    return order


def _check_velocity(user_id: int) -> None:
    """
    Block staff members who submit payments faster than the configured rate.

    Counts the actor's payments in the trailing window straight from the
    payments table, so the check holds across processes.
    """
    config = current_app.config
    limit = int(config["PAYMENT_RATE_LIMIT"])
    window = int(config["PAYMENT_RATE_WINDOW_SECONDS"])
    since = utcnow() - timedelta(seconds=window)

    recent = (
        db.session.query(func.count(Payment.id))
        .filter(Payment.processed_by == user_id, Payment.created_at > since)
        .scalar()
    ) or 0
    if recent >= limit:
        current_app.logger.warning(
            "FRAUD_ALERT: Rate limit exceeded - User: %s, Payments in last %ss: %s",
            user_id, window, recent,
        )
        raise RateLimitExceeded(
            "Too many payment attempts. Please wait a moment before trying again.",
            retry_after=window,
        )


def _check_failed_pattern(user_id: int) -> None:
    """Advisory only: repeated failures are logged, never blocked."""
    config = current_app.config
    threshold = int(config["FAILED_PAYMENT_ALERT_THRESHOLD"])
    since = utcnow() - timedelta(seconds=int(config["FAILED_PAYMENT_WINDOW_SECONDS"]))

    failed = (
        db.session.query(func.count(Payment.id))
        .filter(
            Payment.processed_by == user_id,
            Payment.status == "failed",
            Payment.created_at > since,
        )
        .scalar()
    ) or 0
    if failed >= threshold:
        current_app.logger.warning(
            "FRAUD_ALERT: Multiple failed payments - User: %s, Failed attempts: %s",
            user_id, failed,
        )


def _load_payment(payment_id: int) -> Payment:
    return (
        db.session.query(Payment)
        .options(joinedload(Payment.processed_by_user))
        .filter(Payment.id == payment_id)
        .one()
    )


# =============================================================================
# STAFF PAYMENTS
# =============================================================================

def process_payment(
    order_id: int,
    *,
    user_id: int | None,
    payment_method: str,
    amount: int,
    reference_number: str | None = None,
) -> Payment:
    """
    Record a staff-initiated payment (partial payments allowed).

    WORKFLOW:
    1. Validate method, amount > 0, amount <= MAX_PAYMENT_AMOUNT
    2. Velocity check on the staff member (blocks)
    3. Failed-payment pattern check (logs only)
    4. One transaction: lock order, check status and balance, insert payment,
       complete the order if this payment covers the remaining balance

    Raises:
        UnauthenticatedError, InvalidPaymentMethod, InvalidAmount,
        AmountExceedsLimit, RateLimitExceeded, OrderNotFound,
        InvalidOrderStatus, OrderFullyPaid, AmountExceedsBalance
    """
    if user_id is None:
        raise UnauthenticatedError()
    _validate_payment_input(payment_method, amount)

    max_amount = int(current_app.config["MAX_PAYMENT_AMOUNT"])
    if amount > max_amount:
        current_app.logger.warning(
            "FRAUD_ALERT: Suspicious large payment attempt - User: %s, Amount: %s",
            user_id, amount,
        )
        raise AmountExceedsLimit(details={"max_amount": max_amount})

    _check_velocity(user_id)
    _check_failed_pattern(user_id)

    def _op():
        begin_write()
        order = _lock_order(order_id)

        if order.status in UNPAYABLE_STATUSES:
            raise InvalidOrderStatus(f"Order cannot be paid - order is {order.status}")

        total_paid = _completed_total(order.id)
        if total_paid >= order.total_amount:
            raise OrderFullyPaid()

        remaining = order.total_amount - total_paid
        if amount > remaining:
            raise AmountExceedsBalance(details={"remaining_amount": remaining})

        now = utcnow()
        payment = Payment(
            order_id=order.id,
            payment_method=payment_method,
            amount=amount,
            reference_number=reference_number,
            status="completed",
            processed_by=user_id,
            processed_at=now,
            created_at=now,
        )
        db.session.add(payment)

        # Idempotent completion: only the payment that closes the balance completes the order
        completed = total_paid + amount >= order.total_amount
        if completed:
            previous_status = order.status
            order.status = "completed"
            order.completed_at = now
            order.updated_at = now
            release_table(order.table_id)
            db.session.add(OrderStatusHistory(
                order_id=order.id,
                previous_status=previous_status,
                new_status="completed",
                changed_by=user_id,
                notes="Order completed after payment",
                created_at=now,
            ))

        db.session.commit()
        return payment.id, completed

    payment_id, completed = run_with_retry(_op, operation="process_payment")
    if completed:
        components = get_components()
        components.dispatcher.submit(components.notifications.notify_order_status, order_id, "completed")
    return _load_payment(payment_id)


# =============================================================================
# CUSTOMER (QR) PAYMENTS
# =============================================================================

def create_customer_payment(
    order_id: int,
    *,
    payment_method: str,
    amount: int,
    reference_number: str | None = None,
    table_id: int | None = None,
) -> Payment:
    """
    Record a self-service payment from a table's QR session.

    Customers pay the exact remaining balance in one go; partial and
    over-payments are rejected. table_id comes from the client's X-Table-ID
    header and, when present, must match the order's table.

    On success the order moves to "paid" and its table is released.

    Raises:
        InvalidPaymentMethod, InvalidAmount, OrderNotFound, ForbiddenCrossTable,
        InvalidOrderStatus, OrderFullyPaid, BalanceMismatch
    """
    _validate_payment_input(payment_method, amount)

    def _op():
        begin_write()
        order = _lock_order(order_id)

        if order.table_id is not None and table_id is not None and order.table_id != table_id:
            current_app.logger.warning(
                "AUTHORIZATION_ALERT: Cross-table payment attempt - Order table: %s, Request table: %s",
                order.table_id, table_id,
            )
            raise ForbiddenCrossTable()

        if order.status in UNPAYABLE_STATUSES:
            raise InvalidOrderStatus(f"Cannot pay for {order.status} order")

        total_paid = _completed_total(order.id)
        if total_paid >= order.total_amount:
            raise OrderFullyPaid()

        remaining = order.total_amount - total_paid
        if amount != remaining:
            raise BalanceMismatch(details={"required_amount": remaining, "provided_amount": amount})

        now = utcnow()
        payment = Payment(
            order_id=order.id,
            payment_method=payment_method,
            amount=amount,
            reference_number=reference_number,
            status="completed",
            processed_at=now,
            created_at=now,
        )
        db.session.add(payment)

        previous_status = order.status
        order.status = "paid"
        order.updated_at = now
        release_table(order.table_id)
        db.session.add(OrderStatusHistory(
            order_id=order.id,
            previous_status=previous_status,
            new_status="paid",
            notes=f"Customer paid via {payment_method}",
            created_at=now,
        ))

        db.session.commit()
        return payment.id

    payment_id = run_with_retry(_op, operation="create_customer_payment")
    return _load_payment(payment_id)


# =============================================================================
# READS
# =============================================================================

def get_order_payments(order_id: int) -> list[Payment]:
    """All payments for an order, newest first."""
    exists = db.session.query(Order.id).filter_by(id=order_id).first()
    if exists is None:
        raise OrderNotFound()
    return (
        db.session.query(Payment)
        .options(joinedload(Payment.processed_by_user))
        .filter(Payment.order_id == order_id)
        .order_by(Payment.created_at.desc(), Payment.id.desc())
        .all()
    )


def get_payment_summary(order_id: int) -> dict:
    """
    Balance view of an order.

    Only completed payments count towards total_paid; pending payments are
    reported separately and do not reduce remaining_amount.
    """
    row = (
        db.session.query(
            Order.total_amount,
            func.coalesce(func.sum(case((Payment.status == "completed", Payment.amount), else_=0)), 0),
            func.coalesce(func.sum(case((Payment.status == "pending", Payment.amount), else_=0)), 0),
            func.count(Payment.id),
        )
        .outerjoin(Payment, Payment.order_id == Order.id)
        .filter(Order.id == order_id)
        .group_by(Order.id, Order.total_amount)
        .first()
    )
    if row is None:
        raise OrderNotFound()

    total_amount, total_paid, pending_amount, payment_count = row
    total_amount = int(total_amount)
    total_paid = int(total_paid)
    remaining = total_amount - total_paid
    return {
        "order_id": order_id,
        "total_amount": total_amount,
        "total_paid": total_paid,
        "pending_amount": int(pending_amount),
        "remaining_amount": remaining,
        "is_fully_paid": remaining <= 0,
        "payment_count": int(payment_count),
    }
