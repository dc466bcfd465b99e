# Overview: Order status vocabulary and the pluggable transition rules.

"""
Order Status Transitions

STATES:
pending -> confirmed -> preparing -> ready -> served -> completed
cancelled: from any non-terminal state
paid: set only by customer self-payment

completed and cancelled are terminal.

Staff status updates historically accepted any known status from any current
status (kitchen staff use it to correct mistakes). That behaviour is the
default PermissiveTransitionPolicy. StrictTransitionPolicy enforces the graph
above and is selected with ORDER_TRANSITION_POLICY=strict.
"""

from __future__ import annotations

from ..errors import InvalidTransition


ORDER_STATUSES = ("pending", "confirmed", "preparing", "ready", "served", "completed", "cancelled", "paid")

# Statuses staff may set through a status update; "paid" is reserved for customer payment
STAFF_SETTABLE_STATUSES = ("pending", "confirmed", "preparing", "ready", "served", "completed", "cancelled")

TERMINAL_STATUSES = frozenset({"completed", "cancelled"})

# Statuses that free the table
TABLE_RELEASE_STATUSES = frozenset({"completed", "cancelled", "paid"})

STRICT_TRANSITIONS = {
    "pending": frozenset({"confirmed", "cancelled", "paid"}),
    "confirmed": frozenset({"preparing", "cancelled", "paid"}),
    "preparing": frozenset({"ready", "cancelled", "paid"}),
    "ready": frozenset({"served", "cancelled", "paid"}),
    "served": frozenset({"completed", "cancelled", "paid"}),
    "paid": frozenset({"completed"}),
    "completed": frozenset(),
    "cancelled": frozenset(),
}


class StatusTransitionPolicy:
    name = "base"

    def is_allowed(self, current: str, new: str) -> bool:
        raise NotImplementedError

    def check(self, current: str, new: str) -> None:
        if not self.is_allowed(current, new):
            raise InvalidTransition(
                f"Cannot change order status from '{current}' to '{new}'",
                details={"from": current, "to": new},
            )


class PermissiveTransitionPolicy(StatusTransitionPolicy):
    """Any known status from any current status."""
    name = "permissive"

    def is_allowed(self, current: str, new: str) -> bool:
        return new in ORDER_STATUSES


class StrictTransitionPolicy(StatusTransitionPolicy):
    name = "strict"

    def __init__(self, transitions=None):
        self.transitions = transitions or STRICT_TRANSITIONS

    def is_allowed(self, current: str, new: str) -> bool:
        return new in self.transitions.get(current, frozenset())


def transition_policy_for(name: str | None) -> StatusTransitionPolicy:
    if (name or "permissive").strip().lower() == "strict":
        return StrictTransitionPolicy()
    return PermissiveTransitionPolicy()
