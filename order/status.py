"""
Order status state machine.

    pending -> paid -> shipped -> completed
       |                  |
       +---> cancelled <--+   (payment expiry/failure, shipment cancellation)

``completed`` and ``cancelled`` are terminal. ``transition`` is pure: it
takes the order's current status and a provider event and returns the new
status plus the writes to apply. Persisting is ``OrderStatusService``'s job.
"""
from dataclasses import dataclass, field
from typing import Any, Dict, Optional, Tuple

from .models import Order

PAYMENT = "payment"
SHIPMENT = "shipment"

PAYMENT_SUCCESS_STATUSES = frozenset({"PAID", "SETTLED"})
PAYMENT_FAILURE_STATUSES = frozenset({"EXPIRED", "FAILED"})
PAYMENT_TERMINAL_STATUSES = PAYMENT_SUCCESS_STATUSES | PAYMENT_FAILURE_STATUSES

SHIPMENT_DELIVERED = "DELIVERED"
SHIPMENT_CANCELLED = "CANCELLED"
SHIPMENT_IN_FLIGHT_STATUSES = frozenset(
    {
        "CREATED",
        "CONFIRMED",
        "ALLOCATED",
        "PICKING_UP",
        "PICKUP",
        "PICKED_UP",
        "PICKED",
        "TRANSIT",
        "IN_TRANSIT",
        "ON_DELIVERY",
        "OUT_FOR_DELIVERY",
        "RETURN_IN_TRANSIT",
        "RETURNED",
        "ON_HOLD",
        "FAILED",
    }
)

PENDING = Order.Status.PENDING.value
PAID = Order.Status.PAID.value
SHIPPED = Order.Status.SHIPPED.value
COMPLETED = Order.Status.COMPLETED.value
CANCELLED = Order.Status.CANCELLED.value

TERMINAL_STATES = frozenset({COMPLETED, CANCELLED})

# Forward-only ordering for the happy path.
_RANK = {PENDING: 0, PAID: 1, SHIPPED: 2, COMPLETED: 3}

SET_STATUS = "set_status"
RECORD_TRACKING = "record_tracking"


@dataclass(frozen=True)
class ProviderEvent:
    source: str
    status: str
    courier: str = ""
    tracking_number: str = ""


@dataclass(frozen=True)
class SideEffect:
    kind: str
    fields: Dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class Transition:
    previous: str
    status: str
    effects: Tuple[SideEffect, ...] = ()

    @property
    def changed(self) -> bool:
        return self.previous != self.status

    def writes(self) -> Dict[str, Any]:
        merged: Dict[str, Any] = {}
        for effect in self.effects:
            merged.update(effect.fields)
        return merged


def is_known_shipment_status(status: str) -> bool:
    return status in SHIPMENT_IN_FLIGHT_STATUSES or status in {SHIPMENT_DELIVERED, SHIPMENT_CANCELLED}


def target_status(event: ProviderEvent) -> Optional[str]:
    status = (event.status or "").upper()
    if event.source == PAYMENT:
        if status in PAYMENT_SUCCESS_STATUSES:
            return PAID
        if status in PAYMENT_FAILURE_STATUSES:
            return CANCELLED
        return None
    if event.source == SHIPMENT:
        if status == SHIPMENT_DELIVERED:
            return COMPLETED
        if status == SHIPMENT_CANCELLED:
            return CANCELLED
        # Unrecognised carrier statuses count as in transit.
        return SHIPPED
    return None


def _allowed(current: str, target: str, source: str) -> bool:
    if current in TERMINAL_STATES or current == target:
        return False
    if target == CANCELLED:
        return current == PENDING or source == SHIPMENT
    return _RANK.get(target, -1) > _RANK.get(current, -1)


def transition(current: str, event: ProviderEvent) -> Transition:
    effects = []
    target = target_status(event)
    new_status = current
    if target is not None and _allowed(current, target, event.source):
        new_status = target
        effects.append(SideEffect(SET_STATUS, {"status": target}))

    if event.source == SHIPMENT:
        effects.append(
            SideEffect(
                RECORD_TRACKING,
                {
                    "shipping_courier": event.courier or None,
                    "tracking_number": event.tracking_number or None,
                },
            )
        )
    return Transition(previous=current, status=new_status, effects=tuple(effects))
