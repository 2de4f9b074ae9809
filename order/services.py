import logging
from typing import Optional

from django.utils import timezone

from .models import Order
from .status import ProviderEvent, Transition, transition

logger = logging.getLogger(__name__)


class OrderStatusConflict(Exception):
    """Raised when the order keeps changing under us."""


class OrderStatusService:

    MAX_ATTEMPTS = 3

    @staticmethod
    def apply(order_id: str, event: ProviderEvent) -> Optional[Transition]:
        """
        Drive ``order_id`` through the state machine for ``event``.

        The write is a compare-and-set on the status that was read, so a
        concurrent storefront write (cancel, confirm-received) is never
        overwritten with a transition computed from stale state.
        Returns None when the order does not exist.
        """
        for _ in range(OrderStatusService.MAX_ATTEMPTS):
            current = Order.objects.filter(id=order_id).values_list("status", flat=True).first()
            if current is None:
                logger.warning("Order not found for %s event status=%s order=%s", event.source, event.status, order_id)
                return None

            result = transition(current, event)
            writes = result.writes()
            if not writes:
                logger.info(
                    "Order status unchanged order=%s status=%s event=%s/%s",
                    order_id, current, event.source, event.status,
                )
                return result

            writes["updated_at"] = timezone.now()
            updated = Order.objects.filter(id=order_id, status=current).update(**writes)
            if updated:
                if result.changed:
                    logger.info("Order status %s -> %s order=%s", current, result.status, order_id)
                return result
            logger.info("Order status changed concurrently, re-reading order=%s", order_id)

        raise OrderStatusConflict(f"Could not apply {event.source} event to order {order_id}")
