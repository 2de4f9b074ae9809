from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, Optional

from django.db import DatabaseError, transaction
from django.db.models import F
from django.utils import timezone
from django.utils.dateparse import parse_datetime

from core.payloads import Field, as_decimal, as_text, extract, strip_prefix, upper_text
from core.persistence import upsert_by_external_key
from order.services import OrderStatusConflict, OrderStatusService
from order.status import (
    PAYMENT,
    PAYMENT_FAILURE_STATUSES,
    PAYMENT_SUCCESS_STATUSES,
    PAYMENT_TERMINAL_STATUSES,
    ProviderEvent,
    Transition,
)
from payment.models import Payment, PaymentEvent

logger = logging.getLogger(__name__)


# Xendit invoice callback, first non-empty source wins.
INVOICE_CALLBACK_FIELDS = (
    Field("external_id", ("id", "external_id"), default="", transform=as_text),
    Field("order_id", ("external_id",), transform=strip_prefix("order-")),
    Field("status", ("status",), default="", transform=upper_text),
    Field("amount", ("amount", "paid_amount"), transform=as_decimal),
    Field("currency", ("currency",), default="IDR", transform=upper_text),
    Field("invoice_url", ("invoice_url",), transform=as_text),
    Field("payment_method", ("payment_method", "payment_method_type"), transform=as_text),
    Field("payment_channel", ("payment_channel", "bank_code", "ewallet_type", "retail_outlet_name"), transform=as_text),
    Field("failure_code", ("failure_code", "failure_reason"), transform=as_text),
    Field("failure_message", ("failure_message", "failure_description"), transform=as_text),
    Field("paid_at", ("paid_at",), transform=as_text),
)

_OPTIONAL_PAYMENT_FIELDS = (
    "amount",
    "invoice_url",
    "payment_method",
    "payment_channel",
    "failure_code",
    "failure_message",
)


def _payment_status_may_change(current: Optional[str], new: Optional[str]) -> bool:
    """PENDING moves anywhere, PAID only settles, the rest are final."""
    if not new:
        return False
    if current in (None, "", Payment.Status.PENDING) or new == current:
        return True
    return current == Payment.Status.PAID and new == Payment.Status.SETTLED


@dataclass(frozen=True)
class ReconcileResult:
    payment_id: Optional[str]
    status: str
    order_id: Optional[str]
    duplicate: bool = False
    transition: Optional[Transition] = None


class PaymentWebhookReconciler:
    """
    Applies one Xendit invoice callback to local state.

    Steps run independently: the payment upsert, the event append and the
    order transition each commit (or fail) on their own, and a failure is
    logged rather than raised so the provider is not pushed into retries.
    """

    provider = "xendit"

    def reconcile(self, payload: Dict[str, Any], headers: Optional[Dict[str, str]] = None) -> ReconcileResult:
        headers = headers or {}
        fields = extract(payload, INVOICE_CALLBACK_FIELDS)
        external_id = fields["external_id"]
        status = fields["status"]
        received_at = timezone.now()

        payment = self._upsert_payment(fields, headers, received_at)
        order_id = fields["order_id"] or (str(payment.order_id) if payment and payment.order_id else None)

        if payment is None:
            return ReconcileResult(payment_id=None, status=status, order_id=order_id)

        event = self._append_event(payment, fields, payload, headers, received_at)
        if event is not None and event.processed:
            logger.info("Duplicate Xendit callback ignored: id=%s status=%s", external_id, status)
            return ReconcileResult(payment_id=str(payment.id), status=status, order_id=order_id, duplicate=True)

        result = None
        if order_id and status in PAYMENT_TERMINAL_STATUSES:
            result = self._drive_order(order_id, status)

        if event is not None and (result is not None or status not in PAYMENT_TERMINAL_STATUSES or not order_id):
            self._mark_processed(event)

        return ReconcileResult(
            payment_id=str(payment.id),
            status=status,
            order_id=order_id,
            transition=result,
        )

    # -----------------------------
    # Steps
    # -----------------------------
    def _upsert_payment(self, fields: Dict[str, Any], headers: Dict[str, str], received_at: datetime) -> Optional[Payment]:
        external_id = fields["external_id"]
        status = fields["status"]
        values: Dict[str, Any] = {
            "status": status or None,
            "currency": fields["currency"],
            "webhook_received_at": received_at,
            "webhook_headers": headers,
        }
        for name in _OPTIONAL_PAYMENT_FIELDS:
            if fields[name] not in (None, ""):
                values[name] = fields[name]

        try:
            payment, created = upsert_by_external_key(
                Payment,
                key_field="session_id",
                key_value=external_id or None,
                external_id=external_id,
                values=values,
                create_only={"order_id": fields["order_id"] or None, "provider": self.provider},
                write_once=self._terminal_timestamps(status, fields.get("paid_at"), received_at),
                guards={"status": _payment_status_may_change},
            )
        except DatabaseError:
            logger.exception("Failed to upsert payment for Xendit callback id=%s", external_id)
            return None

        logger.info(
            "Payment %s from Xendit callback: id=%s status=%s",
            "created" if created else "updated", external_id, status,
        )
        return payment

    @staticmethod
    def _terminal_timestamps(status: str, provider_paid_at: Optional[str], received_at: datetime) -> Dict[str, Any]:
        if status in PAYMENT_SUCCESS_STATUSES:
            try:
                paid_at = parse_datetime(provider_paid_at) if provider_paid_at else None
            except ValueError:
                paid_at = None
            return {"paid_at": paid_at or received_at}
        if status == Payment.Status.EXPIRED:
            return {"expired_at": received_at}
        if status in PAYMENT_FAILURE_STATUSES:
            return {"failed_at": received_at}
        return {}

    @staticmethod
    def _append_event(
        payment: Payment,
        fields: Dict[str, Any],
        payload: Dict[str, Any],
        headers: Dict[str, str],
        received_at: datetime,
    ) -> Optional[PaymentEvent]:
        try:
            with transaction.atomic():
                event, created = PaymentEvent.objects.get_or_create(
                    payment=payment,
                    external_id=fields["external_id"] or None,
                    event_type=fields["status"],
                    defaults={"payload": payload, "headers": headers, "received_at": received_at},
                )
                PaymentEvent.objects.filter(pk=event.pk).update(processing_attempts=F("processing_attempts") + 1)
        except DatabaseError:
            logger.exception("Failed to append payment event for payment=%s", payment.id)
            return None
        if not created:
            logger.info("Payment event redelivered: payment=%s status=%s", payment.id, fields["status"])
        return event

    @staticmethod
    def _drive_order(order_id: str, status: str) -> Optional[Transition]:
        try:
            with transaction.atomic():
                return OrderStatusService.apply(order_id, ProviderEvent(source=PAYMENT, status=status))
        except (DatabaseError, OrderStatusConflict):
            logger.exception("Failed to update order=%s for payment status=%s", order_id, status)
            return None

    @staticmethod
    def _mark_processed(event: PaymentEvent) -> None:
        try:
            PaymentEvent.objects.filter(pk=event.pk).update(processed=True)
        except DatabaseError:
            logger.exception("Failed to mark payment event=%s processed", event.pk)
