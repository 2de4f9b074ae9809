from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, Optional

from django.db import DatabaseError, transaction
from django.db.models import F
from django.utils import timezone

from core.payloads import Field, as_text, extract, upper_text
from core.persistence import upsert_by_external_key
from order.services import OrderStatusConflict, OrderStatusService
from order.status import SHIPMENT, ProviderEvent, Transition, is_known_shipment_status

from .models import Shipment, ShipmentEvent

logger = logging.getLogger(__name__)


# Jubelio tracking callback.
SHIPMENT_CALLBACK_FIELDS = (
    Field("external_id", ("shipment_id", "awb"), default="", transform=as_text),
    Field("shipment_id", ("shipment_id",), transform=as_text),
    Field("awb", ("awb",), default="", transform=as_text),
    Field("courier", ("carrier", "courier"), default="", transform=as_text),
    Field("status", ("status",), default="", transform=upper_text),
    Field("status_detail", ("status_detail",), default="", transform=as_text),
    Field("order_id", ("order_id", "ref_no"), transform=as_text),
)


@dataclass(frozen=True)
class ShipmentReconcileResult:
    shipment_id: Optional[str]
    status: str
    order_id: Optional[str]
    duplicate: bool = False
    transition: Optional[Transition] = None


class ShipmentWebhookReconciler:
    """Applies one Jubelio tracking callback; same step isolation as the payment side."""

    def reconcile(self, payload: Dict[str, Any], headers: Optional[Dict[str, str]] = None) -> ShipmentReconcileResult:
        headers = headers or {}
        fields = extract(payload, SHIPMENT_CALLBACK_FIELDS)
        status = fields["status"]
        received_at = timezone.now()

        if status and not is_known_shipment_status(status):
            logger.warning("Unknown Jubelio shipment status=%s awb=%s, treating as in transit", status, fields["awb"])

        shipment = self._upsert_shipment(fields, payload)
        order_id = fields["order_id"] or (str(shipment.order_id) if shipment and shipment.order_id else None)
        if shipment is None:
            return ShipmentReconcileResult(shipment_id=None, status=status, order_id=order_id)

        event = self._append_event(shipment, fields, payload, headers, received_at)
        if event is not None and event.processed:
            logger.info("Duplicate Jubelio callback ignored: awb=%s status=%s", fields["awb"], status)
            return ShipmentReconcileResult(shipment_id=str(shipment.id), status=status, order_id=order_id, duplicate=True)

        result = None
        if order_id:
            result = self._drive_order(order_id, status, fields["courier"], fields["awb"])

        if event is not None and (result is not None or not order_id):
            self._mark_processed(event)

        return ShipmentReconcileResult(
            shipment_id=str(shipment.id),
            status=status,
            order_id=order_id,
            transition=result,
        )

    @staticmethod
    def _upsert_shipment(fields: Dict[str, Any], payload: Dict[str, Any]) -> Optional[Shipment]:
        values: Dict[str, Any] = {"status": fields["status"] or None, "last_payload": payload}
        if fields["courier"]:
            values["courier_name"] = fields["courier"]
        if fields["shipment_id"]:
            values["external_shipment_id"] = fields["shipment_id"]

        try:
            shipment, created = upsert_by_external_key(
                Shipment,
                key_field="awb",
                key_value=fields["awb"] or None,
                external_id=fields["external_id"],
                values=values,
                create_only={"order_id": fields["order_id"] or None},
            )
        except DatabaseError:
            logger.exception("Failed to upsert shipment for Jubelio callback awb=%s", fields["awb"])
            return None

        logger.info(
            "Shipment %s from Jubelio callback: awb=%s status=%s",
            "created" if created else "updated", fields["awb"], fields["status"],
        )
        return shipment

    @staticmethod
    def _append_event(
        shipment: Shipment,
        fields: Dict[str, Any],
        payload: Dict[str, Any],
        headers: Dict[str, str],
        received_at: datetime,
    ) -> Optional[ShipmentEvent]:
        try:
            with transaction.atomic():
                event, created = ShipmentEvent.objects.get_or_create(
                    shipment=shipment,
                    external_id=fields["external_id"] or None,
                    status=fields["status"],
                    status_detail=fields["status_detail"],
                    defaults={
                        "payload": payload,
                        "headers": headers,
                        "received_at": received_at,
                    },
                )
                ShipmentEvent.objects.filter(pk=event.pk).update(processing_attempts=F("processing_attempts") + 1)
        except DatabaseError:
            logger.exception("Failed to append shipment event for shipment=%s", shipment.id)
            return None
        if not created:
            logger.info("Shipment event redelivered: shipment=%s status=%s", shipment.id, fields["status"])
        return event

    @staticmethod
    def _drive_order(order_id: str, status: str, courier: str, awb: str) -> Optional[Transition]:
        event = ProviderEvent(source=SHIPMENT, status=status, courier=courier, tracking_number=awb)
        try:
            with transaction.atomic():
                return OrderStatusService.apply(order_id, event)
        except (DatabaseError, OrderStatusConflict):
            logger.exception("Failed to update order=%s for shipment status=%s", order_id, status)
            return None

    @staticmethod
    def _mark_processed(event: ShipmentEvent) -> None:
        try:
            ShipmentEvent.objects.filter(pk=event.pk).update(processed=True)
        except DatabaseError:
            logger.exception("Failed to mark shipment event=%s processed", event.pk)
