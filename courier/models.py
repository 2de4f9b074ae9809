import uuid
from django.db import models
from django.utils import timezone

from order.models import Order


class Shipment(models.Model):
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    # Same as payments: the storefront owns orders, so no database-level constraint.
    order = models.ForeignKey(
        Order,
        related_name="shipments",
        on_delete=models.DO_NOTHING,
        db_constraint=False,
        null=True,
        blank=True,
    )

    courier_name = models.CharField(max_length=100, blank=True, null=True)
    service = models.CharField(max_length=100, blank=True, null=True)
    awb = models.CharField(max_length=150, unique=True, blank=True, null=True)
    external_shipment_id = models.CharField(max_length=150, blank=True, null=True)
    label_url = models.CharField(max_length=500, blank=True, null=True)

    # Carrier vocabulary (CREATED, IN_TRANSIT, DELIVERED, ...), stored as received.
    status = models.CharField(max_length=50, blank=True, null=True)
    last_payload = models.JSONField(default=dict, blank=True)

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = "shipments"
        indexes = [
            models.Index(fields=["status"], name="shipments_status_idx"),
        ]

    def __str__(self):
        return f"{self.awb or self.id} - {self.status}"


class ShipmentEvent(models.Model):
    shipment = models.ForeignKey(Shipment, related_name="events", on_delete=models.CASCADE)

    status = models.CharField(max_length=50, blank=True)
    status_detail = models.TextField(blank=True)
    external_id = models.CharField(max_length=150, blank=True, null=True)
    payload = models.JSONField(default=dict)
    headers = models.JSONField(default=dict, blank=True)

    processed = models.BooleanField(default=False)
    processing_attempts = models.IntegerField(default=0)

    received_at = models.DateTimeField(default=timezone.now)

    class Meta:
        db_table = "shipment_events"
        ordering = ["received_at"]
        constraints = [
            models.UniqueConstraint(
                fields=["shipment", "external_id", "status", "status_detail"],
                name="uniq_shipment_event_delivery",
            ),
        ]

    def __str__(self):
        return f"{self.external_id} - {self.status}"
