# payments/models.py

import uuid
from django.db import models
from django.utils import timezone

from order.models import Order


class Payment(models.Model):

    class Status(models.TextChoices):
        PENDING = "PENDING", "Pending"
        PAID = "PAID", "Paid"
        SETTLED = "SETTLED", "Settled"
        EXPIRED = "EXPIRED", "Expired"
        FAILED = "FAILED", "Failed"

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)

    # Orders belong to the storefront and the external reference may not
    # resolve to one, so no database-level constraint.
    order = models.ForeignKey(
        Order,
        on_delete=models.DO_NOTHING,
        db_constraint=False,
        related_name="payments",
        null=True,
        blank=True,
    )

    provider = models.CharField(max_length=50, default="xendit")
    session_id = models.CharField(max_length=150, unique=True, null=True, blank=True)  # xendit invoice id

    status = models.CharField(max_length=20, choices=Status.choices, blank=True, null=True)
    amount = models.DecimalField(max_digits=14, decimal_places=2, null=True, blank=True)
    currency = models.CharField(max_length=10, default="IDR")
    invoice_url = models.CharField(max_length=500, blank=True, null=True)

    payment_method = models.CharField(max_length=50, blank=True, null=True)
    payment_channel = models.CharField(max_length=50, blank=True, null=True)
    failure_code = models.CharField(max_length=100, blank=True, null=True)
    failure_message = models.TextField(blank=True, null=True)

    paid_at = models.DateTimeField(null=True, blank=True)
    expired_at = models.DateTimeField(null=True, blank=True)
    failed_at = models.DateTimeField(null=True, blank=True)

    webhook_received_at = models.DateTimeField(null=True, blank=True)
    webhook_headers = models.JSONField(default=dict, blank=True)

    metadata = models.JSONField(default=dict, blank=True)

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = "payments"
        indexes = [
            models.Index(fields=["status"], name="payments_status_idx"),
        ]

    def __str__(self):
        return f"{self.session_id or self.id} - {self.status}"


class PaymentEvent(models.Model):
    """Append-only log of payment callbacks, one row per distinct delivery."""

    payment = models.ForeignKey(Payment, on_delete=models.CASCADE, related_name="events")

    event_type = models.CharField(max_length=50, blank=True)
    external_id = models.CharField(max_length=150, blank=True, null=True)
    payload = models.JSONField(default=dict)
    headers = models.JSONField(default=dict, blank=True)

    processed = models.BooleanField(default=False)
    processing_attempts = models.IntegerField(default=0)

    received_at = models.DateTimeField(default=timezone.now)

    class Meta:
        db_table = "payment_events"
        ordering = ["received_at"]
        constraints = [
            models.UniqueConstraint(
                fields=["payment", "external_id", "event_type"],
                name="uniq_payment_event_delivery",
            ),
        ]

    def __str__(self):
        return f"{self.external_id} - {self.event_type}"
