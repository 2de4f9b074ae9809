import uuid
from django.db import models


def generate_order_id():
    return str(uuid.uuid4())


class Order(models.Model):
    """
    Storefront-owned order. This service only writes ``status`` and the
    shipping fields; everything else belongs to checkout.
    """

    class Status(models.TextChoices):
        PENDING = "pending"
        PAID = "paid"
        SHIPPED = "shipped"
        COMPLETED = "completed"
        CANCELLED = "cancelled"

    id = models.CharField(primary_key=True, max_length=64, default=generate_order_id)
    status = models.CharField(max_length=20, choices=Status.choices, default=Status.PENDING)

    customer_name = models.CharField(max_length=255, blank=True)
    total_amount = models.DecimalField(max_digits=14, decimal_places=2, default=0)

    shipping_courier = models.CharField(max_length=100, blank=True, null=True)
    tracking_number = models.CharField(max_length=150, blank=True, null=True)

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = "orders"
        indexes = [
            models.Index(fields=["status"], name="orders_status_idx"),
        ]

    def __str__(self):
        return f"{self.id} - {self.status}"
