from django.db import migrations, models
import django.db.models.deletion
import django.utils.timezone
import uuid


class Migration(migrations.Migration):

    initial = True

    dependencies = [
        ("order", "0001_initial"),
    ]

    operations = [
        migrations.CreateModel(
            name="Payment",
            fields=[
                ("id", models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ("provider", models.CharField(default="xendit", max_length=50)),
                ("session_id", models.CharField(blank=True, max_length=150, null=True, unique=True)),
                ("status", models.CharField(blank=True, choices=[("PENDING", "Pending"), ("PAID", "Paid"), ("SETTLED", "Settled"), ("EXPIRED", "Expired"), ("FAILED", "Failed")], max_length=20, null=True)),
                ("amount", models.DecimalField(blank=True, decimal_places=2, max_digits=14, null=True)),
                ("currency", models.CharField(default="IDR", max_length=10)),
                ("invoice_url", models.CharField(blank=True, max_length=500, null=True)),
                ("payment_method", models.CharField(blank=True, max_length=50, null=True)),
                ("payment_channel", models.CharField(blank=True, max_length=50, null=True)),
                ("failure_code", models.CharField(blank=True, max_length=100, null=True)),
                ("failure_message", models.TextField(blank=True, null=True)),
                ("paid_at", models.DateTimeField(blank=True, null=True)),
                ("expired_at", models.DateTimeField(blank=True, null=True)),
                ("failed_at", models.DateTimeField(blank=True, null=True)),
                ("webhook_received_at", models.DateTimeField(blank=True, null=True)),
                ("webhook_headers", models.JSONField(blank=True, default=dict)),
                ("metadata", models.JSONField(blank=True, default=dict)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
                ("order", models.ForeignKey(blank=True, db_constraint=False, null=True, on_delete=django.db.models.deletion.DO_NOTHING, related_name="payments", to="order.order")),
            ],
            options={
                "db_table": "payments",
                "indexes": [models.Index(fields=["status"], name="payments_status_idx")],
            },
        ),
        migrations.CreateModel(
            name="PaymentEvent",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("event_type", models.CharField(blank=True, max_length=50)),
                ("external_id", models.CharField(blank=True, max_length=150, null=True)),
                ("payload", models.JSONField(default=dict)),
                ("headers", models.JSONField(blank=True, default=dict)),
                ("processed", models.BooleanField(default=False)),
                ("processing_attempts", models.IntegerField(default=0)),
                ("received_at", models.DateTimeField(default=django.utils.timezone.now)),
                ("payment", models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name="events", to="payment.payment")),
            ],
            options={
                "db_table": "payment_events",
                "ordering": ["received_at"],
                "constraints": [models.UniqueConstraint(fields=("payment", "external_id", "event_type"), name="uniq_payment_event_delivery")],
            },
        ),
    ]
