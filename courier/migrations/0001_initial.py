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
            name="Shipment",
            fields=[
                ("id", models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ("courier_name", models.CharField(blank=True, max_length=100, null=True)),
                ("service", models.CharField(blank=True, max_length=100, null=True)),
                ("awb", models.CharField(blank=True, max_length=150, null=True, unique=True)),
                ("external_shipment_id", models.CharField(blank=True, max_length=150, null=True)),
                ("label_url", models.CharField(blank=True, max_length=500, null=True)),
                ("status", models.CharField(blank=True, max_length=50, null=True)),
                ("last_payload", models.JSONField(blank=True, default=dict)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
                ("order", models.ForeignKey(blank=True, db_constraint=False, null=True, on_delete=django.db.models.deletion.DO_NOTHING, related_name="shipments", to="order.order")),
            ],
            options={
                "db_table": "shipments",
                "indexes": [models.Index(fields=["status"], name="shipments_status_idx")],
            },
        ),
        migrations.CreateModel(
            name="ShipmentEvent",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("status", models.CharField(blank=True, max_length=50)),
                ("status_detail", models.TextField(blank=True)),
                ("external_id", models.CharField(blank=True, max_length=150, null=True)),
                ("payload", models.JSONField(default=dict)),
                ("headers", models.JSONField(blank=True, default=dict)),
                ("processed", models.BooleanField(default=False)),
                ("processing_attempts", models.IntegerField(default=0)),
                ("received_at", models.DateTimeField(default=django.utils.timezone.now)),
                ("shipment", models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name="events", to="courier.shipment")),
            ],
            options={
                "db_table": "shipment_events",
                "ordering": ["received_at"],
                "constraints": [models.UniqueConstraint(fields=("shipment", "external_id", "status"), name="uniq_shipment_event_delivery")],
            },
        ),
    ]
