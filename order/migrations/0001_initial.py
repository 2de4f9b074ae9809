from django.db import migrations, models
import order.models


class Migration(migrations.Migration):

    initial = True

    dependencies = []

    operations = [
        migrations.CreateModel(
            name="Order",
            fields=[
                ("id", models.CharField(default=order.models.generate_order_id, max_length=64, primary_key=True, serialize=False)),
                ("status", models.CharField(choices=[("pending", "Pending"), ("paid", "Paid"), ("shipped", "Shipped"), ("completed", "Completed"), ("cancelled", "Cancelled")], default="pending", max_length=20)),
                ("customer_name", models.CharField(blank=True, max_length=255)),
                ("total_amount", models.DecimalField(decimal_places=2, default=0, max_digits=14)),
                ("shipping_courier", models.CharField(blank=True, max_length=100, null=True)),
                ("tracking_number", models.CharField(blank=True, max_length=150, null=True)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
            ],
            options={
                "db_table": "orders",
                "indexes": [models.Index(fields=["status"], name="orders_status_idx")],
            },
        ),
    ]
