from django.db import migrations, models


class Migration(migrations.Migration):

    dependencies = [
        ("courier", "0001_initial"),
    ]

    operations = [
        migrations.RemoveConstraint(
            model_name="shipmentevent",
            name="uniq_shipment_event_delivery",
        ),
        migrations.AddConstraint(
            model_name="shipmentevent",
            constraint=models.UniqueConstraint(
                fields=("shipment", "external_id", "status", "status_detail"),
                name="uniq_shipment_event_delivery",
            ),
        ),
    ]
