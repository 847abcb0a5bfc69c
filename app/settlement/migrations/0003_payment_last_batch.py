import django.db.models.deletion
from django.db import migrations, models

import settlement.models.subscription


class Migration(migrations.Migration):
    dependencies = [
        ("settlement", "0002_add_celery_beat_schedules"),
    ]

    operations = [
        migrations.AddField(
            model_name="payment",
            name="last_batch",
            field=models.ForeignKey(
                blank=True,
                help_text="Batch whose run last handled this payment",
                null=True,
                on_delete=django.db.models.deletion.SET_NULL,
                related_name="processed_payments",
                to="settlement.paymentbatch",
            ),
        ),
        migrations.AlterField(
            model_name="subscription",
            name="visits_per_period",
            field=models.PositiveSmallIntegerField(
                default=settlement.models.subscription.default_visits_per_period,
                help_text="Visits included per billing period",
            ),
        ),
    ]
