"""
Add Celery Beat schedules for settlement runs.

- Payment retries: hourly; each retry carries its own next_retry_date,
  so the interval only bounds how late a due retry runs
- Referral cascade: 1st of every month at 06:00 UTC
"""

from django.db import migrations

RETRY_TASK_NAME = "Process Payment Retries"
CASCADE_TASK_NAME = "Process Monthly Referral Cascade"


def create_periodic_tasks(apps, schema_editor):
    """Create the settlement periodic tasks."""
    IntervalSchedule = apps.get_model("django_celery_beat", "IntervalSchedule")
    CrontabSchedule = apps.get_model("django_celery_beat", "CrontabSchedule")
    PeriodicTask = apps.get_model("django_celery_beat", "PeriodicTask")

    # Every 1 hour
    schedule_1hour, _ = IntervalSchedule.objects.get_or_create(
        every=1,
        period="hours",
    )

    # Monthly on the 1st at 6 AM UTC
    crontab_monthly, _ = CrontabSchedule.objects.get_or_create(
        minute="0",
        hour="6",
        day_of_week="*",
        day_of_month="1",
        month_of_year="*",
    )

    PeriodicTask.objects.get_or_create(
        name=RETRY_TASK_NAME,
        defaults={
            "task": "settlement.workers.retry_runner.process_payment_retries",
            "interval": schedule_1hour,
            "enabled": True,
            "description": (
                "Re-attempts failed payments whose retry cooldown has elapsed. "
                "Marks subscriptions past due when retries are exhausted."
            ),
        },
    )

    PeriodicTask.objects.get_or_create(
        name=CASCADE_TASK_NAME,
        defaults={
            "task": "settlement.workers.referral_cascade.process_referral_cascade",
            "crontab": crontab_monthly,
            "enabled": True,
            "description": (
                "Issues this month's referral credit for every active referral "
                "with an active subscription, up to the cap."
            ),
        },
    )


def remove_periodic_tasks(apps, schema_editor):
    """Remove the periodic tasks on migration rollback."""
    PeriodicTask = apps.get_model("django_celery_beat", "PeriodicTask")

    PeriodicTask.objects.filter(name__in=[RETRY_TASK_NAME, CASCADE_TASK_NAME]).delete()


class Migration(migrations.Migration):
    dependencies = [
        ("settlement", "0001_initial"),
        ("django_celery_beat", "0019_alter_periodictasks_options"),
    ]

    operations = [
        migrations.RunPython(create_periodic_tasks, remove_periodic_tasks),
    ]
