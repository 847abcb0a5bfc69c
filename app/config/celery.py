"""
Celery application for the settlement engine.

Celery runs the scheduled settlement work (payout retries, the monthly
referral cascade) and fire-and-forget notification delivery. Schedules are
stored in the database by django-celery-beat; see the settlement data
migrations.

Configuration is read from Django settings under the CELERY_ namespace and
tasks are discovered from each installed app's tasks.py.

Usage:
    # Worker
    celery -A config worker -l info

    # Scheduler
    celery -A config beat -l info
"""

import os

from celery import Celery

os.environ.setdefault("DJANGO_SETTINGS_MODULE", "config.settings")

app = Celery("config")

# All Celery settings are prefixed with CELERY_ in settings.py
app.config_from_object("django.conf:settings", namespace="CELERY")

app.autodiscover_tasks()
