"""
WSGI entry point for the settlement engine.

Exposes the module-level `application` callable used by gunicorn and other
WSGI servers.
"""

import os

from django.core.wsgi import get_wsgi_application

os.environ.setdefault("DJANGO_SETTINGS_MODULE", "config.settings")

application = get_wsgi_application()
