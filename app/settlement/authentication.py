"""
Authentication for scheduler-invoked endpoints.

The external scheduler sends "Authorization: Bearer <CRON_SECRET>". There
is no user behind the call, so a valid token authenticates as an
AnonymousUser with request.auth set to CRON_AUTH.
"""

from __future__ import annotations

import hmac
from typing import TYPE_CHECKING

from django.conf import settings
from django.contrib.auth.models import AnonymousUser
from rest_framework import authentication, exceptions

if TYPE_CHECKING:
    from rest_framework.request import Request

CRON_AUTH = "cron"


class CronSecretAuthentication(authentication.BaseAuthentication):
    """
    Bearer-token authentication against settings.CRON_SECRET.

    Returns None without a bearer header so DRF answers 401 with a
    WWW-Authenticate challenge. An empty CRON_SECRET rejects every token.
    """

    keyword = "Bearer"

    def authenticate(self, request: Request):
        header = authentication.get_authorization_header(request).split()
        if not header or header[0].lower() != self.keyword.lower().encode():
            return None
        if len(header) != 2:
            raise exceptions.AuthenticationFailed("Invalid bearer header.")

        secret = settings.CRON_SECRET
        if not secret or not hmac.compare_digest(header[1], secret.encode()):
            raise exceptions.AuthenticationFailed("Invalid cron token.")
        return (AnonymousUser(), CRON_AUTH)

    def authenticate_header(self, request: Request) -> str:
        return self.keyword
