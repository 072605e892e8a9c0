"""
Resolve the caller's session from an inbound request.

A session comes from a simplejwt access token (Authorization header first,
then the access-token cookie) or, for the Django admin site, from an
authenticated Django session. Anything that goes wrong while resolving it
means "no session".
"""
import logging
from dataclasses import dataclass
from datetime import datetime, timezone as dt_timezone
from typing import Optional

from django.conf import settings
from django.utils import timezone
from rest_framework_simplejwt.exceptions import TokenError
from rest_framework_simplejwt.tokens import AccessToken

from .roles import Role, parse_role

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Session:
    user_id: Optional[str]
    role: Optional[Role]
    expires_at: datetime

    def is_valid(self, now=None):
        return (now or timezone.now()) < self.expires_at


def get_raw_token(request) -> Optional[str]:
    header = request.META.get('HTTP_AUTHORIZATION', '')
    parts = header.split()
    if len(parts) == 2 and parts[0] in settings.SIMPLE_JWT.get('AUTH_HEADER_TYPES', ('Bearer',)):
        return parts[1]
    return request.COOKIES.get(settings.ACCESS_TOKEN_COOKIE) or None


def session_from_token(raw_token: str) -> Optional[Session]:
    try:
        token = AccessToken(raw_token)
    except TokenError as e:
        logger.debug(f"Rejected access token: {e}")
        return None
    return Session(
        user_id=str(token.get(settings.SIMPLE_JWT.get('USER_ID_CLAIM', 'user_id'))),
        role=parse_role(token.get('role')),
        expires_at=datetime.fromtimestamp(token['exp'], tz=dt_timezone.utc),
    )


def resolve_session(request) -> Optional[Session]:
    try:
        raw_token = get_raw_token(request)
        session = session_from_token(raw_token) if raw_token else None
        if session is not None:
            return session

        user = getattr(request, 'user', None)
        if user is not None and user.is_authenticated:
            return Session(
                user_id=str(user.pk),
                role=parse_role(user.role),
                expires_at=request.session.get_expiry_date(),
            )
    except Exception as e:
        logger.warning(f"Session resolution failed, treating request as anonymous: {str(e)}")
    return None
