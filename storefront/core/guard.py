"""
Access guard: decide whether a page request proceeds or gets redirected.

Paths are PUBLIC (login/signup/error pages, the root, auth API, static and
image assets, anything that looks like a file) or PROTECTED. PROTECTED paths
under /admin additionally need the ACCESS_ADMIN capability.
"""
from dataclasses import dataclass
from typing import Optional
from urllib.parse import urlencode

from django.conf import settings

from .roles import Capability, has_capability

PUBLIC_EXACT_PATHS = frozenset({'/auth/login', '/auth/signup', '/auth/error', '/'})
PUBLIC_PREFIXES = ('/api/auth', '/static', '/media', '/images')
SIGN_IN_PATHS = frozenset({'/auth/login', '/auth/signup'})
ADMIN_PREFIX = '/admin'


@dataclass(frozen=True)
class AccessDecision:
    allowed: bool
    redirect_to: Optional[str] = None
    reason: str = ''


def _normalize(path):
    if len(path) > 1 and path.endswith('/'):
        return path.rstrip('/') or '/'
    return path


def is_public_path(path):
    path = _normalize(path)
    return (
        path in PUBLIC_EXACT_PATHS
        or path.startswith(PUBLIC_PREFIXES)
        or '.' in path
    )


def is_admin_path(path):
    return path.startswith(ADMIN_PREFIX)


def login_redirect(callback_url):
    login_path = getattr(settings, 'LOGIN_PATH', '/auth/login')
    return f"{login_path}?{urlencode({'callbackUrl': callback_url})}"


def evaluate_access(path, session=None, callback_url=None, now=None) -> AccessDecision:
    """
    Args:
        path: request path
        session: resolved Session or None
        callback_url: where to send the user after logging in (defaults to path)
        now: clock override for expiry checks
    """
    home = getattr(settings, 'HOME_PATH', '/')
    has_session = session is not None and session.is_valid(now)

    if is_public_path(path):
        if has_session and _normalize(path) in SIGN_IN_PATHS:
            return AccessDecision(False, home, 'already signed in')
        return AccessDecision(True, reason='public')

    if not has_session:
        return AccessDecision(False, login_redirect(callback_url or path), 'no session')

    if is_admin_path(path) and not has_capability(session.role, Capability.ACCESS_ADMIN):
        return AccessDecision(False, home, 'admin capability required')

    return AccessDecision(True, reason='authorized')
