import logging

from django.conf import settings
from django.http import HttpResponseRedirect

from .guard import evaluate_access
from .sessions import resolve_session

logger = logging.getLogger(__name__)


class AccessGuardMiddleware:
    """Run the access guard for page requests; API routes use DRF permissions"""

    def __init__(self, get_response):
        self.get_response = get_response

    def __call__(self, request):
        path = request.path
        excluded = getattr(settings, 'ACCESS_GUARD_EXCLUDED_PREFIXES', ('/api/',))
        if excluded and path.startswith(tuple(excluded)):
            return self.get_response(request)

        session = resolve_session(request)
        decision = evaluate_access(path, session, callback_url=request.get_full_path())
        if not decision.allowed:
            logger.info(f"Access guard redirect: {path} -> {decision.redirect_to} ({decision.reason})")
            return HttpResponseRedirect(decision.redirect_to)

        request.storefront_session = session
        return self.get_response(request)
