"""Request audit middleware — logs every state-changing dashboard request."""


import logging
import time
from collections.abc import Callable

from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware

logger = logging.getLogger(__name__)

# Methods that mutate state
_WRITE_METHODS = {"POST", "PUT", "PATCH", "DELETE"}


class AuditMiddleware(BaseHTTPMiddleware):
    """Logs all write operations with the acting session and timing.

    Donor-identity mutations additionally land in ``donor_changes`` through
    the change history ledger; this is the coarse request-level trail.
    """

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        start = time.monotonic()
        response = await call_next(request)
        duration_ms = round((time.monotonic() - start) * 1000)

        if request.method in _WRITE_METHODS:
            logger.info(
                "%s %s -> %s (%dms) by %s",
                request.method,
                request.url.path,
                response.status_code,
                duration_ms,
                self._actor(request),
            )
        return response

    @staticmethod
    def _actor(request: Request) -> str:
        authority = getattr(request.app.state, "authority", None)
        settings = getattr(request.app.state, "settings", None)
        if authority is None or settings is None:
            return "anonymous"
        session = authority.verify_session(request.cookies.get(settings.session_cookie_name))
        if session is None:
            return "anonymous"
        return session.actor_email or session.organization_id
