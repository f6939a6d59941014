"""Stateless signed session tokens and the two authorization tiers.

There is no server-side session store. A token is verified on every request
and carries everything needed to answer "who is this and which organization
are they looking at". Impersonation tokens are short-lived to compensate for
the lack of revocation.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from datetime import datetime, timedelta, timezone
from typing import Optional

import jwt
from pydantic import BaseModel, ValidationError

from donor_dashboard.core.config import Settings
from donor_dashboard.core.exceptions import ForbiddenError, UnauthorizedError

logger = logging.getLogger(__name__)

_ALGORITHM = "HS256"


class DashboardSession(BaseModel):
    """Claims carried by a verified session token."""

    organization_id: str
    merchant_id: str
    merchant_name: Optional[str] = None
    email: Optional[str] = None
    is_super_admin: bool = False
    impersonating: Optional[str] = None

    # Originating admin identity, present only on impersonation tokens
    admin_email: Optional[str] = None
    admin_organization_id: Optional[str] = None
    admin_merchant_id: Optional[str] = None
    admin_merchant_name: Optional[str] = None

    @property
    def actor(self) -> str:
        """Display name recorded in audit rows."""
        return self.merchant_name or self.email or self.admin_email or "Admin"

    @property
    def actor_email(self) -> Optional[str]:
        return self.admin_email or self.email


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class SessionAuthority:
    """Mints, verifies and interprets session tokens.

    ``clock`` only affects minting; expiry is checked by PyJWT against the
    real wall clock.
    """

    def __init__(self, settings: Settings, clock: Callable[[], datetime] = _utcnow):
        self._secret = settings.jwt_secret
        self._super_admins = set(settings.super_admin_list)
        self._session_ttl = timedelta(days=settings.session_ttl_days)
        self._impersonation_ttl = timedelta(minutes=settings.impersonation_ttl_minutes)
        self._clock = clock

    # ------------------------------------------------------------------
    # Minting
    # ------------------------------------------------------------------

    def _sign(self, claims: dict, ttl: timedelta) -> str:
        issued = self._clock()
        payload = {k: v for k, v in claims.items() if v is not None}
        payload["iat"] = int(issued.timestamp())
        payload["exp"] = int((issued + ttl).timestamp())
        return jwt.encode(payload, self._secret, algorithm=_ALGORITHM)

    def is_super_admin_email(self, email: Optional[str]) -> bool:
        return bool(email) and email in self._super_admins

    def create_session(
        self,
        organization_id: str,
        merchant_id: str,
        merchant_name: Optional[str] = None,
        email: Optional[str] = None,
    ) -> str:
        return self._sign(
            {
                "organization_id": organization_id,
                "merchant_id": merchant_id,
                "merchant_name": merchant_name,
                "email": email,
                "is_super_admin": self.is_super_admin_email(email),
            },
            self._session_ttl,
        )

    def create_impersonation_session(
        self,
        admin: DashboardSession,
        organization_id: str,
        merchant_id: str,
    ) -> str:
        """Short-lived token scoped to ``organization_id`` on behalf of ``admin``.

        Authorization and the target lookup are the caller's job; this only signs.
        When ``admin`` is itself impersonating, the original admin identity is
        carried forward so ending impersonation always lands back home.
        """
        return self._sign(
            {
                "organization_id": organization_id,
                "merchant_id": merchant_id,
                "is_super_admin": True,
                "impersonating": organization_id,
                "admin_email": admin.admin_email or admin.email,
                "admin_organization_id": admin.admin_organization_id or admin.organization_id,
                "admin_merchant_id": admin.admin_merchant_id or admin.merchant_id,
                "admin_merchant_name": admin.admin_merchant_name or admin.merchant_name,
            },
            self._impersonation_ttl,
        )

    def end_impersonation(self, session: DashboardSession) -> str:
        """Fresh normal-length session for the admin behind ``session``."""
        if not session.impersonating:
            return self.create_session(
                session.organization_id,
                session.merchant_id,
                session.merchant_name,
                session.email,
            )
        return self.create_session(
            session.admin_organization_id or session.organization_id,
            session.admin_merchant_id or session.merchant_id,
            session.admin_merchant_name,
            session.admin_email,
        )

    # ------------------------------------------------------------------
    # Verification
    # ------------------------------------------------------------------

    def verify_session(self, token: Optional[str]) -> Optional[DashboardSession]:
        """Return the session claims, or None for any malformed/expired/tampered token."""
        if not token:
            return None
        try:
            claims = jwt.decode(
                token,
                self._secret,
                algorithms=[_ALGORITHM],
                options={"require": ["exp", "iat"]},
            )
            return DashboardSession.model_validate(claims)
        except (jwt.PyJWTError, ValidationError) as exc:
            logger.debug("Rejected session token: %s", exc)
            return None

    def require_auth(
        self, session: Optional[DashboardSession], require_super_admin: bool = False
    ) -> DashboardSession:
        if session is None:
            raise UnauthorizedError()
        if require_super_admin and not session.is_super_admin:
            raise ForbiddenError("Super admin access required")
        return session

    @staticmethod
    def current_organization_id(session: Optional[DashboardSession]) -> Optional[str]:
        """The organization every data query must be scoped to."""
        if session is None:
            return None
        return session.impersonating or session.organization_id
