"""Session service — resolves who a request acts as and which organizations it may see.

Token signing/verification lives in :mod:`donor_dashboard.core.security`;
this module adds the parts that need the store: impersonation target lookup,
merchant → organizations resolution and the connection bootstrap that follows
a successful provider handshake.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession

from donor_dashboard.core.exceptions import ForbiddenError, NotFoundError
from donor_dashboard.core.security import DashboardSession, SessionAuthority
from donor_dashboard.repositories.connection import ConnectionRepository

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Scope:
    """The data a request may touch: the active organization and its merchant's siblings."""

    organization_id: str
    merchant_id: str
    organization_ids: list[str] = field(default_factory=list)


class SessionService:
    def __init__(self, session: AsyncSession, authority: SessionAuthority):
        self._authority = authority
        self._connections = ConnectionRepository(session)

    async def resolve_scope(self, session: DashboardSession) -> Scope:
        organization_id = self._authority.current_organization_id(session)
        connection = await self._connections.get_for_organization(organization_id)
        merchant_id = connection.merchant_id if connection else session.merchant_id

        organization_ids = await self._connections.organization_ids_for_merchant(merchant_id)
        if organization_id not in organization_ids:
            raise NotFoundError("Organization", organization_id)
        return Scope(organization_id, merchant_id, organization_ids)

    async def impersonate_organization(
        self, admin: DashboardSession, target_organization_id: str
    ) -> str:
        if not admin.is_super_admin:
            raise ForbiddenError("Only super admins can impersonate")

        connection = await self._connections.get_for_organization(target_organization_id)
        if connection is None:
            raise NotFoundError("Organization", target_organization_id)

        logger.warning(
            "Admin %s impersonating organization %s",
            admin.admin_email or admin.email,
            target_organization_id,
        )
        return self._authority.create_impersonation_session(
            admin, connection.organization_id, connection.merchant_id
        )

    def end_impersonation(self, session: DashboardSession) -> str:
        if not session.is_super_admin:
            raise ForbiddenError("Not a super admin")
        if session.impersonating:
            logger.warning(
                "Admin %s stopped impersonating organization %s",
                session.admin_email,
                session.impersonating,
            )
        return self._authority.end_impersonation(session)

    async def connect_merchant(
        self,
        organization_id: str,
        merchant_id: str,
        access_token: str,
        *,
        refresh_token: Optional[str] = None,
        expires_at: Optional[datetime] = None,
        location_id: Optional[str] = None,
        location_name: Optional[str] = None,
        merchant_name: Optional[str] = None,
        email: Optional[str] = None,
    ) -> str:
        """Persist the provider connection for a completed handshake and mint a session."""
        await self._connections.ensure_organization(organization_id, merchant_id, merchant_name)
        await self._connections.upsert(
            organization_id,
            merchant_id,
            access_token=access_token,
            refresh_token=refresh_token,
            expires_at=expires_at,
            location_id=location_id,
            location_name=location_name,
        )
        logger.info("Stored connection for organization %s (merchant %s)", organization_id, merchant_id)
        return self._authority.create_session(organization_id, merchant_id, merchant_name, email)

    async def merchant_organizations(self, scope: Scope) -> list[dict]:
        known = {o.id: o for o in await self._connections.organizations(scope.organization_ids)}
        return [
            {
                "id": org_id,
                "name": (known[org_id].name if org_id in known else None) or f"Organization {org_id}",
            }
            for org_id in scope.organization_ids
        ]

    async def all_organizations(self) -> list[dict]:
        return await self._connections.summaries()
