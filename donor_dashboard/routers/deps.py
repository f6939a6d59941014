"""Shared FastAPI dependencies for the dashboard routers.

Every data route goes through ``get_scope``: it verifies the session token
and resolves the impersonation-aware organization scope, so no handler has
to remember to check ``impersonating`` itself.
"""

from __future__ import annotations

from typing import Optional

from fastapi import Depends, Header, Request
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from donor_dashboard.core.config import Settings
from donor_dashboard.core.security import DashboardSession, SessionAuthority
from donor_dashboard.db.base import get_db, get_session_factory
from donor_dashboard.repositories.connection import ConnectionRepository
from donor_dashboard.services.donation_source import DonationSourceAdapter
from donor_dashboard.services.donor import DonorIdentityResolver
from donor_dashboard.services.donor_history import ChangeHistoryLedger
from donor_dashboard.services.export import ExportService
from donor_dashboard.services.reporting import ReportingEngine
from donor_dashboard.services.session import Scope, SessionService


def get_settings(request: Request) -> Settings:
    return request.app.state.settings


def get_authority(request: Request) -> SessionAuthority:
    return request.app.state.authority


def session_token(
    request: Request,
    authorization: Optional[str] = Header(default=None),
) -> Optional[str]:
    """Session cookie first, then ``Authorization: Bearer``."""
    token = request.cookies.get(request.app.state.settings.session_cookie_name)
    if token:
        return token
    if authorization and authorization.lower().startswith("bearer "):
        return authorization[7:].strip() or None
    return None


def current_session(
    token: Optional[str] = Depends(session_token),
    authority: SessionAuthority = Depends(get_authority),
) -> Optional[DashboardSession]:
    return authority.verify_session(token)


def require_session(
    session: Optional[DashboardSession] = Depends(current_session),
    authority: SessionAuthority = Depends(get_authority),
) -> DashboardSession:
    return authority.require_auth(session)


def require_super_admin(
    session: Optional[DashboardSession] = Depends(current_session),
    authority: SessionAuthority = Depends(get_authority),
) -> DashboardSession:
    return authority.require_auth(session, require_super_admin=True)


def get_session_service(
    db: AsyncSession = Depends(get_db),
    authority: SessionAuthority = Depends(get_authority),
) -> SessionService:
    return SessionService(db, authority)


async def get_scope(
    session: DashboardSession = Depends(require_session),
    service: SessionService = Depends(get_session_service),
) -> Scope:
    return await service.resolve_scope(session)


def get_source(
    scope: Scope = Depends(get_scope),
    db: AsyncSession = Depends(get_db),
) -> DonationSourceAdapter:
    return DonationSourceAdapter(db, scope)


def get_ledger(
    scope: Scope = Depends(get_scope),
    db: AsyncSession = Depends(get_db),
    session_factory: async_sessionmaker[AsyncSession] = Depends(get_session_factory),
) -> ChangeHistoryLedger:
    return ChangeHistoryLedger(db, session_factory, scope)


def get_resolver(
    session: DashboardSession = Depends(require_session),
    source: DonationSourceAdapter = Depends(get_source),
    ledger: ChangeHistoryLedger = Depends(get_ledger),
    db: AsyncSession = Depends(get_db),
    settings: Settings = Depends(get_settings),
) -> DonorIdentityResolver:
    return DonorIdentityResolver(db, source, ledger, session, history_limit=settings.donor_history_limit)


def get_reporting(
    source: DonationSourceAdapter = Depends(get_source),
    db: AsyncSession = Depends(get_db),
) -> ReportingEngine:
    return ReportingEngine(source, ConnectionRepository(db))


def get_exporter(source: DonationSourceAdapter = Depends(get_source)) -> ExportService:
    return ExportService(source)
