"""Super-admin endpoints: impersonation and the cross-tenant organization listing."""

from __future__ import annotations

from fastapi import APIRouter, Depends, Response

from donor_dashboard.core.config import Settings
from donor_dashboard.core.security import DashboardSession
from donor_dashboard.routers.dashboard.auth import set_session_cookie
from donor_dashboard.routers.deps import get_session_service, get_settings, require_session, require_super_admin
from donor_dashboard.schemas.session import AdminOrganizationList, AdminOrganizationOut, ImpersonateOut, ImpersonateRequest
from donor_dashboard.services.session import SessionService

router = APIRouter(prefix="/admin", tags=["Admin"])


@router.post("/impersonate", response_model=ImpersonateOut)
async def impersonate(
    body: ImpersonateRequest,
    response: Response,
    admin: DashboardSession = Depends(require_super_admin),
    service: SessionService = Depends(get_session_service),
    settings: Settings = Depends(get_settings),
):
    """Switch the caller's session to ``organization_id`` for a short time."""
    token = await service.impersonate_organization(admin, body.organization_id)
    set_session_cookie(response, settings, token, settings.impersonation_ttl_minutes * 60)
    return ImpersonateOut(organization_id=body.organization_id)


@router.delete("/impersonate")
async def stop_impersonating(
    response: Response,
    session: DashboardSession = Depends(require_session),
    service: SessionService = Depends(get_session_service),
    settings: Settings = Depends(get_settings),
):
    token = service.end_impersonation(session)
    set_session_cookie(response, settings, token, settings.session_ttl_days * 24 * 3600)
    return {}


@router.get("/organizations", response_model=AdminOrganizationList)
async def list_all_organizations(
    _: DashboardSession = Depends(require_super_admin),
    service: SessionService = Depends(get_session_service),
):
    rows = await service.all_organizations()
    return AdminOrganizationList(
        organizations=[AdminOrganizationOut.model_validate(row) for row in rows],
        total_count=len(rows),
    )
