"""Dashboard stats, charts, reports and housekeeping endpoints."""

from __future__ import annotations

from datetime import date
from typing import Optional

from fastapi import APIRouter, Depends, Query

from donor_dashboard.routers.deps import get_ledger, get_reporting, get_scope, get_session_service
from donor_dashboard.schemas.session import OrganizationList, OrganizationOut
from donor_dashboard.services.donor_history import ChangeHistoryLedger
from donor_dashboard.services.reporting import ReportingEngine
from donor_dashboard.services.session import Scope, SessionService

router = APIRouter(tags=["Reports"])


@router.get("/stats")
async def dashboard_stats(
    period: str = Query(default="all", description="today, week, month, year or all"),
    reporting: ReportingEngine = Depends(get_reporting),
):
    return await reporting.stats(period)


@router.get("/charts")
async def chart_data(
    type: str = Query(default="donations_over_time"),
    period: str = Query(default="30days", description="7days, 30days, 90days, year or all"),
    start_date: Optional[date] = Query(default=None),
    end_date: Optional[date] = Query(default=None),
    limit: int = Query(default=10, ge=1, le=100),
    reporting: ReportingEngine = Depends(get_reporting),
):
    return await reporting.chart(type, period, start_date, end_date, limit)


@router.get("/reports")
async def reports(reporting: ReportingEngine = Depends(get_reporting)):
    return await reporting.reports()


@router.get("/organizations", response_model=OrganizationList)
async def merchant_organizations(
    scope: Scope = Depends(get_scope),
    service: SessionService = Depends(get_session_service),
):
    rows = await service.merchant_organizations(scope)
    return OrganizationList(organizations=[OrganizationOut(**row) for row in rows])


@router.post("/setup/donor-changes")
async def setup_donor_changes(ledger: ChangeHistoryLedger = Depends(get_ledger)):
    """Create the change-history table if this database predates it."""
    await ledger.ensure_table()
    return {"success": True, "message": "donor_changes table is ready"}
