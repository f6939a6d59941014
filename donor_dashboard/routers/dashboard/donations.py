"""Canonical donation endpoints."""

from __future__ import annotations

from datetime import date
from typing import Literal, Optional

from fastapi import APIRouter, Depends, Query
from fastapi.responses import Response

from donor_dashboard.core.pagination import PaginationParams, page_meta
from donor_dashboard.repositories.donation import DonationFilters
from donor_dashboard.routers.deps import get_exporter, get_resolver, get_source
from donor_dashboard.schemas.donation import (
    DonationDetail,
    DonationExport,
    DonationListResponse,
    DonationOut,
    DonationStatisticsOut,
    TransactionDonorUpdate,
    TransactionDonorUpdateOut,
)
from donor_dashboard.services.donation_source import DonationSourceAdapter
from donor_dashboard.services.donor import DonorIdentityResolver
from donor_dashboard.services.export import ExportService

router = APIRouter(tags=["Donations"])


def donation_filters(
    start_date: Optional[date] = Query(default=None),
    end_date: Optional[date] = Query(default=None),
    min_amount: Optional[float] = Query(default=None, ge=0),
    max_amount: Optional[float] = Query(default=None, ge=0),
    donor_email: Optional[str] = Query(default=None),
    donor_name: Optional[str] = Query(default=None),
    is_recurring: Optional[bool] = Query(default=None),
    receipt_sent: Optional[bool] = Query(default=None),
    donation_type: Optional[str] = Query(default=None),
    search: Optional[str] = Query(default=None),
    organization_id: Optional[str] = Query(default=None),
) -> DonationFilters:
    return DonationFilters(
        start_date=start_date,
        end_date=end_date,
        min_amount=min_amount,
        max_amount=max_amount,
        donor_email=donor_email,
        donor_name=donor_name,
        is_recurring=is_recurring,
        receipt_sent=receipt_sent,
        donation_type=donation_type,
        search=search,
        organization_id=organization_id,
    )


@router.get("/donations", response_model=DonationListResponse)
async def list_donations(
    filters: DonationFilters = Depends(donation_filters),
    pagination: PaginationParams = Depends(),
    source: DonationSourceAdapter = Depends(get_source),
):
    """Both donation sources, de-duplicated, sorted and paginated."""
    result = await source.list_donations(
        filters,
        sort_by=pagination.sort_by,
        descending=pagination.descending,
        page=pagination.page,
        limit=pagination.limit,
    )
    return DonationListResponse(
        donations=[DonationOut.model_validate(d) for d in result.donations],
        pagination=page_meta(result.total_count, pagination.page, pagination.limit),
        statistics=DonationStatisticsOut.model_validate(result.statistics),
        filters_applied=filters.applied(),
    )


@router.get("/donations/{donation_id}", response_model=DonationDetail)
async def get_donation(donation_id: str, source: DonationSourceAdapter = Depends(get_source)):
    donation = await source.get_donation(donation_id)
    return DonationDetail(donation=DonationOut.model_validate(donation))


@router.patch("/donations/{donation_id}/donor", response_model=TransactionDonorUpdateOut)
async def update_donation_donor(
    donation_id: str,
    body: TransactionDonorUpdate,
    resolver: DonorIdentityResolver = Depends(get_resolver),
):
    """Re-attribute one transaction to a different donor."""
    result = await resolver.update_transaction_donor(donation_id, body.donor_email, body.donor_name, body.notes)
    return TransactionDonorUpdateOut(donation=DonationOut.model_validate(result.donation), change_id=result.change_id)


@router.get("/export")
async def export_donations(
    format: Literal["csv", "json"] = Query(default="csv"),
    start_date: Optional[date] = Query(default=None),
    end_date: Optional[date] = Query(default=None),
    include_anonymous: bool = Query(default=False),
    exporter: ExportService = Depends(get_exporter),
):
    kwargs = {"start_date": start_date, "end_date": end_date, "include_anonymous": include_anonymous}
    if format == "json":
        rows, summary = await exporter.export_json(**kwargs)
        return DonationExport(donations=[DonationOut.model_validate(d) for d in rows], **summary)

    export = await exporter.export_csv(**kwargs)
    return Response(
        content=export.content,
        media_type=export.media_type,
        headers={"Content-Disposition": f'attachment; filename="{export.filename}"'},
    )
