"""Donor endpoints.

Fixed paths (``duplicates``, ``merge``, ``changes``) are declared before
``/{identifier}`` so they are not captured as donor identifiers.
"""

from __future__ import annotations

from datetime import date
from typing import Optional

from fastapi import APIRouter, Body, Depends, Query

from donor_dashboard.core.pagination import PaginationParams, page_meta
from donor_dashboard.routers.deps import get_resolver
from donor_dashboard.schemas.donation import DonationOut
from donor_dashboard.schemas.donor import (
    DeleteChangeOut,
    DonorChangeOut,
    DonorDetailResponse,
    DonorHistoryOut,
    DonorListResponse,
    DonorOut,
    DonorStatistics,
    DonorUpdateRequest,
    DuplicateGroupOut,
    DuplicatesOut,
    IdentityChangeOut,
    MergeOut,
    MergeRequest,
    RevertRequest,
)
from donor_dashboard.services.donor import DonorFilters, DonorIdentityResolver, DonorRef

router = APIRouter(prefix="/donors", tags=["Donors"])


def donor_filters(
    search: Optional[str] = Query(default=None),
    min_total: Optional[float] = Query(default=None, ge=0),
    min_donations: Optional[int] = Query(default=None, ge=1),
    has_email: Optional[bool] = Query(default=None),
    start_date: Optional[date] = Query(default=None),
    end_date: Optional[date] = Query(default=None),
    organization_id: Optional[str] = Query(default=None),
) -> DonorFilters:
    return DonorFilters(
        search=search,
        min_total=min_total,
        min_donations=min_donations,
        has_email=has_email,
        start_date=start_date,
        end_date=end_date,
        organization_id=organization_id,
    )


# ------------------------------------------------------------------
# Collection
# ------------------------------------------------------------------

@router.get("", response_model=DonorListResponse)
async def list_donors(
    filters: DonorFilters = Depends(donor_filters),
    pagination: PaginationParams = Depends(),
    resolver: DonorIdentityResolver = Depends(get_resolver),
):
    result = await resolver.list_donors(
        filters,
        sort_by=pagination.sort_by,
        descending=pagination.descending,
        page=pagination.page,
        limit=pagination.limit,
    )
    return DonorListResponse(
        donors=[DonorOut.model_validate(d) for d in result.donors],
        pagination=page_meta(result.total_count, pagination.page, pagination.limit),
        statistics=DonorStatistics(
            total_donors=result.total_count,
            total_donations=result.total_donations,
            total_amount=result.total_amount,
            average_donation=result.average_donation,
            organizations=result.organizations,
        ),
    )


@router.get("/duplicates", response_model=DuplicatesOut)
async def find_duplicates(resolver: DonorIdentityResolver = Depends(get_resolver)):
    groups = await resolver.detect_duplicates()
    return DuplicatesOut(
        duplicate_groups=[DuplicateGroupOut.model_validate(g) for g in groups],
        total_groups=len(groups),
    )


@router.post("/merge", response_model=MergeOut)
async def merge_donors(body: MergeRequest, resolver: DonorIdentityResolver = Depends(get_resolver)):
    result = await resolver.merge_donors(
        [DonorRef(ref.email, ref.name) for ref in body.donors_to_merge],
        DonorRef(body.primary_donor.email, body.primary_donor.name),
        body.notes,
    )
    return MergeOut(
        merged_donor=DonorOut.model_validate(result.merged_donor),
        donations_updated=result.donations_updated,
        change_ids=result.change_ids,
    )


# ------------------------------------------------------------------
# Change history
# ------------------------------------------------------------------

@router.post("/changes/{change_id}/revert", response_model=IdentityChangeOut)
async def revert_change(
    change_id: int,
    body: Optional[RevertRequest] = Body(default=None),
    resolver: DonorIdentityResolver = Depends(get_resolver),
):
    result = await resolver.revert_change(change_id, body.notes if body else None)
    return IdentityChangeOut.model_validate(result)


@router.delete("/changes/{change_id}", response_model=DeleteChangeOut)
async def delete_change(change_id: int, resolver: DonorIdentityResolver = Depends(get_resolver)):
    change = await resolver.delete_change_record(change_id)
    return DeleteChangeOut(deleted_change_id=change.id)


# ------------------------------------------------------------------
# Single donor
# ------------------------------------------------------------------

@router.get("/{identifier}", response_model=DonorDetailResponse)
async def get_donor(identifier: str, resolver: DonorIdentityResolver = Depends(get_resolver)):
    detail = await resolver.get_donor(identifier)
    return DonorDetailResponse(
        donor=DonorOut.model_validate(detail.donor),
        donation_history=[DonationOut.model_validate(d) for d in detail.donation_history],
    )


@router.patch("/{identifier}", response_model=IdentityChangeOut)
async def update_donor(
    identifier: str,
    body: DonorUpdateRequest,
    resolver: DonorIdentityResolver = Depends(get_resolver),
):
    """Rewrite the email and/or name on every transaction behind ``identifier``."""
    result = await resolver.update_donor(identifier, body.new_email, body.new_name, body.notes)
    return IdentityChangeOut.model_validate(result)


@router.get("/{identifier}/history", response_model=DonorHistoryOut)
async def donor_history(identifier: str, resolver: DonorIdentityResolver = Depends(get_resolver)):
    changes, message = await resolver.history(identifier)
    return DonorHistoryOut(history=[DonorChangeOut.model_validate(c) for c in changes], message=message)
