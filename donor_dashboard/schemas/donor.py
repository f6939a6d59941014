"""Donor aggregate, edit, merge and change-history schemas."""

from __future__ import annotations

from datetime import datetime

from pydantic import Field

from donor_dashboard.core.pagination import PageMeta
from donor_dashboard.schemas.common import ApiModel, Money
from donor_dashboard.schemas.donation import DonationOut


class DonorOut(ApiModel):
    identifier: str
    donor_email: str | None = Field(default=None, validation_alias="email")
    donor_name: str | None = None
    donation_count: int
    total_donated: Money
    average_donation: Money
    first_donation: datetime | None = None
    last_donation: datetime | None = None
    recurring_donations: int
    receipts_sent: int
    organization_count: int
    is_anonymous: bool


class DonorStatistics(ApiModel):
    total_donors: int
    total_donations: int
    total_amount: Money
    average_donation: Money
    organizations: int


class DonorListResponse(ApiModel):
    donors: list[DonorOut]
    pagination: PageMeta
    statistics: DonorStatistics


class DonorDetailResponse(ApiModel):
    donor: DonorOut
    donation_history: list[DonationOut]


class DonorUpdateRequest(ApiModel):
    new_email: str | None = None
    new_name: str | None = None
    notes: str | None = None


class IdentityChangeOut(ApiModel):
    affected_count: int
    old_email: str | None = None
    old_name: str | None = None
    new_email: str | None = None
    new_name: str | None = None
    change_id: int | None = None
    reverted_change_id: int | None = None


class DonorRefIn(ApiModel):
    email: str | None = None
    name: str | None = None


class MergeRequest(ApiModel):
    donors_to_merge: list[DonorRefIn]
    primary_donor: DonorRefIn
    notes: str | None = None


class MergeOut(ApiModel):
    merged_donor: DonorOut
    donations_updated: int
    change_ids: list[int] = []


class RevertRequest(ApiModel):
    notes: str | None = None


class DonorChangeOut(ApiModel):
    id: int
    old_email: str | None = None
    old_name: str | None = None
    new_email: str | None = None
    new_name: str | None = None
    change_type: str
    affected_transaction_count: int
    changed_by: str | None = None
    admin_email: str | None = None
    organization_id: str | None = None
    changed_at: datetime
    is_reverted: bool
    reverted_at: datetime | None = None
    notes: str | None = None


class DonorHistoryOut(ApiModel):
    history: list[DonorChangeOut]
    message: str | None = None


class DeleteChangeOut(ApiModel):
    deleted_change_id: int


class DuplicateGroupOut(ApiModel):
    type: str
    key: str
    donors: list[DonorOut]
    total_donations: int
    total_amount: Money


class DuplicatesOut(ApiModel):
    duplicate_groups: list[DuplicateGroupOut]
    total_groups: int
