"""Canonical donation schemas."""

from __future__ import annotations

from datetime import datetime

from pydantic import Field

from donor_dashboard.core.pagination import PageMeta
from donor_dashboard.schemas.common import ApiModel, Money


class DonationOut(ApiModel):
    id: int
    source: str
    organization_id: str
    amount: Money
    currency: str
    donor_name: str | None = None
    donor_email: str | None = None
    donor_identifier: str | None = None
    payment_id: str | None = None
    order_id: str | None = None
    payment_status: str
    receipt_sent: bool
    is_recurring: bool
    is_custom_amount: bool
    donation_type: str
    location_id: str | None = None
    created_at: datetime
    updated_at: datetime | None = None


class DonationStatisticsOut(ApiModel):
    total_donations: int = Field(validation_alias="count")
    total_amount: Money
    average_amount: Money
    unique_donors: int
    organizations: int


class DonationListResponse(ApiModel):
    donations: list[DonationOut]
    pagination: PageMeta
    statistics: DonationStatisticsOut
    filters_applied: dict


class DonationDetail(ApiModel):
    donation: DonationOut


class TransactionDonorUpdate(ApiModel):
    donor_email: str | None = None
    donor_name: str | None = None
    notes: str | None = None


class TransactionDonorUpdateOut(ApiModel):
    donation: DonationOut
    change_id: int | None = None


class DonationExport(ApiModel):
    donations: list[DonationOut]
    exported_at: str
    total_count: int
    total_amount: str
