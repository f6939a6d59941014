"""Session, impersonation and organization schemas."""

from __future__ import annotations

from datetime import datetime

from donor_dashboard.schemas.common import ApiModel, Money


class SessionOut(ApiModel):
    authenticated: bool
    organization_id: str | None = None
    merchant_id: str | None = None
    merchant_name: str | None = None
    email: str | None = None
    is_super_admin: bool = False
    impersonating: str | None = None


class ImpersonateRequest(ApiModel):
    organization_id: str


class ImpersonateOut(ApiModel):
    organization_id: str


class OrganizationOut(ApiModel):
    id: str
    name: str


class OrganizationList(ApiModel):
    organizations: list[OrganizationOut]


class AdminOrganizationOut(ApiModel):
    organization_id: str
    merchant_id: str
    total_donations: int
    total_amount: Money
    unique_donors: int
    first_donation_at: datetime | None = None
    last_donation_at: datetime | None = None


class AdminOrganizationList(ApiModel):
    organizations: list[AdminOrganizationOut]
    total_count: int
