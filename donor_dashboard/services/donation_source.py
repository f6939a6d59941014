"""Donation source adapter — one canonical donation stream from two physical tables.

The primary ledger (``donations``) and the legacy receipt log
(``receipt_log``) are filtered independently in SQL, normalized to
:class:`CanonicalDonation`, then unioned, sorted and paginated in memory.
A legacy row whose ``transaction_id`` matches any primary ``payment_id`` in
scope is the same physical payment and is dropped.

Everything downstream (donor resolution, reporting, export) consumes only
:class:`CanonicalDonation` and never looks at the source tables.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional

from sqlalchemy import func
from sqlalchemy.ext.asyncio import AsyncSession

from donor_dashboard.core.exceptions import NotFoundError
from donor_dashboard.core.response import to_naive_utc
from donor_dashboard.domain.donation import Donation, ReceiptLog
from donor_dashboard.repositories.donation import (
    COMPLETED,
    DonationFilters,
    DonationRepository,
    ReceiptLogRepository,
)
from donor_dashboard.services.session import Scope

SOURCE_PRIMARY = "donations"
SOURCE_LEGACY = "receipt_log"

SYNTHETIC_PREFIX = "name_without_email_"

SORT_COLUMNS = ("created_at", "amount", "donor_name", "donor_email")
DEFAULT_SORT = "created_at"


def donor_identifier(email: Optional[str], name: Optional[str]) -> Optional[str]:
    """Email when present, else the synthetic name form, else None (no identity at all)."""
    if email:
        return email
    if name:
        return f"{SYNTHETIC_PREFIX}{name}"
    return None


def is_synthetic(identifier: str) -> bool:
    return identifier.startswith(SYNTHETIC_PREFIX)


def synthetic_name(identifier: str) -> str:
    return identifier[len(SYNTHETIC_PREFIX):]


@dataclass
class CanonicalDonation:
    id: int
    source: str
    organization_id: str
    amount: float
    currency: str
    donor_name: Optional[str]
    donor_email: Optional[str]
    payment_id: Optional[str]
    order_id: Optional[str]
    payment_status: str
    receipt_sent: bool
    is_recurring: bool
    is_custom_amount: bool
    donation_type: str
    created_at: datetime
    updated_at: Optional[datetime] = None
    location_id: Optional[str] = None
    catalog_item_id: Optional[str] = None

    @property
    def donor_identifier(self) -> Optional[str]:
        return donor_identifier(self.donor_email, self.donor_name)

    @classmethod
    def from_primary(cls, row: Donation) -> "CanonicalDonation":
        return cls(
            id=row.id,
            source=SOURCE_PRIMARY,
            organization_id=row.organization_id,
            amount=float(row.amount),
            currency=row.currency or "USD",
            donor_name=row.donor_name,
            donor_email=row.donor_email,
            payment_id=row.payment_id,
            order_id=row.square_order_id,
            payment_status=row.payment_status,
            receipt_sent=bool(row.receipt_sent),
            is_recurring=bool(row.is_recurring),
            is_custom_amount=bool(row.is_custom_amount),
            donation_type=row.donation_type or "one_time",
            created_at=to_naive_utc(row.created_at),
            updated_at=to_naive_utc(row.updated_at),
            location_id=row.location_id,
            catalog_item_id=row.catalog_item_id,
        )

    @classmethod
    def from_legacy(cls, row: ReceiptLog) -> "CanonicalDonation":
        # Only delivered receipts reach here, so the payment is treated as completed.
        return cls(
            id=row.id,
            source=SOURCE_LEGACY,
            organization_id=row.organization_id,
            amount=float(row.amount),
            currency="USD",
            donor_name=None,
            donor_email=row.donor_email,
            payment_id=row.transaction_id,
            order_id=None,
            payment_status=COMPLETED,
            receipt_sent=True,
            is_recurring=False,
            is_custom_amount=False,
            donation_type="one_time",
            created_at=to_naive_utc(row.requested_at),
            updated_at=to_naive_utc(row.requested_at),
        )


@dataclass
class DonationStatistics:
    count: int = 0
    total_amount: float = 0.0
    unique_donors: int = 0
    organizations: int = 0

    @property
    def average_amount(self) -> float:
        return self.total_amount / self.count if self.count else 0.0


@dataclass
class DonationPage:
    total_count: int
    donations: list[CanonicalDonation] = field(default_factory=list)
    statistics: DonationStatistics = field(default_factory=DonationStatistics)


def _sort_key(column: str):
    def key(donation: CanonicalDonation):
        value = getattr(donation, column)
        if isinstance(value, str):
            value = value.lower()
        # NULLs sort lowest, like the relational default
        return (value is not None, value)
    return key


def sort_donations(
    donations: list[CanonicalDonation], sort_by: Optional[str], descending: bool = True
) -> list[CanonicalDonation]:
    """Stable sort on one column; equal keys keep union order (primary rows first)."""
    column = sort_by if sort_by in SORT_COLUMNS else DEFAULT_SORT
    return sorted(donations, key=_sort_key(column), reverse=descending)


def summarize(donations: list[CanonicalDonation]) -> DonationStatistics:
    total = 0.0
    donors = set()
    organizations = set()
    for d in donations:
        total += d.amount
        organizations.add(d.organization_id)
        if d.donor_identifier:
            donors.add(d.donor_identifier.lower() if d.donor_email else d.donor_identifier)
    return DonationStatistics(
        count=len(donations),
        total_amount=total,
        unique_donors=len(donors),
        organizations=len(organizations),
    )


class DonationSourceAdapter:
    def __init__(self, session: AsyncSession, scope: Scope):
        self._scope = scope
        self._primary = DonationRepository(session, scope.organization_ids)
        self._legacy = ReceiptLogRepository(session, scope.organization_ids)

    @property
    def scope(self) -> Scope:
        return self._scope

    async def stream(
        self,
        filters: DonationFilters | None = None,
        *,
        primary_extra: tuple = (),
        legacy_extra: tuple = (),
        include_legacy: bool = True,
    ) -> list[CanonicalDonation]:
        """Filtered canonical rows in union order: primary ledger first, then legacy."""
        filters = filters or DonationFilters()
        if filters.organization_id and filters.organization_id not in self._scope.organization_ids:
            return []

        rows = [CanonicalDonation.from_primary(r) for r in await self._primary.completed(filters, *primary_extra)]
        if include_legacy:
            legacy = await self._legacy.sent(filters, self._primary.payment_ids_in_scope(), *legacy_extra)
            rows.extend(CanonicalDonation.from_legacy(r) for r in legacy)
        return rows

    async def for_email(self, email: str) -> list[CanonicalDonation]:
        lowered = email.lower()
        return await self.stream(
            primary_extra=(func.lower(Donation.donor_email) == lowered,),
            legacy_extra=(func.lower(ReceiptLog.donor_email) == lowered,),
        )

    async def for_anonymous_name(self, name: str) -> list[CanonicalDonation]:
        # The legacy log has no donor names, so only the primary ledger can match.
        return await self.stream(
            primary_extra=(Donation.donor_email.is_(None), Donation.donor_name == name),
            include_legacy=False,
        )

    async def list_donations(
        self,
        filters: DonationFilters,
        *,
        sort_by: Optional[str] = None,
        descending: bool = True,
        page: int = 1,
        limit: int = 50,
    ) -> DonationPage:
        rows = sort_donations(await self.stream(filters), sort_by, descending)
        offset = (page - 1) * limit
        return DonationPage(
            total_count=len(rows),
            donations=rows[offset:offset + limit],
            statistics=summarize(rows),
        )

    async def get_donation(self, key: str) -> CanonicalDonation:
        row = await self._primary.lookup(key)
        if row is None:
            raise NotFoundError("Donation", key)
        return CanonicalDonation.from_primary(row)
