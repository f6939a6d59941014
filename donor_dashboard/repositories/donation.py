"""Queries over the two physical donation sources.

Filtering is pushed into SQL per source. Only predicates meaningful to a
source are applied to it; a predicate on a column the legacy log does not
carry is evaluated against the value the canonical record synthesizes for it
(no name, not recurring, receipt sent, one-time).
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime, time, timedelta
from typing import Optional

from sqlalchemy import func, or_, select, update

from donor_dashboard.domain.donation import Donation, ReceiptLog
from donor_dashboard.domain.mixins import _now
from donor_dashboard.repositories.base import BaseRepository

COMPLETED = "COMPLETED"
LEGACY_SENT = "sent"


@dataclass
class DonationFilters:
    start_date: Optional[date] = None
    end_date: Optional[date] = None
    min_amount: Optional[float] = None
    max_amount: Optional[float] = None
    donor_email: Optional[str] = None
    donor_name: Optional[str] = None
    is_recurring: Optional[bool] = None
    receipt_sent: Optional[bool] = None
    donation_type: Optional[str] = None
    search: Optional[str] = None
    organization_id: Optional[str] = None

    def applied(self) -> dict:
        return {
            "start_date": self.start_date.isoformat() if self.start_date else None,
            "end_date": self.end_date.isoformat() if self.end_date else None,
            "min_amount": self.min_amount,
            "max_amount": self.max_amount,
            "donor_email": self.donor_email,
            "donor_name": self.donor_name,
            "is_recurring": self.is_recurring,
            "receipt_sent": self.receipt_sent,
            "donation_type": self.donation_type,
            "search": self.search,
            "organization_id": self.organization_id,
        }


def _day_start(value: date) -> datetime:
    return datetime.combine(value, time.min)


def _like(value: str) -> str:
    return f"%{value}%"


class DonationRepository(BaseRepository[Donation]):
    """Primary ledger. The only source donor edits ever write to."""

    model = Donation

    def conditions(self, filters: DonationFilters) -> list:
        d = Donation
        conds = [d.payment_status == COMPLETED]
        if filters.start_date:
            conds.append(d.created_at >= _day_start(filters.start_date))
        if filters.end_date:
            conds.append(d.created_at < _day_start(filters.end_date + timedelta(days=1)))
        if filters.min_amount is not None:
            conds.append(d.amount >= filters.min_amount)
        if filters.max_amount is not None:
            conds.append(d.amount <= filters.max_amount)
        if filters.donor_email:
            conds.append(d.donor_email.ilike(_like(filters.donor_email)))
        if filters.donor_name:
            conds.append(d.donor_name.ilike(_like(filters.donor_name)))
        if filters.is_recurring is not None:
            conds.append(d.is_recurring == filters.is_recurring)
        if filters.receipt_sent is not None:
            conds.append(d.receipt_sent == filters.receipt_sent)
        if filters.donation_type:
            conds.append(d.donation_type == filters.donation_type)
        if filters.search:
            pattern = _like(filters.search)
            conds.append(
                or_(
                    d.donor_name.ilike(pattern),
                    d.donor_email.ilike(pattern),
                    d.payment_id.ilike(pattern),
                )
            )
        if filters.organization_id:
            conds.append(d.organization_id == filters.organization_id)
        return conds

    async def completed(self, filters: DonationFilters | None = None, *extra) -> list[Donation]:
        conds = self.conditions(filters or DonationFilters())
        return await self.find(*conds, *extra, order_by=Donation.id)

    async def lookup(self, key: str) -> Donation | None:
        """Find one row by payment id, falling back to the numeric primary key."""
        conds = [Donation.payment_id == key]
        if key.isdigit():
            conds.append(Donation.id == int(key))
        q = self._base_query().where(or_(*conds)).limit(1)
        return (await self._session.execute(q)).scalars().first()

    def payment_ids_in_scope(self):
        """Subquery of every primary payment id in scope, used to de-duplicate the legacy log."""
        return select(Donation.payment_id).where(
            Donation.organization_id.in_(self._organization_ids),
            Donation.payment_id.is_not(None),
        )

    # ------------------------------------------------------------------
    # Identity predicates
    # ------------------------------------------------------------------

    @staticmethod
    def match_email(email: str):
        return func.lower(Donation.donor_email) == email.lower()

    @staticmethod
    def match_anonymous_name(name: str):
        return Donation.donor_email.is_(None) & (func.lower(Donation.donor_name) == name.lower())

    @staticmethod
    def match_pair(email: Optional[str], name: Optional[str]):
        """NULL-safe equality on both identity columns."""
        return Donation.donor_email.is_not_distinct_from(email) & Donation.donor_name.is_not_distinct_from(name)

    async def identity_summary(self, condition) -> tuple[int, Optional[str], Optional[str], Optional[str]]:
        """(row count, representative name, representative email, representative organization)."""
        q = self._scoped(
            select(
                func.count(Donation.id),
                func.max(Donation.donor_name),
                func.max(Donation.donor_email),
                func.max(Donation.organization_id),
            ).where(condition)
        )
        count, name, email, organization_id = (await self._session.execute(q)).one()
        return int(count or 0), name, email, organization_id

    # ------------------------------------------------------------------
    # Write
    # ------------------------------------------------------------------

    async def rewrite_identity(
        self,
        condition,
        *,
        email: Optional[str],
        name: Optional[str],
        set_email: bool = True,
        set_name: bool = True,
        now: Optional[datetime] = None,
    ) -> int:
        values: dict = {"updated_at": now or _now()}
        if set_email:
            values["donor_email"] = email
        if set_name:
            values["donor_name"] = name
        result = await self._session.execute(
            self._scoped(update(Donation).where(condition))
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        await self._session.flush()
        return result.rowcount or 0

    async def ids_matching(self, condition) -> list[int]:
        q = self._scoped(select(Donation.id).where(condition).order_by(Donation.id))
        return list((await self._session.execute(q)).scalars().all())

    async def first_id(self, condition, order_by=None) -> int | None:
        q = self._scoped(select(Donation.id).where(condition))
        if order_by is not None:
            q = q.order_by(order_by)
        return (await self._session.execute(q.limit(1))).scalar()


class ReceiptLogRepository(BaseRepository[ReceiptLog]):
    """Legacy delivery-confirmation log. Read-only."""

    model = ReceiptLog

    def conditions(self, filters: DonationFilters, exclude_payment_ids) -> list | None:
        """Legacy predicates, or None when the filter set can never match a legacy row."""
        if filters.donor_name:
            return None
        if filters.is_recurring:
            return None
        if filters.receipt_sent is False:
            return None
        if filters.donation_type and filters.donation_type != "one_time":
            return None

        r = ReceiptLog
        conds = [
            r.delivery_status == LEGACY_SENT,
            or_(r.transaction_id.is_(None), r.transaction_id.not_in(exclude_payment_ids)),
        ]
        if filters.start_date:
            conds.append(r.requested_at >= _day_start(filters.start_date))
        if filters.end_date:
            conds.append(r.requested_at < _day_start(filters.end_date + timedelta(days=1)))
        if filters.min_amount is not None:
            conds.append(r.amount >= filters.min_amount)
        if filters.max_amount is not None:
            conds.append(r.amount <= filters.max_amount)
        if filters.donor_email:
            conds.append(r.donor_email.ilike(_like(filters.donor_email)))
        if filters.search:
            pattern = _like(filters.search)
            conds.append(or_(r.donor_email.ilike(pattern), r.transaction_id.ilike(pattern)))
        if filters.organization_id:
            conds.append(r.organization_id == filters.organization_id)
        return conds

    async def sent(self, filters: DonationFilters, exclude_payment_ids, *extra) -> list[ReceiptLog]:
        conds = self.conditions(filters, exclude_payment_ids)
        if conds is None:
            return []
        return await self.find(*conds, *extra, order_by=ReceiptLog.id)
