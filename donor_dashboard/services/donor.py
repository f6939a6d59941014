"""Donor identity resolver.

A donor is never stored. It is a grouping over canonical donations keyed by
email when there is one, otherwise by name (the ``name_without_email_<name>``
synthetic identifier). Edits rewrite ``donor_email``/``donor_name`` on the
primary ledger rows behind a donor and append to the change history; the
legacy receipt log is never mutated.

Rule: every query and every rewrite goes through the request's
:class:`~donor_dashboard.services.session.Scope`.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Optional

from sqlalchemy import or_
from sqlalchemy.ext.asyncio import AsyncSession

from donor_dashboard.core.exceptions import BadRequestError, ConflictError, NotFoundError
from donor_dashboard.core.security import DashboardSession
from donor_dashboard.domain.donation import Donation
from donor_dashboard.domain.donor_change import (
    CHANGE_MERGE,
    CHANGE_TRANSACTION_UPDATE,
    CHANGE_UPDATE,
    DonorChange,
)
from donor_dashboard.repositories.donation import DonationFilters, DonationRepository
from donor_dashboard.services.donation_source import (
    CanonicalDonation,
    DonationSourceAdapter,
    donor_identifier,
    is_synthetic,
    synthetic_name,
)
from donor_dashboard.services.donor_history import ChangeHistoryLedger

logger = logging.getLogger(__name__)

PLACEHOLDER_NAMES = {"anonymous", "anonymous donor"}
TRANSACTION_REVERT_WINDOW = timedelta(minutes=1)

DONOR_SORT_COLUMNS = (
    "total_donated",
    "donation_count",
    "average_donation",
    "first_donation",
    "last_donation",
    "donor_name",
)
DEFAULT_DONOR_SORT = "total_donated"

DUPLICATE_SAME_EMAIL = "same_email"
DUPLICATE_SIMILAR_NAME = "similar_name"

_WHITESPACE = re.compile(r"\s+")


def _usable_name(name: Optional[str]) -> bool:
    return bool(name and name.strip() and name.strip().lower() not in PLACEHOLDER_NAMES)


def normalize_email(email: str) -> str:
    return email.strip().lower()


def normalize_name(name: str) -> str:
    return _WHITESPACE.sub(" ", name.strip().lower())


# ---------------------------------------------------------------------------
# Value objects
# ---------------------------------------------------------------------------

@dataclass
class DonorAggregate:
    identifier: str
    email: Optional[str]
    name: Optional[str]
    donation_count: int = 0
    total_donated: float = 0.0
    first_donation: Optional[datetime] = None
    last_donation: Optional[datetime] = None
    recurring_donations: int = 0
    receipts_sent: int = 0
    organization_ids: set[str] = field(default_factory=set)

    @property
    def average_donation(self) -> float:
        return self.total_donated / self.donation_count if self.donation_count else 0.0

    @property
    def is_anonymous(self) -> bool:
        return not self.email

    @property
    def organization_count(self) -> int:
        return len(self.organization_ids)

    @property
    def donor_name(self) -> Optional[str]:
        return self.name

    def add(self, donation: CanonicalDonation) -> None:
        self.donation_count += 1
        self.total_donated += donation.amount
        if self.first_donation is None or donation.created_at < self.first_donation:
            self.first_donation = donation.created_at
        if self.last_donation is None or donation.created_at > self.last_donation:
            self.last_donation = donation.created_at
        self.recurring_donations += int(donation.is_recurring)
        self.receipts_sent += int(donation.receipt_sent)
        self.organization_ids.add(donation.organization_id)
        if self.name is None and _usable_name(donation.donor_name):
            self.name = donation.donor_name


@dataclass
class DonorFilters:
    search: Optional[str] = None
    min_total: Optional[float] = None
    min_donations: Optional[int] = None
    has_email: Optional[bool] = None
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None
    organization_id: Optional[str] = None

    def donation_filters(self) -> DonationFilters:
        return DonationFilters(
            start_date=self.start_date,
            end_date=self.end_date,
            organization_id=self.organization_id,
        )

    def matches(self, donor: DonorAggregate) -> bool:
        if self.search:
            needle = self.search.lower()
            if needle not in (donor.email or "").lower() and needle not in (donor.name or "").lower():
                return False
        if self.has_email is not None and bool(donor.email) != self.has_email:
            return False
        if self.min_total is not None and donor.total_donated < self.min_total:
            return False
        if self.min_donations is not None and donor.donation_count < self.min_donations:
            return False
        return True


@dataclass
class DonorPage:
    total_count: int
    donors: list[DonorAggregate]
    total_amount: float
    total_donations: int
    organizations: int

    @property
    def average_donation(self) -> float:
        return self.total_amount / self.total_donations if self.total_donations else 0.0


@dataclass
class DonorDetail:
    donor: DonorAggregate
    donation_history: list[CanonicalDonation]


@dataclass
class DuplicateGroup:
    type: str
    key: str
    donors: list[DonorAggregate]

    @property
    def total_donations(self) -> int:
        return sum(d.donation_count for d in self.donors)

    @property
    def total_amount(self) -> float:
        return sum(d.total_donated for d in self.donors)

    @property
    def identifiers(self) -> set[str]:
        return {d.identifier for d in self.donors}


@dataclass
class DonorRef:
    """One donor as the caller sees it: an (email, name) pair, either side optional."""

    email: Optional[str] = None
    name: Optional[str] = None


@dataclass
class IdentityChange:
    affected_count: int
    old_email: Optional[str]
    old_name: Optional[str]
    new_email: Optional[str]
    new_name: Optional[str]
    change_id: Optional[int] = None
    reverted_change_id: Optional[int] = None


@dataclass
class MergeResult:
    merged_donor: DonorAggregate
    donations_updated: int
    change_ids: list[int] = field(default_factory=list)


@dataclass
class TransactionUpdate:
    donation: CanonicalDonation
    change_id: Optional[int]


# ---------------------------------------------------------------------------
# Aggregation
# ---------------------------------------------------------------------------

def aggregate_donors(donations: list[CanonicalDonation]) -> list[DonorAggregate]:
    """Group by the exact (email, name) pair, in first-seen order.

    Rows with neither email nor name carry no identity and are skipped.
    """
    groups: dict[tuple, DonorAggregate] = {}
    for donation in donations:
        identifier = donation.donor_identifier
        if identifier is None:
            continue
        key = (donation.donor_email, donation.donor_name)
        donor = groups.get(key)
        if donor is None:
            donor = groups[key] = DonorAggregate(identifier, donation.donor_email, None)
        donor.add(donation)
        if donor.name is None and donation.donor_name:
            donor.name = donation.donor_name
    return list(groups.values())


def _donor_sort_key(column: str):
    def key(donor: DonorAggregate):
        value = getattr(donor, column)
        if isinstance(value, str):
            value = value.lower()
        return (value is not None, value)
    return key


def detect_duplicate_groups(donors: list[DonorAggregate]) -> list[DuplicateGroup]:
    """Two mutually exclusive passes: same email first, then similar name among the rest."""
    by_email: dict[str, list[DonorAggregate]] = {}
    for donor in donors:
        if donor.email:
            by_email.setdefault(normalize_email(donor.email), []).append(donor)

    groups: list[DuplicateGroup] = []
    captured: set[int] = set()
    for email in sorted(by_email):
        members = by_email[email]
        if len({d.name for d in members}) > 1:
            groups.append(DuplicateGroup(DUPLICATE_SAME_EMAIL, email, _ordered(members)))
            captured.update(id(d) for d in members)

    claimed = {identifier for g in groups for identifier in g.identifiers}
    by_name: dict[str, list[DonorAggregate]] = {}
    for donor in donors:
        if id(donor) in captured or donor.identifier in claimed:
            continue
        if not donor.name or not donor.name.strip():
            continue
        by_name.setdefault(normalize_name(donor.name), []).append(donor)

    for name in sorted(by_name):
        members = by_name[name]
        if len(members) > 1:
            groups.append(DuplicateGroup(DUPLICATE_SIMILAR_NAME, name, _ordered(members)))
    return groups


def _ordered(donors: list[DonorAggregate]) -> list[DonorAggregate]:
    return sorted(donors, key=lambda d: ((d.email or "").lower(), d.email or "", d.name or ""))


def _split_list(value: Optional[str]) -> list[str]:
    if not value:
        return []
    return [part.strip() for part in value.split(",") if part.strip()]


def _parse_ids(value: Optional[str]) -> list[int]:
    return [int(part) for part in _split_list(value)]


# ---------------------------------------------------------------------------
# Resolver
# ---------------------------------------------------------------------------

class DonorIdentityResolver:
    def __init__(
        self,
        session: AsyncSession,
        source: DonationSourceAdapter,
        ledger: ChangeHistoryLedger,
        actor: Optional[DashboardSession] = None,
        history_limit: int = 50,
    ):
        self._session = session
        self._source = source
        self._ledger = ledger
        self._actor = actor
        self._history_limit = history_limit
        self._donations = DonationRepository(session, source.scope.organization_ids)

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    async def get_donor(self, identifier: str) -> DonorDetail:
        if is_synthetic(identifier):
            name = synthetic_name(identifier)
            rows = await self._source.for_anonymous_name(name)
            email = None
        else:
            rows = await self._source.for_email(identifier)
            email = rows[0].donor_email if rows else identifier
        if not rows:
            raise NotFoundError("Donor", identifier)

        donor = DonorAggregate(identifier, email, None)
        for row in sorted(rows, key=lambda r: r.created_at):
            donor.add(row)
        if donor.name is None and is_synthetic(identifier):
            donor.name = synthetic_name(identifier)

        history = sorted(rows, key=lambda r: r.created_at, reverse=True)[: self._history_limit]
        return DonorDetail(donor, history)

    async def list_donors(
        self,
        filters: DonorFilters,
        *,
        sort_by: Optional[str] = None,
        descending: bool = True,
        page: int = 1,
        limit: int = 50,
    ) -> DonorPage:
        rows = await self._source.stream(filters.donation_filters())
        donors = [d for d in aggregate_donors(rows) if filters.matches(d)]

        column = sort_by if sort_by in DONOR_SORT_COLUMNS else DEFAULT_DONOR_SORT
        donors = sorted(donors, key=_donor_sort_key(column), reverse=descending)

        offset = (page - 1) * limit
        organizations = set()
        for d in donors:
            organizations |= d.organization_ids
        return DonorPage(
            total_count=len(donors),
            donors=donors[offset:offset + limit],
            total_amount=sum(d.total_donated for d in donors),
            total_donations=sum(d.donation_count for d in donors),
            organizations=len(organizations),
        )

    async def detect_duplicates(self) -> list[DuplicateGroup]:
        # Primary ledger only: legacy receipts have no name and are never rewritten.
        return detect_duplicate_groups(aggregate_donors(await self._source.stream(include_legacy=False)))

    async def history(self, identifier: str) -> tuple[list[DonorChange], Optional[str]]:
        return await self._ledger.history_for(identifier)

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    def _audit_fields(self) -> dict:
        return {
            "changed_by": self._actor.actor if self._actor else "Admin",
            "admin_email": self._actor.actor_email if self._actor else None,
        }

    async def update_donor(
        self,
        old_identifier: str,
        new_email: Optional[str] = None,
        new_name: Optional[str] = None,
        notes: Optional[str] = None,
    ) -> IdentityChange:
        """Rewrite every primary-ledger row behind ``old_identifier``.

        ``new_email=""`` clears the email; ``None`` leaves a field untouched.
        """
        new_name = new_name.strip() if new_name and new_name.strip() else None
        if new_email is None and new_name is None:
            raise BadRequestError("At least one of new_email or new_name must be provided")

        if is_synthetic(old_identifier):
            condition = DonationRepository.match_anonymous_name(synthetic_name(old_identifier))
        else:
            condition = DonationRepository.match_email(old_identifier)

        count, old_name, old_email, organization_id = await self._donations.identity_summary(condition)
        if count == 0:
            raise NotFoundError("Donor", old_identifier)

        set_email = new_email is not None
        email_value = (new_email.strip() or None) if set_email else old_email
        name_value = new_name if new_name is not None else old_name

        affected = await self._donations.rewrite_identity(
            condition,
            email=email_value,
            name=name_value,
            set_email=set_email,
            set_name=new_name is not None,
        )
        await self._session.commit()
        logger.info("Updated donor %s on %d transaction(s)", old_identifier, affected)

        change = await self._ledger.record(
            old_email=old_email,
            old_name=old_name,
            new_email=email_value,
            new_name=name_value,
            change_type=CHANGE_UPDATE,
            affected_transaction_count=affected,
            organization_id=organization_id,
            notes=notes or f"Donor information updated for {affected} transaction(s)",
            **self._audit_fields(),
        )
        return IdentityChange(
            affected, old_email, old_name, email_value, name_value,
            change_id=change.id if change else None,
        )

    async def update_transaction_donor(
        self,
        donation_key: str,
        donor_email: Optional[str] = None,
        donor_name: Optional[str] = None,
        notes: Optional[str] = None,
    ) -> TransactionUpdate:
        """Re-attribute a single primary-ledger row."""
        donor_email = (donor_email or "").strip() or None
        donor_name = (donor_name or "").strip() or None
        if donor_email is None and donor_name is None:
            raise BadRequestError("At least one of donor_email or donor_name must be provided")

        row = await self._donations.lookup(donation_key)
        if row is None:
            raise NotFoundError("Transaction", donation_key)
        old_email, old_name, donation_id = row.donor_email, row.donor_name, row.id

        await self._donations.rewrite_identity(Donation.id == donation_id, email=donor_email, name=donor_name)
        await self._session.commit()
        await self._session.refresh(row)
        logger.info("Updated donor on transaction %s", donation_id)

        change = await self._ledger.record(
            old_email=old_email,
            old_name=old_name,
            new_email=donor_email,
            new_name=donor_name,
            change_type=CHANGE_TRANSACTION_UPDATE,
            affected_transaction_count=1,
            organization_id=row.organization_id,
            notes=notes or f"Transaction {donation_id} donor info updated",
            **self._audit_fields(),
        )
        return TransactionUpdate(CanonicalDonation.from_primary(row), change.id if change else None)

    @staticmethod
    def _ref_condition(ref: DonorRef):
        email = (ref.email or "").strip() or None
        name = (ref.name or "").strip() or None
        if email and name:
            return (Donation.donor_email == email) & (Donation.donor_name == name)
        if email:
            return (Donation.donor_email == email) & Donation.donor_name.is_(None)
        if name:
            return Donation.donor_email.is_(None) & (Donation.donor_name == name)
        return None

    async def merge_donors(
        self,
        donors_to_merge: list[DonorRef],
        primary: DonorRef,
        notes: Optional[str] = None,
    ) -> MergeResult:
        """Collapse several donors into one identity.

        The merged email keeps every distinct address involved, comma separated,
        so no contact address is dropped.
        """
        if len(donors_to_merge) < 2:
            raise BadRequestError("At least 2 donors are required to merge")
        primary_name = (primary.name or "").strip()
        if not primary_name:
            raise BadRequestError("Primary donor must have a name")

        emails: list[str] = []
        seen: set[str] = set()
        for ref in [*donors_to_merge, primary]:
            for email in _split_list(ref.email):
                if email.lower() not in seen:
                    seen.add(email.lower())
                    emails.append(email)
        merged_email = ",".join(emails) or None

        conditions = [(ref, self._ref_condition(ref)) for ref in donors_to_merge]
        conditions = [(ref, cond) for ref, cond in conditions if cond is not None]
        if not conditions:
            raise BadRequestError("No valid donor identifiers provided")

        per_donor = [(ref, await self._donations.ids_matching(cond)) for ref, cond in conditions]

        combined = or_(*(cond for _, cond in conditions))
        total, *_ = await self._donations.identity_summary(combined)
        if total == 0:
            raise NotFoundError("Donations for the specified donors")

        updated = await self._donations.rewrite_identity(combined, email=merged_email, name=primary_name)
        await self._session.commit()
        logger.info("Merged %d donors into %s (%d transactions)", len(conditions), merged_email or primary_name, updated)

        change_ids = []
        for ref, ids in per_donor:
            if not ids:
                continue
            change = await self._ledger.record(
                old_email=(ref.email or "").strip() or None,
                old_name=(ref.name or "").strip() or None,
                new_email=merged_email,
                new_name=primary_name,
                change_type=CHANGE_MERGE,
                affected_transaction_count=len(ids),
                donation_ids=",".join(str(i) for i in ids),
                notes=notes or f"Merged into {primary_name}",
                **self._audit_fields(),
            )
            if change is not None:
                change_ids.append(change.id)

        identifier = donor_identifier(merged_email, primary_name)
        merged = (await self.get_donor(identifier)).donor
        merged.name = primary_name
        return MergeResult(merged, updated, change_ids)

    async def revert_change(self, change_id: int, notes: Optional[str] = None) -> IdentityChange:
        change = await self._ledger.get(change_id)
        if change.is_reverted:
            raise ConflictError("This change has already been reverted")

        if change.change_type == CHANGE_TRANSACTION_UPDATE:
            # No row id is stored for single-transaction edits: pick the row that
            # carries the new identity and was touched around the change time.
            changed_at = change.changed_at
            condition = (
                DonationRepository.match_pair(change.new_email, change.new_name)
                & (Donation.updated_at >= changed_at - TRANSACTION_REVERT_WINDOW)
                & (Donation.updated_at <= changed_at + TRANSACTION_REVERT_WINDOW)
            )
            row_id = await self._donations.first_id(condition, order_by=Donation.updated_at.desc())
            affected = 0
            if row_id is not None:
                affected = await self._donations.rewrite_identity(
                    Donation.id == row_id, email=change.old_email, name=change.old_name
                )
        elif change.change_type == CHANGE_MERGE:
            # Every merge row shares the merged identity; only this donor's rows go back.
            ids = _parse_ids(change.donation_ids)
            if not ids:
                raise BadRequestError("This merge did not record its donations and cannot be reverted")
            condition = Donation.id.in_(ids) & DonationRepository.match_pair(change.new_email, change.new_name)
            affected = await self._donations.rewrite_identity(
                condition, email=change.old_email, name=change.old_name
            )
        else:
            if change.new_email:
                condition = DonationRepository.match_email(change.new_email)
            elif change.new_name:
                condition = DonationRepository.match_anonymous_name(change.new_name)
            else:
                condition = DonationRepository.match_pair(None, None)
            # Columns the change left alone keep their per-row values.
            affected = await self._donations.rewrite_identity(
                condition,
                email=change.old_email,
                name=change.old_name,
                set_email=change.old_email != change.new_email,
                set_name=change.old_name != change.new_name,
            )

        if not await self._ledger.mark_reverted(change.id):
            await self._session.rollback()
            raise ConflictError("This change has already been reverted")
        await self._session.commit()
        logger.info("Reverted donor change #%s on %d transaction(s)", change.id, affected)

        compensating = await self._ledger.record(
            old_email=change.new_email,
            old_name=change.new_name,
            new_email=change.old_email,
            new_name=change.old_name,
            change_type=CHANGE_UPDATE,
            affected_transaction_count=affected,
            organization_id=change.organization_id,
            notes=notes or f"Reverted change #{change.id}",
            **self._audit_fields(),
        )
        return IdentityChange(
            affected,
            change.new_email,
            change.new_name,
            change.old_email,
            change.old_name,
            change_id=compensating.id if compensating else None,
            reverted_change_id=change.id,
        )

    async def delete_change_record(self, change_id: int) -> DonorChange:
        change = await self._ledger.delete(change_id)
        await self._session.commit()
        return change
