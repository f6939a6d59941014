"""
Tests for the canonical donation stream: union, de-duplication, filtering,
sorting, pagination and statistics.
"""

from datetime import date, timedelta

import pytest

from donor_dashboard.core.exceptions import NotFoundError
from donor_dashboard.core.response import utcnow
from donor_dashboard.repositories.donation import DonationFilters
from donor_dashboard.services.donation_source import (
    SOURCE_LEGACY,
    SOURCE_PRIMARY,
    DonationSourceAdapter,
    donor_identifier,
    is_synthetic,
    synthetic_name,
)


@pytest.fixture
async def mixed(seed):
    """Three completed primary rows, one pending, and a legacy log with a duplicate."""
    now = utcnow()
    await seed.donation(50, donor_email="a@x.com", donor_name="A Smith", payment_id="pay-a", created_at=now - timedelta(days=3))
    await seed.donation(20, donor_name="Jane Doe", payment_id="pay-b", created_at=now - timedelta(days=2))
    await seed.donation(100, "org-2", donor_email="c@x.com", donor_name="Cee", payment_id="pay-c",
                        is_recurring=True, created_at=now - timedelta(days=1))
    await seed.donation(999, donor_email="pending@x.com", payment_id="pay-p", payment_status="PENDING")

    await seed.legacy(50, transaction_id="pay-a", donor_email="a@x.com")  # same payment as a primary row
    await seed.legacy(30, transaction_id="legacy-1", donor_email="old@x.com", requested_at=now - timedelta(days=5))
    await seed.legacy(10, transaction_id=None, donor_email="nulltx@x.com", requested_at=now - timedelta(days=6))
    await seed.legacy(70, transaction_id="legacy-2", donor_email="failed@x.com", delivery_status="failed")
    await seed.legacy(15, "org-9", transaction_id="legacy-3", donor_email="elsewhere@x.com")
    return now


class TestIdentifiers:
    def test_email_wins(self):
        assert donor_identifier("a@x.com", "A Smith") == "a@x.com"

    def test_anonymous_donor_gets_synthetic_identifier(self):
        identifier = donor_identifier(None, "Jane Doe")
        assert identifier == "name_without_email_Jane Doe"
        assert is_synthetic(identifier)
        assert synthetic_name(identifier) == "Jane Doe"

    def test_no_identity(self):
        assert donor_identifier(None, None) is None


class TestUnion:
    async def test_union_is_complete_and_deduplicated(self, db, scope, mixed):
        page = await DonationSourceAdapter(db, scope).list_donations(DonationFilters())

        primary = [d for d in page.donations if d.source == SOURCE_PRIMARY]
        legacy = [d for d in page.donations if d.source == SOURCE_LEGACY]
        assert len(primary) == 3
        assert sorted(d.donor_email for d in legacy) == ["nulltx@x.com", "old@x.com"]
        assert page.total_count == len(primary) + len(legacy)

    async def test_legacy_rows_are_normalized(self, db, scope, mixed):
        rows = await DonationSourceAdapter(db, scope).stream()
        legacy = next(d for d in rows if d.payment_id == "legacy-1")

        assert legacy.payment_status == "COMPLETED"
        assert legacy.donor_name is None
        assert legacy.receipt_sent is True
        assert legacy.is_recurring is False
        assert legacy.donation_type == "one_time"

    async def test_other_merchants_are_invisible(self, db, scope, mixed):
        rows = await DonationSourceAdapter(db, scope).stream()
        assert all(d.organization_id in ("org-1", "org-2") for d in rows)

    async def test_organization_filter_outside_scope_is_empty(self, db, scope, mixed):
        rows = await DonationSourceAdapter(db, scope).stream(DonationFilters(organization_id="org-9"))
        assert rows == []

    async def test_name_filter_skips_legacy(self, db, scope, mixed):
        page = await DonationSourceAdapter(db, scope).list_donations(DonationFilters(donor_name="smith"))
        assert [d.payment_id for d in page.donations] == ["pay-a"]

    async def test_recurring_filter_skips_legacy(self, db, scope, mixed):
        page = await DonationSourceAdapter(db, scope).list_donations(DonationFilters(is_recurring=True))
        assert [d.payment_id for d in page.donations] == ["pay-c"]

    async def test_search_matches_both_sources(self, db, scope, mixed):
        page = await DonationSourceAdapter(db, scope).list_donations(DonationFilters(search="old@"))
        assert [d.payment_id for d in page.donations] == ["legacy-1"]

    async def test_date_range_is_inclusive_of_end_day(self, db, scope, mixed):
        day = (mixed - timedelta(days=2)).date()
        page = await DonationSourceAdapter(db, scope).list_donations(DonationFilters(start_date=day, end_date=day))
        assert [d.payment_id for d in page.donations] == ["pay-b"]

    async def test_amount_range(self, db, scope, mixed):
        page = await DonationSourceAdapter(db, scope).list_donations(DonationFilters(min_amount=25, max_amount=60))
        assert sorted(d.payment_id for d in page.donations) == ["legacy-1", "pay-a"]


class TestSortingAndPaging:
    async def test_default_is_newest_first(self, db, scope, mixed):
        page = await DonationSourceAdapter(db, scope).list_donations(DonationFilters())
        created = [d.created_at for d in page.donations]
        assert created == sorted(created, reverse=True)

    async def test_unknown_sort_key_falls_back_to_created_at(self, db, scope, mixed):
        adapter = DonationSourceAdapter(db, scope)
        fallback = await adapter.list_donations(DonationFilters(), sort_by="DROP TABLE")
        default = await adapter.list_donations(DonationFilters(), sort_by="created_at")
        assert [d.payment_id for d in fallback.donations] == [d.payment_id for d in default.donations]

    async def test_sort_by_amount_ascending(self, db, scope, mixed):
        page = await DonationSourceAdapter(db, scope).list_donations(DonationFilters(), sort_by="amount", descending=False)
        assert [d.amount for d in page.donations] == [10.0, 20.0, 30.0, 50.0, 100.0]

    async def test_missing_names_sort_lowest(self, db, scope, mixed):
        page = await DonationSourceAdapter(db, scope).list_donations(DonationFilters(), sort_by="donor_name", descending=False)
        names = [d.donor_name for d in page.donations]
        assert names[:2] == [None, None]
        assert names[2:] == ["A Smith", "Cee", "Jane Doe"]

    async def test_statistics_cover_all_pages(self, db, scope, mixed):
        page = await DonationSourceAdapter(db, scope).list_donations(DonationFilters(), page=2, limit=2)

        assert len(page.donations) == 2
        assert page.total_count == 5
        assert page.statistics.count == 5
        assert page.statistics.total_amount == pytest.approx(210.0)
        assert page.statistics.average_amount == pytest.approx(42.0)
        assert page.statistics.unique_donors == 5
        assert page.statistics.organizations == 2


class TestLookup:
    async def test_by_payment_id_and_numeric_id(self, db, scope, seed):
        row = await seed.donation(12, donor_email="z@x.com", payment_id="pay-z")
        adapter = DonationSourceAdapter(db, scope)

        assert (await adapter.get_donation("pay-z")).id == row.id
        assert (await adapter.get_donation(str(row.id))).payment_id == "pay-z"

    async def test_out_of_scope_donation_is_not_found(self, db, scope, seed):
        row = await seed.donation(12, "org-9", payment_id="pay-elsewhere")
        with pytest.raises(NotFoundError):
            await DonationSourceAdapter(db, scope).get_donation(str(row.id))

    async def test_email_lookup_is_case_insensitive_across_sources(self, db, scope, seed):
        await seed.donation(10, donor_email="Mixed@X.com", payment_id="pay-m")
        await seed.legacy(5, transaction_id="legacy-m", donor_email="mixed@x.com")

        rows = await DonationSourceAdapter(db, scope).for_email("MIXED@x.com")
        assert sorted(d.payment_id for d in rows) == ["legacy-m", "pay-m"]


def test_filters_report_what_was_applied():
    applied = DonationFilters(start_date=date(2024, 1, 1), search="smith").applied()
    assert applied["start_date"] == "2024-01-01"
    assert applied["search"] == "smith"
    assert applied["end_date"] is None
