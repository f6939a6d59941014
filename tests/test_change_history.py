"""
Tests for the change history ledger's degraded modes: a missing table and
failing audit writes.
"""

import pytest

from donor_dashboard.domain import DonorChange
from donor_dashboard.services.donation_source import DonationSourceAdapter
from donor_dashboard.services.donor import DonorIdentityResolver
from donor_dashboard.services.donor_history import MISSING_TABLE_MESSAGE, ChangeHistoryLedger

pytestmark = pytest.mark.asyncio


@pytest.fixture
async def without_change_table(engine):
    async with engine.begin() as conn:
        await conn.run_sync(DonorChange.__table__.drop)


@pytest.fixture
def ledger(db, session_factory, scope) -> ChangeHistoryLedger:
    return ChangeHistoryLedger(db, session_factory, scope)


class TestMissingTable:
    async def test_history_degrades_to_empty_with_message(self, ledger, seed, without_change_table):
        history, message = await ledger.history_for("someone@x.com")

        assert history == []
        assert message == MISSING_TABLE_MESSAGE

    async def test_audit_failure_does_not_fail_the_edit(self, db, ledger, scope, seed, without_change_table):
        row = await seed.donation(20, donor_email="old@x.com", donor_name="Old")
        resolver = DonorIdentityResolver(db, DonationSourceAdapter(db, scope), ledger)

        change = await resolver.update_donor("old@x.com", new_email="new@x.com")

        assert change.affected_count == 1
        assert change.change_id is None
        await db.refresh(row)
        assert row.donor_email == "new@x.com"

    async def test_setup_recreates_table(self, db, ledger, seed, without_change_table):
        await ledger.ensure_table()
        await db.commit()

        history, message = await ledger.history_for("someone@x.com")
        assert (history, message) == ([], None)

    async def test_setup_is_idempotent(self, db, ledger, seed):
        await ledger.ensure_table()
        await ledger.ensure_table()
        await db.commit()

        change = await ledger.record(old_email="a@x.com", new_email="b@x.com", change_type="update",
                                     affected_transaction_count=1)
        assert change.id is not None


class TestRecord:
    async def test_record_defaults_to_scope_organization(self, ledger, seed):
        change = await ledger.record(old_name="A", new_name="B", change_type="update", affected_transaction_count=3)

        assert change.organization_id == "org-1"
        assert change.is_reverted is False
        assert (await ledger.get(change.id)).new_name == "B"

    async def test_history_for_anonymous_name(self, ledger, seed):
        await ledger.record(old_name="Jane Doe", new_email="jane@x.com", new_name="Jane Doe", change_type="update")
        await ledger.record(old_email="x@x.com", old_name="Jane Doe", new_email="y@x.com", change_type="update")

        history, _ = await ledger.history_for("name_without_email_jane doe")
        assert len(history) == 1
