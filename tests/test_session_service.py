"""
Tests for scope resolution, impersonation lookup and the connection bootstrap.
"""

import pytest
from sqlalchemy import select

from donor_dashboard.core.exceptions import ForbiddenError, NotFoundError
from donor_dashboard.core.security import DashboardSession
from donor_dashboard.domain import Connection
from donor_dashboard.services.session import SessionService

from conftest import SUPER_ADMIN

pytestmark = pytest.mark.asyncio


def _session(organization_id="org-1", merchant_id="merchant-1", **kw) -> DashboardSession:
    return DashboardSession(organization_id=organization_id, merchant_id=merchant_id, **kw)


class TestResolveScope:
    async def test_scope_covers_every_organization_of_the_merchant(self, db, seed, authority):
        scope = await SessionService(db, authority).resolve_scope(_session())

        assert scope.organization_id == "org-1"
        assert scope.merchant_id == "merchant-1"
        assert scope.organization_ids == ["org-1", "org-2"]

    async def test_inactive_organizations_are_left_out(self, db, seed, authority):
        await seed.tenant("org-3", "merchant-1", "Closed Campus", active=False)

        scope = await SessionService(db, authority).resolve_scope(_session())
        assert "org-3" not in scope.organization_ids

    async def test_unknown_organization_is_not_found(self, db, seed, authority):
        with pytest.raises(NotFoundError):
            await SessionService(db, authority).resolve_scope(_session("org-404", "merchant-404"))

    async def test_impersonated_scope_follows_target_merchant(self, db, seed, authority):
        admin = _session("org-9", "merchant-2", email=SUPER_ADMIN, is_super_admin=True)
        token = await SessionService(db, authority).impersonate_organization(admin, "org-2")

        scope = await SessionService(db, authority).resolve_scope(authority.verify_session(token))
        assert scope.organization_id == "org-2"
        assert scope.merchant_id == "merchant-1"
        assert "org-9" not in scope.organization_ids


class TestImpersonate:
    async def test_requires_super_admin(self, db, seed, authority):
        with pytest.raises(ForbiddenError):
            await SessionService(db, authority).impersonate_organization(_session(), "org-2")

    async def test_unknown_target_is_not_found(self, db, seed, authority):
        admin = _session(email=SUPER_ADMIN, is_super_admin=True)
        with pytest.raises(NotFoundError):
            await SessionService(db, authority).impersonate_organization(admin, "org-404")

    async def test_end_impersonation_requires_super_admin(self, db, authority):
        with pytest.raises(ForbiddenError):
            SessionService(db, authority).end_impersonation(_session())


class TestConnectMerchant:
    async def test_creates_organization_and_connection(self, db, authority):
        service = SessionService(db, authority)
        token = await service.connect_merchant(
            "org-new", "merchant-new", "access-1",
            location_id="loc-9", location_name="Front Door", merchant_name="New Shul",
        )
        await db.commit()

        session = authority.verify_session(token)
        assert session.organization_id == "org-new"
        assert session.merchant_name == "New Shul"

        scope = await service.resolve_scope(session)
        assert scope.organization_ids == ["org-new"]
        assert await service.merchant_organizations(scope) == [{"id": "org-new", "name": "New Shul"}]

    async def test_reconnect_updates_existing_connection(self, db, authority):
        service = SessionService(db, authority)
        await service.connect_merchant("org-new", "merchant-new", "access-1", location_id="loc-9")
        await service.connect_merchant("org-new", "merchant-new", "access-2", location_id="loc-9")
        await db.commit()

        rows = (await db.execute(select(Connection).where(Connection.organization_id == "org-new"))).scalars().all()
        assert len(rows) == 1
        assert rows[0].access_token == "access-2"


class TestOrganizations:
    async def test_merchant_organizations_in_scope_order(self, db, seed, authority, scope):
        organizations = await SessionService(db, authority).merchant_organizations(scope)
        assert organizations == [
            {"id": "org-1", "name": "Main Street Shul"},
            {"id": "org-2", "name": "Second Campus"},
        ]

    async def test_admin_listing_includes_totals(self, db, seed, authority):
        await seed.donation(40, "org-1", donor_email="a@x.com")
        await seed.donation(60, "org-1", donor_email="b@x.com")
        await seed.donation(5, "org-2", donor_email="a@x.com", payment_status="FAILED")

        rows = {r["organization_id"]: r for r in await SessionService(db, authority).all_organizations()}

        assert set(rows) == {"org-1", "org-2", "org-9"}
        assert rows["org-1"]["total_donations"] == 2
        assert float(rows["org-1"]["total_amount"]) == 100.0
        assert rows["org-1"]["unique_donors"] == 2
        assert rows["org-2"]["total_donations"] == 0
