"""
HTTP-level tests for the dashboard API: authentication, impersonation,
donor edits through the routes, and error envelopes.
"""

import httpx
import pytest

from donor_dashboard.main import create_app

from conftest import SUPER_ADMIN

pytestmark = pytest.mark.asyncio

API = "/api/dashboard"


@pytest.fixture
async def client(settings, session_factory):
    app = create_app(settings, session_factory)
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as c:
        yield c


@pytest.fixture
def merchant_headers(authority) -> dict:
    token = authority.create_session("org-1", "merchant-1", "Main Street Shul", "owner@shul.test")
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def admin_headers(authority) -> dict:
    token = authority.create_session("org-9", "merchant-2", "Someone Else", SUPER_ADMIN)
    return {"Authorization": f"Bearer {token}"}


def _cookie_token(response: httpx.Response, name: str = "dashboard_session") -> str:
    header = response.headers["set-cookie"]
    assert header.startswith(f"{name}=")
    return header.split(";", 1)[0].split("=", 1)[1]


class TestAuthentication:
    async def test_health_is_public(self, client):
        resp = await client.get("/health")
        assert resp.status_code == 200
        assert resp.json()["status"] == "ok"

    async def test_session_without_token(self, client):
        resp = await client.get(f"{API}/auth/session")
        assert resp.status_code == 401
        assert resp.json() == {"authenticated": False}

    async def test_data_routes_require_a_session(self, client, seed):
        resp = await client.get(f"{API}/donations")
        assert resp.status_code == 401
        assert resp.json()["error"]["code"] == "UNAUTHORIZED"

    async def test_garbage_token_is_unauthenticated(self, client, seed):
        resp = await client.get(f"{API}/donations", headers={"Authorization": "Bearer not-a-jwt"})
        assert resp.status_code == 401

    async def test_session_introspection(self, client, merchant_headers):
        resp = await client.get(f"{API}/auth/session", headers=merchant_headers)

        body = resp.json()
        assert body["authenticated"] is True
        assert body["organization_id"] == "org-1"
        assert body["is_super_admin"] is False
        assert body["impersonating"] is None

    async def test_logout_clears_cookie(self, client):
        resp = await client.post(f"{API}/auth/logout")
        assert resp.status_code == 200
        assert 'dashboard_session=""' in resp.headers["set-cookie"]


class TestAdmin:
    async def test_organizations_listing_is_admin_only(self, client, seed, merchant_headers):
        resp = await client.get(f"{API}/admin/organizations", headers=merchant_headers)
        assert resp.status_code == 403
        assert resp.json()["error"]["code"] == "FORBIDDEN"

    async def test_admin_sees_every_tenant(self, client, seed, admin_headers):
        resp = await client.get(f"{API}/admin/organizations", headers=admin_headers)

        assert resp.status_code == 200
        assert resp.json()["total_count"] == 3

    async def test_impersonation_round_trip(self, client, seed, admin_headers):
        resp = await client.post(f"{API}/admin/impersonate", json={"organization_id": "org-2"}, headers=admin_headers)
        assert resp.status_code == 200
        impersonation = {"Authorization": f"Bearer {_cookie_token(resp)}"}
        client.cookies.clear()

        session = (await client.get(f"{API}/auth/session", headers=impersonation)).json()
        assert session["organization_id"] == "org-2"
        assert session["impersonating"] == "org-2"

        organizations = (await client.get(f"{API}/organizations", headers=impersonation)).json()
        assert [o["id"] for o in organizations["organizations"]] == ["org-1", "org-2"]

        resp = await client.delete(f"{API}/admin/impersonate", headers=impersonation)
        assert resp.status_code == 200
        restored = {"Authorization": f"Bearer {_cookie_token(resp)}"}
        client.cookies.clear()

        session = (await client.get(f"{API}/auth/session", headers=restored)).json()
        assert session["organization_id"] == "org-9"
        assert session["impersonating"] is None
        assert session["is_super_admin"] is True

    async def test_merchant_cannot_impersonate(self, client, seed, merchant_headers):
        resp = await client.post(f"{API}/admin/impersonate", json={"organization_id": "org-9"}, headers=merchant_headers)
        assert resp.status_code == 403

    async def test_impersonating_unknown_organization(self, client, seed, admin_headers):
        resp = await client.post(f"{API}/admin/impersonate", json={"organization_id": "org-404"}, headers=admin_headers)
        assert resp.status_code == 404


class TestDonations:
    async def test_list_with_pagination_and_statistics(self, client, seed, merchant_headers):
        await seed.donation(10, donor_email="a@x.com")
        await seed.donation(30, "org-2", donor_email="b@x.com")
        await seed.legacy(5, transaction_id="legacy-1", donor_email="c@x.com")

        resp = await client.get(f"{API}/donations", params={"limit": 2, "sort_by": "amount"}, headers=merchant_headers)

        body = resp.json()
        assert resp.status_code == 200
        assert [d["amount"] for d in body["donations"]] == ["30.00", "10.00"]
        assert body["pagination"]["total_count"] == 3
        assert body["pagination"]["has_next"] is True
        assert body["statistics"]["total_donations"] == 3
        assert body["statistics"]["total_amount"] == "45.00"

    async def test_unknown_donation_is_not_found(self, client, seed, merchant_headers):
        resp = await client.get(f"{API}/donations/pay-missing", headers=merchant_headers)
        assert resp.status_code == 404
        assert resp.json()["error"]["code"] == "NOT_FOUND"

    async def test_csv_export(self, client, seed, merchant_headers):
        await seed.donation(10, donor_email="a@x.com", payment_id="pay-a")

        resp = await client.get(f"{API}/export", params={"format": "csv"}, headers=merchant_headers)

        assert resp.status_code == 200
        assert resp.headers["content-type"].startswith("text/csv")
        assert 'filename="donations-all-to-now.csv"' in resp.headers["content-disposition"]
        assert "pay-a" in resp.text

    async def test_json_export(self, client, seed, merchant_headers):
        await seed.donation(10, donor_email="a@x.com", payment_id="pay-a")

        body = (await client.get(f"{API}/export", params={"format": "json"}, headers=merchant_headers)).json()
        assert body["total_count"] == 1
        assert body["donations"][0]["payment_id"] == "pay-a"

    async def test_export_rejects_unknown_format(self, client, seed, merchant_headers):
        resp = await client.get(f"{API}/export", params={"format": "xml"}, headers=merchant_headers)
        assert resp.status_code == 422

    async def test_reassign_single_transaction(self, client, seed, merchant_headers):
        row = await seed.donation(10, donor_email="wrong@x.com", donor_name="Wrong")

        resp = await client.patch(
            f"{API}/donations/{row.payment_id}/donor",
            json={"donor_email": "right@x.com", "donor_name": "Right"},
            headers=merchant_headers,
        )

        body = resp.json()
        assert resp.status_code == 200
        assert body["donation"]["donor_email"] == "right@x.com"
        assert body["change_id"] is not None


class TestDonors:
    async def test_update_and_revert(self, client, seed, merchant_headers):
        await seed.donation(20, donor_email="a@x.com", donor_name="Old Name")
        await seed.donation(30, donor_email="a@x.com", donor_name="Old Name")

        resp = await client.patch(f"{API}/donors/a@x.com", json={"new_name": "New Name"}, headers=merchant_headers)
        change = resp.json()
        assert resp.status_code == 200
        assert change["affected_count"] == 2
        assert change["new_name"] == "New Name"

        donor = (await client.get(f"{API}/donors/a@x.com", headers=merchant_headers)).json()["donor"]
        assert donor["donor_name"] == "New Name"

        resp = await client.post(f"{API}/donors/changes/{change['change_id']}/revert", headers=merchant_headers)
        assert resp.status_code == 200
        assert resp.json()["reverted_change_id"] == change["change_id"]

        resp = await client.post(f"{API}/donors/changes/{change['change_id']}/revert", headers=merchant_headers)
        assert resp.status_code == 409
        assert resp.json()["error"]["code"] == "CONFLICT"

        history = (await client.get(f"{API}/donors/a@x.com/history", headers=merchant_headers)).json()
        assert len(history["history"]) == 2

    async def test_update_requires_a_field(self, client, seed, merchant_headers):
        await seed.donation(20, donor_email="a@x.com")

        resp = await client.patch(f"{API}/donors/a@x.com", json={}, headers=merchant_headers)
        assert resp.status_code == 400
        assert resp.json()["error"]["code"] == "BAD_REQUEST"

    async def test_duplicates_is_not_a_donor_identifier(self, client, seed, merchant_headers):
        await seed.donation(20, donor_email="a@x.com", donor_name="Same Person")
        await seed.donation(20, donor_email="A@X.com", donor_name="Same Person")

        resp = await client.get(f"{API}/donors/duplicates", headers=merchant_headers)

        body = resp.json()
        assert resp.status_code == 200
        assert body["total_groups"] == 1
        assert body["duplicate_groups"][0]["type"] == "same_email"

    async def test_unknown_donor_is_not_found(self, client, seed, merchant_headers):
        resp = await client.get(f"{API}/donors/nobody@x.com", headers=merchant_headers)
        assert resp.status_code == 404

    async def test_merge_needs_two_donors(self, client, seed, merchant_headers):
        resp = await client.post(
            f"{API}/donors/merge",
            json={"donors_to_merge": [{"email": "a@x.com"}], "primary_donor": {"email": "a@x.com", "name": "A"}},
            headers=merchant_headers,
        )
        assert resp.status_code == 400


class TestReports:
    async def test_unknown_chart_type(self, client, seed, merchant_headers):
        resp = await client.get(f"{API}/charts", params={"type": "bogus"}, headers=merchant_headers)
        assert resp.status_code == 400
        assert resp.json()["error"]["code"] == "BAD_REQUEST"

    async def test_stats_shape(self, client, seed, merchant_headers):
        await seed.donation(10, donor_email="a@x.com")

        body = (await client.get(f"{API}/stats", params={"period": "month"}, headers=merchant_headers)).json()
        assert body["period"] == "month"
        assert body["stats"]["total_donations"] == 1
        assert set(body["changes"]) == {"amount_change", "count_change"}

    async def test_setup_donor_changes_is_idempotent(self, client, seed, merchant_headers):
        for _ in range(2):
            resp = await client.post(f"{API}/setup/donor-changes", headers=merchant_headers)
            assert resp.status_code == 200
            assert resp.json()["success"] is True
