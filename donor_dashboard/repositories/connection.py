"""Organization / connection lookups.

These queries resolve *which* organizations a request may see, so unlike the
other repositories they are not themselves organization-scoped.
"""

from __future__ import annotations

from typing import Any

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from donor_dashboard.domain.donation import Donation
from donor_dashboard.domain.organization import Connection, Organization


class ConnectionRepository:
    def __init__(self, session: AsyncSession):
        self._session = session

    async def get_for_organization(self, organization_id: str) -> Connection | None:
        result = await self._session.execute(
            select(Connection)
            .where(Connection.organization_id == organization_id)
            .order_by(Connection.created_at)
            .limit(1)
        )
        return result.scalars().first()

    async def organization_ids_for_merchant(self, merchant_id: str) -> list[str]:
        """Every active organization reachable from ``merchant_id``, oldest first."""
        organizations = (
            await self._session.execute(
                select(Organization.id, Organization.active)
                .where(Organization.merchant_id == merchant_id)
                .order_by(Organization.created_at)
            )
        ).all()
        connected = (
            await self._session.execute(
                select(Connection.organization_id)
                .where(Connection.merchant_id == merchant_id)
                .order_by(Connection.created_at)
            )
        ).scalars()

        disabled = {org_id for org_id, active in organizations if not active}
        ids: list[str] = []
        for org_id in [org_id for org_id, active in organizations if active] + list(connected):
            if org_id not in ids and org_id not in disabled:
                ids.append(org_id)
        return ids

    async def organizations(self, organization_ids: list[str]) -> list[Organization]:
        result = await self._session.execute(
            select(Organization).where(Organization.id.in_(organization_ids)).order_by(Organization.created_at)
        )
        return list(result.scalars().all())

    async def locations(self, organization_ids: list[str]) -> dict[str, str | None]:
        """location_id -> location_name for every connection in scope."""
        result = await self._session.execute(
            select(Connection.location_id, Connection.location_name).where(
                Connection.organization_id.in_(organization_ids),
                Connection.location_id.is_not(None),
            )
        )
        return {loc: name for loc, name in result.all()}

    async def upsert(self, organization_id: str, merchant_id: str, **fields: Any) -> Connection:
        location_id = fields.get("location_id")
        result = await self._session.execute(
            select(Connection).where(
                Connection.organization_id == organization_id,
                Connection.merchant_id == merchant_id,
                Connection.location_id.is_not_distinct_from(location_id),
            )
        )
        connection = result.scalars().first()
        if connection is None:
            connection = Connection(organization_id=organization_id, merchant_id=merchant_id, **fields)
            self._session.add(connection)
        else:
            for key, value in fields.items():
                setattr(connection, key, value)
        await self._session.flush()
        return connection

    async def ensure_organization(self, organization_id: str, merchant_id: str, name: str | None) -> Organization:
        organization = await self._session.get(Organization, organization_id)
        if organization is None:
            organization = Organization(id=organization_id, merchant_id=merchant_id, name=name, active=True)
            self._session.add(organization)
            await self._session.flush()
        return organization

    async def summaries(self) -> list[dict]:
        """Per-connection donation totals across every tenant (super-admin view)."""
        q = (
            select(
                Connection.organization_id,
                Connection.merchant_id,
                func.count(func.distinct(Donation.id)).label("total_donations"),
                func.coalesce(func.sum(Donation.amount), 0).label("total_amount"),
                func.count(func.distinct(Donation.donor_email)).label("unique_donors"),
                func.max(Donation.created_at).label("last_donation_at"),
                func.min(Donation.created_at).label("first_donation_at"),
            )
            .select_from(Connection)
            .outerjoin(
                Donation,
                (Donation.organization_id == Connection.organization_id)
                & (Donation.payment_status == "COMPLETED"),
            )
            .group_by(Connection.organization_id, Connection.merchant_id)
            .order_by(func.coalesce(func.sum(Donation.amount), 0).desc())
        )
        return [dict(row._mapping) for row in (await self._session.execute(q)).all()]
