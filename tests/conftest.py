"""
Pytest fixtures for donor dashboard tests.

Every test gets a fresh in-memory SQLite database (aiosqlite on a StaticPool,
so all sessions share one connection) with the full schema created.
"""

from __future__ import annotations

from datetime import timedelta
from decimal import Decimal

import pytest
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine
from sqlalchemy.pool import StaticPool

from donor_dashboard.core.config import Settings
from donor_dashboard.core.response import utcnow
from donor_dashboard.core.security import SessionAuthority
from donor_dashboard.db.base import Base, build_session_factory
from donor_dashboard.domain import Connection, Donation, Organization, ReceiptLog
from donor_dashboard.services.session import Scope

SUPER_ADMIN = "admin@kiosk.test"


@pytest.fixture
def settings() -> Settings:
    return Settings(
        DATABASE_URL="sqlite+aiosqlite://",
        DASHBOARD_JWT_SECRET="test-secret",
        SUPER_ADMIN_EMAILS=SUPER_ADMIN,
        app_env="test",
    )


@pytest.fixture
def authority(settings: Settings) -> SessionAuthority:
    return SessionAuthority(settings)


@pytest.fixture
async def engine():
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return build_session_factory(engine)


@pytest.fixture
async def db(session_factory) -> AsyncSession:
    async with session_factory() as session:
        yield session


class Seeder:
    """Writes fixture rows through the ORM and commits on demand."""

    def __init__(self, session: AsyncSession):
        self._session = session
        self._payment_seq = 0

    async def tenant(
        self,
        organization_id: str,
        merchant_id: str,
        name: str | None = None,
        location_id: str | None = None,
        location_name: str | None = None,
        active: bool = True,
    ) -> Organization:
        organization = Organization(id=organization_id, merchant_id=merchant_id, name=name, active=active)
        self._session.add(organization)
        self._session.add(
            Connection(
                organization_id=organization_id,
                merchant_id=merchant_id,
                access_token=f"token-{organization_id}",
                location_id=location_id,
                location_name=location_name,
            )
        )
        await self._session.commit()
        return organization

    async def donation(self, amount, organization_id: str = "org-1", **fields) -> Donation:
        self._payment_seq += 1
        fields.setdefault("payment_id", f"pay-{self._payment_seq}")
        fields.setdefault("created_at", utcnow() - timedelta(days=1))
        donation = Donation(amount=Decimal(str(amount)), organization_id=organization_id, **fields)
        self._session.add(donation)
        await self._session.commit()
        return donation

    async def legacy(self, amount, organization_id: str = "org-1", **fields) -> ReceiptLog:
        fields.setdefault("requested_at", utcnow() - timedelta(days=1))
        row = ReceiptLog(amount=Decimal(str(amount)), organization_id=organization_id, **fields)
        self._session.add(row)
        await self._session.commit()
        return row


@pytest.fixture
async def seed(db) -> Seeder:
    """Two organizations under merchant-1 plus an unrelated tenant under merchant-2."""
    seeder = Seeder(db)
    await seeder.tenant("org-1", "merchant-1", "Main Street Shul", "loc-1", "Lobby Kiosk")
    await seeder.tenant("org-2", "merchant-1", "Second Campus", "loc-2", "Hall Kiosk")
    await seeder.tenant("org-9", "merchant-2", "Someone Else")
    return seeder


@pytest.fixture
def scope() -> Scope:
    return Scope("org-1", "merchant-1", ["org-1", "org-2"])

