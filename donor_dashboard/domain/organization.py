"""SQLAlchemy ORM models for tenants and their payment-provider connections."""

from __future__ import annotations

import uuid
from datetime import datetime
from typing import Optional

from sqlalchemy import Boolean, DateTime, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from donor_dashboard.db.base import Base
from donor_dashboard.domain.mixins import OrganizationMixin, TimestampMixin


class Organization(Base, TimestampMixin):
    """A tenant. One merchant may own several organizations."""

    __tablename__ = "organizations"

    id: Mapped[str] = mapped_column(String(100), primary_key=True)
    name: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    merchant_id: Mapped[str] = mapped_column(String(100), nullable=False, index=True)
    active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)


class Connection(Base, OrganizationMixin, TimestampMixin):
    """Binds an organization to a merchant's provider credentials and a kiosk location."""

    __tablename__ = "square_connections"
    __table_args__ = (
        UniqueConstraint("organization_id", "merchant_id", "location_id", name="uq_connection_route"),
    )

    id: Mapped[str] = mapped_column(
        String(36), primary_key=True, default=lambda: str(uuid.uuid4())
    )
    merchant_id: Mapped[str] = mapped_column(String(100), nullable=False, index=True)
    location_id: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    location_name: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)

    # Opaque secrets; never returned by the API
    access_token: Mapped[str] = mapped_column(Text, nullable=False)
    refresh_token: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    expires_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
