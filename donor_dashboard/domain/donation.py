"""SQLAlchemy ORM models for the two physical donation sources.

``donations`` is the primary ledger written by the kiosk pipeline.
``receipt_log`` is the older delivery-confirmation table; it is read-only
from this service's point of view and never rewritten by donor edits.
"""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import Optional

from sqlalchemy import Boolean, DateTime, Integer, Numeric, String
from sqlalchemy.orm import Mapped, mapped_column

from donor_dashboard.db.base import Base
from donor_dashboard.domain.mixins import OrganizationMixin, TimestampMixin, _now


class Donation(Base, OrganizationMixin, TimestampMixin):
    __tablename__ = "donations"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    amount: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False)
    currency: Mapped[str] = mapped_column(String(3), default="USD", nullable=False)

    donor_name: Mapped[Optional[str]] = mapped_column(String(255), index=True, nullable=True)
    donor_email: Mapped[Optional[str]] = mapped_column(String(255), index=True, nullable=True)

    payment_id: Mapped[Optional[str]] = mapped_column(String(100), index=True, nullable=True)
    square_order_id: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    # "COMPLETED" | "PENDING" | "FAILED" | ...
    payment_status: Mapped[str] = mapped_column(String(50), default="COMPLETED", nullable=False)

    receipt_sent: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    is_recurring: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    is_custom_amount: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    catalog_item_id: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    donation_type: Mapped[Optional[str]] = mapped_column(String(50), default="one_time", nullable=True)
    location_id: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)


class ReceiptLog(Base, OrganizationMixin):
    __tablename__ = "receipt_log"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    transaction_id: Mapped[Optional[str]] = mapped_column(String(100), index=True, nullable=True)
    amount: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False)
    donor_email: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    # "sent" | "failed" | "pending"
    delivery_status: Mapped[str] = mapped_column(String(20), default="sent", nullable=False)
    requested_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_now, nullable=False, index=True
    )
