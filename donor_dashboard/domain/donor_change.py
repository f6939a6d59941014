"""SQLAlchemy ORM model for the donor-identity change log."""

from __future__ import annotations

from datetime import datetime
from typing import Optional

from sqlalchemy import Boolean, DateTime, Integer, String, Text, func
from sqlalchemy.orm import Mapped, mapped_column

from donor_dashboard.db.base import Base
from donor_dashboard.domain.mixins import _now

CHANGE_UPDATE = "update"
CHANGE_MERGE = "merge"
CHANGE_TRANSACTION_UPDATE = "transaction_update"
CHANGE_TYPES = (CHANGE_UPDATE, CHANGE_MERGE, CHANGE_TRANSACTION_UPDATE)


class DonorChange(Base):
    """One row per identity mutation.

    Rows are append-only apart from the single ``active -> reverted``
    transition; a revert writes a new forward row instead of editing history.
    """

    __tablename__ = "donor_changes"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)

    old_email: Mapped[Optional[str]] = mapped_column(String(255), index=True, nullable=True)
    old_name: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    new_email: Mapped[Optional[str]] = mapped_column(String(255), index=True, nullable=True)
    new_name: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)

    change_type: Mapped[str] = mapped_column(String(30), default=CHANGE_UPDATE, nullable=False)
    affected_transaction_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    # comma separated donation ids; set on merge rows so each source donor reverts alone
    donation_ids: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    changed_by: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    admin_email: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    organization_id: Mapped[Optional[str]] = mapped_column(String(100), index=True, nullable=True)

    changed_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=_now,
        server_default=func.now(),
        nullable=False,
        index=True,
    )
    is_reverted: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    reverted_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
