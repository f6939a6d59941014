"""Donor change log repository.

The change log is tenant-scoped through ``organization_id`` like the other
sources, but rows are also addressed directly by id for revert/delete.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any

from sqlalchemy import delete, or_, func, update

from donor_dashboard.domain.donor_change import DonorChange
from donor_dashboard.domain.mixins import _now
from donor_dashboard.repositories.base import BaseRepository


class DonorChangeRepository(BaseRepository[DonorChange]):
    model = DonorChange

    async def create(self, **kwargs: Any) -> DonorChange:
        instance = DonorChange(**kwargs)
        self._session.add(instance)
        await self._session.flush()  # populate id
        await self._session.refresh(instance)
        return instance

    async def mark_reverted(self, change_id: int, at: datetime | None = None) -> bool:
        """Flip ``is_reverted`` only if it is still false. False means someone got there first."""
        result = await self._session.execute(
            self._scoped(update(DonorChange))
            .where(DonorChange.id == change_id, DonorChange.is_reverted.is_(False))
            .values(is_reverted=True, reverted_at=at or _now())
            .execution_options(synchronize_session=False)
        )
        await self._session.flush()
        return (result.rowcount or 0) > 0

    async def for_email(self, email: str) -> list[DonorChange]:
        lowered = email.lower()
        return await self.find(
            or_(func.lower(DonorChange.old_email) == lowered, func.lower(DonorChange.new_email) == lowered),
            order_by=DonorChange.changed_at.desc(),
        )

    async def for_anonymous_name(self, name: str) -> list[DonorChange]:
        lowered = name.lower()
        return await self.find(
            or_(
                DonorChange.old_email.is_(None) & (func.lower(DonorChange.old_name) == lowered),
                DonorChange.new_email.is_(None) & (func.lower(DonorChange.new_name) == lowered),
            ),
            order_by=DonorChange.changed_at.desc(),
        )

    async def hard_delete(self, change_id: int) -> bool:
        result = await self._session.execute(
            self._scoped(delete(DonorChange))
            .where(DonorChange.id == change_id)
            .execution_options(synchronize_session=False)
        )
        await self._session.flush()
        return (result.rowcount or 0) > 0
