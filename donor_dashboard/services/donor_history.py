"""Change history ledger for donor-identity mutations.

Audit writes are a side channel: ``record`` runs in its own session after the
donor-facing change is committed, and any failure there is logged and
swallowed. A missing ``donor_changes`` table degrades reads to an empty
history instead of an error.
"""

from __future__ import annotations

import logging
from typing import Optional

from sqlalchemy.exc import OperationalError, ProgrammingError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from donor_dashboard.core.exceptions import NotFoundError
from donor_dashboard.domain.donor_change import DonorChange
from donor_dashboard.repositories.donor_change import DonorChangeRepository
from donor_dashboard.services.donation_source import is_synthetic, synthetic_name
from donor_dashboard.services.session import Scope

logger = logging.getLogger(__name__)

MISSING_TABLE_MESSAGE = "Donor changes table not yet initialized"


class ChangeHistoryLedger:
    def __init__(
        self,
        session: AsyncSession,
        session_factory: async_sessionmaker[AsyncSession],
        scope: Scope,
    ):
        self._session = session
        self._session_factory = session_factory
        self._scope = scope
        self._repo = DonorChangeRepository(session, scope.organization_ids)

    async def record(self, **fields) -> Optional[DonorChange]:
        """Append one change row. Returns None if the write failed."""
        fields.setdefault("organization_id", self._scope.organization_id)
        try:
            async with self._session_factory() as audit_session:
                repo = DonorChangeRepository(audit_session, self._scope.organization_ids)
                change = await repo.create(**fields)
                await audit_session.commit()
                return change
        except SQLAlchemyError:
            logger.exception(
                "Failed to record donor change history (%s -> %s)",
                fields.get("old_email") or fields.get("old_name"),
                fields.get("new_email") or fields.get("new_name"),
            )
            return None

    async def get(self, change_id: int) -> DonorChange:
        change = await self._repo.get_by_id(change_id)
        if change is None:
            raise NotFoundError("Change record", str(change_id))
        return change

    async def mark_reverted(self, change_id: int) -> bool:
        return await self._repo.mark_reverted(change_id)

    async def history_for(self, identifier: str) -> tuple[list[DonorChange], Optional[str]]:
        """Changes touching a donor as either the old or new identity, newest first."""
        try:
            if is_synthetic(identifier):
                changes = await self._repo.for_anonymous_name(synthetic_name(identifier))
            else:
                changes = await self._repo.for_email(identifier)
        except (OperationalError, ProgrammingError):
            logger.warning("donor_changes table unavailable; returning empty history")
            await self._session.rollback()
            return [], MISSING_TABLE_MESSAGE
        return changes, None

    async def delete(self, change_id: int) -> DonorChange:
        change = await self.get(change_id)
        await self._repo.hard_delete(change_id)
        return change

    async def ensure_table(self) -> None:
        """Create ``donor_changes`` if it does not exist yet."""
        await self._session.run_sync(
            lambda sync_session: DonorChange.__table__.create(sync_session.connection(), checkfirst=True)
        )
