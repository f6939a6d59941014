"""Generic async repository with organization-scope isolation."""

from __future__ import annotations

from collections.abc import Sequence
from typing import Any, Generic, TypeVar

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from donor_dashboard.db.base import Base

ModelT = TypeVar("ModelT", bound=Base)


class BaseRepository(Generic[ModelT]):
    """Generic read repository. All queries are filtered by organization scope.

    A merchant may own several organizations, so the scope is a set of
    organization ids rather than a single tenant key.
    """

    model: type[ModelT]

    def __init__(self, session: AsyncSession, organization_ids: Sequence[str]):
        self._session = session
        self._organization_ids = list(organization_ids)

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _base_query(self):
        """Return a SELECT filtered to the organizations in scope.

        Bulk UPDATEs skip session synchronization, so loaded rows are always
        refreshed from the database.
        """
        return (
            select(self.model)
            .where(self.model.organization_id.in_(self._organization_ids))
            .execution_options(populate_existing=True)
        )

    def _scoped(self, q):
        return q.where(self.model.organization_id.in_(self._organization_ids))

    # ------------------------------------------------------------------
    # Read
    # ------------------------------------------------------------------

    async def get_by_id(self, entity_id: Any) -> ModelT | None:
        result = await self._session.execute(
            self._base_query().where(self.model.id == entity_id)
        )
        return result.scalars().first()

    async def count(self, *conditions) -> int:
        q = self._base_query().where(*conditions)
        count_q = select(func.count()).select_from(q.subquery())
        return (await self._session.execute(count_q)).scalar_one()

    async def find(self, *conditions, order_by=None) -> list[ModelT]:
        q = self._base_query().where(*conditions)
        if order_by is not None:
            q = q.order_by(order_by)
        items = (await self._session.execute(q)).scalars().all()
        return list(items)
