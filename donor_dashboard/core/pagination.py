"""Pagination helpers for list endpoints."""


import math

from fastapi import Query
from pydantic import BaseModel


class PaginationParams:
    """FastAPI dependency for `?page=1&limit=50&sort_by=created_at&sort_order=desc`.

    ``sort_by`` is deliberately unconstrained here: each service validates it
    against its own columns and falls back to its default.
    """

    def __init__(
        self,
        page: int = Query(default=1, ge=1, description="Page number (1-based)"),
        limit: int = Query(default=50, ge=1, le=500, description="Items per page"),
        sort_by: str | None = Query(default=None, description="Sort field"),
        sort_order: str = Query(default="desc", description="asc or desc"),
    ):
        self.page = page
        self.limit = limit
        self.sort_by = sort_by
        self.sort_order = sort_order

    @property
    def offset(self) -> int:
        return (self.page - 1) * self.limit

    @property
    def descending(self) -> bool:
        return self.sort_order.lower() != "asc"


class PageMeta(BaseModel):
    page: int
    limit: int
    total_count: int
    total_pages: int
    has_next: bool
    has_prev: bool


def page_meta(total: int, page: int, limit: int) -> PageMeta:
    pages = math.ceil(total / limit) if limit else 1
    return PageMeta(
        page=page,
        limit=limit,
        total_count=total,
        total_pages=pages,
        has_next=page < pages,
        has_prev=page > 1,
    )
