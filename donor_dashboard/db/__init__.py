"""Database package — async SQLAlchemy engine/session builders, Base."""
from donor_dashboard.db.base import (
    Base,
    build_engine,
    build_session_factory,
    get_db,
    get_session_factory,
)

__all__ = ["Base", "build_engine", "build_session_factory", "get_db", "get_session_factory"]
