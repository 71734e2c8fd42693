"""Database infrastructure for the statement kernel (read side only)."""

from statement_kernel.db.base import Base
from statement_kernel.db.engine import (
    create_tables,
    get_engine,
    get_session,
    init_engine_from_url,
    read_session,
    reset_engine,
)

__all__ = [
    "Base",
    "create_tables",
    "get_engine",
    "get_session",
    "init_engine_from_url",
    "read_session",
    "reset_engine",
]
