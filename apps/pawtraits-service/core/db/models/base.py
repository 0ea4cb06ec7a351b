"""
Shared SQLAlchemy base and timestamp helper.
"""
from sqlalchemy.orm import declarative_base
from datetime import datetime, UTC

# JSONB needs a compiler when tests run against SQLite.
from .. import sqlite_compiler_shims  # noqa: F401


def now_utc():
    """Return an aware UTC datetime for default/updated timestamps."""
    return datetime.now(UTC)


Base = declarative_base()
