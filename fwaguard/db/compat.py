"""
Column types shared by the incident tables.

PostgreSQL gets native UUID and JSONB columns; SQLite (the test database)
gets CHAR(32) and JSON. Both are built from SQLAlchemy's own generic types.
"""

from sqlalchemy import JSON, Uuid
from sqlalchemy.dialects import postgresql
from sqlalchemy.types import TypeEngine


def uuid_type() -> Uuid:
    return Uuid(as_uuid=True)


def json_type() -> TypeEngine:
    """JSONB where the dialect has it, so evidence refs and details stay indexable."""
    return JSON().with_variant(postgresql.JSONB(), "postgresql")
