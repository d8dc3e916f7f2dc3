"""Declarative base and column types shared by all models."""

from __future__ import annotations

import sqlalchemy as sa
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import DeclarativeBase

# Portable across PostgreSQL (production) and SQLite (tests).
UUID_TYPE = sa.Uuid(as_uuid=True)
JSON_TYPE = sa.JSON().with_variant(JSONB(), "postgresql")


class Base(DeclarativeBase):
    pass
