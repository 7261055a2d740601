from __future__ import annotations

"""SQLAlchemy ORM model for session persistence.

A session is stored as one row holding its full JSON snapshot. Table names
are prefixed with ``ta_`` to avoid collisions in shared databases.
"""

from datetime import datetime

from sqlalchemy import DateTime, String, Text
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


class Base(DeclarativeBase):
    """Declarative base for all ORM models."""


class SessionRow(Base):
    """Row model for ``ta_sessions``."""

    __tablename__ = "ta_sessions"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    payload: Mapped[str] = mapped_column(Text)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True))
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True))
