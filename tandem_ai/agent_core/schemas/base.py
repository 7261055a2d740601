"""Pydantic base schema shared by every agent_core model."""

from __future__ import annotations

from datetime import datetime, timezone

from pydantic import BaseModel, ConfigDict


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


class BaseSchema(BaseModel):
    """
    Base Pydantic model for traces, sessions and option objects.

    - ``populate_by_name=True``: fields may be set by alias or by name.
    - ``extra="forbid"``: unknown keys in persisted JSON are rejected instead of
      silently dropped, so a snapshot from an incompatible version fails loudly.
    """

    model_config = ConfigDict(
        populate_by_name=True,
        extra="forbid",
    )
