from __future__ import annotations

from datetime import datetime, timezone

from sqlalchemy import DateTime, func
from sqlmodel import Field, SQLModel


class TimestampMixin(SQLModel):
    """Row bookkeeping columns; the database fills both on insert."""

    created_at: datetime = Field(
        default=None,
        sa_type=DateTime(timezone=True),
        sa_column_kwargs={"nullable": False, "server_default": func.now()},
    )
    updated_at: datetime = Field(
        default=None,
        sa_type=DateTime(timezone=True),
        sa_column_kwargs={"nullable": False, "server_default": func.now(), "onupdate": func.now()},
    )

    def touch(self, moment: datetime) -> None:
        # Overrides onupdate with the operation's own clock.
        self.updated_at = moment


def utcnow() -> datetime:
    return datetime.now(timezone.utc)
