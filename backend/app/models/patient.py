from __future__ import annotations


from typing import Optional

from sqlmodel import Field

from app.models.base import TimestampMixin


class Patient(TimestampMixin, table=True):
    __tablename__ = "patients"

    id: Optional[int] = Field(default=None, primary_key=True)
    name: str = Field(max_length=200)
    phone: Optional[str] = Field(default=None, max_length=32, index=True)


class Service(TimestampMixin, table=True):
    """Bookable service type; its duration seeds new appointments."""

    __tablename__ = "services"

    id: Optional[int] = Field(default=None, primary_key=True)
    name: str = Field(max_length=150, unique=True)
    duration_minutes: int = Field(default=30)
