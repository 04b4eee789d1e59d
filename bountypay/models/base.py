"""Declarative base and mixins for ORM models."""
from __future__ import annotations

import enum
from datetime import datetime

from sqlalchemy import DateTime, func
from sqlalchemy import Enum as SAEnum
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


class Base(DeclarativeBase):
    """Base class for all ORM models."""


class TimestampMixin:
    """Mixin adding created/updated timestamp columns."""

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False
    )


def value_enum(enum_cls: type[enum.Enum], name: str) -> SAEnum:
    """Enum column type persisting member values (``"pending"``) rather than names."""
    return SAEnum(enum_cls, name=name, values_callable=lambda members: [member.value for member in members])


__all__ = ["Base", "TimestampMixin", "value_enum"]
