"""Platform settings key/value ORM model."""
from __future__ import annotations

import uuid

from sqlalchemy import String, Text
from sqlalchemy.orm import Mapped, mapped_column

from bountypay.models.base import Base, TimestampMixin


class PlatformSetting(TimestampMixin, Base):
    """Admin-editable configuration value such as ``platform_fee_percentage``."""

    __tablename__ = "platform_settings"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    setting_key: Mapped[str] = mapped_column(String(64), nullable=False, unique=True)
    setting_value: Mapped[str] = mapped_column(Text, nullable=False)
    description: Mapped[str | None] = mapped_column(String(255))


__all__ = ["PlatformSetting"]
