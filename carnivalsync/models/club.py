"""clubs table (owned by the web app; read-only here)."""

import uuid
from typing import Optional

from sqlalchemy import Boolean, Text, Uuid, text
from sqlalchemy.orm import Mapped, mapped_column

from carnivalsync.core.database import Base, TimestampMixin
from carnivalsync.models.carnival import state_enum


class Club(TimestampMixin, Base):
    __tablename__ = "clubs"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    club_name: Mapped[str] = mapped_column(Text, unique=True, nullable=False)
    state: Mapped[Optional[str]] = mapped_column(state_enum)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, server_default=text("true"))
