"""users table (owned by the web app; read-only here)."""

import uuid
from typing import Optional

from sqlalchemy import Boolean, ForeignKey, Text, Uuid, text
from sqlalchemy.orm import Mapped, mapped_column

from carnivalsync.core.database import Base, TimestampMixin


class User(TimestampMixin, Base):
    __tablename__ = "users"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    email: Mapped[str] = mapped_column(Text, unique=True, nullable=False)
    first_name: Mapped[str] = mapped_column(Text, nullable=False, server_default=text("''"))
    last_name: Mapped[str] = mapped_column(Text, nullable=False, server_default=text("''"))
    phone_number: Mapped[Optional[str]] = mapped_column(Text)
    club_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        Uuid, ForeignKey("clubs.id", ondelete="SET NULL")
    )
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, server_default=text("true"))
    is_admin: Mapped[bool] = mapped_column(Boolean, nullable=False, server_default=text("false"))

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}".strip()
