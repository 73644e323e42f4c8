"""SQLAlchemy ORM models — one file per table."""

from carnivalsync.models.carnival import Carnival
from carnivalsync.models.club import Club
from carnivalsync.models.sync_log import SyncLog
from carnivalsync.models.user import User

__all__ = [
    "Carnival",
    "Club",
    "SyncLog",
    "User",
]
