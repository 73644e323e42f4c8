"""ClubDAO — clubs table (read-only)."""

from carnivalsync.dao.base import BaseDAO
from carnivalsync.models.club import Club


class ClubDAO(BaseDAO[Club]):
    model = Club
