"""UserDAO — users table (read-only)."""

from carnivalsync.dao.base import BaseDAO
from carnivalsync.models.user import User


class UserDAO(BaseDAO[User]):
    model = User
