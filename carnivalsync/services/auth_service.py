"""AuthService: bearer-token identity for the ownership and sync routes.

Sign-in lives in the wider web app. Here we only check the HS256 access
tokens it hands out (``sub`` is the user id) and load the user behind them.
"""

import os
import uuid
from datetime import datetime, timedelta, timezone

from jose import JWTError, jwt
from sqlalchemy.ext.asyncio import AsyncSession

from carnivalsync.dao.user_dao import UserDAO
from carnivalsync.models.user import User
from carnivalsync.services import AuthenticationError, ForbiddenError

JWT_ALGORITHM = "HS256"
TOKEN_TTL = timedelta(minutes=30)
JWT_SECRET_ENV = "CARNIVALSYNC_JWT_SECRET"


def _secret() -> str:
    secret = os.environ.get(JWT_SECRET_ENV, "")
    if not secret:
        raise RuntimeError(f"set {JWT_SECRET_ENV} to serve authenticated routes")
    return secret


class AuthService:
    def __init__(self, user_dao: UserDAO) -> None:
        self._users = user_dao

    def issue_token(self, user_id: uuid.UUID, expires_in: timedelta = TOKEN_TTL) -> str:
        """Mint an access token for *user_id* (operator tooling and tests)."""
        claims = {
            "sub": str(user_id),
            "type": "access",
            "exp": datetime.now(timezone.utc) + expires_in,
        }
        return jwt.encode(claims, _secret(), algorithm=JWT_ALGORITHM)

    async def get_current_user(self, session: AsyncSession, token: str) -> User:
        """Active user named by *token*; ``AuthenticationError`` otherwise."""
        try:
            claims = jwt.decode(token, _secret(), algorithms=[JWT_ALGORITHM])
        except JWTError as exc:
            raise AuthenticationError("invalid access token") from exc
        if claims.get("type") != "access":
            raise AuthenticationError("not an access token")
        try:
            user_id = uuid.UUID(str(claims["sub"]))
        except (KeyError, ValueError) as exc:
            raise AuthenticationError("access token has no valid subject") from exc

        user = await self._users.get_by_id(session, user_id)
        if user is None or not user.is_active:
            raise AuthenticationError("user not found or inactive")
        return user

    @staticmethod
    def require_admin(user: User) -> User:
        if not user.is_admin:
            raise ForbiddenError("administrator privilege required")
        return user
