"""BaseDAO — shared lookups plus keyset pagination for history tables."""

import base64
import hashlib
import hmac
import json
import os
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Generic, TypeVar

from sqlalchemy import Select, and_, or_
from sqlalchemy.ext.asyncio import AsyncSession

from carnivalsync.core.database import Base

ModelT = TypeVar("ModelT", bound=Base)

PAGE_SIZE_MAX = 100
PAGE_SIZE_DEFAULT = 20

_ENV_CURSOR_SECRET = "CARNIVALSYNC_CURSOR_SECRET"


class InvalidCursorError(ValueError):
    """A page cursor that is not base64, not JSON, or not signed by us."""


@dataclass(frozen=True)
class Cursor:
    position: datetime
    id: uuid.UUID


@dataclass
class Page(Generic[ModelT]):
    data: list[ModelT] = field(default_factory=list)
    next_cursor: str | None = None
    has_more: bool = False


def _secret() -> bytes:
    return os.environ.get(_ENV_CURSOR_SECRET, "carnivalsync-dev-cursor").encode()


def _signature(body: str) -> str:
    return hmac.new(_secret(), body.encode(), hashlib.sha256).hexdigest()[:16]


def encode_cursor(position: datetime, row_id: uuid.UUID) -> str:
    """Opaque, signed token for the row after which the next page starts."""
    if position.tzinfo is None:
        position = position.replace(tzinfo=timezone.utc)
    body = json.dumps({"p": position.isoformat(), "i": str(row_id)}, separators=(",", ":"))
    token = f"{body}.{_signature(body)}"
    return base64.urlsafe_b64encode(token.encode()).decode()


def decode_cursor(cursor: str) -> Cursor:
    """Inverse of :func:`encode_cursor`; raises ``InvalidCursorError``."""
    try:
        token = base64.urlsafe_b64decode(cursor.encode()).decode()
        body, _, signature = token.rpartition(".")
        if not body or not hmac.compare_digest(signature, _signature(body)):
            raise InvalidCursorError("cursor signature mismatch")
        fields = json.loads(body)
        return Cursor(position=datetime.fromisoformat(fields["p"]), id=uuid.UUID(fields["i"]))
    except InvalidCursorError:
        raise
    except (ValueError, KeyError, TypeError, UnicodeDecodeError) as exc:
        raise InvalidCursorError(f"invalid cursor: {cursor!r}") from exc


class BaseDAO(Generic[ModelT]):
    """Per-table data access. Subclasses set ``model``.

    ``order_column`` names the timestamp column that orders paginated
    listings, newest first, with ``id`` as the tie-breaker.
    """

    model: type[ModelT]
    order_column: str = "created_at"

    @staticmethod
    def _require_pk(pk: uuid.UUID | None) -> None:
        if pk is None:
            raise ValueError("pk must not be None")

    async def get_by_id(self, session: AsyncSession, pk: uuid.UUID) -> ModelT | None:
        self._require_pk(pk)
        return await session.get(self.model, pk)

    async def create(self, session: AsyncSession, **values: Any) -> ModelT:
        """Add a row and flush, so IntegrityError is raised at the call site."""
        row = self.model(**values)
        session.add(row)
        await session.flush()
        return row

    async def paginate(
        self,
        session: AsyncSession,
        query: Select,
        cursor: str | None = None,
        page_size: int = PAGE_SIZE_DEFAULT,
    ) -> Page[ModelT]:
        """One page of *query* ordered by ``order_column`` DESC, ``id`` DESC.

        *query* must not carry its own ORDER BY or LIMIT.
        """
        page_size = max(1, min(page_size, PAGE_SIZE_MAX))
        position = getattr(self.model, self.order_column)
        row_id = self.model.id

        if cursor:
            after = decode_cursor(cursor)
            query = query.where(
                or_(
                    position < after.position,
                    and_(position == after.position, row_id < after.id),
                )
            )

        query = query.order_by(position.desc(), row_id.desc()).limit(page_size + 1)
        rows = list((await session.execute(query)).scalars())

        page = Page(data=rows[:page_size], has_more=len(rows) > page_size)
        if page.has_more:
            last = page.data[-1]
            page.next_cursor = encode_cursor(getattr(last, self.order_column), last.id)
        return page
