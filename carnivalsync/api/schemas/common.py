"""Shared response schemas."""

from __future__ import annotations

from typing import Generic, TypeVar

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel

T = TypeVar("T")


class CamelModel(BaseModel):
    """camelCase on the wire, snake_case in Python."""

    model_config = ConfigDict(from_attributes=True, alias_generator=to_camel, populate_by_name=True)


class ErrorBody(BaseModel):
    """Body of every 4xx/5xx response."""

    code: str
    message: str


class PageMeta(CamelModel):
    """Cursor pagination metadata."""

    next_cursor: str | None
    has_more: bool


class PaginatedResponse(CamelModel, Generic[T]):
    """Generic paginated list response."""

    data: list[T]
    meta: PageMeta
