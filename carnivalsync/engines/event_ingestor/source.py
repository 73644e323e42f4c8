"""Source adapter contract and the name -> adapter registry."""

from __future__ import annotations

from collections.abc import AsyncIterator
from datetime import datetime
from typing import Protocol, runtime_checkable

from carnivalsync.engines.event_ingestor.errors import SourceUnavailable
from carnivalsync.engines.event_ingestor.models import RawEvent


@runtime_checkable
class SourceAdapter(Protocol):
    """Fetches the events currently advertised by one named source.

    ``fetch`` returns a lazy, finite async iterator. Container-level
    failures raise :class:`SourceError` subclasses no later than the first
    step of iteration; per-record problems surface as ``RawEvent.parse_error``.
    """

    name: str

    def fetch(self, deadline: datetime) -> AsyncIterator[RawEvent]: ...


class StaticSource:
    """Adapter over a fixed list of records (fixtures, replays, one-off imports)."""

    def __init__(self, name: str, events: list[RawEvent] | None = None) -> None:
        self.name = name
        self.events = list(events or [])

    async def fetch(self, deadline: datetime) -> AsyncIterator[RawEvent]:
        for raw in self.events:
            yield raw


class SourceRegistry:
    """Maps source names to adapters."""

    def __init__(self) -> None:
        self._adapters: dict[str, SourceAdapter] = {}

    def register(self, adapter: SourceAdapter) -> None:
        if not adapter.name:
            raise ValueError("source adapter must have a name")
        self._adapters[adapter.name] = adapter

    def get(self, name: str) -> SourceAdapter:
        try:
            return self._adapters[name]
        except KeyError:
            raise SourceUnavailable(f"unknown source: {name!r}") from None

    def names(self) -> list[str]:
        return sorted(self._adapters)


default_registry = SourceRegistry()


def register_source(adapter: SourceAdapter) -> None:
    default_registry.register(adapter)


def get_source(name: str) -> SourceAdapter:
    return default_registry.get(name)
