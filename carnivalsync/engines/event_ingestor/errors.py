"""Ingestor error kinds."""

from __future__ import annotations


class IngestorError(Exception):
    """Base class for ingestion failures."""


class SourceError(IngestorError):
    """The source adapter could not produce a record stream."""


class SourceUnavailable(SourceError):
    """Network or transport failure, or an unknown source name."""


class SourceMalformed(SourceError):
    """The top-level container returned by the source could not be parsed."""


class SourceTimeout(SourceError):
    """The deadline elapsed while talking to the source."""


class DeadlineExceeded(IngestorError):
    """The run deadline elapsed during reconciliation."""


class StoreConflict(IngestorError):
    """A per-record write collided with another writer."""

    def __init__(self, external_key: str, message: str) -> None:
        super().__init__(message)
        self.external_key = external_key


class NormalizeRejected(IngestorError):
    """A raw record cannot become a candidate. Never fails a sync."""

    def __init__(self, reason: str, title: str | None = None) -> None:
        super().__init__(reason)
        self.reason = reason
        self.title = title
