"""Event ingestor engine — external listings into the carnivals table."""

from carnivalsync.engines.event_ingestor.errors import (
    DeadlineExceeded,
    IngestorError,
    NormalizeRejected,
    SourceError,
    SourceMalformed,
    SourceTimeout,
    SourceUnavailable,
    StoreConflict,
)
from carnivalsync.engines.event_ingestor.models import (
    CandidateEvent,
    RawEvent,
    SyncOptions,
    SyncOutcome,
    SyncResult,
)
from carnivalsync.engines.event_ingestor.mysideline_client import MySidelineSource
from carnivalsync.engines.event_ingestor.normalizer import normalize
from carnivalsync.engines.event_ingestor.observer import (
    LoggingObserver,
    RecordingObserver,
    SyncObserver,
)
from carnivalsync.engines.event_ingestor.reconciler import Reconciler
from carnivalsync.engines.event_ingestor.runner import SyncRunner, sync_type_for
from carnivalsync.engines.event_ingestor.source import (
    SourceAdapter,
    SourceRegistry,
    StaticSource,
    get_source,
    register_source,
)

__all__ = [
    "CandidateEvent",
    "DeadlineExceeded",
    "IngestorError",
    "LoggingObserver",
    "MySidelineSource",
    "NormalizeRejected",
    "RawEvent",
    "Reconciler",
    "RecordingObserver",
    "SourceAdapter",
    "SourceError",
    "SourceMalformed",
    "SourceRegistry",
    "SourceTimeout",
    "SourceUnavailable",
    "StaticSource",
    "StoreConflict",
    "SyncObserver",
    "SyncOptions",
    "SyncOutcome",
    "SyncResult",
    "SyncRunner",
    "get_source",
    "normalize",
    "register_source",
    "sync_type_for",
]
