"""Domain primitives for event-sourced aggregates.

This module contains the building blocks that users extend or register to
create their domain models:

- EventSourcedAggregate: Base class for aggregates rebuilt from their events
- ChangeEvent: Base class for the events an aggregate causes
- StoredEvent / AggregateSnapshot: Storage envelopes for events and snapshots
- TypeRegistry: Discriminator to decoder map used to read records back
"""

from .aggregate import EventSourcedAggregate
from .event import ChangeEvent, as_utc, utc_now
from .exceptions import (
    BatchLimitExceededError,
    ChronicleError,
    CommitRetriesExhaustedError,
    ConcurrencyError,
    DeadlineExceededError,
    InvalidIdentifierError,
    SnapshotValidationError,
    StreamEmptyError,
    TransactionStateError,
    TransientStoreError,
    UnhandledEventError,
    UnknownEventTypeError,
)
from .records import AggregateSnapshot, StoredEvent
from .registry import TypeRegistry, make_discriminator

__all__ = [
    "EventSourcedAggregate",
    "ChangeEvent",
    "StoredEvent",
    "AggregateSnapshot",
    "TypeRegistry",
    "make_discriminator",
    "utc_now",
    "as_utc",
    # Errors
    "ChronicleError",
    "InvalidIdentifierError",
    "StreamEmptyError",
    "BatchLimitExceededError",
    "ConcurrencyError",
    "TransientStoreError",
    "CommitRetriesExhaustedError",
    "TransactionStateError",
    "SnapshotValidationError",
    "UnknownEventTypeError",
    "UnhandledEventError",
    "DeadlineExceededError",
]
