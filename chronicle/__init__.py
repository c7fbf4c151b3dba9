"""Chronicle - Event-sourced aggregate persistence for Python.

This module provides the public API for storing aggregates as streams of
change events, compacted by snapshots.
"""

from .domain import (
    AggregateSnapshot,
    ChangeEvent,
    EventSourcedAggregate,
    StoredEvent,
    TypeRegistry,
)
from .repository import (
    AggregateFactory,
    EventSourcedRepository,
    ReplayWindow,
    RepositorySettings,
)
from .retry import RetryPolicy
from .routing import applies_event
from .store import EventStore, InMemoryEventStore, TransactionState

__all__ = [
    # Domain primitives
    "EventSourcedAggregate",
    "ChangeEvent",
    "StoredEvent",
    "AggregateSnapshot",
    "TypeRegistry",
    # Decorators
    "applies_event",
    # Storage
    "EventStore",
    "InMemoryEventStore",
    "TransactionState",
    # Repository
    "AggregateFactory",
    "EventSourcedRepository",
    "RepositorySettings",
    "ReplayWindow",
    "RetryPolicy",
]
