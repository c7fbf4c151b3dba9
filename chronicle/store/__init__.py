"""Durable storage for event streams and snapshots.

- EventStore: The storage contract implemented by every backend
- InMemoryEventStore: Process-local implementation for tests and development
- TransactionState: Transaction state of a store session
"""

from .base import EventStore, TransactionState, snapshot_channel_for
from .memory import InMemoryEventStore

__all__ = [
    "EventStore",
    "InMemoryEventStore",
    "TransactionState",
    "snapshot_channel_for",
]
