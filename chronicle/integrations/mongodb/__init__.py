"""MongoDB integration for chronicle.

This module provides a MongoDB implementation of the EventStore interface
using the async PyMongo driver.

Installation:
    pip install chronicle[mongodb]

Usage:
    >>> from chronicle.integrations.mongodb import MongoConfiguration, MongoEventStore
    >>>
    >>> config = MongoConfiguration(
    ...     uri="mongodb://localhost:27017/?replicaSet=rs0",
    ...     database="bank",
    ... )
    >>> store = MongoEventStore(config, registry)
    >>> repository = EventSourcedRepository(AggregateFactory(BankAccount), store)
"""

from .collection import IndexDirection, IndexedCollection, IndexSpec
from .config import MongoConfiguration
from .event_store import MongoEventStore

__all__ = [
    "MongoConfiguration",
    "MongoEventStore",
    "IndexedCollection",
    "IndexSpec",
    "IndexDirection",
]
