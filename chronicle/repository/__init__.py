"""Loading and saving of event-sourced aggregates."""

from .config import ReplayWindow, RepositorySettings
from .repository import AggregateFactory, EventSourcedRepository

__all__ = [
    "AggregateFactory",
    "EventSourcedRepository",
    "RepositorySettings",
    "ReplayWindow",
]
