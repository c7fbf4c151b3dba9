"""In-memory event store for tests and local development."""

import copy
import logging
from collections.abc import Sequence
from dataclasses import dataclass, field
from datetime import datetime

from ..domain.event import ChangeEvent, as_utc
from ..domain.exceptions import ConcurrencyError
from ..domain.records import AggregateSnapshot, StoredEvent
from ..domain.registry import TypeRegistry
from ..retry import RetryPolicy
from .base import EventStore

LOGGER = logging.getLogger(__name__)


@dataclass
class _Stream:
    events: list[StoredEvent] = field(default_factory=list)
    snapshots: dict[int, AggregateSnapshot] = field(default_factory=dict)


class InMemoryEventStore(EventStore):
    """Event store keeping every stream in process memory.

    Behaves like a durable store with respect to ordering, concurrency and
    transactions: positions are unique per stream, an append is all-or-nothing,
    and aborting a transaction restores every stream to the state it had when
    the transaction started. Nothing survives the process.

    Appending to a stream that was never created creates it implicitly.

    Examples:
        >>> store = InMemoryEventStore(registry)
        >>> await store.create_stream("BankAccount-1f0c...")
        >>> await store.append_events("BankAccount-1f0c...", [opened], 0)
        >>> await store.get_stream_size("BankAccount-1f0c...")
        1
    """

    def __init__(self, registry: TypeRegistry, retry_policy: RetryPolicy | None = None):
        super().__init__(registry, retry_policy)
        self._streams: dict[str, _Stream] = {}
        self._checkpoint: dict[str, _Stream] | None = None

    async def create_stream(self, stream_name: str) -> None:
        self._check_stream_name(stream_name)
        if stream_name not in self._streams:
            self._streams[stream_name] = _Stream()
            LOGGER.info("Stream created", extra={"stream": stream_name})

    async def stream_exists(self, stream_name: str) -> bool:
        return stream_name in self._streams

    async def append_events(
        self,
        stream_name: str,
        events: Sequence[ChangeEvent],
        expected_version: int,
    ) -> None:
        self._check_stream_name(stream_name)
        records = self._encode_events(stream_name, events, expected_version)
        stream = self._streams.setdefault(stream_name, _Stream())

        # Positions are dense, so the next free one is the stream size
        if expected_version != len(stream.events):
            raise ConcurrencyError(
                f"Stream '{stream_name}' holds {len(stream.events)} events, "
                f"cannot append at position {expected_version}"
            )
        stream.events.extend(records)
        LOGGER.debug(
            "Events appended",
            extra={
                "stream": stream_name,
                "expected_version": expected_version,
                "count": len(records),
            },
        )

    async def get_stream_size(self, stream_name: str) -> int:
        stream = self._streams.get(stream_name)
        return len(stream.events) if stream else 0

    async def get_event_range(
        self, stream_name: str, from_version: int, to_version: int
    ) -> list[ChangeEvent]:
        stream = self._streams.get(stream_name)
        if stream is None:
            return []
        return [
            self._decode_event(record)
            for record in stream.events[max(from_version, 0) : max(to_version, 0)]
        ]

    async def get_version_at(self, stream_name: str, at: datetime) -> int | None:
        stream = self._streams.get(stream_name)
        if stream is None:
            return None
        at = as_utc(at)
        candidates = [r.version for r in stream.events if as_utc(r.created) <= at]
        return max(candidates, default=None)

    async def get_latest_snapshot(self, stream_name: str) -> AggregateSnapshot | None:
        stream = self._streams.get(stream_name)
        if stream is None or not stream.snapshots:
            return None
        return stream.snapshots[max(stream.snapshots)]

    async def get_snapshot_at(self, stream_name: str, at: datetime) -> AggregateSnapshot | None:
        stream = self._streams.get(stream_name)
        if stream is None:
            return None
        at = as_utc(at)
        candidates = [s for s in stream.snapshots.values() if as_utc(s.created) <= at]
        return max(candidates, key=lambda s: s.version, default=None)

    async def add_snapshot(self, stream_name: str, snapshot: AggregateSnapshot) -> None:
        self._check_stream_name(stream_name)
        self._validate_snapshot(snapshot)
        stream = self._streams.setdefault(stream_name, _Stream())
        if snapshot.version in stream.snapshots:
            raise ConcurrencyError(
                f"Stream '{stream_name}' already has a snapshot at version {snapshot.version}"
            )
        stream.snapshots[snapshot.version] = snapshot
        LOGGER.info(
            "Snapshot added",
            extra={"stream": stream_name, "version": snapshot.version},
        )

    async def _begin_transaction(self) -> None:
        self._checkpoint = copy.deepcopy(self._streams)

    async def _commit_transaction(self) -> None:
        self._checkpoint = None

    async def _abort_transaction(self) -> None:
        if self._checkpoint is not None:
            self._streams = self._checkpoint
            self._checkpoint = None
