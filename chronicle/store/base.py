"""Event store interface for durable stream and snapshot persistence."""

import logging
from abc import ABC, abstractmethod
from collections.abc import Sequence
from datetime import datetime
from enum import Enum

from ulid import ULID

from ..domain.event import ChangeEvent
from ..domain.exceptions import (
    SnapshotValidationError,
    StreamEmptyError,
    TransactionStateError,
)
from ..domain.records import AggregateSnapshot, StoredEvent
from ..domain.registry import TypeRegistry
from ..retry import RetryPolicy, retry_transient

LOGGER = logging.getLogger(__name__)


def snapshot_channel_for(stream_name: str) -> str:
    """Name of the snapshot channel paired with a stream."""
    return f"{stream_name}_snapshots"


class TransactionState(str, Enum):
    """Transaction state of a store session."""

    IDLE = "idle"
    IN_TRANSACTION = "in_transaction"


class EventStore(ABC):
    """Abstract interface for durable event streams and their snapshots.

    EventStore persists each aggregate's history as an append-only stream of
    change events. Positions within a stream are 0-based, consecutive and
    unique: the uniqueness of a position is the only mechanism that detects
    two writers appending to the same stream concurrently.

    Key responsibilities:
    - **Ordering**: Events are stored and read back in position order
    - **Concurrency Control**: A position can only be taken once
    - **Compaction**: Snapshots are kept next to each stream
    - **Transactions**: One transaction at a time per store session

    The transaction lifecycle (`start_transaction`, `commit_transaction`,
    `abort_transaction`) is implemented here on top of three driver hooks.
    Commits are retried on `TransientStoreError` following `retry_policy`.

    Attributes:
        registry: Type registry used to encode and decode records.
        retry_policy: Retry budget for transaction commits.
    """

    def __init__(self, registry: TypeRegistry, retry_policy: RetryPolicy | None = None):
        self.registry = registry
        self.retry_policy = retry_policy or RetryPolicy()
        self._transaction_state = TransactionState.IDLE

    # ========== Streams ==========

    @abstractmethod
    async def create_stream(self, stream_name: str) -> None:
        """Create an empty stream and its snapshot channel.

        Both get a uniqueness constraint on `version`. Creating a stream that
        already exists leaves it untouched.

        Raises:
            ValueError: If the stream name is empty.
        """
        ...

    @abstractmethod
    async def stream_exists(self, stream_name: str) -> bool:
        """Whether a stream has been created or appended to."""
        ...

    @abstractmethod
    async def append_events(
        self,
        stream_name: str,
        events: Sequence[ChangeEvent],
        expected_version: int,
    ) -> None:
        """Atomically append events at consecutive positions.

        Args:
            stream_name: The stream to append to.
            events: Events to append, in order.
            expected_version: Position assigned to the first event, i.e. the
                number of events the writer believes the stream holds.

        Raises:
            StreamEmptyError: If `events` is empty.
            ConcurrencyError: If any of the positions is already taken.
                Nothing is appended in that case.
        """
        ...

    @abstractmethod
    async def get_stream_size(self, stream_name: str) -> int:
        """Number of events appended to a stream."""
        ...

    @abstractmethod
    async def get_event_range(
        self, stream_name: str, from_version: int, to_version: int
    ) -> list[ChangeEvent]:
        """Read the events at positions `from_version <= p < to_version`.

        Returns:
            Events in position order, decoded to their concrete types.
        """
        ...

    @abstractmethod
    async def get_version_at(self, stream_name: str, at: datetime) -> int | None:
        """Highest position whose event was created at or before `at`."""
        ...

    # ========== Snapshots ==========

    @abstractmethod
    async def get_latest_snapshot(self, stream_name: str) -> AggregateSnapshot | None:
        """Snapshot with the highest version, if any."""
        ...

    @abstractmethod
    async def get_snapshot_at(self, stream_name: str, at: datetime) -> AggregateSnapshot | None:
        """Highest-version snapshot created at or before `at`, if any."""
        ...

    @abstractmethod
    async def add_snapshot(self, stream_name: str, snapshot: AggregateSnapshot) -> None:
        """Persist a snapshot.

        Raises:
            SnapshotValidationError: If the snapshot id is not a ULID or its
                type is not registered.
            ConcurrencyError: If a snapshot with the same version exists.
        """
        ...

    # ========== Transactions ==========

    @property
    def transaction_state(self) -> TransactionState:
        return self._transaction_state

    @property
    def in_transaction(self) -> bool:
        return self._transaction_state is TransactionState.IN_TRANSACTION

    async def start_transaction(self) -> None:
        """Start a transaction on the store session.

        Raises:
            TransactionStateError: If a transaction is already active.
        """
        if self.in_transaction:
            raise TransactionStateError(
                "Event store has a pending transaction, end it with "
                "commit_transaction or abort_transaction first"
            )
        await self._begin_transaction()
        self._transaction_state = TransactionState.IN_TRANSACTION
        LOGGER.debug("Transaction started", extra={"store": type(self).__name__})

    async def commit_transaction(self) -> None:
        """Commit the active transaction, retrying transient failures.

        On failure the transaction stays active so that it can be aborted.

        Raises:
            TransactionStateError: If no transaction is active.
            CommitRetriesExhaustedError: If the commit kept failing transiently.
        """
        if not self.in_transaction:
            raise TransactionStateError("No active transaction to commit")
        await retry_transient(self._commit_transaction, self.retry_policy, "commit_transaction")
        self._transaction_state = TransactionState.IDLE
        LOGGER.info("Transaction committed", extra={"store": type(self).__name__})

    async def abort_transaction(self) -> None:
        """Abort the active transaction, discarding its writes.

        Raises:
            TransactionStateError: If no transaction is active.
        """
        if not self.in_transaction:
            raise TransactionStateError("No active transaction to abort")
        try:
            await self._abort_transaction()
        finally:
            self._transaction_state = TransactionState.IDLE
        LOGGER.info("Transaction aborted", extra={"store": type(self).__name__})

    @abstractmethod
    async def _begin_transaction(self) -> None: ...

    @abstractmethod
    async def _commit_transaction(self) -> None:
        """Commit once. Raise TransientStoreError for retryable failures."""
        ...

    @abstractmethod
    async def _abort_transaction(self) -> None: ...

    # ========== Shared helpers ==========

    @staticmethod
    def _check_stream_name(stream_name: str) -> None:
        if not stream_name:
            raise ValueError("Stream name must not be empty")

    def _encode_events(
        self,
        stream_name: str,
        events: Sequence[ChangeEvent],
        expected_version: int,
    ) -> list[StoredEvent]:
        """Turn events into stored records at consecutive positions."""
        if not events:
            raise StreamEmptyError(stream_name)
        return [
            StoredEvent.from_change_event(
                event,
                self.registry.discriminator_for(type(event)),
                expected_version + offset,
            )
            for offset, event in enumerate(events)
        ]

    def _decode_event(self, record: StoredEvent) -> ChangeEvent:
        event: ChangeEvent = self.registry.decode(record.type, record.data)
        return event

    def _validate_snapshot(self, snapshot: AggregateSnapshot) -> None:
        try:
            ULID.from_str(snapshot.id)
        except ValueError:
            raise SnapshotValidationError(f"Invalid snapshot id '{snapshot.id}'") from None
        if not self.registry.is_registered(snapshot.type):
            raise SnapshotValidationError(f"Unknown aggregate type '{snapshot.type}'")
