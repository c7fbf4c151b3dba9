import asyncio
import inspect
import logging
from collections.abc import Awaitable, Callable, Sequence
from datetime import datetime
from typing import Generic, TypeVar
from uuid import UUID

from ..domain.aggregate import EventSourcedAggregate
from ..domain.event import ChangeEvent
from ..domain.exceptions import (
    BatchLimitExceededError,
    ConcurrencyError,
    DeadlineExceededError,
    InvalidIdentifierError,
)
from ..domain.records import AggregateSnapshot
from ..store.base import EventStore
from .config import ReplayWindow, RepositorySettings

LOGGER = logging.getLogger(__name__)

A = TypeVar("A", bound=EventSourcedAggregate)
T = TypeVar("T")

NIL_ID = UUID(int=0)


class AggregateFactory(Generic[A]):
    """Factory for creating aggregate instances of a specific type."""

    def __init__(self, aggregate_type: type[A], create: Callable[[UUID], A] | None = None):
        self._aggregate_type = aggregate_type
        self._create = create

    def get_type(self) -> type[A]:
        """Get the aggregate type this factory produces."""
        return self._aggregate_type

    @property
    def type_name(self) -> str:
        return self._aggregate_type.__name__

    def create(self, aggregate_id: UUID) -> A:
        """Create a new, empty aggregate instance with the given ID."""
        if self._create is not None:
            return self._create(aggregate_id)
        return self._aggregate_type(id=aggregate_id)


class EventSourcedRepository(Generic[A]):
    """Loads and saves event-sourced aggregates of one type.

    Every aggregate is stored in its own stream, named after the aggregate
    type and id. The repository is a mediator between the aggregate and the
    event store: it rebuilds aggregates from the latest snapshot plus the
    events recorded after it, appends pending changes with an
    expected-version check, and compacts a stream into a new snapshot once
    `snapshot_threshold` events have accumulated after the previous one.

    Concurrency conflicts surface as `ConcurrencyError` and are never
    retried here: the caller reloads the aggregate and decides whether to
    run its business operation again.

    Example:
        >>> repository = EventSourcedRepository(
        ...     AggregateFactory(BankAccount), InMemoryEventStore(registry)
        ... )
        >>> account = BankAccount()
        >>> await repository.add(account)
        >>> account.deposit(Decimal("10.00"))
        >>> await repository.save(account)
        >>> (await repository.find_by_id(account.id)).balance
        Decimal('10.00')
    """

    __slots__ = ("aggregate_factory", "store", "settings")

    def __init__(
        self,
        aggregate_factory: AggregateFactory[A],
        store: EventStore,
        settings: RepositorySettings | None = None,
    ):
        self.aggregate_factory = aggregate_factory
        self.store = store
        self.settings = settings or RepositorySettings()

    @property
    def aggregate_type(self) -> type[A]:
        return self.aggregate_factory.get_type()

    def stream_name_for(self, aggregate_id: UUID) -> str:
        return f"{self.aggregate_factory.type_name}-{aggregate_id}"

    # ========== Loading ==========

    async def find_by_id(self, aggregate_id: UUID) -> A | None:
        """Rebuild the current state of an aggregate.

        Starts from the latest snapshot, if any, and replays the events
        recorded after it. With the bounded replay window at most
        `snapshot_threshold` events are replayed.

        Returns:
            The aggregate, or None when the stream has neither a snapshot nor
            any event in the replay window.

        Raises:
            InvalidIdentifierError: If the id is the nil UUID.
        """
        self._require_identifier(aggregate_id)
        stream_name = self.stream_name_for(aggregate_id)

        snapshot = await self._call(self.store.get_latest_snapshot(stream_name))
        aggregate = self._fresh_aggregate(aggregate_id, snapshot)

        from_version = aggregate.version
        if self.settings.replay_window is ReplayWindow.FULL:
            to_version = await self._call(self.store.get_stream_size(stream_name))
        else:
            to_version = from_version + self.settings.snapshot_threshold

        events = await self._call(self.store.get_event_range(stream_name, from_version, to_version))
        if not events and snapshot is None:
            return None

        aggregate.replay(events)

        if (
            self.settings.replay_window is ReplayWindow.BOUNDED
            and len(events) == self.settings.snapshot_threshold
        ):
            await self._warn_if_truncated(stream_name, to_version)

        LOGGER.debug(
            "Aggregate loaded",
            extra={
                "stream": stream_name,
                "snapshot_version": snapshot.version if snapshot else None,
                "version": aggregate.version,
            },
        )
        return aggregate

    async def find_by_id_and_time(self, aggregate_id: UUID, at: datetime) -> A | None:
        """Rebuild the state of an aggregate as it was at a point in time.

        Loads the latest snapshot taken at or before `at` and replays the
        events from its version through the last event created at or before
        `at`, that event included. Naive datetimes are taken as UTC.

        Returns:
            The aggregate, or None when nothing was recorded at or before `at`.

        Raises:
            InvalidIdentifierError: If the id is the nil UUID.
        """
        self._require_identifier(aggregate_id)
        stream_name = self.stream_name_for(aggregate_id)

        snapshot = await self._call(self.store.get_snapshot_at(stream_name, at))
        aggregate = self._fresh_aggregate(aggregate_id, snapshot)

        last_position = await self._call(self.store.get_version_at(stream_name, at))
        if snapshot is None and last_position is None:
            return None

        events: list[ChangeEvent] = []
        if last_position is not None:
            events = await self._call(
                self.store.get_event_range(stream_name, aggregate.version, last_position + 1)
            )
        if not events and snapshot is None:
            return None

        aggregate.replay(events)
        LOGGER.debug(
            "Aggregate loaded at point in time",
            extra={"stream": stream_name, "at": at.isoformat(), "version": aggregate.version},
        )
        return aggregate

    # ========== Writing ==========

    async def add(self, aggregate: A) -> None:
        """Create the stream of a new aggregate. Pending changes are not saved.

        Raises:
            InvalidIdentifierError: If the aggregate id is the nil UUID.
        """
        self._require_identifier(aggregate.id)
        await self._call(self.store.create_stream(self.stream_name_for(aggregate.id)))

    async def save(self, aggregate: A) -> None:
        """Append the pending changes of an aggregate to its stream.

        The changes are appended at the aggregate's persisted version, so the
        save fails if another writer appended to the stream since the
        aggregate was loaded. Afterwards a snapshot is taken when enough
        events accumulated since the previous one.

        Pending changes are cleared as soon as the append succeeds, so an
        error raised while taking the snapshot leaves the aggregate in step
        with its stream.

        Raises:
            InvalidIdentifierError: If the aggregate id is the nil UUID.
            BatchLimitExceededError: If the aggregate carries
                `snapshot_threshold` or more changes. Nothing is written.
            ConcurrencyError: If the stream moved past the persisted version.
        """
        stream_name = await self._append_changes(aggregate)
        if stream_name is None:
            return
        aggregate.clear_changes()
        await self._snapshot_if_due(aggregate.id, stream_name)

    # ========== Transactions ==========

    async def start_transaction(self) -> None:
        await self._call(self.store.start_transaction())

    async def end_active_transaction_and_commit(self) -> None:
        await self._call(self.store.commit_transaction())

    async def abort_active_transaction(self) -> None:
        await self._call(self.store.abort_transaction())

    async def do_multi_transactional_work(
        self,
        aggregates: Sequence[A],
        action: Callable[[Sequence[A]], Awaitable[object] | object],
    ) -> None:
        """Run an action on several aggregates and save them atomically.

        The action may be a plain function or a coroutine function. All
        aggregates are saved inside one transaction which is committed once
        every save succeeded. On any failure, cancellation included, the
        transaction is aborted before the error propagates, and the pending
        changes of every aggregate are kept so the work can be retried.

        Example:
            >>> async def transfer(accounts):
            ...     source, target = accounts
            ...     source.withdraw(amount)
            ...     target.deposit(amount)
            >>>
            >>> await repository.do_multi_transactional_work([source, target], transfer)
        """
        await self.start_transaction()
        try:
            result = action(aggregates)
            if inspect.isawaitable(result):
                await result
            for aggregate in aggregates:
                stream_name = await self._append_changes(aggregate)
                if stream_name is not None:
                    await self._snapshot_if_due(aggregate.id, stream_name)
            await self.end_active_transaction_and_commit()
        except BaseException:
            LOGGER.warning(
                "Transactional work failed, aborting",
                extra={"aggregate_type": self.aggregate_factory.type_name},
            )
            await self.abort_active_transaction()
            raise

        for aggregate in aggregates:
            aggregate.clear_changes()

    # ========== Internals ==========

    async def _append_changes(self, aggregate: A) -> str | None:
        """Append pending changes, returning the stream name or None if there were none."""
        self._require_identifier(aggregate.id)
        changes = aggregate.changes
        if not changes:
            return None

        threshold = self.settings.snapshot_threshold
        if len(changes) >= threshold:
            raise BatchLimitExceededError(len(changes), threshold)

        stream_name = self.stream_name_for(aggregate.id)
        await self._call(
            self.store.append_events(stream_name, changes, aggregate.persisted_version)
        )
        return stream_name

    async def _snapshot_if_due(self, aggregate_id: UUID, stream_name: str) -> None:
        stream_size = await self._call(self.store.get_stream_size(stream_name))
        latest = await self._call(self.store.get_latest_snapshot(stream_name))
        if stream_size - (latest.version if latest else 0) >= self.settings.snapshot_threshold:
            await self._make_snapshot(aggregate_id, stream_name, latest, stream_size)

    async def _make_snapshot(
        self,
        aggregate_id: UUID,
        stream_name: str,
        latest: AggregateSnapshot | None,
        stream_size: int,
    ) -> None:
        # Rebuilt from storage so the snapshot only folds in durable events
        aggregate = self._fresh_aggregate(aggregate_id, latest)
        events = await self._call(
            self.store.get_event_range(stream_name, aggregate.version, stream_size)
        )
        aggregate.replay(events)

        discriminator = self.store.registry.discriminator_for(self.aggregate_type)
        snapshot = aggregate.snapshot(discriminator)
        try:
            await self._call(self.store.add_snapshot(stream_name, snapshot))
        except ConcurrencyError:
            LOGGER.warning(
                "Snapshot already taken by another writer",
                extra={"stream": stream_name, "version": snapshot.version},
            )
            return

        LOGGER.info(
            "Snapshot taken",
            extra={
                "stream": stream_name,
                "version": snapshot.version,
                "previous_version": latest.version if latest else None,
            },
        )

    def _fresh_aggregate(self, aggregate_id: UUID, snapshot: AggregateSnapshot | None) -> A:
        aggregate = self.aggregate_factory.create(aggregate_id)
        if snapshot is not None:
            aggregate.load_from_snapshot(snapshot)
        return aggregate

    async def _warn_if_truncated(self, stream_name: str, to_version: int) -> None:
        stream_size = await self._call(self.store.get_stream_size(stream_name))
        if stream_size > to_version:
            LOGGER.warning(
                "Replay window truncated, aggregate is behind its stream",
                extra={
                    "stream": stream_name,
                    "replayed_to": to_version,
                    "stream_size": stream_size,
                },
            )

    async def _call(self, operation: Awaitable[T]) -> T:
        timeout = self.settings.operation_timeout
        if timeout is None:
            return await operation
        try:
            return await asyncio.wait_for(operation, timeout)
        except asyncio.TimeoutError:
            raise DeadlineExceededError(timeout) from None

    @staticmethod
    def _require_identifier(aggregate_id: UUID | None) -> None:
        if aggregate_id is None or aggregate_id == NIL_ID:
            raise InvalidIdentifierError(aggregate_id)
