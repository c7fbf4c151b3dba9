"""Given/when/then harness for event-sourced aggregates.

A scenario writes its given history straight into an in-memory event store,
loads the aggregate through an `EventSourcedRepository`, runs the actions,
saves the result and loads it again. Expectations are checked against that
round-trip, so they see what was persisted and not only what is in memory.
"""

import inspect
from collections.abc import Callable
from dataclasses import dataclass, field
from types import TracebackType
from typing import Any, Generic, NamedTuple, TypeVar
from uuid import UUID, uuid4

from typing_extensions import Self

from ..domain.aggregate import EventSourcedAggregate
from ..domain.event import ChangeEvent
from ..domain.records import AggregateSnapshot
from ..domain.registry import TypeRegistry
from ..repository import AggregateFactory, EventSourcedRepository, RepositorySettings
from ..store.memory import InMemoryEventStore

A = TypeVar("A", bound=EventSourcedAggregate)

Action = Callable[[A], object]


@dataclass
class Outcome(Generic[A]):
    """What running a scenario produced.

    Attributes:
        caused: Changes the actions caused, in order.
        errors: Exceptions raised by the actions.
        reloaded: The aggregate as loaded back from the store after saving.
        stream_size: Number of events in the stream after saving.
        snapshot: Latest snapshot of the stream after saving.
    """

    caused: list[ChangeEvent] = field(default_factory=list)
    errors: list[Exception] = field(default_factory=list)
    reloaded: A | None = None
    stream_size: int = 0
    snapshot: AggregateSnapshot | None = None

    def caused_like(self, expected: ChangeEvent) -> bool:
        # Ids and timestamps differ between runs, only the payload is compared
        return any(
            type(event) is type(expected) and event.payload() == expected.payload()
            for event in self.caused
        )


class Expectation(NamedTuple):
    description: str
    check: Callable[[Outcome[Any]], bool]


class AggregateScenario(Generic[A]):
    """A scenario for testing an event-sourced aggregate end to end.

    - Given events are appended to the aggregate's stream as history
    - When actions run against the aggregate loaded from that stream
    - Then expectations are checked once the changes were saved

    The scenario runs when the `async with` block exits. Actions that raise
    skip the save; an error no `should_raise` accounts for fails the
    scenario, as does any unmet expectation, with an AssertionError.

    Example:
        >>> async with AggregateScenario(BankAccount, registry) as scenario:
        ...     scenario.given(AccountOpened(owner="ada")).when(
        ...         lambda account: account.deposit(Decimal("10.00"))
        ...     ).should_cause(MoneyDeposited(amount=Decimal("10.00"))).should_be_at_version(2)
    """

    def __init__(
        self,
        aggregate_type: type[A],
        registry: TypeRegistry,
        aggregate_id: UUID | None = None,
        settings: RepositorySettings | None = None,
    ):
        self.aggregate_id = aggregate_id or uuid4()
        self.store = InMemoryEventStore(registry)
        self.repository = EventSourcedRepository(
            AggregateFactory(aggregate_type), self.store, settings
        )
        self.history: list[ChangeEvent] = []
        self.actions: list[Action[A]] = []
        self.expectations: list[Expectation] = []
        self.expected_errors: list[type[Exception]] = []

    @property
    def stream_name(self) -> str:
        return self.repository.stream_name_for(self.aggregate_id)

    # ========== Given / When ==========

    def given(self, *events: ChangeEvent) -> Self:
        self.history.extend(events)
        return self

    def given_no_events(self) -> Self:
        self.history.clear()
        return self

    def when(self, *actions: Action[A]) -> Self:
        self.actions.extend(actions)
        return self

    # ========== Then ==========

    def should_cause(self, *events_or_event_types: type[ChangeEvent] | ChangeEvent) -> Self:
        for expected in events_or_event_types:
            if isinstance(expected, ChangeEvent):
                self._expect(
                    f"should cause {type(expected).__name__} with payload {expected.payload()}",
                    lambda outcome, e=expected: outcome.caused_like(e),
                )
            else:
                self._expect(
                    f"should cause event of type {expected.__name__}",
                    lambda outcome, t=expected: any(isinstance(c, t) for c in outcome.caused),
                )
        return self

    def should_cause_nothing(self) -> Self:
        self._expect("should not cause any events", lambda outcome: not outcome.caused)
        return self

    def should_raise(self, error_type: type[Exception]) -> Self:
        self.expected_errors.append(error_type)
        self._expect(
            f"should raise error of type {error_type.__name__}",
            lambda outcome: any(isinstance(e, error_type) for e in outcome.errors),
        )
        return self

    def should_have_state(self, predicate: Callable[[A], bool]) -> Self:
        """Check the aggregate as loaded back from the store."""
        self._expect(
            "should reload into a state matching the predicate",
            lambda outcome: outcome.reloaded is not None and predicate(outcome.reloaded),
        )
        return self

    def should_be_at_version(self, version: int) -> Self:
        self._expect(
            f"should store {version} events",
            lambda outcome: outcome.stream_size == version,
        )
        return self

    def should_snapshot_at(self, version: int | None) -> Self:
        """Check the latest snapshot version, None meaning no snapshot."""
        self._expect(
            f"should have latest snapshot at version {version}",
            lambda outcome: (outcome.snapshot.version if outcome.snapshot else None) == version,
        )
        return self

    def _expect(self, description: str, check: Callable[[Outcome[Any]], bool]) -> None:
        self.expectations.append(Expectation(description, check))

    # ========== Running ==========

    async def run(self) -> Outcome[A]:
        """Seed the history, run the actions, save and reload."""
        await self.store.create_stream(self.stream_name)
        # History is stored as is, it never shows up as a change
        if self.history:
            await self.store.append_events(self.stream_name, self.history, 0)

        aggregate = await self.repository.find_by_id(self.aggregate_id)
        if aggregate is None:
            aggregate = self.repository.aggregate_factory.create(self.aggregate_id)

        outcome: Outcome[A] = Outcome()
        for action in self.actions:
            try:
                result = action(aggregate)
                if inspect.isawaitable(result):
                    await result
            except Exception as e:
                outcome.errors.append(e)
        outcome.caused.extend(aggregate.changes)

        if not outcome.errors:
            await self.repository.save(aggregate)

        outcome.reloaded = await self.repository.find_by_id(self.aggregate_id)
        outcome.stream_size = await self.store.get_stream_size(self.stream_name)
        outcome.snapshot = await self.store.get_latest_snapshot(self.stream_name)
        return outcome

    def verify(self, outcome: Outcome[A]) -> None:
        """Raise AssertionError for an unexpected error or an unmet expectation."""
        expected = tuple(self.expected_errors)
        for error in outcome.errors:
            if not isinstance(error, expected):
                raise AssertionError(f"Action raised unexpectedly: {error!r}") from error

        for expectation in self.expectations:
            if not expectation.check(outcome):
                raise AssertionError(f"Expectation not met: {expectation.description}")

    async def __aenter__(self) -> Self:
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_value: BaseException | None,
        traceback: TracebackType | None,
    ) -> None:
        # An error inside the block propagates as is
        if exc_type is None:
            self.verify(await self.run())
