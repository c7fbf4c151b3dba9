from collections.abc import Iterable
from typing import TYPE_CHECKING, ClassVar
from uuid import UUID, uuid4

from pydantic import BaseModel, Field, PrivateAttr

from ..routing import setup_event_applying
from .event import ChangeEvent
from .records import AggregateSnapshot

if TYPE_CHECKING:
    from ..routing import MessageRouter


class EventSourcedAggregate(BaseModel):
    """Base class for aggregates whose state is derived from their events.

    An event-sourced aggregate never changes its state directly. Business
    methods validate their input and then call `causes` with a change event;
    the event is recorded as a pending change and dispatched to the state
    transition registered for its type with `@applies_event`. Loading an
    aggregate replays the stored events through the same transitions.

    Examples:
        >>> class MoneyDeposited(ChangeEvent):
        ...     amount: Decimal
        >>>
        >>> class BankAccount(EventSourcedAggregate):
        ...     balance: Decimal = Decimal("0.00")
        ...
        ...     def deposit(self, amount: Decimal) -> None:
        ...         if amount <= 0:
        ...             raise ValueError("Amount must be positive")
        ...         self.causes(MoneyDeposited(amount=amount))
        ...
        ...     @applies_event
        ...     def when_deposited(self, event: MoneyDeposited) -> None:
        ...         self.balance += event.amount
        >>>
        >>> account = BankAccount()
        >>> account.deposit(Decimal("100.00"))
        >>> account.balance, account.version, len(account.changes)
        (Decimal('100.00'), 1, 1)

    Attributes:
        id: Unique identifier of this aggregate instance.
        version: Number of events applied since creation.
        initial_version: Version of the snapshot this instance was loaded
            from, 0 when it was rebuilt from the start of its stream.
    """

    BOOKKEEPING_FIELDS: ClassVar[set[str]] = {"id", "version", "initial_version"}

    id: UUID = Field(default_factory=uuid4)
    version: int = 0
    initial_version: int = 0

    _changes: list[ChangeEvent] = PrivateAttr(default_factory=list)

    _event_router: ClassVar["MessageRouter"]

    def __init_subclass__(cls, **kwargs: object) -> None:
        """Set up state transition routing when a subclass is defined."""
        super().__init_subclass__(**kwargs)  # type: ignore[arg-type]
        cls._event_router = setup_event_applying(cls)

    @property
    def changes(self) -> tuple[ChangeEvent, ...]:
        """Events caused since the last save, in the order they were caused."""
        return tuple(self._changes)

    @property
    def persisted_version(self) -> int:
        """Version of the aggregate as of its last save or load."""
        return self.version - len(self._changes)

    def is_transient(self) -> bool:
        """Whether the aggregate has never recorded or applied any event."""
        return self.version == 0 and not self._changes

    def apply(self, event: ChangeEvent) -> None:
        """Run the state transition for an event and advance the version.

        Raises:
            UnhandledEventError: If the aggregate has no transition for the
                event type.
        """
        self._event_router.route(self, event)
        self.version += 1

    def causes(self, event: ChangeEvent) -> None:
        """Record a new change and apply it to the aggregate state.

        Args:
            event: The change event describing what happened.
        """
        self._changes.append(event)
        self.apply(event)

    def replay(self, events: Iterable[ChangeEvent]) -> None:
        """Apply stored events in order to rebuild the aggregate state."""
        for event in events:
            self.apply(event)

    def clear_changes(self) -> None:
        """Forget pending changes once they are durably stored."""
        self._changes.clear()

    def snapshot(self, discriminator: str) -> AggregateSnapshot:
        """Capture the current state in a snapshot envelope.

        Args:
            discriminator: Registered type discriminator of this aggregate.

        Returns:
            A snapshot stamped with the current version and time.
        """
        return AggregateSnapshot(
            type=discriminator,
            version=self.version,
            data=self.serialize_state(),
        )

    def load_from_snapshot(self, snapshot: AggregateSnapshot) -> None:
        """Restore state from a snapshot, without replaying any event.

        The caller is responsible for replaying the events recorded after
        `snapshot.version`.
        """
        self.version = snapshot.version
        self.initial_version = snapshot.version
        self.restore_state(snapshot.data)

    def serialize_state(self) -> str:
        """Serialize the aggregate specific state to JSON.

        Override together with `restore_state` when the state is not fully
        described by the model fields.
        """
        return self.model_dump_json(exclude=self.BOOKKEEPING_FIELDS)

    def restore_state(self, data: str) -> None:
        """Load the aggregate specific state produced by `serialize_state`."""
        restored = type(self).model_validate_json(data)
        for name in type(self).model_fields:
            if name not in self.BOOKKEEPING_FIELDS:
                setattr(self, name, getattr(restored, name))
