"""Minimal aggregate counting its own events."""

from chronicle import ChangeEvent, EventSourcedAggregate, applies_event


class Incremented(ChangeEvent):
    pass


class Reset(ChangeEvent):
    """Known to the registry but not handled by Counter."""


class Counter(EventSourcedAggregate):
    accumulator: int = 0

    def increment(self, times: int = 1) -> None:
        for _ in range(times):
            self.causes(Incremented())

    @applies_event
    def when_incremented(self, event: Incremented) -> None:
        self.accumulator += 1
