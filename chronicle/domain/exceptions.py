"""Exceptions raised by the event-sourcing core."""


class ChronicleError(Exception):
    """Base class for every error raised by chronicle."""

    pass


class InvalidIdentifierError(ChronicleError, ValueError):
    """Raised when an aggregate identifier is missing or the nil UUID."""

    def __init__(self, aggregate_id: object):
        super().__init__(f"Invalid or uninitialized aggregate id: {aggregate_id!r}")
        self.aggregate_id = aggregate_id


class StreamEmptyError(ChronicleError):
    """Raised when an append is requested with no events to append."""

    def __init__(self, stream_name: str):
        super().__init__(f"No events given to append to stream '{stream_name}'")
        self.stream_name = stream_name


class BatchLimitExceededError(ChronicleError):
    """Raised when a save carries too many pending changes at once.

    Callers must split the work into several saves so that each append stays
    within a single compaction unit and snapshots can be taken in between.
    """

    def __init__(self, pending: int, limit: int):
        super().__init__(
            f"Cannot save {pending} pending changes in one operation, a save must carry "
            f"fewer than {limit}; split the work into several saves"
        )
        self.pending = pending
        self.limit = limit


class ConcurrencyError(ChronicleError):
    """Raised when an optimistic concurrency check fails.

    This exception indicates that another writer has appended to the stream
    at the same position between when the aggregate was loaded and when its
    changes were saved. The business operation must be reloaded and retried
    by the caller.
    """

    pass


class TransientStoreError(ChronicleError):
    """Raised by a store when a transport-level failure may succeed on retry."""

    pass


class CommitRetriesExhaustedError(ChronicleError):
    """Raised when a transaction commit keeps failing transiently."""

    def __init__(self, operation: str, attempts: int):
        super().__init__(f"'{operation}' still failing after {attempts} attempts")
        self.operation = operation
        self.attempts = attempts


class TransactionStateError(ChronicleError):
    """Raised when the transaction lifecycle of a store session is misused."""

    pass


class SnapshotValidationError(ChronicleError, ValueError):
    """Raised when a snapshot has a malformed id or an unknown type."""

    pass


class UnknownEventTypeError(ChronicleError, LookupError):
    """Raised when a type or discriminator is missing from the type registry."""

    pass


class UnhandledEventError(ChronicleError, NotImplementedError):
    """Raised when an aggregate has no state transition for an event type."""

    pass


class DeadlineExceededError(ChronicleError, TimeoutError):
    """Raised when a store operation does not finish within its deadline."""

    def __init__(self, timeout: float):
        super().__init__(f"Store operation exceeded its deadline of {timeout}s")
        self.timeout = timeout
