"""Storage-ready envelopes for change events and aggregate snapshots."""

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field
from ulid import ULID

from .event import ChangeEvent, utc_now


def new_record_id() -> str:
    """Generate the identifier of a freshly created record."""
    return str(ULID())


class StoredEvent(BaseModel):
    """Persisted form of a change event.

    Attributes:
        id: Record identifier, assigned when the event is appended.
        type: Discriminator naming the concrete change event type.
        version: Position of the event in its stream (0-based).
        created: Creation time of the change event.
        data: JSON serialization of the change event.
    """

    model_config = ConfigDict(frozen=True)

    id: str = Field(default_factory=new_record_id)
    type: str
    version: int = Field(ge=0)
    created: datetime
    data: str

    @classmethod
    def from_change_event(
        cls, event: ChangeEvent, discriminator: str, version: int
    ) -> "StoredEvent":
        return cls(
            type=discriminator,
            version=version,
            created=event.created,
            data=event.model_dump_json(),
        )


class AggregateSnapshot(BaseModel):
    """Compacted state of an aggregate as of a stream version.

    A snapshot folds the first `version` events of a stream into a single
    serialized state, bounding the number of events that must be replayed to
    rebuild the aggregate.

    Attributes:
        id: Snapshot identifier (a ULID string), assigned at creation.
        type: Discriminator naming the aggregate type.
        version: Number of stream events folded into this snapshot.
        created: When the snapshot was taken (UTC).
        data: JSON serialization of the aggregate state.
    """

    model_config = ConfigDict(frozen=True)

    id: str = Field(default_factory=new_record_id)
    type: str
    version: int = Field(ge=0)
    created: datetime = Field(default_factory=utc_now)
    data: str
