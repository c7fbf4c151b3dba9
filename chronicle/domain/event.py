from datetime import datetime, timezone
from typing import Any, ClassVar

from pydantic import BaseModel, ConfigDict, Field
from ulid import ULID


def utc_now() -> datetime:
    """Get the current UTC timestamp.

    Returns:
        Current datetime with UTC timezone information

    Note:
        Used as default_factory for timestamps so that every event and
        snapshot is stamped in UTC regardless of system timezone.
    """
    return datetime.now(tz=timezone.utc)


def as_utc(moment: datetime) -> datetime:
    """Interpret a naive datetime as UTC, convert an aware one to UTC."""
    if moment.tzinfo is None:
        return moment.replace(tzinfo=timezone.utc)
    return moment.astimezone(timezone.utc)


class ChangeEvent(BaseModel):
    """Immutable record of one state transition of an aggregate.

    Subclasses declare the payload of the transition as ordinary pydantic
    fields. Every change event carries:

    - **id**: a unique identifier for this event instance
    - **created**: when the transition happened (UTC)

    Change events are frozen: once created and appended to a stream they are
    never modified. Their position in the stream is assigned by the event
    store on append, not by the event itself.

    Examples:
        >>> class MoneyDeposited(ChangeEvent):
        ...     amount: Decimal
        >>>
        >>> event = MoneyDeposited(amount=Decimal("10.00"))
        >>> event.payload()
        {'amount': Decimal('10.00')}
    """

    model_config = ConfigDict(frozen=True)

    METADATA_FIELDS: ClassVar[set[str]] = {"id", "created"}

    id: ULID = Field(
        default_factory=ULID,
        description="Unique identifier for this event instance",
    )
    created: datetime = Field(
        default_factory=utc_now,
        description="When the event occurred (UTC timezone)",
    )

    def payload(self) -> dict[str, Any]:
        """Return the event's own data, without id and timestamp."""
        return self.model_dump(exclude=self.METADATA_FIELDS)
