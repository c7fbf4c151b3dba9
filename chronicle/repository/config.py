"""Configuration for event-sourced repositories."""

from enum import Enum

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class ReplayWindow(str, Enum):
    """How far `find_by_id` reads past the loaded snapshot."""

    BOUNDED = "bounded"
    """Read at most `snapshot_threshold` events after the snapshot."""

    FULL = "full"
    """Read every event up to the end of the stream."""


class RepositorySettings(BaseSettings):
    """Settings shared by the repositories of an application.

    All settings can be configured via environment variables with the
    CHRONICLE_REPOSITORY_ prefix. For example:
    - CHRONICLE_REPOSITORY_SNAPSHOT_THRESHOLD=256
    - CHRONICLE_REPOSITORY_REPLAY_WINDOW=full
    - CHRONICLE_REPOSITORY_OPERATION_TIMEOUT=2.5

    Attributes:
        snapshot_threshold: Number of events after the latest snapshot that
            triggers a new one. Also the exclusive upper bound on the number
            of changes a single save may carry.
        replay_window: Replay policy of `find_by_id`. The bounded window is
            the historical behavior; with snapshots taken on every save it
            only truncates when the stream was written by other means.
        operation_timeout: Deadline in seconds applied to every store call,
            or None to wait indefinitely.

    Example:
        >>> settings = RepositorySettings(snapshot_threshold=64)
        >>> repository = EventSourcedRepository(
        ...     AggregateFactory(BankAccount), store, settings
        ... )
    """

    snapshot_threshold: int = Field(default=128, ge=1)
    replay_window: ReplayWindow = ReplayWindow.BOUNDED
    operation_timeout: float | None = Field(default=None, gt=0)

    model_config = SettingsConfigDict(env_prefix="CHRONICLE_REPOSITORY_")
