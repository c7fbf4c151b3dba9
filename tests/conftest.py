"""Central test fixtures - imports from unified test_app."""

from uuid import UUID, uuid4

import pytest

from chronicle import (
    AggregateFactory,
    EventSourcedRepository,
    InMemoryEventStore,
    RepositorySettings,
    RetryPolicy,
    TypeRegistry,
)

# Import all test domain objects from unified test app
from tests.fixtures.test_app import BankAccount, Counter, build_registry


@pytest.fixture
def aggregate_id() -> UUID:
    """Generate a unique aggregate ID."""
    return uuid4()


@pytest.fixture
def registry() -> TypeRegistry:
    """Create a registry with every test event and aggregate."""
    return build_registry()


@pytest.fixture
def fast_retry_policy() -> RetryPolicy:
    """Retry policy without delays."""
    return RetryPolicy(max_attempts=3, base_delay=0, max_delay=0, jitter=False)


@pytest.fixture
def event_store(registry: TypeRegistry, fast_retry_policy: RetryPolicy) -> InMemoryEventStore:
    """Create an in-memory event store."""
    return InMemoryEventStore(registry, fast_retry_policy)


@pytest.fixture
def settings() -> RepositorySettings:
    """Repository settings with the default snapshot threshold."""
    return RepositorySettings()


@pytest.fixture
def counter_repository(
    event_store: InMemoryEventStore, settings: RepositorySettings
) -> EventSourcedRepository[Counter]:
    """Create a repository for Counter aggregates."""
    return EventSourcedRepository(AggregateFactory(Counter), event_store, settings)


@pytest.fixture
def bank_account_repository(
    event_store: InMemoryEventStore, settings: RepositorySettings
) -> EventSourcedRepository[BankAccount]:
    """Create a repository for BankAccount aggregates."""
    return EventSourcedRepository(AggregateFactory(BankAccount), event_store, settings)


@pytest.fixture
def bank_account(aggregate_id: UUID) -> BankAccount:
    """Create a BankAccount aggregate instance."""
    return BankAccount(id=aggregate_id)
