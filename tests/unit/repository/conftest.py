"""Fixtures for repository tests."""

from uuid import UUID

import pytest_asyncio

from chronicle import InMemoryEventStore
from tests.fixtures.test_app import Incremented


@pytest_asyncio.fixture
async def seed_counter(event_store: InMemoryEventStore):
    """Append `count` Incremented events to a Counter stream."""

    async def seed(aggregate_id: UUID, count: int, start: int = 0) -> str:
        stream_name = f"Counter-{aggregate_id}"
        await event_store.append_events(
            stream_name, [Incremented() for _ in range(count)], start
        )
        return stream_name

    return seed
