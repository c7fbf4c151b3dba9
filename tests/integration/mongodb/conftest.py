"""Pytest fixtures for MongoDB integration tests."""

import os
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from functools import lru_cache

import pytest
import pytest_asyncio
from pymongo import MongoClient
from pymongo.errors import PyMongoError

from chronicle import TypeRegistry
from chronicle.integrations.mongodb import MongoConfiguration, MongoEventStore

# Transactions need a replica set, a single-node one is enough
LOCAL_MONGO_URI = os.environ.get(
    "CHRONICLE_TEST_MONGO_URI", "mongodb://localhost:27017/?directConnection=true"
)


@lru_cache(maxsize=1)
def replica_set_available() -> bool:
    client: MongoClient = MongoClient(LOCAL_MONGO_URI, serverSelectionTimeoutMS=1000)
    try:
        hello = client.admin.command("hello")
    except PyMongoError:
        return False
    finally:
        client.close()
    return "setName" in hello


@asynccontextmanager
async def create_config(
    request: pytest.FixtureRequest,
    prefix: str = "test",
) -> AsyncIterator[MongoConfiguration]:
    """Create a MongoConfiguration on a fresh database, with cleanup."""
    if not replica_set_available():
        pytest.skip(f"No MongoDB replica set reachable at {LOCAL_MONGO_URI}")

    db_name = f"{prefix}_{request.node.name}"[:63]
    config = MongoConfiguration(uri=LOCAL_MONGO_URI, database=db_name)
    await config.client.drop_database(config.database)
    try:
        yield config
    finally:
        await config.client.drop_database(config.database)
        await config.on_shutdown()


@pytest_asyncio.fixture
async def mongo_config(request: pytest.FixtureRequest) -> AsyncIterator[MongoConfiguration]:
    """Create a MongoConfiguration pointing to local MongoDB."""
    async with create_config(request) as config:
        yield config


@pytest_asyncio.fixture
async def mongo_event_store(
    mongo_config: MongoConfiguration, registry: TypeRegistry, fast_retry_policy
) -> AsyncIterator[MongoEventStore]:
    """Create a MongoEventStore for testing."""
    store = MongoEventStore(mongo_config, registry, fast_retry_policy)
    try:
        yield store
    finally:
        if store.in_transaction:
            await store.abort_transaction()
        await store.close()
