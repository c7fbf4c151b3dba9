"""MongoDB implementation of EventStore for event sourcing.

This module provides a MongoDB-backed event store implementation using PyMongo's
async API for durable event persistence with optimistic concurrency control.
"""

import logging
from collections.abc import Sequence
from datetime import datetime
from typing import Any, TypeVar

from pydantic import BaseModel
from pymongo.asynchronous.client_session import AsyncClientSession
from pymongo.errors import BulkWriteError, OperationFailure, PyMongoError

from ...domain.event import ChangeEvent, as_utc
from ...domain.exceptions import ConcurrencyError, TransientStoreError
from ...domain.records import AggregateSnapshot, StoredEvent
from ...domain.registry import TypeRegistry
from ...retry import RetryPolicy
from ...store.base import EventStore, snapshot_channel_for
from .collection import IndexDirection, IndexedCollection, IndexSpec
from .config import MongoConfiguration

LOGGER = logging.getLogger(__name__)

R = TypeVar("R", bound=BaseModel)

DUPLICATE_KEY = 11000
WRITE_CONFLICT = 112

TRANSIENT_COMMIT_LABELS = ("TransientTransactionError", "UnknownTransactionCommitResult")

VERSION_INDEXES = [IndexSpec(keys=[("version", IndexDirection.ASC)], unique=True)]


def to_document(record: StoredEvent | AggregateSnapshot) -> dict[str, Any]:
    """Convert a record to a document, its id becoming the document `_id`."""
    document = record.model_dump(exclude={"id"})
    document["_id"] = record.id
    return document


def from_document(model: type[R], document: dict[str, Any]) -> R:
    """Convert a document back to a record."""
    fields = {key: value for key, value in document.items() if key != "_id"}
    return model.model_validate({**fields, "id": document["_id"]})


def is_position_conflict(error: OperationFailure) -> bool:
    """Whether a write failed because a stream position or version is taken."""
    if error.code in (DUPLICATE_KEY, WRITE_CONFLICT):
        return True
    if isinstance(error, BulkWriteError):
        return any(
            write_error.get("code") == DUPLICATE_KEY
            for write_error in error.details.get("writeErrors", [])
        )
    return False


class MongoEventStore(EventStore):
    """MongoDB implementation of the EventStore interface.

    This implementation keeps:
    - One collection per stream, holding its events
    - One `{stream}_snapshots` collection per stream, holding its snapshots
    - A unique index on `version` in both, the optimistic concurrency guard

    All reads and writes go through a single causally consistent client
    session, created on first use with the configured transaction options.
    Transactions therefore require a replica set or a sharded cluster.

    Appends made outside a caller transaction run in their own short
    transaction so that a batch of events is stored all-or-nothing.

    Attributes:
        config: MongoDB configuration, also the client factory.

    Examples:
        >>> config = MongoConfiguration(uri="mongodb://localhost:27017/?replicaSet=rs0")
        >>> store = MongoEventStore(config, registry)
        >>> await store.create_stream("BankAccount-1f0c...")
        >>> await store.append_events("BankAccount-1f0c...", [opened], expected_version=0)
        >>> await store.close()
    """

    def __init__(
        self,
        config: MongoConfiguration,
        registry: TypeRegistry,
        retry_policy: RetryPolicy | None = None,
    ):
        super().__init__(registry, retry_policy)
        self.config = config
        self._session: AsyncClientSession | None = None
        self._collections: dict[str, IndexedCollection] = {}

    @property
    def session(self) -> AsyncClientSession:
        """The client session of this store, started on first use."""
        if self._session is None:
            self._session = self.config.start_session()
        return self._session

    def _collection(self, name: str) -> IndexedCollection:
        if name not in self._collections:
            self._collections[name] = IndexedCollection(self.config.db[name], VERSION_INDEXES)
        return self._collections[name]

    def _events(self, stream_name: str) -> IndexedCollection:
        self._check_stream_name(stream_name)
        return self._collection(stream_name)

    def _snapshots(self, stream_name: str) -> IndexedCollection:
        self._check_stream_name(stream_name)
        return self._collection(snapshot_channel_for(stream_name))

    # ========== Streams ==========

    async def create_stream(self, stream_name: str) -> None:
        # Index creation creates both collections, outside of any transaction
        await self._events(stream_name).ensure_indexes()
        await self._snapshots(stream_name).ensure_indexes()
        LOGGER.info("Stream created", extra={"stream": stream_name})

    async def stream_exists(self, stream_name: str) -> bool:
        names = await self.config.db.list_collection_names(filter={"name": stream_name})
        return stream_name in names

    async def append_events(
        self,
        stream_name: str,
        events: Sequence[ChangeEvent],
        expected_version: int,
    ) -> None:
        collection = self._events(stream_name)
        documents = [
            to_document(record)
            for record in self._encode_events(stream_name, events, expected_version)
        ]
        await collection.ensure_indexes()

        try:
            if self.in_transaction:
                await collection.insert_many(documents, session=self.session)
            else:
                async with await self.session.start_transaction():
                    await collection.insert_many(documents, session=self.session)
        except OperationFailure as e:
            if is_position_conflict(e):
                raise ConcurrencyError(
                    f"Stream '{stream_name}' already has events at positions "
                    f"{expected_version}..{expected_version + len(documents) - 1}"
                ) from e
            raise

        LOGGER.debug(
            "Events appended",
            extra={
                "stream": stream_name,
                "expected_version": expected_version,
                "count": len(documents),
            },
        )

    async def get_stream_size(self, stream_name: str) -> int:
        return await self._events(stream_name).count(session=self.session)

    async def get_event_range(
        self, stream_name: str, from_version: int, to_version: int
    ) -> list[ChangeEvent]:
        if to_version <= from_version:
            return []
        documents = self._events(stream_name).find(
            {"version": {"$gte": from_version, "$lt": to_version}},
            sort=[("version", IndexDirection.ASC)],
            session=self.session,
        )
        return [
            self._decode_event(from_document(StoredEvent, document))
            async for document in documents
        ]

    async def get_version_at(self, stream_name: str, at: datetime) -> int | None:
        document = await self._events(stream_name).find_latest(
            {"created": {"$lte": as_utc(at)}}, "version", session=self.session
        )
        return document["version"] if document else None

    # ========== Snapshots ==========

    async def get_latest_snapshot(self, stream_name: str) -> AggregateSnapshot | None:
        document = await self._snapshots(stream_name).find_latest(
            {}, "version", session=self.session
        )
        return from_document(AggregateSnapshot, document) if document else None

    async def get_snapshot_at(self, stream_name: str, at: datetime) -> AggregateSnapshot | None:
        document = await self._snapshots(stream_name).find_latest(
            {"created": {"$lte": as_utc(at)}}, "version", session=self.session
        )
        return from_document(AggregateSnapshot, document) if document else None

    async def add_snapshot(self, stream_name: str, snapshot: AggregateSnapshot) -> None:
        collection = self._snapshots(stream_name)
        self._validate_snapshot(snapshot)
        try:
            await collection.insert_one(to_document(snapshot), session=self.session)
        except OperationFailure as e:
            if is_position_conflict(e):
                raise ConcurrencyError(
                    f"Stream '{stream_name}' already has a snapshot at version {snapshot.version}"
                ) from e
            raise
        LOGGER.info(
            "Snapshot added",
            extra={"stream": stream_name, "version": snapshot.version},
        )

    # ========== Transactions ==========

    async def _begin_transaction(self) -> None:
        await self.session.start_transaction()

    async def _commit_transaction(self) -> None:
        try:
            await self.session.commit_transaction()
        except PyMongoError as e:
            if any(e.has_error_label(label) for label in TRANSIENT_COMMIT_LABELS):
                raise TransientStoreError(str(e)) from e
            raise

    async def _abort_transaction(self) -> None:
        # A failed commit still leaves the driver session in its committed state
        if self.session.in_transaction:
            await self.session.abort_transaction()

    async def close(self) -> None:
        """End the client session. The client itself is owned by the config."""
        if self._session is not None:
            await self._session.end_session()
            self._session = None
