"""MongoDB collection wrapper with index management and query helpers.

This module provides an IndexedCollection class that wraps a MongoDB
AsyncCollection with automatic index management and helper methods for the
query patterns of stream and snapshot collections.
"""

from collections.abc import AsyncIterator
from enum import IntEnum
from typing import Any

from pydantic import BaseModel, ConfigDict
from pymongo import ASCENDING, DESCENDING
from pymongo.asynchronous.client_session import AsyncClientSession
from pymongo.asynchronous.collection import AsyncCollection


class IndexDirection(IntEnum):
    """Sort direction for MongoDB index fields."""

    ASC = ASCENDING
    """Ascending order (1)."""

    DESC = DESCENDING
    """Descending order (-1)."""


class IndexSpec(BaseModel):
    """Specification for a MongoDB index.

    Example:
        >>> # Unique position index of a stream
        >>> IndexSpec(keys=[("version", IndexDirection.ASC)], unique=True)
        >>>
        >>> # Time lookup index
        >>> IndexSpec(keys=[("created", IndexDirection.ASC)])
    """

    model_config = ConfigDict(arbitrary_types_allowed=True)

    keys: list[tuple[str, IndexDirection]]
    """(field_name, direction) tuples."""

    unique: bool = False
    """If True, enforce uniqueness."""

    async def apply(self, collection: AsyncCollection[dict[str, Any]]) -> None:
        """Apply this index specification to a collection.

        Creating an index creates the collection if it does not exist yet.

        Args:
            collection: The MongoDB collection to create the index on.
        """
        kwargs: dict[str, Any] = {}
        if self.unique:
            kwargs["unique"] = True

        await collection.create_index(self.keys, **kwargs)


class IndexedCollection:
    """A MongoDB collection wrapper with automatic index management.

    IndexedCollection wraps an AsyncCollection and handles:
    - Lazy index creation (indexes created on first use)
    - Common query patterns (range scans, latest by a field, counts)
    - Inserts, optionally bound to a client session

    Index creation never runs on the caller's session: collection and index
    DDL is kept out of transactions.

    Example:
        >>> collection = IndexedCollection(
        ...     config.db["BankAccount-1f0c..."],
        ...     indexes=[IndexSpec(keys=[("version", IndexDirection.ASC)], unique=True)],
        ... )
        >>>
        >>> # Indexes are created on first operation
        >>> await collection.insert_many(docs, session=session)
        >>> async for doc in collection.find({"version": {"$gte": 0}}, sort=[("version", 1)]):
        ...     print(doc)
    """

    def __init__(
        self,
        collection: AsyncCollection[dict[str, Any]],
        indexes: list[IndexSpec] | None = None,
    ) -> None:
        """Initialize the indexed collection.

        Args:
            collection: The underlying MongoDB AsyncCollection.
            indexes: List of index specifications to create.
        """
        self._collection = collection
        self._indexes = indexes or []
        self._indexes_created = False

    async def ensure_indexes(self) -> None:
        """Create indexes if not already created.

        Called automatically before writes, but can be called explicitly for
        eager initialization.
        """
        if self._indexes_created:
            return

        for spec in self._indexes:
            await spec.apply(self._collection)

        self._indexes_created = True

    # ========== Find Operations ==========

    async def find(
        self,
        filter: dict[str, Any],
        sort: list[tuple[str, int]] | None = None,
        session: AsyncClientSession | None = None,
    ) -> AsyncIterator[dict[str, Any]]:
        """Find documents matching the filter.

        Args:
            filter: MongoDB query filter.
            sort: Optional list of (field, direction) tuples.
            session: Optional client session to read on.

        Yields:
            Matching documents.
        """
        cursor = self._collection.find(filter, session=session)

        if sort:
            cursor = cursor.sort(sort)

        async for doc in cursor:
            yield doc

    async def find_latest(
        self,
        filter: dict[str, Any],
        sort_field: str,
        session: AsyncClientSession | None = None,
    ) -> dict[str, Any] | None:
        """Find the latest document by a sort field.

        Args:
            filter: MongoDB query filter.
            sort_field: Field to sort by descending.
            session: Optional client session to read on.

        Returns:
            The latest matching document or None.
        """
        cursor = (
            self._collection.find(filter, session=session).sort(sort_field, DESCENDING).limit(1)
        )

        async for doc in cursor:
            result: dict[str, Any] = doc
            return result
        return None

    async def count(
        self,
        filter: dict[str, Any] | None = None,
        session: AsyncClientSession | None = None,
    ) -> int:
        """Count documents matching the filter, all documents by default."""
        return await self._collection.count_documents(filter or {}, session=session)

    # ========== Insert Operations ==========

    async def insert_one(
        self,
        document: dict[str, Any],
        session: AsyncClientSession | None = None,
    ) -> None:
        """Insert a single document.

        Args:
            document: The document to insert.
            session: Optional client session to write on.
        """
        await self.ensure_indexes()
        await self._collection.insert_one(document, session=session)

    async def insert_many(
        self,
        documents: list[dict[str, Any]],
        session: AsyncClientSession | None = None,
    ) -> None:
        """Insert multiple documents.

        Args:
            documents: List of documents to insert, in order. Stops at the
                first failing document.
            session: Optional client session to write on.
        """
        await self.ensure_indexes()
        await self._collection.insert_many(documents, session=session)
