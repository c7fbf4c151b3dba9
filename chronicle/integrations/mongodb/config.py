"""MongoDB configuration using pydantic-settings."""

from functools import cached_property
from typing import Any, Literal

from pydantic_settings import BaseSettings, SettingsConfigDict
from pymongo import ReadPreference
from pymongo.asynchronous.client_session import AsyncClientSession
from pymongo.asynchronous.database import AsyncDatabase
from pymongo.asynchronous.mongo_client import AsyncMongoClient
from pymongo.client_session import TransactionOptions
from pymongo.read_concern import ReadConcern
from pymongo.write_concern import WriteConcern


class MongoConfiguration(BaseSettings):
    """Configuration and factory for MongoDB resources.

    All settings can be configured via environment variables with the
    CHRONICLE_MONGO_ prefix. For example:
    - CHRONICLE_MONGO_URI=mongodb://localhost:27017/?replicaSet=rs0
    - CHRONICLE_MONGO_DATABASE=bank
    - CHRONICLE_MONGO_WRITE_CONCERN=majority

    The configuration also acts as a factory, providing lazy-initialized
    properties for the MongoDB client and database, and for the client
    sessions the event store runs its transactions on. Transactions require
    the server to be a replica set member or a sharded cluster.

    Attributes:
        uri: MongoDB connection URI.
        database: Database name to use.
        read_concern: Read concern level of transactions.
        write_concern: Write concern of transactions, "majority" or a
            number of nodes given as a string.
        causal_consistency: Whether sessions are causally consistent.
        server_selection_timeout_ms: How long to wait for a suitable server.

    Example:
        >>> config = MongoConfiguration(database="bank")
        >>> store = MongoEventStore(config, registry)
        >>> ...
        >>> await config.on_shutdown()
    """

    # Connection settings
    uri: str = "mongodb://localhost:27017"
    database: str = "event_store"
    server_selection_timeout_ms: int = 30000

    # Session and transaction settings
    read_concern: Literal["local", "majority", "snapshot"] = "majority"
    write_concern: str = "majority"
    causal_consistency: bool = True

    model_config = SettingsConfigDict(env_prefix="CHRONICLE_MONGO_")

    @cached_property
    def client(self) -> AsyncMongoClient[dict[str, Any]]:
        """Get the MongoDB async client.

        The client is lazily created and cached for reuse. Datetimes are read
        back timezone-aware, in UTC.
        """
        return AsyncMongoClient(
            self.uri,
            tz_aware=True,
            serverSelectionTimeoutMS=self.server_selection_timeout_ms,
        )

    @cached_property
    def db(self) -> AsyncDatabase[dict[str, Any]]:
        """Get the MongoDB async database.

        Uses the database name from configuration.
        """
        return self.client[self.database]

    @property
    def transaction_options(self) -> TransactionOptions:
        w: int | str = int(self.write_concern) if self.write_concern.isdigit() else self.write_concern
        return TransactionOptions(
            read_concern=ReadConcern(self.read_concern),
            write_concern=WriteConcern(w=w),
            read_preference=ReadPreference.PRIMARY,
        )

    def start_session(self) -> AsyncClientSession:
        """Start a client session with the configured transaction defaults."""
        return self.client.start_session(
            causal_consistency=self.causal_consistency,
            default_transaction_options=self.transaction_options,
        )

    async def on_startup(self) -> None:
        """No-op for MongoDB, connections are established lazily."""
        pass

    async def on_shutdown(self) -> None:
        """Closes the MongoDB client connection if it was created."""
        if "client" in self.__dict__:
            await self.client.close()
            del self.__dict__["client"]
            self.__dict__.pop("db", None)
