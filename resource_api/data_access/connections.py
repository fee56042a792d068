# MongoDB connection management and seeding
# resource_api/data_access/connections.py

import logging
import os
from typing import Any, Callable, Dict, List, Optional

from bson import json_util
from motor.motor_asyncio import AsyncIOMotorClient, AsyncIOMotorDatabase
from pymongo import uri_parser
from pymongo.errors import ConfigurationError, ConnectionFailure, InvalidURI, PyMongoError

logger = logging.getLogger(__name__)

DEFAULT_CONNECTION = "$default"

ClientFactory = Callable[..., Any]


class Connection:
    """A named MongoDB connection and the database it points at."""

    def __init__(self, name: str, uri: str, default_db_name: str):
        self.name = name
        self.uri = uri
        self.db_name = self._db_name_from_uri(uri) or default_db_name
        self.client: Optional[AsyncIOMotorClient] = None
        self.db: Optional[AsyncIOMotorDatabase] = None
        self.ready = False

    @staticmethod
    def _db_name_from_uri(uri: str) -> Optional[str]:
        try:
            return uri_parser.parse_uri(uri).get("database")
        except (InvalidURI, ConfigurationError, ValueError) as e:
            logger.warning(f"Could not parse database name from MongoDB URI: {e}")
            return None

    def __repr__(self) -> str:
        return f"Connection(name={self.name!r}, db={self.db_name!r}, ready={self.ready})"


class ConnectionManager:
    """
    Owns the application's Motor clients. Connections are opened together on
    startup and closed together on shutdown.
    """

    def __init__(
        self,
        uris: Dict[str, str],
        default_db_name: str = "resource_api",
        client_factory: ClientFactory = AsyncIOMotorClient,
        verify: bool = True,
        **client_options: Any,
    ):
        if DEFAULT_CONNECTION not in uris:
            raise ValueError(f"A '{DEFAULT_CONNECTION}' connection is required")

        self._connections: Dict[str, Connection] = {
            name: Connection(name, uri, default_db_name) for name, uri in uris.items()
        }
        self._client_factory = client_factory
        self._client_options = client_options
        self._verify = verify

    @property
    def connections(self) -> Dict[str, Connection]:
        return self._connections

    def get_connection(self, name: str = DEFAULT_CONNECTION) -> Connection:
        try:
            return self._connections[name]
        except KeyError:
            raise KeyError(f"Unknown connection: {name}")

    def get_database(self, name: str = DEFAULT_CONNECTION) -> AsyncIOMotorDatabase:
        """
        Returns the database for a named connection.

        Raises:
            ConnectionError: If the connection has not been opened successfully.
        """
        conn = self.get_connection(name)
        if not conn.ready or conn.db is None:
            logger.critical(f"MongoDB connection '{name}' is not available. Check initialization.")
            raise ConnectionError(f"Database connection not available for {name}")
        return conn.db

    async def open(self) -> None:
        """Opens every configured connection. Failed connections stay not ready."""
        for conn in self._connections.values():
            await self._open_connection(conn)

    async def _open_connection(self, conn: Connection) -> None:
        logger.info(f"Opening MongoDB connection '{conn.name}' (database '{conn.db_name}')...")
        try:
            conn.client = self._client_factory(conn.uri, **self._client_options)
            if self._verify:
                # Ping the server to verify connection early
                await conn.client.admin.command('ping')
            conn.db = conn.client[conn.db_name]
            conn.ready = True
            logger.info(f"MongoDB connection '{conn.name}' is ready.")
        except ConnectionFailure as e:
            logger.error(f"MongoDB connection '{conn.name}' failed during initialization: {e}", exc_info=True)
            conn.ready = False
        except PyMongoError as e:
            logger.error(f"Unexpected error opening MongoDB connection '{conn.name}': {e}", exc_info=True)
            conn.ready = False

    async def close(self) -> None:
        for conn in self._connections.values():
            if conn.client is not None:
                conn.client.close()
                logger.info(f"MongoDB connection '{conn.name}' closed.")
            conn.client = None
            conn.db = None
            conn.ready = False

    # --- Seeding ---

    async def seed(self, name: str, data: Dict[str, List[Dict[str, Any]]]) -> Dict[str, List[Dict[str, Any]]]:
        """
        Replaces the contents of the given collections with the seed documents.

        Returns:
            The inserted documents per collection, including their ids.
        """
        db = self.get_database(name)
        seeded: Dict[str, List[Dict[str, Any]]] = {}

        for collection_name, docs in data.items():
            collection = db[collection_name]
            docs = [dict(doc) for doc in docs]
            try:
                await collection.delete_many({})
                if docs:
                    await collection.insert_many(docs)
            except PyMongoError as e:
                logger.error(f"DB error seeding collection {collection_name} on '{name}': {e}", exc_info=True)
                raise
            seeded[collection_name] = docs
            logger.info(f"Seeded {len(docs)} document(s) into '{name}'.{collection_name}")

        return seeded

    async def seed_from_directory(self, directory: str) -> Dict[str, Dict[str, List[Dict[str, Any]]]]:
        """Loads ``<connection>.json`` files from a directory and seeds each connection."""
        seeds: Dict[str, Dict[str, List[Dict[str, Any]]]] = {}

        for name in self._connections:
            path = os.path.join(directory, f"{name}.json")
            if not os.path.isfile(path):
                logger.debug(f"No seed file for connection '{name}' at {path}")
                continue

            with open(path, encoding="utf-8") as f:
                # Extended JSON, so seeds can carry {"$oid": ...} and {"$date": ...} values
                data = json_util.loads(f.read())

            seeds[name] = await self.seed(name, data)

        return seeds
