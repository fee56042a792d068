# FastAPI dependencies and connection lifecycle
# resource_api/api/deps.py

import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request

from resource_api.core.config import Settings, settings
from resource_api.core.messaging import RedisEventRelay, create_redis_relay, messaging
from resource_api.data_access.connections import DEFAULT_CONNECTION, ConnectionManager
from resource_api.data_access.models import registry

logger = logging.getLogger(__name__)


def make_connection_manager(config: Settings = settings, **kwargs) -> ConnectionManager:
    """Builds the ConnectionManager for $default plus any named connections."""
    uris = {DEFAULT_CONNECTION: config.MONGODB_URI.get_secret_value()}
    for name, uri in config.MONGODB_CONNECTIONS.items():
        uris[name] = uri.get_secret_value()

    kwargs.setdefault("serverSelectionTimeoutMS", config.MONGODB_SERVER_SELECTION_TIMEOUT_MS)
    return ConnectionManager(uris, default_db_name=config.MONGODB_DEFAULT_DB_NAME, **kwargs)


async def initialize_connections(app: FastAPI) -> None:
    """
    Opens the database connections, binds the registered models, seeds the
    databases, and starts the Redis event relay. Call during startup.
    """
    manager: ConnectionManager = app.state.connection_manager
    config: Settings = app.state.settings
    logger.info("Initializing external connections...")

    await manager.open()
    registry.bind(manager)

    app.state.seeds = {}
    if config.SEEDS_DIR:
        logger.info(f"Seeding databases from {config.SEEDS_DIR}")
        app.state.seeds = await manager.seed_from_directory(config.SEEDS_DIR)

    app.state.event_relay = None
    if config.REDIS_URL:
        relay = await create_redis_relay(config.REDIS_URL.get_secret_value(), config.EVENT_CHANNEL_PREFIX)
        if relay is not None:
            relay.attach(messaging)
            app.state.event_relay = relay


async def close_connections(app: FastAPI) -> None:
    """Closes every connection opened by initialize_connections. Call during shutdown."""
    logger.info("Closing external connections...")

    relay: Optional[RedisEventRelay] = getattr(app.state, "event_relay", None)
    if relay is not None:
        relay.detach(messaging)
        await relay.client.close()
        logger.info("Redis event relay closed.")

    registry.unbind()
    await app.state.connection_manager.close()


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Startup
    await initialize_connections(app)
    yield
    # Shutdown
    await close_connections(app)


def get_connection_manager(request: Request) -> ConnectionManager:
    return request.app.state.connection_manager
