# Application-wide pub/sub for resource events
# resource_api/core/messaging.py

import inspect
import json
import logging
from collections import defaultdict
from typing import Any, Awaitable, Callable, Dict, List, Optional, Union

import redis.asyncio as redis
from fastapi.encoders import jsonable_encoder
from redis.exceptions import RedisError

from resource_api.utils.encoders import JSON_ENCODERS

logger = logging.getLogger(__name__)

Listener = Callable[[str, Any], Union[None, Awaitable[None]]]

WILDCARD = "*"


class Messenger:
    """
    In-process event emitter. Listeners receive ``(event_name, payload)`` and may be
    plain functions or coroutines. A listener registered on ``"*"`` receives every event.
    """

    def __init__(self):
        self._listeners: Dict[str, List[Listener]] = defaultdict(list)

    def on(self, event: str, listener: Listener) -> None:
        self._listeners[event].append(listener)
        logger.debug(f"Registered listener {getattr(listener, '__name__', listener)!r} for '{event}'")

    def off(self, event: str, listener: Listener) -> None:
        try:
            self._listeners[event].remove(listener)
        except ValueError:
            logger.debug(f"Listener not registered for '{event}'; nothing removed.")

    def clear(self) -> None:
        self._listeners.clear()

    def listeners(self, event: str) -> List[Listener]:
        return list(self._listeners.get(event, [])) + list(self._listeners.get(WILDCARD, []))

    async def emit(self, event: str, payload: Any = None) -> int:
        """
        Delivers an event to its listeners. A failing listener is logged and does not
        affect the request that emitted the event.

        Returns:
            The number of listeners notified.
        """
        listeners = self.listeners(event)
        logger.debug(f"Emitting '{event}' to {len(listeners)} listener(s)")

        for listener in listeners:
            try:
                result = listener(event, payload)
                if inspect.isawaitable(result):
                    await result
            except Exception as e:
                logger.error(f"Listener for event '{event}' failed: {e}", exc_info=True)

        return len(listeners)


class RedisEventRelay:
    """Publishes every emitted event on a Redis channel named ``<prefix><event>``."""

    def __init__(self, client: redis.Redis, channel_prefix: str = ""):
        self.client = client
        self.channel_prefix = channel_prefix

    async def __call__(self, event: str, payload: Any) -> None:
        channel = f"{self.channel_prefix}{event}"
        try:
            message = json.dumps(jsonable_encoder(payload, custom_encoder=JSON_ENCODERS))
            receivers = await self.client.publish(channel, message)
            logger.debug(f"Published '{event}' on {channel} to {receivers} subscriber(s)")
        except RedisError as e:
            logger.error(f"Redis PUBLISH error for channel {channel}: {e}", exc_info=True)

    def attach(self, messenger: "Messenger") -> None:
        messenger.on(WILDCARD, self)

    def detach(self, messenger: "Messenger") -> None:
        messenger.off(WILDCARD, self)


# Global messenger used by resource controllers
messaging = Messenger()


async def create_redis_relay(url: str, channel_prefix: str) -> Optional[RedisEventRelay]:
    """Connects to Redis and returns a relay, or None when Redis is unreachable."""
    try:
        client = redis.from_url(url, encoding="utf-8", decode_responses=True)
        await client.ping()
        logger.info("Redis event relay connected.")
        return RedisEventRelay(client, channel_prefix)
    except RedisError as e:
        logger.error(f"Redis connection failed; events stay in-process: {e}", exc_info=True)
        return None
