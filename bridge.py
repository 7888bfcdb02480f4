import asyncio
import json
from typing import Any, Optional

import redis.asyncio as redis
from fastapi import Request

from constants import Settings
from logging_config import get_logger
from realtime import RealtimeGateway
from redis_keys import REDIS_ROOM_CHANNEL, REDIS_ROOM_CHANNEL_PATTERN

logger = get_logger(__name__)


class LocalPublishBridge:
    """Hands publish calls straight to this process's realtime gateway."""

    def __init__(self, gateway: RealtimeGateway):
        self._gateway = gateway

    async def publish(self, room_id: str, event: str, payload: Any) -> int:
        return await self._gateway.publish(room_id, event, payload)

    async def start(self) -> None:
        logger.info("Publish bridge: local (single instance)")

    async def stop(self) -> None:
        pass


class RedisPublishBridge:
    """Relays publishes through Redis pub/sub so every instance fans out to its own connections.

    Each instance tracks only its own WebSocket connections. publish() writes
    to the room's channel; the listener started by start() receives messages
    for every room and hands them to the local gateway. A lost subscription
    is re-established with exponential backoff; only stop() ends the listener.
    """

    def __init__(
        self,
        gateway: RealtimeGateway,
        redis_url: str,
        client: Optional[redis.Redis] = None,
        reconnect_delay: float = 1.0,
        max_reconnect_delay: float = 30.0,
    ):
        self._gateway = gateway
        self._redis_url = redis_url
        self.redis_client = client or redis.Redis.from_url(redis_url, decode_responses=True)
        self.reconnect_delay = reconnect_delay
        self.max_reconnect_delay = max_reconnect_delay
        self._listener: Optional[asyncio.Task] = None

    async def publish(self, room_id: str, event: str, payload: Any) -> int:
        """Returns the number of instances subscribed, not connections reached."""
        channel = REDIS_ROOM_CHANNEL.format(room_id=room_id)
        message_json = json.dumps({"event": event, "data": payload})
        subscribers = await self.redis_client.publish(channel, message_json)
        logger.debug(f"Published {event} to Redis channel {channel}, {subscribers} subscribers")
        return subscribers

    async def start(self) -> None:
        if self._listener is None or self._listener.done():
            self._listener = asyncio.create_task(self._listen())
            logger.info(f"Publish bridge: Redis relay on {REDIS_ROOM_CHANNEL_PATTERN}")

    async def stop(self) -> None:
        if self._listener is not None:
            self._listener.cancel()
            try:
                await self._listener
            except asyncio.CancelledError:
                pass
            self._listener = None
        await self.redis_client.aclose()
        logger.info("Redis publish bridge stopped")

    @property
    def listening(self) -> bool:
        return self._listener is not None and not self._listener.done()

    async def _listen(self) -> None:
        delay = self.reconnect_delay
        while True:
            pubsub = self.redis_client.pubsub(ignore_subscribe_messages=True)
            try:
                await pubsub.psubscribe(REDIS_ROOM_CHANNEL_PATTERN)
                logger.debug(f"Subscribed to {REDIS_ROOM_CHANNEL_PATTERN}")
                delay = self.reconnect_delay
                async for message in pubsub.listen():
                    if message.get("type") not in ("message", "pmessage"):
                        continue
                    await self.relay(message["channel"], message["data"])
                logger.warning("Redis relay subscription ended")
            except asyncio.CancelledError:
                logger.info("Redis relay listener cancelled")
                raise
            except Exception as e:
                logger.error(f"Redis relay subscription lost: {e}; resubscribing in {delay:.1f}s")
            finally:
                try:
                    await pubsub.aclose()
                except Exception as e:
                    logger.debug(f"Error closing Redis pub/sub: {e}")
            await asyncio.sleep(delay)
            delay = min(delay * 2, self.max_reconnect_delay)

    async def relay(self, channel: str, data: str) -> int:
        """Deliver one channel message to the local gateway; bad messages are logged and dropped."""
        room_id = channel.split(":", 2)[-1]
        try:
            message = json.loads(data)
            event = message["event"]
        except (json.JSONDecodeError, TypeError, KeyError) as e:
            logger.error(f"Dropping malformed message on {channel}: {e}")
            return 0
        return await self._gateway.publish(room_id, event, message.get("data"))


def build_bridge(gateway: RealtimeGateway, settings: Settings):
    if settings.redis_url:
        return RedisPublishBridge(gateway, settings.redis_url)
    return LocalPublishBridge(gateway)


class Publisher:
    """The only thing handler code gets: publish(room_id, event, payload)."""

    def __init__(self, bridge):
        self._bridge = bridge

    async def publish(self, room_id: str, event: str, payload: Any) -> int:
        return await self._bridge.publish(room_id, event, payload)


def get_publisher(request: Request) -> Publisher:
    return request.app.state.publisher
