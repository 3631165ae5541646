"""Redis client wrapper.

Redis Database Layout:
- DB 0: PubSub, Events (sessions:events:*)
"""

from enum import IntEnum
from typing import Any

import redis.asyncio as redis

from healthcore.models import Event


class RedisDB(IntEnum):
    """Redis database numbers."""

    PUBSUB = 0


class RedisClient:
    """Async Redis client with connection pooling."""

    def __init__(self, url: str = "redis://localhost:6379"):
        """Initialize Redis client.

        Args:
            url: Redis connection URL
        """
        self._url = url
        self._pools: dict[int, redis.ConnectionPool] = {}
        self._clients: dict[int, redis.Redis] = {}

    async def connect(self) -> None:
        """Initialize connection pools for all databases."""
        for db in RedisDB:
            pool = redis.ConnectionPool.from_url(
                self._url,
                db=db.value,
                decode_responses=True,
            )
            self._pools[db] = pool
            self._clients[db] = redis.Redis(connection_pool=pool)

    async def close(self) -> None:
        """Close all connections."""
        for client in self._clients.values():
            await client.aclose()
        for pool in self._pools.values():
            await pool.disconnect()

    def get_client(self, db: RedisDB) -> redis.Redis:
        """Get Redis client for specific database."""
        if db not in self._clients:
            raise RuntimeError("Redis client not connected. Call connect() first.")
        return self._clients[db]

    async def publish_event(self, event: Event) -> int:
        """Publish event to Redis PubSub.

        Channels: sessions:events:all, sessions:events:{type prefix},
        and sessions:events:tenant:{tenant_id} when the event is tenant scoped.

        Args:
            event: Event to publish

        Returns:
            Number of subscribers that received the message
        """
        client = self.get_client(RedisDB.PUBSUB)

        main_channel = "sessions:events:all"

        # use_enum_values=True may hand back a plain string
        event_type_str = (
            event.event_type.value if hasattr(event.event_type, "value") else event.event_type
        )
        type_channel = f"sessions:events:{event_type_str.lower().split('_')[1]}"

        tenant_channel = None
        if event.tenant_id:
            tenant_channel = f"sessions:events:tenant:{event.tenant_id}"

        message = event.model_dump_json()

        receivers = await client.publish(main_channel, message)
        await client.publish(type_channel, message)
        if tenant_channel:
            await client.publish(tenant_channel, message)

        return receivers

    async def health_check(self) -> dict[str, Any]:
        """Check Redis connectivity.

        Returns:
            Health status dict
        """
        results = {}
        for db in RedisDB:
            try:
                client = self.get_client(db)
                await client.ping()
                results[db.name.lower()] = {"status": "healthy"}
            except Exception as e:
                results[db.name.lower()] = {"status": "unhealthy", "error": str(e)}

        all_healthy = all(r["status"] == "healthy" for r in results.values())
        return {
            "status": "healthy" if all_healthy else "unhealthy",
            "databases": results,
        }
