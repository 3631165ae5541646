"""Redis client wrapper with pub/sub support.

Database Layout:
- DB 0: PubSub, Events (sessions:events:*)
"""

from .client import RedisClient, RedisDB

__all__ = [
    "RedisClient",
    "RedisDB",
]
