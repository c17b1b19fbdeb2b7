"""
Redis Infrastructure Module

Connection management for the Redis TTL store.
"""

from .connection_factory import RedisConnectionFactory

__all__ = ["RedisConnectionFactory"]
