from __future__ import annotations

from redis import Redis


class RedisManager:
    """
    High-level Redis utilities for idempotency control.

    This class is designed for dependency injection: callers provide a configured
    Redis client (e.g., via Redis.from_url) and optional configuration such as the
    key namespace and default TTLs.

    Args:
        redis_client (Redis): A configured Redis client instance.
        namespace (str): Key namespace/prefix for generated keys.
        default_idem_ttl (int): Default TTL for idempotency keys.

    Note:
        - This module intentionally avoids importing service-specific settings.
          Construct the manager in your service layer using your local config.
    """

    def __init__(
        self,
        redis_client: Redis,
        *,
        namespace: str = "jira:agent",
        default_idem_ttl: int = 7 * 24 * 3600,
    ) -> None:
        self._redis: Redis = redis_client
        self._namespace: str = namespace.rstrip(":")
        self._default_idem_ttl: int = default_idem_ttl

    @property
    def client(self) -> Redis:
        return self._redis

    # -----------------------------
    # Idempotency helpers
    # -----------------------------
    def idempotency_key(self, key: str) -> str:
        return f"{self._namespace}:idem:{key}"

    def set_idempotency(self, key: str, *, ttl: int | None = None) -> None:
        """
        Set an idempotency key with TTL.

        Args:
            key (str): Idempotency key identifier (e.g. a Slack event_id).
            ttl (int | None): TTL in seconds; defaults to manager's idempotency TTL.
        """
        ttl_to_use = ttl if ttl is not None else self._default_idem_ttl
        self._redis.setex(self.idempotency_key(key), ttl_to_use, "1")

    def has_idempotency(self, key: str) -> bool:
        """
        Check if an idempotency key exists.

        Returns:
            bool: True if the key exists; otherwise False.
        """
        return self._redis.exists(self.idempotency_key(key)) == 1


def build_redis_manager(
    redis_url: str | None = None,
    *,
    redis_client: Redis | None = None,
    namespace: str = "jira:agent",
    default_idem_ttl: int = 7 * 24 * 3600,
) -> RedisManager:
    """
    Factory to create a RedisManager.

    You can provide either `redis_url` (preferred) and this function will initialize
    the client, or pass an existing `redis_client` (for tests/advanced use).

    Returns:
        RedisManager: Configured manager instance.
    """
    if redis_client is None:
        if not redis_url:
            raise ValueError("Provide either redis_url or redis_client")
        redis_client = Redis.from_url(redis_url, decode_responses=True)

    return RedisManager(redis_client, namespace=namespace, default_idem_ttl=default_idem_ttl)
