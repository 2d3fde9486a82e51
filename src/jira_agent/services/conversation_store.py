"""
Conversation state persistence keyed by thread id.

Each thread holds an append-only list of messages and an optional user display name.
An unreachable store raises StoreUnavailableError; it is never reported as an empty
history.
"""

from __future__ import annotations

import json
import threading
from collections import defaultdict
from collections.abc import Iterator
from contextlib import AbstractContextManager, contextmanager
from typing import Protocol

from redis import Redis
from redis.exceptions import LockError, RedisError

from jira_agent.app.config import REDIS_CONVERSATION_TTL, REDIS_NAMESPACE
from jira_agent.errors import ConversationBusyError, StoreUnavailableError
from jira_agent.infrastructure.data_models import Message
from jira_shared.platform_manager import create_logger
from jira_shared.redis_manager import RedisManager, build_redis_manager

logger = create_logger(logger_name="jira-agent")


class ConversationStore(Protocol):
    def load(self, thread_id: str) -> list[Message]: ...
    def append(self, thread_id: str, messages: list[Message]) -> None: ...
    def load_user_name(self, thread_id: str) -> str | None: ...
    def set_user_name(self, thread_id: str, user_name: str | None) -> None: ...
    def thread_lock(self, thread_id: str) -> AbstractContextManager[None]: ...


class RedisConversationStore:
    """
    Redis-backed conversation store.

    Messages live in one Redis list per thread, so RPUSH makes every append atomic and
    ordered for that key. Writes refresh a retention TTL on the thread's keys.

    The Redis connection is created lazily and reused; after any Redis failure it is
    dropped and rebuilt on the next call.

    Args:
        redis_url: Connection URL (e.g., "redis://:pwd@host:6379/0").
        redis_client: Pre-configured client (tests); takes precedence over redis_url.
        namespace: Key namespace/prefix.
        ttl: Retention window in seconds.
        lock_ttl: Expiry of the per-thread lock, in seconds.
        lock_wait: How long to wait for a busy thread's lock, in seconds.
    """

    def __init__(
        self,
        redis_url: str | None = None,
        *,
        redis_client: Redis | None = None,
        namespace: str = REDIS_NAMESPACE,
        ttl: int = REDIS_CONVERSATION_TTL,
        lock_ttl: int = 150,
        lock_wait: float = 5.0,
    ) -> None:
        if not redis_url and redis_client is None:
            raise ValueError("Provide either redis_url or redis_client")
        self._redis_url = redis_url
        self._redis_client = redis_client
        self._namespace = namespace
        self._ttl = ttl
        self._lock_ttl = lock_ttl
        self._lock_wait = lock_wait
        self._manager: RedisManager | None = None
        self._manager_lock = threading.Lock()

    # -----------------------------
    # Connection handling
    # -----------------------------
    def _redis(self) -> Redis:
        with self._manager_lock:
            if self._manager is None:
                try:
                    self._manager = build_redis_manager(
                        self._redis_url,
                        redis_client=self._redis_client,
                        namespace=self._namespace,
                    )
                except (RedisError, ValueError) as e:
                    raise StoreUnavailableError(f"Conversation store unavailable: {e}") from e
            return self._manager.client

    def _discard_connection(self) -> None:
        with self._manager_lock:
            self._manager = None

    def _key(self, thread_id: str, suffix: str) -> str:
        return f"{self._namespace}:thread:{thread_id}:{suffix}"

    # -----------------------------
    # Messages
    # -----------------------------
    def load(self, thread_id: str) -> list[Message]:
        try:
            raw_messages = self._redis().lrange(self._key(thread_id, "messages"), 0, -1)
        except RedisError as e:
            self._discard_connection()
            raise StoreUnavailableError(f"Could not load thread {thread_id}: {e}") from e

        try:
            return [Message.from_dict(json.loads(raw)) for raw in raw_messages]
        except (ValueError, KeyError, TypeError) as e:
            raise StoreUnavailableError(f"Thread {thread_id} holds unreadable messages: {e}") from e

    def append(self, thread_id: str, messages: list[Message]) -> None:
        if not messages:
            return

        key = self._key(thread_id, "messages")
        payload = [json.dumps(m.to_dict(), ensure_ascii=False) for m in messages]
        try:
            pipe = self._redis().pipeline(transaction=True)
            pipe.rpush(key, *payload)
            pipe.expire(key, self._ttl)
            pipe.execute()
        except RedisError as e:
            self._discard_connection()
            raise StoreUnavailableError(f"Could not append to thread {thread_id}: {e}") from e

    # -----------------------------
    # User name
    # -----------------------------
    def load_user_name(self, thread_id: str) -> str | None:
        try:
            value = self._redis().get(self._key(thread_id, "user_name"))
        except RedisError as e:
            self._discard_connection()
            raise StoreUnavailableError(f"Could not load user name for {thread_id}: {e}") from e
        return str(value) if value else None

    def set_user_name(self, thread_id: str, user_name: str | None) -> None:
        key = self._key(thread_id, "user_name")
        try:
            if user_name:
                self._redis().setex(key, self._ttl, user_name)
            else:
                self._redis().delete(key)
        except RedisError as e:
            self._discard_connection()
            raise StoreUnavailableError(f"Could not save user name for {thread_id}: {e}") from e

    # -----------------------------
    # Per-thread lock
    # -----------------------------
    @contextmanager
    def thread_lock(self, thread_id: str) -> Iterator[None]:
        """
        Serialize runs for the same thread across processes.

        Raises:
            ConversationBusyError: If the lock is still held after the wait.
            StoreUnavailableError: If Redis cannot be reached.
        """
        try:
            lock = self._redis().lock(
                self._key(thread_id, "lock"),
                timeout=self._lock_ttl,
                blocking_timeout=self._lock_wait,
            )
            acquired = lock.acquire()
        except RedisError as e:
            self._discard_connection()
            raise StoreUnavailableError(f"Could not lock thread {thread_id}: {e}") from e

        if not acquired:
            raise ConversationBusyError(f"Thread {thread_id} is busy")

        try:
            yield
        finally:
            try:
                lock.release()
            except LockError as e:
                # The lock expired while the run was still going
                logger.warning(f"Lock for thread {thread_id} was lost before release: {e}")
            except RedisError as e:
                self._discard_connection()
                logger.warning(f"Could not release lock for thread {thread_id}: {e}")


class InMemoryConversationStore:
    """Process-local store for local runs and tests."""

    def __init__(self) -> None:
        self._messages: dict[str, list[Message]] = defaultdict(list)
        self._user_names: dict[str, str] = {}
        self._locks: dict[str, threading.Lock] = defaultdict(threading.Lock)
        self._guard = threading.Lock()

    def load(self, thread_id: str) -> list[Message]:
        with self._guard:
            return list(self._messages.get(thread_id, []))

    def append(self, thread_id: str, messages: list[Message]) -> None:
        with self._guard:
            self._messages[thread_id].extend(messages)

    def load_user_name(self, thread_id: str) -> str | None:
        return self._user_names.get(thread_id)

    def set_user_name(self, thread_id: str, user_name: str | None) -> None:
        if user_name:
            self._user_names[thread_id] = user_name
        else:
            self._user_names.pop(thread_id, None)

    @contextmanager
    def thread_lock(self, thread_id: str) -> Iterator[None]:
        with self._guard:
            lock = self._locks[thread_id]
        if not lock.acquire(blocking=False):
            raise ConversationBusyError(f"Thread {thread_id} is busy")
        try:
            yield
        finally:
            lock.release()


class NullConversationStore:
    """No persistence. Used when no Redis is configured; every run starts fresh."""

    def load(self, thread_id: str) -> list[Message]:
        return []

    def append(self, thread_id: str, messages: list[Message]) -> None:
        logger.debug(f"No conversation store configured; dropping {len(messages)} messages")

    def load_user_name(self, thread_id: str) -> str | None:
        return None

    def set_user_name(self, thread_id: str, user_name: str | None) -> None:
        return None

    @contextmanager
    def thread_lock(self, thread_id: str) -> Iterator[None]:
        yield


def build_conversation_store(
    redis_url: str | None, *, lock_ttl: int = 150, lock_wait: float = 5.0
) -> ConversationStore:
    """Redis store when configured; otherwise the explicit no-persistence fallback."""
    if not redis_url:
        logger.warning("REDIS_HOST is not configured. Conversations will not be persisted.")
        return NullConversationStore()
    return RedisConversationStore(redis_url, lock_ttl=lock_ttl, lock_wait=lock_wait)
