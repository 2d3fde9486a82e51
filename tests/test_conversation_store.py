import json
from unittest.mock import MagicMock

import pytest
from redis.exceptions import ConnectionError as RedisConnectionError

from conftest import issue_call
from jira_agent.errors import ConversationBusyError, StoreUnavailableError
from jira_agent.infrastructure.data_models import Message
from jira_agent.services.conversation_store import (
    InMemoryConversationStore,
    NullConversationStore,
    RedisConversationStore,
    build_conversation_store,
)

MESSAGES = [
    Message.human("Crea una épica"),
    Message.assistant(tool_calls=[issue_call("c1")]),
    Message.tool("Issue PROJ-42 creado exitosamente.", "c1"),
    Message.assistant("Listo"),
]


def test_in_memory_read_after_write():
    store = InMemoryConversationStore()
    store.append("T1", MESSAGES[:1])
    store.append("T1", MESSAGES[1:])

    assert store.load("T1") == MESSAGES
    assert store.load("unknown") == []


def test_in_memory_lock_rejects_concurrent_run():
    store = InMemoryConversationStore()

    with store.thread_lock("T1"):
        with pytest.raises(ConversationBusyError):
            with store.thread_lock("T1"):
                pass
        with store.thread_lock("T2"):
            pass

    with store.thread_lock("T1"):
        pass


def test_redis_append_is_one_atomic_push_with_ttl():
    client = MagicMock()
    pipe = client.pipeline.return_value
    store = RedisConversationStore(redis_client=client, ttl=60)

    store.append("T1", MESSAGES)

    key = "jira:agent:thread:T1:messages"
    pushed = pipe.rpush.call_args.args
    assert pushed[0] == key
    assert [Message.from_dict(json.loads(raw)) for raw in pushed[1:]] == MESSAGES
    pipe.expire.assert_called_once_with(key, 60)
    pipe.execute.assert_called_once()


def test_redis_load_decodes_messages_in_order():
    client = MagicMock()
    client.lrange.return_value = [json.dumps(m.to_dict()) for m in MESSAGES]

    assert RedisConversationStore(redis_client=client).load("T1") == MESSAGES
    client.lrange.assert_called_once_with("jira:agent:thread:T1:messages", 0, -1)


def test_redis_errors_are_store_unavailable():
    client = MagicMock()
    client.lrange.side_effect = RedisConnectionError("connection refused")
    store = RedisConversationStore(redis_client=client)

    with pytest.raises(StoreUnavailableError):
        store.load("T1")


def test_corrupt_history_is_not_an_empty_history():
    client = MagicMock()
    client.lrange.return_value = ["{not json", json.dumps({"role": "robot"})]

    with pytest.raises(StoreUnavailableError, match="unreadable"):
        RedisConversationStore(redis_client=client).load("T1")


def test_redis_user_name_is_overwritten_with_ttl():
    client = MagicMock()
    store = RedisConversationStore(redis_client=client, ttl=60)

    store.set_user_name("T1", "Ana")
    client.setex.assert_called_once_with("jira:agent:thread:T1:user_name", 60, "Ana")

    client.get.return_value = "Ana"
    assert store.load_user_name("T1") == "Ana"


def test_redis_lock_not_acquired_is_busy():
    client = MagicMock()
    client.lock.return_value.acquire.return_value = False
    store = RedisConversationStore(redis_client=client, lock_ttl=150, lock_wait=5.0)

    with pytest.raises(ConversationBusyError):
        with store.thread_lock("T1"):
            pass

    client.lock.assert_called_once_with(
        "jira:agent:thread:T1:lock", timeout=150, blocking_timeout=5.0
    )


def test_redis_lock_is_released_after_the_run():
    client = MagicMock()
    lock = client.lock.return_value
    lock.acquire.return_value = True

    with RedisConversationStore(redis_client=client).thread_lock("T1"):
        lock.release.assert_not_called()

    lock.release.assert_called_once()


def test_store_without_redis_is_the_null_store():
    store = build_conversation_store(None)

    assert isinstance(store, NullConversationStore)
    store.append("T1", MESSAGES)
    assert store.load("T1") == []
