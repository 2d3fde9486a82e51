"""
Session resolution: load or start the thread's conversation, run the agent loop, and
persist everything the run produced.
"""

from __future__ import annotations

import threading
import uuid
from contextlib import ExitStack
from dataclasses import dataclass

from jira_agent.app.config import AgentSettings, get_settings
from jira_agent.errors import StoreUnavailableError
from jira_agent.infrastructure.data_models import AgentContext, Message
from jira_agent.infrastructure.openai_gpt_manager import ModelClient, OpenAIChat
from jira_agent.services.agent_loop import AgentLoop, close_dangling_tool_calls
from jira_agent.services.conversation_store import ConversationStore, build_conversation_store
from jira_agent.services.development_service import DevelopmentClient
from jira_agent.services.jira_service import JiraClient
from jira_agent.services.tool_registry import ToolRegistry, build_tool_registry
from jira_shared.platform_manager import create_logger

logger = create_logger(logger_name="jira-agent")

FALLBACK_RESPONSE = "No se pudo obtener una respuesta del agente."


@dataclass
class AgentClients:
    """External client handles shared by every run in this process."""

    store: ConversationStore
    model: ModelClient
    tools: ToolRegistry
    max_rounds: int = 6
    loop_budget: float = 40.0
    store_degraded_mode: bool = False


def build_agent_clients(settings: AgentSettings) -> AgentClients:
    jira = JiraClient(
        settings.jira_domain,
        settings.jira_email,
        settings.jira_api_token,
        timeout=settings.jira_timeout,
    )
    development = DevelopmentClient(
        settings.development_agent_url,
        settings.development_agent_api_key,
        timeout=settings.delegate_timeout,
    )
    tools = build_tool_registry(jira, development)
    model = OpenAIChat(
        settings.openai_model,
        settings.openai_api_key,
        tools.openai_tools(),
        timeout=settings.model_timeout,
    )
    store = build_conversation_store(
        settings.redis_url,
        lock_ttl=settings.thread_lock_ttl,
        lock_wait=settings.thread_lock_wait,
    )
    return AgentClients(
        store=store,
        model=model,
        tools=tools,
        max_rounds=settings.max_rounds,
        loop_budget=settings.loop_budget,
        store_degraded_mode=settings.store_degraded_mode,
    )


_clients: AgentClients | None = None
_clients_lock = threading.Lock()


def get_agent_clients() -> AgentClients:
    """Build the client handles once per process (Lambda container) and reuse them."""
    global _clients
    if _clients is None:
        with _clients_lock:
            if _clients is None:
                _clients = build_agent_clients(get_settings())
    return _clients


class SessionResolver:
    """Runs one inbound message against its thread's conversation."""

    def __init__(self, clients: AgentClients) -> None:
        self.clients = clients

    def _degrade(self, context: AgentContext, err: StoreUnavailableError) -> None:
        if not self.clients.store_degraded_mode:
            raise err
        logger.warning(
            f"Conversation store unavailable for thread {context.thread_id}; "
            f"continuing without persistence: {err}"
        )

    def _persist(self, context: AgentContext, messages: list[Message]) -> None:
        try:
            self.clients.store.append(context.thread_id, messages)
        except StoreUnavailableError as e:
            # Tools may already have run; the answer is still delivered
            logger.error(f"Could not persist {len(messages)} messages for {context.thread_id}: {e}")

    def run(self, context: AgentContext) -> str:
        store = self.clients.store
        persist = True

        with ExitStack() as stack:
            try:
                stack.enter_context(store.thread_lock(context.thread_id))
            except StoreUnavailableError as e:
                self._degrade(context, e)
                persist = False

            history: list[Message] = []
            if persist:
                try:
                    history = store.load(context.thread_id)
                    if context.user_name:
                        store.set_user_name(context.thread_id, context.user_name)
                    else:
                        context.user_name = store.load_user_name(context.thread_id)
                except StoreUnavailableError as e:
                    self._degrade(context, e)
                    persist = False
                    history = []

            repairs = close_dangling_tool_calls(history)
            if repairs:
                logger.warning(
                    f"Thread {context.thread_id} had {len(repairs)} unanswered tool calls; closing them"
                )

            loop = AgentLoop(
                self.clients.model,
                self.clients.tools,
                history + repairs,
                user_name=context.user_name,
                max_rounds=self.clients.max_rounds,
                budget=self.clients.loop_budget,
            )
            logger.info(
                f"Running agent for thread {context.thread_id} "
                f"({len(history)} prior messages, persistence {'on' if persist else 'off'})"
            )
            try:
                final_text = loop.run(Message.human(context.text))
            finally:
                if persist:
                    self._persist(context, repairs + loop.new_messages)

        logger.info(f"Agent finished thread {context.thread_id} in {loop.rounds} rounds")
        return final_text or FALLBACK_RESPONSE


def run_agent(
    text: str,
    user_name: str | None = None,
    thread_id: str | None = None,
    *,
    clients: AgentClients | None = None,
) -> str:
    """
    Run the agent for one inbound message and return the text to send back.

    Without a thread id a fresh one is generated: the run completes but cannot be
    resumed later.
    """
    if not thread_id:
        thread_id = str(uuid.uuid4())
        logger.info(f"No thread id provided; using one-off thread {thread_id}")

    context = AgentContext(text=text, thread_id=thread_id, user_name=user_name)
    return SessionResolver(clients or get_agent_clients()).run(context)
