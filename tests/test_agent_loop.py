import pytest

from conftest import AlwaysCallsToolsModel, FakeModel, issue_call, make_registry
from jira_agent.errors import AgentLoopLimitError, ModelInvocationError
from jira_agent.infrastructure.data_models import Message, ToolCall, pending_tool_call_ids
from jira_agent.services.agent_loop import (
    INTERRUPTED_TOOL_RESULT,
    AgentLoop,
    LoopState,
    close_dangling_tool_calls,
)


def test_answer_without_tool_calls_finishes_in_one_round():
    model = FakeModel([Message.assistant("¿Cuál es la clave del proyecto?")])
    loop = AgentLoop(model, make_registry(), [])

    answer = loop.run(Message.human("Crea una épica"))

    assert answer == "¿Cuál es la clave del proyecto?"
    assert loop.state is LoopState.DONE
    assert loop.rounds == 1
    assert [m.role for m in loop.new_messages] == ["human", "assistant"]


def test_model_never_sees_unanswered_tool_calls():
    class CheckingModel(FakeModel):
        def invoke(self, system_prompt, history):
            assert pending_tool_call_ids(history) == []
            return super().invoke(system_prompt, history)

    model = CheckingModel([
        Message.assistant(tool_calls=[
            issue_call("c1"),
            ToolCall(name="delegate_to_development", id="c2", arguments={"query": "x"}),
        ]),
        Message.assistant(tool_calls=[issue_call("c3")]),
        Message.assistant("Listo"),
    ])
    loop = AgentLoop(model, make_registry(), [])

    assert loop.run(Message.human("hazlo")) == "Listo"
    assert loop.rounds == 3
    assert [m.tool_call_id for m in loop.new_messages if m.role == "tool"] == ["c1", "c2", "c3"]


def test_loop_stops_at_round_cap():
    model = AlwaysCallsToolsModel()
    loop = AgentLoop(model, make_registry(), [], max_rounds=3)

    with pytest.raises(AgentLoopLimitError, match="round cap"):
        loop.run(Message.human("crea issues para siempre"))

    assert model.calls == 3
    assert loop.state is LoopState.FAILED
    # Every call of the last round was answered before giving up
    assert pending_tool_call_ids(loop.messages) == []


def test_loop_stops_when_time_budget_is_spent():
    times = iter([0.0, 0.0, 20.0])
    model = AlwaysCallsToolsModel()
    loop = AgentLoop(model, make_registry(), [], budget=10.0, clock=lambda: next(times))

    with pytest.raises(AgentLoopLimitError, match="time budget"):
        loop.run(Message.human("hola"))

    assert model.calls == 1
    assert loop.state is LoopState.FAILED


def test_model_failure_aborts_the_run():
    model = FakeModel([ModelInvocationError("timeout")])
    loop = AgentLoop(model, make_registry(), [])

    with pytest.raises(ModelInvocationError):
        loop.run(Message.human("hola"))

    assert loop.state is LoopState.FAILED
    assert [m.role for m in loop.new_messages] == ["human"]


def test_system_prompt_carries_user_name_and_is_not_stored():
    model = FakeModel([Message.assistant("Hola Ana")])
    loop = AgentLoop(model, make_registry(), [], user_name="Ana Pérez")

    loop.run(Message.human("hola"))

    system_prompt, history = model.calls[0]
    assert "se llama Ana Pérez." in system_prompt
    assert "{{user_name_sentence}}" not in system_prompt
    assert all(m.role != "system" for m in history)
    assert all(m.role != "system" for m in loop.new_messages)


def test_history_is_passed_to_the_model_before_the_new_message():
    history = [Message.human("antes"), Message.assistant("respuesta previa")]
    model = FakeModel([Message.assistant("ok")])

    AgentLoop(model, make_registry(), history).run(Message.human("ahora"))

    assert [m.content for m in model.calls[0][1]] == ["antes", "respuesta previa", "ahora"]


def test_dangling_tool_calls_get_synthetic_replies():
    history = [
        Message.human("crea"),
        Message.assistant(tool_calls=[issue_call("c1"), issue_call("c2")]),
        Message.tool("Issue PROJ-1 creado", "c1"),
    ]

    repairs = close_dangling_tool_calls(history)

    assert [(m.tool_call_id, m.content) for m in repairs] == [("c2", INTERRUPTED_TOOL_RESULT)]
    assert pending_tool_call_ids(history + repairs) == []


def test_slow_model_reply_does_not_start_tools_after_the_budget():
    now = [0.0]
    executed = []

    class SlowModel(AlwaysCallsToolsModel):
        def invoke(self, system_prompt, history):
            now[0] += 50.0
            return super().invoke(system_prompt, history)

    registry = make_registry(create_issue=lambda args: executed.append(args) or "creado")
    loop = AgentLoop(SlowModel(), registry, [], budget=40.0, clock=lambda: now[0])

    with pytest.raises(AgentLoopLimitError, match="before tool calls"):
        loop.run(Message.human("crea la épica"))

    assert executed == []
    assert now[0] <= 120.0
    # The unanswered call is closed with an error reply on the next load
    assert [m.tool_call_id for m in close_dangling_tool_calls(loop.messages)] == ["call_1"]


def test_model_and_tool_time_both_count_against_the_budget():
    now = [0.0]

    class SlowModel(AlwaysCallsToolsModel):
        def invoke(self, system_prompt, history):
            now[0] += 30.0
            return super().invoke(system_prompt, history)

    def slow_tool(args):
        now[0] += 45.0
        return "creado"

    model = SlowModel()
    loop = AgentLoop(model, make_registry(create_issue=slow_tool), [], budget=40.0, clock=lambda: now[0])

    with pytest.raises(AgentLoopLimitError, match="before model call"):
        loop.run(Message.human("crea la épica"))

    assert model.calls == 1
    assert now[0] == 75.0
    assert now[0] <= 120.0 - 5.0
    assert pending_tool_call_ids(loop.messages) == []
