"""Agent runner tests: wake/drain loop, bounded tool rounds, failure handling.

The LLM is a scripted stub; every scenario runs real runners as asyncio
tasks against the in-memory store.
"""

from __future__ import annotations

import asyncio
import json
import os
from pathlib import Path

import pytest

from virtualco.company_runtime.execution.runner import SYSTEM_NUDGE, AgentRunner
from virtualco.company_runtime.managers.company import CompanyService
from virtualco.company_runtime.models.entities import AgentCreate
from virtualco.company_runtime.models.enums import AgentStatus, RunnerState, TurnRole
from virtualco.company_runtime.models.events import AgentDone, AgentStarted, AgentStopped
from virtualco.company_runtime.models.llm import LLMRequest, LLMResponse, ToolCall
from virtualco.company_runtime.models.structure import AgentBlueprint, CompanyStructure

CEO_PROMPT = "You are the CEO."
DEV_PROMPT = "You are the developer."


def _structure() -> CompanyStructure:
    return CompanyStructure(
        name="Acme",
        agents=[
            AgentBlueprint(id="ceo", role="CEO", can_delegate=True),
            AgentBlueprint(id="dev", role="Developer", parent_id="ceo"),
        ],
    )


def _launch(company: CompanyService):
    return company.launch("Build X", _structure(), {"ceo": CEO_PROMPT, "dev": DEV_PROMPT})


def _transcript_mentions(request: LLMRequest, text: str) -> bool:
    return any(text in turn.content for turn in request.messages if turn.role == TurnRole.USER)


async def test_delegation_roundtrip(company, llm, store, events, wait_until) -> None:
    """Human -> CEO -> (send) -> Developer -> (report_done) -> CEO."""
    ids: dict[str, str] = {}

    def handler(request: LLMRequest) -> LLMResponse:
        last = request.messages[-1]
        if request.system_prompt == CEO_PROMPT:
            if last.role == TurnRole.TOOL:
                return LLMResponse(content="Delegated to the developer.")
            if _transcript_mentions(request, "[Task Complete] Built X"):
                return LLMResponse(content="Great work.")
            if "[Human]: Build X please" in last.content:
                call = ToolCall(id="c1", name="send", arguments={"to": ids["dev"], "content": "Please build X"})
                return LLMResponse(tool_calls=[call], stop_reason="tool_use")
        if request.system_prompt == DEV_PROMPT:
            if last.role == TurnRole.TOOL:
                return LLMResponse(content="Done.")
            if "[CEO]: Please build X" in last.content:
                call = ToolCall(id="d1", name="report_done", arguments={"summary": "Built X"})
                return LLMResponse(tool_calls=[call], stop_reason="tool_use")
        return LLMResponse()

    llm.handler = handler
    result = _launch(company)
    ids["ceo"] = result.agent_id_map["ceo"]
    ids["dev"] = result.agent_id_map["dev"]
    human_p2p = store.find_p2p(result.workspace.id, result.human.id, ids["ceo"])

    company.send_user_message(result.workspace.id, ids["ceo"], "Build X please")

    def ceo_dev_messages() -> list[str]:
        p2p = store.find_p2p(result.workspace.id, ids["ceo"], ids["dev"])
        return [m.content for m in store.get_group_messages(p2p.id)] if p2p else []

    await wait_until(lambda: "[Task Complete] Built X" in ceo_dev_messages())
    await wait_until(lambda: "Great work." in ceo_dev_messages())

    assert [m.content for m in store.get_group_messages(human_p2p.id)] == [
        "Build X please",
        "Delegated to the developer.",
    ]
    assert ceo_dev_messages()[0] == "Please build X"
    assert any(isinstance(e, AgentDone) and e.summary == "Built X" for e in events)

    # The developer's second round sees its tool result as the last turn.
    dev_requests = [r for r in llm.requests if r.system_prompt == DEV_PROMPT]
    tool_turn = dev_requests[1].messages[-1]
    assert tool_turn.role == TurnRole.TOOL
    assert tool_turn.tool_call_id == "d1"
    assert json.loads(tool_turn.content) == {"status": "reported", "summary": "Built X"}

    await wait_until(lambda: all(store.get_agent(i).status == AgentStatus.IDLE for i in ids.values()))


async def test_runner_never_reads_its_own_messages(company, registry, llm, store, wait_until) -> None:
    result = _launch(company)
    ceo_id = result.agent_id_map["ceo"]
    await wait_until(lambda: registry.get(ceo_id).state == RunnerState.IDLE)

    store.send_message(result.all_hands.id, ceo_id, "Note to self")
    registry.wake_agent(ceo_id)
    await asyncio.sleep(0.05)

    assert llm.requests == []


async def test_tool_rounds_are_bounded(company, llm, store, settings, wait_until) -> None:
    llm.handler = lambda _request: LLMResponse(tool_calls=[ToolCall(id="loop", name="self")])
    result = _launch(company)
    ceo_id = result.agent_id_map["ceo"]

    company.send_user_message(result.workspace.id, ceo_id, "Keep going")
    await wait_until(lambda: len(store.get_agent(ceo_id).llm_history) > 1)

    assert len(llm.requests) == settings.max_tool_rounds
    history = store.get_agent(ceo_id).llm_history
    # Seed turn + one (request, result) pair per round.
    assert len(history) == 1 + 2 * settings.max_tool_rounds
    assert history[0].content == "[Human]: Keep going"


async def test_request_carries_agent_configuration(company, llm, store, settings, wait_until) -> None:
    result = _launch(company)
    ceo_id = result.agent_id_map["ceo"]

    company.send_user_message(result.workspace.id, ceo_id, "Hello")
    await wait_until(lambda: len(llm.requests) == 1)

    request = llm.requests[0]
    assert request.model == settings.default_model
    assert request.system_prompt == CEO_PROMPT
    assert request.max_tokens == settings.max_tokens
    assert len(request.tools) == 10
    assert request.messages[-1].content == "[Human]: Hello"


async def test_backend_error_posts_nothing_and_advances_cursor(company, llm, store, wait_until) -> None:
    llm.handler = lambda _request: LLMResponse(error="CLI exited with code 1")
    result = _launch(company)
    ceo_id = result.agent_id_map["ceo"]

    message = company.send_user_message(result.workspace.id, ceo_id, "Hello")
    p2p_id = message.group_id
    await wait_until(lambda: store.get_last_read_message_id(ceo_id, p2p_id) == message.id)

    assert [m.content for m in store.get_group_messages(p2p_id)] == ["Hello"]


async def test_cycle_failure_sets_error_and_recovers(company, registry, llm, store, wait_until) -> None:
    calls = {"n": 0}

    def handler(_request: LLMRequest) -> LLMResponse:
        calls["n"] += 1
        if calls["n"] == 1:
            raise RuntimeError("gateway exploded")
        return LLMResponse(content="Back online.")

    llm.handler = handler
    result = _launch(company)
    ceo_id = result.agent_id_map["ceo"]

    company.send_user_message(result.workspace.id, ceo_id, "First")
    await wait_until(lambda: store.get_agent(ceo_id).status == AgentStatus.ERROR)
    runner = registry.get(ceo_id)
    assert runner.is_running

    company.send_user_message(result.workspace.id, ceo_id, "Second")
    await wait_until(lambda: store.get_agent(ceo_id).status == AgentStatus.IDLE)
    p2p_id = store.find_p2p(result.workspace.id, result.human.id, ceo_id).id
    assert store.get_group_messages(p2p_id)[-1].content == "Back online."


async def test_stop_publishes_and_idles(ctx, registry, store, events, wait_until) -> None:
    workspace = store.create_workspace("Acme")
    agent = store.create_agent(workspace.id, AgentCreate(role="CEO"))
    runner = registry.start_agent(agent.id)
    await wait_until(lambda: runner.state == RunnerState.IDLE)

    registry.stop_agent(agent.id)
    await registry.wait_until_drained(timeout=1.0)

    assert runner.state == RunnerState.STOPPED
    assert not runner.is_running
    assert store.get_agent(agent.id).status == AgentStatus.IDLE
    kinds = [type(e) for e in events]
    assert kinds.index(AgentStarted) < kinds.index(AgentStopped)


def test_build_llm_messages_perspective(ctx, registry, store) -> None:
    workspace = store.create_workspace("Acme")
    ceo = store.create_agent(workspace.id, AgentCreate(role="CEO"))
    dev = store.create_agent(workspace.id, AgentCreate(role="Developer"))
    group = store.create_group(workspace.id, "Team", [ceo.id, dev.id])
    store.send_message(group.id, dev.id, "Status?")
    store.send_message(group.id, ceo.id, "On track")

    turns = AgentRunner(ceo.id, ctx, registry).build_llm_messages(group)

    assert [(t.role, t.content) for t in turns] == [
        (TurnRole.USER, "[Developer]: Status?"),
        (TurnRole.ASSISTANT, "On track"),
        (TurnRole.USER, SYSTEM_NUDGE),
    ]


def test_build_llm_messages_history_window(ctx, registry, store, settings) -> None:
    settings.history_window = 3
    workspace = store.create_workspace("Acme")
    ceo = store.create_agent(workspace.id, AgentCreate(role="CEO"))
    group = store.create_group(workspace.id, "Team", [ceo.id])
    for i in range(10):
        store.send_message(group.id, "someone-gone", f"m{i}")

    turns = AgentRunner(ceo.id, ctx, registry).build_llm_messages(group)

    assert [t.content for t in turns] == ["[Human]: m7", "[Human]: m8", "[Human]: m9"]


def test_runner_for_missing_agent_raises(ctx, registry) -> None:
    with pytest.raises(LookupError):
        AgentRunner("missing", ctx, registry)


def test_build_llm_messages_keeps_unread_beyond_window(ctx, registry, store, settings) -> None:
    settings.history_window = 2
    workspace = store.create_workspace("Acme")
    ceo = store.create_agent(workspace.id, AgentCreate(role="CEO"))
    dev = store.create_agent(workspace.id, AgentCreate(role="Developer"))
    group = store.create_group(workspace.id, "Team", [ceo.id, dev.id])
    incoming = [store.send_message(group.id, dev.id, f"update {i}") for i in range(4)]

    turns = AgentRunner(ceo.id, ctx, registry).build_llm_messages(group, incoming)

    assert [t.content for t in turns] == [f"[Developer]: update {i}" for i in range(4)]


# -- All Hands -----------------------------------------------------------------


async def test_all_hands_broadcast_round(company, registry, llm, store, monkeypatch, wait_until) -> None:
    """Every member answers a broadcast once and never counts its own reply as unread."""
    seen: list[tuple[str, str, list[str]]] = []
    respond = AgentRunner.respond_to_messages

    async def recording_respond(self, group, incoming):
        seen.append((self.agent_id, group.id, [m.content for m in incoming]))
        await respond(self, group, incoming)

    monkeypatch.setattr(AgentRunner, "respond_to_messages", recording_respond)
    replies = {CEO_PROMPT: "CEO on it", DEV_PROMPT: "Dev on it"}
    llm.handler = lambda request: LLMResponse(content=replies[request.system_prompt])

    result = _launch(company)
    ceo_id, dev_id = result.agent_id_map["ceo"], result.agent_id_map["dev"]
    all_hands = result.all_hands.id

    kickoff = company.broadcast(all_hands, "ship v1")
    await wait_until(lambda: len(store.get_group_messages(all_hands)) == 3)

    messages = store.get_group_messages(all_hands)
    assert messages[0].id == kickoff.id
    assert sorted((m.sender_id, m.content) for m in messages[1:]) == sorted([
        (ceo_id, "CEO on it"),
        (dev_id, "Dev on it"),
    ])
    assert sorted(seen) == sorted([(ceo_id, all_hands, ["ship v1"]), (dev_id, all_hands, ["ship v1"])])
    assert store.get_last_read_message_id(ceo_id, all_hands) == kickoff.id
    assert store.get_last_read_message_id(dev_id, all_hands) == kickoff.id

    # Next cycle: each agent only sees the other's reply.
    llm.handler = lambda _request: LLMResponse()
    seen.clear()
    registry.wake_agent(ceo_id)
    registry.wake_agent(dev_id)
    await wait_until(lambda: len(seen) == 2)

    assert sorted(seen) == sorted([(ceo_id, all_hands, ["Dev on it"]), (dev_id, all_hands, ["CEO on it"])])
    last_id = messages[-1].id
    await wait_until(lambda: store.get_last_read_message_id(ceo_id, all_hands) == last_id)
    await wait_until(lambda: store.get_last_read_message_id(dev_id, all_hands) == last_id)
    assert len(store.get_group_messages(all_hands)) == 3


async def test_cancel_kills_running_bash_child(company, registry, llm, settings, wait_until) -> None:
    settings.bash_timeout = 60
    pid_file = Path(settings.bash_workdir) / "child.pid"
    call = ToolCall(id="b1", name="bash", arguments={"command": "echo $$ > child.pid; exec sleep 30"})
    llm.handler = lambda request: (
        LLMResponse(tool_calls=[call]) if request.messages[-1].role == TurnRole.USER else LLMResponse()
    )
    result = _launch(company)

    company.send_user_message(result.workspace.id, result.agent_id_map["ceo"], "Run the long job")
    await wait_until(lambda: pid_file.exists() and pid_file.read_text().strip() != "")
    pid = int(pid_file.read_text())

    assert await registry.cancel_all() == 2

    with pytest.raises(ProcessLookupError):
        os.kill(pid, 0)
