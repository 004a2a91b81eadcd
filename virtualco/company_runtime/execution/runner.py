"""Agent runner: the per-agent wake / drain / respond loop.

Each runner is one asyncio task.  It sleeps until woken, then drains every
group the agent belongs to: unread messages from others trigger a bounded
tool-calling conversation with the gateway.

Wakes are latched: a wake that arrives while the runner is busy is kept and
consumed by the next wait, so a message is never missed.  Redundant wakes
cost one extra scan that finds nothing unread.
"""

from __future__ import annotations

import asyncio
import json
from typing import TYPE_CHECKING

from virtualco.company_runtime.execution.tools import AGENT_TOOLS, ToolExecutor
from virtualco.company_runtime.log import agent_logger
from virtualco.company_runtime.models.entities import HUMAN_ROLE, Agent, Group, Message
from virtualco.company_runtime.models.enums import AgentStatus, RunnerState, TurnRole
from virtualco.company_runtime.models.events import AgentStarted, AgentStopped, MessageCreated
from virtualco.company_runtime.models.llm import LLMRequest, Turn

if TYPE_CHECKING:
    from virtualco.company_runtime.context import RuntimeContext
    from virtualco.company_runtime.registry import RunnerRegistry

SYSTEM_NUDGE = "[System]: You have been mentioned or have new messages. Please review and respond."


class AgentRunner:
    def __init__(self, agent_id: str, ctx: RuntimeContext, registry: RunnerRegistry) -> None:
        self.agent_id = agent_id
        self.state = RunnerState.CREATED
        self._ctx = ctx
        self._tools = ToolExecutor(agent_id, ctx, registry)
        self._running = False
        self._wake_event = asyncio.Event()

        agent = self.agent
        self.role = agent.role
        self._log = agent_logger(agent.role, agent_id)

    @property
    def agent(self) -> Agent:
        agent = self._ctx.store.get_agent(self.agent_id)
        if agent is None:
            msg = f"Agent '{self.agent_id}' no longer exists"
            raise LookupError(msg)
        return agent

    @property
    def is_running(self) -> bool:
        return self._running

    # -- Lifecycle -------------------------------------------------------------

    async def run(self) -> None:
        """Main loop.  Returns after ``stop()``."""
        if self.state == RunnerState.STOPPED:
            # Stopped before the task got its first turn.
            return
        self._running = True
        self._set_status(RunnerState.IDLE, AgentStatus.IDLE)
        self._ctx.bus.publish(AgentStarted(agent_id=self.agent_id, role=self.role))
        self._log.info("Agent started: {}", self.role)

        # First pass picks up anything that arrived before the runner existed.
        self._wake_event.set()

        while self._running:
            await self._wake_event.wait()
            self._wake_event.clear()
            if not self._running:
                break

            try:
                await self.process_unread_messages()
            except Exception:
                self._log.exception("Processing cycle failed")
                self._set_status(RunnerState.ERROR, AgentStatus.ERROR)

        self.state = RunnerState.STOPPED

    def wake(self) -> None:
        self._wake_event.set()

    def stop(self) -> None:
        """Stop after the current cycle.  In-flight gateway / tool calls are not aborted."""
        if not self._running and self.state == RunnerState.STOPPED:
            return
        self._running = False
        self._wake_event.set()
        self.state = RunnerState.STOPPED
        if self._ctx.store.get_agent(self.agent_id) is not None:
            self._ctx.store.update_agent_status(self.agent_id, AgentStatus.IDLE)
        self._log.info("Agent stopped: {}", self.role)
        self._ctx.bus.publish(AgentStopped(agent_id=self.agent_id))

    def _set_status(self, state: RunnerState, status: AgentStatus) -> None:
        if not self._running:
            return
        self.state = state
        self._ctx.store.update_agent_status(self.agent_id, status)

    # -- Processing ------------------------------------------------------------

    async def process_unread_messages(self) -> None:
        store = self._ctx.store
        self._set_status(RunnerState.BUSY, AgentStatus.BUSY)

        for group in store.list_groups_by_agent(self.agent_id):
            if not self._running:
                break

            last_read = store.get_last_read_message_id(self.agent_id, group.id)
            unread = store.get_unread_messages(group.id, last_read)
            incoming = [m for m in unread if m.sender_id != self.agent_id]
            if not incoming:
                continue

            await self.respond_to_messages(group, incoming)
            # Arrivals during the response stay unread for the next cycle.
            store.mark_as_read(self.agent_id, group.id, unread[-1].id)

        self._set_status(RunnerState.IDLE, AgentStatus.IDLE)

    async def respond_to_messages(self, group: Group, incoming: list[Message]) -> None:
        """Run the bounded tool loop for one group and store the resulting transcript."""
        settings = self._ctx.settings
        store = self._ctx.store
        agent = self.agent
        self._log.info("Processing {} new messages in group {!r}", len(incoming), group.name)

        transcript = self.build_llm_messages(group, incoming)

        for _ in range(settings.max_tool_rounds):
            response = await self._ctx.llm.call(
                LLMRequest(
                    model=agent.model,
                    system_prompt=agent.system_prompt,
                    messages=transcript,
                    tools=AGENT_TOOLS,
                    max_tokens=settings.max_tokens,
                )
            )
            if response.error:
                self._log.warning("LLM backend returned an error: {}", response.error)
                break

            if response.content:
                self._log.info("{}", response.content[:200])
                message = store.send_message(group.id, self.agent_id, response.content)
                self._ctx.bus.publish(
                    MessageCreated(
                        group_id=group.id,
                        agent_id=self.agent_id,
                        content=response.content,
                        message_id=message.id,
                    )
                )

            if not response.tool_calls:
                if response.content:
                    transcript.append(Turn.assistant(response.content))
                break

            transcript.append(Turn.tool_request(response.tool_calls, content=response.content))
            for call in response.tool_calls:
                result = await self._tools.execute(call)
                transcript.append(Turn.tool_result(call.id, json.dumps(result, default=str)))

        store.update_agent_llm_history(self.agent_id, transcript)

    def build_llm_messages(self, group: Group, incoming: list[Message] | None = None) -> list[Turn]:
        """Seed transcript from this agent's point of view: recent history plus the new messages.

        *incoming* older than the history window are prepended so a burst of
        unread messages is never cut short by the window.
        """
        store = self._ctx.store
        history = store.get_group_messages(group.id, self._ctx.settings.history_window)
        in_window = {m.id for m in history}
        overflow = [m for m in incoming or [] if m.id not in in_window]

        turns: list[Turn] = []
        for message in [*overflow, *history]:
            if message.sender_id == self.agent_id:
                turns.append(Turn.assistant(message.content))
            else:
                sender = store.get_agent(message.sender_id)
                turns.append(Turn.user(f"[{sender.role if sender else HUMAN_ROLE}]: {message.content}"))

        if not turns or turns[-1].role != TurnRole.USER:
            turns.append(Turn.user(SYSTEM_NUDGE))
        return turns
