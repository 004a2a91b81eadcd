"""In-process runner registry.

Tracks one ``AgentRunner`` (and its asyncio task) per running agent so
messages can wake their recipients directly.  Ephemeral: empty on process
restart; ``CompanyService.resume`` rebuilds it from the store.

All mutating methods are synchronous, so start / stop / wake never
interleave with each other on the event loop.
"""

from __future__ import annotations

import asyncio
from typing import TYPE_CHECKING, Any

from loguru import logger

from virtualco.company_runtime.execution.runner import AgentRunner

if TYPE_CHECKING:
    from virtualco.company_runtime.context import RuntimeContext
    from virtualco.company_runtime.models.entities import Group


class ShuttingDownError(RuntimeError):
    """Raised when attempting to start a runner during shutdown."""


class AgentNotFoundError(LookupError):
    """Raised when starting a runner for an agent the store does not know."""


class RunnerRegistry:
    """Owns the runner tasks.

    Provides a drain mechanism for graceful shutdown: ``begin_shutdown``
    refuses new runners, ``stop_all`` asks every runner to finish its current
    cycle, and ``wait_until_drained`` blocks until their tasks have exited.
    """

    def __init__(self, ctx: RuntimeContext) -> None:
        self._ctx = ctx
        self._runners: dict[str, AgentRunner] = {}
        self._tasks: set[asyncio.Task[None]] = set()
        self._drain_event = asyncio.Event()
        self._drain_event.set()  # Starts "drained" (no tasks).
        self._shutting_down = False

    # -- Mutation --------------------------------------------------------------

    def start_agent(self, agent_id: str) -> AgentRunner:
        """Start (or return the already running) runner for *agent_id*."""
        if self._shutting_down:
            raise ShuttingDownError

        existing = self._runners.get(agent_id)
        if existing is not None:
            return existing

        agent = self._ctx.store.get_agent(agent_id)
        if agent is None:
            raise AgentNotFoundError(agent_id)
        if agent.is_human:
            msg = "The Human agent is driven by the user and has no runner"
            raise ValueError(msg)

        runner = AgentRunner(agent_id, self._ctx, self)
        task = asyncio.create_task(runner.run(), name=f"agent:{agent.role_key}:{agent_id[:8]}")
        self._runners[agent_id] = runner
        self._tasks.add(task)
        self._drain_event.clear()
        task.add_done_callback(lambda t: self._on_task_done(agent_id, runner, t))
        logger.debug("Registry: started runner {} ({})", agent.role, agent_id)
        return runner

    def _on_task_done(self, agent_id: str, runner: AgentRunner, task: asyncio.Task[None]) -> None:
        if not task.cancelled() and task.exception() is not None:
            logger.opt(exception=task.exception()).error("Registry: runner {} crashed", agent_id)
        self._tasks.discard(task)
        if self._runners.get(agent_id) is runner:
            del self._runners[agent_id]
        if not self._tasks:
            self._drain_event.set()

    def stop_agent(self, agent_id: str) -> bool:
        runner = self._runners.pop(agent_id, None)
        if runner is None:
            return False
        runner.stop()
        return True

    def stop_workspace(self, workspace_id: str) -> int:
        """Stop every runner whose agent belongs to *workspace_id*."""
        agent_ids = {a.id for a in self._ctx.store.list_agents_by_workspace(workspace_id)}
        return sum(self.stop_agent(agent_id) for agent_id in list(self._runners) if agent_id in agent_ids)

    def stop_all(self) -> int:
        return sum(self.stop_agent(agent_id) for agent_id in list(self._runners))

    def wake_agent(self, agent_id: str) -> bool:
        """Wake a running agent; no-op (``False``) for agents without a runner."""
        runner = self._runners.get(agent_id)
        if runner is None:
            return False
        runner.wake()
        return True

    def wake_members(self, group: Group, exclude: str | None = None) -> int:
        return sum(self.wake_agent(member_id) for member_id in group.member_ids if member_id != exclude)

    # -- Query -----------------------------------------------------------------

    def get(self, agent_id: str) -> AgentRunner | None:
        return self._runners.get(agent_id)

    def is_running(self, agent_id: str) -> bool:
        return agent_id in self._runners

    def active_agents(self, workspace_id: str | None = None) -> list[dict[str, Any]]:
        result = []
        for agent_id, runner in self._runners.items():
            agent = self._ctx.store.get_agent(agent_id)
            if agent is None or (workspace_id is not None and agent.workspace_id != workspace_id):
                continue
            result.append({
                "id": agent_id,
                "role": agent.role,
                "status": agent.status,
                "state": runner.state,
                "is_running": runner.is_running,
            })
        return result

    @property
    def active_count(self) -> int:
        return len(self._tasks)

    # -- Lifecycle -------------------------------------------------------------

    def begin_shutdown(self) -> None:
        """Mark the registry as shutting down.  New runners are refused."""
        self._shutting_down = True
        logger.info("Registry: shutdown initiated, refusing new runners")
        if not self._tasks:
            self._drain_event.set()

    @property
    def is_shutting_down(self) -> bool:
        return self._shutting_down

    async def wait_until_drained(self, timeout: float | None = None) -> bool:
        """Wait until every runner task has exited.

        Returns ``True`` if drained, ``False`` if *timeout* expired with tasks
        still alive (typically runners blocked in a long gateway call).
        """
        if not self._tasks:
            return True
        try:
            await asyncio.wait_for(self._drain_event.wait(), timeout=timeout)
        except TimeoutError:
            logger.warning(
                "Registry: drain timed out after {}s with {} runners still active",
                timeout,
                len(self._tasks),
            )
            return False
        else:
            return True

    async def cancel_all(self) -> int:
        """Last resort after a drain timeout: cancel the remaining tasks."""
        tasks = list(self._tasks)
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        if tasks:
            logger.warning("Registry: cancelled {} runner tasks", len(tasks))
        return len(tasks)
