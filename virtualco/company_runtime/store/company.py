"""Company store -- single source of truth for workspaces, agents, groups,
messages and read cursors.

Every collection is mirrored in memory.  Mutations update the mirror
synchronously (readers in the process always see the latest state) and
schedule a trailing-edge debounced flush to the snapshot backend.  Many
agents mutating state in the same tick therefore produce one write, not one
per call.

Concurrency model: all public methods are synchronous and never suspend, so
each one is an atomic critical section relative to any asyncio task.  No
read-modify-write straddles an ``await``, which is what keeps concurrent
runners free of lost updates without locks.

The debounced save runs in a worker thread (``anyio.to_thread``); the
snapshot itself is taken on the event loop when the timer fires.  A save
that finishes after a newer one is discarded.
"""

from __future__ import annotations

import asyncio
import threading
import uuid
from collections.abc import Iterator
from contextlib import contextmanager
from datetime import UTC, datetime
from functools import partial
from typing import Any

from anyio import to_thread
from loguru import logger

from virtualco.company_runtime.models.entities import (
    Agent,
    AgentCreate,
    Group,
    Message,
    Workspace,
    normalize_role_key,
)
from virtualco.company_runtime.models.enums import AgentStatus, MessageType, WorkspaceStatus
from virtualco.company_runtime.models.llm import Turn
from virtualco.company_runtime.store.base import SnapshotBackend

MAX_MESSAGES_PER_GROUP = 200
DEFAULT_FLUSH_DELAY = 0.5
DEFAULT_MODEL = "claude-sonnet-4"


def _cursor_key(agent_id: str, group_id: str) -> str:
    return f"{agent_id}:{group_id}"


def _new_id() -> str:
    return str(uuid.uuid4())


class CompanyStore:
    """Write-coalescing in-memory store backed by a ``SnapshotBackend``."""

    def __init__(
        self,
        backend: SnapshotBackend,
        *,
        flush_delay: float = DEFAULT_FLUSH_DELAY,
        default_model: str = DEFAULT_MODEL,
    ) -> None:
        self._backend = backend
        self._flush_delay = flush_delay
        self._default_model = default_model

        self._workspaces: dict[str, Workspace] = {}
        self._agents: dict[str, Agent] = {}
        self._groups: dict[str, Group] = {}
        self._messages: dict[str, list[Message]] = {}
        self._last_reads: dict[str, str] = {}

        self._flush_handle: asyncio.TimerHandle | None = None
        self._flush_tasks: set[asyncio.Task[None]] = set()
        self._dirty = False
        self._seq = 0
        self._saved_seq = 0
        self._save_lock = threading.Lock()

        self._load()

    # -- Persistence -----------------------------------------------------------

    def _load(self) -> None:
        snapshot = self._backend.load()
        self._workspaces = {k: Workspace.model_validate(v) for k, v in snapshot["workspaces"].items()}
        self._agents = {k: Agent.model_validate(v) for k, v in snapshot["agents"].items()}
        self._groups = {k: Group.model_validate(v) for k, v in snapshot["groups"].items()}
        self._messages = {k: [Message.model_validate(m) for m in msgs] for k, msgs in snapshot["messages"].items()}
        self._last_reads = dict(snapshot["lastReads"])
        logger.debug("Store: loaded {}", self.get_store_size())

    def snapshot(self) -> dict[str, Any]:
        """Serialize the mirror into the five-collection snapshot layout."""
        return {
            "workspaces": {k: v.model_dump(mode="json") for k, v in self._workspaces.items()},
            "agents": {k: v.model_dump(mode="json") for k, v in self._agents.items()},
            "groups": {k: v.model_dump(mode="json") for k, v in self._groups.items()},
            "messages": {k: [m.model_dump(mode="json") for m in msgs] for k, msgs in self._messages.items()},
            "lastReads": dict(self._last_reads),
        }

    def _schedule_flush(self) -> None:
        """Restart the debounce timer.  Without a running loop, only mark dirty."""
        self._dirty = True
        self._seq += 1
        if self._flush_handle is not None:
            self._flush_handle.cancel()
            self._flush_handle = None
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            return
        self._flush_handle = loop.call_later(self._flush_delay, self._on_flush_timer)

    def _on_flush_timer(self) -> None:
        self._flush_handle = None
        snapshot = self.snapshot()
        task = asyncio.get_running_loop().create_task(self._flush_async(snapshot, self._seq))
        self._flush_tasks.add(task)
        task.add_done_callback(self._flush_tasks.discard)

    async def _flush_async(self, snapshot: dict[str, Any], seq: int) -> None:
        try:
            await to_thread.run_sync(partial(self._save, snapshot, seq))
        except Exception:
            # The mirror stays authoritative; the next mutation schedules another attempt.
            logger.exception("Store: scheduled flush failed")

    def _save(self, snapshot: dict[str, Any], seq: int) -> None:
        with self._save_lock:
            if seq < self._saved_seq:
                return
            self._backend.save(snapshot)
            self._saved_seq = seq
            if seq == self._seq:
                self._dirty = False

    def flush_now(self) -> None:
        """Write the snapshot immediately (orderly shutdown)."""
        if self._flush_handle is not None:
            self._flush_handle.cancel()
            self._flush_handle = None
        self._save(self.snapshot(), self._seq)
        logger.debug("Store: flushed (seq={})", self._seq)

    @property
    def has_pending_flush(self) -> bool:
        return self._flush_handle is not None

    @property
    def is_dirty(self) -> bool:
        return self._dirty

    # -- Workspace -------------------------------------------------------------

    def create_workspace(
        self,
        name: str,
        task_description: str = "",
        company_structure: dict[str, Any] | None = None,
    ) -> Workspace:
        workspace = Workspace(
            id=_new_id(),
            name=name,
            task_description=task_description,
            company_structure=company_structure or {},
        )
        self._workspaces[workspace.id] = workspace
        self._schedule_flush()
        return workspace

    def get_workspace(self, workspace_id: str) -> Workspace | None:
        return self._workspaces.get(workspace_id)

    def list_workspaces(self) -> list[Workspace]:
        return list(self._workspaces.values())

    def update_workspace_status(self, workspace_id: str, status: WorkspaceStatus) -> Workspace | None:
        workspace = self._workspaces.get(workspace_id)
        if workspace is None:
            return None
        workspace.status = status
        workspace.updated_at = datetime.now(tz=UTC)
        self._schedule_flush()
        return workspace

    def delete_workspace(self, workspace_id: str) -> None:
        """Delete a workspace and everything it owns (agents, groups, messages, cursors)."""
        self._workspaces.pop(workspace_id, None)

        agent_ids = {aid for aid, a in self._agents.items() if a.workspace_id == workspace_id}
        group_ids = {gid for gid, g in self._groups.items() if g.workspace_id == workspace_id}

        for agent_id in agent_ids:
            del self._agents[agent_id]
        for group_id in group_ids:
            del self._groups[group_id]
            self._messages.pop(group_id, None)

        stale = [
            key
            for key in self._last_reads
            if key.split(":", 1)[0] in agent_ids or key.split(":", 1)[-1] in group_ids
        ]
        for key in stale:
            del self._last_reads[key]

        self._schedule_flush()

    # -- Agent -----------------------------------------------------------------

    def create_agent(self, workspace_id: str, spec: AgentCreate) -> Agent:
        agent = Agent(
            id=_new_id(),
            workspace_id=workspace_id,
            role=spec.role,
            role_key=spec.role_key or normalize_role_key(spec.role),
            model=spec.model or self._default_model,
            parent_id=spec.parent_id,
            system_prompt=spec.system_prompt,
            responsibilities=list(spec.responsibilities),
            can_delegate=spec.can_delegate,
            can_approve=spec.can_approve,
        )
        self._agents[agent.id] = agent
        self._schedule_flush()
        return agent

    def get_agent(self, agent_id: str | None) -> Agent | None:
        if agent_id is None:
            return None
        return self._agents.get(agent_id)

    def list_agents_by_workspace(self, workspace_id: str) -> list[Agent]:
        return [a for a in self._agents.values() if a.workspace_id == workspace_id]

    def update_agent_status(self, agent_id: str, status: AgentStatus) -> Agent | None:
        agent = self._agents.get(agent_id)
        if agent is None:
            return None
        agent.status = status
        self._schedule_flush()
        return agent

    def update_agent_llm_history(self, agent_id: str, history: list[Turn]) -> Agent | None:
        """Replace (not append) the agent's stored transcript."""
        agent = self._agents.get(agent_id)
        if agent is None:
            return None
        agent.llm_history = list(history)
        self._schedule_flush()
        return agent

    def get_agent_children(self, parent_id: str) -> list[Agent]:
        return [a for a in self._agents.values() if a.parent_id == parent_id]

    # -- Group -----------------------------------------------------------------

    def create_group(self, workspace_id: str, name: str, member_ids: list[str] | None = None) -> Group:
        group = Group(
            id=_new_id(),
            workspace_id=workspace_id,
            name=name,
            member_ids=list(dict.fromkeys(member_ids or [])),
        )
        self._groups[group.id] = group
        self._schedule_flush()
        return group

    def find_p2p(self, workspace_id: str, agent_id_1: str, agent_id_2: str) -> Group | None:
        pair = {agent_id_1, agent_id_2}
        return next(
            (
                g
                for g in self._groups.values()
                if g.workspace_id == workspace_id and len(g.member_ids) == 2 and set(g.member_ids) == pair
            ),
            None,
        )

    def get_or_create_p2p(self, workspace_id: str, agent_id_1: str, agent_id_2: str) -> Group:
        """Return the unique two-member group for an unordered pair, creating it if needed."""
        if agent_id_1 == agent_id_2:
            msg = f"Cannot open a private chat between agent '{agent_id_1}' and itself"
            raise ValueError(msg)

        existing = self.find_p2p(workspace_id, agent_id_1, agent_id_2)
        if existing is not None:
            return existing

        agent_1 = self.get_agent(agent_id_1)
        agent_2 = self.get_agent(agent_id_2)
        name = f"{agent_1.role if agent_1 else 'Agent'} ↔ {agent_2.role if agent_2 else 'Agent'}"
        return self.create_group(workspace_id, name, [agent_id_1, agent_id_2])

    def get_group(self, group_id: str | None) -> Group | None:
        if group_id is None:
            return None
        return self._groups.get(group_id)

    def list_groups_by_workspace(self, workspace_id: str) -> list[Group]:
        return [g for g in self._groups.values() if g.workspace_id == workspace_id]

    def list_groups_by_agent(self, agent_id: str) -> list[Group]:
        return [g for g in self._groups.values() if agent_id in g.member_ids]

    def add_group_member(self, group_id: str, agent_id: str) -> Group | None:
        group = self._groups.get(group_id)
        if group is None:
            return None
        if agent_id not in group.member_ids:
            group.member_ids.append(agent_id)
            self._schedule_flush()
        return group

    # -- Messages --------------------------------------------------------------

    def send_message(
        self,
        group_id: str,
        sender_id: str,
        content: str,
        type: MessageType = MessageType.TEXT,  # noqa: A002
    ) -> Message:
        message = Message(id=_new_id(), group_id=group_id, sender_id=sender_id, content=content, type=type)
        history = self._messages.setdefault(group_id, [])
        history.append(message)

        # Oldest history past the cap is dropped for good.
        if len(history) > MAX_MESSAGES_PER_GROUP:
            del history[: len(history) - MAX_MESSAGES_PER_GROUP]

        self._schedule_flush()
        return message

    def get_group_messages(self, group_id: str, limit: int = 50) -> list[Message]:
        """Tail window: the last ``limit`` messages, oldest first."""
        if limit <= 0:
            return []
        return list(self._messages.get(group_id, [])[-limit:])

    def get_unread_messages(self, group_id: str, after_message_id: str | None) -> list[Message]:
        """Messages strictly after the cursor.

        Returns the full list when the cursor is ``None`` or no longer in
        history (trimmed by the retention cap).
        """
        history = self._messages.get(group_id, [])
        if not after_message_id:
            return list(history)

        for index, message in enumerate(history):
            if message.id == after_message_id:
                return history[index + 1 :]
        return list(history)

    # -- Read cursors ----------------------------------------------------------

    def mark_as_read(self, agent_id: str, group_id: str, message_id: str) -> None:
        self._last_reads[_cursor_key(agent_id, group_id)] = message_id
        self._schedule_flush()

    def get_last_read_message_id(self, agent_id: str, group_id: str) -> str | None:
        return self._last_reads.get(_cursor_key(agent_id, group_id))

    # -- Utility ---------------------------------------------------------------

    def clear_all(self) -> None:
        """Drop every collection and the persisted snapshot."""
        if self._flush_handle is not None:
            self._flush_handle.cancel()
            self._flush_handle = None
        self._workspaces = {}
        self._agents = {}
        self._groups = {}
        self._messages = {}
        self._last_reads = {}
        self._dirty = False
        self._backend.clear()

    def get_store_size(self) -> dict[str, int]:
        return {
            "workspaces": len(self._workspaces),
            "agents": len(self._agents),
            "groups": len(self._groups),
            "messages": sum(len(msgs) for msgs in self._messages.values()),
        }


@contextmanager
def open_store(
    backend: SnapshotBackend,
    *,
    flush_delay: float = DEFAULT_FLUSH_DELAY,
    default_model: str = DEFAULT_MODEL,
) -> Iterator[CompanyStore]:
    """Load a store and guarantee a final flush on every exit path."""
    store = CompanyStore(backend, flush_delay=flush_delay, default_model=default_model)
    try:
        yield store
    finally:
        try:
            store.flush_now()
        except Exception:
            logger.exception("Store: final flush failed")
