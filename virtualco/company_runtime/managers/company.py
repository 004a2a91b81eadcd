"""Company lifecycle: launch, chat, shutdown, resume and org chart.

Encapsulates every multi-step flow that touches the store, the registry and
the event bus together.  Routers and the CLI call these methods and
translate the exceptions below.
"""

from __future__ import annotations

import time
from collections import defaultdict

from loguru import logger
from pydantic import BaseModel, Field

from virtualco.company_runtime.context import RuntimeContext
from virtualco.company_runtime.execution.prompt import PromptWriter, write_role_prompts
from virtualco.company_runtime.models.entities import (
    HUMAN_MODEL,
    HUMAN_ROLE,
    HUMAN_ROLE_KEY,
    Agent,
    AgentCreate,
    Group,
    Message,
    Workspace,
)
from virtualco.company_runtime.models.enums import AgentStatus, WorkspaceStatus
from virtualco.company_runtime.models.events import GroupCreated, MessageCreated
from virtualco.company_runtime.models.structure import AgentBlueprint, CompanyStructure
from virtualco.company_runtime.registry import AgentNotFoundError, RunnerRegistry

ALL_HANDS_GROUP_NAME = "All Hands"


class WorkspaceNotFoundError(LookupError):
    """Raised when a workspace is not found."""


class GroupNotFoundError(LookupError):
    """Raised when a group is not found."""


class WorkspaceArchivedError(ValueError):
    """Raised when an operation needs an active workspace."""


class LaunchResult(BaseModel):
    workspace: Workspace
    human: Agent
    agents: list[Agent]
    all_hands: Group
    p2p_groups: list[Group] = Field(default_factory=list)
    agent_id_map: dict[str, str] = Field(default_factory=dict)
    """Structure-local blueprint id -> stored agent id."""


class OrgNode(BaseModel):
    id: str
    role: str
    model: str
    status: AgentStatus
    is_human: bool = False
    children: list[OrgNode] = Field(default_factory=list)


class CompanyService:
    def __init__(
        self,
        ctx: RuntimeContext,
        registry: RunnerRegistry,
        *,
        prompt_writer: PromptWriter = write_role_prompts,
    ) -> None:
        self._ctx = ctx
        self._registry = registry
        self._prompt_writer = prompt_writer

    # -- Launch ----------------------------------------------------------------

    def launch(
        self,
        task_description: str,
        structure: CompanyStructure,
        prompts: dict[str, str] | None = None,
    ) -> LaunchResult:
        """Materialize a planner structure into a running company.

        Creates the workspace, the Human agent, every blueprint agent (parents
        before children), the all-hands group and a Human P2P with each
        top-level agent, then starts every AI runner.
        """
        store = self._ctx.store
        if prompts is None:
            prompts = self._prompt_writer(structure, task_description)

        name = structure.name or f"Company-{_base36(int(time.time() * 1000))}"
        workspace = store.create_workspace(name, task_description, structure.model_dump(mode="json"))
        logger.info("Launching company {!r} ({})", workspace.name, workspace.id)

        human = store.create_agent(
            workspace.id,
            AgentCreate(
                role=HUMAN_ROLE,
                role_key=HUMAN_ROLE_KEY,
                model=HUMAN_MODEL,
                responsibilities=["Final decision maker"],
                can_delegate=True,
                can_approve=True,
            ),
        )

        id_map: dict[str, str] = {}
        agents: list[Agent] = []
        roots: list[Agent] = []
        for blueprint in _parents_first(structure):
            parent_id = id_map.get(blueprint.parent_id) if blueprint.parent_id else None
            agent = store.create_agent(
                workspace.id,
                AgentCreate(
                    role=blueprint.role,
                    role_key=blueprint.role_key,
                    model=blueprint.model,
                    parent_id=parent_id or human.id,
                    system_prompt=prompts.get(blueprint.id, ""),
                    responsibilities=blueprint.responsibilities,
                    can_delegate=blueprint.can_delegate,
                    can_approve=blueprint.can_approve,
                ),
            )
            id_map[blueprint.id] = agent.id
            agents.append(agent)
            if parent_id is None:
                roots.append(agent)

        all_hands = store.create_group(workspace.id, ALL_HANDS_GROUP_NAME, [human.id, *(a.id for a in agents)])
        self._ctx.bus.publish(
            GroupCreated(group_id=all_hands.id, name=all_hands.name, member_ids=list(all_hands.member_ids))
        )
        p2p_groups = [store.get_or_create_p2p(workspace.id, human.id, root.id) for root in roots]

        for agent in agents:
            self._registry.start_agent(agent.id)
        logger.info("Company {!r}: {} agents running", workspace.name, len(agents))

        return LaunchResult(
            workspace=workspace,
            human=human,
            agents=agents,
            all_hands=all_hands,
            p2p_groups=p2p_groups,
            agent_id_map=id_map,
        )

    # -- Chat ------------------------------------------------------------------

    def send_user_message(self, workspace_id: str, target_agent_id: str, content: str) -> Message:
        """Human -> agent private message; wakes the target."""
        store = self._ctx.store
        self.get_workspace(workspace_id)
        human = self.find_human(workspace_id)

        target = store.get_agent(target_agent_id)
        if target is None or target.workspace_id != workspace_id or target.is_human:
            raise AgentNotFoundError(target_agent_id)

        p2p = store.get_or_create_p2p(workspace_id, human.id, target.id)
        message = store.send_message(p2p.id, human.id, content)
        self._registry.wake_agent(target.id)
        self._ctx.bus.publish(
            MessageCreated(
                group_id=p2p.id,
                agent_id=human.id,
                content=content,
                message_id=message.id,
                target_id=target.id,
            )
        )
        return message

    def broadcast(self, group_id: str, content: str, sender_id: str | None = None) -> Message:
        """Post to a group (as the Human unless *sender_id* is given) and wake every other member."""
        store = self._ctx.store
        group = store.get_group(group_id)
        if group is None:
            raise GroupNotFoundError(group_id)

        if sender_id is None:
            sender_id = self.find_human(group.workspace_id).id
        elif store.get_agent(sender_id) is None:
            raise AgentNotFoundError(sender_id)

        message = store.send_message(group.id, sender_id, content)
        self._registry.wake_members(group, exclude=sender_id)
        self._ctx.bus.publish(
            MessageCreated(group_id=group.id, agent_id=sender_id, content=content, message_id=message.id)
        )
        return message

    def get_group_messages(self, group_id: str, limit: int = 50) -> list[Message]:
        if self._ctx.store.get_group(group_id) is None:
            raise GroupNotFoundError(group_id)
        return self._ctx.store.get_group_messages(group_id, limit)

    # -- Lifecycle -------------------------------------------------------------

    def shutdown(self, workspace_id: str) -> Workspace:
        """Stop every runner of the workspace and archive it."""
        self.get_workspace(workspace_id)
        stopped = self._registry.stop_workspace(workspace_id)
        workspace = self._ctx.store.update_workspace_status(workspace_id, WorkspaceStatus.ARCHIVED)
        logger.info("Company {} archived ({} runners stopped)", workspace_id, stopped)
        return workspace

    def resume(self, workspace_id: str) -> list[str]:
        """Restart runners for the AI agents of an active workspace.  Returns the started ids."""
        workspace = self.get_workspace(workspace_id)
        if workspace.status != WorkspaceStatus.ACTIVE:
            msg = f"Workspace '{workspace_id}' is archived"
            raise WorkspaceArchivedError(msg)

        started = []
        for agent in self._ctx.store.list_agents_by_workspace(workspace_id):
            if agent.is_human or self._registry.is_running(agent.id):
                continue
            self._registry.start_agent(agent.id)
            started.append(agent.id)
        logger.info("Company {!r} resumed ({} runners started)", workspace.name, len(started))
        return started

    def resume_all(self) -> int:
        count = 0
        for workspace in self._ctx.store.list_workspaces():
            if workspace.status == WorkspaceStatus.ACTIVE:
                count += len(self.resume(workspace.id))
        return count

    def delete(self, workspace_id: str) -> None:
        """Stop the workspace's runners, then cascade-delete it from the store."""
        self.get_workspace(workspace_id)
        self._registry.stop_workspace(workspace_id)
        self._ctx.store.delete_workspace(workspace_id)

    # -- Queries ---------------------------------------------------------------

    def get_workspace(self, workspace_id: str) -> Workspace:
        workspace = self._ctx.store.get_workspace(workspace_id)
        if workspace is None:
            raise WorkspaceNotFoundError(workspace_id)
        return workspace

    def list_workspaces(self) -> list[Workspace]:
        return self._ctx.store.list_workspaces()

    def get_agent(self, agent_id: str) -> Agent:
        agent = self._ctx.store.get_agent(agent_id)
        if agent is None:
            raise AgentNotFoundError(agent_id)
        return agent

    def list_agents(self, workspace_id: str) -> list[Agent]:
        self.get_workspace(workspace_id)
        return self._ctx.store.list_agents_by_workspace(workspace_id)

    def list_groups(self, workspace_id: str) -> list[Group]:
        self.get_workspace(workspace_id)
        return self._ctx.store.list_groups_by_workspace(workspace_id)

    def find_human(self, workspace_id: str) -> Agent:
        human = next(
            (a for a in self._ctx.store.list_agents_by_workspace(workspace_id) if a.is_human),
            None,
        )
        if human is None:
            raise AgentNotFoundError(f"Human agent of workspace {workspace_id}")
        return human

    def find_all_hands(self, workspace_id: str) -> Group | None:
        return next(
            (g for g in self._ctx.store.list_groups_by_workspace(workspace_id) if g.name == ALL_HANDS_GROUP_NAME),
            None,
        )

    def org_chart(self, workspace_id: str) -> list[OrgNode]:
        """Agent tree of a workspace, roots first (normally just the Human)."""
        self.get_workspace(workspace_id)
        agents = self._ctx.store.list_agents_by_workspace(workspace_id)
        known = {a.id for a in agents}

        children: dict[str | None, list[Agent]] = defaultdict(list)
        for agent in agents:
            parent = agent.parent_id if agent.parent_id in known else None
            children[parent].append(agent)

        def build(agent: Agent) -> OrgNode:
            return OrgNode(
                id=agent.id,
                role=agent.role,
                model=agent.model,
                status=agent.status,
                is_human=agent.is_human,
                children=[build(child) for child in children[agent.id]],
            )

        return [build(root) for root in children[None]]


def render_org_chart(nodes: list[OrgNode]) -> str:
    """ASCII tree (``├──`` / ``└──``) with status markers and model tags."""
    lines: list[str] = []

    def walk(node: OrgNode, prefix: str, is_last: bool) -> None:
        connector = "└── " if is_last else "├── "
        if node.is_human:
            marker = "◆"
        elif node.status == AgentStatus.BUSY:
            marker = "●*"
        elif node.status == AgentStatus.ERROR:
            marker = "●!"
        else:
            marker = "●"
        model = f" [{node.model}]" if node.model and node.model != HUMAN_MODEL else ""
        lines.append(f"{prefix}{connector}{marker} {node.role}{model}")
        extension = "    " if is_last else "│   "
        for index, child in enumerate(node.children):
            walk(child, prefix + extension, index == len(node.children) - 1)

    for index, root in enumerate(nodes):
        walk(root, "", index == len(nodes) - 1)
    return "\n".join(lines)


def _parents_first(structure: CompanyStructure) -> list[AgentBlueprint]:
    """Blueprints ordered so every parent precedes its children.

    Blueprints whose parent id is unknown (or part of a cycle) are treated as
    top-level.
    """
    by_parent: dict[str | None, list[AgentBlueprint]] = defaultdict(list)
    ids = {b.id for b in structure.agents}
    for blueprint in structure.agents:
        by_parent[blueprint.parent_id if blueprint.parent_id in ids else None].append(blueprint)

    ordered: list[AgentBlueprint] = []
    seen: set[str] = set()
    queue = list(by_parent[None])
    while queue:
        blueprint = queue.pop(0)
        if blueprint.id in seen:
            continue
        seen.add(blueprint.id)
        ordered.append(blueprint)
        queue.extend(by_parent[blueprint.id])

    # Cycles never reach a root; launch them as top-level agents.
    ordered.extend(b for b in structure.agents if b.id not in seen)
    return ordered


def _base36(value: int) -> str:
    digits = "0123456789abcdefghijklmnopqrstuvwxyz"
    out = ""
    while value:
        value, rem = divmod(value, 36)
        out = digits[rem] + out
    return out or "0"
