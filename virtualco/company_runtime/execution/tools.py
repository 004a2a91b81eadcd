"""Built-in agent tools.

``AGENT_TOOLS`` is the fixed catalog offered to every model call;
``ToolExecutor`` runs one call on behalf of one agent.  Tool failures are
values, not exceptions: bad arguments, unknown ids and unknown tools all
come back as ``{"error": ...}`` so the model can read them and carry on.
"""

from __future__ import annotations

import asyncio
from typing import TYPE_CHECKING, Any

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from virtualco.company_runtime.execution.prompt import spawned_agent_prompt
from virtualco.company_runtime.execution.safety import check_command_safety
from virtualco.company_runtime.log import agent_logger
from virtualco.company_runtime.models.entities import HUMAN_ROLE, Agent, AgentCreate
from virtualco.company_runtime.models.enums import MessageType
from virtualco.company_runtime.models.events import AgentCreated, AgentDone, GroupCreated, MessageCreated
from virtualco.company_runtime.models.llm import ToolCall, ToolSpec

if TYPE_CHECKING:
    from virtualco.company_runtime.context import RuntimeContext
    from virtualco.company_runtime.registry import RunnerRegistry

ToolResult = dict[str, Any] | list[dict[str, Any]]

# -- Catalog -----------------------------------------------------------------

_NO_ARGS: dict[str, Any] = {"type": "object", "properties": {}}

AGENT_TOOLS: list[ToolSpec] = [
    ToolSpec(
        name="self",
        description="Get your own identity information (id, role, parentId, workspaceId)",
        parameters=_NO_ARGS,
    ),
    ToolSpec(
        name="create",
        description="Create a new sub-agent that reports to you",
        parameters={
            "type": "object",
            "properties": {
                "role": {"type": "string", "description": 'Role name for the new agent (e.g., "Backend Developer")'},
                "guidance": {"type": "string", "description": "Additional instructions for this agent"},
            },
            "required": ["role"],
        },
    ),
    ToolSpec(
        name="send",
        description="Send a message to another agent by their ID. This creates a private chat between you two.",
        parameters={
            "type": "object",
            "properties": {
                "to": {"type": "string", "description": "Target agent ID"},
                "content": {"type": "string", "description": "Message content"},
            },
            "required": ["to", "content"],
        },
    ),
    ToolSpec(
        name="send_group_message",
        description="Send a message to a group chat",
        parameters={
            "type": "object",
            "properties": {
                "groupId": {"type": "string", "description": "Group ID"},
                "content": {"type": "string", "description": "Message content"},
            },
            "required": ["groupId", "content"],
        },
    ),
    ToolSpec(
        name="create_group",
        description="Create a new group chat with specified agents",
        parameters={
            "type": "object",
            "properties": {
                "name": {"type": "string", "description": "Group name"},
                "memberIds": {
                    "type": "array",
                    "items": {"type": "string"},
                    "description": "Agent IDs to add to the group",
                },
            },
            "required": ["name", "memberIds"],
        },
    ),
    ToolSpec(name="list_agents", description="List all agents in your workspace", parameters=_NO_ARGS),
    ToolSpec(name="list_groups", description="List all groups you are a member of", parameters=_NO_ARGS),
    ToolSpec(
        name="get_group_messages",
        description="Get recent messages from a group",
        parameters={
            "type": "object",
            "properties": {
                "groupId": {"type": "string", "description": "Group ID"},
                "limit": {"type": "number", "description": "Max messages to retrieve (default 20)"},
            },
            "required": ["groupId"],
        },
    ),
    ToolSpec(
        name="bash",
        description="Execute a shell command (for coding tasks)",
        parameters={
            "type": "object",
            "properties": {"command": {"type": "string", "description": "Shell command to execute"}},
            "required": ["command"],
        },
    ),
    ToolSpec(
        name="report_done",
        description="Report that your assigned task is complete",
        parameters={
            "type": "object",
            "properties": {"summary": {"type": "string", "description": "Brief summary of what was accomplished"}},
            "required": ["summary"],
        },
    ),
]

# -- Argument models ---------------------------------------------------------


class _Args(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")


class CreateArgs(_Args):
    role: str = Field(min_length=1)
    guidance: str | None = None


class SendArgs(_Args):
    to: str
    content: str


class SendGroupMessageArgs(_Args):
    group_id: str = Field(alias="groupId")
    content: str


class CreateGroupArgs(_Args):
    name: str
    member_ids: list[str] = Field(alias="memberIds")


class GetGroupMessagesArgs(_Args):
    group_id: str = Field(alias="groupId")
    limit: int = 20


class BashArgs(_Args):
    command: str


class ReportDoneArgs(_Args):
    summary: str


def _error(message: str) -> dict[str, Any]:
    return {"error": message}


# -- Executor ----------------------------------------------------------------


class ToolExecutor:
    """Runs tool calls for one agent against the shared runtime context."""

    def __init__(self, agent_id: str, ctx: RuntimeContext, registry: RunnerRegistry) -> None:
        self.agent_id = agent_id
        self._ctx = ctx
        self._registry = registry

    @property
    def agent(self) -> Agent:
        agent = self._ctx.store.get_agent(self.agent_id)
        if agent is None:
            msg = f"Agent '{self.agent_id}' no longer exists"
            raise LookupError(msg)
        return agent

    async def execute(self, call: ToolCall) -> ToolResult:
        agent = self.agent
        log = agent_logger(agent.role, agent.id)
        log.info("Tool call: {}({})", call.name, str(call.arguments)[:100])

        try:
            match call.name:
                case "self":
                    return self._self(agent)
                case "create":
                    return self._create(agent, CreateArgs.model_validate(call.arguments))
                case "send":
                    return self._send(agent, SendArgs.model_validate(call.arguments))
                case "send_group_message":
                    return self._send_group_message(agent, SendGroupMessageArgs.model_validate(call.arguments))
                case "create_group":
                    return self._create_group(agent, CreateGroupArgs.model_validate(call.arguments))
                case "list_agents":
                    return self._list_agents(agent)
                case "list_groups":
                    return self._list_groups(agent)
                case "get_group_messages":
                    return self._get_group_messages(agent, GetGroupMessagesArgs.model_validate(call.arguments))
                case "bash":
                    return await self._bash(agent, BashArgs.model_validate(call.arguments))
                case "report_done":
                    return self._report_done(agent, ReportDoneArgs.model_validate(call.arguments))
                case _:
                    return _error(f"Unknown tool: {call.name}")
        except ValidationError as e:
            fields = ", ".join(".".join(str(p) for p in err["loc"]) or "arguments" for err in e.errors())
            return _error(f"Invalid arguments for {call.name}: {fields}")

    # -- Identity / topology ---------------------------------------------------

    def _self(self, agent: Agent) -> ToolResult:
        return {
            "id": agent.id,
            "role": agent.role,
            "parentId": agent.parent_id,
            "workspaceId": agent.workspace_id,
        }

    def _create(self, agent: Agent, args: CreateArgs) -> ToolResult:
        if self._registry.is_shutting_down:
            return _error("Runtime is shutting down; no new agents can be started")

        store = self._ctx.store
        child = store.create_agent(
            agent.workspace_id,
            AgentCreate(
                role=args.role,
                model=agent.model,
                parent_id=agent.id,
                system_prompt=spawned_agent_prompt(args.role, agent.role, args.guidance),
            ),
        )
        p2p = store.get_or_create_p2p(agent.workspace_id, agent.id, child.id)
        self._registry.start_agent(child.id)

        agent_logger(agent.role, agent.id).info("Created sub-agent: {} ({})", child.role, child.id)
        self._ctx.bus.publish(AgentCreated(agent_id=child.id, role=child.role, parent_id=agent.id))
        return {
            "agentId": child.id,
            "role": child.role,
            "p2pGroupId": p2p.id,
            "message": f'Created agent "{child.role}" and a private chat with them.',
        }

    def _list_agents(self, agent: Agent) -> ToolResult:
        return [
            {"id": a.id, "role": a.role, "status": a.status, "parentId": a.parent_id}
            for a in self._ctx.store.list_agents_by_workspace(agent.workspace_id)
        ]

    def _list_groups(self, agent: Agent) -> ToolResult:
        return [
            {"id": g.id, "name": g.name, "memberCount": len(g.member_ids)}
            for g in self._ctx.store.list_groups_by_agent(agent.id)
        ]

    # -- Messaging -------------------------------------------------------------

    def _send(self, agent: Agent, args: SendArgs) -> ToolResult:
        store = self._ctx.store
        target = store.get_agent(args.to)
        if target is None or target.workspace_id != agent.workspace_id:
            return _error(f"Agent not found: {args.to}")
        if target.id == agent.id:
            return _error("Cannot send a message to yourself")

        p2p = store.get_or_create_p2p(agent.workspace_id, agent.id, target.id)
        message = store.send_message(p2p.id, agent.id, args.content)
        self._registry.wake_agent(target.id)
        self._ctx.bus.publish(
            MessageCreated(
                group_id=p2p.id,
                agent_id=agent.id,
                content=args.content,
                message_id=message.id,
                target_id=target.id,
            )
        )
        return {"messageId": message.id, "groupId": p2p.id, "status": "sent"}

    def _send_group_message(self, agent: Agent, args: SendGroupMessageArgs) -> ToolResult:
        store = self._ctx.store
        group = store.get_group(args.group_id)
        if group is None or group.workspace_id != agent.workspace_id:
            return _error("Group not found")

        message = store.send_message(group.id, agent.id, args.content)
        self._registry.wake_members(group, exclude=agent.id)
        self._ctx.bus.publish(
            MessageCreated(group_id=group.id, agent_id=agent.id, content=args.content, message_id=message.id)
        )
        return {"messageId": message.id, "status": "sent"}

    def _create_group(self, agent: Agent, args: CreateGroupArgs) -> ToolResult:
        store = self._ctx.store
        unknown = [
            mid
            for mid in args.member_ids
            if (member := store.get_agent(mid)) is None or member.workspace_id != agent.workspace_id
        ]
        if unknown:
            return _error(f"Agents not found: {', '.join(unknown)}")

        group = store.create_group(agent.workspace_id, args.name, [agent.id, *args.member_ids])
        self._ctx.bus.publish(GroupCreated(group_id=group.id, name=group.name, member_ids=list(group.member_ids)))
        return {"groupId": group.id, "name": group.name, "memberCount": len(group.member_ids)}

    def _get_group_messages(self, agent: Agent, args: GetGroupMessagesArgs) -> ToolResult:
        store = self._ctx.store
        group = store.get_group(args.group_id)
        if group is None or group.workspace_id != agent.workspace_id:
            return _error("Group not found")

        result = []
        for message in store.get_group_messages(group.id, args.limit):
            sender = store.get_agent(message.sender_id)
            result.append({
                "id": message.id,
                "sender": sender.role if sender else HUMAN_ROLE,
                "content": message.content,
                "createdAt": message.created_at.isoformat(),
            })
        return result

    def _report_done(self, agent: Agent, args: ReportDoneArgs) -> ToolResult:
        store = self._ctx.store
        agent_logger(agent.role, agent.id).info("Task complete: {}", args.summary)
        self._ctx.bus.publish(AgentDone(agent_id=agent.id, role=agent.role, summary=args.summary))

        parent = store.get_agent(agent.parent_id)
        if parent is not None:
            p2p = store.get_or_create_p2p(agent.workspace_id, agent.id, parent.id)
            content = f"[Task Complete] {args.summary}"
            message = store.send_message(p2p.id, agent.id, content, MessageType.SYSTEM)
            self._registry.wake_agent(parent.id)
            self._ctx.bus.publish(
                MessageCreated(
                    group_id=p2p.id,
                    agent_id=agent.id,
                    content=content,
                    message_id=message.id,
                    target_id=parent.id,
                )
            )

        return {"status": "reported", "summary": args.summary}

    # -- Shell -----------------------------------------------------------------

    async def _bash(self, agent: Agent, args: BashArgs) -> ToolResult:
        settings = self._ctx.settings
        log = agent_logger(agent.role, agent.id)

        blocked = check_command_safety(args.command)
        if blocked:
            log.warning("Blocked dangerous command: {}", args.command)
            return {"exitCode": -1, "stdout": "", "stderr": f"Command blocked by safety sandbox: {blocked}"}

        try:
            process = await asyncio.create_subprocess_exec(
                "bash",
                "-c",
                args.command,
                cwd=settings.bash_workdir,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except OSError as e:
            log.error("Failed to start bash: {}", e)
            return {"exitCode": -1, "stdout": "", "stderr": str(e)}

        try:
            stdout, stderr = await asyncio.wait_for(process.communicate(), timeout=settings.bash_timeout)
        except TimeoutError:
            log.warning("Command timed out after {}s: {}", settings.bash_timeout, args.command)
            return {"exitCode": -1, "stdout": "", "stderr": f"Command timed out after {settings.bash_timeout}s"}
        finally:
            if process.returncode is None:
                process.kill()
                await process.wait()

        return {
            "exitCode": process.returncode,
            "stdout": stdout[: settings.bash_stdout_limit].decode(errors="ignore"),
            "stderr": stderr[: settings.bash_stderr_limit].decode(errors="ignore"),
        }
