"""System prompt composition for company agents.

A prompt is a ``PromptSpec``: an opening line, identity facts,
responsibilities and a few named sections.  ``render_prompt`` joins them
with plain string composition; empty sections are omitted.

Role archetypes (CEO, CTO, PM, developer, tester, security) contribute
their own sections; any other role gets the generic set.
"""

from __future__ import annotations

import re
from collections.abc import Callable
from dataclasses import dataclass, field

from virtualco.company_runtime.models.structure import AgentBlueprint, CompanyStructure

PromptWriter = Callable[[CompanyStructure, str | None], dict[str, str]]
"""Maps a planner structure and the company goal to ``{blueprint_id: system_prompt}``."""


@dataclass
class PromptSection:
    title: str
    items: list[str] = field(default_factory=list)
    ordered: bool = False

    def render(self) -> str:
        if self.ordered:
            lines = [f"{i}. {item}" for i, item in enumerate(self.items, start=1)]
        else:
            lines = [f"- {item}" for item in self.items]
        return "\n".join([f"## {self.title}", *lines])


@dataclass
class PromptSpec:
    intro: str
    identity: list[str] = field(default_factory=list)
    responsibilities: list[str] = field(default_factory=list)
    sections: list[PromptSection] = field(default_factory=list)
    guidance: str | None = None


def render_prompt(spec: PromptSpec) -> str:
    parts = [spec.intro]
    if spec.identity:
        parts.append(PromptSection("Your Identity", spec.identity).render())
    if spec.responsibilities:
        parts.append(PromptSection("Your Responsibilities", spec.responsibilities).render())
    parts.extend(section.render() for section in spec.sections if section.items)
    if spec.guidance:
        parts.append(f"## Additional Guidance\n{spec.guidance.strip()}")
    return "\n\n".join(parts)


# -- Archetypes --------------------------------------------------------------

_COMMUNICATION = PromptSection(
    "Communication Guidelines",
    [
        "Use the `send` tool to message another agent by id (this opens a private chat)",
        "Use the `create` tool to delegate work to a new sub-agent when needed",
        "Use `list_agents` and `list_groups` to find colleagues and channels",
        "Call `report_done` with a short summary when your assigned task is complete",
        "Be concise and professional; escalate to your manager when blocked",
    ],
)

_ARCHETYPE_SECTIONS: dict[str, list[PromptSection]] = {
    "ceo": [
        PromptSection(
            "Leadership Style",
            [
                "Delegate tasks to appropriate team members",
                "Make strategic decisions when the team is stuck",
                "Resolve conflicts between team members",
                "Ensure the project stays on track",
                "Approve major changes and releases",
            ],
        ),
        PromptSection(
            "Decision Framework",
            [
                "Gather information from team members",
                "Consider trade-offs and risks",
                "Make clear, timely decisions",
                "Communicate decisions with rationale",
                "Follow up on execution",
            ],
            ordered=True,
        ),
    ],
    "cto": [
        PromptSection(
            "Technical Leadership",
            [
                "Make architecture and technology decisions",
                "Review code quality and design patterns",
                "Keep technical debt under control",
                "Balance innovation with stability",
            ],
        ),
        PromptSection(
            "Code Review Standards",
            [
                "Check for security vulnerabilities",
                "Verify performance implications",
                "Ensure maintainability and readability",
                "Validate test coverage",
            ],
        ),
    ],
    "pm": [
        PromptSection(
            "Product Management",
            [
                "Translate business requirements into user stories",
                "Prioritize features based on value and effort",
                "Define acceptance criteria for each task",
                "Track progress and identify blockers",
            ],
        ),
        PromptSection(
            "Task Breakdown Guidelines",
            [
                "Each task should be completable in one session",
                'Define clear "done" criteria',
                "Identify dependencies between tasks",
                "Estimate relative complexity (S/M/L/XL)",
            ],
        ),
    ],
    "developer": [
        PromptSection(
            "Coding Standards",
            [
                "Write clean, readable code with meaningful names",
                "Follow the existing code style in the project",
                "Write tests for new functionality",
                "Handle errors gracefully",
            ],
        ),
        PromptSection(
            "Work Process",
            [
                "Understand the requirements fully before coding",
                "Break the task into smaller steps",
                "Implement incrementally and test as you go",
                "Ask for review when done",
            ],
            ordered=True,
        ),
    ],
    "tester": [
        PromptSection(
            "Testing Philosophy",
            [
                "Test both happy paths and edge cases",
                "Automate repetitive tests",
                "Reproduce bugs with minimal steps",
            ],
        ),
        PromptSection(
            "Bug Report Format",
            [
                "Summary: one-line description",
                "Steps to reproduce",
                "Expected result",
                "Actual result",
                "Severity: Critical/High/Medium/Low",
            ],
            ordered=True,
        ),
    ],
    "security": [
        PromptSection(
            "Security Focus Areas",
            [
                "Authentication and authorization",
                "Input validation and sanitization",
                "Secrets management",
                "Dependency vulnerabilities",
            ],
        ),
        PromptSection(
            "Reporting Style",
            [
                "Severity: Critical/High/Medium/Low",
                "Attack vector description",
                "Recommended fix",
            ],
        ),
    ],
    "default": [
        PromptSection(
            "Work Style",
            [
                "Think step by step before taking action",
                "Verify your work before marking tasks as complete",
                "Ask for clarification when requirements are unclear",
            ],
        ),
    ],
}

_ROLE_ARCHETYPES: dict[str, str] = {
    "ceo": "ceo",
    "chief executive officer": "ceo",
    "cto": "cto",
    "chief technology officer": "cto",
    "pm": "pm",
    "product manager": "pm",
    "project manager": "pm",
    "frontend developer": "developer",
    "backend developer": "developer",
    "fullstack developer": "developer",
    "developer": "developer",
    "engineer": "developer",
    "tester": "tester",
    "qa": "tester",
    "qa engineer": "tester",
    "quality assurance": "tester",
    "security analyst": "security",
    "security engineer": "security",
    "security": "security",
}


def select_archetype(role: str) -> str:
    """Exact role match first, then the longest key appearing as whole words in the role."""
    normalized = role.strip().lower()
    if normalized in _ROLE_ARCHETYPES:
        return _ROLE_ARCHETYPES[normalized]
    matches = [key for key in _ROLE_ARCHETYPES if re.search(rf"\b{re.escape(key)}\b", normalized)]
    if not matches:
        return "default"
    return _ROLE_ARCHETYPES[max(matches, key=len)]


# -- Builders ----------------------------------------------------------------


def build_role_spec(
    role: str,
    *,
    agent_id: str | None = None,
    reports_to: str | None = None,
    manages: list[str] | None = None,
    responsibilities: list[str] | None = None,
    can_delegate: bool = False,
    can_approve: bool = False,
    task_description: str | None = None,
    guidance: str | None = None,
) -> PromptSpec:
    archetype = select_archetype(role)
    if archetype == "ceo":
        intro = "You are the CEO of a virtual software development company. You are the top decision-maker."
    else:
        intro = f"You are a {role} in a virtual software development company."

    identity = [f"Role: {role}"]
    if agent_id:
        identity.append(f"Agent ID: {agent_id}")
    if reports_to:
        identity.append(f"You report to: {reports_to}")
    if manages:
        identity.append(f"You manage: {', '.join(manages)}")
    if can_delegate:
        identity.append("You may delegate work by creating sub-agents")
    if can_approve:
        identity.append("You may approve deliverables from your reports")

    sections = list(_ARCHETYPE_SECTIONS[archetype])
    sections.append(_COMMUNICATION)
    if task_description:
        sections.insert(0, PromptSection("Company Goal", [task_description]))

    return PromptSpec(
        intro=intro,
        identity=identity,
        responsibilities=list(responsibilities or []),
        sections=sections,
        guidance=guidance,
    )


def write_role_prompts(structure: CompanyStructure, task_description: str | None = None) -> dict[str, str]:
    """Default prompt writer: one prompt per blueprint, keyed by blueprint id."""
    prompts: dict[str, str] = {}
    for blueprint in structure.agents:
        prompts[blueprint.id] = render_prompt(_spec_for_blueprint(blueprint, structure, task_description))
    return prompts


def _spec_for_blueprint(
    blueprint: AgentBlueprint,
    structure: CompanyStructure,
    task_description: str | None,
) -> PromptSpec:
    parent = structure.get(blueprint.parent_id) if blueprint.parent_id else None
    # Structure-local ids mean nothing at runtime; agents discover real ids via `self` and `list_agents`.
    reports_to = parent.role if parent else "Human (the client)"
    manages = [a.role for a in structure.agents if a.parent_id == blueprint.id]
    return build_role_spec(
        blueprint.role,
        reports_to=reports_to,
        manages=manages,
        responsibilities=blueprint.responsibilities,
        can_delegate=blueprint.can_delegate,
        can_approve=blueprint.can_approve,
        task_description=task_description,
    )


def spawned_agent_prompt(role: str, creator_role: str, guidance: str | None = None) -> str:
    """Prompt for an agent created at runtime through the ``create`` tool."""
    return render_prompt(build_role_spec(role, reports_to=creator_role, guidance=guidance))
