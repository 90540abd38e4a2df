"""
Prompt construction for the planner, the agents and the synthesis stage.
"""

import json

from ensemble.constants import RESOURCE_TOOL_NAME
from ensemble.team.models import AgentSpec, EnvironmentSpec
from ensemble.types import SkillContentMap, ToolDefinition

RESOURCE_TOOL: ToolDefinition = {
    "name": RESOURCE_TOOL_NAME,
    "description": (
        "Fetch the environment's available resources. Returns the exact lists "
        "of rules, skills, values, and tools you are allowed to assign to agents. "
        "You MUST call this before designing or editing a team. You MUST NOT use "
        "any items outside what this tool returns."
    ),
    "parameters": {"type": "object", "properties": {}, "required": []},
}

SPEC_SCHEMA: str = """{
  "name": "environment name",
  "objective": "the goal",
  "agents": [
    {
      "id": "unique_snake_case_id",
      "role": "Agent Role Title",
      "personality": "2-3 personality traits",
      "skills": ["from get_available_resources only"],
      "values": ["from get_available_resources only"],
      "tools": ["from get_available_resources only"],
      "rules": ["from get_available_resources only"],
      "memory": [],
      "dependsOn": ["other_agent_id or empty"]
    }
  ],
  "rules": ["from get_available_resources only"]
}"""

DESIGN_PROMPT: str = f"""You are an AI team architect. Given a task, design a team of specialized AI agents.

IMPORTANT RULES:
1. ALWAYS call {RESOURCE_TOOL_NAME} first to check what's available.
2. You MUST ALWAYS design agents regardless of whether resources are empty or not.
3. If resources are empty, set skills, values, tools, and rules to empty arrays []. The agents still need roles, personalities, and dependsOn.
4. If resources exist, ONLY use items from what the tool returned. Do NOT invent any.
5. Agent roles and personalities are always your own design. Be creative and specific to the task.

After calling the tool, return ONLY valid JSON matching this schema:
{SPEC_SCHEMA}

Design 2-4 agents. Make them diverse and specialized. Use dependsOn to create a logical workflow. dependsOn must only name ids of other agents in the team and must not form a cycle."""

EDIT_PROMPT: str = f"""You are an AI team architect. The user wants to modify an existing team configuration.

IMPORTANT RULES:
1. ALWAYS call {RESOURCE_TOOL_NAME} first.
2. If resources exist, ONLY use items returned by the tool. Do NOT invent any.
3. If resources are empty, use empty arrays [] for skills, values, tools, rules.
4. You MUST ALWAYS return a valid updated spec. Never refuse.

Return ONLY the updated valid JSON matching this schema:
{SPEC_SCHEMA}

Preserve agent IDs when possible."""

OPTIMIZE_INSTRUCTION: str = (
    "Optimize the distribution of skills, tools, values, and rules across "
    "agents for maximum effectiveness."
)

SYNTHESIS_PROMPT: str = """You are the integrator of a team of specialist AI agents.

You receive the task and the output of every agent, each labeled with the agent's role.
Integrate them into ONE cohesive deliverable that fulfils the task:
- Merge overlapping points and resolve contradictions instead of repeating them.
- Keep the strongest material from each contributor.
- Do not list the agents' outputs one after another and do not describe the team.

Output the final deliverable directly."""


def build_edit_content(spec: EnvironmentSpec, instruction: str) -> str:
    """Build the planner user message for an edit of ``spec``."""
    current: str = json.dumps(spec.to_wire(), indent=2)
    return f"Current config:\n{current}\n\nUser request: {instruction}"


def _labels_section(title: str, labels: list[str]) -> str | None:
    if not labels:
        return None
    return f"{title}: {', '.join(labels)}"


def build_agent_prompt(
    agent: AgentSpec,
    global_rules: list[str],
    skill_content: SkillContentMap | None = None,
) -> str:
    """
    Build an agent's system prompt.

    Sections for skills, values, tools, rules and memory appear only when
    they have content. Skills with long-form content in the bucket are
    expanded as methodology blocks.

    Parameters
    ----------
    agent : AgentSpec
        The agent.
    global_rules : list[str]
        Spec-wide rules, appended after the agent's own rules.
    skill_content : SkillContentMap | None, optional
        Skill label to methodology text.

    Returns
    -------
    str
        The system prompt.
    """
    skill_content = skill_content or {}
    sections: list[str] = [f"You are {agent.role or agent.id}."]

    if agent.personality:
        sections.append(f"Personality: {agent.personality}")

    labels: list[str] = [
        section
        for section in (
            _labels_section("Skills", agent.skills),
            _labels_section("Values", agent.values),
            _labels_section("Available Tools", agent.tools),
        )
        if section
    ]
    if labels:
        sections.append("\n".join(labels))

    rules: list[str] = list(dict.fromkeys([*agent.rules, *global_rules]))
    if rules:
        sections.append(
            "Rules you MUST follow:\n" + "\n".join(f"- {rule}" for rule in rules),
        )

    methodologies: list[str] = [
        f"### {label}\n{skill_content[label]}"
        for label in agent.skills
        if skill_content.get(label)
    ]
    if methodologies:
        sections.append("Skill methodologies:\n\n" + "\n\n".join(methodologies))

    if agent.memory:
        sections.append("Memory/Context:\n" + "\n".join(agent.memory))

    sections.append(
        "You are part of a team. Stay focused on YOUR role and add complementary "
        "value: do not duplicate work your teammates cover. Be concise but "
        "thorough. Output your work directly.",
    )
    return "\n\n".join(sections)


def build_upstream_context(
    agent: AgentSpec,
    spec: EnvironmentSpec,
    completed_outputs: dict[str, str],
) -> str:
    """
    Concatenate the outputs of ``agent``'s direct dependencies.

    Each dependency contributes ``"[<role>]: <output>"``; blocks are joined
    by a blank line. Dependencies without a recorded output are skipped.

    Examples
    --------
    >>> a = AgentSpec(id="a", role="Researcher")
    >>> b = AgentSpec(id="b", depends_on=["a"])
    >>> build_upstream_context(b, EnvironmentSpec(agents=[a, b]), {"a": "facts"})
    '[Researcher]: facts'
    """
    blocks: list[str] = []
    for dep in agent.depends_on:
        if dep not in completed_outputs:
            continue
        upstream = spec.get_agent(dep)
        label: str = upstream.role if upstream and upstream.role else dep
        blocks.append(f"[{label}]: {completed_outputs[dep]}")
    return "\n\n".join(blocks)


def build_agent_user_message(
    agent: AgentSpec,
    spec: EnvironmentSpec,
    upstream_context: str,
    user_prompt: str | None = None,
) -> str:
    """
    Build the user message that starts an agent's completion.

    ``user_prompt`` replaces the objective as the task; the objective is
    then kept as background.
    """
    if user_prompt:
        lines: list[str] = [f"Task: {user_prompt}"]
        if spec.objective:
            lines.append(f"Team objective: {spec.objective}")
    else:
        lines = [f"Task: {spec.objective}"]

    message: str = "\n".join(lines)
    message += (
        f"\n\nYour specific role: {agent.role or agent.id}\n"
        "Your goal: Execute your responsibilities for this task.\n"
    )
    if upstream_context:
        message += f"\nContext from team members:\n{upstream_context}"
    return message


def build_synthesis_message(
    spec: EnvironmentSpec,
    outputs: list[tuple[AgentSpec, str]],
    user_prompt: str | None = None,
) -> str:
    """Build the synthesis user message listing every agent's labeled output."""
    task: str = user_prompt or spec.objective
    parts: list[str] = [f"Task: {task}"]
    if user_prompt and spec.objective:
        parts.append(f"Team objective: {spec.objective}")

    for agent, output in outputs:
        parts.append(f"[{agent.role or agent.id}]:\n{output}")

    parts.append("Integrate these outputs into one deliverable.")
    return "\n\n".join(parts)
