"""
Text User Interface for Ensemble runs.

The TUI renders an event stream as it arrives. Every event first goes
through a ``RunProjection`` (the same state machine replay uses), so the
summary shown at the end reflects exactly what was rendered.
"""

import logging
from typing import assert_never

from rich import box
from rich.console import Console, Group
from rich.markdown import Markdown
from rich.panel import Panel
from rich.rule import Rule
from rich.table import Table
from rich.text import Text

from ensemble.agent.events import (
    AgentCompleteEvent,
    AgentEvent,
    AgentSpawnedEvent,
    EnvCreatedEvent,
    EnvironmentCompleteEvent,
    ErrorEvent,
    MessageEvent,
    OutputEvent,
    PlannerOutputEvent,
    PlannerThinkingEvent,
    SynthesisEvent,
    ThinkingEvent,
    ToolCallEvent,
)
from ensemble.agent.persistence import RunInfo
from ensemble.agent.state import AgentStatus, RunProjection
from ensemble.config.schema import Configuration
from ensemble.team.models import EnvironmentSpec
from ensemble.utils.text import Tokenizer

logger = logging.getLogger(__name__)


class TUI:
    """
    Renders orchestration events to a rich console.

    Streaming deltas of different sources (planner, each agent) are
    interleaved in a live run; a header line is printed whenever the
    source of the stream changes.

    Parameters
    ----------
    config : Configuration
        Configuration object.
    console : Console
        Rich console instance for output.
    show_thinking : bool, default=True
        Whether reasoning deltas are printed.

    Attributes
    ----------
    projection : RunProjection
        State of the run rendered so far.

    Examples
    --------
    >>> tui = TUI(config, get_console())
    >>> async for event in orchestrator.execute(spec):
    ...     tui.render(event)
    """

    def __init__(
        self,
        config: Configuration,
        console: Console,
        show_thinking: bool = True,
    ) -> None:
        self.config: Configuration = config
        self.console: Console = console
        self.show_thinking: bool = show_thinking
        self.projection: RunProjection = RunProjection()
        self.tokenizer: Tokenizer = Tokenizer(config.model_name)
        self._stream_source: tuple[str, str | None] | None = None

    def reset(self) -> None:
        """Start rendering a new run."""
        self.end_stream()
        self.projection = RunProjection()

    def print_welcome(self, title: str, lines: list[str] | None = None) -> None:
        body: str = "\n".join(lines) if lines else ""
        self.console.print(
            Panel(
                Text(body, style="code"),
                title=Text(title, style="highlight"),
                title_align="left",
                border_style="border",
                box=box.ROUNDED,
                padding=(1, 2),
            ),
        )

    def _agent_label(self, agent_id: str) -> str:
        state = self.projection.agents.get(agent_id)
        if state and state.agent.role:
            return f"{state.agent.role} ({agent_id})"
        return agent_id

    def _stream(
        self,
        source: tuple[str, str | None],
        header: Text,
        content: str,
        style: str,
    ) -> None:
        if self._stream_source != source:
            self.end_stream()
            self.console.print(header)
            self._stream_source = source
        self.console.print(Text(content, style=style), end="")

    def end_stream(self) -> None:
        """Close the current streamed block, if any."""
        if self._stream_source is not None:
            self.console.print()
        self._stream_source = None

    def render(self, event: AgentEvent) -> None:
        """Apply ``event`` to the projection and print it."""
        self.projection.apply(event)

        match event:
            case PlannerThinkingEvent(content=content):
                if self.show_thinking:
                    self._stream(
                        ("planner_thinking", None),
                        Text("planner thinking", style="planner.thinking"),
                        content,
                        "planner.thinking",
                    )
            case PlannerOutputEvent(content=content):
                self._stream(
                    ("planner_output", None),
                    Text("planner", style="planner"),
                    content,
                    "muted",
                )
            case EnvCreatedEvent(spec=spec):
                self.end_stream()
                self.print_spec(spec)
            case AgentSpawnedEvent(agent=agent):
                self.end_stream()
                self.console.print()
                self.console.print(Rule(Text(f"⏺ {self._agent_label(agent.id)}", style="agent")))
            case ThinkingEvent(agent_id=agent_id, content=content):
                if self.show_thinking:
                    self._stream(
                        ("thinking", agent_id),
                        Text(f"{agent_id} thinking", style="agent.thinking"),
                        content,
                        "agent.thinking",
                    )
            case OutputEvent(agent_id=agent_id, content=content):
                self._stream(
                    ("output", agent_id),
                    Text(agent_id, style="agent"),
                    content,
                    "agent.output",
                )
            case ToolCallEvent(agent_id=agent_id, tool=tool, input=tool_input):
                self.end_stream()
                self.console.print(
                    Text.assemble(
                        ("  ⚙ ", "muted"),
                        (tool, "tool"),
                        (f"  {agent_id}  ", "muted"),
                        (tool_input, "dim"),
                    ),
                )
            case MessageEvent(from_agent=from_agent, to_agent=to_agent, summary=summary):
                self.end_stream()
                self.console.print(
                    Text.assemble(
                        (f"  {from_agent} → {to_agent}: ", "message"),
                        (summary.replace("\n", " "), "muted"),
                    ),
                )
            case AgentCompleteEvent(agent_id=agent_id, result=result):
                self.end_stream()
                tokens: int = self.tokenizer.count_tokens(result)
                self.console.print(
                    Text.assemble(
                        ("✓ ", "success"),
                        (self._agent_label(agent_id), "agent"),
                        (f"  {tokens} tokens", "muted"),
                    ),
                )
            case SynthesisEvent():
                # Rendered as a whole on completion.
                pass
            case EnvironmentCompleteEvent(summary=summary):
                self.end_stream()
                self.print_synthesis()
                self.console.print(Text(summary, style="success"))
            case ErrorEvent(message=message):
                self.end_stream()
                self.console.print()
                self.console.print(
                    Panel(
                        Text(message, style="code"),
                        title=Text("Error", style="error"),
                        title_align="left",
                        border_style="error",
                        box=box.ROUNDED,
                        padding=(0, 2),
                    ),
                )
            case _:
                assert_never(event)

    def print_spec(self, spec: EnvironmentSpec) -> None:
        """Print a team spec as a table."""
        table = Table(box=box.SIMPLE_HEAD, show_edge=False, header_style="muted")
        table.add_column("id", style="agent")
        table.add_column("role", style="code")
        table.add_column("depends on", style="muted")
        table.add_column("skills")
        table.add_column("values")
        table.add_column("tools")
        table.add_column("rules")

        for agent in spec.agents:
            table.add_row(
                agent.id,
                agent.role,
                ", ".join(agent.depends_on) or "-",
                ", ".join(agent.skills) or "-",
                ", ".join(agent.values) or "-",
                ", ".join(agent.tools) or "-",
                ", ".join(agent.rules) or "-",
            )

        blocks: list[Text | Table] = [Text(spec.objective, style="code"), table]
        if spec.rules:
            blocks.append(Text(f"global rules: {', '.join(spec.rules)}", style="muted"))

        self.console.print()
        self.console.print(
            Panel(
                Group(*blocks),
                title=Text(spec.name or "environment", style="highlight"),
                title_align="left",
                border_style="border",
                box=box.ROUNDED,
                padding=(1, 2),
            ),
        )

    def print_synthesis(self) -> None:
        if not self.projection.synthesis:
            return
        self.console.print()
        self.console.print(
            Panel(
                Markdown(self.projection.synthesis),
                title=Text("Synthesis", style="synthesis"),
                title_align="left",
                border_style="success",
                box=box.ROUNDED,
                padding=(1, 2),
            ),
        )

    def print_status(self) -> None:
        """Print per-agent status of the rendered run."""
        self.end_stream()
        table = Table(box=box.SIMPLE_HEAD, show_edge=False, header_style="muted")
        table.add_column("agent", style="agent")
        table.add_column("status")
        table.add_column("output", justify="right", style="muted")

        for agent_id, state in self.projection.agents.items():
            table.add_row(
                self._agent_label(agent_id),
                Text(state.status.value, style=f"status.{state.status.value}"),
                f"{len(state.output)} chars",
            )

        self.console.print(table)
        counts = self.projection.status_counts()
        if counts[AgentStatus.FAILED]:
            self.console.print(Text(f"{counts[AgentStatus.FAILED]} agent(s) failed", style="error"))

    def print_runs(self, runs: list[RunInfo]) -> None:
        if not runs:
            self.console.print(Text("No recorded runs", style="muted"))
            return

        table = Table(box=box.SIMPLE_HEAD, show_edge=False, header_style="muted")
        table.add_column("run id", style="highlight")
        table.add_column("created", style="muted")
        table.add_column("events", justify="right")
        table.add_column("task", style="code")

        for run in runs:
            table.add_row(
                run.run_id,
                run.created_at.strftime("%Y-%m-%d %H:%M:%S"),
                str(run.event_count),
                run.task,
            )
        self.console.print(table)

    def show_help(self) -> None:
        help_text: str = """
## Commands

- `/help` - Show this help
- `/exit` or `/quit` - Exit Ensemble
- `/spec` - Show the current team
- `/edit <instruction>` - Ask the planner to revise the team
- `/optimize` - Redistribute resources across agents
- `/add <agent> <field> <label>` - Grant a label (field: skills, values, tools, rules)
- `/remove <agent> <field> <label>` - Revoke a label
- `/run [prompt]` - Execute the team, optionally with a task override
- `/save <path>` - Save the team spec as JSON
- `/runs` - List recorded runs
- `/replay <run_id>` - Replay a recorded run

## Tips

- Any other input designs a new team for that task
- Press Ctrl-C during a run to stop it
"""
        self.console.print(Markdown(help_text))
