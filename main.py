"""
Main entry point for Ensemble.

This module provides the command-line interface: one-shot commands to
design, edit, optimize, execute and replay agent teams, and an interactive
mode that keeps the current team between commands.
"""

import asyncio
import logging
import signal
import sys
from pathlib import Path
from typing import AsyncIterator, Callable

import click
from dotenv import load_dotenv
from rich import box
from rich.panel import Panel
from rich.text import Text

from ensemble.agent.events import AgentEvent
from ensemble.agent.orchestrator import Orchestrator
from ensemble.agent.persistence import EventStore
from ensemble.agent.state import RunProjection
from ensemble.config.loader import get_data_dir, load_configuration
from ensemble.config.schema import Configuration
from ensemble.exceptions import ConfigurationError, EnsembleError
from ensemble.team.editing import update_agent_labels
from ensemble.team.files import load_bucket, load_spec, save_bucket, save_spec
from ensemble.team.models import BucketItem, EnvironmentSpec
from ensemble.tools.catalog import ToolCatalog
from ensemble.ui.console import get_console
from ensemble.ui.tui import TUI
from ensemble.utils.cancel import CancellationToken

logger = logging.getLogger(__name__)

console = get_console()

StreamFactory = Callable[[CancellationToken], AsyncIterator[AgentEvent]]


def _configure_logging(debug: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if debug else logging.WARNING,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )


class CLI:
    """
    Command-line interface for Ensemble.

    Parameters
    ----------
    config : Configuration
        Configuration object.
    bucket_items : list[BucketItem] | None, optional
        Resource bucket applied to every planner call and run.

    Attributes
    ----------
    spec : EnvironmentSpec | None
        Current team, updated by every successful design or edit.

    Examples
    --------
    >>> cli = CLI(load_configuration())
    >>> spec = await cli.design("Write a haiku about the sea")
    """

    def __init__(
        self,
        config: Configuration,
        bucket_items: list[BucketItem] | None = None,
    ) -> None:
        self.config: Configuration = config
        self.bucket_items: list[BucketItem] = bucket_items or []
        self.tui: TUI = TUI(config, console)
        self.store: EventStore | None = (
            EventStore(get_data_dir(config)) if config.persist_events else None
        )
        self.spec: EnvironmentSpec | None = None

    def _orchestrator(self) -> Orchestrator:
        return Orchestrator(self.config, event_store=self.store)

    async def _render(self, make_stream: StreamFactory) -> RunProjection:
        """
        Render a stream until it ends or Ctrl-C fires its token.

        Returns
        -------
        RunProjection
            State of the rendered stream.
        """
        token = CancellationToken()
        self.tui.reset()

        loop = asyncio.get_running_loop()
        try:
            loop.add_signal_handler(signal.SIGINT, token.cancel)
            handler_installed: bool = True
        except (NotImplementedError, RuntimeError):
            handler_installed = False

        try:
            async for event in make_stream(token):
                self.tui.render(event)
        finally:
            self.tui.end_stream()
            if handler_installed:
                loop.remove_signal_handler(signal.SIGINT)

        if token.cancelled:
            console.print("\n[warning]Stopped[/warning]")
        return self.tui.projection

    def _adopt(self, projection: RunProjection) -> EnvironmentSpec | None:
        if projection.spec is not None and not projection.errors:
            self.spec = projection.spec
            return self.spec
        return None

    async def design(self, task: str) -> EnvironmentSpec | None:
        async with self._orchestrator() as orchestrator:
            projection = await self._render(
                lambda token: orchestrator.design(task, self.bucket_items, token),
            )
        return self._adopt(projection)

    async def edit(self, instruction: str) -> EnvironmentSpec | None:
        if self.spec is None:
            console.print("[error]No team to edit; design one first[/error]")
            return None

        spec: EnvironmentSpec = self.spec
        async with self._orchestrator() as orchestrator:
            projection = await self._render(
                lambda token: orchestrator.edit(spec, instruction, self.bucket_items, token),
            )
        return self._adopt(projection)

    async def optimize(self) -> EnvironmentSpec | None:
        if self.spec is None:
            console.print("[error]No team to optimize; design one first[/error]")
            return None

        spec: EnvironmentSpec = self.spec
        async with self._orchestrator() as orchestrator:
            projection = await self._render(
                lambda token: orchestrator.optimize(spec, self.bucket_items, token),
            )
        return self._adopt(projection)

    async def execute(self, user_prompt: str | None = None) -> bool:
        """
        Execute the current team.

        Returns
        -------
        bool
            True if the run reached ``environment_complete``.
        """
        if self.spec is None:
            console.print("[error]No team to run; design one first[/error]")
            return False

        spec: EnvironmentSpec = self.spec
        async with self._orchestrator() as orchestrator:
            projection = await self._render(
                lambda token: orchestrator.execute(spec, self.bucket_items, user_prompt, token),
            )
            run_id: str | None = orchestrator.last_run_id

        if run_id:
            console.print(f"[muted]run: {run_id}[/muted]")
        return projection.complete

    async def replay(self, run_id: str) -> bool:
        if self.store is None or self.store.get_run(run_id) is None:
            console.print(f"[error]Unknown run: {run_id}[/error]")
            return False

        orchestrator = Orchestrator(self.config, event_store=self.store)
        projection = await self._render(
            lambda token: orchestrator.replay_run(run_id, token),
        )
        self.tui.print_status()
        return not projection.errors

    def show_runs(self) -> None:
        self.tui.print_runs(self.store.list_runs() if self.store else [])

    async def run_interactive(self) -> None:
        """Run the interactive command loop."""
        self.tui.print_welcome(
            "Ensemble",
            lines=[
                f"model: {self.config.model_name}",
                f"bucket: {len(self.bucket_items)} item(s)",
                "type a task to design a team, /help for commands",
            ],
        )

        while True:
            try:
                user_input: str = console.input("\n[bold bright_blue]→[/bold bright_blue] ").strip()
            except (KeyboardInterrupt, EOFError):
                break

            if not user_input:
                continue

            if user_input.startswith("/"):
                if not await self._handle_command(user_input):
                    break
                continue

            await self.design(user_input)

        console.print()
        console.print(
            Panel(
                Text("Thanks for using Ensemble!", style="bold bright_cyan"),
                border_style="cyan",
                box=box.ROUNDED,
                padding=(0, 2),
            ),
        )

    async def _handle_command(self, command: str) -> bool:
        """
        Handle slash commands in interactive mode.

        Returns
        -------
        bool
            True to continue, False to exit.
        """
        parts: list[str] = command.strip().split(maxsplit=1)
        cmd_name: str = parts[0].lower()
        cmd_args: str = parts[1] if len(parts) > 1 else ""

        if cmd_name in ("/exit", "/quit"):
            return False
        elif cmd_name == "/help":
            self.tui.show_help()
        elif cmd_name == "/spec":
            if self.spec:
                self.tui.print_spec(self.spec)
            else:
                console.print("[muted]No team yet[/muted]")
        elif cmd_name == "/edit":
            if not cmd_args:
                console.print("[error]Usage: /edit <instruction>[/error]")
            else:
                await self.edit(cmd_args)
        elif cmd_name == "/optimize":
            await self.optimize()
        elif cmd_name in ("/add", "/remove"):
            self._edit_labels(cmd_name[1:], cmd_args)
        elif cmd_name == "/run":
            await self.execute(cmd_args or None)
        elif cmd_name == "/save":
            if not cmd_args or self.spec is None:
                console.print("[error]Usage: /save <path> (requires a team)[/error]")
            else:
                save_spec(cmd_args, self.spec)
                console.print(f"[success]Saved team to {cmd_args}[/success]")
        elif cmd_name == "/runs":
            self.show_runs()
        elif cmd_name == "/replay":
            if not cmd_args:
                console.print("[error]Usage: /replay <run_id>[/error]")
            else:
                await self.replay(cmd_args)
        else:
            console.print(f"[error]Unknown command: {cmd_name}[/error]")

        return True

    def _edit_labels(self, action: str, args: str) -> None:
        fields: list[str] = args.split(maxsplit=2)
        if len(fields) != 3 or self.spec is None:
            console.print(f"[error]Usage: /{action} <agent> <field> <label> (requires a team)[/error]")
            return

        agent_id, field, label = fields
        try:
            self.spec = update_agent_labels(
                self.spec,
                agent_id,
                action,  # type: ignore[arg-type]
                field,  # type: ignore[arg-type]
                label,
                self.bucket_items,
            )
        except EnsembleError as e:
            console.print(f"[error]{e.message}[/error]")
            return
        self.tui.print_spec(self.spec)


def _load_config(cwd: Path | None, debug: bool, require_api: bool = True) -> Configuration:
    try:
        config: Configuration = load_configuration(cwd=cwd)
    except ConfigurationError as e:
        console.print(f"[error]Configuration Error: {e}[/error]")
        sys.exit(1)

    config.debug = config.debug or debug
    if require_api:
        errors: list[str] = config.validate()
        if errors:
            for error in errors:
                console.print(f"[error]{error}[/error]")
            sys.exit(1)
    return config


def _load_bucket_option(bucket: Path | None) -> list[BucketItem]:
    if bucket is None:
        return []
    try:
        return load_bucket(bucket)
    except EnsembleError as e:
        console.print(f"[error]{e.message}[/error]")
        sys.exit(1)


def _load_spec_argument(path: Path) -> EnvironmentSpec:
    try:
        return load_spec(path)
    except EnsembleError as e:
        console.print(f"[error]{e.message}[/error]")
        sys.exit(1)


def _finish_spec(spec: EnvironmentSpec | None, out: Path | None) -> None:
    if spec is None:
        sys.exit(1)
    if out is not None:
        save_spec(out, spec)
        console.print(f"[success]Saved team to {out}[/success]")


bucket_option = click.option(
    "--bucket",
    "-b",
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
    help="JSON file with the resource bucket",
)
out_option = click.option(
    "--out",
    "-o",
    type=click.Path(dir_okay=False, path_type=Path),
    help="Write the resulting team spec to this file",
)


@click.group()
@click.option(
    "--cwd",
    "-c",
    type=click.Path(exists=True, file_okay=False, path_type=Path),
    help="Current working directory",
)
@click.option("--debug", is_flag=True, help="Enable debug logging")
@click.pass_context
def main(ctx: click.Context, cwd: Path | None, debug: bool) -> None:
    """
    Ensemble - design and run teams of AI agents.
    """
    load_dotenv()
    _configure_logging(debug)
    ctx.ensure_object(dict)
    ctx.obj["cwd"] = cwd
    ctx.obj["debug"] = debug


@main.command()
@click.argument("task")
@bucket_option
@out_option
@click.pass_context
def design(ctx: click.Context, task: str, bucket: Path | None, out: Path | None) -> None:
    """Design a team for TASK."""
    config = _load_config(ctx.obj["cwd"], ctx.obj["debug"])
    cli = CLI(config, _load_bucket_option(bucket))
    _finish_spec(asyncio.run(cli.design(task)), out)


@main.command()
@click.argument("spec_file", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.argument("instruction")
@bucket_option
@out_option
@click.pass_context
def edit(
    ctx: click.Context,
    spec_file: Path,
    instruction: str,
    bucket: Path | None,
    out: Path | None,
) -> None:
    """Revise the team in SPEC_FILE following INSTRUCTION."""
    config = _load_config(ctx.obj["cwd"], ctx.obj["debug"])
    cli = CLI(config, _load_bucket_option(bucket))
    cli.spec = _load_spec_argument(spec_file)
    _finish_spec(asyncio.run(cli.edit(instruction)), out)


@main.command()
@click.argument("spec_file", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@bucket_option
@out_option
@click.pass_context
def optimize(ctx: click.Context, spec_file: Path, bucket: Path | None, out: Path | None) -> None:
    """Redistribute resources across the agents in SPEC_FILE."""
    config = _load_config(ctx.obj["cwd"], ctx.obj["debug"])
    cli = CLI(config, _load_bucket_option(bucket))
    cli.spec = _load_spec_argument(spec_file)
    _finish_spec(asyncio.run(cli.optimize()), out)


@main.command()
@click.argument("spec_file", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.option("--prompt", "-p", help="Task text overriding the team objective")
@bucket_option
@click.pass_context
def execute(
    ctx: click.Context,
    spec_file: Path,
    prompt: str | None,
    bucket: Path | None,
) -> None:
    """Run the team in SPEC_FILE."""
    config = _load_config(ctx.obj["cwd"], ctx.obj["debug"])
    cli = CLI(config, _load_bucket_option(bucket))
    cli.spec = _load_spec_argument(spec_file)
    if not asyncio.run(cli.execute(prompt)):
        sys.exit(1)


@main.command()
@click.argument("run_id")
@click.pass_context
def replay(ctx: click.Context, run_id: str) -> None:
    """Replay the recorded run RUN_ID."""
    config = _load_config(ctx.obj["cwd"], ctx.obj["debug"], require_api=False)
    if not asyncio.run(CLI(config).replay(run_id)):
        sys.exit(1)


@main.command()
@click.pass_context
def runs(ctx: click.Context) -> None:
    """List recorded runs."""
    config = _load_config(ctx.obj["cwd"], ctx.obj["debug"], require_api=False)
    CLI(config).show_runs()


@main.command(name="seed-tools")
@click.argument("bucket_file", type=click.Path(dir_okay=False, path_type=Path))
def seed_tools(bucket_file: Path) -> None:
    """Add the built-in external tools to BUCKET_FILE."""
    existing: list[BucketItem] = _load_bucket_option(bucket_file) if bucket_file.exists() else []
    added: list[BucketItem] = ToolCatalog().seed_bucket_items(existing)
    save_bucket(bucket_file, existing + added)
    console.print(f"[success]Added {len(added)} tool(s) to {bucket_file}[/success]")


@main.command()
@bucket_option
@click.option(
    "--spec",
    "spec_file",
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
    help="Start from the team in this file",
)
@click.pass_context
def interactive(ctx: click.Context, bucket: Path | None, spec_file: Path | None) -> None:
    """Design, edit and run teams interactively."""
    config = _load_config(ctx.obj["cwd"], ctx.obj["debug"])
    cli = CLI(config, _load_bucket_option(bucket))
    if spec_file is not None:
        cli.spec = _load_spec_argument(spec_file)
    asyncio.run(cli.run_interactive())


if __name__ == "__main__":
    main()
