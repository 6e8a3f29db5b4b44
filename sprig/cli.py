"""
[FILE SUMMARY]
context:
  INTENT:
    purpose: >
      Command-line entry point for sprig: an interactive chat that proposes and applies
      CURRENT/NEW code edits, one-shot code, documentation and unit-test generation, code
      reviews, AI-written git commits and undo/redo of the last commit.

  STRUCTURAL:
    responsibility: >
      Parses options with typer, configures logging through rich, loads settings, builds the
      adapter/client/renderer/session stack and maps configuration errors to exit codes.
    entrypoints:
      - app
[/FILE SUMMARY]
"""
from __future__ import annotations

import logging
import subprocess
from dataclasses import dataclass, replace
from pathlib import Path

import typer
from rich.logging import RichHandler

from .adapters import ADAPTERS, get_adapter
from .client import GPTClient, describe_http_error
from .config import Settings, load_settings
from .errors import ConfigError, ProviderHTTPError, SprigError
from .gitops import redo_last_commit, undo_last_commit
from .render import Renderer, console
from .session import ChatSession, generate_commit

log = logging.getLogger(__name__)

app = typer.Typer(add_completion=False, help="Stream code edits from an LLM and apply them to your files.")

MULTILINE_FENCE = "```"
PROMPT = "sprig> "


@dataclass
class CliState:
    config: Path | None = None
    model: str | None = None
    silent: bool | None = None


def setup_logging(verbose: bool) -> None:
    handler = RichHandler(console=console, show_time=False, show_path=False, rich_tracebacks=verbose)
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[handler],
        force=True,
    )
    # urllib3 is noisy at debug level
    logging.getLogger("urllib3").setLevel(logging.WARNING)


def build_settings(state: CliState, **overrides) -> Settings:
    try:
        return load_settings(state.config, Path.cwd(), model=state.model, silent=state.silent, **overrides)
    except ConfigError as e:
        console.print(f"[red]{e}[/red]")
        raise typer.Exit(code=2)


def build_session(settings: Settings) -> ChatSession:
    try:
        adapter = get_adapter(settings.model, settings.endpoint)
    except ConfigError as e:
        console.print(f"[red]{e}[/red]")
        raise typer.Exit(code=2)
    renderer = Renderer(console, silent=settings.silent)
    return ChatSession(settings, GPTClient(settings, adapter), renderer, Path.cwd())


def read_multiline() -> str:
    console.print("Entering multiline mode. Type ``` on a new line to end.\n")
    lines: list[str] = []
    while True:
        line = input()
        if line.strip() == MULTILINE_FENCE:
            return "\n".join(lines)
        lines.append(line)


def run_git(line: str) -> None:
    try:
        subprocess.run(line.split(), check=False)
    except OSError as e:
        console.print(f"[red]Error running command: {e}[/red]")


@app.callback()
def main(
    ctx: typer.Context,
    config: Path | None = typer.Option(
        None,
        "-c",
        "--config",
        help="Path to config file (.yaml/.yml or .json/.json5). Defaults to ./sprig.yaml, then ~/.sprig.yaml.",
        show_default=False,
    ),
    model: str | None = typer.Option(
        None,
        "-m",
        "--model",
        help="Model to use, as provider:model (e.g. openai:gpt-4o, claude:claude-3-5-sonnet-20240620).",
        show_default=False,
    ),
    verbose: bool = typer.Option(False, "-v", "--verbose", help="Show debug logging."),
    silent: bool = typer.Option(False, "-s", "--silent", help="Skip spinners and change previews."),
) -> None:
    setup_logging(verbose)
    ctx.obj = CliState(config=config, model=model, silent=silent or None)


@app.command()
def chat(
    ctx: typer.Context,
    files: list[str] = typer.Option(
        [],
        "-f",
        "--files",
        help="Files, directories or globs to add to the chat context.",
        show_default=False,
    ),
) -> None:
    """Start an interactive coding session."""
    state: CliState = ctx.obj
    settings = build_settings(state)
    if files:
        settings = replace(settings, files=settings.files + tuple(files))
    session = build_session(settings)

    console.print(f"[green]sprig[/green] using [bold]{settings.model}[/bold]. Type [yellow]help[/yellow] for commands.\n")
    while True:
        try:
            line = input(PROMPT).strip()
            if line == MULTILINE_FENCE:
                line = read_multiline().strip()
        except (EOFError, KeyboardInterrupt):
            console.print()
            break

        if not line:
            continue
        if line.startswith("git ") and len(line.split()) <= 3:
            run_git(line)
            continue
        if not session.handle_command(line):
            break


def one_shot_session(ctx: typer.Context, files: list[str], save: bool) -> ChatSession:
    settings = build_settings(ctx.obj)
    settings = replace(settings, files=settings.files + tuple(files), auto_accept=settings.auto_accept or save)
    return build_session(settings)


def finish_one_shot(session: ChatSession, ok: bool) -> None:
    if not ok:
        raise typer.Exit(code=1)
    if session.pending_blocks and not session.settings.auto_accept:
        console.print("[yellow]Run again with --save to apply these changes.[/yellow]")


@app.command()
def code(
    ctx: typer.Context,
    prompt: str = typer.Argument(..., help="What to change."),
    files: list[str] = typer.Option([], "-f", "--files", help="Files, directories or globs to include."),
    save: bool = typer.Option(False, "--save", help="Apply the generated changes without asking."),
) -> None:
    """Generate code changes for a single request."""
    session = one_shot_session(ctx, files, save)
    finish_one_shot(session, session.submit(prompt))


@app.command()
def docs(
    ctx: typer.Context,
    prompt: str = typer.Argument("", help="Extra instructions for the documentation.", show_default=False),
    files: list[str] = typer.Option([], "-f", "--files", help="Files, directories or globs to document."),
    save: bool = typer.Option(False, "--save", help="Apply the generated changes without asking."),
) -> None:
    """Generate documentation for the given files."""
    session = one_shot_session(ctx, files, save)
    finish_one_shot(session, session.generate_docs(prompt))


@app.command("unit-tests")
def unit_tests(
    ctx: typer.Context,
    files: list[str] = typer.Option(
        [], "-f", "--files", help="Files to test. Defaults to the files changed since --base."
    ),
    base: str = typer.Option("HEAD", "--base", help="Git ref to diff against when no files are given."),
    save: bool = typer.Option(False, "--save", help="Apply the generated changes without asking."),
) -> None:
    """Generate unit tests for the given files or for the current changes."""
    session = one_shot_session(ctx, files, save)
    finish_one_shot(session, session.generate_unit_tests(base))


@app.command()
def review(
    ctx: typer.Context,
    files: list[str] = typer.Option([], "-f", "--files", help="Extra files to include as context for the review."),
    base: str = typer.Option("HEAD", "--base", help="Git ref to diff against."),
) -> None:
    """Review the changes in the working tree."""
    session = one_shot_session(ctx, files, False)
    if not session.review(base):
        raise typer.Exit(code=1)


@app.command()
def commit(ctx: typer.Context) -> None:
    """Commit tracked changes with an AI-generated message."""
    state: CliState = ctx.obj
    session = build_session(build_settings(state))
    try:
        with console.status("Generating commit message...", spinner="dots"):
            result = generate_commit(session.client, Path.cwd())
    except ProviderHTTPError as e:
        console.print(f"[red]Error ({e.status}): {describe_http_error(e.status)}[/red]\n{e.message}")
        raise typer.Exit(code=1)
    except SprigError as e:
        console.print(f"[red]{e}[/red]")
        raise typer.Exit(code=1)

    if result is None:
        console.print("[yellow]No changes to commit[/yellow]")
        return
    sha, message = result
    console.print(f"[green]Committed {sha[:8]}:[/green] {message}")


@app.command()
def models() -> None:
    """List known models for each provider."""
    for provider, cls in ADAPTERS.items():
        console.print(f"[bold]{provider}[/bold]")
        listed = cls.supported_models or [f"{provider}:<any local model>"]
        for name in listed:
            console.print(f"  {name}")


@app.command()
def undo() -> None:
    """Undo the last git commit (hard reset to HEAD~1)."""
    try:
        sha = undo_last_commit(Path.cwd())
    except SprigError as e:
        console.print(f"[red]{e}[/red]")
        raise typer.Exit(code=1)
    console.print(f"[green]HEAD is now at {sha[:8]}[/green]")


@app.command()
def redo() -> None:
    """Redo the last undo by resetting to ORIG_HEAD."""
    try:
        sha = redo_last_commit(Path.cwd())
    except SprigError as e:
        console.print(f"[red]{e}[/red]")
        raise typer.Exit(code=1)
    if sha is None:
        console.print("Already at the most recent commit")
        return
    console.print(f"[green]HEAD is now at {sha[:8]}[/green]")


if __name__ == "__main__":
    app()
