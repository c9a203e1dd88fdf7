from __future__ import annotations

from functools import partial
from pathlib import Path

import anyio
import typer

from .. import __version__
from ..config import ConfigError, FerrySettings, build_tools_list, load_settings
from ..conversation import Conversation, run_once
from ..errors import FerryError
from ..logging import get_logger, setup_logging
from ..model import AssistantText, Event, SystemInit, ToolUse, TurnResult
from ..runners.claude import ClaudeCommand
from ..turns import JsonSessionStore, SessionStoreError

logger = get_logger(__name__)

_SUMMARY_KEYS = ("file_path", "path", "pattern", "command", "url", "query")


def _tool_summary(event: ToolUse) -> str:
    for key in _SUMMARY_KEYS:
        value = event.input.get(key)
        if isinstance(value, str) and value:
            return f"{event.name}: {value}"
    return event.name


class _Printer:
    def __init__(self) -> None:
        self.errors: list[FerryError] = []

    def on_event(self, event: Event) -> None:
        match event:
            case AssistantText(text=text):
                typer.echo(text)
            case ToolUse():
                typer.echo(f"> {_tool_summary(event)}", err=True)
            case SystemInit(session_id=session_id):
                logger.debug("cli.session", session_id=session_id)
            case TurnResult(kind="success", turns=turns, cost_usd=cost):
                typer.echo(f"done: {turns} turns, ${cost or 0:.4f}", err=True)

    def on_error(self, error: FerryError) -> None:
        self.errors.append(error)
        typer.echo(f"error: {error.message}", err=True)


class _State:
    settings: FerrySettings
    cwd: Path | None = None


_state = _State()


def _command(settings: FerrySettings, cwd: Path | None) -> ClaudeCommand:
    return ClaudeCommand(
        claude_cmd=settings.claude_cmd,
        model=settings.model,
        system_prompt=settings.system_prompt,
        allowed_tools=build_tools_list(settings.permissions),
        cwd=cwd,
    )


def _version_callback(value: bool) -> None:
    if value:
        typer.echo(__version__)
        raise typer.Exit()


def app_main(
    config: Path | None = typer.Option(
        None, "--config", help="Path to ferry.toml (default: .ferry/ or ~/.ferry/)."
    ),
    cwd: Path | None = typer.Option(
        None, "--cwd", help="Working directory for the claude process."
    ),
    debug: bool = typer.Option(False, "--debug", help="Log debug output to stderr."),
    version: bool = typer.Option(
        False,
        "--version",
        help="Show the version and exit.",
        callback=_version_callback,
        is_eager=True,
    ),
) -> None:
    """Run claude stream-json sessions from the terminal."""
    setup_logging(debug=debug)
    try:
        settings, cfg_path = load_settings(config)
    except ConfigError as e:
        typer.echo(f"error: {e}", err=True)
        raise typer.Exit(code=1) from None
    logger.debug("cli.settings", path=str(cfg_path) if cfg_path else None)
    _state.settings = settings
    _state.cwd = cwd


def run(prompt: str = typer.Argument(..., help="Prompt to send.")) -> None:
    """One-shot run: no session is resumed or saved."""
    printer = _Printer()
    command = _command(_state.settings, _state.cwd)
    outcome, _turn = anyio.run(
        partial(run_once, command, prompt, printer.on_event, printer.on_error)
    )
    if printer.errors or not outcome.ok:
        raise typer.Exit(code=1)


def chat(prompt: str = typer.Argument(..., help="Message to send.")) -> None:
    """Send one message in the stored conversation."""
    printer = _Printer()
    store = JsonSessionStore(_state.settings.session_path)
    conversation = Conversation(_command(_state.settings, _state.cwd), store)
    try:
        if _state.settings.clear_chat_on_start:
            store.clear()
        conversation.load()
        outcome = anyio.run(
            partial(conversation.send, prompt, printer.on_event, printer.on_error)
        )
    except SessionStoreError as e:
        typer.echo(f"error: {e}", err=True)
        raise typer.Exit(code=1) from None
    except ExceptionGroup as eg:
        # A failed save inside the stream task group arrives wrapped.
        matched, rest = eg.split(SessionStoreError)
        if matched is None or rest is not None:
            raise
        for exc in matched.exceptions:
            typer.echo(f"error: {exc}", err=True)
        raise typer.Exit(code=1) from None
    if printer.errors or not outcome.ok:
        raise typer.Exit(code=1)


def history() -> None:
    """Print the stored conversation."""
    store = JsonSessionStore(_state.settings.session_path)
    try:
        session = store.load()
    except SessionStoreError as e:
        typer.echo(f"error: {e}", err=True)
        raise typer.Exit(code=1) from None
    if not session.turns:
        typer.echo("no conversation stored", err=True)
        return
    typer.echo(f"session: {session.session_id or '-'}")
    for turn in session.turns:
        typer.echo(f"\n>>> {turn.user_text}\n")
        typer.echo(turn.assistant_transcript)


def clear() -> None:
    """Forget the stored conversation and its resume token."""
    store = JsonSessionStore(_state.settings.session_path)
    try:
        store.clear()
    except SessionStoreError as e:
        typer.echo(f"error: {e}", err=True)
        raise typer.Exit(code=1) from None
    typer.echo("conversation cleared", err=True)


def create_app() -> typer.Typer:
    app = typer.Typer(
        add_completion=False,
        no_args_is_help=True,
        help="Drive the claude CLI's stream-json output.",
    )
    app.callback()(app_main)
    app.command(name="run")(run)
    app.command(name="chat")(chat)
    app.command(name="history")(history)
    app.command(name="clear")(clear)
    return app


def main() -> None:
    app = create_app()
    app()


if __name__ == "__main__":
    main()
