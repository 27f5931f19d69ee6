"""Click CLI: config loading, backend selection, mirror runs and output."""

import asyncio
import logging
import os
import signal
import sys
from collections.abc import Callable
from contextlib import aclosing
from dataclasses import dataclass
from pathlib import Path

import click
import yaml
from dotenv import load_dotenv
from rich.live import Live
from rich.logging import RichHandler
from rich.markup import escape
from rich.progress import Progress, SpinnerColumn, TextColumn, TimeElapsedColumn
from rich.syntax import Syntax
from rich.table import Table

from config.config_loader import (
    INTENSITIES,
    SETTINGS_ENV,
    USER_SETTINGS_PATH,
    AppConfig,
    ConfigError,
    init_user_settings,
    load_config,
    load_raw,
    resolve_settings_path,
    set_config_value,
)
from mirror.classifier import build_intent_classifier
from mirror.engine import MirrorEngine
from mirror.healthcheck import run_health_checks
from mirror.history import HistoryError, add_entry, get_entry, list_entries
from mirror.models import ChatOptions, ConversationMessage, MirrorEvent
from mirror.output import (
    console,
    live_view,
    print_history_entry,
    print_history_table,
    print_transcript,
    save_to_file,
)
from mirror.prompts import PERSONAS
from mirror.providers.base import AIProvider
from mirror.providers.factory import build_all_providers, create_provider
from mirror.question_file import parse_file
from mirror.session import Session
from mirror.transcript import Transcript

logger = logging.getLogger(__name__)

MOCK_ENV = "MOCK_BRAINS"
EXIT_ABORTED = 130


@dataclass
class CliOptions:
    """Global flags, shared by every subcommand."""

    intensity: str | None = None
    original: str | None = None
    challenger: str | None = None
    judge: bool | None = None
    persona: str | None = None
    mirror: bool = True
    classify: bool = True


@dataclass
class RunSettings:
    original: str
    challenger: str | None
    judge: str | None
    intensity: str
    persona: str | None
    auto_classify: bool


def _setup_logging(debug: bool) -> None:
    level = logging.DEBUG if debug else logging.WARNING
    logging.basicConfig(
        level=level,
        format="%(message)s",
        handlers=[RichHandler(rich_tracebacks=True, show_path=False)],
    )


def _mock_enabled() -> bool:
    return os.environ.get(MOCK_ENV, "").strip().lower() not in ("", "0", "false", "no")


def _load_config_or_exit() -> AppConfig:
    try:
        return load_config()
    except (FileNotFoundError, ConfigError, KeyError) as exc:
        console.print(f"[bold red]Config error:[/bold red] {escape(str(exc))}")
        sys.exit(1)


def _resolve_settings(config: AppConfig, opts: CliOptions, overrides: dict | None = None) -> RunSettings:
    """Merge settings. Precedence: CLI flag > question-file frontmatter > config."""
    overrides = overrides or {}
    session = config.session

    intensity = opts.intensity or overrides.get("intensity") or session.intensity
    if intensity not in INTENSITIES:
        raise click.BadParameter(f"intensity must be one of {', '.join(INTENSITIES)}, got {intensity!r}")

    persona = opts.persona or overrides.get("persona") or session.persona
    if persona is not None and persona not in PERSONAS:
        raise click.BadParameter(f"unknown persona {persona!r}; choose from {', '.join(PERSONAS)}")

    mirror = opts.mirror and bool(overrides.get("mirror", True))
    judge_enabled = opts.judge if opts.judge is not None else bool(overrides.get("judge", session.judge_enabled))
    classify = opts.classify and bool(overrides.get("classify", session.auto_classify))

    challenger = (opts.challenger or session.challenger) if mirror else None
    return RunSettings(
        original=opts.original or session.original,
        challenger=challenger,
        judge=session.judge if (mirror and judge_enabled) else None,
        intensity=intensity,
        persona=persona,
        auto_classify=classify,
    )


def _optional_provider(config: AppConfig, name: str | None, role: str, mock: bool) -> AIProvider | None:
    """Build a secondary backend; a failure only drops that role."""
    if name is None:
        return None
    model_cfg = config.models.get(name)
    if model_cfg is None:
        console.print(f"[yellow]Warning:[/yellow] {role} backend '{name}' is not configured; skipping.")
        return None
    try:
        return create_provider(model_cfg, mock=mock)
    except Exception as exc:
        console.print(f"[yellow]Warning:[/yellow] {role} backend unavailable: {escape(str(exc))}")
        return None


def _build_engine(config: AppConfig, settings: RunSettings, mock: bool) -> tuple[MirrorEngine, str, str | None]:
    """Returns (engine, original_id, challenger_id). Exits if the original can't be built."""
    model_cfg = config.models.get(settings.original)
    if model_cfg is None:
        console.print(f"[bold red]Error:[/bold red] Original backend not found: {settings.original}")
        sys.exit(1)
    try:
        original = create_provider(model_cfg, mock=mock)
    except Exception as exc:
        console.print(f"[bold red]Error:[/bold red] {escape(str(exc))}. Set the API key in .env or run with {MOCK_ENV}=1.")
        sys.exit(1)

    challenger = _optional_provider(config, settings.challenger, "Challenger", mock)
    if challenger is not None and challenger.name() == original.name():
        console.print(f"[bold red]Error:[/bold red] Challenger must differ from the original backend ({escape(original.name())}).")
        sys.exit(1)
    judge = _optional_provider(config, settings.judge, "Judge", mock) if challenger is not None else None

    engine = MirrorEngine(
        original=original,
        classifier=build_intent_classifier(config, mock=mock),
        challenger=challenger,
        intensity=settings.intensity,
        auto_classify=settings.auto_classify,
        judge=judge,
        persona=settings.persona,
    )
    return engine, original.name(), challenger.name() if challenger is not None else None


def _install_sigint(loop: asyncio.AbstractEventLoop, cancel_event: asyncio.Event) -> bool:
    """Route Ctrl-C to the run's cancel token. False where unsupported."""
    try:
        loop.add_signal_handler(signal.SIGINT, cancel_event.set)
    except (NotImplementedError, RuntimeError, ValueError):
        return False
    return True


async def _stream_run(
    engine: MirrorEngine,
    question: str,
    history: list[ConversationMessage],
    on_event: Callable[[MirrorEvent, Transcript], None],
) -> Transcript:
    cancel_event = asyncio.Event()
    loop = asyncio.get_running_loop()
    installed = _install_sigint(loop, cancel_event)
    transcript = Transcript(question=question)
    try:
        async with aclosing(engine.run(question, history, ChatOptions(cancel_event=cancel_event))) as events:
            async for event in events:
                transcript.apply(event)
                on_event(event, transcript)
    finally:
        if installed:
            loop.remove_signal_handler(signal.SIGINT)
    return transcript


def _save_history(config: AppConfig, transcript: Transcript, original_id: str, challenger_id: str | None):
    entry = transcript.to_history_entry(original_id, challenger_id)
    if entry is None:
        return None
    try:
        add_entry(config.history.path, entry, config.history.max_entries)
    except (OSError, HistoryError) as exc:
        logger.debug("Could not save history to %s: %s", config.history.path, exc)
        console.print(f"[yellow]Warning:[/yellow] History not saved: {escape(str(exc))}")
        return None
    return entry


def _report_failure(transcript: Transcript) -> None:
    if transcript.aborted:
        console.print("[yellow]Aborted.[/yellow]")
    else:
        console.print(f"[bold red]Error:[/bold red] {escape(str(transcript.error))}")


_STATUS = {
    "classifying": "Classifying intent...",
    "stream_chunk": "Streaming responses...",
    "synthesizing": "Synthesizing...",
}


@click.group(invoke_without_command=True)
@click.option("--intensity", type=click.Choice(INTENSITIES), default=None, help="Challenger intensity")
@click.option("--original", default=None, help="Override the original backend id")
@click.option("--challenger", default=None, help="Override the challenger backend id")
@click.option("--judge/--no-judge", "judge", default=None, help="Enable or disable the synthesis judge")
@click.option("--persona", type=click.Choice(sorted(PERSONAS)), default=None, help="Challenger persona lens")
@click.option("--no-mirror", is_flag=True, help="Disable the challenger entirely")
@click.option("--no-classify", is_flag=True, help="Disable intent classification")
@click.option("--debug", is_flag=True, help="Enable DEBUG-level logging")
@click.pass_context
def main(
    ctx: click.Context,
    intensity: str | None,
    original: str | None,
    challenger: str | None,
    judge: bool | None,
    persona: str | None,
    no_mirror: bool,
    no_classify: bool,
    debug: bool,
) -> None:
    """Adversarial Mirror -- every answer comes with its strongest critique.

    \b
    Examples:
      mirror                                   # interactive chat
      mirror ask "Should I use microservices?"
      mirror --intensity aggressive ask "Is a PhD worth it?"
      mirror --persona vc-skeptic ask --file pitch.md
      MOCK_BRAINS=1 mirror ask "offline smoke test"
    """
    if sys.platform == "win32":
        if hasattr(sys.stdout, "reconfigure"):
            sys.stdout.reconfigure(encoding="utf-8", errors="replace")
        if hasattr(sys.stderr, "reconfigure"):
            sys.stderr.reconfigure(encoding="utf-8", errors="replace")

    load_dotenv()
    _setup_logging(debug)

    ctx.obj = CliOptions(
        intensity=intensity,
        original=original,
        challenger=challenger,
        judge=judge,
        persona=persona,
        mirror=not no_mirror,
        classify=not no_classify,
    )
    if ctx.invoked_subcommand is None:
        ctx.invoke(chat)


@main.command()
@click.argument("question", required=False)
@click.option("--file", "question_file", type=click.Path(exists=True, dir_okay=False, path_type=Path),
              help="Read the question from a .md file (frontmatter may set intensity, persona, judge, classify)")
@click.option("--save", "save_path", type=click.Path(path_type=Path), default=None,
              help="Also export the run as markdown to this file or directory")
@click.pass_obj
def ask(opts: CliOptions, question: str | None, question_file: Path | None, save_path: Path | None) -> None:
    """One-shot query: print both answers and the synthesis."""
    overrides: dict = {}
    if question_file is not None:
        try:
            question, overrides = parse_file(question_file)
        except ValueError as exc:
            console.print(f"[bold red]Error:[/bold red] {escape(str(exc))}")
            sys.exit(1)
    if not question:
        console.print("[bold red]Error:[/bold red] Provide a QUESTION argument or --file.")
        sys.exit(1)

    config = _load_config_or_exit()
    settings = _resolve_settings(config, opts, overrides)
    engine, original_id, challenger_id = _build_engine(config, settings, _mock_enabled())

    with Progress(
        SpinnerColumn(),
        TextColumn("[progress.description]{task.description}"),
        TimeElapsedColumn(),
        console=console,
        transient=True,
    ) as progress:
        task = progress.add_task("Starting...", total=None)

        def on_event(event: MirrorEvent, transcript: Transcript) -> None:
            if event.type in _STATUS:
                progress.update(task, description=_STATUS[event.type])
            elif event.type == "backend_complete":
                progress.print(f"[green]OK[/green] {event.backend_id} complete")

        transcript = asyncio.run(_stream_run(engine, question, [], on_event))

    print_transcript(transcript, original_id, challenger_id)
    if not transcript.completed:
        _report_failure(transcript)
        sys.exit(EXIT_ABORTED if transcript.aborted else 1)

    entry = _save_history(config, transcript, original_id, challenger_id)
    if entry is not None:
        console.print(f"\n[dim]Saved as {entry.id}[/dim]")
        if save_path is not None:
            console.print(f"[dim]Exported to: {save_to_file(entry, save_path)}[/dim]")


async def _chat_loop(config: AppConfig, engine: MirrorEngine, original_id: str, challenger_id: str | None) -> None:
    session = Session(config.session.history_window)
    while True:
        try:
            question = (await asyncio.to_thread(console.input, "[bold cyan]> [/bold cyan]")).strip()
        except EOFError:
            return
        if not question:
            continue
        if question in ("/exit", "/quit"):
            return
        if question == "/clear":
            session.clear()
            console.print("[dim]History cleared.[/dim]")
            continue

        with Live(console=console, refresh_per_second=12) as live:
            def on_event(event: MirrorEvent, transcript: Transcript) -> None:
                live.update(live_view(transcript, original_id, challenger_id))

            transcript = await _stream_run(engine, question, session.history(), on_event)

        if not transcript.completed:
            _report_failure(transcript)
            continue
        session.add_user(question)
        session.add_assistant(transcript.text_for(original_id))
        _save_history(config, transcript, original_id, challenger_id)


@main.command()
@click.pass_obj
def chat(opts: CliOptions) -> None:
    """Interactive session. /clear resets history, /exit quits, Ctrl-C aborts a run."""
    config = _load_config_or_exit()
    settings = _resolve_settings(config, opts)
    engine, original_id, challenger_id = _build_engine(config, settings, _mock_enabled())

    mode = f"{original_id} vs {challenger_id}" if challenger_id else f"{original_id} only"
    console.print(f"\n[bold cyan]Adversarial Mirror[/bold cyan] -- {mode} [{settings.intensity}]")
    if settings.persona:
        console.print(f"Persona: {settings.persona}")
    console.print("[dim]/clear resets history, /exit quits[/dim]\n")
    try:
        asyncio.run(_chat_loop(config, engine, original_id, challenger_id))
    except KeyboardInterrupt:
        console.print()


# --- config ---

@main.group(name="config", invoke_without_command=True)
@click.pass_context
def config_group(ctx: click.Context) -> None:
    """Show or edit settings."""
    if ctx.invoked_subcommand is None:
        ctx.invoke(config_show)


@config_group.command(name="show")
def config_show() -> None:
    """Print the active settings file."""
    path = resolve_settings_path()
    try:
        raw = load_raw(path)
    except (FileNotFoundError, ConfigError) as exc:
        console.print(f"[bold red]Config error:[/bold red] {escape(str(exc))}")
        sys.exit(1)
    console.print(f"[dim]{path}[/dim]")
    console.print(Syntax(yaml.safe_dump(raw, sort_keys=False), "yaml"))


@config_group.command(name="init")
@click.option("--force", is_flag=True, help="Overwrite an existing user settings file")
def config_init(force: bool) -> None:
    """Copy the default settings to the user settings file."""
    target = init_user_settings(USER_SETTINGS_PATH, overwrite=force)
    console.print(f"Settings: {target}")


@config_group.command(name="set")
@click.argument("key")
@click.argument("value")
def config_set(key: str, value: str) -> None:
    """Set a dotted KEY (e.g. session.intensity) to VALUE (parsed as YAML)."""
    path = resolve_settings_path()
    if not os.environ.get(SETTINGS_ENV) and path != USER_SETTINGS_PATH:
        # never edit the bundled defaults
        path = init_user_settings(USER_SETTINGS_PATH)
    try:
        set_config_value(path, key, value)
    except (FileNotFoundError, ConfigError) as exc:
        console.print(f"[bold red]Config error:[/bold red] {escape(str(exc))}")
        sys.exit(1)
    console.print(f"[green]Set[/green] {key} = {value} in {path}")


# --- brains ---

@main.group(invoke_without_command=True)
@click.pass_context
def brains(ctx: click.Context) -> None:
    """List and test configured backends."""
    if ctx.invoked_subcommand is None:
        ctx.invoke(brains_list)


@brains.command(name="list")
def brains_list() -> None:
    """List configured backends and whether their API key is set."""
    config = _load_config_or_exit()
    roles = {
        config.session.original: "original",
        config.session.challenger: "challenger",
    }
    table = Table(title="Backends")
    for column in ("ID", "SDK", "Model", "Available", "Role"):
        table.add_column(column)
    for name, model_cfg in config.models.items():
        available = name in config.available_providers or _mock_enabled()
        role = roles.get(name, "")
        if name == config.session.judge:
            role = f"{role}, judge" if role else "judge"
        table.add_row(
            name,
            model_cfg.sdk,
            model_cfg.model,
            "[green]yes[/green]" if available else f"[red]no[/red] ({model_cfg.api_key_env})",
            role,
        )
    console.print(table)


@brains.command(name="test")
@click.argument("backend_id", required=False)
def brains_test(backend_id: str | None) -> None:
    """Ping BACKEND_ID, or every available backend, with a short prompt."""
    config = _load_config_or_exit()
    mock = _mock_enabled()
    if backend_id is None:
        providers = build_all_providers(config, mock=mock)
        if not providers:
            console.print("[bold red]Error:[/bold red] No backends available. Set API keys in .env.")
            sys.exit(1)
    else:
        model_cfg = config.models.get(backend_id)
        if model_cfg is None:
            console.print(f"[bold red]Error:[/bold red] Unknown backend: {backend_id}")
            sys.exit(1)
        try:
            providers = {backend_id: create_provider(model_cfg, mock=mock)}
        except Exception as exc:
            console.print(f"  [red]FAIL[/red] {backend_id}: {escape(str(exc))}")
            sys.exit(1)

    console.print("[dim]Checking backends...[/dim]")
    results = asyncio.run(run_health_checks(providers))
    failed = 0
    for name, (ok, err) in results.items():
        if ok:
            console.print(f"  [green]OK  [/green] {name} ({providers[name].model_string()})")
            continue
        failed += 1
        short_err = err.splitlines()[0][:120] if err else "unknown error"
        console.print(f"  [red]FAIL[/red] {name}: {escape(short_err)}")
    if failed:
        sys.exit(1)


def _read_history_or_exit(read: Callable, *args):
    try:
        return read(*args)
    except HistoryError as exc:
        console.print(f"[bold red]History error:[/bold red] {escape(str(exc))}")
        sys.exit(1)


# --- history ---

@main.group(invoke_without_command=True)
@click.pass_context
def history(ctx: click.Context) -> None:
    """Browse and export past runs."""
    if ctx.invoked_subcommand is None:
        ctx.invoke(history_list)


@history.command(name="list")
def history_list() -> None:
    """List past runs, newest first."""
    config = _load_config_or_exit()
    entries = _read_history_or_exit(list_entries, config.history.path)
    if not entries:
        click.echo("No history yet.")
        return
    print_history_table(entries)


@history.command(name="show")
@click.argument("entry_id")
def history_show(entry_id: str) -> None:
    """Show one past run."""
    config = _load_config_or_exit()
    entry = _read_history_or_exit(get_entry, config.history.path, entry_id)
    if entry is None:
        console.print(f"[bold red]Error:[/bold red] No history entry {entry_id}")
        sys.exit(1)
    print_history_entry(entry)


@history.command(name="export")
@click.argument("entry_id")
@click.argument("file", type=click.Path(path_type=Path))
def history_export(entry_id: str, file: Path) -> None:
    """Export one past run to a markdown FILE."""
    config = _load_config_or_exit()
    entry = _read_history_or_exit(get_entry, config.history.path, entry_id)
    if entry is None:
        console.print(f"[bold red]Error:[/bold red] No history entry {entry_id}")
        sys.exit(1)
    saved = save_to_file(entry, file)
    console.print(f"[dim]Saved to: {saved}[/dim]")


if __name__ == "__main__":
    main()
