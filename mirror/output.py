"""Rich console output and markdown export for mirror runs."""

import logging
import re
from datetime import datetime
from pathlib import Path

from rich.columns import Columns
from rich.console import Console, Group, RenderableType
from rich.markdown import Markdown
from rich.panel import Panel
from rich.rule import Rule
from rich.table import Table
from rich.text import Text

from mirror.models import BackendResult, HistoryEntry, IntentResult
from mirror.transcript import Transcript

logger = logging.getLogger(__name__)

console = Console(legacy_windows=False)


def _slug(text: str, max_len: int = 40) -> str:
    """Convert text to a filename-safe slug."""
    slug = re.sub(r"[^\w\s-]", "", text.lower())
    slug = re.sub(r"[\s_-]+", "-", slug).strip("-")
    return slug[:max_len]


def _preview(text: str, words: int = 12) -> str:
    """Return first N words of a text."""
    all_words = text.split()
    preview = " ".join(all_words[:words])
    if len(all_words) > words:
        preview += "..."
    return preview


def intent_line(intent: IntentResult) -> str:
    label = "MIRRORING" if intent.should_mirror else "DIRECT"
    return f"[{label}] {intent.category} ({round(intent.confidence * 100)}%)"


def _usage(result: BackendResult) -> str:
    parts: list[str] = []
    if result.latency_sec is not None:
        parts.append(f"{result.latency_sec:.1f}s")
    if result.input_tokens is not None or result.output_tokens is not None:
        parts.append(f"{result.input_tokens or 0} in / {result.output_tokens or 0} out")
    return " | ".join(parts)


def backend_panel(title: str, backend_id: str, text: str, style: str, subtitle: str = "") -> Panel:
    return Panel(
        Markdown(text) if text.strip() else Text("...", style="dim"),
        title=f"[bold]{title}[/bold] ({backend_id})",
        subtitle=subtitle or None,
        border_style=style,
    )


def live_view(transcript: Transcript, original_id: str, challenger_id: str | None) -> RenderableType:
    """Side-by-side panels for the chat loop, redrawn on every event."""
    panels = [backend_panel("ORIGINAL", original_id, transcript.text_for(original_id), "cyan")]
    if challenger_id is not None and (challenger_id in transcript.streamed or challenger_id in transcript.results):
        panels.append(backend_panel("CHALLENGER", challenger_id, transcript.text_for(challenger_id), "magenta"))
    parts: list[RenderableType] = []
    if transcript.intent is not None:
        parts.append(Text(intent_line(transcript.intent), style="bold yellow"))
    parts.append(Columns(panels, equal=True, expand=True))
    if transcript.synthesis_text:
        parts.append(Panel(Markdown(transcript.synthesis_text), title="[bold]SYNTHESIS[/bold]", border_style="green"))
    return Group(*parts)


def print_transcript(transcript: Transcript, original_id: str, challenger_id: str | None) -> None:
    """Print a finished run: intent, both answers, then the synthesis."""
    if transcript.intent is not None:
        console.print(Text(intent_line(transcript.intent), style="bold yellow"))

    for title, backend_id, style in (("ORIGINAL", original_id, "cyan"), ("CHALLENGER", challenger_id, "magenta")):
        if backend_id is None:
            continue
        result = transcript.results.get(backend_id)
        if result is None and backend_id not in transcript.streamed:
            continue
        subtitle = _usage(result) if result is not None else "incomplete"
        console.print(backend_panel(title, backend_id, transcript.text_for(backend_id), style, subtitle))

    if transcript.synthesis is not None:
        print_synthesis(transcript.synthesis.text, transcript.synthesis.agreement_score)


def print_synthesis(text: str, agreement_score: int | None) -> None:
    console.print(Rule("[bold green]Synthesis[/bold green]"))
    if agreement_score is not None:
        console.print(Text(f"Agreement: {agreement_score}%", style="bold green"))
    console.print(Markdown(text))


def print_history_table(entries: list[HistoryEntry]) -> None:
    table = Table(title="Mirror history", show_lines=False)
    table.add_column("ID", style="bold")
    table.add_column("Date", style="dim")
    table.add_column("Mode")
    table.add_column("Question")
    for entry in entries:
        mode = "mirror" if entry.challenger is not None else "direct"
        table.add_row(entry.id, entry.created_at, mode, _preview(entry.question))
    console.print(table)


def print_history_entry(entry: HistoryEntry) -> None:
    console.print(Rule(f"[bold cyan]{entry.id}[/bold cyan] {entry.created_at}"))
    console.print(Text(entry.question, style="italic"))
    if entry.intent is not None:
        console.print(Text(intent_line(entry.intent), style="bold yellow"))
    console.print(backend_panel("ORIGINAL", entry.original.backend_id, entry.original.text, "cyan", _usage(entry.original)))
    if entry.challenger is not None:
        console.print(
            backend_panel("CHALLENGER", entry.challenger.backend_id, entry.challenger.text, "magenta", _usage(entry.challenger))
        )
    if entry.synthesis is not None:
        print_synthesis(entry.synthesis.text, entry.synthesis.agreement_score)


def format_markdown(entry: HistoryEntry) -> str:
    """Render a history entry as a standalone markdown document."""
    lines: list[str] = [
        f"# Adversarial Mirror: {entry.question[:80]}",
        "",
        f"**Date:** {entry.created_at}",
        f"**ID:** {entry.id}",
        f"**Mode:** {'mirror' if entry.challenger is not None else 'direct'}",
    ]
    if entry.intent is not None:
        lines.append(f"**Intent:** {intent_line(entry.intent)}: {entry.intent.reason}")
    if entry.synthesis is not None and entry.synthesis.agreement_score is not None:
        lines.append(f"**Agreement:** {entry.synthesis.agreement_score}%")
    lines += ["", "---", "", "## Question", "", entry.question, ""]

    for title, result in (("Original", entry.original), ("Challenger", entry.challenger)):
        if result is None:
            continue
        lines += [f"## {title} ({result.backend_id})", "", result.text.strip(), ""]
        usage = _usage(result)
        if usage:
            lines += [f"*{usage}*", ""]

    if entry.synthesis is not None:
        lines += ["## Synthesis", "", entry.synthesis.text.strip(), ""]
    return "\n".join(lines)


def save_to_file(entry: HistoryEntry, destination: Path) -> Path:
    """Write ``entry`` as markdown.

    Args:
        entry: The history entry to export.
        destination: A file path, or a directory in which a
            ``<timestamp>_<slug>.md`` file is created.

    Returns:
        Path to the saved file.
    """
    if destination.is_dir():
        timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
        destination = destination / f"{timestamp}_{_slug(entry.question)}.md"
    destination.parent.mkdir(parents=True, exist_ok=True)
    destination.write_text(format_markdown(entry), encoding="utf-8")
    logger.info("Mirror run saved to: %s", destination)
    return destination
