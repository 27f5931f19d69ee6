"""JSON-file store of past mirror runs, newest first."""

import json
import logging
from dataclasses import asdict
from pathlib import Path
from typing import Any

from mirror.models import BackendResult, HistoryEntry, IntentResult, SynthesisResult

logger = logging.getLogger(__name__)

MAX_ENTRIES = 200


class HistoryError(ValueError):
    """Raised when the history file cannot be read as a history store."""


def _entry_from_dict(raw: dict[str, Any]) -> HistoryEntry:
    challenger = raw.get("challenger")
    intent = raw.get("intent")
    synthesis = raw.get("synthesis")
    return HistoryEntry(
        id=raw["id"],
        created_at=raw["created_at"],
        question=raw["question"],
        original=BackendResult(**raw["original"]),
        challenger=BackendResult(**challenger) if challenger else None,
        intent=IntentResult(**intent) if intent else None,
        synthesis=SynthesisResult(**synthesis) if synthesis else None,
    )


def list_entries(path: Path) -> list[HistoryEntry]:
    """All stored entries, newest first. A missing file means no history.

    Raises:
        HistoryError: If the file is not valid JSON or holds malformed entries.
    """
    if not path.exists():
        return []
    try:
        raw = json.loads(path.read_text(encoding="utf-8"))
        return [_entry_from_dict(item) for item in raw.get("entries", [])]
    except (json.JSONDecodeError, KeyError, TypeError, AttributeError) as exc:
        raise HistoryError(f"Unreadable history file {path}: {exc}") from exc


def add_entry(path: Path, entry: HistoryEntry, max_entries: int = MAX_ENTRIES) -> None:
    """Prepend ``entry`` and drop the oldest entries beyond ``max_entries``."""
    entries = [entry, *list_entries(path)][:max_entries]
    path.parent.mkdir(parents=True, exist_ok=True)
    payload = {"entries": [asdict(e) for e in entries]}
    path.write_text(json.dumps(payload, indent=2, ensure_ascii=False), encoding="utf-8")
    logger.debug("History entry %s saved to %s", entry.id, path)


def get_entry(path: Path, entry_id: str) -> HistoryEntry | None:
    return next((e for e in list_entries(path) if e.id == entry_id), None)
