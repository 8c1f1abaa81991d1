"""Recent transcriptions, newest first, persisted as JSON."""

from __future__ import annotations

import json
import logging
import threading
import uuid
from dataclasses import asdict, dataclass
from datetime import datetime
from pathlib import Path

from sonic_dictate.config import HISTORY_MAX_ENTRIES

logger = logging.getLogger(__name__)

HISTORY_FILE = Path.home() / ".sonic_dictate/history.json"


@dataclass
class HistoryEntry:
    text: str
    timestamp: str
    id: str = ""
    skill: str | None = None

    @classmethod
    def create(cls, text: str, skill: str | None = None) -> HistoryEntry:
        return cls(
            text=text,
            timestamp=datetime.now().isoformat(timespec="seconds"),
            id=str(uuid.uuid4()),
            skill=skill,
        )


class TranscriptionHistory:
    def __init__(self, path: Path | None = None, max_entries: int = HISTORY_MAX_ENTRIES):
        self._path = path or HISTORY_FILE
        self.max_entries = max_entries
        self._lock = threading.Lock()
        self._entries: list[HistoryEntry] = self._load()

    def _load(self) -> list[HistoryEntry]:
        try:
            if not self._path.is_file():
                return []
            raw = json.loads(self._path.read_text(encoding="utf-8"))
            if not isinstance(raw, list):
                raise ValueError("history file does not contain a list")
            entries = [
                HistoryEntry(
                    text=str(item.get("text", "")),
                    timestamp=str(item.get("timestamp", "")),
                    id=str(item.get("id", "")),
                    skill=item.get("skill"),
                )
                for item in raw
                if isinstance(item, dict)
            ]
            return entries[: self.max_entries]
        except (OSError, UnicodeDecodeError, ValueError) as e:
            # OSError: File access errors
            # UnicodeDecodeError: Invalid UTF-8 encoding
            # ValueError: Invalid JSON or wrong top-level type
            logger.error(f"Could not read transcription history: {e}")
            return []

    def entries(self) -> list[HistoryEntry]:
        with self._lock:
            return list(self._entries)

    def add(self, text: str, skill: str | None = None) -> HistoryEntry | None:
        """Prepend an entry and persist. Blank text is ignored."""
        if not text or not text.strip():
            return None
        entry = HistoryEntry.create(text, skill)
        with self._lock:
            self._entries.insert(0, entry)
            del self._entries[self.max_entries :]
            snapshot = [asdict(e) for e in self._entries]
        self._save(snapshot)
        return entry

    def clear(self) -> None:
        with self._lock:
            self._entries = []
        self._save([])

    def _save(self, snapshot: list[dict]) -> bool:
        try:
            self._path.parent.mkdir(parents=True, exist_ok=True)
            self._path.write_text(json.dumps(snapshot, indent=2), encoding="utf-8")
            return True
        except (OSError, TypeError, ValueError) as e:
            logger.error(f"Could not save transcription history: {e}")
            return False
