"""
Local scan history.

History is kept as a JSON list under a single named slot of a small
key-value storage file. Reads never fail: a missing or unreadable slot is an
empty history. Writes are best-effort and only logged on failure.
"""
import json
import logging
import os
from pathlib import Path
from typing import Any, Dict, List, Sequence

from pydantic import ValidationError

from dermascan.models.schemas import HistoryEntry

logger = logging.getLogger(__name__)

DEFAULT_SLOT = "derma_history"
DEFAULT_LIMIT = 5


def prepend(entries: Sequence[HistoryEntry], entry: HistoryEntry, limit: int = DEFAULT_LIMIT) -> List[HistoryEntry]:
    """Put ``entry`` first and drop the oldest entries beyond ``limit``."""
    return [entry, *entries][:limit]


class HistoryStore:
    """Bounded, newest-first list of past scans persisted to disk."""

    def __init__(self, path: Path, slot: str = DEFAULT_SLOT, limit: int = DEFAULT_LIMIT):
        self.path = Path(path)
        self.slot = slot
        self.limit = limit

    def _read_storage(self) -> Dict[str, Any]:
        if not self.path.exists():
            return {}
        with open(self.path, "r", encoding="utf-8") as f:
            data = json.load(f)
        if not isinstance(data, dict):
            raise ValueError(f"Storage file {self.path} does not hold an object")
        return data

    def load(self) -> List[HistoryEntry]:
        try:
            raw = self._read_storage().get(self.slot)
        except (OSError, ValueError) as e:
            logger.warning(f"Ignoring unreadable history in {self.path}: {e}")
            return []

        if raw is None:
            return []
        if not isinstance(raw, list):
            logger.warning(f"History slot '{self.slot}' is not a list, starting empty")
            return []

        try:
            entries = [HistoryEntry.model_validate(item) for item in raw]
        except ValidationError as e:
            logger.warning(f"Ignoring corrupt history in slot '{self.slot}': {e.error_count()} errors")
            return []

        logger.info(f"Loaded {len(entries)} history entries")
        return entries[:self.limit]

    def save(self, entries: Sequence[HistoryEntry]) -> None:
        payload = [entry.model_dump(mode="json", by_alias=True) for entry in entries[:self.limit]]
        try:
            try:
                storage = self._read_storage()
            except ValueError:
                storage = {}
            storage[self.slot] = payload

            self.path.parent.mkdir(parents=True, exist_ok=True)
            tmp_path = self.path.with_suffix(self.path.suffix + ".tmp")
            with open(tmp_path, "w", encoding="utf-8") as f:
                json.dump(storage, f)
            os.replace(tmp_path, self.path)
            logger.debug(f"Saved {len(payload)} history entries to {self.path}")
        except OSError as e:
            logger.error(f"Failed to save history to {self.path}: {e}")
