"""Activity log storage for the Image Fusion API.

Every successful merge appends one entry to a single ``activity_log.json``
file.  The file is a JSON list in chronological order (oldest first) and is
capped at ``max_entries``; appending beyond the cap evicts the oldest entries.

Each entry is a small dictionary::

    {
        "created_at": "2026-10-18T14:03:22.512345+00:00",
        "client_address": "203.0.113.7",
        "style": "toy",
        "session_dir": "20261018-140322_toy_3f2a9c1b",
        "session_id": "3f2a9c1b..."
    }

The whole file is read and rewritten on every change.  Two requests finishing
at the same moment can therefore lose one append (last writer wins); the log
is an activity trail, not an audit record, and this race is accepted.

Loading is forgiving: a missing, empty or corrupt file reads as an empty log,
and non-dictionary items are dropped.
"""

from __future__ import annotations

import json
import logging
from datetime import datetime, timezone
from pathlib import Path

from imagefusion.core.errors import PersistenceError

logger = logging.getLogger(__name__)


def build_log_entry(
    *,
    client_address: str,
    style_key: str,
    session_dir: str,
    session_id: str,
    created_at: datetime | None = None,
) -> dict:
    """Build an activity log entry dictionary."""
    created_at = created_at or datetime.now(timezone.utc)
    return {
        "created_at": created_at.isoformat(),
        "client_address": client_address,
        "style": style_key,
        "session_dir": session_dir,
        "session_id": session_id,
    }


class ActivityLog:
    """Bounded, file-backed list of merge activity entries.

    Attributes:
        path: Location of ``activity_log.json``.
        max_entries: Maximum number of entries kept on disk.
    """

    def __init__(self, path: Path, max_entries: int = 1000) -> None:
        self.path = Path(path)
        self.max_entries = max_entries

    def read_all(self) -> list[dict]:
        """Return all entries, oldest first.

        Returns:
            List of entry dictionaries.  Empty when the file is missing or
            unreadable.
        """
        if not self.path.exists():
            return []

        try:
            with open(self.path, encoding="utf-8") as handle:
                raw_entries = json.load(handle)
        except (OSError, ValueError) as e:
            logger.warning(f"Could not read activity log {self.path}: {e}")
            return []

        if not isinstance(raw_entries, list):
            return []

        return [entry for entry in raw_entries if isinstance(entry, dict)]

    def append(self, entry: dict) -> None:
        """Append an entry, evicting the oldest entries beyond the cap.

        Args:
            entry: Entry dictionary (see :func:`build_log_entry`).

        Raises:
            PersistenceError: If the log file cannot be written.
        """
        entries = self.read_all()
        entries.append(entry)

        if len(entries) > self.max_entries:
            evicted = len(entries) - self.max_entries
            entries = entries[evicted:]
            logger.debug(f"Evicted {evicted} old activity log entries")

        self._save(entries)

    def delete(self, session_id: str) -> dict | None:
        """Remove the entry for ``session_id``.

        Args:
            session_id: Session identifier of the entry to remove.

        Returns:
            The removed entry, or ``None`` if no entry matched.

        Raises:
            PersistenceError: If the log file cannot be written.
        """
        entries = self.read_all()
        removed = next((e for e in entries if e.get("session_id") == session_id), None)
        if removed is None:
            return None

        self._save([e for e in entries if e.get("session_id") != session_id])
        return removed

    def _save(self, entries: list[dict]) -> None:
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            with open(self.path, "w", encoding="utf-8") as handle:
                json.dump(entries, handle, indent=2)
        except OSError as e:
            raise PersistenceError(f"Could not write activity log: {e}") from e
