"""
Local cache of server-issued attempt ids, keyed by test id.

Non-authoritative. The submission path sends the cached id so the server
can detect a duplicate submission; the entry is cleared once the attempt
is submitted. Stored as a single JSON file: {cache_dir}/attempts.json
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import Optional

from loguru import logger

CACHE_FILENAME = "attempts.json"


class AttemptIdCache:
    """Key-value store of test id -> last known attempt id."""

    def __init__(self, cache_dir: Path):
        self.cache_dir = Path(cache_dir)
        self.path = self.cache_dir / CACHE_FILENAME

    def get(self, test_id: str) -> Optional[str]:
        return self._load().get(test_id)

    def put(self, test_id: str, attempt_id: str) -> None:
        entries = self._load()
        if entries.get(test_id) == attempt_id:
            return
        entries[test_id] = attempt_id
        self._write(entries)

    def delete(self, test_id: str) -> bool:
        entries = self._load()
        if test_id not in entries:
            return False
        del entries[test_id]
        self._write(entries)
        return True

    def _load(self) -> dict[str, str]:
        if not self.path.exists():
            return {}
        try:
            with open(self.path, "r", encoding="utf-8") as f:
                data = json.load(f)
        except (json.JSONDecodeError, OSError) as e:
            logger.warning(f"Ignoring unreadable attempt cache {self.path}: {e}")
            return {}
        if not isinstance(data, dict):
            return {}
        return {str(k): str(v) for k, v in data.items() if v}

    def _write(self, entries: dict[str, str]) -> None:
        try:
            self.cache_dir.mkdir(parents=True, exist_ok=True)
            with open(self.path, "w", encoding="utf-8") as f:
                json.dump(entries, f, indent=2)
        except OSError as e:
            logger.warning(f"Could not write attempt cache {self.path}: {e}")
