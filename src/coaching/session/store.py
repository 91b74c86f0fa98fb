"""Local persisted state (F1).

Small JSON key-value file standing in for browser local storage.
Keys are fixed strings; there is no schema version or migration.
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any

import structlog

logger = structlog.get_logger(__name__)

STORE_FILENAME = "session_v1.json"

TOKEN_KEY = "token"
USER_KEY = "user"
SCHEDULED_TEST_KEY = "scheduled_test"
BOOKMARKS_KEY = "bookmarks"


class LocalStore:
    """Key-value store persisted to <state_dir>/session_v1.json."""

    def __init__(self, state_dir: Path | None = None):
        if state_dir is None:
            state_dir = Path("data/state")
        self.path = state_dir / STORE_FILENAME

    def _read(self) -> dict[str, Any]:
        if not self.path.exists():
            return {}
        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
        except (json.JSONDecodeError, OSError) as e:
            logger.warning("local_store_unreadable", path=str(self.path), error=str(e))
            return {}
        return data if isinstance(data, dict) else {}

    def _write(self, data: dict[str, Any]) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        with open(self.path, "w", encoding="utf-8") as f:
            json.dump(data, f, indent=2, ensure_ascii=False)

    def get(self, key: str, default: Any = None) -> Any:
        return self._read().get(key, default)

    def set(self, key: str, value: Any) -> None:
        data = self._read()
        data[key] = value
        self._write(data)

    def remove(self, key: str) -> None:
        data = self._read()
        if key in data:
            del data[key]
            self._write(data)

    def clear(self) -> None:
        """Remove every persisted key."""
        if self.path.exists():
            self.path.unlink()
            logger.debug("local_store_cleared", path=str(self.path))
