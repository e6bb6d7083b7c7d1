from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Dict

logger = logging.getLogger(__name__)


class JsonFileStorage:
    """Client-local key/value storage with browser ``localStorage`` semantics.

    Values are strings; the whole table is rewritten on every change, which is
    fine for a handful of keys.
    """

    def __init__(self, path: Path | str) -> None:
        self.path = Path(path)

    def _load(self) -> Dict[str, str]:
        if not self.path.exists():
            return {}
        try:
            raw = json.loads(self.path.read_text(encoding="utf-8") or "{}")
        except json.JSONDecodeError:
            logger.warning("storage.corrupt", extra={"extra_data": {"path": str(self.path)}})
            return {}
        if not isinstance(raw, dict):
            return {}
        return {str(key): str(value) for key, value in raw.items()}

    def _save(self, table: Dict[str, str]) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        tmp = self.path.with_suffix(self.path.suffix + ".tmp")
        tmp.write_text(json.dumps(table, indent=2, ensure_ascii=False), encoding="utf-8")
        tmp.replace(self.path)

    def get_item(self, key: str) -> str | None:
        return self._load().get(key)

    def set_item(self, key: str, value: str) -> None:
        table = self._load()
        table[key] = str(value)
        self._save(table)

    def remove_item(self, key: str) -> None:
        table = self._load()
        if key in table:
            del table[key]
            self._save(table)
