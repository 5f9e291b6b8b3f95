"""
Small key/value store persisted as a JSON file. Values are strings, as with a
browser's localStorage.
"""
import json
import os
from pathlib import Path
from typing import Dict, Optional

import structlog

from ..config import settings


logger = structlog.get_logger(__name__)


class LocalStorage:

    def __init__(self, path: Optional[str] = None):
        self.path = Path(os.path.expanduser(path or settings.client_state_file))
        self._items: Dict[str, str] = self._load()

    def _load(self) -> Dict[str, str]:
        if not self.path.exists():
            return {}
        try:
            data = json.loads(self.path.read_text(encoding="utf-8") or "{}")
        except (OSError, ValueError) as e:
            logger.warning("local_storage_unreadable", path=str(self.path), error=str(e))
            return {}
        if not isinstance(data, dict):
            return {}
        return {str(k): str(v) for k, v in data.items()}

    def _save(self) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        tmp = self.path.with_suffix(self.path.suffix + ".tmp")
        tmp.write_text(json.dumps(self._items, indent=2, sort_keys=True), encoding="utf-8")
        os.replace(tmp, self.path)

    def get_item(self, key: str) -> Optional[str]:
        return self._items.get(key)

    def set_item(self, key: str, value) -> None:
        self._items[key] = str(value)
        self._save()

    def remove_item(self, key: str) -> None:
        if key in self._items:
            del self._items[key]
            self._save()

    def clear(self) -> None:
        self._items = {}
        self._save()

    def __contains__(self, key: str) -> bool:
        return key in self._items
