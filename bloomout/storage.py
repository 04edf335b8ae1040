from __future__ import annotations

import json
import os
import tempfile
from pathlib import Path
from typing import Any, Dict, Optional, Protocol

from loguru import logger

from .errors import PersistenceReadError


PROGRESS_KEY = "bloomout_progress"
JOURNAL_KEY = "journalEntries"
PROFILE_KEY = "userProfile"
THEME_KEY = "selectedTheme"
MOOD_KEY = "selectedMood"
AVATAR_KEY = "userAvatar"
FIRST_LAUNCH_KEY = "bloomout_has_launched"


class KeyValueStore(Protocol):
    def get(self, key: str) -> Optional[str]:
        ...

    def set(self, key: str, value: str) -> None:
        ...


class MemoryStore:
    def __init__(self, initial: Optional[Dict[str, str]] = None) -> None:
        self._data: Dict[str, str] = dict(initial or {})

    def get(self, key: str) -> Optional[str]:
        return self._data.get(key)

    def set(self, key: str, value: str) -> None:
        self._data[key] = value


class JsonFileStore:
    """Key-value store kept as a single JSON object on disk.

    Every ``set`` rewrites the whole file through a temp file and ``os.replace``
    so a crash never leaves a half-written document behind.
    """

    def __init__(self, path: Path | str) -> None:
        self.path = Path(path)
        self._data: Dict[str, str] = self._read()

    def _read(self) -> Dict[str, str]:
        if not self.path.is_file():
            return {}
        try:
            raw = json.loads(self.path.read_text(encoding="utf-8"))
        except (OSError, ValueError) as e:
            logger.warning(f"storage_unreadable | path={self.path} | {e}")
            return {}
        if not isinstance(raw, dict):
            logger.warning(f"storage_unreadable | path={self.path} | top-level value is not an object")
            return {}
        return {str(k): v for k, v in raw.items() if isinstance(v, str)}

    def get(self, key: str) -> Optional[str]:
        return self._data.get(key)

    def set(self, key: str, value: str) -> None:
        self._data[key] = value
        self.path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp = tempfile.mkstemp(dir=str(self.path.parent), prefix=".storage-", suffix=".json")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(self._data, f, ensure_ascii=False)
            os.replace(tmp, self.path)
        except Exception:
            if os.path.exists(tmp):
                os.unlink(tmp)
            raise


def default_store() -> JsonFileStore:
    base = os.getenv("BLOOMOUT_DATA_DIR")
    root = Path(base) if base else Path.home() / ".bloomout"
    return JsonFileStore(root / "storage.json")


def load_json(kv: KeyValueStore, key: str) -> Optional[Any]:
    """Decode the document stored under ``key``.

    Returns None when the key is absent; raises PersistenceReadError when the
    stored text is not valid JSON.
    """
    raw = kv.get(key)
    if raw is None or raw == "":
        return None
    try:
        return json.loads(raw)
    except ValueError as e:
        raise PersistenceReadError(key, str(e)) from e


def dump_json(kv: KeyValueStore, key: str, value: Any) -> None:
    kv.set(key, json.dumps(value, ensure_ascii=False))
