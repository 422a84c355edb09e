"""
Durable key-value storage for per-user client state.

JsonFileStore keeps one JSON document per user under a state directory,
rewritten atomically (temp file + os.replace) so a crash mid-write leaves
the previous document intact. Write failures are logged and reported as
False, never raised.
"""

import copy
import json
import logging
import os
import tempfile
from pathlib import Path
from typing import Any, Dict, Iterable, Optional

logger = logging.getLogger(__name__)


class KeyValueStore:
    """Interface for the durable store. Values are JSON-compatible."""

    def get(self, key: str, default: Any = None) -> Any:
        raise NotImplementedError

    def set(self, key: str, value: Any) -> bool:
        return self.set_many({key: value})

    def set_many(self, values: Dict[str, Any]) -> bool:
        """Write several keys so that either all or none land."""
        raise NotImplementedError

    def remove(self, key: str) -> bool:
        return self.remove_many([key])

    def remove_many(self, keys: Iterable[str]) -> bool:
        raise NotImplementedError


class MemoryStore(KeyValueStore):
    """In-process store. Values are deep-copied in and out."""

    def __init__(self, initial: Optional[Dict[str, Any]] = None):
        self._data: Dict[str, Any] = copy.deepcopy(initial or {})

    def get(self, key: str, default: Any = None) -> Any:
        if key not in self._data:
            return default
        return copy.deepcopy(self._data[key])

    def set_many(self, values: Dict[str, Any]) -> bool:
        self._data.update(copy.deepcopy(values))
        return True

    def remove_many(self, keys: Iterable[str]) -> bool:
        for key in keys:
            self._data.pop(key, None)
        return True

    def snapshot(self) -> Dict[str, Any]:
        return copy.deepcopy(self._data)


class JsonFileStore(KeyValueStore):
    """One JSON document per user id."""

    def __init__(self, directory, user_id: str):
        self._directory = Path(directory).expanduser()
        self._user_id = str(user_id)

    @property
    def path(self) -> Path:
        # Sanitize user_id to prevent path traversal
        safe_user_id = "".join(c for c in self._user_id if c.isalnum() or c in "-_")
        return self._directory / f"user_{safe_user_id}.json"

    def _load(self) -> Dict[str, Any]:
        if not self.path.exists():
            return {}
        try:
            with open(self.path, "r") as f:
                data = json.load(f)
        except (json.JSONDecodeError, IOError) as e:
            logger.error(f"Could not read state file {self.path}: {e}")
            return {}
        return data if isinstance(data, dict) else {}

    def _write(self, data: Dict[str, Any]) -> bool:
        try:
            self._directory.mkdir(parents=True, exist_ok=True)
            fd, tmp_path = tempfile.mkstemp(dir=self._directory, suffix=".tmp")
            try:
                with os.fdopen(fd, "w") as f:
                    json.dump(data, f)
                os.replace(tmp_path, self.path)
            except BaseException:
                if os.path.exists(tmp_path):
                    os.unlink(tmp_path)
                raise
        except (IOError, OSError, TypeError, ValueError) as e:
            # Log but don't fail - state stays in memory for this process
            logger.error(f"Failed to save state to {self.path}: {e}")
            return False
        return True

    def get(self, key: str, default: Any = None) -> Any:
        return self._load().get(key, default)

    def set_many(self, values: Dict[str, Any]) -> bool:
        data = self._load()
        data.update(values)
        return self._write(data)

    def remove_many(self, keys: Iterable[str]) -> bool:
        data = self._load()
        for key in keys:
            data.pop(key, None)
        return self._write(data)
