"""
Short-lived key/value carrier that survives a page reload.

Entries have an explicit expiry and a path scope (an entry set for path "/"
is visible from every path below it). consume() reads and deletes in one step
so a value is acted on at most once. Last writer wins.
"""

import json
import os
import threading
import time
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Callable, Dict, Optional, Tuple

_Entry = Dict[str, object]


def _path_matches(entry_path: str, request_path: str) -> bool:
    if entry_path == "/" or request_path == entry_path:
        return True
    return request_path.startswith(entry_path.rstrip("/") + "/")


class Carrier(ABC):
    """Explicitly scoped, expiring, single-read channel."""

    @abstractmethod
    def put(self, key: str, value: str, max_age: float, path: str = "/") -> None:
        pass

    @abstractmethod
    def get(self, key: str, path: str = "/") -> Optional[str]:
        """Return the live value visible from `path` without consuming it."""
        pass

    @abstractmethod
    def consume(self, key: str, path: str = "/") -> Optional[str]:
        """Return the live value visible from `path` and delete it."""
        pass

    @abstractmethod
    def clear(self, key: str, path: str = "/") -> None:
        pass


class _DictCarrier(Carrier):
    """Shared logic over a {(key, path): entry} mapping; subclasses persist it."""

    def __init__(self, clock: Callable[[], float] = None):
        self._clock = clock or time.time
        self._lock = threading.Lock()

    def _load(self) -> Dict[Tuple[str, str], _Entry]:
        raise NotImplementedError

    def _save(self, entries: Dict[Tuple[str, str], _Entry]) -> None:
        raise NotImplementedError

    def _live(self, entries: Dict[Tuple[str, str], _Entry], key: str, path: str) -> Optional[Tuple[str, str]]:
        now = self._clock()
        # Most specific path wins, as with cookies
        candidates = sorted(
            (k for k in entries if k[0] == key and _path_matches(k[1], path)),
            key=lambda k: len(k[1]),
            reverse=True,
        )
        for candidate in candidates:
            if entries[candidate]["expires_at"] > now:
                return candidate
        return None

    def _purge_expired(self, entries: Dict[Tuple[str, str], _Entry]) -> bool:
        now = self._clock()
        expired = [k for k, entry in entries.items() if entry["expires_at"] <= now]
        for k in expired:
            del entries[k]
        return bool(expired)

    def put(self, key: str, value: str, max_age: float, path: str = "/") -> None:
        if max_age <= 0:
            self.clear(key, path)
            return
        with self._lock:
            entries = self._load()
            self._purge_expired(entries)
            entries[(key, path)] = {"value": str(value), "expires_at": self._clock() + max_age}
            self._save(entries)

    def get(self, key: str, path: str = "/") -> Optional[str]:
        with self._lock:
            entries = self._load()
            found = self._live(entries, key, path)
            return entries[found]["value"] if found else None

    def consume(self, key: str, path: str = "/") -> Optional[str]:
        with self._lock:
            entries = self._load()
            found = self._live(entries, key, path)
            if not found:
                if self._purge_expired(entries):
                    self._save(entries)
                return None
            value = entries.pop(found)["value"]
            self._save(entries)
            return value

    def clear(self, key: str, path: str = "/") -> None:
        with self._lock:
            entries = self._load()
            if entries.pop((key, path), None) is not None:
                self._save(entries)


class MemoryCarrier(_DictCarrier):
    """Carrier held in process memory; lives as long as the process."""

    def __init__(self, clock: Callable[[], float] = None):
        super().__init__(clock)
        self._entries: Dict[Tuple[str, str], _Entry] = {}

    def _load(self) -> Dict[Tuple[str, str], _Entry]:
        return self._entries

    def _save(self, entries: Dict[Tuple[str, str], _Entry]) -> None:
        self._entries = entries


class FileCarrier(_DictCarrier):
    """Carrier persisted to a JSON file so it outlives the process that wrote it."""

    def __init__(self, file_path, clock: Callable[[], float] = None):
        super().__init__(clock)
        self.file_path = Path(file_path)

    def _load(self) -> Dict[Tuple[str, str], _Entry]:
        if not self.file_path.exists():
            return {}
        try:
            raw = json.loads(self.file_path.read_text())
        except ValueError:
            # Corrupt carrier file reads as empty
            return {}
        return {(item["key"], item["path"]): {"value": item["value"], "expires_at": item["expires_at"]} for item in raw}

    def _save(self, entries: Dict[Tuple[str, str], _Entry]) -> None:
        self.file_path.parent.mkdir(parents=True, exist_ok=True)
        raw = [
            {"key": key, "path": path, "value": entry["value"], "expires_at": entry["expires_at"]}
            for (key, path), entry in entries.items()
        ]
        tmp_path = self.file_path.with_name(self.file_path.name + ".tmp")
        tmp_path.write_text(json.dumps(raw))
        os.replace(tmp_path, self.file_path)
