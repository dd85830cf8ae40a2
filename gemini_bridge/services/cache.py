"""On-disk cache of Gemini responses keyed by request fingerprint."""

from __future__ import annotations

import hashlib
import json
import time
from pathlib import Path
from typing import Iterable, Optional

from .. import paths
from ..config import atomic_write_json


def fingerprint(tool: str, tool_input: dict, files: Iterable[Path]) -> str:
    digest = hashlib.sha256()
    digest.update(tool.encode("utf-8"))
    digest.update(json.dumps(tool_input, sort_keys=True, default=str).encode("utf-8"))
    for path in sorted(str(p) for p in files):
        try:
            stat = Path(path).stat()
            digest.update(f"{path}:{stat.st_mtime_ns}:{stat.st_size}".encode("utf-8"))
        except OSError:
            digest.update(path.encode("utf-8"))
    return digest.hexdigest()


class ResponseCache:
    def __init__(self, directory: str | Path | None = None, ttl: int = 3600, clock=time.time) -> None:
        self.directory = Path(directory) if directory else paths.cache_dir()
        self.ttl = ttl
        self.clock = clock

    def _entry_path(self, key: str) -> Path:
        return self.directory / f"{key}.json"

    def get(self, key: str) -> Optional[str]:
        path = self._entry_path(key)
        if not path.exists():
            return None
        try:
            entry = json.loads(path.read_text(encoding="utf-8"))
        except (json.JSONDecodeError, OSError):
            path.unlink(missing_ok=True)
            return None
        if self.clock() - float(entry.get("created_at", 0)) > self.ttl:
            path.unlink(missing_ok=True)
            return None
        return entry.get("response")

    def put(self, key: str, response: str) -> None:
        atomic_write_json(self._entry_path(key), {"created_at": self.clock(), "response": response})

    def prune(self) -> int:
        removed = 0
        if not self.directory.exists():
            return removed
        for path in list(self.directory.glob("*.json")):
            if self.get(path.stem) is None:
                removed += 1
        return removed

    def clear(self) -> int:
        removed = 0
        if self.directory.exists():
            for path in self.directory.glob("*.json"):
                path.unlink(missing_ok=True)
                removed += 1
        return removed
