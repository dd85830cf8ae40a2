"""Per-minute rate limiter persisted across hook processes."""

from __future__ import annotations

import json
import time
from pathlib import Path
from typing import Callable

from .. import paths
from ..config import atomic_write_json


class FileRateLimiter:
    def __init__(self, path: Path | str | None = None, rpm: int = 30, clock: Callable[[], float] = time.time) -> None:
        self.path = Path(path) if path else paths.bridge_home() / "rate-limit.json"
        self.rpm = rpm
        self.clock = clock

    def _window(self) -> int:
        return int(self.clock() // 60)

    def _load(self) -> dict:
        if not self.path.exists():
            return {}
        try:
            return json.loads(self.path.read_text(encoding="utf-8"))
        except (json.JSONDecodeError, OSError):
            return {}

    def allow(self, key: str = "gemini") -> bool:
        window = self._window()
        state = self._load()
        entry = state.get(key) or {}
        count = int(entry.get("count", 0)) if entry.get("window") == window else 0
        if count >= self.rpm:
            return False
        state[key] = {"window": window, "count": count + 1}
        atomic_write_json(self.path, state)
        return True

    def wait_for_slot(self, key: str = "gemini", sleep: Callable[[float], None] = time.sleep, max_wait: float = 60.0) -> bool:
        """Block until ``key`` has a slot; never sleeps longer than ``max_wait`` in total."""
        waited = 0.0
        while not self.allow(key):
            delay = 60 - (self.clock() % 60) + 0.1
            if waited + delay > max_wait:
                return False
            sleep(delay)
            waited += delay
        return True
