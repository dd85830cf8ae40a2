"""Read-modify-write access to Claude Code's ``settings.json`` hook table."""

from __future__ import annotations

import shutil
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, List, Optional

from .. import paths
from ..config import atomic_write_json, read_json
from ..errors import ConfigError


class ClaudeSettings:
    """Hooks live under ``hooks.<Event>[].hooks[]`` grouped by ``matcher``."""

    def __init__(self, path: str | Path | None = None) -> None:
        self.path = Path(path) if path else paths.claude_settings_file()
        self.data: Dict[str, Any] = self._read()

    def _read(self) -> Dict[str, Any]:
        payload = read_json(self.path, {})
        if not isinstance(payload, dict):
            raise ConfigError(f"Claude settings must be a JSON object: {self.path}")
        return payload

    def reload(self) -> None:
        self.data = self._read()

    def backup(self, now: Optional[datetime] = None) -> Optional[Path]:
        if not self.path.exists():
            return None
        stamp = (now or datetime.now()).strftime("%Y%m%d_%H%M%S")
        target = self.path.with_name(f"{self.path.name}.backup.{stamp}")
        shutil.copy2(self.path, target)
        return target

    def save(self) -> Path:
        atomic_write_json(self.path, self.data, mode=0o644)
        return self.path

    def _groups(self, event: str) -> List[Dict[str, Any]]:
        return self.data.setdefault("hooks", {}).setdefault(event, [])

    def has_hook(self, command: str, event: Optional[str] = None) -> bool:
        for name, groups in (self.data.get("hooks") or {}).items():
            if event and name != event:
                continue
            for group in groups or []:
                if any(h.get("command") == command for h in group.get("hooks") or []):
                    return True
        return False

    def hook_matcher(self, command: str, event: str) -> Optional[str]:
        for group in (self.data.get("hooks") or {}).get(event) or []:
            if any(h.get("command") == command for h in group.get("hooks") or []):
                return group.get("matcher")
        return None

    def add_hook(self, event: str, matcher: str, command: str, **extra: Any) -> bool:
        """Register ``command`` for ``event``/``matcher``; returns ``False`` when already present."""
        if self.hook_matcher(command, event) == matcher:
            return False
        self.remove_hook(command, event)
        entry = {"type": "command", "command": command, **extra}
        groups = self._groups(event)
        for group in groups:
            if group.get("matcher") == matcher:
                group.setdefault("hooks", []).append(entry)
                return True
        groups.append({"matcher": matcher, "hooks": [entry]})
        return True

    def remove_hook(self, command: str, event: Optional[str] = None) -> bool:
        hooks = self.data.get("hooks")
        if not isinstance(hooks, dict):
            return False
        removed = False
        for name in list(hooks):
            if event and name != event:
                continue
            kept_groups = []
            for group in hooks[name] or []:
                entries = group.get("hooks") or []
                remaining = [h for h in entries if h.get("command") != command]
                removed = removed or len(remaining) != len(entries)
                if remaining:
                    kept_groups.append({**group, "hooks": remaining})
            if kept_groups:
                hooks[name] = kept_groups
            else:
                del hooks[name]
        if not hooks:
            del self.data["hooks"]
        return removed
