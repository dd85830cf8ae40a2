"""Registry of projects with the bridge installed (``~/.claude/bridge-registry.json``)."""

from __future__ import annotations

from datetime import datetime
from pathlib import Path
from typing import Dict, Optional

from pydantic import ValidationError

from .. import __version__, paths
from ..config import atomic_write_json, read_json
from ..errors import ConfigError
from ..schemas.registry import DEFAULT_TOOLS, ProjectConfig, ProjectEntry, Registry


def _now() -> str:
    return datetime.now().astimezone().isoformat(timespec="seconds")


class ProjectRegistry:
    def __init__(self, path: str | Path | None = None) -> None:
        self.path = Path(path) if path else paths.registry_file()

    def initialize(self) -> bool:
        """Create an empty registry; returns ``True`` when a new file was written."""
        if self.path.exists():
            return False
        self._save(Registry(version=__version__, router_installed=_now()))
        return True

    def load(self) -> Registry:
        payload = read_json(self.path, None)
        if payload is None:
            return Registry(version=__version__, router_installed=_now())
        try:
            return Registry.model_validate(payload)
        except ValidationError as exc:
            raise ConfigError(f"Invalid bridge registry {self.path}: {exc}") from exc

    def _save(self, registry: Registry) -> None:
        atomic_write_json(self.path, registry.model_dump(mode="json"), mode=0o644)

    def register(self, project_dir: str | Path, tools: str = DEFAULT_TOOLS) -> ProjectEntry:
        key = str(Path(project_dir).expanduser().resolve())
        registry = self.load()
        entry = ProjectEntry(
            registered=_now(),
            bridge_version=__version__,
            config=ProjectConfig(tools=tools or DEFAULT_TOOLS, enabled=True),
        )
        registry.projects[key] = entry
        self._save(registry)
        return entry

    def unregister(self, project_dir: str | Path) -> bool:
        key = str(Path(project_dir).expanduser().resolve())
        registry = self.load()
        if registry.projects.pop(key, None) is None:
            return False
        self._save(registry)
        return True

    def get(self, project_dir: str | Path) -> Optional[ProjectEntry]:
        return self.load().projects.get(str(project_dir))

    def is_registered(self, project_dir: str | Path) -> bool:
        return self.get(project_dir) is not None

    def list(self) -> Dict[str, ProjectEntry]:
        return dict(self.load().projects)

    def set_enabled(self, project_dir: str | Path, enabled: bool) -> bool:
        key = str(Path(project_dir).expanduser().resolve())
        registry = self.load()
        entry = registry.projects.get(key)
        if entry is None:
            return False
        entry.config.enabled = enabled
        self._save(registry)
        return True
