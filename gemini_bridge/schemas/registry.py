"""Schema of ``~/.claude/bridge-registry.json``."""

from __future__ import annotations

from typing import Dict

from pydantic import BaseModel, Field

DEFAULT_TOOLS = "Read|Grep|Glob|Task"


class ProjectConfig(BaseModel):
    tools: str = DEFAULT_TOOLS
    enabled: bool = True

    def handles(self, tool_name: str) -> bool:
        return tool_name in {t.strip() for t in self.tools.split("|") if t.strip()}


class ProjectEntry(BaseModel):
    registered: str
    bridge_version: str
    config: ProjectConfig = Field(default_factory=ProjectConfig)


class Registry(BaseModel):
    version: str
    projects: Dict[str, ProjectEntry] = Field(default_factory=dict)
    router_installed: str
