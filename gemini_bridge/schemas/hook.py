"""Pydantic schemas for Claude Code hook payloads and responses."""

from __future__ import annotations

from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field


class HookPayload(BaseModel):
    """Tool-use event as written to the hook's stdin.

    Current Claude Code releases send ``tool_name``/``tool_input``; older bridge
    installs forwarded ``tool`` with the arguments at the top level.
    """

    model_config = ConfigDict(extra="allow")

    tool_name: Optional[str] = None
    tool: Optional[str] = None
    tool_input: Dict[str, Any] = Field(default_factory=dict)
    cwd: Optional[str] = None
    session_id: Optional[str] = None
    hook_event_name: Optional[str] = None

    @property
    def name(self) -> str:
        return (self.tool_name or self.tool or "").strip()

    @property
    def inputs(self) -> Dict[str, Any]:
        if self.tool_input:
            return self.tool_input
        return dict(self.model_extra or {})


class HookResponse(BaseModel):
    action: Optional[str] = None
    decision: Optional[str] = None
    reason: Optional[str] = None

    @classmethod
    def passthrough(cls) -> "HookResponse":
        return cls(action="continue")

    @classmethod
    def delegated(cls, reason: str) -> "HookResponse":
        return cls(decision="block", reason=reason)

    @property
    def is_delegated(self) -> bool:
        return self.decision == "block"

    def to_json(self) -> str:
        return self.model_dump_json(exclude_none=True)


class HookAuditRecord(BaseModel):
    tool: str
    project: Optional[str] = None
    delegated: bool
    reason: str
    duration_ms: int = 0
    cached: bool = False
    errors: List[str] = Field(default_factory=list)
