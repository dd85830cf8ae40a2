"""Global PreToolUse entry point that routes calls to registered projects."""

from __future__ import annotations

import json
import os
from pathlib import Path
from typing import Any, Callable, Dict, Optional

from pydantic import ValidationError

from .. import __version__, paths
from ..delegation import DelegationSettings
from ..schemas.hook import HookPayload, HookResponse
from .bridge import BridgeHook
from .notify import notify_level, notify_user
from .registry import ProjectRegistry

PROJECT_MARKERS = (".git/config", "package.json", "go.mod", "pyproject.toml")


def extract_working_directory(payload: HookPayload) -> Path:
    inputs = payload.inputs
    candidate: Optional[str] = None
    if inputs.get("file_path"):
        candidate = os.path.dirname(str(inputs["file_path"])) or None
    elif inputs.get("path"):
        candidate = str(inputs["path"])
    base = Path(payload.cwd or os.getenv("CLAUDE_WORKING_DIR") or os.getcwd())
    if candidate is None:
        return base.expanduser().resolve()
    path = Path(candidate).expanduser()
    if not path.is_absolute():
        path = base / path
    if path.is_file():
        path = path.parent
    return path.resolve()


def find_project_root(start: str | Path, registry: ProjectRegistry | None = None) -> Optional[Path]:
    """Nearest ancestor with ``.gemini-oddity/``, or a registered ancestor carrying a project marker."""
    registry = registry or ProjectRegistry()
    known = registry.list()
    current = Path(start).resolve()
    for directory in (current, *current.parents):
        if paths.project_bridge_dir(directory).is_dir():
            return directory
        if any((directory / marker).is_file() for marker in PROJECT_MARKERS) and str(directory) in known:
            return directory
    return None


HookFactory = Callable[[Path, DelegationSettings], BridgeHook]


def _default_factory(root: Path, settings: DelegationSettings) -> BridgeHook:
    return BridgeHook(root, settings=settings)


def route(payload: HookPayload | Dict[str, Any], hook_factory: HookFactory | None = None) -> HookResponse:
    registry = ProjectRegistry()
    if registry.initialize():
        notify_user("INFO", "Initialized bridge registry")

    event = payload if isinstance(payload, HookPayload) else HookPayload.model_validate(payload)
    tool = event.name
    if not tool:
        notify_user("ERROR", "Could not extract tool name from input")
        return HookResponse.passthrough()

    working_dir = extract_working_directory(event)
    root = find_project_root(working_dir, registry)
    if root is None:
        notify_user("SKIP", f"No registered project found for {working_dir}")
        return HookResponse.passthrough()

    entry = registry.get(root)
    if entry is None or not entry.config.enabled:
        notify_user("SKIP", f"Project not registered or disabled: {root}")
        return HookResponse.passthrough()
    if not entry.config.handles(tool):
        notify_user("SKIP", f"Tool {tool} not configured for delegation in this project")
        return HookResponse.passthrough()

    notify_user("DELEGATE", f"Routing {tool} to project: {root.name}")
    settings = DelegationSettings.load(root, overrides={"tools": entry.config.tools})
    hook = (hook_factory or _default_factory)(root, settings)
    return hook.process_tool_call(event)


def run_router(raw: str, hook_factory: HookFactory | None = None) -> str:
    try:
        payload = HookPayload.model_validate(json.loads(raw or "{}"))
    except (json.JSONDecodeError, ValidationError):
        notify_user("ERROR", "Could not parse hook input")
        return HookResponse.passthrough().to_json()
    try:
        return route(payload, hook_factory).to_json()
    except Exception as exc:  # hook must never break the Claude session
        notify_user("ERROR", f"Router failure: {exc}")
        return HookResponse.passthrough().to_json()


def status() -> Dict[str, Any]:
    registry = ProjectRegistry()
    projects = registry.list() if registry.path.exists() else {}
    return {
        "version": __version__,
        "registry": str(registry.path),
        "notify": notify_level(),
        "projects": {key: entry.bridge_version for key, entry in projects.items()},
    }
