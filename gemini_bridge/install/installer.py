"""Per-project installation of the bridge and the global router hook."""

from __future__ import annotations

import shutil
import subprocess
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Dict, List, Optional

from rich.console import Console

from .. import paths
from ..auth.oauth_manager import check_oauth_status, get_oauth_info
from ..hooks.registry import ProjectRegistry
from ..schemas.registry import DEFAULT_TOOLS
from .settings import ClaudeSettings

ROUTER_COMMAND = "gemini-bridge route"
PR_HOOK_COMMAND = "gemini-bridge pr hook"
CRON_LINE = '*/45 * * * * gemini -p "1+1" >/dev/null 2>&1'

console = Console()

Runner = Callable[..., subprocess.CompletedProcess]


@dataclass
class Prerequisite:
    name: str
    required: bool
    path: Optional[str]
    hint: str = ""

    @property
    def found(self) -> bool:
        return self.path is not None


@dataclass
class Check:
    name: str
    ok: bool
    detail: str = ""


_PREREQUISITES = [
    ("claude", True, "npm install -g @anthropic-ai/claude-code"),
    ("gemini", True, "https://github.com/google-gemini/gemini-cli"),
    ("gh", False, "https://cli.github.com (needed for PR monitoring)"),
]


def check_prerequisites() -> List[Prerequisite]:
    return [Prerequisite(name, required, shutil.which(name), hint) for name, required, hint in _PREREQUISITES]


def missing_requirements(prereqs: Optional[List[Prerequisite]] = None) -> List[Prerequisite]:
    return [p for p in (prereqs or check_prerequisites()) if p.required and not p.found]


def router_matcher(registry: ProjectRegistry) -> str:
    """Union of every registered project's tools, in first-seen order."""
    tools: List[str] = []
    for entry in registry.list().values():
        for tool in entry.config.tools.split("|"):
            tool = tool.strip()
            if tool and tool not in tools:
                tools.append(tool)
    return "|".join(tools) or DEFAULT_TOOLS


def sync_router_hook(settings: ClaudeSettings, registry: ProjectRegistry) -> bool:
    """Point the PreToolUse router hook at the registered tools, or drop it when no project remains."""
    if not registry.list():
        if not settings.has_hook(ROUTER_COMMAND):
            return False
        settings.backup()
        settings.remove_hook(ROUTER_COMMAND)
        settings.save()
        return True
    matcher = router_matcher(registry)
    if settings.hook_matcher(ROUTER_COMMAND, "PreToolUse") == matcher:
        return False
    settings.backup()
    settings.add_hook("PreToolUse", matcher, ROUTER_COMMAND)
    settings.save()
    return True


def install_cron(runner: Runner = subprocess.run) -> bool:
    """Add the token refresh line to the user's crontab unless it is already there."""
    current = runner(["crontab", "-l"], capture_output=True, text=True, check=False)
    existing = current.stdout if current.returncode == 0 else ""
    if 'gemini -p "1+1"' in existing:
        return False
    content = existing.rstrip("\n")
    content = f"{content}\n{CRON_LINE}\n" if content else f"{CRON_LINE}\n"
    runner(["crontab", "-"], input=content, text=True, check=True)
    return True


def install(
    project_dir: str | Path,
    tools: str = DEFAULT_TOOLS,
    *,
    cron: bool = False,
    settings: Optional[ClaudeSettings] = None,
    registry: Optional[ProjectRegistry] = None,
    runner: Runner = subprocess.run,
) -> Dict[str, object]:
    root = Path(project_dir).expanduser().resolve()
    bridge_dir = paths.project_bridge_dir(root)
    for sub in ("cache/gemini", "logs"):
        (bridge_dir / sub).mkdir(parents=True, exist_ok=True)
    registry = registry or ProjectRegistry()
    registry.initialize()
    registry.register(root, tools)
    console.log(f"[green]Project registered:[/] {root.name}")
    settings = settings or ClaudeSettings()
    hook_changed = sync_router_hook(settings, registry)
    if hook_changed:
        console.log(f"[green]Router hook installed[/] in {settings.path}")
    cron_added = install_cron(runner) if cron else False
    if cron_added:
        console.log("[green]Auto-refresh cron job installed (every 45 minutes)[/]")
    return {"project": str(root), "tools": tools, "hook_changed": hook_changed, "cron_added": cron_added}


def uninstall(
    project_dir: str | Path,
    *,
    remove_files: bool = False,
    settings: Optional[ClaudeSettings] = None,
    registry: Optional[ProjectRegistry] = None,
) -> Dict[str, object]:
    root = Path(project_dir).expanduser().resolve()
    registry = registry or ProjectRegistry()
    was_registered = registry.unregister(root)
    settings = settings or ClaudeSettings()
    hook_changed = sync_router_hook(settings, registry)
    files_removed = False
    bridge_dir = paths.project_bridge_dir(root)
    if remove_files and bridge_dir.is_dir():
        shutil.rmtree(bridge_dir)
        files_removed = True
    if was_registered:
        console.log(f"[green]Project unregistered:[/] {root.name}")
    return {"project": str(root), "unregistered": was_registered, "hook_changed": hook_changed, "files_removed": files_removed}


def verify(settings: Optional[ClaudeSettings] = None, registry: Optional[ProjectRegistry] = None) -> List[Check]:
    checks = [
        Check(f"{p.name} CLI", p.found or not p.required, p.path or f"not found ({p.hint})")
        for p in check_prerequisites()
    ]
    registry = registry or ProjectRegistry()
    projects = registry.list() if registry.path.exists() else {}
    checks.append(Check("Bridge registry", registry.path.exists(), f"{len(projects)} project(s) in {registry.path}"))
    settings = settings or ClaudeSettings()
    checks.append(Check("Router hook", settings.has_hook(ROUTER_COMMAND, "PreToolUse"), str(settings.path)))
    status = check_oauth_status().status
    checks.append(Check("Gemini OAuth", status in {"valid", "expiring_soon"}, get_oauth_info()))
    return checks


def setup_pr_monitoring(command: str = PR_HOOK_COMMAND, settings: Optional[ClaudeSettings] = None) -> bool:
    """Add the PostToolUse ``Bash`` hook that starts PR monitoring after pushes."""
    settings = settings or ClaudeSettings()
    if settings.hook_matcher(command, "PostToolUse") == "Bash":
        return False
    settings.backup()
    settings.add_hook(
        "PostToolUse",
        "Bash",
        command,
        description="Monitor PR and CI status after push",
    )
    settings.save()
    return True
