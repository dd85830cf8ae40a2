"""``gemini-bridge`` command line entry point."""

from __future__ import annotations

import json
import sys
from pathlib import Path
from typing import List, Optional

import typer
from dotenv import load_dotenv
from rich.console import Console
from rich.table import Table

from . import __version__
from .auth.oauth_manager import app as oauth_app
from .automation.pr_monitor import app as pr_app
from .config import ConfigManager
from .delegation import DelegationEngine, DelegationSettings
from .errors import BridgeError
from .hooks import router
from .hooks.bridge import collect_files, run_hook
from .hooks.registry import ProjectRegistry
from .install import installer
from .install.settings import ClaudeSettings
from .schemas.registry import DEFAULT_TOOLS

app = typer.Typer(help="Route Claude Code tool calls to the Gemini CLI.")
config_app = typer.Typer(help="Read and edit ~/.gemini-oddity/config.json.")
delegation_app = typer.Typer(help="Inspect delegation decisions.")
app.add_typer(oauth_app, name="oauth")
app.add_typer(pr_app, name="pr")
app.add_typer(config_app, name="config")
app.add_typer(delegation_app, name="delegation")

console = Console()


@app.callback()
def main():
    """Route Claude Code tool calls to the Gemini CLI."""
    load_dotenv()


@app.command()
def version():
    typer.echo(__version__)


@app.command()
def route():
    """Global PreToolUse hook: reads the tool call from stdin, writes the hook response."""
    typer.echo(router.run_router(sys.stdin.read()))


@app.command()
def hook(
    project: Optional[Path] = typer.Option(None, "--project", help="Project root (defaults to GEMINI_ODDITY_PROJECT_ROOT)."),
):
    """Run the bridge hook directly, bypassing the project registry."""
    typer.echo(run_hook(sys.stdin.read(), project))


@app.command()
def install(
    project: Path = typer.Argument(Path("."), help="Project directory."),
    tools: str = typer.Option(DEFAULT_TOOLS, "--tools", help="Pipe-separated tools to delegate."),
    cron: bool = typer.Option(False, "--cron", help="Install a crontab line that refreshes the Gemini token."),
    force: bool = typer.Option(False, "--force", help="Install even when required binaries are missing."),
):
    """Register a project and install the router hook."""
    missing = installer.missing_requirements()
    for prereq in missing:
        console.log(f"[red]{prereq.name} CLI not found.[/] {prereq.hint}")
    if missing and not force:
        raise typer.Exit(code=1)
    try:
        result = installer.install(project, tools, cron=cron)
    except BridgeError as exc:
        console.log(f"[red]Install failed:[/] {exc}")
        raise typer.Exit(code=1) from exc
    console.print(f"[green]Bridge installed for[/] {result['project']} ({result['tools']})")


@app.command()
def uninstall(
    project: Path = typer.Argument(Path(".")),
    remove_files: bool = typer.Option(False, "--remove-files", help="Delete the project's .gemini-oddity directory."),
):
    result = installer.uninstall(project, remove_files=remove_files)
    if not result["unregistered"]:
        console.log(f"[yellow]{result['project']} was not registered[/]")
    console.print(f"[green]Bridge removed from[/] {result['project']}")


@app.command()
def register(
    project: Path = typer.Argument(Path(".")),
    tools: str = typer.Option(DEFAULT_TOOLS, "--tools"),
):
    """Add a project to the registry and refresh the router hook's tool matcher."""
    registry = ProjectRegistry()
    entry = registry.register(project, tools)
    installer.sync_router_hook(ClaudeSettings(), registry)
    console.print(f"[green]Registered[/] {project.resolve()} ({entry.config.tools})")


@app.command()
def unregister(project: Path = typer.Argument(Path("."))):
    registry = ProjectRegistry()
    if not registry.unregister(project):
        console.print(f"[yellow]{project.resolve()} is not registered[/]")
        raise typer.Exit(code=1)
    installer.sync_router_hook(ClaudeSettings(), registry)
    console.print(f"[green]Unregistered[/] {project.resolve()}")


@app.command("list")
def list_projects():
    projects = ProjectRegistry().list()
    if not projects:
        console.print("No registered projects")
        return
    table = Table("Project", "Tools", "Enabled", "Version")
    for path, entry in sorted(projects.items()):
        table.add_row(path, entry.config.tools, "yes" if entry.config.enabled else "no", entry.bridge_version)
    console.print(table)


@app.command()
def status():
    info = router.status()
    console.print(f"Version: {info['version']}")
    console.print(f"Registry: {info['registry']}")
    console.print(f"Notification: {info['notify']}")
    console.print("Registered projects:")
    for path, bridge_version in info["projects"].items():
        console.print(f"  ✓ {path} (v{bridge_version})")
    if not info["projects"]:
        console.print("  None")


@app.command()
def verify():
    checks = installer.verify()
    table = Table("Check", "Status", "Detail")
    for check in checks:
        table.add_row(check.name, "[green]ok[/]" if check.ok else "[red]fail[/]", check.detail)
    console.print(table)
    if not all(check.ok for check in checks):
        raise typer.Exit(code=1)


@app.command("setup-pr-monitoring")
def setup_pr_monitoring(command: str = typer.Option(installer.PR_HOOK_COMMAND, "--command")):
    if installer.setup_pr_monitoring(command):
        console.print("[green]PR monitoring configured[/] (git push, gh pr create, gh pr comment @claude)")
    else:
        console.print("PR monitoring already configured")


@config_app.command("init")
def config_init():
    manager = ConfigManager()
    manager.init()
    console.print(f"[green]Config written to[/] {manager.path}")


@config_app.command("get")
def config_get(key: str, secure: bool = typer.Option(False, "--secure", help="Decrypt an enc: value.")):
    manager = ConfigManager()
    value = manager.get_secure(key) if secure else manager.get(key)
    if value is None:
        raise typer.Exit(code=1)
    typer.echo(json.dumps(value) if isinstance(value, (dict, list)) else str(value))


@config_app.command("set")
def config_set(key: str, value: str, secure: bool = typer.Option(False, "--secure", help="Store the value encrypted.")):
    manager = ConfigManager()
    if secure:
        manager.set_secure(key, value)
    else:
        try:
            manager.set(key, json.loads(value))
        except json.JSONDecodeError:
            manager.set(key, value)
    manager.save()


@config_app.command("validate")
def config_validate():
    errors = ConfigManager().validate()
    for error in errors:
        console.print(f"[red]{error}[/]")
    if errors:
        raise typer.Exit(code=1)
    console.print("[green]Config is valid[/]")


@delegation_app.command("check")
def delegation_check(
    tool: str = typer.Argument(..., help="Tool name, e.g. Read or Task."),
    files: List[Path] = typer.Argument(None, help="Files the call would touch."),
    prompt: str = typer.Option("", "--prompt", "-p"),
    project: Optional[Path] = typer.Option(None, "--project"),
):
    """Show what the bridge would decide for a tool call."""
    settings = DelegationSettings.load(project)
    paths = [p.resolve() for p in files or []]
    if not paths and tool == "Task":
        paths = collect_files(tool, {"prompt": prompt}, Path.cwd(), settings.max_files_per_call)
    decision = DelegationEngine(settings).decide(tool, prompt, paths)
    typer.echo(json.dumps(decision.to_dict(), indent=2))


if __name__ == "__main__":
    app()
