"""Health checks for the Gemini CLI's own OAuth credentials.

The Gemini CLI stores its Google OAuth tokens in ``~/.gemini/oauth_creds.json``
and refreshes them itself whenever it makes an API call. This module only reads
that file, caches the derived status for the router, and nudges the CLI into
refreshing when the token is close to expiry.
"""

from __future__ import annotations

import json
import subprocess
import time
from datetime import datetime
from typing import Callable, Optional

import typer
from rich.console import Console
from rich.markup import escape

from .. import paths
from ..config import atomic_write_json
from ..errors import GeminiCLIError
from ..schemas.tokens import OAuthStatus
from ..services.gemini_client import GeminiClient

REFRESH_BUFFER = 300
REFRESH_PROMPT = "1+1"

console = Console(stderr=True)
app = typer.Typer(help="Inspect and refresh Gemini CLI OAuth credentials.")


def read_expiry() -> Optional[int]:
    """Expiry of the stored credentials in epoch seconds, or ``None`` when absent."""
    creds_path = paths.gemini_oauth_creds()
    if not creds_path.is_file():
        return None
    try:
        creds = json.loads(creds_path.read_text(encoding="utf-8"))
    except (json.JSONDecodeError, OSError):
        return 0
    if not isinstance(creds, dict):
        return 0
    try:
        if creds.get("expiry_date"):
            return int(int(creds["expiry_date"]) / 1000)
        return int(creds.get("exp") or 0)
    except (TypeError, ValueError):
        return 0


def check_oauth_status(now: Optional[float] = None) -> OAuthStatus:
    current = int(now if now is not None else time.time())
    expiry = read_expiry()
    if expiry is None:
        status = OAuthStatus(status="not_authenticated", checked_at=current)
    else:
        remaining = expiry - current
        if remaining > REFRESH_BUFFER:
            state = "valid"
        elif remaining > 0:
            state = "expiring_soon"
        else:
            state = "expired"
        status = OAuthStatus(status=state, expiry=expiry, time_remaining=remaining, checked_at=current)
    atomic_write_json(paths.oauth_status_cache(), status.model_dump(), mode=0o644)
    return status


def refresh_oauth_token(client: Optional[GeminiClient] = None) -> bool:
    """Run a trivial prompt so the Gemini CLI refreshes its token."""
    client = client or GeminiClient(attempts=1, timeout=60)
    try:
        result = client.run_prompt(REFRESH_PROMPT)
    except GeminiCLIError as exc:
        console.log(f"[red]Token refresh failed:[/] {escape(str(exc))}")
        return False
    if not result.ok:
        console.log(f"[red]Token refresh failed:[/] {escape(result.error[:160])}")
        return False
    new_status = check_oauth_status()
    if new_status.status != "valid":
        console.log(f"[yellow]Token refreshed but status is {new_status.status}[/]")
        return False
    return True


def ensure_authenticated(client: Optional[GeminiClient] = None) -> bool:
    status = check_oauth_status().status
    if status == "valid":
        return True
    if status == "not_authenticated":
        console.log("[red]Gemini not authenticated. Run: gemini auth login[/]")
        return False
    if refresh_oauth_token(client):
        return True
    if status == "expiring_soon":
        console.log("[yellow]Token refresh failed, may need manual re-authentication[/]")
    else:
        console.log("[red]Token expired and refresh failed[/]")
    return False


def get_oauth_info(now: Optional[float] = None) -> str:
    expiry = read_expiry()
    if expiry is None:
        return "Not authenticated"
    remaining = expiry - int(now if now is not None else time.time())
    if remaining <= 0:
        return "Expired"
    minutes = remaining // 60
    hours = minutes // 60
    if hours > 0:
        return f"Valid for {hours}h {minutes % 60}m"
    return f"Valid for {minutes} minutes"


def monitor_oauth_health(
    interval: int = 300,
    max_checks: Optional[int] = None,
    sleep: Callable[[float], None] = time.sleep,
    client: Optional[GeminiClient] = None,
) -> str:
    """Poll the credential status until it becomes ``not_authenticated`` or ``max_checks`` is hit."""
    console.log(f"Starting OAuth health monitor (checking every {interval}s)")
    checks = 0
    status = "valid"
    while max_checks is None or checks < max_checks:
        checks += 1
        status = check_oauth_status().status
        stamp = datetime.now().isoformat(timespec="seconds")
        if status == "expiring_soon":
            console.log(f"[{stamp}] Token expiring soon, refreshing")
            refresh_oauth_token(client)
        elif status == "expired":
            console.log(f"[{stamp}] Token expired, attempting refresh")
            if not refresh_oauth_token(client):
                console.log(f"[red][{stamp}] Token refresh failed, manual intervention needed[/]")
        elif status == "not_authenticated":
            console.log(f"[red][{stamp}] Not authenticated[/]")
            break
        if max_checks is None or checks < max_checks:
            sleep(interval)
    return status


def setup_oauth_interactive(client: Optional[GeminiClient] = None) -> bool:
    client = client or GeminiClient(attempts=1, timeout=60)
    console.print("[green]Gemini OAuth Setup[/]")
    console.print("A browser will open for Google sign-in. Authorize the Gemini CLI, then return here.")
    try:
        proc = subprocess.run([*client.command, "auth", "login"], check=False)
    except FileNotFoundError:
        console.print(f"[red]Gemini CLI '{client.command[0]}' not found[/]")
        return False
    if proc.returncode != 0:
        console.print("[red]OAuth setup command failed[/]")
        return False
    if not paths.gemini_oauth_creds().is_file():
        console.print("[red]OAuth setup failed - credentials file not created[/]")
        return False
    try:
        result = client.run_prompt("Say OK")
    except GeminiCLIError:
        result = None
    if result is None or not result.ok:
        console.print("[yellow]OAuth complete but test prompt failed - you may need to retry[/]")
        return False
    console.print("[green]Gemini connection verified[/]")
    return True


@app.command()
def check():
    """Print the credential status (valid, expiring_soon, expired, not_authenticated)."""
    typer.echo(check_oauth_status().status)


@app.command()
def refresh():
    if not refresh_oauth_token():
        raise typer.Exit(code=1)


@app.command()
def ensure():
    if not ensure_authenticated():
        raise typer.Exit(code=1)


@app.command()
def info():
    typer.echo(get_oauth_info())


@app.command()
def monitor(
    interval: int = typer.Argument(300, help="Seconds between checks."),
    max_checks: Optional[int] = typer.Option(None, "--max-checks", help="Stop after N checks."),
):
    monitor_oauth_health(interval, max_checks=max_checks)


@app.command()
def setup():
    if not setup_oauth_interactive():
        raise typer.Exit(code=1)


@app.command("test")
def self_test():
    """Run a self-test of the OAuth status helpers."""
    status = check_oauth_status().status
    typer.echo(f"Checking OAuth status... {status}")
    typer.echo(f"OAuth info: {get_oauth_info()}")
    if status in {"valid", "expiring_soon"}:
        typer.echo("Testing authentication... " + ("passed" if ensure_authenticated() else "failed"))
    typer.echo(f"OAuth credentials: {paths.gemini_oauth_creds()}")
    typer.echo(f"Status cache: {paths.oauth_status_cache()}")
