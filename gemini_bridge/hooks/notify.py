"""User-facing notifications for hook activity.

Every message is appended to ``~/.claude/bridge-status.log``. What reaches the
terminal (stderr) depends on ``GEMINI_ODDITY_NOTIFY`` or ``settings.notify``.
"""

from __future__ import annotations

import os
from datetime import datetime

from rich.console import Console
from rich.markup import escape

from .. import paths
from ..config import ConfigManager
from ..errors import ConfigError

LEVELS = ("quiet", "subtle", "verbose", "debug")
DEFAULT_LEVEL = "subtle"

console = Console(stderr=True, highlight=False)

_VERBOSE_STYLES = {
    "ACTIVE": "green",
    "DELEGATE": "blue",
    "SUCCESS": "green",
    "ERROR": "red",
    "SKIP": "dim",
}


def notify_level() -> str:
    """``GEMINI_ODDITY_NOTIFY``, then ``settings.notify`` from the bridge config, then ``subtle``."""
    level = (os.getenv("GEMINI_ODDITY_NOTIFY") or "").strip().lower()
    if level in LEVELS:
        return level
    try:
        configured = ConfigManager().get("settings.notify")
    except ConfigError:
        configured = None
    level = str(configured or "").strip().lower()
    return level if level in LEVELS else DEFAULT_LEVEL


def notify_user(kind: str, message: str) -> None:
    log_path = paths.status_log_file()
    log_path.parent.mkdir(parents=True, exist_ok=True)
    stamp = datetime.now().astimezone().isoformat(timespec="seconds")
    with log_path.open("a", encoding="utf-8") as fout:
        fout.write(f"{stamp} [{kind}] {message}\n")

    level = notify_level()
    message = escape(message)
    if level == "subtle":
        if kind == "DELEGATE":
            console.print("[dim]🌉[/]")
        elif kind == "ERROR":
            console.print(f"[red]⚠️ Bridge: {message}[/]")
    elif level == "verbose":
        style = _VERBOSE_STYLES.get(kind)
        text = f"🌉 Bridge: {message}"
        console.print(f"[{style}]{text}[/]" if style else text)
    elif level == "debug":
        console.print(f"[dim]🌉 {escape(f'[DEBUG][{kind}]')} {message}[/]")
