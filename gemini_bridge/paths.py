"""Filesystem locations shared by the bridge, router and installers.

Every helper resolves lazily so that ``HOME`` and the override variables can be
changed at runtime (tests rely on this).
"""

from __future__ import annotations

import os
from pathlib import Path

PROJECT_DIR_NAME = ".gemini-oddity"


def bridge_home() -> Path:
    override = os.getenv("GEMINI_BRIDGE_HOME")
    return Path(override).expanduser() if override else Path.home() / PROJECT_DIR_NAME


def claude_dir() -> Path:
    override = os.getenv("CLAUDE_CONFIG_DIR")
    return Path(override).expanduser() if override else Path.home() / ".claude"


def config_file() -> Path:
    return bridge_home() / "config.json"


def token_dir() -> Path:
    return bridge_home() / "tokens"


def cache_dir() -> Path:
    return bridge_home() / "cache" / "gemini"


def logs_dir() -> Path:
    return bridge_home() / "logs"


def claude_settings_file() -> Path:
    return claude_dir() / "settings.json"


def registry_file() -> Path:
    return claude_dir() / "bridge-registry.json"


def status_log_file() -> Path:
    return claude_dir() / "bridge-status.log"


def oauth_status_cache() -> Path:
    return claude_dir() / "gemini-oauth-status.json"


def gemini_oauth_creds() -> Path:
    override = os.getenv("GEMINI_OAUTH_CREDS")
    return Path(override).expanduser() if override else Path.home() / ".gemini" / "oauth_creds.json"


def project_bridge_dir(project_root: str | Path) -> Path:
    return Path(project_root) / PROJECT_DIR_NAME
