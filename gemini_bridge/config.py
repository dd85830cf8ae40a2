"""JSON configuration store for the bridge (``~/.gemini-oddity/config.json``)."""

from __future__ import annotations

import copy
import json
import os
import tempfile
from pathlib import Path
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from . import paths
from .auth.encryption import decrypt_data, encrypt_data, resolve_password
from .errors import ConfigError
from .schemas.tokens import OAuthConfig

SECURE_PREFIX = "enc:"

DEFAULT_CONFIG: Dict[str, Any] = {
    "version": "2.0.0",
    "provider": "gemini-cli",
    "auth_type": "oauth",
    "providers": {},
    "encryption": {"enabled": True, "algorithm": "aes-256-cbc"},
    "settings": {"debug_level": 0, "cache_ttl": 3600, "notify": "subtle"},
}


class _EncryptionSection(BaseModel):
    enabled: bool = True
    algorithm: Literal["aes-256-cbc"] = "aes-256-cbc"


class _SettingsSection(BaseModel):
    model_config = ConfigDict(extra="allow")

    debug_level: int = Field(default=0, ge=0, le=3)
    cache_ttl: int = Field(default=3600, ge=0)
    notify: Literal["quiet", "subtle", "verbose", "debug"] = "subtle"


class BridgeConfigSchema(BaseModel):
    model_config = ConfigDict(extra="allow")

    provider: str = "gemini-cli"
    auth_type: Literal["oauth", "api_key"] = "oauth"
    oauth: Optional[OAuthConfig] = None
    encryption: _EncryptionSection = Field(default_factory=_EncryptionSection)
    settings: _SettingsSection = Field(default_factory=_SettingsSection)


def deep_merge(base: Dict[str, Any], override: Dict[str, Any]) -> Dict[str, Any]:
    merged = copy.deepcopy(base)
    for key, value in override.items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = deep_merge(merged[key], value)
        else:
            merged[key] = copy.deepcopy(value)
    return merged


def atomic_write_json(path: Path, payload: Any, mode: int = 0o600) -> None:
    """Replace ``path`` with ``payload`` via a temp file in the same directory."""
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp_path = tempfile.mkstemp(dir=str(path.parent), suffix=".tmp")
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as fout:
            json.dump(payload, fout, indent=2)
            fout.write("\n")
        os.chmod(tmp_path, mode)
        os.replace(tmp_path, path)
    except Exception:
        if os.path.exists(tmp_path):
            os.unlink(tmp_path)
        raise


def read_json(path: Path, default: Any = None) -> Any:
    if not path.exists():
        return default
    try:
        with path.open("r", encoding="utf-8") as fin:
            return json.load(fin)
    except json.JSONDecodeError as exc:
        raise ConfigError(f"Invalid JSON in {path}: {exc}") from exc


class ConfigManager:
    """Dotted-path access to the bridge configuration document."""

    def __init__(self, path: str | Path | None = None) -> None:
        self.path = Path(path) if path else paths.config_file()
        self.data: Dict[str, Any] = {}
        if self.path.exists():
            self.load()

    def init(self) -> Dict[str, Any]:
        """Load the config, filling missing keys with defaults and saving it."""
        self.data = deep_merge(DEFAULT_CONFIG, read_json(self.path, {}) or {})
        self.save()
        return self.data

    def load(self, path: str | Path | None = None) -> Dict[str, Any]:
        source = Path(path) if path else self.path
        if not source.exists():
            raise ConfigError(f"Config file not found: {source}")
        payload = read_json(source, {})
        if not isinstance(payload, dict):
            raise ConfigError(f"Config root must be an object: {source}")
        self.data = payload
        return self.data

    def save(self, path: str | Path | None = None) -> Path:
        target = Path(path) if path else self.path
        atomic_write_json(target, self.data)
        return target

    def get(self, key: str, default: Any = None) -> Any:
        node: Any = self.data
        for part in key.split("."):
            if not isinstance(node, dict) or part not in node:
                return default
            node = node[part]
        if isinstance(node, str):
            return os.path.expandvars(node)
        return node

    def set(self, key: str, value: Any) -> None:
        parts = key.split(".")
        node = self.data
        for part in parts[:-1]:
            child = node.get(part)
            if not isinstance(child, dict):
                child = {}
                node[part] = child
            node = child
        node[parts[-1]] = value

    def delete(self, key: str) -> bool:
        parts = key.split(".")
        node: Any = self.data
        for part in parts[:-1]:
            node = node.get(part) if isinstance(node, dict) else None
            if node is None:
                return False
        if isinstance(node, dict) and parts[-1] in node:
            del node[parts[-1]]
            return True
        return False

    def merge(self, other: Dict[str, Any] | str | Path) -> Dict[str, Any]:
        if not isinstance(other, dict):
            source = Path(other)
            other = read_json(source, None)
            if not isinstance(other, dict):
                raise ConfigError(f"Cannot merge {source}: not a JSON object")
        self.data = deep_merge(self.data, other)
        return self.data

    def set_secure(self, key: str, value: str, password: str | None = None) -> None:
        self.set(key, SECURE_PREFIX + encrypt_data(value, resolve_password(password)))

    def get_secure(self, key: str, password: str | None = None, default: Any = None) -> Any:
        node: Any = self.data
        for part in key.split("."):
            if not isinstance(node, dict) or part not in node:
                return default
            node = node[part]
        if isinstance(node, str) and node.startswith(SECURE_PREFIX):
            return decrypt_data(node[len(SECURE_PREFIX) :], resolve_password(password))
        return node

    def validate(self) -> List[str]:
        try:
            BridgeConfigSchema.model_validate(self.data)
        except ValidationError as exc:
            return [
                f"{'.'.join(str(loc) for loc in err['loc'])}: {err['msg']}"
                for err in exc.errors()
            ]
        return []

    # provider helpers ----------------------------------------------------
    def set_provider_config(self, provider: str, key: str, value: Any) -> None:
        self.data.setdefault("providers", {}).setdefault(provider, {})[key] = value

    def get_provider_config(self, provider: str, key: str, default: Any = None) -> Any:
        return ((self.data.get("providers") or {}).get(provider) or {}).get(key, default)

    def get_provider_auth_method(self, provider: str) -> str:
        return str(self.get_provider_config(provider, "auth_method", "api_key"))
