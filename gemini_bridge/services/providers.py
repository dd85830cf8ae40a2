"""Pluggable AI providers behind a small name-based registry."""

from __future__ import annotations

import os
from typing import Any, Callable, Dict, List, Optional

from ..auth import oauth_manager
from ..errors import BridgeError, OAuthError
from .gemini_client import GeminiClient, GeminiResult


class Provider:
    """Interface every provider implements."""

    name = "base"

    def authenticate(self) -> str:
        raise NotImplementedError

    def validate_auth(self) -> bool:
        raise NotImplementedError

    def execute_request(self, prompt: str, **kwargs: Any) -> GeminiResult:
        raise NotImplementedError

    def get_capabilities(self) -> Dict[str, Any]:
        return {"name": self.name}


class GeminiCliProvider(Provider):
    name = "gemini-cli"

    def __init__(self, client: Optional[GeminiClient] = None) -> None:
        self.client = client or GeminiClient()
        self.auth_method: Optional[str] = None

    def authenticate(self) -> str:
        if oauth_manager.ensure_authenticated(self.client):
            self.auth_method = "oauth"
        elif os.getenv("GEMINI_API_KEY"):
            self.auth_method = "api_key"
        else:
            raise OAuthError("No Gemini credentials: run 'gemini auth login' or set GEMINI_API_KEY")
        return self.auth_method

    def validate_auth(self) -> bool:
        if oauth_manager.check_oauth_status().status in {"valid", "expiring_soon"}:
            return True
        return bool(os.getenv("GEMINI_API_KEY"))

    def execute_request(self, prompt: str, **kwargs: Any) -> GeminiResult:
        if not prompt:
            raise BridgeError("Prompt must not be empty")
        if self.auth_method is None:
            self.authenticate()
        return self.client.run_prompt(prompt, stdin=kwargs.get("stdin"), cwd=kwargs.get("cwd"))

    def get_capabilities(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "auth_methods": ["oauth", "api_key"],
            "streaming": True,
            "max_tokens": 1000000,
        }


_REGISTRY: Dict[str, Callable[[], Provider]] = {}


def register_provider(name: str, factory: Callable[[], Provider]) -> None:
    if not name:
        raise BridgeError("Provider name must not be empty")
    _REGISTRY[name] = factory


def unregister_provider(name: str) -> bool:
    return _REGISTRY.pop(name, None) is not None


def is_provider_registered(name: str) -> bool:
    return name in _REGISTRY


def list_providers() -> List[str]:
    return sorted(_REGISTRY)


def get_provider(name: str) -> Provider:
    try:
        factory = _REGISTRY[name]
    except KeyError as exc:
        raise BridgeError(f"Unknown provider: {name}") from exc
    return factory()


register_provider(GeminiCliProvider.name, GeminiCliProvider)
