"""Generic OAuth2 client backed by :class:`TokenStore`."""

from __future__ import annotations

import secrets
from typing import Any, Dict, Optional
from urllib.parse import urlencode

import httpx
from pydantic import ValidationError
from rich.console import Console
from tenacity import Retrying, retry_if_exception_type, stop_after_attempt, wait_fixed

from ..config import ConfigManager
from ..errors import OAuthError
from ..schemas.tokens import OAuthConfig
from .token_store import TokenStore

console = Console(stderr=True)


class OAuthHandler:
    def __init__(
        self,
        config: OAuthConfig | Dict[str, Any],
        store: TokenStore | None = None,
        *,
        transport: httpx.BaseTransport | None = None,
        timeout: float = 30.0,
        attempts: int = 3,
        wait_seconds: float = 1.0,
    ) -> None:
        self.raw_config = config
        self.config: Optional[OAuthConfig] = config if isinstance(config, OAuthConfig) else None
        self.store = store or TokenStore()
        self.transport = transport
        self.timeout = timeout
        self.attempts = attempts
        self.wait_seconds = wait_seconds

    @classmethod
    def from_config_manager(cls, manager: ConfigManager, **kwargs: Any) -> "OAuthHandler":
        return cls(manager.get("oauth") or {}, **kwargs)

    def validate_config(self) -> OAuthConfig:
        if self.config is None:
            try:
                self.config = OAuthConfig.model_validate(self.raw_config or {})
            except ValidationError as exc:
                missing = ", ".join(str(err["loc"][0]) for err in exc.errors())
                raise OAuthError(f"Invalid OAuth configuration: {missing}") from exc
        return self.config

    def authorization_url(self, state: Optional[str] = None) -> str:
        cfg = self.validate_config()
        if not cfg.auth_endpoint:
            raise OAuthError("oauth.auth_endpoint is not configured")
        params = {
            "client_id": cfg.client_id,
            "redirect_uri": cfg.redirect_uri,
            "response_type": "code",
            "state": state or secrets.token_urlsafe(16),
            "access_type": "offline",
        }
        if cfg.scope:
            params["scope"] = cfg.scope
        return f"{cfg.auth_endpoint}?{urlencode(params)}"

    def _post(self, url: str, data: Dict[str, str]) -> Dict[str, Any]:
        retrying = Retrying(
            stop=stop_after_attempt(self.attempts),
            wait=wait_fixed(self.wait_seconds),
            retry=retry_if_exception_type(httpx.TransportError),
            reraise=True,
        )
        try:
            with httpx.Client(transport=self.transport, timeout=self.timeout) as client:
                for attempt in retrying:
                    with attempt:
                        response = client.post(url, data=data, headers={"Accept": "application/json"})
        except httpx.TransportError as exc:
            raise OAuthError(f"OAuth endpoint unreachable: {exc}") from exc
        if response.status_code >= 400:
            detail = _error_detail(response)
            raise OAuthError(f"OAuth request failed ({response.status_code}): {detail}")
        if not response.content:
            return {}
        try:
            return response.json()
        except ValueError as exc:
            raise OAuthError("OAuth endpoint returned invalid JSON") from exc

    def _store_response(self, payload: Dict[str, Any], fallback_refresh: Optional[str] = None) -> str:
        access = payload.get("access_token")
        if not access:
            raise OAuthError("Token response did not contain an access_token")
        self.store.store_tokens(
            access,
            payload.get("refresh_token") or fallback_refresh,
            int(payload.get("expires_in", 3600)),
            payload.get("scope") or (self.config.scope if self.config else None),
            payload.get("token_type", "Bearer"),
        )
        return access

    def exchange_code(self, code: str) -> str:
        cfg = self.validate_config()
        payload = self._post(
            cfg.token_endpoint,
            {
                "grant_type": "authorization_code",
                "code": code,
                "redirect_uri": cfg.redirect_uri,
                "client_id": cfg.client_id,
                "client_secret": cfg.client_secret,
            },
        )
        console.log("[green]OAuth tokens stored[/]")
        return self._store_response(payload)

    def refresh_token(self) -> str:
        cfg = self.validate_config()
        refresh = self.store.load_refresh_token()
        if not refresh:
            raise OAuthError("No refresh token available; run the authorization flow again")
        payload = self._post(
            cfg.token_endpoint,
            {
                "grant_type": "refresh_token",
                "refresh_token": refresh,
                "client_id": cfg.client_id,
                "client_secret": cfg.client_secret,
            },
        )
        console.log("[green]OAuth access token refreshed[/]")
        return self._store_response(payload, fallback_refresh=refresh)

    def get_access_token(self) -> str:
        cfg = self.validate_config()
        if not self.store.has_tokens():
            raise OAuthError("Not authenticated")
        if self.store.is_token_expired():
            if not cfg.auto_refresh:
                raise OAuthError("Access token expired and auto_refresh is disabled")
            return self.refresh_token()
        token = self.store.load_access_token()
        if not token:
            raise OAuthError("Not authenticated")
        return token

    def revoke_tokens(self) -> bool:
        cfg = self.validate_config()
        revoked = False
        if cfg.revoke_endpoint:
            for token in (self.store.load_refresh_token(), self.store.load_access_token()):
                if token:
                    self._post(cfg.revoke_endpoint, {"token": token})
                    revoked = True
        self.store.clear()
        return revoked

    def status(self) -> Dict[str, Any]:
        info = self.store.token_info()
        return {
            "authenticated": self.store.has_tokens(),
            "expired": self.store.is_token_expired() if info else True,
            "expires_at": info.expires_at if info else None,
            "scope": info.scope if info else None,
            "has_refresh_token": self.store.load_refresh_token() is not None,
        }


def _error_detail(response: httpx.Response) -> str:
    try:
        body = response.json()
    except ValueError:
        return response.text[:200]
    if isinstance(body, dict):
        return str(body.get("error_description") or body.get("error") or body)
    return str(body)
