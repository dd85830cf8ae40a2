"""Schemas for OAuth configuration and token metadata."""

from __future__ import annotations

from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict, Field

OAuthState = Literal["valid", "expiring_soon", "expired", "not_authenticated"]


class OAuthConfig(BaseModel):
    model_config = ConfigDict(extra="ignore")

    client_id: str = Field(min_length=1)
    client_secret: str = Field(min_length=1)
    token_endpoint: str = Field(min_length=1)
    auth_endpoint: Optional[str] = None
    revoke_endpoint: Optional[str] = None
    redirect_uri: str = "http://localhost:8080/callback"
    scope: Optional[str] = None
    auto_refresh: bool = True


class TokenInfo(BaseModel):
    expires_at: int
    scope: Optional[str] = None
    token_type: str = "Bearer"


class OAuthStatus(BaseModel):
    status: OAuthState
    expiry: int = 0
    time_remaining: int = 0
    checked_at: int = 0
