"""Pydantic models for hook IO, tokens, the project registry and GitHub data."""

from .hook import HookAuditRecord, HookPayload, HookResponse  # noqa: F401
from .registry import ProjectConfig, ProjectEntry, Registry  # noqa: F401
from .tokens import OAuthConfig, OAuthStatus, TokenInfo  # noqa: F401
