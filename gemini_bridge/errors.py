"""Exceptions raised across the bridge."""

from __future__ import annotations


class BridgeError(Exception):
    """Base class for bridge failures."""


class ConfigError(BridgeError):
    pass


class EncryptionError(BridgeError):
    pass


class OAuthError(BridgeError):
    pass


class GeminiCLIError(BridgeError):
    """The gemini binary is missing, timed out or exited non-zero."""


class GitHubCLIError(BridgeError):
    """A ``gh`` or ``git`` invocation failed."""
