"""Credential handling: encryption, token storage and OAuth flows."""
