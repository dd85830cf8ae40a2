"""Bridge tooling between the Claude Code CLI and the Gemini CLI."""

__version__ = "2.0.0"
