"""Gemini CLI access, response caching, rate limiting and providers."""

from .cache import ResponseCache  # noqa: F401
from .gemini_client import GeminiClient, GeminiResult  # noqa: F401
from .rate_limiter import FileRateLimiter  # noqa: F401
