"""Decide whether a Claude tool call should be handed to Gemini."""

from __future__ import annotations

import os
import re
from dataclasses import asdict, dataclass, field, fields
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional

import yaml
from rich.console import Console

from .schemas.registry import DEFAULT_TOOLS

console = Console(stderr=True)

DEFAULT_TRIGGERS = [
    r"\bdeep(ly)?\s+analy[sz](e|is)\b",
    r"\bthink\s+(carefully|deeply|hard)\b",
    r"\breview\s+(all|every)\s+files?\b",
    r"\barchitect(ure)?\b",
    r"\bcomprehensive\b",
    r"\bpr\s+review\b|\bpull\s+request\s+review\b",
    r"\bsecurity\s+audit\b",
    r"\bentire\s+(codebase|project|repo(sitory)?)\b",
]

_COMPLEXITY_WORDS = re.compile(
    r"\b(review|refactor|analy[sz]\w*|architecture|entire|across|comprehensive|security|audit|all files)\b",
    re.IGNORECASE,
)
_TOOL_WEIGHTS = {"Task": 3, "Grep": 2, "Glob": 2, "Read": 1}


@dataclass
class DelegationSettings:
    tools: str = DEFAULT_TOOLS
    min_files_for_gemini: int = 2
    min_file_size_for_gemini: int = 5120
    claude_token_limit: int = 50000
    gemini_token_limit: int = 800000
    complexity_threshold: int = 6
    keyword_matching_enabled: bool = True
    complexity_scoring_enabled: bool = True
    max_files_per_call: int = 20
    triggers: List[str] = field(default_factory=lambda: list(DEFAULT_TRIGGERS))

    @classmethod
    def load(cls, project_root: str | Path | None = None, overrides: Dict[str, Any] | None = None) -> "DelegationSettings":
        """Defaults, then ``delegation.yaml`` of the project, then env vars, then ``overrides``."""
        values: Dict[str, Any] = {}
        if project_root:
            values.update(_load_yaml(Path(project_root) / ".gemini-oddity" / "delegation.yaml"))
        config_path = os.getenv("DELEGATION_CONFIG_PATH")
        if config_path:
            values.update(_load_yaml(Path(config_path)))
        values.update(_env_overrides())
        values.update(overrides or {})
        known = {f.name: f for f in fields(cls)}
        kwargs: Dict[str, Any] = {}
        for key, value in values.items():
            if key not in known:
                continue
            kwargs[key] = _coerce(value, known[key].type)
        return cls(**kwargs)

    def tool_set(self) -> set[str]:
        return {t.strip() for t in self.tools.split("|") if t.strip()}


@dataclass
class DelegationDecision:
    delegate: bool
    reason: str
    score: int = 0
    file_count: int = 0
    total_size: int = 0
    estimated_tokens: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


def estimate_tokens(size_bytes: int) -> int:
    return max(int(size_bytes), 0) // 4


def check_keyword_triggers(prompt: str, triggers: Iterable[str] = DEFAULT_TRIGGERS) -> Optional[str]:
    for pattern in triggers:
        match = re.search(pattern, prompt or "", re.IGNORECASE)
        if match:
            return match.group(0).lower()
    return None


def calculate_complexity_score(tool: str, prompt: str, file_count: int, total_size: int) -> int:
    score = _TOOL_WEIGHTS.get(tool, 0)
    if file_count >= 10:
        score += 3
    elif file_count >= 5:
        score += 2
    elif file_count >= 2:
        score += 1
    if total_size >= 100_000:
        score += 3
    elif total_size >= 50_000:
        score += 2
    elif total_size >= 10_000:
        score += 1
    score += min(len(_COMPLEXITY_WORDS.findall(prompt or "")), 2)
    return min(score, 10)


class DelegationEngine:
    """Threshold checks applied in a fixed order; the first match wins."""

    def __init__(self, settings: DelegationSettings | None = None) -> None:
        self.settings = settings or DelegationSettings()

    def decide(self, tool: str, prompt: str, files: Iterable[Path]) -> DelegationDecision:
        cfg = self.settings
        file_list = list(files)
        total_size = sum(_file_size(path) for path in file_list)
        tokens = estimate_tokens(total_size + len((prompt or "").encode("utf-8")))
        base = {"file_count": len(file_list), "total_size": total_size, "estimated_tokens": tokens}

        if tool not in cfg.tool_set():
            return DelegationDecision(False, "tool_not_configured", **base)
        if not file_list and not (prompt or "").strip():
            return DelegationDecision(False, "no_content", **base)
        if tokens > cfg.gemini_token_limit:
            return DelegationDecision(False, "exceeds_gemini_limit", **base)

        score = 0
        if cfg.complexity_scoring_enabled:
            score = calculate_complexity_score(tool, prompt, len(file_list), total_size)

        if cfg.keyword_matching_enabled:
            trigger = check_keyword_triggers(prompt, cfg.triggers)
            if trigger:
                return DelegationDecision(True, f"keyword:{trigger}", score, **base)
        if tokens > cfg.claude_token_limit:
            return DelegationDecision(True, "exceeds_claude_limit", score, **base)
        if len(file_list) >= cfg.min_files_for_gemini and total_size >= cfg.min_file_size_for_gemini:
            return DelegationDecision(True, "multi_file", score, **base)
        if cfg.complexity_scoring_enabled and score > cfg.complexity_threshold:
            return DelegationDecision(True, f"complexity:{score}", score, **base)
        return DelegationDecision(False, "below_thresholds", score, **base)


def _file_size(path: Path) -> int:
    try:
        return path.stat().st_size
    except OSError:
        return 0


def _load_yaml(path: Path) -> Dict[str, Any]:
    if not path.is_file():
        return {}
    with path.open("r", encoding="utf-8") as fin:
        payload = yaml.safe_load(fin) or {}
    if not isinstance(payload, dict):
        console.log(f"[yellow]Ignoring {path}: expected a mapping[/]")
        return {}
    return payload.get("delegation", payload)


def _env_overrides() -> Dict[str, Any]:
    mapping = {
        "GEMINI_BRIDGE_TOOLS": "tools",
        "MIN_FILES_FOR_GEMINI": "min_files_for_gemini",
        "MIN_FILE_SIZE_FOR_GEMINI": "min_file_size_for_gemini",
        "CLAUDE_TOKEN_LIMIT": "claude_token_limit",
        "GEMINI_TOKEN_LIMIT": "gemini_token_limit",
        "COMPLEXITY_THRESHOLD": "complexity_threshold",
        "KEYWORD_MATCHING_ENABLED": "keyword_matching_enabled",
        "COMPLEXITY_SCORING_ENABLED": "complexity_scoring_enabled",
        "MAX_FILES_PER_GEMINI": "max_files_per_call",
    }
    return {name: os.environ[env] for env, name in mapping.items() if env in os.environ}


def _coerce(value: Any, annotation: Any) -> Any:
    kind = str(annotation)
    if kind == "bool":
        if isinstance(value, str):
            return value.strip().lower() in {"1", "true", "yes", "on"}
        return bool(value)
    if kind == "int":
        return int(value)
    if kind.startswith("List"):
        return [str(item) for item in (value or [])]
    return str(value)
