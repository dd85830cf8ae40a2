"""PreToolUse hook that hands heavy read-only tool calls to Gemini."""

from __future__ import annotations

import fnmatch
import glob
import json
import os
import re
import time
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml
from pydantic import ValidationError
from rich.console import Console

from ..auth import oauth_manager
from ..config import ConfigManager
from ..delegation import DelegationDecision, DelegationEngine, DelegationSettings
from ..errors import BridgeError
from ..observability.audit import HookAuditLogger
from ..observability.telemetry import TelemetryLogger
from ..schemas.hook import HookAuditRecord, HookPayload, HookResponse
from ..services.cache import ResponseCache, fingerprint
from ..services.gemini_client import GeminiClient
from ..services.rate_limiter import FileRateLimiter
from .notify import notify_user

console = Console(stderr=True)

_SKIP_DIRS = {".git", "node_modules", "__pycache__", ".venv", "venv", ".gemini-oddity", "dist", "build"}
_AT_PATH = re.compile(r"@([\w./~-]+)")
_PATHLIKE = re.compile(r"(?:~|\.{0,2}/)?[\w.-]+(?:/[\w.-]+)*\.\w+")
_BRACE = re.compile(r"\{([^{}]*)\}")
MAX_FILE_BYTES = 2_000_000


def _flag(name: str, default: str = "0") -> bool:
    return os.getenv(name, default).strip().lower() in {"1", "true", "yes", "on"}


def _resolve(candidate: str, base: Path) -> Path:
    path = Path(candidate).expanduser()
    return path if path.is_absolute() else base / path


def expand_braces(pattern: str) -> List[str]:
    """``*.{py,ts}`` -> ``["*.py", "*.ts"]``; nested groups expand left to right."""
    match = _BRACE.search(pattern)
    if not match:
        return [pattern]
    head, tail = pattern[: match.start()], pattern[match.end() :]
    expanded: List[str] = []
    for option in match.group(1).split(","):
        expanded.extend(expand_braces(head + option + tail))
    return expanded


def glob_matches(relative: str, pattern: str) -> bool:
    """Match a ``/``-separated path relative to the search root; ``**/`` spans any number of directories."""
    name = relative.rsplit("/", 1)[-1]
    for option in expand_braces(pattern):
        candidates = {option}
        while "**/" in option:
            option = option.replace("**/", "", 1)
            candidates.add(option)
        for candidate in candidates:
            if fnmatch.fnmatchcase(relative, candidate):
                return True
            if "/" not in candidate and fnmatch.fnmatchcase(name, candidate):
                return True
    return False


def _walk(root: Path, pattern: str, limit: int) -> List[Path]:
    found: List[Path] = []
    for dirpath, dirnames, filenames in os.walk(root):
        dirnames[:] = sorted(d for d in dirnames if d not in _SKIP_DIRS)
        for name in sorted(filenames):
            relative = (Path(dirpath) / name).relative_to(root).as_posix()
            if glob_matches(relative, pattern):
                found.append(Path(dirpath) / name)
                if len(found) >= limit:
                    return found
    return found


def collect_files(tool: str, tool_input: Dict[str, Any], cwd: str | Path | None = None, limit: int = 20) -> List[Path]:
    """Existing regular files referenced by a tool call, de-duplicated and capped at ``limit``."""
    base = Path(cwd or os.getcwd())
    candidates: List[Path] = []
    if tool == "Read":
        if tool_input.get("file_path"):
            candidates.append(_resolve(str(tool_input["file_path"]), base))
    elif tool == "Glob":
        root = _resolve(str(tool_input.get("path") or base), base)
        pattern = str(tool_input.get("pattern") or "")
        for option in expand_braces(pattern) if pattern else []:
            full = option if os.path.isabs(option) else str(root / option)
            candidates.extend(Path(p) for p in sorted(glob.glob(full, recursive=True)))
    elif tool == "Grep":
        root = _resolve(str(tool_input.get("path") or base), base)
        if root.is_file():
            candidates.append(root)
        elif root.is_dir():
            candidates.extend(_walk(root, str(tool_input.get("glob") or "*"), limit * 5))
    elif tool == "Task":
        text = " ".join(str(tool_input.get(key) or "") for key in ("prompt", "description"))
        tokens = _AT_PATH.findall(text) + _PATHLIKE.findall(text)
        candidates.extend(_resolve(token.rstrip(".,;:"), base) for token in tokens)

    files: List[Path] = []
    seen = set()
    for path in candidates:
        try:
            resolved = path.resolve()
        except OSError:
            continue
        if resolved in seen or not resolved.is_file():
            continue
        seen.add(resolved)
        files.append(resolved)
        if len(files) >= limit:
            break
    return files


def request_text(tool: str, tool_input: Dict[str, Any]) -> str:
    """Free text of the request used for keyword and complexity checks."""
    if tool == "Task":
        return " ".join(str(tool_input.get(k) or "") for k in ("description", "prompt")).strip()
    if tool == "Grep":
        return str(tool_input.get("pattern") or "")
    return ""


def describe_task(tool: str, tool_input: Dict[str, Any]) -> str:
    if tool == "Task":
        return request_text(tool, tool_input) or "Analyze the referenced files."
    if tool == "Grep":
        return f"Search the files for the pattern '{tool_input.get('pattern', '')}' and report every match with its context."
    if tool == "Glob":
        return f"Summarize the files matching '{tool_input.get('pattern', '')}': purpose, structure and notable details."
    return "Analyze the file: summarize its purpose, structure and anything noteworthy."


def build_prompt(tool: str, tool_input: Dict[str, Any], files: List[Path], root: Path) -> str:
    lines = [
        "You are assisting Claude Code with a large read-only request.",
        f"Tool: {tool}",
        "Task:",
        describe_task(tool, tool_input),
        "",
        "Files (contents follow on stdin, each preceded by a '=== path ===' header):",
    ]
    for path in files:
        try:
            lines.append(f"- {path.relative_to(root)}")
        except ValueError:
            lines.append(f"- {path}")
    lines += ["", "Answer concisely with concrete references to file names and line content."]
    return "\n".join(lines)


def build_stdin(files: List[Path]) -> str:
    chunks = []
    for path in files:
        try:
            with path.open("r", encoding="utf-8", errors="replace") as fin:
                content = fin.read(MAX_FILE_BYTES)
        except OSError as exc:
            content = f"<unreadable: {exc}>"
        chunks.append(f"=== {path} ===\n{content}")
    return "\n\n".join(chunks)


class BridgeHook:
    """One hook invocation: decide, then optionally call Gemini."""

    def __init__(
        self,
        project_root: str | Path | None = None,
        *,
        settings: DelegationSettings | None = None,
        client: GeminiClient | None = None,
        cache: ResponseCache | None = None,
        limiter: FileRateLimiter | None = None,
        telemetry: TelemetryLogger | None = None,
        audit: HookAuditLogger | None = None,
    ) -> None:
        root = project_root or os.getenv("GEMINI_ODDITY_PROJECT_ROOT")
        self.project_root = Path(root) if root else None
        self.settings = settings or DelegationSettings.load(self.project_root)
        self.engine = DelegationEngine(self.settings)
        self.client = client or GeminiClient()
        self.cache = cache or ResponseCache(ttl=int(ConfigManager().get("settings.cache_ttl", 3600) or 0))
        self.limiter = limiter or FileRateLimiter(rpm=int(os.getenv("GEMINI_BRIDGE_RPM", "30")))
        self.telemetry = telemetry or TelemetryLogger()
        self.audit = audit or HookAuditLogger()

    def process_tool_call(self, payload: HookPayload | Dict[str, Any]) -> HookResponse:
        started = time.monotonic()
        errors: List[str] = []
        tool = ""
        decision: Optional[DelegationDecision] = None
        cached = False
        try:
            event = payload if isinstance(payload, HookPayload) else HookPayload.model_validate(payload)
            tool = event.name
            response, decision, cached = self._handle(event)
        except Exception as exc:  # hook must never break the Claude session
            errors.append(str(exc))
            notify_user("ERROR", f"Bridge failure for {tool or 'unknown tool'}: {exc}")
            response = HookResponse.passthrough()
        self.audit.log(
            HookAuditRecord(
                tool=tool or "unknown",
                project=str(self.project_root) if self.project_root else None,
                delegated=response.is_delegated,
                reason=decision.reason if decision else "error",
                duration_ms=int((time.monotonic() - started) * 1000),
                cached=cached,
                errors=errors,
            )
        )
        return response

    def _handle(self, event: HookPayload):
        tool = event.name
        tool_input = event.inputs
        root = self.project_root or Path(event.cwd or os.getcwd())
        files = collect_files(tool, tool_input, event.cwd or root, self.settings.max_files_per_call)
        decision = self.engine.decide(tool, request_text(tool, tool_input), files)
        console.log(f"[cyan]{tool}[/] files={decision.file_count} tokens={decision.estimated_tokens} -> {decision.reason}")
        if not decision.delegate:
            return HookResponse.passthrough(), decision, False

        if _flag("GEMINI_BRIDGE_DRY_RUN"):
            notify_user("SKIP", f"Dry run: would delegate {tool} ({decision.reason})")
            self.telemetry.log("dry_run", {"tool": tool, **decision.to_dict()})
            return HookResponse.passthrough(), decision, False

        key = fingerprint(tool, tool_input, files)
        cached_output = self.cache.get(key)
        if cached_output is not None:
            notify_user("SUCCESS", f"Served {tool} from cache")
            self.telemetry.log("cache_hit", {"tool": tool, **decision.to_dict()})
            return HookResponse.delegated(_format_reason(decision, cached_output)), decision, True

        if not self.limiter.wait_for_slot(max_wait=float(os.getenv("GEMINI_BRIDGE_RATE_WAIT", "10"))):
            notify_user("SKIP", "Gemini rate limit reached; letting Claude handle the call")
            return HookResponse.passthrough(), decision, False

        if _flag("GEMINI_BRIDGE_OAUTH_CHECK", "1") and not os.getenv("GEMINI_API_KEY"):
            if not oauth_manager.ensure_authenticated(self.client):
                notify_user("ERROR", "Gemini authentication unavailable; run 'gemini auth login'")
                return HookResponse.passthrough(), decision, False

        notify_user("DELEGATE", f"Delegating {tool} to Gemini ({decision.reason})")
        result = self.client.run_prompt(
            build_prompt(tool, tool_input, files, root),
            stdin=build_stdin(files),
            cwd=str(root) if root.is_dir() else None,
        )
        if not result.ok or not result.output:
            notify_user("ERROR", f"Gemini call failed (exit {result.returncode}): {result.error[:120]}")
            self.telemetry.log("gemini_error", {"tool": tool, "error": result.error, **decision.to_dict()})
            return HookResponse.passthrough(), decision, False

        self.cache.put(key, result.output)
        self.telemetry.log("delegated", {"tool": tool, "output_chars": len(result.output), **decision.to_dict()})
        notify_user("SUCCESS", f"Gemini handled {tool}")
        return HookResponse.delegated(_format_reason(decision, result.output)), decision, False


def _format_reason(decision: DelegationDecision, output: str) -> str:
    return f"Gemini analysis ({decision.reason}, {decision.file_count} files):\n\n{output}"


def parse_payload(raw: str) -> Optional[HookPayload]:
    try:
        return HookPayload.model_validate(json.loads(raw or "{}"))
    except (json.JSONDecodeError, ValidationError):
        return None


def run_hook(raw: str, project_root: str | Path | None = None, **kwargs: Any) -> str:
    """stdin text in, hook JSON out."""
    payload = parse_payload(raw)
    if payload is None:
        notify_user("ERROR", "Could not parse hook input")
        return HookResponse.passthrough().to_json()
    try:
        hook = BridgeHook(project_root, **kwargs)
    except (BridgeError, yaml.YAMLError, ValueError) as exc:
        notify_user("ERROR", f"Bridge configuration error: {exc}")
        return HookResponse.passthrough().to_json()
    return hook.process_tool_call(payload).to_json()
