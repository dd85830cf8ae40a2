"""PR review debate and CI monitoring.

A ``PostToolUse`` hook on ``Bash`` calls :func:`handle_post_tool_use`; when the
command pushed code or touched a PR, the monitor polls ``gh`` until CI settles
and answers new review comments with canned replies. Each PR gets at most
``MAX_DEBATE_ROUNDS`` replies before a single escalation note is posted.
"""

from __future__ import annotations

import hashlib
import json
import os
import re
import sys
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, Dict, Iterable, List, Optional

import typer
from pydantic import ValidationError
from rich.console import Console
from rich.markup import escape

from .. import paths
from ..config import atomic_write_json, read_json
from ..errors import GitHubCLIError
from ..schemas.github import PRComment, PullRequest, WorkflowRun
from ..schemas.hook import HookPayload, HookResponse
from .github import GitHubCLI

MAX_DEBATE_ROUNDS = 5
BOT_MARKER = "<!-- gemini-bridge -->"
TRIGGER_PATTERNS = [r"git push.*", r"gh pr create", r"gh pr comment.*@claude"]
PENDING_STATES = {"queued", "in_progress", "waiting", "requested", "pending"}
FAILED_CONCLUSIONS = {"failure", "cancelled", "timed_out", "startup_failure", "action_required"}

console = Console(stderr=True)
app = typer.Typer(help="Watch pull requests, CI runs and review comments.")

_MARKERS = [("🔴", "critical"), ("🟡", "suggestion"), ("✅", "approved")]
_NEGATION = re.compile(r"\b(no|not|non|without|nothing|never)\b[\s\w-]*$", re.IGNORECASE)
_APPROVED = re.compile(r"\blgtm\b|\bapprove[sd]?\b|looks good", re.IGNORECASE)
_CRITICAL = re.compile(r"\bmust fix\b|\bblocking\b|\bblocker\b|changes requested|\bcritical\b", re.IGNORECASE)
_SUGGESTION = re.compile(r"\bconsider\b|\bnit\b|\bsuggest(ion)?\b|\bmaybe\b", re.IGNORECASE)

REPLY_TEMPLATES = {
    "approved": "Thanks for the approval! Merging once CI is green.",
    "critical": (
        "Thanks for flagging this. I'll address the blocking issue in a follow-up commit "
        "and re-request review once it is pushed."
    ),
    "suggestion": (
        "Good suggestion. I'll evaluate it and either apply it or explain the trade-off in this thread."
    ),
}
ESCALATION_NOTE = (
    f"This review discussion has reached {MAX_DEBATE_ROUNDS} automated rounds. "
    "Pausing automated replies; a human maintainer should take it from here."
)


def _affirmed(pattern: re.Pattern, text: str) -> bool:
    """True when ``pattern`` matches somewhere that is not preceded by a negation."""
    for match in pattern.finditer(text):
        if not _NEGATION.search(text[max(0, match.start() - 24) : match.start()]):
            return True
    return False


def classify_comment(body: str) -> str:
    """Explicit markers (🔴, 🟡, ✅) decide first; otherwise non-negated keywords,
    ``critical`` over ``suggestion`` over ``approved``."""
    text = body or ""
    for marker, kind in _MARKERS:
        if marker in text:
            return kind
    if _affirmed(_CRITICAL, text):
        return "critical"
    if _affirmed(_SUGGESTION, text):
        return "suggestion"
    if _affirmed(_APPROVED, text):
        return "approved"
    return "neutral"


@dataclass
class CIStatus:
    state: str
    failed: List[str] = field(default_factory=list)
    pending: List[str] = field(default_factory=list)


def summarize_ci(runs: Iterable[WorkflowRun]) -> CIStatus:
    runs = list(runs)
    if not runs:
        return CIStatus("none")
    failed = [run.name for run in runs if (run.conclusion or "").lower() in FAILED_CONCLUSIONS]
    pending = [run.name for run in runs if (run.status or "").lower() in PENDING_STATES]
    if failed:
        return CIStatus("failure", failed, pending)
    if pending:
        return CIStatus("pending", failed, pending)
    return CIStatus("success")


class DebateTracker:
    """Per-PR round counter and processed comment ids, persisted as JSON."""

    def __init__(self, path: str | Path | None = None) -> None:
        self.path = Path(path) if path else paths.bridge_home() / "pr-debate.json"
        self.state: Dict[str, Dict[str, Any]] = read_json(self.path, {}) or {}

    def _entry(self, pr: int) -> Dict[str, Any]:
        return self.state.setdefault(str(pr), {"rounds": 0, "processed": [], "escalated": False})

    def rounds(self, pr: int) -> int:
        return int(self._entry(pr)["rounds"])

    def is_processed(self, pr: int, comment_id: str) -> bool:
        return comment_id in self._entry(pr)["processed"]

    def mark_processed(self, pr: int, comment_id: str) -> None:
        entry = self._entry(pr)
        if comment_id not in entry["processed"]:
            entry["processed"].append(comment_id)

    def record_round(self, pr: int) -> int:
        entry = self._entry(pr)
        entry["rounds"] = int(entry["rounds"]) + 1
        return entry["rounds"]

    def escalated(self, pr: int) -> bool:
        return bool(self._entry(pr)["escalated"])

    def mark_escalated(self, pr: int) -> None:
        self._entry(pr)["escalated"] = True

    def save(self) -> None:
        atomic_write_json(self.path, self.state)


def _comment_key(comment: PRComment) -> str:
    digest = hashlib.sha1(comment.body.encode("utf-8")).hexdigest()[:12]
    return comment.id or f"{comment.author.login}:{digest}"


def respond_to_review(pr: PullRequest, gh: GitHubCLI, tracker: DebateTracker) -> List[str]:
    """Reply to unseen review comments on ``pr``; returns the bodies posted.

    Tracker state is saved even when a post fails, so replies already sent are not repeated.
    """
    posted: List[str] = []
    try:
        for comment in [*pr.reviews, *pr.comments]:
            key = _comment_key(comment)
            if not comment.body.strip() or BOT_MARKER in comment.body or tracker.is_processed(pr.number, key):
                continue
            kind = classify_comment(comment.body)
            if kind == "neutral":
                tracker.mark_processed(pr.number, key)
                continue
            if tracker.rounds(pr.number) >= MAX_DEBATE_ROUNDS:
                if not tracker.escalated(pr.number):
                    body = f"{ESCALATION_NOTE}\n\n{BOT_MARKER}"
                    gh.pr_comment(pr.number, body)
                    tracker.mark_escalated(pr.number)
                    posted.append(body)
                tracker.mark_processed(pr.number, key)
                continue
            mention = f"@{comment.author.login} " if comment.author.login else ""
            body = f"{mention}{REPLY_TEMPLATES[kind]}\n\n{BOT_MARKER}"
            gh.pr_comment(pr.number, body)
            tracker.mark_processed(pr.number, key)
            tracker.record_round(pr.number)
            posted.append(body)
    finally:
        tracker.save()
    return posted


@dataclass
class MonitorReport:
    pr: Optional[PullRequest]
    ci: CIStatus
    replies: List[str] = field(default_factory=list)

    def summary(self) -> str:
        head = f"PR #{self.pr.number} {self.pr.title} [{self.pr.state}]" if self.pr else "No open PR for this branch"
        lines = [head, f"CI: {self.ci.state}"]
        if self.ci.failed:
            lines.append("Failed: " + ", ".join(self.ci.failed))
        if self.ci.pending:
            lines.append("Pending: " + ", ".join(self.ci.pending))
        if self.pr and self.pr.review_decision:
            lines.append(f"Review: {self.pr.review_decision}")
        if self.replies:
            lines.append(f"Posted {len(self.replies)} review repl{'y' if len(self.replies) == 1 else 'ies'}")
        return "\n".join(lines)


class PRMonitor:
    def __init__(self, gh: Optional[GitHubCLI] = None, tracker: Optional[DebateTracker] = None, respond: bool = True) -> None:
        self.gh = gh or GitHubCLI()
        self.tracker = tracker or DebateTracker()
        self.respond = respond

    def poll_once(self, pr_number: Optional[int] = None) -> MonitorReport:
        try:
            pr: Optional[PullRequest] = self.gh.pr_view(pr_number)
        except GitHubCLIError as exc:
            if pr_number is not None:
                raise
            console.log(f"[yellow]No pull request found:[/] {escape(str(exc))}")
            pr = None
        branch = pr.head_ref if pr and pr.head_ref else self.gh.current_branch()
        ci = summarize_ci(self.gh.run_list(branch=branch or None))
        replies = respond_to_review(pr, self.gh, self.tracker) if pr and self.respond else []
        return MonitorReport(pr, ci, replies)

    def monitor(
        self,
        pr_number: Optional[int] = None,
        interval: float = 30,
        timeout: float = 600,
        sleep: Callable[[float], None] = time.sleep,
        clock: Callable[[], float] = time.monotonic,
    ) -> MonitorReport:
        deadline = clock() + timeout
        report = self.poll_once(pr_number)
        while report.ci.state == "pending" and clock() + interval <= deadline:
            console.log(f"CI pending ({', '.join(report.ci.pending)}); next check in {interval:.0f}s")
            sleep(interval)
            report = self.poll_once(pr_number)
        return report


def check_ci_for_head(
    gh: Optional[GitHubCLI] = None,
    *,
    wait: bool = False,
    interval: float = 30,
    max_attempts: int = 20,
    sleep: Callable[[float], None] = time.sleep,
) -> CIStatus:
    """CI status of the runs built from ``git rev-parse HEAD``; optionally wait until they settle."""
    gh = gh or GitHubCLI()
    sha = gh.head_sha()
    branch = gh.current_branch()
    status = CIStatus("none")
    for attempt in range(1, max_attempts + 1):
        runs = [run for run in gh.run_list(branch=branch or None, limit=20) if run.head_sha == sha]
        status = summarize_ci(runs)
        console.log(f"[cyan]{sha[:7]}[/] attempt {attempt}: {status.state}")
        if not wait or status.state not in {"pending", "none"} or attempt == max_attempts:
            break
        sleep(interval)
    return status


def should_trigger(command: str) -> bool:
    return any(re.search(pattern, command or "") for pattern in TRIGGER_PATTERNS)


def handle_post_tool_use(
    payload: HookPayload | Dict[str, Any],
    monitor: Optional[PRMonitor] = None,
    sleep: Callable[[float], None] = time.sleep,
) -> HookResponse:
    """Start a bounded monitor after PR-related shell commands; surface CI failures to Claude."""
    event = payload if isinstance(payload, HookPayload) else HookPayload.model_validate(payload)
    command = str(event.inputs.get("command") or "")
    if event.name != "Bash" or not should_trigger(command):
        return HookResponse.passthrough()
    timeout = float(os.getenv("GEMINI_BRIDGE_PR_TIMEOUT", "300"))
    interval = float(os.getenv("GEMINI_BRIDGE_PR_INTERVAL", "30"))
    try:
        report = (monitor or PRMonitor()).monitor(interval=interval, timeout=timeout, sleep=sleep)
    except GitHubCLIError as exc:
        console.log(f"[red]PR monitor failed:[/] {escape(str(exc))}")
        return HookResponse.passthrough()
    console.log(escape(report.summary()))
    if report.ci.state == "failure":
        return HookResponse.delegated(f"CI failed after '{command}':\n{report.summary()}")
    return HookResponse.passthrough()


def _exit_on_error(exc: GitHubCLIError) -> None:
    console.log(f"[red]{escape(str(exc))}[/]")
    raise typer.Exit(code=1) from exc


@app.command()
def status(pr: Optional[int] = typer.Argument(None, help="PR number (defaults to the current branch).")):
    """Show PR, review and CI state without posting replies."""
    try:
        report = PRMonitor(respond=False).poll_once(pr)
    except GitHubCLIError as exc:
        _exit_on_error(exc)
    typer.echo(report.summary())


@app.command()
def watch(
    pr: Optional[int] = typer.Argument(None),
    interval: float = typer.Option(30, "--interval", help="Seconds between polls."),
    timeout: float = typer.Option(600, "--timeout", help="Give up after this many seconds."),
):
    try:
        report = PRMonitor().monitor(pr, interval=interval, timeout=timeout)
    except GitHubCLIError as exc:
        _exit_on_error(exc)
    typer.echo(report.summary())
    if report.ci.state == "failure":
        raise typer.Exit(code=1)


@app.command()
def respond(pr: int = typer.Argument(..., help="PR number.")):
    """Answer new review comments once."""
    monitor = PRMonitor()
    try:
        replies = respond_to_review(monitor.gh.pr_view(pr), monitor.gh, monitor.tracker)
    except GitHubCLIError as exc:
        _exit_on_error(exc)
    typer.echo(f"Posted {len(replies)} replies")


@app.command()
def hook():
    """PostToolUse entry point: reads the hook JSON from stdin."""
    raw = sys.stdin.read()
    try:
        payload = HookPayload.model_validate(json.loads(raw or "{}"))
    except (json.JSONDecodeError, ValidationError):
        typer.echo(HookResponse.passthrough().to_json())
        return
    typer.echo(handle_post_tool_use(payload).to_json())


@app.command()
def ci(
    wait: bool = typer.Option(False, "--wait", help="Poll until runs for HEAD finish."),
    interval: float = typer.Option(30, "--interval"),
    attempts: int = typer.Option(20, "--attempts"),
):
    """Report CI status for the current HEAD commit."""
    try:
        result = check_ci_for_head(wait=wait, interval=interval, max_attempts=attempts)
    except GitHubCLIError as exc:
        _exit_on_error(exc)
    typer.echo(result.state)
    if result.failed:
        typer.echo("Failed: " + ", ".join(result.failed))
    if result.state != "success":
        raise typer.Exit(code=1)
