"""Thin wrapper around the ``gh`` and ``git`` binaries."""

from __future__ import annotations

import json
import subprocess
from typing import Any, Callable, List, Optional

from pydantic import ValidationError

from ..errors import GitHubCLIError
from ..schemas.github import PullRequest, WorkflowRun

PR_FIELDS = "number,title,state,headRefName,reviewDecision,reviews,comments"
RUN_FIELDS = "databaseId,name,status,conclusion,headSha"


class GitHubCLI:
    def __init__(
        self,
        binary: str = "gh",
        cwd: Optional[str] = None,
        runner: Callable[..., subprocess.CompletedProcess] = subprocess.run,
    ) -> None:
        self.binary = binary
        self.cwd = cwd
        self.runner = runner

    def _run(self, args: List[str]) -> str:
        try:
            proc = self.runner(args, capture_output=True, text=True, cwd=self.cwd, check=False, timeout=60)
        except FileNotFoundError as exc:
            raise GitHubCLIError(f"'{args[0]}' not found in PATH") from exc
        except subprocess.TimeoutExpired as exc:
            raise GitHubCLIError(f"'{' '.join(args[:3])}' timed out") from exc
        if proc.returncode != 0:
            raise GitHubCLIError(f"{' '.join(args[:3])} failed: {(proc.stderr or '').strip()[:200]}")
        return proc.stdout or ""

    def _json(self, args: List[str]) -> Any:
        output = self._run(args)
        try:
            return json.loads(output or "null")
        except json.JSONDecodeError as exc:
            raise GitHubCLIError(f"Unexpected output from {' '.join(args[:3])}") from exc

    def pr_view(self, number: Optional[int] = None) -> PullRequest:
        args = [self.binary, "pr", "view"]
        if number is not None:
            args.append(str(number))
        args += ["--json", PR_FIELDS]
        try:
            return PullRequest.model_validate(self._json(args))
        except ValidationError as exc:
            raise GitHubCLIError(f"Could not parse pull request data: {exc}") from exc

    def run_list(self, branch: Optional[str] = None, limit: int = 5) -> List[WorkflowRun]:
        args = [self.binary, "run", "list", "--limit", str(limit), "--json", RUN_FIELDS]
        if branch:
            args += ["--branch", branch]
        payload = self._json(args) or []
        try:
            return [WorkflowRun.model_validate(item) for item in payload]
        except ValidationError as exc:
            raise GitHubCLIError(f"Could not parse workflow runs: {exc}") from exc

    def pr_comment(self, number: int, body: str) -> None:
        self._run([self.binary, "pr", "comment", str(number), "--body", body])

    def current_branch(self) -> str:
        return self._run(["git", "branch", "--show-current"]).strip()

    def head_sha(self) -> str:
        return self._run(["git", "rev-parse", "HEAD"]).strip()
