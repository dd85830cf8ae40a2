"""Wrapper around the ``gemini`` binary."""

from __future__ import annotations

import os
import shutil
import subprocess
from dataclasses import dataclass
from shlex import split
from typing import List, Optional

from rich.console import Console
from rich.markup import escape
from tenacity import Retrying, retry_if_exception_type, stop_after_attempt, wait_fixed

from ..errors import GeminiCLIError

console = Console(stderr=True)


@dataclass
class GeminiResult:
    ok: bool
    output: str
    error: str = ""
    returncode: int = 0


class GeminiClient:
    """Run one-shot prompts through the Gemini CLI."""

    def __init__(
        self,
        binary: Optional[str] = None,
        *,
        timeout: Optional[int] = None,
        model: Optional[str] = None,
        attempts: Optional[int] = None,
        wait_seconds: Optional[float] = None,
    ) -> None:
        self.command = split(binary or os.getenv("GEMINI_CLI_COMMAND") or "gemini")
        self.timeout = timeout or int(os.getenv("GEMINI_CLI_TIMEOUT", "300"))
        self.model = model or os.getenv("GEMINI_MODEL")
        self.attempts = max(1, attempts or int(os.getenv("GEMINI_CLI_ATTEMPTS", "2")))
        self.wait_seconds = max(0.0, wait_seconds if wait_seconds is not None else float(os.getenv("GEMINI_CLI_RETRY_WAIT", "2")))

    @property
    def is_available(self) -> bool:
        return shutil.which(self.command[0]) is not None

    def build_args(self, prompt: str) -> List[str]:
        args = list(self.command)
        if self.model:
            args += ["-m", self.model]
        args += ["-p", prompt]
        return args

    def run_prompt(self, prompt: str, *, stdin: Optional[str] = None, cwd: Optional[str] = None) -> GeminiResult:
        """Run ``prompt``; retries non-zero exits, raises on timeout or missing binary."""
        retrying = Retrying(
            stop=stop_after_attempt(self.attempts),
            wait=wait_fixed(self.wait_seconds),
            retry=retry_if_exception_type(_TransientFailure),
            reraise=True,
        )
        try:
            for attempt in retrying:
                with attempt:
                    return self._invoke(prompt, stdin, cwd)
        except _TransientFailure as exc:
            return exc.result
        raise GeminiCLIError("Gemini CLI produced no result")

    def _invoke(self, prompt: str, stdin: Optional[str], cwd: Optional[str]) -> GeminiResult:
        try:
            proc = subprocess.run(
                self.build_args(prompt),
                input=stdin,
                text=True,
                capture_output=True,
                timeout=self.timeout,
                cwd=cwd,
                check=False,
            )
        except FileNotFoundError as exc:
            raise GeminiCLIError(f"Gemini CLI '{self.command[0]}' not found in PATH") from exc
        except subprocess.TimeoutExpired as exc:
            raise GeminiCLIError(f"Gemini CLI timed out after {self.timeout}s") from exc
        if proc.returncode != 0:
            stderr = (proc.stderr or "").strip()
            console.log(f"[yellow]gemini exit={proc.returncode}[/] {escape(stderr[:160])}")
            raise _TransientFailure(GeminiResult(False, proc.stdout or "", stderr, proc.returncode))
        return GeminiResult(True, (proc.stdout or "").strip(), (proc.stderr or "").strip(), 0)

    def version(self) -> Optional[str]:
        try:
            proc = subprocess.run(
                [*self.command, "--version"], text=True, capture_output=True, timeout=10, check=False
            )
        except (FileNotFoundError, subprocess.TimeoutExpired):
            return None
        return proc.stdout.strip() if proc.returncode == 0 else None


class _TransientFailure(Exception):
    def __init__(self, result: GeminiResult) -> None:
        super().__init__(result.error)
        self.result = result
