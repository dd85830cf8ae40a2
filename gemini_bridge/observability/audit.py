"""Hook audit logging."""

from __future__ import annotations

from pathlib import Path

from .. import paths
from ..schemas.hook import HookAuditRecord


class HookAuditLogger:
    def __init__(self, path: Path | None = None) -> None:
        self.path = path or paths.logs_dir() / "hook_audit.jsonl"
        self.path.parent.mkdir(parents=True, exist_ok=True)

    def log(self, record: HookAuditRecord) -> None:
        with self.path.open("a", encoding="utf-8") as fout:
            fout.write(record.model_dump_json() + "\n")
