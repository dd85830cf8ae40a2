"""Telemetry for delegation decisions."""

from __future__ import annotations

import json
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from .. import paths


class TelemetryLogger:
    """Append delegation events to a JSONL file for later analysis."""

    def __init__(self, path: str | Path | None = None) -> None:
        self.path = Path(path) if path else paths.logs_dir() / "delegations.jsonl"
        self.path.parent.mkdir(parents=True, exist_ok=True)

    def log(self, label: str, payload: Any) -> None:
        entry = {
            "ts": datetime.now(timezone.utc).isoformat(),
            "label": label,
            "payload": payload,
        }
        with self.path.open("a", encoding="utf-8") as fout:
            fout.write(json.dumps(entry, default=str) + "\n")
