"""
modules/observability/logger.py
---------------------------------
Optimizer run log: one append-only JSONL file per run (logs/<run_id>.jsonl).

Usage:
    from tripopt.modules.observability.logger import StructuredLogger

    run_logs = StructuredLogger()
    with run_logs.run("run_3f2a9c") as run_log:
        run_log.event("optimize_start", {"days": 3, "places": 8})
        ...
    # the file handle is released when the block exits, even on error

Each record carries the run id, a per-run sequence number, the event
type, the payload and a UTC timestamp.  One StructuredLogger is shared by
every request of an API process, so handles only live as long as a run.

Event types written by the optimizer:
    optimize_start, matrix_built, days_distributed, day_ordered,
    optimize_end, optimize_failed
"""

from __future__ import annotations

import json
import os
import threading
from datetime import datetime, timezone
from pathlib import Path
from typing import IO, Any, Optional

# logs/ directory lives alongside the tripopt package
_LOGS_DIR: Path = Path(__file__).resolve().parents[3] / "logs"


class RunLog:
    """Events of one optimization run; closes its file when the run ends."""

    def __init__(self, owner: "StructuredLogger", run_id: str) -> None:
        self._owner = owner
        self.run_id = run_id

    def event(self, event_type: str, payload: dict[str, Any]) -> None:
        self._owner.log(self.run_id, event_type, payload)

    def close(self) -> None:
        self._owner.close(self.run_id)

    def __enter__(self) -> "RunLog":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()


class StructuredLogger:
    """Thread-safe JSONL writer shared by concurrent runs."""

    def __init__(self, logs_dir: Path | str | None = None) -> None:
        self._logs_dir = Path(logs_dir) if logs_dir else _LOGS_DIR
        self._lock = threading.Lock()
        self._handles: dict[str, IO[str]] = {}
        self._seq: dict[str, int] = {}

    @property
    def logs_dir(self) -> Path:
        return self._logs_dir

    @property
    def open_runs(self) -> list[str]:
        """Run ids that still hold a file handle."""
        with self._lock:
            return sorted(self._handles)

    # ── public API ────────────────────────────────────────────────────────

    def run(self, run_id: str) -> RunLog:
        return RunLog(self, run_id)

    def log(self, run_id: str, event_type: str, payload: dict[str, Any]) -> None:
        """Append one record to ``<run_id>.jsonl``, opening it on first use."""
        with self._lock:
            seq = self._seq.get(run_id, 0) + 1
            self._seq[run_id] = seq
            record = {
                "timestamp": datetime.now(timezone.utc).isoformat(),
                "run_id": run_id,
                "seq": seq,
                "event_type": event_type,
                "payload": payload,
            }
            fh = self._handles.get(run_id) or self._open(run_id)
            fh.write(json.dumps(record, default=str, ensure_ascii=False) + "\n")
            fh.flush()

    def read(self, run_id: str) -> list[dict[str, Any]]:
        """All records of one run, in write order (empty if none)."""
        path = self._path(run_id)
        if not path.exists():
            return []
        with open(path, "r", encoding="utf-8") as fh:
            return [json.loads(line) for line in fh if line.strip()]

    def close(self, run_id: Optional[str] = None) -> None:
        """Release one run's handle, or every handle when *run_id* is None."""
        with self._lock:
            ids = [run_id] if run_id else list(self._handles)
            for rid in ids:
                fh = self._handles.pop(rid, None)
                self._seq.pop(rid, None)
                if fh is not None:
                    fh.close()

    # ── internals ─────────────────────────────────────────────────────────

    def _path(self, run_id: str) -> Path:
        return self._logs_dir / f"{run_id}.jsonl"

    def _open(self, run_id: str) -> IO[str]:
        os.makedirs(self._logs_dir, exist_ok=True)
        fh = open(self._path(run_id), "a", encoding="utf-8")  # noqa: SIM115
        self._handles[run_id] = fh
        return fh
