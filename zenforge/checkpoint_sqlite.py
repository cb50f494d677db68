"""A checkpoint store kept in a SQLite database."""

from __future__ import annotations

import json
import os
import sqlite3
import threading
from datetime import datetime, timezone

from zenforge.checkpoint import (
    Checkpoint,
    CheckpointError,
    CheckpointNotFound,
    CheckpointStore,
    CheckpointSummary,
    validate,
)

_SCHEMA = """
CREATE TABLE IF NOT EXISTS checkpoints (
    run_id TEXT NOT NULL,
    seq INTEGER NOT NULL,
    saved_at TEXT NOT NULL,
    checkpoint_json BLOB NOT NULL,
    PRIMARY KEY (run_id, seq)
);
CREATE TABLE IF NOT EXISTS latest_checkpoints (
    run_id TEXT PRIMARY KEY,
    seq INTEGER NOT NULL,
    phase TEXT NOT NULL,
    status TEXT NOT NULL,
    step INTEGER NOT NULL,
    saved_at TEXT NOT NULL,
    checkpoint_json BLOB NOT NULL
);
"""

_INSERT_HISTORY = """
INSERT INTO checkpoints (run_id, seq, saved_at, checkpoint_json)
VALUES (?, ?, ?, ?)"""

_UPSERT_LATEST = """
INSERT INTO latest_checkpoints (run_id, seq, phase, status, step, saved_at, checkpoint_json)
VALUES (?, ?, ?, ?, ?, ?, ?)
ON CONFLICT(run_id) DO UPDATE SET
    seq = excluded.seq,
    phase = excluded.phase,
    status = excluded.status,
    step = excluded.step,
    saved_at = excluded.saved_at,
    checkpoint_json = excluded.checkpoint_json"""

_LIST = """
SELECT run_id, seq, phase, status, step, saved_at
FROM latest_checkpoints
ORDER BY saved_at DESC, run_id ASC"""


def _format_time(moment: datetime) -> str:
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    return moment.astimezone(timezone.utc).strftime("%Y-%m-%dT%H:%M:%S.%fZ")


def _parse_time(text: str) -> datetime:
    moment = datetime.fromisoformat(text.replace("Z", "+00:00"))
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    return moment


def _decode(raw: bytes | str) -> Checkpoint:
    try:
        data = json.loads(raw)
    except json.JSONDecodeError as exc:
        raise CheckpointError(f"invalid stored checkpoint: {exc}") from exc
    checkpoint = Checkpoint.from_dict(data)
    validate(checkpoint)
    return checkpoint


class SqliteCheckpointStore(CheckpointStore):
    """Keeps every checkpoint in history and the latest per run for loading."""

    def __init__(self, path: str | os.PathLike[str]) -> None:
        if not path:
            raise CheckpointError("sqlite checkpoint path is required")
        self._lock = threading.Lock()
        conn = sqlite3.connect(os.fspath(path), timeout=5.0, check_same_thread=False)
        try:
            conn.execute("PRAGMA busy_timeout = 5000")
            conn.executescript(_SCHEMA)
        except sqlite3.Error:
            conn.close()
            raise
        self._conn: sqlite3.Connection | None = conn

    def __enter__(self) -> "SqliteCheckpointStore":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    def close(self) -> None:
        if self._conn is not None:
            self._conn.close()
            self._conn = None

    def _ready(self) -> sqlite3.Connection:
        if self._conn is None:
            raise CheckpointError("sqlite checkpoint store is not open")
        return self._conn

    def save(self, checkpoint: Checkpoint) -> None:
        conn = self._ready()
        validate(checkpoint)
        encoded = json.dumps(checkpoint.to_dict()).encode("utf-8")
        saved_at = _format_time(checkpoint.saved_at)
        summary = checkpoint.summary()
        with self._lock, conn:
            conn.execute(_INSERT_HISTORY, (checkpoint.run_id, checkpoint.seq, saved_at, encoded))
            conn.execute(
                _UPSERT_LATEST,
                (
                    checkpoint.run_id,
                    checkpoint.seq,
                    summary.phase,
                    summary.status,
                    summary.step,
                    saved_at,
                    encoded,
                ),
            )

    def load(self, run_id: str) -> Checkpoint:
        conn = self._ready()
        if not run_id:
            raise CheckpointNotFound()
        with self._lock:
            row = conn.execute(
                "SELECT checkpoint_json FROM latest_checkpoints WHERE run_id = ?", (run_id,)
            ).fetchone()
        if row is None:
            raise CheckpointNotFound()
        return _decode(row[0])

    def delete(self, run_id: str) -> None:
        conn = self._ready()
        if not run_id:
            raise CheckpointNotFound()
        with self._lock, conn:
            cursor = conn.execute("DELETE FROM latest_checkpoints WHERE run_id = ?", (run_id,))
            if cursor.rowcount == 0:
                raise CheckpointNotFound()
            conn.execute("DELETE FROM checkpoints WHERE run_id = ?", (run_id,))

    def list(self) -> list[CheckpointSummary]:
        """Return latest checkpoint summaries, newest saved first."""
        conn = self._ready()
        with self._lock:
            rows = conn.execute(_LIST).fetchall()
        return [
            CheckpointSummary(
                run_id=run_id,
                seq=seq,
                phase=phase,
                status=status,
                step=step,
                saved_at=_parse_time(saved_at),
            )
            for run_id, seq, phase, status, step, saved_at in rows
        ]