"""A checkpoint store backed by JSON files on disk.

Each run has a directory holding ``latest.json``, the source of truth for
loading, and ``checkpoints.jsonl``, an append-only history that may contain
corrupt lines without preventing the latest checkpoint from loading.
"""

from __future__ import annotations

import json
import os
import shutil
import threading
from pathlib import Path

from zenforge.checkpoint import (
    Checkpoint,
    CheckpointError,
    CheckpointNotFound,
    CheckpointStore,
    CheckpointSummary,
    validate,
)

CHECKPOINTS_FILE_NAME = "checkpoints.jsonl"
LATEST_FILE_NAME = "latest.json"


class JsonlCheckpointStore(CheckpointStore):
    """Stores checkpoints below ``root``, one directory per run."""

    def __init__(self, root: str | os.PathLike[str]) -> None:
        self.root = os.fspath(root) if root else ""
        self._lock = threading.Lock()

    def _root(self) -> Path:
        if not self.root:
            raise CheckpointError("checkpoint root is required")
        return Path(self.root)

    def save(self, checkpoint: Checkpoint) -> None:
        root = self._root()
        validate(checkpoint)
        encoded = json.dumps(checkpoint.to_dict()) + "\n"
        with self._lock:
            run_dir = root / checkpoint.run_id
            run_dir.mkdir(parents=True, exist_ok=True)
            with open(run_dir / CHECKPOINTS_FILE_NAME, "a", encoding="utf-8") as history:
                history.write(encoded)
                history.flush()
                os.fsync(history.fileno())
            tmp_path = run_dir / (LATEST_FILE_NAME + ".tmp")
            tmp_path.write_text(encoded, encoding="utf-8")
            os.replace(tmp_path, run_dir / LATEST_FILE_NAME)

    def load(self, run_id: str) -> Checkpoint:
        root = self._root()
        if not run_id:
            raise CheckpointNotFound()
        with self._lock:
            return self._read(root, run_id)

    def delete(self, run_id: str) -> None:
        root = self._root()
        if not run_id:
            raise CheckpointNotFound()
        with self._lock:
            path = root / run_id
            if not path.exists():
                raise CheckpointNotFound()
            if path.is_dir():
                shutil.rmtree(path)
            else:
                path.unlink()

    def list(self) -> list[CheckpointSummary]:
        """Return latest checkpoint summaries, newest saved first."""
        root = self._root()
        with self._lock:
            try:
                entries = list(os.scandir(root))
            except FileNotFoundError:
                return []
            summaries = []
            for entry in entries:
                if not entry.is_dir():
                    continue
                try:
                    checkpoint = self._read(root, entry.name)
                except CheckpointNotFound:
                    continue
                summaries.append(checkpoint.summary())
        summaries.sort(key=lambda summary: summary.run_id)
        summaries.sort(key=lambda summary: summary.saved_at, reverse=True)
        return summaries

    @staticmethod
    def _read(root: Path, run_id: str) -> Checkpoint:
        path = root / run_id / LATEST_FILE_NAME
        try:
            text = path.read_text(encoding="utf-8")
        except FileNotFoundError:
            raise CheckpointNotFound() from None
        try:
            data = json.loads(text)
        except json.JSONDecodeError as exc:
            raise CheckpointError(f"invalid checkpoint file {path}: {exc}") from exc
        checkpoint = Checkpoint.from_dict(data)
        validate(checkpoint)
        return checkpoint