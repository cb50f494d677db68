"""An in-memory checkpoint store."""

from __future__ import annotations

import json
import threading

from zenforge.checkpoint import Checkpoint, CheckpointNotFound, CheckpointStore, validate


def _clone(checkpoint: Checkpoint) -> Checkpoint:
    return Checkpoint.from_dict(json.loads(json.dumps(checkpoint.to_dict())))


class MemoryCheckpointStore(CheckpointStore):
    """Keeps independent copies of the latest checkpoint of each run."""

    def __init__(self) -> None:
        self._lock = threading.RLock()
        self._checkpoints: dict[str, Checkpoint] = {}

    def save(self, checkpoint: Checkpoint) -> None:
        validate(checkpoint)
        cloned = _clone(checkpoint)
        with self._lock:
            self._checkpoints[checkpoint.run_id] = cloned

    def load(self, run_id: str) -> Checkpoint:
        if not run_id:
            raise CheckpointNotFound()
        with self._lock:
            stored = self._checkpoints.get(run_id)
        if stored is None:
            raise CheckpointNotFound()
        return _clone(stored)

    def delete(self, run_id: str) -> None:
        if not run_id:
            raise CheckpointNotFound()
        with self._lock:
            if run_id not in self._checkpoints:
                raise CheckpointNotFound()
            del self._checkpoints[run_id]