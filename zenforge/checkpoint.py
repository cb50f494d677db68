"""Checkpoints of run state and the interface of the stores that keep them."""

from __future__ import annotations

import abc
import re
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Mapping

CHECKPOINT_VERSION = "zenforge.checkpoint.v1"

_FRACTION = re.compile(r"(\.\d{1,6})\d*")


class CheckpointError(ValueError):
    """A checkpoint is invalid or a store cannot handle it."""


class CheckpointNotFound(CheckpointError, LookupError):
    """No checkpoint exists for the requested run."""

    def __init__(self, message: str = "checkpoint not found") -> None:
        super().__init__(message)


def _format_time(moment: datetime) -> str:
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    return moment.astimezone(timezone.utc).isoformat().replace("+00:00", "Z")


def _parse_time(text: Any) -> datetime | None:
    if not text:
        return None
    if isinstance(text, datetime):
        return text
    value = str(text).strip()
    if value[-1:] in ("Z", "z"):
        value = value[:-1] + "+00:00"
    value = _FRACTION.sub(lambda m: m.group(1).ljust(7, "0"), value, count=1)
    moment = datetime.fromisoformat(value)
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    if moment.year == 1:
        return None
    return moment


@dataclass(frozen=True)
class CheckpointSummary:
    """The latest checkpoint metadata for one run."""

    run_id: str
    seq: int
    phase: str
    status: str
    step: int
    saved_at: datetime | None


@dataclass
class Checkpoint:
    """A saved run state; ``state`` is the run state as a JSON-compatible mapping."""

    version: str = ""
    run_id: str = ""
    seq: int = 0
    state: dict[str, Any] = field(default_factory=dict)
    saved_at: datetime | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "version": self.version,
            "runId": self.run_id,
            "seq": self.seq,
            "state": self.state,
            "savedAt": _format_time(self.saved_at) if self.saved_at else None,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "Checkpoint":
        if not isinstance(data, Mapping):
            raise CheckpointError("checkpoint must be an object")
        state = data.get("state") or {}
        if not isinstance(state, Mapping):
            raise CheckpointError("checkpoint state must be an object")
        try:
            saved_at = _parse_time(data.get("savedAt"))
        except ValueError as exc:
            raise CheckpointError(f"invalid checkpoint savedAt: {exc}") from exc
        return cls(
            version=data.get("version") or "",
            run_id=data.get("runId") or "",
            seq=int(data.get("seq") or 0),
            state=dict(state),
            saved_at=saved_at,
        )

    def summary(self) -> CheckpointSummary:
        control = self.state.get("control") or {}
        return CheckpointSummary(
            run_id=self.run_id,
            seq=self.seq,
            phase=str(self.state.get("phase") or ""),
            status=str(control.get("status") or "") if isinstance(control, Mapping) else "",
            step=int(self.state.get("step") or 0),
            saved_at=self.saved_at,
        )


def validate(checkpoint: Checkpoint) -> None:
    """Raise CheckpointError unless the checkpoint is complete and consistent."""
    if not checkpoint.version:
        raise CheckpointError("checkpoint version is required")
    if checkpoint.version != CHECKPOINT_VERSION:
        raise CheckpointError(f"unsupported checkpoint version {checkpoint.version!r}")
    if not checkpoint.run_id:
        raise CheckpointError("checkpoint runId is required")
    if checkpoint.seq <= 0:
        raise CheckpointError("checkpoint seq is required")
    state_run_id = checkpoint.state.get("runId") or ""
    if not state_run_id:
        raise CheckpointError("checkpoint state runId is required")
    if state_run_id != checkpoint.run_id:
        raise CheckpointError(
            f"checkpoint runId {checkpoint.run_id!r} does not match state runId {state_run_id!r}"
        )
    if checkpoint.saved_at is None:
        raise CheckpointError("checkpoint savedAt is required")


class CheckpointStore(abc.ABC):
    """Keeps the latest checkpoint of each run."""

    @abc.abstractmethod
    def save(self, checkpoint: Checkpoint) -> None:
        """Store a checkpoint as the latest for its run."""

    @abc.abstractmethod
    def load(self, run_id: str) -> Checkpoint:
        """Return the latest checkpoint of a run or raise CheckpointNotFound."""

    @abc.abstractmethod
    def delete(self, run_id: str) -> None:
        """Remove a run's checkpoints or raise CheckpointNotFound."""