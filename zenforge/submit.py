"""Turning submitted approval answers into approval decisions."""

from __future__ import annotations

import json
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Mapping

from zenforge.approval import (
    ApprovalError,
    Decision,
    DecisionAction,
    DecisionScope,
)


def _coerce(enum_cls: type[Enum], value: Any) -> Any:
    if value is None or value == "":
        return ""
    try:
        return enum_cls(value)
    except ValueError:
        return value


def _text(value: Any) -> str:
    if isinstance(value, Enum):
        return str(value.value)
    return "" if value is None else str(value)


@dataclass
class SubmitPayload:
    """The neutral shape of an approval answer sent by a host platform."""

    request_id: str = ""
    action: DecisionAction | str = ""
    scope: DecisionScope | str = ""
    reason: str = ""
    payload: dict[str, Any] | None = None

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "SubmitPayload":
        if not isinstance(data, Mapping):
            raise ApprovalError("submit payload must be an object")
        payload = data.get("payload")
        return cls(
            request_id=data.get("requestId") or "",
            action=_coerce(DecisionAction, data.get("action")),
            scope=_coerce(DecisionScope, data.get("scope")),
            reason=data.get("reason") or "",
            payload=dict(payload) if payload is not None else None,
        )

    def to_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = {"requestId": self.request_id, "action": _text(self.action)}
        if self.scope:
            out["scope"] = _text(self.scope)
        if self.reason:
            out["reason"] = self.reason
        if self.payload:
            out["payload"] = dict(self.payload)
        return out


def decision_from_submit(payload: SubmitPayload) -> Decision:
    """Build a validated decision; the scope defaults to once."""
    decision = Decision(
        request_id=payload.request_id,
        action=payload.action,
        scope=payload.scope or DecisionScope.ONCE,
        reason=payload.reason,
        payload=dict(payload.payload) if payload.payload is not None else None,
        decided_at=datetime.now(timezone.utc),
    )
    decision.validate()
    return decision


def decision_from_json(data: str | bytes) -> Decision:
    """Decode a JSON submit payload and return its decision."""
    payload = SubmitPayload.from_dict(json.loads(data))
    try:
        return decision_from_submit(payload)
    except ApprovalError as exc:
        raise ApprovalError(f"invalid submit payload: {exc}") from exc