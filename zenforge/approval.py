"""Approval requests, decisions and the brokers that resolve them."""

from __future__ import annotations

import asyncio
import dataclasses
import re
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Awaitable, Callable, Mapping

ERROR_REQUIRED = "approval_required"
ERROR_REJECTED = "approval_rejected"
ERROR_EXPIRED = "approval_expired"

METADATA_DECISION_ACTION = "approval.decisionAction"
METADATA_FINGERPRINT = "approval.fingerprint"
METADATA_REQUEST_ID = "approval.requestId"
METADATA_RULE_KEY = "approval.ruleKey"


class ApprovalError(ValueError):
    """An approval request or decision is invalid or cannot be handled."""


class RiskLevel(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


class DecisionAction(str, Enum):
    APPROVE = "approve"
    REJECT = "reject"
    ALWAYS = "always"
    ABORT = "abort"


class DecisionScope(str, Enum):
    ONCE = "once"
    RUN = "run"
    RULE = "rule"


_FRACTION = re.compile(r"(\.\d{1,6})\d*")


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _text(value: Any) -> str:
    if isinstance(value, Enum):
        return str(value.value)
    return "" if value is None else str(value)


def _coerce(enum_cls: type[Enum], value: Any) -> Any:
    if value is None or value == "":
        return ""
    try:
        return enum_cls(value)
    except ValueError:
        return value


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


@dataclass
class Option:
    """One choice offered to whoever resolves a request."""

    action: DecisionAction | str
    label: str = ""
    description: str = ""
    scope: DecisionScope | str = ""

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {"action": _text(self.action), "label": self.label}
        if self.description:
            data["description"] = self.description
        if self.scope:
            data["scope"] = _text(self.scope)
        return data

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "Option":
        return cls(
            action=_coerce(DecisionAction, data.get("action")),
            label=data.get("label") or "",
            description=data.get("description") or "",
            scope=_coerce(DecisionScope, data.get("scope")),
        )


@dataclass
class Request:
    """A request for a human or policy to approve an operation."""

    id: str = ""
    run_id: str = ""
    operation: str = ""
    title: str = ""
    risk: RiskLevel | str = ""
    options: list[Option] = field(default_factory=list)
    tool_call_id: str = ""
    tool_name: str = ""
    description: str = ""
    payload: dict[str, Any] | None = None
    created_at: datetime = field(default_factory=_utcnow)
    expires_at: datetime | None = None

    def validate(self) -> None:
        if not self.id:
            raise ApprovalError("approval request id is required")
        if not self.run_id:
            raise ApprovalError("approval request run id is required")
        if not self.operation:
            raise ApprovalError("approval request operation is required")
        if not self.title:
            raise ApprovalError("approval request title is required")
        if not self.risk:
            raise ApprovalError("approval request risk is required")
        if not self.options:
            raise ApprovalError("approval request options are required")

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {"id": self.id, "runId": self.run_id}
        if self.tool_call_id:
            data["toolCallId"] = self.tool_call_id
        if self.tool_name:
            data["toolName"] = self.tool_name
        data["operation"] = self.operation
        data["title"] = self.title
        if self.description:
            data["description"] = self.description
        data["risk"] = _text(self.risk)
        data["options"] = [option.to_dict() for option in self.options]
        if self.payload:
            data["payload"] = dict(self.payload)
        data["createdAt"] = _format_time(self.created_at)
        if self.expires_at is not None:
            data["expiresAt"] = _format_time(self.expires_at)
        return data

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "Request":
        payload = data.get("payload")
        return cls(
            id=data.get("id") or "",
            run_id=data.get("runId") or "",
            operation=data.get("operation") or "",
            title=data.get("title") or "",
            risk=_coerce(RiskLevel, data.get("risk")),
            options=[Option.from_dict(item) for item in data.get("options") or []],
            tool_call_id=data.get("toolCallId") or "",
            tool_name=data.get("toolName") or "",
            description=data.get("description") or "",
            payload=dict(payload) if payload is not None else None,
            created_at=_parse_time(data.get("createdAt")) or _utcnow(),
            expires_at=_parse_time(data.get("expiresAt")),
        )


@dataclass
class Decision:
    """The answer given to an approval request."""

    request_id: str = ""
    action: DecisionAction | str = ""
    scope: DecisionScope | str = ""
    reason: str = ""
    payload: dict[str, Any] | None = None
    decided_at: datetime | None = None

    def validate(self) -> None:
        if not self.request_id:
            raise ApprovalError("approval decision request id is required")
        if not self.action:
            raise ApprovalError("approval decision action is required")

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {"requestId": self.request_id, "action": _text(self.action)}
        if self.scope:
            data["scope"] = _text(self.scope)
        if self.reason:
            data["reason"] = self.reason
        if self.payload:
            data["payload"] = dict(self.payload)
        data["decidedAt"] = _format_time(self.decided_at) if self.decided_at else None
        return data

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "Decision":
        payload = data.get("payload")
        return cls(
            request_id=data.get("requestId") or "",
            action=_coerce(DecisionAction, data.get("action")),
            scope=_coerce(DecisionScope, data.get("scope")),
            reason=data.get("reason") or "",
            payload=dict(payload) if payload is not None else None,
            decided_at=_parse_time(data.get("decidedAt")),
        )


@dataclass
class ToolResult:
    """The outcome of a tool call."""

    output: str = ""
    structured: dict[str, Any] | None = None
    error: str = ""
    exit_code: int = 0
    metadata: dict[str, Any] | None = None


def default_options() -> list[Option]:
    """Return the standard approve/reject choices."""
    return [
        Option(action=DecisionAction.APPROVE, label="Approve", scope=DecisionScope.ONCE),
        Option(action=DecisionAction.REJECT, label="Reject", scope=DecisionScope.ONCE),
    ]


def new_request_id(run_id: str, tool_call_id: str, operation: str) -> str:
    """Build a unique request id from the run, tool call and operation."""
    base = run_id
    if tool_call_id:
        base += "_" + tool_call_id
    if operation:
        base += "_" + operation
    if not base:
        base = "request"
    return f"approval_{base}_{time.time_ns()}"


def required_result(req: Request) -> ToolResult:
    """Return the tool result that signals that approval is needed."""
    return ToolResult(error=ERROR_REQUIRED, exit_code=1, structured={"approval": req})


def approved_metadata(
    metadata: Mapping[str, Any] | None, req: Request, decision: Decision
) -> dict[str, Any]:
    """Return a copy of metadata carrying the approval that was granted."""
    out = dict(metadata or {})
    out[METADATA_REQUEST_ID] = req.id
    out[METADATA_DECISION_ACTION] = _text(decision.action)
    payload = req.payload or {}
    fingerprint = payload.get("fingerprint")
    if isinstance(fingerprint, str):
        out[METADATA_FINGERPRINT] = fingerprint
    rule_key = payload.get("ruleKey")
    if isinstance(rule_key, str):
        out[METADATA_RULE_KEY] = rule_key
    return out


def is_approved_action(action: Any) -> bool:
    """Tell whether an action (enum or plain string) grants approval."""
    if not isinstance(action, str):
        return False
    return action in (DecisionAction.APPROVE.value, DecisionAction.ALWAYS.value)


def request_from_result(result: ToolResult) -> Request | None:
    """Extract the approval request carried by a tool result, if any."""
    if result.error != ERROR_REQUIRED or result.structured is None:
        return None
    value = result.structured.get("approval")
    if value is None:
        return None
    if isinstance(value, Request):
        return value
    if isinstance(value, Mapping):
        try:
            return Request.from_dict(value)
        except (TypeError, ValueError, AttributeError):
            return None
    return None


class _FunctionBroker:
    def __init__(self, func: Callable[[Request], Awaitable[Decision]]) -> None:
        self._func = func

    async def request(self, req: Request) -> Decision:
        return await self._func(req)


def always_allow() -> _FunctionBroker:
    """Return a broker that approves every valid request once."""

    async def decide(req: Request) -> Decision:
        req.validate()
        return Decision(
            request_id=req.id,
            action=DecisionAction.APPROVE,
            scope=DecisionScope.ONCE,
            decided_at=_utcnow(),
        )

    return _FunctionBroker(decide)


def always_deny(reason: str) -> _FunctionBroker:
    """Return a broker that rejects every valid request with a reason."""

    async def decide(req: Request) -> Decision:
        req.validate()
        return Decision(
            request_id=req.id,
            action=DecisionAction.REJECT,
            scope=DecisionScope.ONCE,
            reason=reason,
            decided_at=_utcnow(),
        )

    return _FunctionBroker(decide)


def with_timeout(broker: Any, timeout: float) -> _FunctionBroker:
    """Wrap a broker so that a request unanswered in time is rejected as expired."""

    async def decide(req: Request) -> Decision:
        if timeout <= 0:
            return await broker.request(req)
        try:
            return await asyncio.wait_for(broker.request(req), timeout)
        except asyncio.TimeoutError:
            return Decision(
                request_id=req.id,
                action=DecisionAction.REJECT,
                scope=DecisionScope.ONCE,
                reason=ERROR_EXPIRED,
                decided_at=_utcnow(),
            )

    return _FunctionBroker(decide)


class ChannelBroker:
    """Broker that hands requests to one queue and waits on another for decisions."""

    def __init__(
        self,
        requests: asyncio.Queue | None,
        decisions: asyncio.Queue | None,
    ) -> None:
        self.requests = requests
        self.decisions = decisions

    async def request(self, req: Request) -> Decision:
        if self.requests is None or self.decisions is None:
            raise ApprovalError("approval channel broker is not configured")
        req.validate()
        await self.requests.put(req)
        decision: Decision = await self.decisions.get()
        if not decision.request_id:
            decision = dataclasses.replace(decision, request_id=req.id)
        if decision.decided_at is None:
            decision = dataclasses.replace(decision, decided_at=_utcnow())
        decision.validate()
        return decision