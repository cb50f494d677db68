import asyncio
import json
from datetime import datetime, timezone

import pytest

from zenforge.approval import (
    ERROR_EXPIRED,
    ERROR_REQUIRED,
    METADATA_DECISION_ACTION,
    METADATA_FINGERPRINT,
    METADATA_REQUEST_ID,
    METADATA_RULE_KEY,
    ApprovalError,
    ChannelBroker,
    Decision,
    DecisionAction,
    DecisionScope,
    Option,
    Request,
    RiskLevel,
    ToolResult,
    always_allow,
    always_deny,
    approved_metadata,
    default_options,
    is_approved_action,
    new_request_id,
    request_from_result,
    required_result,
    with_timeout,
)


def make_request(**overrides):
    values = dict(
        id="approval_1",
        run_id="run_1",
        operation="shell.command",
        title="Approve command",
        risk=RiskLevel.MEDIUM,
        options=default_options(),
    )
    values.update(overrides)
    return Request(**values)


class BlockingBroker:
    async def request(self, req):
        await asyncio.Event().wait()


def test_request_json_round_trip_and_validation():
    req = make_request(
        risk=RiskLevel.HIGH,
        created_at=datetime.fromtimestamp(1, timezone.utc),
        payload={"command": "git status"},
    )
    req.validate()
    decoded = Request.from_dict(json.loads(json.dumps(req.to_dict())))
    assert decoded.id == req.id
    assert decoded.options[0].action == DecisionAction.APPROVE
    assert decoded.payload == {"command": "git status"}
    assert decoded.created_at == req.created_at
    assert decoded.risk == RiskLevel.HIGH


def test_required_result_round_trip():
    got = request_from_result(required_result(make_request()))
    assert got is not None
    assert got.id == "approval_1"


def test_request_from_result_decodes_mapping():
    result = ToolResult(error=ERROR_REQUIRED, structured={"approval": make_request().to_dict()})
    got = request_from_result(result)
    assert got.title == "Approve command"


def test_request_from_result_ignores_other_errors():
    assert request_from_result(ToolResult(error="boom", structured={"approval": make_request()})) is None
    assert request_from_result(ToolResult(error=ERROR_REQUIRED)) is None


@pytest.mark.parametrize(
    "field_name, message",
    [
        ("id", "id is required"),
        ("run_id", "run id is required"),
        ("operation", "operation is required"),
        ("title", "title is required"),
        ("risk", "risk is required"),
    ],
)
def test_request_validate_reports_missing_fields(field_name, message):
    with pytest.raises(ApprovalError, match=message):
        make_request(**{field_name: ""}).validate()


def test_request_validate_requires_options():
    with pytest.raises(ApprovalError, match="options are required"):
        make_request(options=[]).validate()


def test_decision_validate():
    with pytest.raises(ApprovalError, match="request id"):
        Decision(action=DecisionAction.APPROVE).validate()
    with pytest.raises(ApprovalError, match="action"):
        Decision(request_id="r").validate()


def test_option_round_trip_omits_empty_fields():
    data = Option(action=DecisionAction.REJECT, label="No").to_dict()
    assert data == {"action": "reject", "label": "No"}
    assert Option.from_dict(data) == Option(action=DecisionAction.REJECT, label="No")


def test_decision_round_trip():
    decision = Decision(
        request_id="r1",
        action=DecisionAction.ALWAYS,
        scope=DecisionScope.RULE,
        reason="ok",
        decided_at=datetime(2026, 5, 30, 10, 0, tzinfo=timezone.utc),
    )
    assert Decision.from_dict(decision.to_dict()) == decision


def test_default_options():
    options = default_options()
    assert [o.action for o in options] == [DecisionAction.APPROVE, DecisionAction.REJECT]
    assert [o.label for o in options] == ["Approve", "Reject"]


def test_new_request_id_prefix():
    assert new_request_id("run", "call", "op").startswith("approval_run_call_op_")
    assert new_request_id("", "", "").startswith("approval_request_")


def test_approved_metadata_copies_and_adds_keys():
    original = {"keep": 1}
    req = make_request(payload={"fingerprint": "fp", "ruleKey": 5})
    out = approved_metadata(original, req, Decision(request_id="approval_1", action=DecisionAction.APPROVE))
    assert out[METADATA_REQUEST_ID] == "approval_1"
    assert out[METADATA_DECISION_ACTION] == "approve"
    assert out[METADATA_FINGERPRINT] == "fp"
    assert METADATA_RULE_KEY not in out
    assert out["keep"] == 1
    assert original == {"keep": 1}


@pytest.mark.parametrize(
    "action, expected",
    [
        ("approve", True),
        ("always", True),
        (DecisionAction.APPROVE, True),
        (DecisionAction.ALWAYS, True),
        ("reject", False),
        (DecisionAction.ABORT, False),
        (None, False),
        (1, False),
    ],
)
def test_is_approved_action(action, expected):
    assert is_approved_action(action) is expected


@pytest.mark.asyncio
async def test_always_allow_and_deny():
    req = make_request()
    allow = await always_allow().request(req)
    assert allow.action == DecisionAction.APPROVE
    deny = await always_deny("locked").request(req)
    assert deny.action == DecisionAction.REJECT
    assert deny.reason == "locked"


@pytest.mark.asyncio
async def test_always_allow_validates_request():
    with pytest.raises(ApprovalError):
        await always_allow().request(make_request(title=""))


@pytest.mark.asyncio
async def test_timeout_rejects():
    decision = await with_timeout(BlockingBroker(), 0.001).request(make_request())
    assert decision.action == DecisionAction.REJECT
    assert decision.reason == ERROR_EXPIRED


@pytest.mark.asyncio
async def test_timeout_passes_through_prompt_answers():
    decision = await with_timeout(always_deny("no"), 1.0).request(make_request())
    assert decision.reason == "no"


@pytest.mark.asyncio
async def test_channel_broker():
    requests = asyncio.Queue(1)
    decisions = asyncio.Queue(1)
    broker = ChannelBroker(requests, decisions)

    async def answer():
        req = await requests.get()
        await decisions.put(Decision(request_id=req.id, action=DecisionAction.APPROVE))

    task = asyncio.create_task(answer())
    decision = await broker.request(make_request())
    await task
    assert decision.action == DecisionAction.APPROVE
    assert decision.decided_at is not None


@pytest.mark.asyncio
async def test_channel_broker_fills_request_id():
    requests = asyncio.Queue(1)
    decisions = asyncio.Queue(1)
    await decisions.put(Decision(action=DecisionAction.REJECT))
    decision = await ChannelBroker(requests, decisions).request(make_request())
    assert decision.request_id == "approval_1"


@pytest.mark.asyncio
async def test_channel_broker_not_configured():
    with pytest.raises(ApprovalError, match="not configured"):
        await ChannelBroker(None, None).request(make_request())