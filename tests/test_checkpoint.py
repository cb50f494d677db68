import json
from datetime import datetime, timezone

import pytest

from zenforge.checkpoint import (
    CHECKPOINT_VERSION,
    Checkpoint,
    CheckpointError,
    CheckpointNotFound,
    CheckpointSummary,
    validate,
)


def make_checkpoint(**overrides):
    now = datetime.now(timezone.utc)
    values = dict(
        version=CHECKPOINT_VERSION,
        run_id="run_1",
        seq=7,
        state={
            "runId": "run_1",
            "input": "hello",
            "phase": "model",
            "control": {"status": "MODEL_STREAMING"},
            "step": 2,
        },
        saved_at=now,
    )
    values.update(overrides)
    return Checkpoint(**values)


def test_checkpoint_json_round_trip_and_validate():
    checkpoint = make_checkpoint()
    validate(checkpoint)
    got = Checkpoint.from_dict(json.loads(json.dumps(checkpoint.to_dict())))
    validate(got)
    assert got == checkpoint


def test_validate_rejects_invalid_checkpoint():
    with pytest.raises(CheckpointError):
        validate(Checkpoint())


@pytest.mark.parametrize(
    "overrides, message",
    [
        ({"version": "other"}, "unsupported checkpoint version"),
        ({"run_id": ""}, "runId is required"),
        ({"seq": 0}, "seq is required"),
        ({"state": {}}, "state runId is required"),
        ({"state": {"runId": "run_2"}}, "does not match"),
        ({"saved_at": None}, "savedAt is required"),
    ],
)
def test_validate_reports_each_problem(overrides, message):
    with pytest.raises(CheckpointError, match=message):
        validate(make_checkpoint(**overrides))


def test_from_dict_accepts_nanosecond_times():
    data = make_checkpoint().to_dict()
    data["savedAt"] = "2026-05-30T10:00:00.123456789Z"
    got = Checkpoint.from_dict(data)
    assert got.saved_at == datetime(2026, 5, 30, 10, 0, 0, 123456, tzinfo=timezone.utc)


def test_summary():
    saved_at = datetime(2026, 5, 30, 11, 0, tzinfo=timezone.utc)
    summary = make_checkpoint(saved_at=saved_at).summary()
    assert summary == CheckpointSummary(
        run_id="run_1", seq=7, phase="model", status="MODEL_STREAMING", step=2, saved_at=saved_at
    )


def test_not_found_is_a_lookup_error():
    error = CheckpointNotFound()
    assert isinstance(error, LookupError)
    assert "checkpoint not found" in str(error)