"""执行适配器测试：创建、提交、串行轮询至终态、超时与本地校验前置。"""

from __future__ import annotations

import pytest

from skillflow.domain.enums import ErrorCode
from skillflow.domain.errors import SkillRunError
from skillflow.domain.models import RunOptions
from skillflow.infra.workflow.adapter import WorkflowExecutionAdapter, extract_id


def _definition(**overrides) -> dict:
    definition = {
        "name": "skill-ask-ai-run",
        "nodes": [{"name": "main", "node_type_name": "llm", "input_config": {"human_message": "{{prompt}}"}}],
        "output_mapping": {"generated_text": "${main.generated_text}"},
        "input_schema": {"type": "object", "required": ["prompt"], "properties": {}},
        "project_id": "proj-1",
    }
    definition.update(overrides)
    return definition


def _adapter(fake_client, fake_clock, **kwargs) -> WorkflowExecutionAdapter:
    return WorkflowExecutionAdapter(fake_client, sleep=fake_clock.sleep, clock=fake_clock, **kwargs)


def test_submit_and_wait_polls_until_terminal(fake_client, fake_clock) -> None:
    fake_client.scripts["skill-ask-ai-run"] = [
        {"status": "running"},
        {"status": "Running"},
        {"status": "succeeded", "output": {"generated_text": "hi"}},
    ]
    adapter = _adapter(fake_client, fake_clock)

    result = adapter.submit_and_wait(_definition(), {"prompt": "cats"}, RunOptions(poll_interval_ms=500))

    assert result.workflow_id == "wf-1"
    assert result.run_id == "run-1"
    assert result.terminal is True
    assert result.failed is False
    assert result.timed_out is False
    assert result.polls == 3
    assert result.run["output"] == {"generated_text": "hi"}
    assert fake_client.runs == [("wf-1", {"prompt": "cats"})]
    assert fake_clock.sleeps == [0.5, 0.5, 0.5]


def test_wait_false_returns_initial_status(fake_client, fake_clock) -> None:
    adapter = _adapter(fake_client, fake_clock)
    result = adapter.submit_and_wait("wf-existing", {"a": 1}, RunOptions(wait=False))

    assert result.status == "queued"
    assert result.terminal is False
    assert result.polls == 0
    assert fake_client.created == []
    assert fake_client.polled == []


def test_already_terminal_run_is_not_polled(fake_client, fake_clock) -> None:
    fake_client.run_response = {"workflow_run_id": "run-x", "status": "completed", "output": {"ok": True}}
    adapter = _adapter(fake_client, fake_clock)

    result = adapter.submit_and_wait("wf-existing", {}, RunOptions())

    assert result.run_id == "run-x"
    assert result.terminal is True
    assert fake_client.polled == []


def test_timeout_is_flagged_separately_from_failure(fake_client, fake_clock) -> None:
    fake_client.scripts["wf-slow"] = [{"status": "running"}]
    adapter = _adapter(fake_client, fake_clock)

    result = adapter.submit_and_wait("wf-slow", {}, RunOptions(poll_interval_ms=1000, timeout_ms=3000))

    assert result.timed_out is True
    assert result.failed is False
    assert result.terminal is False
    assert result.polls == 3


def test_failed_terminal_status(fake_client, fake_clock) -> None:
    fake_client.scripts["wf-bad"] = [{"state": "Failed", "error": "boom"}]
    adapter = _adapter(fake_client, fake_clock)

    result = adapter.submit_and_wait("wf-bad", {}, RunOptions())

    assert result.terminal is True
    assert result.failed is True
    assert result.status == "Failed"


def test_local_validation_runs_before_any_network_call(fake_client, fake_clock) -> None:
    adapter = _adapter(fake_client, fake_clock)

    with pytest.raises(SkillRunError) as exc_info:
        adapter.submit_and_wait(_definition(project_id=None, nodes=[]), {}, RunOptions())

    error = exc_info.value
    assert error.code is ErrorCode.local_validation_failed
    paths = {issue["path"] for issue in error.detail["issues"]}
    assert "$.project_id" in paths
    assert "$.nodes" in paths
    assert fake_client.created == []
    assert fake_client.runs == []


def test_remote_validation_is_optional(fake_client, fake_clock) -> None:
    _adapter(fake_client, fake_clock).create_workflow(_definition())
    assert fake_client.validated == []

    _adapter(fake_client, fake_clock, remote_validation=True).create_workflow(_definition())
    assert len(fake_client.validated) == 1


def test_missing_workflow_id_uses_given_code(fake_client, fake_clock) -> None:
    fake_client.create_response = {"name": "no-id"}
    adapter = _adapter(fake_client, fake_clock)

    with pytest.raises(SkillRunError) as exc_info:
        adapter.submit_and_wait(
            _definition(),
            {},
            RunOptions(),
            missing_id_code=ErrorCode.skill_run_sub_create_failed,
        )
    assert exc_info.value.code is ErrorCode.skill_run_sub_create_failed
    assert fake_client.runs == []


def test_missing_run_id_is_request_failure(fake_client, fake_clock) -> None:
    fake_client.run_response = {"status": "queued"}
    adapter = _adapter(fake_client, fake_clock)

    with pytest.raises(SkillRunError) as exc_info:
        adapter.submit_and_wait("wf-1", {}, RunOptions())
    assert exc_info.value.code is ErrorCode.request_failed


def test_extract_id_key_order() -> None:
    assert extract_id({"id": "a", "workflow_id": "b"}, ("id", "workflow_id")) == "a"
    assert extract_id({"id": " ", "workflow_id": "b"}, ("id", "workflow_id")) == "b"
    assert extract_id({"id": 42}, ("id",)) is None
    assert extract_id(None, ("id",)) is None
