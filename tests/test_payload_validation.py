"""本地载荷校验测试：验证字段约束与 $.a[0].b 形式的问题路径。"""

from __future__ import annotations

from skillflow.infra.workflow.validation import validate_workflow_create_payload, validate_workflow_run_payload


def _valid_create() -> dict:
    return {
        "name": "skill-ask-ai-run",
        "description": "Ask a model",
        "nodes": [
            {
                "name": "main",
                "node_type_name": "llm",
                "input_config": {"human_message": "{{prompt}}"},
                "connection": "conn-1",
            }
        ],
        "output_mapping": {"generated_text": "${main.generated_text}"},
        "input_schema": {"type": "object"},
        "project_id": "proj-1",
    }


def test_valid_create_payload_has_no_issues() -> None:
    assert validate_workflow_create_payload(_valid_create()) == []


def test_extra_fields_are_allowed() -> None:
    payload = _valid_create()
    payload["workflow_metadata"] = {"source": "pack"}
    payload["custom"] = True
    assert validate_workflow_create_payload(payload) == []


def test_nested_node_issue_path() -> None:
    payload = _valid_create()
    payload["nodes"][0]["name"] = ""
    payload["nodes"][0]["connection"] = 7

    paths = {issue.path for issue in validate_workflow_create_payload(payload)}
    assert "$.nodes[0].name" in paths
    assert "$.nodes[0].connection" in paths


def test_missing_required_fields() -> None:
    paths = {issue.path for issue in validate_workflow_create_payload({"name": "x"})}
    assert {"$.nodes", "$.output_mapping", "$.input_schema", "$.project_id"} <= paths


def test_description_length_limit() -> None:
    payload = _valid_create()
    payload["description"] = "d" * 401
    issues = validate_workflow_create_payload(payload)
    assert [issue.path for issue in issues] == ["$.description"]


def test_non_object_payload() -> None:
    issues = validate_workflow_create_payload(["not", "an", "object"])
    assert [(issue.path, issue.message) for issue in issues] == [("$", "must be an object")]


def test_run_payload() -> None:
    assert validate_workflow_run_payload({"workflow_id": "wf-1", "input": {"a": 1}}) == []
    assert validate_workflow_run_payload({"workflow_id": "wf-1"}) == []
    paths = {issue.path for issue in validate_workflow_run_payload({"workflow_id": "", "input": "x"})}
    assert paths == {"$.workflow_id", "$.input"}
