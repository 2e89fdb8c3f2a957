"""本地载荷校验：在发起网络请求前按后端 DTO 约束检查工作流创建与运行载荷。"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, StrictStr, ValidationError


@dataclass(slots=True)
class ValidationIssue:
    """单条校验问题，path 采用 $.nodes[0].name 形式。"""
    path: str
    message: str


class WorkflowNodePayload(BaseModel):
    """工作流节点载荷约束。"""
    model_config = ConfigDict(extra="allow")

    name: StrictStr = Field(min_length=1, max_length=100)
    title: StrictStr | None = Field(default=None, max_length=100)
    description: StrictStr | None = Field(default=None, max_length=400)
    node_type_name: StrictStr = Field(min_length=1, max_length=100)
    input_config: dict[str, Any]
    output_mapping: dict[str, StrictStr] | None = None
    connection: StrictStr | None = None


class WorkflowCreatePayload(BaseModel):
    """工作流创建载荷约束。"""
    model_config = ConfigDict(extra="allow")

    name: StrictStr = Field(min_length=1, max_length=100)
    description: StrictStr | None = Field(default=None, max_length=400)
    nodes: list[WorkflowNodePayload] = Field(min_length=1, max_length=100)
    output_mapping: dict[str, StrictStr]
    input_schema: dict[str, Any]
    project_id: StrictStr = Field(min_length=1)
    workflow_metadata: dict[str, Any] | None = None


class WorkflowRunPayload(BaseModel):
    """工作流运行载荷约束。"""
    model_config = ConfigDict(extra="allow")

    workflow_id: StrictStr = Field(min_length=1)
    input: dict[str, Any] | None = None


def _format_loc(loc: tuple[Any, ...]) -> str:
    path = "$"
    for part in loc:
        if isinstance(part, int):
            path += f"[{part}]"
        else:
            path += f".{part}"
    return path


def _issues_from(model: type[BaseModel], payload: Any) -> list[ValidationIssue]:
    if not isinstance(payload, dict):
        return [ValidationIssue(path="$", message="must be an object")]
    try:
        model.model_validate(payload)
    except ValidationError as exc:
        return [ValidationIssue(path=_format_loc(tuple(err["loc"])), message=err["msg"]) for err in exc.errors()]
    return []


def validate_workflow_create_payload(payload: Any) -> list[ValidationIssue]:
    return _issues_from(WorkflowCreatePayload, payload)


def validate_workflow_run_payload(payload: Any) -> list[ValidationIssue]:
    return _issues_from(WorkflowRunPayload, payload)
