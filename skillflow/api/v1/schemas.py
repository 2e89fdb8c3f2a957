"""API 请求与响应数据模型定义，约束技能运行与技能目录接口结构。"""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class RunOptionsRequest(BaseModel):
    """运行参数公共字段。"""
    wait: bool = True
    poll_interval_ms: int | None = Field(default=None, ge=0)
    timeout_ms: int | None = Field(default=None, ge=0)
    workspace_id: str | None = None
    project_id: str | None = None


class SkillRunRequest(RunOptionsRequest):
    """技能运行请求模型。"""
    input: dict[str, Any] = Field(default_factory=dict)


class EntrypointRunRequest(RunOptionsRequest):
    """技能包入口运行请求模型；input 缺省时使用入口默认入参。"""
    input: dict[str, Any] | None = None


class SkillResponse(BaseModel):
    """技能元数据接口响应模型。"""
    model_config = ConfigDict(extra="allow")

    name: str
    kind: str
    version: str
    description: str | None = None
    pack: str
    path: str
