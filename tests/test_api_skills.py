"""技能接口测试：通过依赖覆盖注入服务，验证路由、请求模型与错误状态码映射。"""

from __future__ import annotations

from typing import Any

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from skillflow.api.router import api_router
from skillflow.api.v1 import skills as skills_api
from skillflow.config import get_settings
from skillflow.domain.enums import ErrorCode
from skillflow.domain.errors import SkillRunError


class _ServiceStub:
    """记录调用参数的技能运行服务桩。"""

    def __init__(self) -> None:
        self.calls: list[tuple[str, tuple[Any, ...], dict[str, Any]]] = []
        self.error: SkillRunError | None = None

    def _maybe_fail(self) -> None:
        if self.error is not None:
            raise self.error

    def list_skills(self) -> list[dict[str, Any]]:
        return [
            {
                "name": "ask-ai",
                "kind": "Skill",
                "version": "1.0.0",
                "description": None,
                "pack": "core",
                "path": "/packs/core/skills/ask-ai",
                "node_type": "llm",
            }
        ]

    def get_skill(self, name: str) -> dict[str, Any]:
        self._maybe_fail()
        return {**self.list_skills()[0], "name": name}

    def run_skill(self, name: str, input_data: dict[str, Any], **kwargs: Any) -> dict[str, Any]:
        self.calls.append(("run_skill", (name, input_data), kwargs))
        self._maybe_fail()
        return {"skill": name, "workflow_id": "wf-1", "run_id": "run-1", "status": "succeeded"}

    def run_entrypoint(self, pack: str, entrypoint_id: str, input_data: Any, **kwargs: Any) -> dict[str, Any]:
        self.calls.append(("run_entrypoint", (pack, entrypoint_id, input_data), kwargs))
        self._maybe_fail()
        return {"pack": pack, "entrypoint": entrypoint_id, "workflow_id": "wf-2"}


@pytest.fixture
def stub() -> _ServiceStub:
    return _ServiceStub()


@pytest.fixture
def client(stub: _ServiceStub) -> TestClient:
    app = FastAPI()
    app.include_router(api_router)
    app.dependency_overrides[skills_api._service] = lambda: stub
    return TestClient(app)


def _url(path: str) -> str:
    return f"{get_settings().api_prefix}{path}"


def test_list_skills_keeps_extra_fields(client: TestClient) -> None:
    response = client.get(_url("/skills"))
    assert response.status_code == 200
    body = response.json()
    assert body[0]["name"] == "ask-ai"
    assert body[0]["node_type"] == "llm"


def test_get_skill(client: TestClient) -> None:
    response = client.get(_url("/skills/translate"))
    assert response.status_code == 200
    assert response.json()["name"] == "translate"


def test_run_skill_forwards_options(client: TestClient, stub: _ServiceStub) -> None:
    response = client.post(
        _url("/skills/ask-ai/runs"),
        json={"input": {"prompt": "cats"}, "wait": False, "poll_interval_ms": 500, "workspace_id": "ws-9"},
    )

    assert response.status_code == 200
    assert response.json()["workflow_id"] == "wf-1"
    name, args, kwargs = stub.calls[0]
    assert name == "run_skill"
    assert args == ("ask-ai", {"prompt": "cats"})
    assert kwargs == {
        "wait": False,
        "poll_interval_ms": 500,
        "timeout_ms": None,
        "workspace_id": "ws-9",
        "project_id": None,
    }


def test_run_skill_rejects_negative_timeout(client: TestClient, stub: _ServiceStub) -> None:
    response = client.post(_url("/skills/ask-ai/runs"), json={"timeout_ms": -1})
    assert response.status_code == 422
    assert stub.calls == []


def test_run_entrypoint_without_input(client: TestClient, stub: _ServiceStub) -> None:
    response = client.post(_url("/packs/creatorops/entrypoints/timeline/runs"), json={})

    assert response.status_code == 200
    assert stub.calls[0][1] == ("creatorops", "timeline", None)


@pytest.mark.parametrize(
    ("code", "status_code"),
    [
        (ErrorCode.skill_not_found, 404),
        (ErrorCode.pack_entrypoint_not_found, 404),
        (ErrorCode.local_validation_failed, 400),
        (ErrorCode.skill_run_nested_compose, 400),
        (ErrorCode.missing_api_key, 401),
        (ErrorCode.skill_run_step_timeout, 504),
        (ErrorCode.skill_run_step_failed, 502),
        (ErrorCode.request_failed, 502),
    ],
)
def test_failure_codes_map_to_http_status(
    client: TestClient,
    stub: _ServiceStub,
    code: ErrorCode,
    status_code: int,
) -> None:
    stub.error = SkillRunError(code, "boom", {"step": "step1"})

    response = client.post(_url("/skills/ask-ai/runs"), json={})

    assert response.status_code == status_code
    assert response.json()["detail"] == {"code": code.value, "message": "boom", "detail": {"step": "step1"}}


def test_get_unknown_skill_is_404(client: TestClient, stub: _ServiceStub) -> None:
    stub.error = SkillRunError(ErrorCode.skill_not_found, "Skill 'x' is not installed.")
    response = client.get(_url("/skills/x"))
    assert response.status_code == 404
    assert response.json()["detail"]["code"] == "skill_not_found"
