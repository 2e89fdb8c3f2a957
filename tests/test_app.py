"""应用装配测试：健康检查、请求 ID 透传与未转换失败的兜底响应。"""

from __future__ import annotations

from pathlib import Path

from fastapi.testclient import TestClient

from skillflow.config import Settings
from skillflow.domain.enums import ErrorCode
from skillflow.domain.errors import SkillRunError
from skillflow.main import create_app


def _app(tmp_path: Path):
    settings = Settings(skill_packs_dir=tmp_path, agenticflow_api_key=None, log_dir=tmp_path / "logs")
    return create_app(settings)


def test_health_reports_packs_dir_and_api_key(tmp_path: Path) -> None:
    client = TestClient(_app(tmp_path))
    body = client.get("/health").json()
    assert body == {"status": "ok", "packs_dir_exists": True, "api_key_configured": False}


def test_request_id_is_echoed_or_generated(tmp_path: Path) -> None:
    client = TestClient(_app(tmp_path))

    echoed = client.get("/health", headers={"X-Request-Id": "req-123"})
    assert echoed.headers["X-Request-Id"] == "req-123"

    generated = client.get("/health")
    assert len(generated.headers["X-Request-Id"]) == 32


def test_unhandled_skill_run_error_becomes_failure_body(tmp_path: Path) -> None:
    app = _app(tmp_path)

    @app.get("/boom")
    def boom() -> None:
        raise SkillRunError(ErrorCode.request_failed, "upstream down", {"op": "workflow.create"})

    response = TestClient(app).get("/boom")
    assert response.status_code == 500
    assert response.json() == {
        "detail": {"code": "request_failed", "message": "upstream down", "detail": {"op": "workflow.create"}}
    }
