"""远端工作流 HTTP 客户端：封装工作流创建、校验、运行、运行查询与连接列表接口。"""

from __future__ import annotations

import logging
import time
from typing import Any

import httpx

logger = logging.getLogger(__name__)


class WorkflowApiError(RuntimeError):
    """远端接口调用失败（网络异常或非 2xx 响应）。"""

    def __init__(
        self,
        message: str,
        *,
        op: str | None = None,
        status_code: int | None = None,
        payload: Any = None,
    ) -> None:
        super().__init__(message)
        self.op = op
        self.status_code = status_code
        self.payload = payload


class MissingApiKeyError(WorkflowApiError):
    """未配置 API Key，无法调用需要鉴权的接口。"""


class WorkflowApiClient:
    """远端工作流 API 同步 HTTP 客户端封装。"""

    def __init__(
        self,
        base_url: str,
        api_key: str | None,
        *,
        workspace_id: str | None = None,
        project_id: str | None = None,
        timeout_seconds: int = 30,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._api_key = api_key
        self.workspace_id = workspace_id
        self.project_id = project_id
        self._closed = False
        headers = {"Accept": "application/json"}
        if api_key:
            headers["Authorization"] = f"Bearer {api_key}"
        self._client = httpx.Client(
            base_url=self._base_url,
            headers=headers,
            timeout=httpx.Timeout(timeout_seconds),
            limits=httpx.Limits(max_connections=20, max_keepalive_connections=5),
            transport=transport,
        )

    def _client_or_raise(self) -> httpx.Client:
        """返回可用客户端；若已关闭则抛出异常。"""
        if self._closed:
            raise RuntimeError("WorkflowApiClient is already closed")
        return self._client

    def _require_api_key(self, op: str) -> None:
        if not self._api_key:
            raise MissingApiKeyError("AGENTICFLOW_API_KEY is not configured", op=op)

    def _workspace_or_raise(self, workspace_id: str | None, op: str) -> str:
        """缺少凭据优先于缺少工作区上报。"""
        self._require_api_key(op)
        resolved = workspace_id or self.workspace_id
        if not resolved:
            raise WorkflowApiError("workspace_id is required", op=op)
        return resolved

    def close(self) -> None:
        """关闭底层 HTTP 客户端连接池。"""
        if self._closed:
            return
        self._client.close()
        self._closed = True

    def _request(
        self,
        *,
        method: str,
        path: str,
        op: str,
        params: dict[str, Any] | None = None,
        json_body: Any = None,
        payload_preview: Any = None,
    ) -> Any:
        """发送请求并记录结构化日志；失败统一转换为 WorkflowApiError。"""
        self._require_api_key(op)
        started = time.perf_counter()
        try:
            response = self._client_or_raise().request(method, path, params=params, json=json_body)
            response.raise_for_status()
        except httpx.HTTPError as exc:
            duration_ms = round((time.perf_counter() - started) * 1000, 2)
            status_code = None
            payload = None
            if isinstance(exc, httpx.HTTPStatusError):
                status_code = exc.response.status_code
                payload = _safe_json(exc.response)
            logger.error(
                "workflow api request failed",
                extra={
                    "event": "workflow_api.request.failed",
                    "external_service": "workflow_api",
                    "op": op,
                    "duration_ms": duration_ms,
                    "status_code": status_code,
                    "error_type": type(exc).__name__,
                    "error": str(exc),
                    "payload_preview": payload_preview,
                },
            )
            raise WorkflowApiError(
                f"{op} failed: {exc}",
                op=op,
                status_code=status_code,
                payload=payload,
            ) from exc
        logger.debug(
            "workflow api request completed",
            extra={
                "event": "workflow_api.request.completed",
                "external_service": "workflow_api",
                "op": op,
                "duration_ms": round((time.perf_counter() - started) * 1000, 2),
                "status_code": response.status_code,
            },
        )
        return _safe_json(response)

    def create_workflow(self, definition: dict[str, Any], workspace_id: str | None = None) -> dict[str, Any]:
        """在工作区下创建工作流。"""
        ws_id = self._workspace_or_raise(workspace_id, "workflow.create")
        payload = self._request(
            method="POST",
            path=f"/v1/workspaces/{ws_id}/workflows",
            op="workflow.create",
            json_body=definition,
            payload_preview={"workspace_id": ws_id, "name": definition.get("name")},
        )
        return payload if isinstance(payload, dict) else {}

    def validate_workflow(self, definition: dict[str, Any]) -> Any:
        """调用远端校验接口检查工作流定义。"""
        return self._request(
            method="POST",
            path="/v1/workflows/utils/validate_create_workflow_model",
            op="workflow.validate",
            json_body=definition,
            payload_preview={"name": definition.get("name")},
        )

    def run_workflow(self, workflow_id: str, input_data: dict[str, Any]) -> dict[str, Any]:
        """提交一次工作流运行。"""
        payload = self._request(
            method="POST",
            path="/v1/workflow_runs/",
            op="workflow_run.create",
            json_body={"workflow_id": workflow_id, "input": input_data},
            payload_preview={"workflow_id": workflow_id, "input_keys": sorted(input_data)},
        )
        return payload if isinstance(payload, dict) else {}

    def get_run(self, run_id: str) -> dict[str, Any]:
        """查询运行状态快照。"""
        payload = self._request(
            method="GET",
            path=f"/v1/workflow_runs/{run_id}",
            op="workflow_run.get",
            payload_preview={"run_id": run_id},
        )
        return payload if isinstance(payload, dict) else {}

    def list_connections(
        self,
        *,
        workspace_id: str | None = None,
        project_id: str | None = None,
        limit: int = 200,
    ) -> list[dict[str, Any]]:
        """列出工作区可用的应用连接。"""
        ws_id = self._workspace_or_raise(workspace_id, "connection.list")
        params: dict[str, Any] = {"limit": limit}
        resolved_project = project_id or self.project_id
        if resolved_project:
            params["project_id"] = resolved_project
        payload = self._request(
            method="GET",
            path=f"/v1/workspaces/{ws_id}/app_connections/",
            op="connection.list",
            params=params,
            payload_preview={"workspace_id": ws_id, "limit": limit},
        )
        if isinstance(payload, dict):
            # 分页接口可能把列表包在 items 或 data 字段里。
            payload = payload.get("items", payload.get("data"))
        if not isinstance(payload, list):
            return []
        return [item for item in payload if isinstance(item, dict)]


def _safe_json(response: httpx.Response) -> Any:
    """尽量将响应体解析为 JSON，失败时返回原始文本。"""
    if not response.content:
        return None
    try:
        return response.json()
    except ValueError:
        return response.text
