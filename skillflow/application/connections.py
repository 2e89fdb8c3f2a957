"""连接自动解析：按技能声明的能力类别挑选可用连接 ID，解析失败不致命。"""

from __future__ import annotations

import logging
from typing import Any, Iterable

from skillflow.infra.workflow.client import WorkflowApiClient, WorkflowApiError

logger = logging.getLogger(__name__)


def resolve_connection(category: str | None, connections: Iterable[dict[str, Any]]) -> str | None:
    """大小写不敏感匹配：优先精确匹配，否则任一方向的子串匹配，先到先得。"""
    if not category:
        return None
    wanted = category.strip().lower()
    if not wanted:
        return None

    candidates: list[tuple[str, str]] = []
    for item in connections:
        conn_id = item.get("id")
        conn_category = str(item.get("category") or "").strip().lower()
        if not isinstance(conn_id, str) or not conn_id or not conn_category:
            continue
        candidates.append((conn_category, conn_id))

    for conn_category, conn_id in candidates:
        if conn_category == wanted:
            return conn_id
    for conn_category, conn_id in candidates:
        if wanted in conn_category or conn_category in wanted:
            return conn_id
    return None


class ConnectionResolver:
    """封装连接列表拉取与匹配；列表在解析器生命周期内只拉取一次。"""

    def __init__(self, client: WorkflowApiClient, *, limit: int = 200) -> None:
        self._client = client
        self._limit = limit
        self._connections: list[dict[str, Any]] | None = None

    def _load(self, workspace_id: str | None, project_id: str | None) -> list[dict[str, Any]]:
        if self._connections is None:
            try:
                self._connections = self._client.list_connections(
                    workspace_id=workspace_id,
                    project_id=project_id,
                    limit=self._limit,
                )
            except WorkflowApiError as exc:
                # 连接不可用时照常创建工作流，缺连接的错误交由远端运行暴露。
                logger.warning(
                    "connection list unavailable",
                    extra={
                        "event": "connection.list.unavailable",
                        "error_type": type(exc).__name__,
                        "error": str(exc),
                    },
                )
                self._connections = []
        return self._connections

    def resolve(
        self,
        category: str | None,
        *,
        workspace_id: str | None = None,
        project_id: str | None = None,
    ) -> str | None:
        if not category:
            return None
        connection_id = resolve_connection(category, self._load(workspace_id, project_id))
        logger.info(
            "connection resolved" if connection_id else "no connection matched",
            extra={
                "event": "connection.resolved" if connection_id else "connection.unmatched",
                "payload_preview": {"category": category, "connection_id": connection_id},
            },
        )
        return connection_id
