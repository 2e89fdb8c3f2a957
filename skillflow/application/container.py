"""依赖容器模块，负责单例化创建远端客户端、执行适配器与技能运行服务。"""

from __future__ import annotations

import logging
from functools import lru_cache

from skillflow.application.service import SkillRunService
from skillflow.config import get_settings
from skillflow.infra.local.runner import LocalScriptRunner
from skillflow.infra.workflow.adapter import WorkflowExecutionAdapter
from skillflow.infra.workflow.client import WorkflowApiClient

logger = logging.getLogger(__name__)


@lru_cache(maxsize=1)
def get_workflow_client() -> WorkflowApiClient:
    """获取远端工作流客户端单例。"""
    settings = get_settings()
    return WorkflowApiClient(
        base_url=settings.agenticflow_base_url,
        api_key=settings.agenticflow_api_key,
        workspace_id=settings.agenticflow_workspace_id,
        project_id=settings.agenticflow_project_id,
        timeout_seconds=settings.agenticflow_request_timeout_seconds,
    )


@lru_cache(maxsize=1)
def get_execution_adapter() -> WorkflowExecutionAdapter:
    """获取工作流执行适配器单例。"""
    settings = get_settings()
    return WorkflowExecutionAdapter(
        get_workflow_client(),
        remote_validation=settings.skill_remote_validation,
    )


@lru_cache(maxsize=1)
def get_local_runner() -> LocalScriptRunner:
    return LocalScriptRunner(timeout_seconds=get_settings().skill_local_step_timeout_seconds)


@lru_cache(maxsize=1)
def get_skill_run_service() -> SkillRunService:
    """获取技能运行服务单例；技能包仓库在每次调用内部重新构建。"""
    return SkillRunService(
        settings=get_settings(),
        client=get_workflow_client(),
        adapter=get_execution_adapter(),
        local_runner=get_local_runner(),
    )


def shutdown_container_resources() -> None:
    """关闭共享客户端并清理依赖容器缓存。"""
    if get_workflow_client.cache_info().currsize:
        try:
            get_workflow_client().close()
        except RuntimeError as exc:
            logger.warning(
                "workflow client close failed",
                extra={"event": "container.shutdown.failed", "error_type": type(exc).__name__, "error": str(exc)},
            )

    # 按依赖顺序清理缓存，确保后续请求可重新构建全新实例。
    for provider in (
        get_skill_run_service,
        get_local_runner,
        get_execution_adapter,
        get_workflow_client,
    ):
        provider.cache_clear()
