"""技能运行服务门面：组装单次调用上下文，并把所有失败统一收敛为 SkillRunError。"""

from __future__ import annotations

import logging
from contextlib import contextmanager
from typing import Any, Callable, Iterator

from skillflow.application.connections import ConnectionResolver
from skillflow.application.executor import SkillExecutor
from skillflow.config import Settings
from skillflow.domain.enums import ErrorCode
from skillflow.domain.errors import SkillDefinitionError, SkillRunError
from skillflow.domain.models import RunOptions
from skillflow.domain.skills.models import AtomicSkill, LocalStep, ResolvedSkill
from skillflow.infra.local.runner import LocalScriptRunner
from skillflow.infra.packs.store import PackStore
from skillflow.infra.workflow.adapter import WorkflowExecutionAdapter
from skillflow.infra.workflow.client import MissingApiKeyError, WorkflowApiClient, WorkflowApiError

logger = logging.getLogger(__name__)


@contextmanager
def _translate_errors() -> Iterator[None]:
    """将客户端与定义层异常转换为带编码的 SkillRunError。"""
    try:
        yield
    except MissingApiKeyError as exc:
        raise SkillRunError(ErrorCode.missing_api_key, str(exc), {"op": exc.op}) from exc
    except WorkflowApiError as exc:
        detail: dict[str, Any] = {"op": exc.op}
        if exc.status_code is not None:
            detail["status_code"] = exc.status_code
        if exc.payload is not None:
            detail["payload"] = exc.payload
        raise SkillRunError(ErrorCode.request_failed, str(exc), detail) from exc
    except SkillDefinitionError as exc:
        raise SkillRunError(ErrorCode.skill_definition_invalid, str(exc)) from exc


class SkillRunService:
    """对外暴露技能运行、技能包入口运行与技能目录查询。"""

    def __init__(
        self,
        *,
        settings: Settings,
        client: WorkflowApiClient,
        adapter: WorkflowExecutionAdapter,
        local_runner: LocalScriptRunner,
        store_factory: Callable[[], PackStore] | None = None,
    ) -> None:
        self._settings = settings
        self._client = client
        self._adapter = adapter
        self._local_runner = local_runner
        self._store_factory = store_factory or (lambda: PackStore(settings.skill_packs_dir))

    def _options(
        self,
        *,
        wait: bool,
        poll_interval_ms: int | None,
        timeout_ms: int | None,
        workspace_id: str | None,
        project_id: str | None,
    ) -> RunOptions:
        return RunOptions(
            wait=wait,
            poll_interval_ms=poll_interval_ms if poll_interval_ms is not None else self._settings.skill_poll_interval_ms,
            timeout_ms=timeout_ms if timeout_ms is not None else self._settings.skill_poll_timeout_ms,
            workspace_id=workspace_id or self._settings.agenticflow_workspace_id,
            project_id=project_id or self._settings.agenticflow_project_id,
        )

    def _executor(self, store: PackStore) -> SkillExecutor:
        # 每次调用都构建新的执行器，技能包扫描与连接列表不跨调用共享。
        return SkillExecutor(
            store=store,
            adapter=self._adapter,
            connections=ConnectionResolver(self._client, limit=self._settings.skill_connection_list_limit),
            local_runner=self._local_runner,
        )

    def run_skill(
        self,
        name: str,
        input_data: dict[str, Any] | None = None,
        *,
        wait: bool = True,
        poll_interval_ms: int | None = None,
        timeout_ms: int | None = None,
        workspace_id: str | None = None,
        project_id: str | None = None,
    ) -> dict[str, Any]:
        """运行已安装技能，返回执行报告字典。"""
        options = self._options(
            wait=wait,
            poll_interval_ms=poll_interval_ms,
            timeout_ms=timeout_ms,
            workspace_id=workspace_id,
            project_id=project_id,
        )
        with _translate_errors():
            store = self._store_factory()
            resolved = store.resolve_skill(name)
            if resolved is None:
                raise SkillRunError(
                    ErrorCode.skill_not_found,
                    f"Skill '{name}' is not installed.",
                    {"skill": name, "packs_dir": str(store.packs_dir)},
                )
            logger.info(
                "skill run requested",
                extra={
                    "event": "skill.run.requested",
                    "payload_preview": {"skill": name, "pack": resolved.pack_name, "wait": wait},
                },
            )
            report = self._executor(store).run(resolved, dict(input_data or {}), options)
        return report.to_dict()

    def run_entrypoint(
        self,
        pack: str,
        entrypoint_id: str,
        input_data: dict[str, Any] | None = None,
        *,
        wait: bool = True,
        poll_interval_ms: int | None = None,
        timeout_ms: int | None = None,
        workspace_id: str | None = None,
        project_id: str | None = None,
    ) -> dict[str, Any]:
        """运行技能包入口；未提供入参时使用入口声明的默认入参文件。"""
        options = self._options(
            wait=wait,
            poll_interval_ms=poll_interval_ms,
            timeout_ms=timeout_ms,
            workspace_id=workspace_id,
            project_id=project_id,
        )
        with _translate_errors():
            store = self._store_factory()
            report = self._executor(store).run_entrypoint(pack, entrypoint_id, input_data, options)
        return report.to_dict()

    def list_skills(self) -> list[dict[str, Any]]:
        store = self._store_factory()
        return [_describe(store, resolved) for resolved in store.list_skills()]

    def get_skill(self, name: str) -> dict[str, Any]:
        store = self._store_factory()
        resolved = store.resolve_skill(name)
        if resolved is None:
            raise SkillRunError(ErrorCode.skill_not_found, f"Skill '{name}' is not installed.", {"skill": name})
        return _describe(store, resolved)


def _describe(store: PackStore, resolved: ResolvedSkill) -> dict[str, Any]:
    skill = resolved.skill
    payload: dict[str, Any] = {
        "name": skill.name,
        "kind": skill.kind.value,
        "version": skill.version,
        "description": skill.description,
        "pack": resolved.pack_name,
        "path": str(resolved.path),
    }
    if isinstance(skill, AtomicSkill):
        payload.update(
            {
                "node_type": skill.node_type,
                "connection_category": skill.connection_category,
                "provisioned_workflow_id": store.provisioned_workflow_id(resolved),
                "inputs": {
                    name: {
                        "field": spec.field,
                        "required": spec.required,
                        "default": spec.default,
                        "description": spec.description,
                    }
                    for name, spec in skill.inputs.items()
                },
                "outputs": {name: {"field": spec.field} for name, spec in skill.outputs.items()},
            }
        )
        return payload

    payload["steps"] = [
        {"id": step.id, "local": True, "script": step.script, "inputs": step.inputs}
        if isinstance(step, LocalStep)
        else {"id": step.id, "skill": step.skill, "inputs": step.inputs}
        for step in skill.steps
    ]
    payload["outputs"] = dict(skill.composed_outputs)
    return payload
