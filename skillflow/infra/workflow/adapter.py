"""工作流执行适配器：统一"创建/提交运行/可选等待终态"流程。"""

from __future__ import annotations

import logging
import time
from typing import Any, Callable

from skillflow.domain.enums import ErrorCode
from skillflow.domain.errors import SkillRunError
from skillflow.domain.models import ExecutionResult, RunHandle, RunOptions
from skillflow.domain.run_status import classify_run_status, extract_run_status
from skillflow.infra.logging.context import bind_log_context
from skillflow.infra.workflow.client import WorkflowApiClient
from skillflow.infra.workflow.validation import (
    ValidationIssue,
    validate_workflow_create_payload,
    validate_workflow_run_payload,
)

logger = logging.getLogger(__name__)


def extract_id(payload: Any, keys: tuple[str, ...]) -> str | None:
    """按候选键顺序取第一个非空字符串 ID。"""
    if not isinstance(payload, dict):
        return None
    for key in keys:
        value = payload.get(key)
        if isinstance(value, str) and value.strip():
            return value
    return None


def _issues_detail(issues: list[ValidationIssue]) -> dict[str, Any]:
    return {"issues": [{"path": item.path, "message": item.message} for item in issues]}


class WorkflowExecutionAdapter:
    """封装远端 create/run/get-run，对上层暴露 submit_and_wait。"""

    def __init__(
        self,
        client: WorkflowApiClient,
        *,
        remote_validation: bool = False,
        sleep: Callable[[float], None] = time.sleep,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._client = client
        self._remote_validation = remote_validation
        self._sleep = sleep
        self._clock = clock

    @staticmethod
    def check_definition(definition: dict[str, Any]) -> None:
        """本地形状校验，不发起任何网络请求。"""
        issues = validate_workflow_create_payload(definition)
        if issues:
            raise SkillRunError(
                ErrorCode.local_validation_failed,
                f"workflow payload failed local validation ({len(issues)} issue(s))",
                _issues_detail(issues),
            )

    def create_workflow(
        self,
        definition: dict[str, Any],
        *,
        workspace_id: str | None = None,
        missing_id_code: ErrorCode = ErrorCode.skill_run_create_failed,
    ) -> str:
        """本地校验、可选远端校验后创建工作流，返回工作流 ID。"""
        self.check_definition(definition)
        if self._remote_validation:
            self._client.validate_workflow(definition)

        created = self._client.create_workflow(definition, workspace_id)
        workflow_id = extract_id(created, ("id", "workflow_id"))
        if not workflow_id:
            raise SkillRunError(missing_id_code, "workflow creation response is missing an id", {"response": created})
        logger.info(
            "workflow created",
            extra={"event": "workflow.created", "payload_preview": {"workflow_id": workflow_id}},
        )
        return workflow_id

    def submit(self, workflow_id: str, input_data: dict[str, Any]) -> tuple[RunHandle, dict[str, Any]]:
        """提交运行，返回初始运行句柄与原始运行快照。"""
        payload = {"workflow_id": workflow_id, "input": input_data}
        issues = validate_workflow_run_payload(payload)
        if issues:
            raise SkillRunError(
                ErrorCode.local_validation_failed,
                f"workflow run payload failed local validation ({len(issues)} issue(s))",
                _issues_detail(issues),
            )
        run = self._client.run_workflow(workflow_id, input_data)
        run_id = extract_id(run, ("id", "workflow_run_id", "run_id"))
        if not run_id:
            raise SkillRunError(ErrorCode.request_failed, "workflow run response is missing a run id", {"response": run})
        return self._handle(workflow_id, run_id, run), run

    def submit_and_wait(
        self,
        workflow: str | dict[str, Any],
        input_data: dict[str, Any],
        options: RunOptions,
        *,
        missing_id_code: ErrorCode = ErrorCode.skill_run_create_failed,
    ) -> ExecutionResult:
        """workflow 可为已存在的工作流 ID 或原始定义；wait=False 时立即返回初始状态。"""
        if isinstance(workflow, dict):
            workflow_id = self.create_workflow(
                workflow,
                workspace_id=options.workspace_id,
                missing_id_code=missing_id_code,
            )
        else:
            workflow_id = workflow

        handle, run = self.submit(workflow_id, input_data)
        with bind_log_context(run_id=handle.run_id):
            logger.info(
                "workflow run submitted",
                extra={
                    "event": "workflow_run.submitted",
                    "payload_preview": {"workflow_id": workflow_id, "status": handle.raw_status},
                },
            )
            if not options.wait:
                return ExecutionResult(handle=handle, run=run)
            return self.wait_for_terminal(handle, run, options)

    def wait_for_terminal(self, handle: RunHandle, run: dict[str, Any], options: RunOptions) -> ExecutionResult:
        """串行轮询直到终态或超时；每次轮询完成后才安排下一次。"""
        deadline = self._clock() + options.timeout_ms / 1000
        interval = max(options.poll_interval_ms, 0) / 1000
        polls = 0
        while not handle.terminal:
            if self._clock() >= deadline:
                logger.warning(
                    "workflow run wait timed out",
                    extra={
                        "event": "workflow_run.timed_out",
                        "payload_preview": {"status": handle.raw_status, "polls": polls, "timeout_ms": options.timeout_ms},
                    },
                )
                return ExecutionResult(handle=handle, run=run, timed_out=True, polls=polls)
            self._sleep(interval)
            run = self._client.get_run(handle.run_id)
            polls += 1
            handle = self._handle(handle.workflow_id, handle.run_id, run)
            logger.debug(
                "workflow run polled",
                extra={"event": "workflow_run.polled", "payload_preview": {"status": handle.raw_status, "polls": polls}},
            )
        logger.info(
            "workflow run reached terminal status",
            extra={
                "event": "workflow_run.terminal",
                "payload_preview": {"status": handle.raw_status, "failed": handle.failed, "polls": polls},
            },
        )
        return ExecutionResult(handle=handle, run=run, polls=polls)

    @staticmethod
    def _handle(workflow_id: str, run_id: str, run: dict[str, Any]) -> RunHandle:
        raw_status = extract_run_status(run)
        status = classify_run_status(raw_status)
        return RunHandle(
            workflow_id=workflow_id,
            run_id=run_id,
            raw_status=raw_status,
            terminal=status.terminal,
            failed=status.failed,
        )
