"""技能步骤执行器：原子技能单次提交，组合技能按声明顺序串行执行并在首个失败处中止。"""

from __future__ import annotations

import json
import logging
import time
from pathlib import Path
from typing import Any

from skillflow.application.connections import ConnectionResolver
from skillflow.domain.enums import ErrorCode
from skillflow.domain.errors import SkillRunError
from skillflow.domain.models import (
    AtomicSkillReport,
    ComposedSkillReport,
    EntrypointReport,
    ExecutionResult,
    RunOptions,
)
from skillflow.domain.skills.builder import build_workflow_from_skill
from skillflow.domain.skills.models import (
    AtomicSkill,
    ComposedSkill,
    LocalStep,
    ResolvedSkill,
    SkillStep,
)
from skillflow.domain.skills.template import resolve_inputs, resolve_template, stringify
from skillflow.infra.local.runner import LocalScriptError, LocalScriptRunner, LocalScriptTimeoutError
from skillflow.infra.logging.context import bind_log_context
from skillflow.infra.packs.store import PackStore
from skillflow.infra.workflow.adapter import WorkflowExecutionAdapter

logger = logging.getLogger(__name__)

PROJECT_ID_PLACEHOLDER = "{{PROJECT_ID}}"


def extract_step_output(run: dict[str, Any]) -> Any:
    """子技能步骤结果：依次取 output、result 字段，否则返回完整运行对象。"""
    if run.get("output") is not None:
        return run["output"]
    if run.get("result") is not None:
        return run["result"]
    return run


class SkillExecutor:
    """单次调用的编排核心；步骤结果映射只在一次 run 内存在。"""

    def __init__(
        self,
        *,
        store: PackStore,
        adapter: WorkflowExecutionAdapter,
        connections: ConnectionResolver,
        local_runner: LocalScriptRunner,
    ) -> None:
        self._store = store
        self._adapter = adapter
        self._connections = connections
        self._local_runner = local_runner

    def run(
        self,
        resolved: ResolvedSkill,
        input_data: dict[str, Any],
        options: RunOptions,
    ) -> AtomicSkillReport | ComposedSkillReport:
        with bind_log_context(skill=resolved.skill.name):
            if isinstance(resolved.skill, ComposedSkill):
                return self._run_composed(resolved, resolved.skill, input_data, options)
            return self._run_atomic(resolved, resolved.skill, input_data, options)

    def _workflow_for(
        self,
        resolved: ResolvedSkill,
        skill: AtomicSkill,
        options: RunOptions,
    ) -> str | dict[str, Any]:
        """优先复用安装时预置的工作流 ID，否则现场构建工作流定义。"""
        provisioned = self._store.provisioned_workflow_id(resolved)
        if provisioned:
            logger.info(
                "reusing provisioned workflow",
                extra={"event": "skill.workflow.provisioned", "payload_preview": {"workflow_id": provisioned}},
            )
            return provisioned
        try:
            workflow = build_workflow_from_skill(skill, options.project_id)
        except ValueError as exc:
            raise SkillRunError(
                ErrorCode.skill_definition_invalid,
                str(exc),
                {"skill": skill.name, "path": str(resolved.path)},
            ) from exc
        # 本地校验先于连接列表请求。
        self._adapter.check_definition(workflow)
        connection_id = self._connections.resolve(
            skill.connection_category,
            workspace_id=options.workspace_id,
            project_id=options.project_id,
        )
        if connection_id:
            workflow["nodes"][0]["connection"] = connection_id
        return workflow

    def _run_atomic(
        self,
        resolved: ResolvedSkill,
        skill: AtomicSkill,
        input_data: dict[str, Any],
        options: RunOptions,
    ) -> AtomicSkillReport:
        started = time.perf_counter()
        workflow = self._workflow_for(resolved, skill, options)
        result = self._adapter.submit_and_wait(workflow, input_data, options)
        logger.info(
            "atomic skill finished",
            extra={
                "event": "skill.atomic.finished",
                "duration_ms": round((time.perf_counter() - started) * 1000, 2),
                "payload_preview": {
                    "workflow_id": result.workflow_id,
                    "run_id": result.run_id,
                    "status": result.status,
                    "timed_out": result.timed_out,
                },
            },
        )
        return AtomicSkillReport(
            skill=skill.name,
            workflow_id=result.workflow_id,
            run=result.run,
            run_id=result.run_id,
            status=result.status,
            terminal=result.terminal,
            failed=result.failed,
            timed_out=result.timed_out,
        )

    def _run_composed(
        self,
        resolved: ResolvedSkill,
        skill: ComposedSkill,
        input_data: dict[str, Any],
        options: RunOptions,
    ) -> ComposedSkillReport:
        if not skill.steps:
            raise SkillRunError(ErrorCode.skill_run_no_steps, f"Composed skill '{skill.name}' has no steps.")

        step_results: dict[str, Any] = {}
        for index, step in enumerate(skill.steps):
            with bind_log_context(step_id=step.id):
                step_inputs = resolve_inputs(step.inputs, input_data, step_results)
                logger.info(
                    "step started",
                    extra={
                        "event": "skill.step.started",
                        "payload_preview": {"index": index, "total": len(skill.steps), "inputs": sorted(step_inputs)},
                    },
                )
                started = time.perf_counter()
                if isinstance(step, LocalStep):
                    step_results[step.id] = self._run_local_step(resolved, step, step_inputs)
                elif isinstance(step, SkillStep):
                    step_results[step.id] = self._run_skill_step(step, step_inputs, options)
                else:
                    raise TypeError(f"unsupported step type: {type(step).__name__}")
                logger.info(
                    "step finished",
                    extra={
                        "event": "skill.step.finished",
                        "duration_ms": round((time.perf_counter() - started) * 1000, 2),
                    },
                )

        outputs = {
            name: resolve_template(template, input_data, step_results)
            for name, template in skill.composed_outputs.items()
        }
        return ComposedSkillReport(skill=skill.name, steps=step_results, outputs=outputs)

    def _run_local_step(
        self,
        resolved: ResolvedSkill,
        step: LocalStep,
        step_inputs: dict[str, Any],
    ) -> dict[str, Any]:
        if not step.script:
            raise SkillRunError(
                ErrorCode.skill_run_local_no_script,
                f"Local step '{step.id}' has no script.",
                {"step": step.id},
            )
        script_path = resolved.path / step.script
        if not script_path.is_file():
            raise SkillRunError(
                ErrorCode.skill_run_local_no_script,
                f"Script for local step '{step.id}' not found: {script_path}",
                {"step": step.id, "script": str(script_path)},
            )

        env = {name: stringify(value) for name, value in step_inputs.items()}
        try:
            result = self._local_runner.run(script_path, env, resolved.path)
        except LocalScriptTimeoutError as exc:
            raise SkillRunError(
                ErrorCode.skill_run_step_timeout,
                f"Local step '{step.id}' timed out after {exc.timeout_seconds}s.",
                {"step": step.id, "script": str(script_path), "stderr": exc.stderr},
            ) from exc
        except LocalScriptError as exc:
            raise SkillRunError(
                ErrorCode.skill_run_step_failed,
                f"Local step '{step.id}' failed to start: {exc}",
                {"step": step.id, "script": str(script_path)},
            ) from exc

        if not result.ok:
            raise SkillRunError(
                ErrorCode.skill_run_step_failed,
                f"Local step '{step.id}' exited with code {result.exit_code}.",
                {
                    "step": step.id,
                    "script": str(script_path),
                    "exit_code": result.exit_code,
                    "stderr": result.stderr.strip(),
                },
            )
        return {"output": result.stdout.strip()}

    def _run_skill_step(self, step: SkillStep, step_inputs: dict[str, Any], options: RunOptions) -> Any:
        target = self._store.resolve_skill(step.skill)
        if target is None:
            raise SkillRunError(
                ErrorCode.skill_run_sub_not_found,
                f"Sub-skill '{step.skill}' for step '{step.id}' is not installed.",
                {"step": step.id, "skill": step.skill},
            )
        if not isinstance(target.skill, AtomicSkill):
            # 只支持一层嵌套，组合技能不能作为步骤目标。
            raise SkillRunError(
                ErrorCode.skill_run_nested_compose,
                f"Step '{step.id}' targets composed skill '{step.skill}'; nested composition is not supported.",
                {"step": step.id, "skill": step.skill},
            )

        step_options = RunOptions(
            wait=True,
            poll_interval_ms=options.poll_interval_ms,
            timeout_ms=options.timeout_ms,
            workspace_id=options.workspace_id,
            project_id=options.project_id,
        )
        workflow = self._workflow_for(target, target.skill, step_options)
        result = self._adapter.submit_and_wait(
            workflow,
            step_inputs,
            step_options,
            missing_id_code=ErrorCode.skill_run_sub_create_failed,
        )
        self._raise_for_step(step, result)
        return extract_step_output(result.run)

    @staticmethod
    def _raise_for_step(step: SkillStep, result: ExecutionResult) -> None:
        detail = {
            "step": step.id,
            "skill": step.skill,
            "workflow_id": result.workflow_id,
            "run_id": result.run_id,
            "status": result.status,
            "run": result.run,
        }
        if result.timed_out:
            raise SkillRunError(
                ErrorCode.skill_run_step_timeout,
                f"Step '{step.id}' ({step.skill}) did not reach a terminal status in time.",
                detail,
            )
        if result.failed:
            raise SkillRunError(
                ErrorCode.skill_run_step_failed,
                f"Step '{step.id}' ({step.skill}) failed with status '{result.status}'.",
                detail,
            )

    def run_entrypoint(
        self,
        pack: str,
        entrypoint_id: str,
        input_data: dict[str, Any] | None,
        options: RunOptions,
    ) -> EntrypointReport:
        """运行技能包入口声明的原始工作流定义。"""
        pack_root = self._store.pack_root(pack)
        manifest = self._store.load_manifest(pack_root) if pack_root is not None else None
        entry = manifest.entrypoint(entrypoint_id) if manifest is not None else None
        if pack_root is None or entry is None:
            raise SkillRunError(
                ErrorCode.pack_entrypoint_not_found,
                f"Entrypoint '{entrypoint_id}' not found in pack '{pack}'.",
                {"pack": pack, "entrypoint": entrypoint_id},
            )

        with bind_log_context(skill=f"{pack}:{entrypoint_id}"):
            workflow: str | dict[str, Any] | None = self._store.provisioned_entrypoint_id(pack_root, entry.id)
            if workflow is None:
                workflow = _read_json_object(pack_root / entry.workflow, "workflow")
                project_id = workflow.get("project_id")
                if options.project_id and (not project_id or project_id == PROJECT_ID_PLACEHOLDER):
                    workflow["project_id"] = options.project_id

            if input_data is None:
                input_data = (
                    _read_json_object(pack_root / entry.default_input, "default_input") if entry.default_input else {}
                )

            result = self._adapter.submit_and_wait(workflow, input_data, options)
            return EntrypointReport(
                pack=pack,
                entrypoint=entry.id,
                workflow_id=result.workflow_id,
                run=result.run,
                status=result.status,
                failed=result.failed,
                timed_out=result.timed_out,
            )


def _read_json_object(path: Path, label: str) -> dict[str, Any]:
    try:
        parsed = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, ValueError) as exc:
        raise SkillRunError(
            ErrorCode.skill_definition_invalid,
            f"Cannot read entrypoint {label} file {path}: {exc}",
            {"path": str(path)},
        ) from exc
    if not isinstance(parsed, dict):
        raise SkillRunError(
            ErrorCode.skill_definition_invalid,
            f"Entrypoint {label} file {path} must contain a JSON object.",
            {"path": str(path)},
        )
    return parsed
