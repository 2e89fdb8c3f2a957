"""技能接口：列出已安装技能、查询技能元数据、运行技能与技能包入口。"""

from __future__ import annotations

import logging
from typing import Any

from fastapi import APIRouter, Depends, HTTPException, status

from skillflow.api.v1.schemas import EntrypointRunRequest, SkillResponse, SkillRunRequest
from skillflow.application.container import get_skill_run_service
from skillflow.application.service import SkillRunService
from skillflow.domain.enums import ErrorCode
from skillflow.domain.errors import SkillRunError

router = APIRouter()
logger = logging.getLogger(__name__)

_STATUS_BY_CODE: dict[ErrorCode, int] = {
    ErrorCode.skill_not_found: status.HTTP_404_NOT_FOUND,
    ErrorCode.skill_run_sub_not_found: status.HTTP_404_NOT_FOUND,
    ErrorCode.pack_entrypoint_not_found: status.HTTP_404_NOT_FOUND,
    ErrorCode.skill_definition_invalid: status.HTTP_400_BAD_REQUEST,
    ErrorCode.skill_run_no_steps: status.HTTP_400_BAD_REQUEST,
    ErrorCode.skill_run_local_no_script: status.HTTP_400_BAD_REQUEST,
    ErrorCode.skill_run_nested_compose: status.HTTP_400_BAD_REQUEST,
    ErrorCode.local_validation_failed: status.HTTP_400_BAD_REQUEST,
    ErrorCode.missing_api_key: status.HTTP_401_UNAUTHORIZED,
    ErrorCode.skill_run_step_timeout: status.HTTP_504_GATEWAY_TIMEOUT,
}


def _service() -> SkillRunService:
    return get_skill_run_service()


def _http_error(exc: SkillRunError) -> HTTPException:
    """按失败编码映射 HTTP 状态码，响应体为失败三元组。"""
    status_code = _STATUS_BY_CODE.get(exc.code, status.HTTP_502_BAD_GATEWAY)
    logger.warning(
        "skill request failed",
        extra={
            "event": "skill.request.failed",
            "status_code": status_code,
            "error_type": exc.code.value,
            "error": exc.message,
        },
    )
    return HTTPException(status_code=status_code, detail=exc.to_dict())


@router.get("/skills", response_model=list[SkillResponse])
def list_skills(service: SkillRunService = Depends(_service)) -> list[SkillResponse]:
    return [SkillResponse(**item) for item in service.list_skills()]


@router.get("/skills/{name}", response_model=SkillResponse)
def get_skill(name: str, service: SkillRunService = Depends(_service)) -> SkillResponse:
    try:
        return SkillResponse(**service.get_skill(name))
    except SkillRunError as exc:
        raise _http_error(exc) from exc


@router.post("/skills/{name}/runs")
def run_skill(
    name: str,
    payload: SkillRunRequest,
    service: SkillRunService = Depends(_service),
) -> dict[str, Any]:
    """同步运行技能；wait=false 时返回初始运行状态。"""
    try:
        return service.run_skill(
            name,
            payload.input,
            wait=payload.wait,
            poll_interval_ms=payload.poll_interval_ms,
            timeout_ms=payload.timeout_ms,
            workspace_id=payload.workspace_id,
            project_id=payload.project_id,
        )
    except SkillRunError as exc:
        raise _http_error(exc) from exc


@router.post("/packs/{pack}/entrypoints/{entrypoint_id}/runs")
def run_entrypoint(
    pack: str,
    entrypoint_id: str,
    payload: EntrypointRunRequest,
    service: SkillRunService = Depends(_service),
) -> dict[str, Any]:
    try:
        return service.run_entrypoint(
            pack,
            entrypoint_id,
            payload.input,
            wait=payload.wait,
            poll_interval_ms=payload.poll_interval_ms,
            timeout_ms=payload.timeout_ms,
            workspace_id=payload.workspace_id,
            project_id=payload.project_id,
        )
    except SkillRunError as exc:
        raise _http_error(exc) from exc
