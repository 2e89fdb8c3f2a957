"""领域枚举定义：统一技能类型、失败编码与入口运行模式取值。"""

from __future__ import annotations

from enum import Enum


class SkillKind(str, Enum):
    """技能定义类型枚举。"""
    atomic = "Skill"
    composed = "ComposedSkill"


class ErrorCode(str, Enum):
    """技能运行失败编码，调用方据此区分失败类别。"""
    skill_not_found = "skill_not_found"
    skill_definition_invalid = "skill_definition_invalid"
    skill_run_no_steps = "skill_run_no_steps"
    skill_run_local_no_script = "skill_run_local_no_script"
    skill_run_sub_not_found = "skill_run_sub_not_found"
    skill_run_nested_compose = "skill_run_nested_compose"
    skill_run_step_failed = "skill_run_step_failed"
    skill_run_step_timeout = "skill_run_step_timeout"
    skill_run_create_failed = "skill_run_create_failed"
    skill_run_sub_create_failed = "skill_run_sub_create_failed"
    local_validation_failed = "local_validation_failed"
    pack_entrypoint_not_found = "pack_entrypoint_not_found"
    missing_api_key = "missing_api_key"
    request_failed = "request_failed"


class PackMode(str, Enum):
    """技能包入口运行模式枚举。"""
    local = "local"
    cloud = "cloud"
    hybrid = "hybrid"
