"""模板解析：将 {{expr}} 占位符替换为调用入参或前序步骤产出。"""

from __future__ import annotations

import json
import re
from typing import Any, Mapping

PLACEHOLDER_RE = re.compile(r"\{\{\s*([^{}]+?)\s*\}\}")

_MISSING = object()


def _walk(value: Any, path: list[str]) -> Any:
    """按点分路径逐层取值；支持字典键与列表下标。"""
    current = value
    for segment in path:
        if isinstance(current, Mapping):
            if segment not in current:
                return _MISSING
            current = current[segment]
        elif isinstance(current, (list, tuple)) and segment.isdigit():
            index = int(segment)
            if index >= len(current):
                return _MISSING
            current = current[index]
        else:
            return _MISSING
    return current


def _lookup(expr: str, variables: Mapping[str, Any], step_results: Mapping[str, Any]) -> Any:
    if "." in expr:
        # 首个点之前是步骤 ID，其余为步骤结果内的字段路径。
        step_id, field_path = expr.split(".", 1)
        if step_id not in step_results:
            return _MISSING
        return _walk(step_results[step_id], field_path.split("."))
    if expr in variables:
        return variables[expr]
    return _MISSING


def stringify(value: Any) -> str:
    """内联替换时的字符串化规则。"""
    if value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (dict, list, tuple)):
        return json.dumps(value, ensure_ascii=False)
    return str(value)


def resolve_template(template: Any, variables: Mapping[str, Any], step_results: Mapping[str, Any]) -> Any:
    """解析单个模板值。

    整个字符串恰为一个占位符时返回原始类型的值；否则逐个字符串化后内联替换。
    无法解析的表达式原样保留，便于诊断。
    """
    if not isinstance(template, str):
        return template

    whole = PLACEHOLDER_RE.fullmatch(template)
    if whole:
        value = _lookup(whole.group(1), variables, step_results)
        return template if value is _MISSING else value

    def _replace(match: re.Match[str]) -> str:
        value = _lookup(match.group(1), variables, step_results)
        if value is _MISSING:
            return match.group(0)
        return stringify(value)

    return PLACEHOLDER_RE.sub(_replace, template)


def resolve_inputs(
    inputs: Mapping[str, Any],
    variables: Mapping[str, Any],
    step_results: Mapping[str, Any],
) -> dict[str, Any]:
    """对输入映射的每个值独立解析，键保持不变。"""
    return {key: resolve_template(value, variables, step_results) for key, value in inputs.items()}
