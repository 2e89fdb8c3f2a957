"""远端运行状态分类：将原始状态字符串归一化为终态/失败判定。"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Any

TERMINAL_STATUSES = frozenset(
    {"completed", "complete", "success", "succeeded", "failed", "error", "cancelled", "canceled", "timed_out", "timeout"}
)
FAILED_STATUSES = frozenset({"failed", "error", "cancelled", "canceled", "timed_out", "timeout"})

_SEPARATOR_RE = re.compile(r"[\s\-]+")


@dataclass(frozen=True, slots=True)
class RunStatus:
    """状态分类结果。"""
    normalized: str
    terminal: bool
    failed: bool


def normalize_status(raw_status: Any) -> str:
    if raw_status is None:
        return ""
    return _SEPARATOR_RE.sub("_", str(raw_status).strip().lower())


def classify_run_status(raw_status: Any) -> RunStatus:
    """未知状态一律视为非终态，由调用方的超时兜底。"""
    normalized = normalize_status(raw_status)
    return RunStatus(
        normalized=normalized,
        terminal=normalized in TERMINAL_STATUSES,
        failed=normalized in FAILED_STATUSES,
    )


def extract_run_status(run: Any) -> str | None:
    """依次从 status、state、execution.status 读取原始状态。"""
    if not isinstance(run, dict):
        return None
    for key in ("status", "state"):
        value = run.get(key)
        if isinstance(value, str) and value:
            return value
    execution = run.get("execution")
    if isinstance(execution, dict) and isinstance(execution.get("status"), str):
        return execution["status"]
    return None
