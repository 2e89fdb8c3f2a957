"""日志上下文：基于 contextvars 透传 request/skill/step/run 标识。"""

from __future__ import annotations

from contextlib import contextmanager
from contextvars import ContextVar, Token
from typing import Any, Iterator

_UNSET = object()

_request_id_var: ContextVar[str | None] = ContextVar("log_request_id", default=None)
_skill_var: ContextVar[str | None] = ContextVar("log_skill", default=None)
_step_id_var: ContextVar[str | None] = ContextVar("log_step_id", default=None)
_run_id_var: ContextVar[str | None] = ContextVar("log_run_id", default=None)

CONTEXT_KEYS = ("request_id", "skill", "step_id", "run_id")


def get_log_context() -> dict[str, str | None]:
    """返回当前协程/线程下的日志上下文字段。"""
    return {
        "request_id": _request_id_var.get(),
        "skill": _skill_var.get(),
        "step_id": _step_id_var.get(),
        "run_id": _run_id_var.get(),
    }


@contextmanager
def bind_log_context(
    *,
    request_id: str | None | object = _UNSET,
    skill: str | None | object = _UNSET,
    step_id: str | None | object = _UNSET,
    run_id: str | None | object = _UNSET,
) -> Iterator[None]:
    """在上下文范围内绑定日志字段，并在退出时自动恢复。"""
    tokens: list[tuple[ContextVar[Any], Token[Any]]] = []
    if request_id is not _UNSET:
        tokens.append((_request_id_var, _request_id_var.set(request_id)))
    if skill is not _UNSET:
        tokens.append((_skill_var, _skill_var.set(skill)))
    if step_id is not _UNSET:
        tokens.append((_step_id_var, _step_id_var.set(step_id)))
    if run_id is not _UNSET:
        tokens.append((_run_id_var, _run_id_var.set(run_id)))
    try:
        yield
    finally:
        for var, token in reversed(tokens):
            var.reset(token)
