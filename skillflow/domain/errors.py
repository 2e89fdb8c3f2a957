"""领域异常定义：技能运行失败统一携带稳定编码与诊断信息。"""

from __future__ import annotations

from typing import Any

from skillflow.domain.enums import ErrorCode


class SkillRunError(RuntimeError):
    """技能运行失败异常，对外暴露 code/message/detail 三元组。"""

    def __init__(self, code: ErrorCode, message: str, detail: dict[str, Any] | None = None) -> None:
        super().__init__(message)
        self.code = code
        self.message = message
        self.detail = detail

    def to_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {"code": self.code.value, "message": self.message}
        if self.detail is not None:
            payload["detail"] = self.detail
        return payload

    def __repr__(self) -> str:
        return f"SkillRunError(code={self.code.value!r}, message={self.message!r})"


class SkillDefinitionError(ValueError):
    """技能或技能包定义文件不合法。"""
