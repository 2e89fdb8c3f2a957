"""领域数据结构定义：运行选项、运行句柄、执行结果与执行报告。"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any


@dataclass(slots=True)
class RunOptions:
    """单次技能调用的运行参数。"""
    wait: bool = True
    poll_interval_ms: int = 2000
    timeout_ms: int = 300_000
    workspace_id: str | None = None
    project_id: str | None = None


@dataclass(frozen=True, slots=True)
class RunHandle:
    """远端运行句柄；每次轮询生成新句柄，终态后不再变化。"""
    workflow_id: str
    run_id: str
    raw_status: str | None
    terminal: bool = False
    failed: bool = False


@dataclass(slots=True)
class ExecutionResult:
    """提交并（可选）等待终态后的执行结果。timed_out 与 failed 相互独立。"""
    handle: RunHandle
    run: dict[str, Any]
    timed_out: bool = False
    polls: int = 0

    @property
    def workflow_id(self) -> str:
        return self.handle.workflow_id

    @property
    def run_id(self) -> str:
        return self.handle.run_id

    @property
    def status(self) -> str | None:
        return self.handle.raw_status

    @property
    def terminal(self) -> bool:
        return self.handle.terminal

    @property
    def failed(self) -> bool:
        return self.handle.failed


@dataclass(slots=True)
class AtomicSkillReport:
    """原子技能执行报告。"""
    skill: str
    workflow_id: str
    run: dict[str, Any]
    run_id: str
    status: str | None
    terminal: bool
    failed: bool
    timed_out: bool

    def to_dict(self) -> dict[str, Any]:
        return {
            "skill": self.skill,
            "workflow_id": self.workflow_id,
            "run_id": self.run_id,
            "status": self.status,
            "terminal": self.terminal,
            "failed": self.failed,
            "timed_out": self.timed_out,
            "run": self.run,
        }


@dataclass(slots=True)
class ComposedSkillReport:
    """组合技能执行报告：每个步骤 ID 对应其步骤结果。"""
    skill: str
    steps: dict[str, Any] = field(default_factory=dict)
    outputs: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {"skill": self.skill, "steps": self.steps, "outputs": self.outputs}


@dataclass(slots=True)
class EntrypointReport:
    """技能包入口执行报告。"""
    pack: str
    entrypoint: str
    workflow_id: str
    run: dict[str, Any]
    status: str | None
    failed: bool
    timed_out: bool

    def to_dict(self) -> dict[str, Any]:
        return {
            "pack": self.pack,
            "entrypoint": self.entrypoint,
            "workflow_id": self.workflow_id,
            "status": self.status,
            "failed": self.failed,
            "timed_out": self.timed_out,
            "run": self.run,
        }
