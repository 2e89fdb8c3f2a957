"""技能与技能包数据结构：原子技能、组合技能、步骤变体与安装记录。"""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Union

from skillflow.domain.enums import PackMode, SkillKind

DEFAULT_SKILL_API_VERSION = "pixelml.ai/skill/v1"


@dataclass(slots=True)
class SkillInput:
    """原子技能入参声明，映射到节点的单个输入字段。"""
    field: str
    required: bool = True
    default: Any = None
    has_default: bool = False
    description: str | None = None


@dataclass(slots=True)
class SkillOutput:
    """原子技能出参声明，映射到节点的单个产出字段。"""
    field: str


@dataclass(slots=True)
class AtomicSkill:
    """原子技能：绑定单一远端节点类型。"""
    name: str
    version: str
    node_type: str | None
    description: str | None = None
    connection_category: str | None = None
    defaults: dict[str, Any] = field(default_factory=dict)
    inputs: dict[str, SkillInput] = field(default_factory=dict)
    outputs: dict[str, SkillOutput] = field(default_factory=dict)
    api_version: str = DEFAULT_SKILL_API_VERSION

    @property
    def kind(self) -> SkillKind:
        return SkillKind.atomic


@dataclass(slots=True)
class LocalStep:
    """本地脚本步骤，入参以环境变量形式注入子进程。"""
    id: str
    script: str | None
    inputs: dict[str, Any] = field(default_factory=dict)


@dataclass(slots=True)
class SkillStep:
    """子技能步骤，调用另一个已安装的原子技能。"""
    id: str
    skill: str
    inputs: dict[str, Any] = field(default_factory=dict)


Step = Union[LocalStep, SkillStep]


@dataclass(slots=True)
class ComposedSkill:
    """组合技能：按声明顺序串行执行的步骤序列。"""
    name: str
    version: str
    steps: list[Step] = field(default_factory=list)
    composed_outputs: dict[str, str] = field(default_factory=dict)
    description: str | None = None
    api_version: str = DEFAULT_SKILL_API_VERSION

    @property
    def kind(self) -> SkillKind:
        return SkillKind.composed


SkillDefinition = Union[AtomicSkill, ComposedSkill]


@dataclass(slots=True)
class ResolvedSkill:
    """跨技能包解析得到的技能及其所在位置。"""
    path: Path
    pack_root: Path
    pack_name: str
    skill: SkillDefinition


@dataclass(slots=True)
class PackEntrypoint:
    """技能包入口声明，指向一个原始工作流定义文件。"""
    id: str
    workflow: str
    default_input: str | None = None
    mode: PackMode | None = None


@dataclass(slots=True)
class PackConnection:
    """技能包声明的连接需求。"""
    category: str
    name: str | None = None
    required: bool = False


@dataclass(slots=True)
class PackManifest:
    """技能包清单（pack.yaml），引擎只读不写。"""
    name: str | None
    version: str | None
    api_version: str | None = None
    kind: str | None = None
    description: str | None = None
    entrypoints: list[PackEntrypoint] = field(default_factory=list)
    connections: list[PackConnection] = field(default_factory=list)
    skills: list[str] = field(default_factory=list)

    def entrypoint(self, entrypoint_id: str) -> PackEntrypoint | None:
        for entry in self.entrypoints:
            if entry.id == entrypoint_id:
                return entry
        return None


@dataclass(slots=True)
class InstallRecord:
    """安装记录（.install.json），保存安装时预置的远端工作流 ID。"""
    name: str
    version: str
    installed_at: str | None = None
    provisioned_skills: dict[str, str] = field(default_factory=dict)
    provisioned_entrypoints: dict[str, str] = field(default_factory=dict)
    skill_names: list[str] = field(default_factory=list)
