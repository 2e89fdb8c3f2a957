"""技能定义加载器：解析 skill.yaml / compose.yaml / pack.yaml 为领域对象。"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any

import yaml

from skillflow.domain.enums import PackMode, SkillKind
from skillflow.domain.errors import SkillDefinitionError
from skillflow.domain.skills.models import (
    DEFAULT_SKILL_API_VERSION,
    AtomicSkill,
    ComposedSkill,
    LocalStep,
    PackConnection,
    PackEntrypoint,
    PackManifest,
    SkillDefinition,
    SkillInput,
    SkillOutput,
    SkillStep,
    Step,
)

logger = logging.getLogger(__name__)

SKILL_FILE_CANDIDATES = ("skill.yaml", "skill.yml", "compose.yaml", "compose.yml")
PACK_MANIFEST_CANDIDATES = ("pack.yaml", "pack.yml")


def _read_yaml_mapping(path: Path) -> dict[str, Any]:
    """读取 YAML 文件并要求顶层为映射。"""
    try:
        text = path.read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError) as exc:
        raise SkillDefinitionError(f"{path} cannot be read: {exc}") from exc
    try:
        parsed = yaml.safe_load(text)
    except yaml.YAMLError as exc:
        raise SkillDefinitionError(f"{path} is not valid YAML: {exc}") from exc
    if not isinstance(parsed, dict):
        raise SkillDefinitionError(f"{path} must be a YAML object.")
    return parsed


def load_skill_definition(skill_dir: Path) -> SkillDefinition:
    """从技能目录加载定义；按候选文件顺序取第一个存在的文件。"""
    directory = Path(skill_dir).resolve()
    for candidate in SKILL_FILE_CANDIDATES:
        file_path = directory / candidate
        if file_path.exists():
            return parse_skill_definition(_read_yaml_mapping(file_path), file_path)
    raise SkillDefinitionError(f"No skill.yaml or compose.yaml found in {directory}")


def parse_skill_definition(raw: dict[str, Any], source: Path | str = "<memory>") -> SkillDefinition:
    """将原始映射解析为原子或组合技能。"""
    kind = raw.get("kind")
    if not isinstance(kind, str) or kind not in {SkillKind.atomic.value, SkillKind.composed.value}:
        raise SkillDefinitionError(
            f"Invalid skill kind '{kind or '(missing)'}' in {source}. Must be 'Skill' or 'ComposedSkill'."
        )
    name = raw.get("name")
    if not name:
        raise SkillDefinitionError(f"Skill name is required in {source}.")

    version = str(raw.get("version") or "0.0.0")
    api_version = str(raw.get("apiVersion") or DEFAULT_SKILL_API_VERSION)
    description = raw.get("description")

    if kind == SkillKind.atomic.value:
        defaults = raw.get("defaults")
        return AtomicSkill(
            name=str(name),
            version=version,
            node_type=raw.get("node_type"),
            description=description,
            connection_category=str(raw["connection_category"]) if raw.get("connection_category") else None,
            defaults=dict(defaults) if isinstance(defaults, dict) else {},
            inputs=_parse_inputs(raw.get("inputs")),
            outputs=_parse_outputs(raw.get("outputs")),
            api_version=api_version,
        )

    composed_outputs: dict[str, str] = {}
    if isinstance(raw.get("outputs"), dict):
        # 组合技能的 outputs 是模板表达式，而非字段映射。
        composed_outputs = {str(key): str(value) for key, value in raw["outputs"].items()}
    return ComposedSkill(
        name=str(name),
        version=version,
        steps=_parse_steps(raw.get("steps"), source),
        composed_outputs=composed_outputs,
        description=description,
        api_version=api_version,
    )


def _parse_inputs(raw: Any) -> dict[str, SkillInput]:
    if not isinstance(raw, dict):
        return {}
    result: dict[str, SkillInput] = {}
    for key, value in raw.items():
        if not isinstance(value, dict):
            continue
        result[str(key)] = SkillInput(
            field=str(value.get("field") or key),
            required=value.get("required") is not False,
            default=value.get("default"),
            has_default="default" in value,
            description=value.get("description"),
        )
    return result


def _parse_outputs(raw: Any) -> dict[str, SkillOutput]:
    if not isinstance(raw, dict):
        return {}
    return {
        str(key): SkillOutput(field=str(value.get("field") or key))
        for key, value in raw.items()
        if isinstance(value, dict)
    }


def _parse_steps(raw: Any, source: Path | str) -> list[Step]:
    if not isinstance(raw, list):
        return []
    steps: list[Step] = []
    seen: set[str] = set()
    for index, item in enumerate(raw):
        if not isinstance(item, dict):
            continue
        step_id = item.get("id")
        if not step_id:
            raise SkillDefinitionError(f"Step {index} in {source} is missing 'id'.")
        step_id = str(step_id)
        if step_id in seen:
            raise SkillDefinitionError(f"Duplicate step id '{step_id}' in {source}.")
        seen.add(step_id)

        inputs = item.get("inputs")
        step_inputs = {str(key): value for key, value in inputs.items()} if isinstance(inputs, dict) else {}
        is_local = bool(item.get("local"))
        target = item.get("skill")
        if is_local and target:
            raise SkillDefinitionError(f"Step '{step_id}' in {source} declares both 'local' and 'skill'.")
        if is_local:
            script = item.get("script")
            steps.append(LocalStep(id=step_id, script=str(script) if script else None, inputs=step_inputs))
        elif target:
            steps.append(SkillStep(id=step_id, skill=str(target), inputs=step_inputs))
        else:
            raise SkillDefinitionError(f"Step '{step_id}' in {source} must declare 'skill' or 'local: true'.")
    return steps


def find_skills_in_pack(pack_root: Path) -> list[tuple[Path, SkillDefinition]]:
    """扫描技能包 skills/ 目录，返回 (技能目录, 定义) 列表，跳过无法解析的子目录。"""
    skills_dir = Path(pack_root) / "skills"
    if not skills_dir.is_dir():
        return []
    skills: list[tuple[Path, SkillDefinition]] = []
    for entry in sorted(skills_dir.iterdir()):
        if not entry.is_dir():
            continue
        try:
            skills.append((entry.resolve(), load_skill_definition(entry)))
        except SkillDefinitionError as exc:
            logger.debug("skip invalid skill dir", extra={"event": "skill.scan.skipped", "error": str(exc)})
    return skills


def find_pack_manifest(pack_root: Path) -> Path | None:
    for candidate in PACK_MANIFEST_CANDIDATES:
        path = Path(pack_root) / candidate
        if path.exists():
            return path
    return None


def _list_field(raw: dict[str, Any], key: str, source: Path) -> list[Any]:
    value = raw.get(key)
    if value is None:
        return []
    if not isinstance(value, list):
        raise SkillDefinitionError(f"'{key}' in {source} must be a list, got {type(value).__name__}.")
    return value


def load_pack_manifest(pack_root: Path) -> PackManifest:
    """加载技能包清单；缺失或字段类型不符时抛出定义错误。"""
    path = find_pack_manifest(pack_root)
    if path is None:
        raise SkillDefinitionError(f"pack.yaml not found in {pack_root}")
    raw = _read_yaml_mapping(path)

    entrypoints: list[PackEntrypoint] = []
    for item in _list_field(raw, "entrypoints", path):
        if not isinstance(item, dict) or not item.get("id") or not item.get("workflow"):
            continue
        mode = item.get("mode")
        default_input = item.get("default_input")
        entrypoints.append(
            PackEntrypoint(
                id=str(item["id"]),
                workflow=str(item["workflow"]),
                default_input=str(default_input) if default_input else None,
                mode=PackMode(mode) if isinstance(mode, str) and mode in {m.value for m in PackMode} else None,
            )
        )

    connections = [
        PackConnection(category=str(item["category"]), name=item.get("name"), required=bool(item.get("required")))
        for item in _list_field(raw, "connections", path)
        if isinstance(item, dict) and item.get("category")
    ]
    return PackManifest(
        name=raw.get("name"),
        version=raw.get("version"),
        api_version=raw.get("apiVersion"),
        kind=raw.get("kind"),
        description=raw.get("description"),
        entrypoints=entrypoints,
        connections=connections,
        skills=[str(item) for item in _list_field(raw, "skills", path)],
    )
