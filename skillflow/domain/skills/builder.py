"""工作流构建器：把原子技能展开为单节点远端工作流定义。"""

from __future__ import annotations

from typing import Any

from skillflow.domain.skills.models import AtomicSkill, SkillDefinition

MAIN_NODE_NAME = "main"


def _title_case(name: str) -> str:
    return " ".join(part[:1].upper() + part[1:] for part in name.replace("_", " ").split(" "))


def build_workflow_from_skill(
    skill: SkillDefinition,
    project_id: str | None = None,
    connection_id: str | None = None,
) -> dict[str, Any]:
    """构建工作流创建载荷。

    必填入参写成 ``{{name}}`` 模板，留给运行时入参填充；
    带默认值的可选入参在构建时直接写入默认值。
    """
    if not isinstance(skill, AtomicSkill):
        raise ValueError(
            f"build_workflow_from_skill only supports atomic skills (kind: Skill), got '{skill.kind.value}'."
        )
    if not skill.node_type:
        raise ValueError(f"Atomic skill '{skill.name}' is missing node_type.")

    input_config: dict[str, Any] = dict(skill.defaults)
    properties: dict[str, Any] = {}
    required_fields: list[str] = []

    for arg_name, spec in skill.inputs.items():
        if not spec.required and spec.has_default:
            input_config[spec.field] = spec.default
        else:
            input_config[spec.field] = f"{{{{{arg_name}}}}}"

        prop: dict[str, Any] = {"type": "string", "title": _title_case(arg_name)}
        if spec.description:
            prop["description"] = spec.description
        if spec.has_default:
            prop["default"] = spec.default
        properties[arg_name] = prop

        if spec.required:
            required_fields.append(arg_name)

    output_mapping = {
        output_name: f"${{{MAIN_NODE_NAME}.{spec.field}}}" for output_name, spec in skill.outputs.items()
    }

    main_node: dict[str, Any] = {
        "name": MAIN_NODE_NAME,
        "node_type_name": skill.node_type,
        "input_config": input_config,
    }
    if connection_id:
        main_node["connection"] = connection_id

    workflow: dict[str, Any] = {
        "name": f"skill-{skill.name}-run",
        "description": skill.description or f"Auto-generated workflow for skill '{skill.name}'.",
        "nodes": [main_node],
        "output_mapping": output_mapping,
        "input_schema": {
            "type": "object",
            "title": f"{skill.name} Input",
            "required": required_fields,
            "properties": properties,
        },
    }
    if project_id:
        workflow["project_id"] = project_id
    return workflow
