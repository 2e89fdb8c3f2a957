"""技能包仓库：按调用构建的显式上下文对象，负责已安装技能包的扫描、技能解析与安装记录读取。"""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any

from skillflow.domain.errors import SkillDefinitionError
from skillflow.domain.skills.loader import (
    find_pack_manifest,
    find_skills_in_pack,
    load_pack_manifest,
    load_skill_definition,
)
from skillflow.domain.skills.models import InstallRecord, PackManifest, ResolvedSkill

logger = logging.getLogger(__name__)

INSTALL_RECORD_FILE = ".install.json"


class PackStore:
    """已安装技能包的只读视图；目录扫描结果在对象生命周期内缓存。"""

    def __init__(self, packs_dir: Path) -> None:
        self._packs_dir = Path(packs_dir)
        self._roots: list[Path] | None = None
        self._skills: list[ResolvedSkill] | None = None
        self._manifests: dict[Path, PackManifest | None] = {}
        self._install_records: dict[Path, InstallRecord | None] = {}

    @property
    def packs_dir(self) -> Path:
        return self._packs_dir

    def pack_roots(self) -> list[Path]:
        """返回安装目录下的全部技能包根目录，按名称排序。"""
        if self._roots is None:
            roots: list[Path] = []
            if self._packs_dir.is_dir():
                roots.extend(entry for entry in sorted(self._packs_dir.iterdir()) if entry.is_dir())
            self._roots = roots
        return list(self._roots)

    def load_manifest(self, pack_root: Path) -> PackManifest | None:
        """读取 pack.yaml；缺失返回 None，格式非法时抛出定义错误。"""
        if pack_root not in self._manifests:
            self._manifests[pack_root] = (
                load_pack_manifest(pack_root) if find_pack_manifest(pack_root) is not None else None
            )
        return self._manifests[pack_root]

    def pack_name(self, pack_root: Path) -> str:
        try:
            manifest = self.load_manifest(pack_root)
        except SkillDefinitionError:
            manifest = None
        if manifest is not None and manifest.name:
            return str(manifest.name)
        return pack_root.name

    def pack_root(self, name: str) -> Path | None:
        """按目录名或清单名查找技能包根目录。"""
        roots = self.pack_roots()
        for root in roots:
            if root.name == name:
                return root
        for root in roots:
            if self.pack_name(root) == name:
                return root
        return None

    def list_skills(self) -> list[ResolvedSkill]:
        """列出全部可解析的技能；同名技能保留先出现者。"""
        if self._skills is None:
            skills: list[ResolvedSkill] = []
            for root in self.pack_roots():
                found = find_skills_in_pack(root)
                if not found:
                    continue
                pack_name = self.pack_name(root)
                skills.extend(
                    ResolvedSkill(path=path, pack_root=root, pack_name=pack_name, skill=definition)
                    for path, definition in found
                )
            self._skills = skills
            logger.debug(
                "pack store scanned",
                extra={
                    "event": "pack_store.scanned",
                    "payload_preview": {"packs": len(self.pack_roots()), "skills": len(skills)},
                },
            )
        return list(self._skills)

    def resolve_skill(self, name: str) -> ResolvedSkill | None:
        """先按目录名精确匹配，再按声明的技能名扫描；按技能包排序先到先得。"""
        for root in self.pack_roots():
            candidate = root / "skills" / name
            if not candidate.is_dir():
                continue
            try:
                definition = load_skill_definition(candidate)
            except SkillDefinitionError as exc:
                logger.debug(
                    "skip invalid skill dir",
                    extra={"event": "pack_store.skill.skipped", "error": str(exc)},
                )
                continue
            return ResolvedSkill(
                path=candidate.resolve(),
                pack_root=root,
                pack_name=self.pack_name(root),
                skill=definition,
            )
        for resolved in self.list_skills():
            if resolved.skill.name == name:
                return resolved
        return None

    def read_install_record(self, pack_root: Path) -> InstallRecord | None:
        """读取 .install.json；缺失或损坏时返回 None。"""
        if pack_root in self._install_records:
            return self._install_records[pack_root]
        record: InstallRecord | None = None
        path = pack_root / INSTALL_RECORD_FILE
        if path.is_file():
            try:
                raw = json.loads(path.read_text(encoding="utf-8"))
            except (OSError, ValueError) as exc:
                logger.warning(
                    "install record unreadable",
                    extra={"event": "pack_store.install_record.invalid", "error": str(exc)},
                )
                raw = None
            if isinstance(raw, dict):
                record = InstallRecord(
                    name=str(raw.get("name") or pack_root.name),
                    version=str(raw.get("version") or "0.0.0"),
                    installed_at=raw.get("installed_at"),
                    provisioned_skills=_string_map(raw.get("provisioned_skills")),
                    provisioned_entrypoints=_string_map(raw.get("provisioned_entrypoints")),
                    skill_names=[str(item) for item in raw.get("skill_names") or []],
                )
        self._install_records[pack_root] = record
        return record

    def provisioned_workflow_id(self, resolved: ResolvedSkill) -> str | None:
        record = self.read_install_record(resolved.pack_root)
        if record is None:
            return None
        return record.provisioned_skills.get(resolved.skill.name)

    def provisioned_entrypoint_id(self, pack_root: Path, entrypoint_id: str) -> str | None:
        record = self.read_install_record(pack_root)
        if record is None:
            return None
        return record.provisioned_entrypoints.get(entrypoint_id)


def _string_map(raw: Any) -> dict[str, str]:
    if not isinstance(raw, dict):
        return {}
    return {str(key): value for key, value in raw.items() if isinstance(value, str) and value.strip()}
