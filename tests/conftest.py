"""测试公共桩对象：内存版远端工作流客户端、可控时钟与技能包目录构造器。"""

from __future__ import annotations

import json
import textwrap
from pathlib import Path
from typing import Any, Callable

import pytest

from skillflow.infra.workflow.client import WorkflowApiError


class FakeWorkflowClient:
    """按工作流 ID 或工作流名称预设运行快照序列；get_run 逐个弹出，最后一个保持不变。"""

    def __init__(self) -> None:
        self.created: list[dict[str, Any]] = []
        self.validated: list[dict[str, Any]] = []
        self.runs: list[tuple[str, dict[str, Any]]] = []
        self.polled: list[str] = []
        self.connections: list[dict[str, Any]] = []
        self.connection_calls = 0
        self.connections_error: WorkflowApiError | None = None
        self.scripts: dict[str, list[dict[str, Any]]] = {}
        self.create_response: dict[str, Any] | None = None
        self.run_response: dict[str, Any] | None = None
        self._names: dict[str, str] = {}
        self._pending: dict[str, list[dict[str, Any]]] = {}

    def create_workflow(self, definition: dict[str, Any], workspace_id: str | None = None) -> dict[str, Any]:
        self.created.append(definition)
        if self.create_response is not None:
            return self.create_response
        workflow_id = f"wf-{len(self.created)}"
        self._names[workflow_id] = definition.get("name", "")
        return {"id": workflow_id, "name": definition.get("name")}

    def validate_workflow(self, definition: dict[str, Any]) -> dict[str, Any]:
        self.validated.append(definition)
        return {"valid": True}

    def run_workflow(self, workflow_id: str, input_data: dict[str, Any]) -> dict[str, Any]:
        self.runs.append((workflow_id, dict(input_data)))
        if self.run_response is not None:
            return self.run_response
        run_id = f"run-{len(self.runs)}"
        snapshots = self.scripts.get(workflow_id) or self.scripts.get(self._names.get(workflow_id, ""))
        self._pending[run_id] = [dict(item) for item in (snapshots or [{"status": "succeeded"}])]
        return {"id": run_id, "status": "queued"}

    def get_run(self, run_id: str) -> dict[str, Any]:
        self.polled.append(run_id)
        queue = self._pending[run_id]
        snapshot = queue.pop(0) if len(queue) > 1 else queue[0]
        return {"id": run_id, **snapshot}

    def list_connections(
        self,
        *,
        workspace_id: str | None = None,
        project_id: str | None = None,
        limit: int = 200,
    ) -> list[dict[str, Any]]:
        self.connection_calls += 1
        if self.connections_error is not None:
            raise self.connections_error
        return list(self.connections)


class FakeClock:
    """单调时钟桩：sleep 直接推进时间。"""

    def __init__(self) -> None:
        self.now = 0.0
        self.sleeps: list[float] = []

    def __call__(self) -> float:
        return self.now

    def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.now += seconds


@pytest.fixture
def fake_client() -> FakeWorkflowClient:
    return FakeWorkflowClient()


@pytest.fixture
def fake_clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def packs_dir(tmp_path: Path) -> Path:
    path = tmp_path / "packs"
    path.mkdir()
    return path


@pytest.fixture
def write_skill(packs_dir: Path) -> Callable[..., Path]:
    """在 packs/<pack>/skills/<dir>/ 下写入技能定义文件，返回技能目录。"""

    def _write(pack: str, skill_dir: str, body: str, filename: str = "skill.yaml") -> Path:
        directory = packs_dir / pack / "skills" / skill_dir
        directory.mkdir(parents=True, exist_ok=True)
        (directory / filename).write_text(textwrap.dedent(body), encoding="utf-8")
        return directory

    return _write


@pytest.fixture
def write_install_record(packs_dir: Path) -> Callable[..., Path]:
    def _write(pack: str, **record: Any) -> Path:
        root = packs_dir / pack
        root.mkdir(parents=True, exist_ok=True)
        path = root / ".install.json"
        path.write_text(json.dumps({"name": pack, "version": "1.0.0", **record}), encoding="utf-8")
        return path

    return _write
