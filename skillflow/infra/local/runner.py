"""本地脚本执行：参数列表调用、显式环境变量映射、超时与输出捕获，不依赖特定 shell。"""

from __future__ import annotations

import logging
import os
import subprocess
import sys
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Mapping

logger = logging.getLogger(__name__)


class LocalScriptError(RuntimeError):
    """脚本无法启动。"""


class LocalScriptTimeoutError(LocalScriptError):
    """脚本超过执行时限被终止。"""

    def __init__(self, message: str, *, timeout_seconds: float, stderr: str = "") -> None:
        super().__init__(message)
        self.timeout_seconds = timeout_seconds
        self.stderr = stderr


@dataclass(slots=True)
class LocalScriptResult:
    stdout: str
    stderr: str
    exit_code: int

    @property
    def ok(self) -> bool:
        return self.exit_code == 0


def build_command(script_path: Path) -> list[str]:
    """.py 用当前解释器执行，可执行文件直接执行，其余交给 /bin/sh。"""
    if script_path.suffix == ".py":
        return [sys.executable, str(script_path)]
    if os.access(script_path, os.X_OK):
        return [str(script_path)]
    return ["/bin/sh", str(script_path)]


class LocalScriptRunner:
    """同步执行本地步骤脚本，继承父进程环境并叠加步骤变量。"""

    def __init__(self, timeout_seconds: float = 300) -> None:
        self._timeout_seconds = timeout_seconds

    def run(self, script_path: Path, env: Mapping[str, str], cwd: Path) -> LocalScriptResult:
        command = build_command(script_path)
        merged_env = {**os.environ, **env}
        started = time.perf_counter()
        try:
            completed = subprocess.run(
                command,
                cwd=str(cwd),
                env=merged_env,
                text=True,
                capture_output=True,
                timeout=self._timeout_seconds,
                check=False,
            )
        except subprocess.TimeoutExpired as exc:
            stderr = exc.stderr.decode("utf-8", "replace") if isinstance(exc.stderr, bytes) else (exc.stderr or "")
            raise LocalScriptTimeoutError(
                f"script {script_path.name} exceeded {self._timeout_seconds}s",
                timeout_seconds=self._timeout_seconds,
                stderr=stderr,
            ) from exc
        except (OSError, ValueError) as exc:
            # 环境变量值含 NUL 字节时 subprocess 抛 ValueError。
            raise LocalScriptError(f"failed to launch {script_path}: {exc}") from exc

        logger.debug(
            "local script finished",
            extra={
                "event": "local_script.finished",
                "duration_ms": round((time.perf_counter() - started) * 1000, 2),
                "payload_preview": {"script": str(script_path), "exit_code": completed.returncode},
            },
        )
        return LocalScriptResult(
            stdout=completed.stdout or "",
            stderr=completed.stderr or "",
            exit_code=completed.returncode,
        )
