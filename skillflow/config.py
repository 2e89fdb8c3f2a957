"""全局配置加载模块：从环境变量构建远端 API、技能包目录与轮询参数。"""

from __future__ import annotations

from functools import lru_cache
from pathlib import Path

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


def _csv_to_list(value: str) -> list[str]:
    """将逗号分隔字符串转换为去空白列表。"""
    return [item.strip() for item in value.split(",") if item.strip()]


class Settings(BaseSettings):
    """系统运行配置对象，从环境变量读取并提供类型化访问。"""
    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    app_name: str = "Skillflow Runner"
    api_prefix: str = "/api/v1"

    agenticflow_base_url: str = "https://api.agenticflow.ai/"
    agenticflow_api_key: str | None = None
    agenticflow_workspace_id: str | None = None
    agenticflow_project_id: str | None = None
    agenticflow_request_timeout_seconds: int = 30

    skill_packs_dir: Path = Field(default=Path.home() / ".agenticflow" / "packs")
    skill_poll_interval_ms: int = 2000
    skill_poll_timeout_ms: int = 5 * 60 * 1000
    skill_local_step_timeout_seconds: int = 300
    skill_connection_list_limit: int = 200
    # 远端校验会多一次往返，默认只做本地形状校验。
    skill_remote_validation: bool = False

    log_dir: Path = Field(default=Path("./logs"))
    log_level: str = "INFO"
    log_debug_modules: str = ""
    # 逗号分隔的技能名，命中时该技能运行期间放行 DEBUG。
    log_debug_skills: str = ""
    log_redaction_mode: str = "standard"
    log_payload_preview_chars: int = 2000
    log_max_bytes: int = 20 * 1024 * 1024
    log_backup_count: int = 5

    def log_debug_modules_list(self) -> list[str]:
        return _csv_to_list(self.log_debug_modules)

    def log_debug_skills_list(self) -> list[str]:
        return _csv_to_list(self.log_debug_skills)


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """构建并缓存 Settings，相对路径统一按当前工作目录解析。"""
    settings = Settings()
    if not settings.skill_packs_dir.is_absolute():
        settings.skill_packs_dir = (Path.cwd() / settings.skill_packs_dir).resolve()
    return settings
