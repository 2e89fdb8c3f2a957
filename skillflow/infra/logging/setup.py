"""日志初始化：技能运行链路的 JSON 行日志。

- 记录先经 QueueHandler 入队，由后台 QueueListener 写入滚动文件，ERROR 同步到 stderr；
- request/skill/step/run 上下文在入队前注入，避免跨线程丢失；
- 技能入参可能携带凭据，payload 预览会先按键名掩码，再做文本脱敏与截断；
- DEBUG 默认关闭，可按模块前缀或技能名单独放行。
"""

from __future__ import annotations

import json
import logging
import logging.config
import re
import sys
from datetime import datetime, timezone
from logging.handlers import QueueHandler, QueueListener, RotatingFileHandler
from pathlib import Path
from queue import SimpleQueue
from typing import Any, Iterable

from skillflow.config import Settings
from skillflow.infra.logging.context import CONTEXT_KEYS, get_log_context

LOG_FILE_NAME = "skillflow.jsonl"
MASK = "***"

# 结构化字段按此顺序输出，缺省为 null，便于下游按列解析。
RECORD_FIELDS = ("external_service", "op", "duration_ms", "status_code", "error_type")
NOISY_LOGGERS = ("httpx", "httpcore", "uvicorn.access")

_listener: QueueListener | None = None

_TEXT_SECRET_PATTERNS: tuple[tuple[re.Pattern[str], str], ...] = (
    (re.compile(r"(?i)(authorization\s*[:=]\s*bearer\s+)[^\s,;\"']+"), rf"\1{MASK}"),
    (re.compile(r"(?i)(bearer\s+)[A-Za-z0-9._\-]{8,}"), rf"\1{MASK}"),
    (re.compile(r"(?i)(api[_-]?key\s*[:=]\s*)[^\s,;]+"), rf"\1{MASK}"),
    (re.compile(r"(?i)(password\s*[:=]\s*)[^\s,;]+"), rf"\1{MASK}"),
    (re.compile(r"(?i)(secret\s*[:=]\s*)[^\s,;]+"), rf"\1{MASK}"),
)
_SECRET_KEY_RE = re.compile(r"(?i)(api[_-]?key|token|secret|password|authorization|credential)")


def redact_text(value: str | None, mode: str) -> str | None:
    """按模式脱敏文本：off 不处理，standard 按已知凭据格式替换，strict 额外抹掉敏感词后的内容。"""
    if value is None:
        return None
    text = str(value)
    mode = mode.lower()
    if mode == "off":
        return text
    for pattern, replacement in _TEXT_SECRET_PATTERNS:
        text = pattern.sub(replacement, text)
    if mode == "strict":
        text = re.sub(r"(?i)(authorization|api_key|password|token|secret)([^,\s}]*)", rf"\1={MASK}", text)
    return text


def mask_secret_keys(payload: Any) -> Any:
    """递归掩码键名形似凭据的字段值，如技能入参里的 API_TOKEN。"""
    if isinstance(payload, dict):
        return {
            key: MASK if isinstance(key, str) and _SECRET_KEY_RE.search(key) else mask_secret_keys(value)
            for key, value in payload.items()
        }
    if isinstance(payload, (list, tuple)):
        return [mask_secret_keys(item) for item in payload]
    return payload


def render_payload_preview(payload: Any, *, max_chars: int, redaction_mode: str) -> str | None:
    if payload is None:
        return None
    if isinstance(payload, str):
        serialized = payload
    else:
        if redaction_mode.lower() != "off":
            payload = mask_secret_keys(payload)
        serialized = json.dumps(payload, ensure_ascii=False, sort_keys=True, default=str)
    redacted = redact_text(serialized, redaction_mode) or ""
    if len(redacted) <= max_chars:
        return redacted
    return f"{redacted[:max_chars]}...(truncated)"


def _matches_prefix(name: str, prefixes: Iterable[str]) -> bool:
    return any(name == item or name.startswith(f"{item}.") for item in prefixes)


class DebugRoutingFilter(logging.Filter):
    """达到 min_level 的记录全部放行；DEBUG 仅对指定模块或指定技能放行。"""

    def __init__(self, *, min_level: int, debug_modules: set[str], debug_skills: set[str] | None = None) -> None:
        super().__init__()
        self._min_level = min_level
        self._debug_modules = debug_modules
        self._debug_skills = debug_skills or set()

    def filter(self, record: logging.LogRecord) -> bool:
        if record.levelno >= self._min_level:
            return True
        if record.levelno != logging.DEBUG:
            return False
        if _matches_prefix(record.name, self._debug_modules):
            return True
        skill = getattr(record, "skill", None) or get_log_context().get("skill")
        return bool(skill) and skill in self._debug_skills


class ContextInjectionFilter(logging.Filter):
    """入队前把 contextvars 固化到 record 上，监听线程里再读就拿不到了。"""

    def filter(self, record: logging.LogRecord) -> bool:
        ctx = get_log_context()
        for key in CONTEXT_KEYS:
            if getattr(record, key, None) is None and ctx.get(key) is not None:
                setattr(record, key, ctx[key])
        return True


class StructuredJsonFormatter(logging.Formatter):
    def __init__(self, *, service: str, process_role: str, redaction_mode: str, payload_preview_chars: int) -> None:
        super().__init__()
        self._service = service
        self._process_role = process_role
        self._redaction_mode = redaction_mode
        self._payload_preview_chars = payload_preview_chars

    def _error_text(self, record: logging.LogRecord) -> str | None:
        error = getattr(record, "error", None)
        if error is None and record.exc_info:
            error = self.formatException(record.exc_info)
        if error is None:
            return None
        return redact_text(str(error), self._redaction_mode)

    def format(self, record: logging.LogRecord) -> str:
        ctx = get_log_context()
        entry: dict[str, Any] = {
            "ts": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat().replace("+00:00", "Z"),
            "level": record.levelname,
            "service": self._service,
            "process_role": self._process_role,
            "module": record.name,
            "event": getattr(record, "event", None),
        }
        entry.update({key: getattr(record, key, None) or ctx.get(key) for key in CONTEXT_KEYS})
        entry.update({key: getattr(record, key, None) for key in RECORD_FIELDS})
        entry["message"] = redact_text(record.getMessage(), self._redaction_mode)
        entry["error"] = self._error_text(record)
        entry["payload_preview"] = render_payload_preview(
            getattr(record, "payload_preview", None),
            max_chars=self._payload_preview_chars,
            redaction_mode=self._redaction_mode,
        )
        return json.dumps(entry, ensure_ascii=False, default=str)


def resolve_log_file(settings: Settings, process_role: str) -> Path:
    """日志文件位于 <log_dir>/<process_role>/skillflow.jsonl，相对路径按当前工作目录解析。"""
    log_root = settings.log_dir
    if not log_root.is_absolute():
        log_root = (Path.cwd() / log_root).resolve()
    role_dir = log_root / process_role
    role_dir.mkdir(parents=True, exist_ok=True)
    return role_dir / LOG_FILE_NAME


def _install_queue_handler(settings: Settings) -> SimpleQueue[logging.LogRecord]:
    queue_obj: SimpleQueue[logging.LogRecord] = SimpleQueue()
    logging.config.dictConfig(
        {
            "version": 1,
            "disable_existing_loggers": False,
            "handlers": {"queue": {"class": "logging.handlers.QueueHandler", "queue": queue_obj}},
            "root": {"level": "DEBUG", "handlers": ["queue"]},
        }
    )
    queue_handler = next((item for item in logging.getLogger().handlers if isinstance(item, QueueHandler)), None)
    if queue_handler is None:
        raise RuntimeError("queue logging handler is not configured")
    # 注入必须先于路由，路由要读 record 上的 skill 字段。
    queue_handler.addFilter(ContextInjectionFilter())
    queue_handler.addFilter(
        DebugRoutingFilter(
            min_level=getattr(logging, settings.log_level.upper(), logging.INFO),
            debug_modules=set(settings.log_debug_modules_list()),
            debug_skills=set(settings.log_debug_skills_list()),
        )
    )
    return queue_obj


def configure_logging(settings: Settings, *, process_role: str) -> Path:
    """初始化全局日志输出并返回日志文件路径；重复调用会先停掉旧监听器。"""
    global _listener
    shutdown_logging()

    log_file = resolve_log_file(settings, process_role)
    queue_obj = _install_queue_handler(settings)
    formatter = StructuredJsonFormatter(
        service="skillflow",
        process_role=process_role,
        redaction_mode=settings.log_redaction_mode,
        payload_preview_chars=settings.log_payload_preview_chars,
    )

    file_handler = RotatingFileHandler(
        str(log_file),
        maxBytes=settings.log_max_bytes,
        backupCount=settings.log_backup_count,
        encoding="utf-8",
    )
    file_handler.setFormatter(formatter)
    stderr_handler = logging.StreamHandler(stream=sys.stderr)
    stderr_handler.setLevel(logging.ERROR)
    stderr_handler.setFormatter(formatter)

    _listener = QueueListener(queue_obj, file_handler, stderr_handler, respect_handler_level=True)
    _listener.start()

    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)
    return log_file


def shutdown_logging() -> None:
    """停止队列监听器并关闭底层句柄。"""
    global _listener
    if _listener is None:
        return
    try:
        _listener.stop()
        for handler in _listener.handlers:
            handler.close()
    finally:
        _listener = None
