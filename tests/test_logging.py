"""日志测试：凭据脱敏、JSON 行格式与上下文字段注入。"""

from __future__ import annotations

import json
import logging

from skillflow.infra.logging.context import bind_log_context, get_log_context
from skillflow.infra.logging.setup import (
    DebugRoutingFilter,
    StructuredJsonFormatter,
    redact_text,
    render_payload_preview,
)


def test_redact_bearer_and_api_key() -> None:
    text = "Authorization: Bearer abcdefghijklmnop api_key=sk-123 ok"
    redacted = redact_text(text, "standard")
    assert "abcdefghijklmnop" not in redacted
    assert "sk-123" not in redacted
    assert redact_text(text, "off") == text


def test_payload_preview_is_truncated() -> None:
    preview = render_payload_preview({"text": "x" * 50}, max_chars=20, redaction_mode="standard")
    assert preview.endswith("...(truncated)")
    assert len(preview) == 20 + len("...(truncated)")


def test_bind_log_context_restores_previous_values() -> None:
    with bind_log_context(skill="research"):
        with bind_log_context(step_id="step1"):
            assert get_log_context()["skill"] == "research"
            assert get_log_context()["step_id"] == "step1"
        assert get_log_context()["step_id"] is None
    assert get_log_context()["skill"] is None


def test_formatter_emits_context_and_structured_fields() -> None:
    formatter = StructuredJsonFormatter(
        service="skillflow",
        process_role="test",
        redaction_mode="standard",
        payload_preview_chars=200,
    )
    record = logging.LogRecord("skillflow.test", logging.INFO, __file__, 1, "step finished", None, None)
    record.event = "skill.step.finished"
    record.payload_preview = {"status": "succeeded"}

    with bind_log_context(skill="research", step_id="step2", run_id="run-1"):
        entry = json.loads(formatter.format(record))

    assert entry["event"] == "skill.step.finished"
    assert entry["skill"] == "research"
    assert entry["step_id"] == "step2"
    assert entry["run_id"] == "run-1"
    assert entry["payload_preview"] == '{"status": "succeeded"}'
    assert entry["process_role"] == "test"


def test_debug_routing_filter_allows_listed_modules() -> None:
    routing = DebugRoutingFilter(min_level=logging.INFO, debug_modules={"skillflow.infra.workflow"})

    def _record(name: str, level: int) -> logging.LogRecord:
        return logging.LogRecord(name, level, __file__, 1, "msg", None, None)

    assert routing.filter(_record("skillflow.infra.workflow.adapter", logging.DEBUG)) is True
    assert routing.filter(_record("skillflow.application.executor", logging.DEBUG)) is False
    assert routing.filter(_record("skillflow.application.executor", logging.WARNING)) is True


def test_debug_routing_filter_allows_listed_skills() -> None:
    """技能名命中时，该技能运行期间的 DEBUG 记录放行。"""
    routing = DebugRoutingFilter(min_level=logging.INFO, debug_modules=set(), debug_skills={"research"})
    record = logging.LogRecord("skillflow.application.executor", logging.DEBUG, __file__, 1, "msg", None, None)

    assert routing.filter(record) is False
    with bind_log_context(skill="research"):
        assert routing.filter(record) is True
    with bind_log_context(skill="ask-ai"):
        assert routing.filter(record) is False


def test_payload_preview_masks_credential_keys() -> None:
    preview = render_payload_preview(
        {"inputs": {"API_TOKEN": "abc", "topic": "cats"}, "steps": [{"password": "p"}]},
        max_chars=500,
        redaction_mode="standard",
    )
    parsed = json.loads(preview)
    assert parsed["inputs"] == {"API_TOKEN": "***", "topic": "cats"}
    assert parsed["steps"] == [{"password": "***"}]

    raw = render_payload_preview({"API_TOKEN": "abc"}, max_chars=500, redaction_mode="off")
    assert json.loads(raw) == {"API_TOKEN": "abc"}
