"""FastAPI 应用入口：技能运行 HTTP 调用层的装配、请求 ID 中间件与健康检查。"""

from __future__ import annotations

from collections.abc import AsyncIterator, Awaitable, Callable
from contextlib import asynccontextmanager
import logging
import time
from uuid import uuid4

from fastapi import FastAPI, Request, Response
from fastapi.responses import JSONResponse

from skillflow.api.router import api_router
from skillflow.application.container import shutdown_container_resources
from skillflow.config import Settings, get_settings
from skillflow.domain.errors import SkillRunError
from skillflow.infra.logging.context import bind_log_context
from skillflow.infra.logging.setup import configure_logging, shutdown_logging

REQUEST_ID_HEADER = "X-Request-Id"

logger = logging.getLogger(__name__)


async def attach_request_id(request: Request, call_next: Callable[[Request], Awaitable[Response]]) -> Response:
    """透传或生成请求 ID，整个请求期间绑定到日志上下文。"""
    request_id = request.headers.get(REQUEST_ID_HEADER) or uuid4().hex
    op = f"{request.method} {request.url.path}"
    started = time.perf_counter()
    with bind_log_context(request_id=request_id):
        try:
            response = await call_next(request)
        except Exception as exc:
            logger.exception(
                "http request failed",
                extra={
                    "event": "http.request.failed",
                    "op": op,
                    "duration_ms": round((time.perf_counter() - started) * 1000, 2),
                    "error_type": type(exc).__name__,
                },
            )
            raise
        logger.info(
            "http request completed",
            extra={
                "event": "http.request.completed",
                "op": op,
                "duration_ms": round((time.perf_counter() - started) * 1000, 2),
                "status_code": response.status_code,
            },
        )
    response.headers[REQUEST_ID_HEADER] = request_id
    return response


async def skill_run_error_handler(_request: Request, exc: SkillRunError) -> JSONResponse:
    """路由未转换的 SkillRunError 兜底为 500，响应体仍为失败三元组。"""
    return JSONResponse(status_code=500, content={"detail": exc.to_dict()})


def create_app(settings: Settings | None = None) -> FastAPI:
    settings = settings or get_settings()

    @asynccontextmanager
    async def lifespan(_app: FastAPI) -> AsyncIterator[None]:
        log_file = configure_logging(settings, process_role="api")
        logger.info(
            "api startup ready",
            extra={
                "event": "api.startup.succeeded",
                "payload_preview": {"packs_dir": str(settings.skill_packs_dir), "log_file": str(log_file)},
            },
        )
        try:
            yield
        finally:
            logger.info("api shutdown begin", extra={"event": "api.shutdown.started"})
            shutdown_container_resources()
            shutdown_logging()

    app = FastAPI(title=settings.app_name, lifespan=lifespan)
    app.middleware("http")(attach_request_id)
    app.add_exception_handler(SkillRunError, skill_run_error_handler)

    @app.get("/health")
    def health() -> dict[str, object]:
        return {
            "status": "ok",
            "packs_dir_exists": settings.skill_packs_dir.is_dir(),
            "api_key_configured": bool(settings.agenticflow_api_key),
        }

    app.include_router(api_router)
    return app


app = create_app()
