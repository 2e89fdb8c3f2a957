"""API 总路由配置，注册 skills 子路由。"""

from __future__ import annotations

from fastapi import APIRouter

from skillflow.api.v1.skills import router as skills_router
from skillflow.config import get_settings

settings = get_settings()

api_router = APIRouter(prefix=settings.api_prefix)
api_router.include_router(skills_router, tags=["skills"])
