"""
API v1 路由注册

将所有拆分的端点模块统一注册到主路由
"""
from fastapi import APIRouter

from researchflow.config.settings import settings
from .endpoints import (
    projects,
    chat,
    versions,
    migration,
)

# 创建v1主路由
router = APIRouter(prefix=settings.API_V1_PREFIX)

# 项目读写相关
router.include_router(projects.router)

# 聊天会话相关
router.include_router(chat.router)

# 版本历史相关
router.include_router(versions.router)

# 旧版数据迁移相关
router.include_router(migration.router)
