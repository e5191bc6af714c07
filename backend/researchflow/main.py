"""
FastAPI 主应用
"""
from contextlib import asynccontextmanager
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
import structlog

from researchflow.api.v1.router import router as api_router_v1
from researchflow.config.logging_config import setup_logging
from researchflow.config.settings import settings
from researchflow.core.global_exception_handlers import register_exception_handlers
from researchflow.db.session import check_db_health, init_db
from researchflow.middleware.request_id import RequestIDMiddleware

logger = structlog.get_logger()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """应用生命周期管理"""
    setup_logging()
    logger.info(
        "application_startup",
        environment=settings.ENVIRONMENT,
        table_prefix=settings.TABLE_PREFIX,
    )

    # 开发环境自动建表；生产环境由 Alembic 管理表结构
    await init_db()

    yield

    logger.info("application_shutdown")


app = FastAPI(
    title=settings.PROJECT_NAME,
    description="写作项目状态持久化与版本管理服务",
    version="1.0.0",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.get_cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)
app.add_middleware(RequestIDMiddleware)

register_exception_handlers(app)

app.include_router(api_router_v1)


@app.get("/health")
async def health_check():
    """基础健康检查端点（快速响应，用于负载均衡器）"""
    return {"status": "healthy", "version": "1.0.0"}


@app.get("/health/db")
async def db_health_check():
    """数据库健康检查端点"""
    return await check_db_health()
