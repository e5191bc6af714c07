"""
数据库会话管理（SQLModel + 异步 SQLAlchemy）

- 引擎与会话工厂按 DATABASE_URL 创建（PostgreSQL / SQLite 均可）
- SQLite（aiosqlite）下修正 pysqlite 的事务行为，使 SAVEPOINT 可用
- 表结构由 Alembic 迁移维护，init_db 仅在开发环境下建表
"""
from sqlalchemy.ext.asyncio import AsyncSession, AsyncEngine, create_async_engine, async_sessionmaker
from sqlalchemy import event, text
from sqlmodel import SQLModel
import structlog
import time

from researchflow.config.settings import settings

logger = structlog.get_logger()


def enable_sqlite_savepoints(engine: AsyncEngine) -> None:
    """
    让 aiosqlite 支持 SAVEPOINT

    pysqlite 默认会自行发出 BEGIN 并在 SAVEPOINT 前隐式提交，
    这里关闭驱动的事务管理，由 SQLAlchemy 显式发出 BEGIN。
    """

    @event.listens_for(engine.sync_engine, "connect")
    def _on_connect(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(engine.sync_engine, "begin")
    def _on_begin(conn):
        conn.exec_driver_sql("BEGIN")


def create_engine(database_url: str | None = None, echo: bool | None = None) -> AsyncEngine:
    """
    创建数据库引擎

    Args:
        database_url: 连接 URL（默认读取 settings.DATABASE_URL）
        echo: 是否输出 SQL（默认读取 settings.DB_ECHO）

    Returns:
        AsyncEngine
    """
    url = database_url or settings.DATABASE_URL
    is_sqlite = url.startswith("sqlite")

    kwargs = {"echo": settings.DB_ECHO if echo is None else echo}
    if not is_sqlite:
        kwargs.update(
            pool_size=10,
            max_overflow=10,
            pool_pre_ping=True,
            pool_recycle=300,
        )

    new_engine = create_async_engine(url, **kwargs)

    if is_sqlite:
        enable_sqlite_savepoints(new_engine)

    logger.info(
        "db_engine_created",
        dialect=new_engine.dialect.name,
        engine_id=id(new_engine),
    )
    return new_engine


def create_session_maker(bind: AsyncEngine) -> async_sessionmaker:
    """创建会话工厂"""
    return async_sessionmaker(
        bind,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )


engine = create_engine()
AsyncSessionLocal = create_session_maker(engine)


async def init_db(bind: AsyncEngine | None = None, force: bool = False):
    """
    初始化数据库（创建表）

    生产环境应使用 Alembic 迁移；force=True 时无视环境直接建表（测试用）。
    """
    # 确保所有表模型已注册到 metadata
    from researchflow.models import database  # noqa: F401

    target = bind or engine
    if force or settings.ENVIRONMENT == "development":
        async with target.begin() as conn:
            await conn.run_sync(SQLModel.metadata.create_all)
        logger.info("database_tables_created", table_prefix=settings.TABLE_PREFIX)


async def check_db_health() -> dict:
    """
    检查数据库连接健康状态

    执行简单查询验证连接是否可用。

    Returns:
        健康状态信息
    """
    start_time = time.time()
    try:
        async with AsyncSessionLocal() as session:
            result = await session.execute(text("SELECT 1"))
            result.scalar()

        latency_ms = round((time.time() - start_time) * 1000, 2)

        return {
            "status": "healthy",
            "dialect": engine.dialect.name,
            "latency_ms": latency_ms,
        }
    except Exception as e:
        latency_ms = round((time.time() - start_time) * 1000, 2)
        logger.error(
            "db_health_check_failed",
            error=str(e),
            error_type=type(e).__name__,
            latency_ms=latency_ms,
        )
        return {
            "status": "unhealthy",
            "error": str(e),
            "error_type": type(e).__name__,
            "latency_ms": latency_ms,
        }

