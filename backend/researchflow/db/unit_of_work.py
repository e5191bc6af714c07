"""
Unit of Work 模式实现

统一管理数据库事务边界，同时作为注入给各个服务的存储端口：
一个 UnitOfWork 持有一个 AsyncSession，并暴露所有表的 Repository。

核心功能:
- 自动管理事务开始、提交、回滚
- 支持嵌套事务（通过 savepoint），嵌套事务失败只回滚自身
- 异常时自动回滚
- 事务超时处理
"""
import time
import structlog
from contextlib import asynccontextmanager
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession, AsyncSessionTransaction, async_sessionmaker

from researchflow.config.settings import settings
from researchflow.db import session as db_session
from researchflow.db.repositories import (
    ActivityRepository,
    LearnerRepository,
    MetadataRepository,
    IdeaRepository,
    ContentRepository,
    VersionRepository,
    ChatSessionRepository,
    ChatMessageRepository,
    LegacyRecordRepository,
)

logger = structlog.get_logger()


class TransactionTimeoutError(Exception):
    """事务超时异常"""
    pass


class UnitOfWork:
    """
    工作单元模式

    使用示例:
        ```python
        async with UnitOfWork() as uow:
            await uow.ideas.create(Idea(...))
            await uow.metadata.update_by_id(...)
            # 退出时自动 commit
        ```

    支持嵌套事务:
        ```python
        async with UnitOfWork() as uow:
            async with uow.nested() as nested_uow:
                await nested_uow.ideas.delete_for_scope(...)
                # 内部异常只回滚到 savepoint，然后继续向外抛出
        ```
    """

    def __init__(
        self,
        session_factory: Optional[async_sessionmaker] = None,
        session: Optional[AsyncSession] = None,
        timeout: Optional[float] = None,
        is_nested: bool = False,
    ):
        """
        初始化 UnitOfWork

        Args:
            session_factory: 会话工厂（默认使用全局 AsyncSessionLocal）
            session: 外部提供的会话（用于嵌套事务）
            timeout: 事务超时时间（秒），默认读取 TRANSACTION_TIMEOUT_SECONDS
            is_nested: 是否是嵌套事务
        """
        self._session_factory = session_factory
        self._session = session
        self._timeout = timeout if timeout is not None else settings.TRANSACTION_TIMEOUT_SECONDS
        self._is_nested = is_nested
        self._start_time: Optional[float] = None
        self._savepoint: Optional[AsyncSessionTransaction] = None
        self._entered = False

    # ============================================================
    # 存储端口（Repository 访问）
    # ============================================================

    @property
    def session(self) -> AsyncSession:
        """获取当前会话"""
        if self._session is None or not self._entered:
            raise RuntimeError("UnitOfWork 未初始化，请在 async with 块中使用")
        return self._session

    def _bind_repositories(self, session: AsyncSession) -> None:
        self.activities = ActivityRepository(session)
        self.learners = LearnerRepository(session)
        self.metadata = MetadataRepository(session)
        self.ideas = IdeaRepository(session)
        self.contents = ContentRepository(session)
        self.versions = VersionRepository(session)
        self.chat_sessions = ChatSessionRepository(session)
        self.chat_messages = ChatMessageRepository(session)
        self.legacy = LegacyRecordRepository(session)

    # ============================================================
    # 上下文管理
    # ============================================================

    async def __aenter__(self) -> "UnitOfWork":
        """进入上下文：开始事务"""
        self._start_time = time.time()

        if self._session is None:
            # 顶层事务：创建新会话
            factory = self._session_factory or db_session.AsyncSessionLocal
            self._session = factory()

            logger.debug(
                "uow_transaction_started",
                is_nested=False,
                timeout=self._timeout,
            )
        elif self._is_nested:
            # 嵌套事务：使用 savepoint
            self._savepoint = await self._session.begin_nested()

            logger.debug(
                "uow_savepoint_created",
                is_nested=True,
            )

        self._bind_repositories(self._session)
        self._entered = True
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        """退出上下文：提交或回滚事务"""
        duration_ms = int((time.time() - self._start_time) * 1000) if self._start_time else 0

        try:
            if exc_type is None and self._timeout and duration_ms > self._timeout * 1000:
                # 超时：回滚后抛出
                logger.error(
                    "uow_transaction_timeout",
                    timeout=self._timeout,
                    duration_ms=duration_ms,
                    is_nested=self._is_nested,
                )
                await self._rollback(TransactionTimeoutError, None, duration_ms)
                raise TransactionTimeoutError(
                    f"事务超时 ({duration_ms / 1000:.2f}s > {self._timeout}s)"
                )

            if exc_type is not None:
                await self._rollback(exc_type, exc_val, duration_ms)
            else:
                await self._commit(duration_ms)
            return False
        finally:
            self._entered = False
            if not self._is_nested and self._session is not None:
                await self._session.close()
                self._session = None

    async def _commit(self, duration_ms: int):
        """提交事务"""
        if self._is_nested:
            await self._savepoint.commit()
            logger.debug(
                "uow_savepoint_committed",
                duration_ms=duration_ms,
            )
        else:
            await self._session.commit()
            logger.debug(
                "uow_transaction_committed",
                duration_ms=duration_ms,
            )

    async def _rollback(self, exc_type, exc_val, duration_ms: int):
        """
        回滚事务

        嵌套事务只回滚到自己的 savepoint，外层事务可继续使用；
        顶层事务回滚整个会话。
        """
        if self._is_nested:
            if self._savepoint is not None and self._savepoint.is_active:
                await self._savepoint.rollback()

            logger.warning(
                "uow_savepoint_rolled_back",
                error_type=exc_type.__name__ if exc_type else None,
                error=str(exc_val) if exc_val else None,
                duration_ms=duration_ms,
            )
        else:
            await self._session.rollback()

            logger.error(
                "uow_transaction_rolled_back",
                error_type=exc_type.__name__ if exc_type else None,
                error=str(exc_val) if exc_val else None,
                duration_ms=duration_ms,
            )

    @asynccontextmanager
    async def nested(self, timeout: Optional[float] = None):
        """
        创建嵌套事务（使用 savepoint）

        Args:
            timeout: 嵌套事务超时时间

        Yields:
            UnitOfWork: 嵌套的工作单元（与外层共享会话和 Repository 类型）
        """
        nested_uow = UnitOfWork(
            session=self.session,
            timeout=timeout or self._timeout,
            is_nested=True,
        )

        async with nested_uow:
            yield nested_uow


@asynccontextmanager
async def transaction(
    timeout: Optional[float] = None,
    session_factory: Optional[async_sessionmaker] = None,
):
    """
    创建事务上下文（便捷函数）

    Example:
        ```python
        async with transaction(timeout=30) as uow:
            await uow.legacy.set_migrated(...)
        ```
    """
    async with UnitOfWork(session_factory=session_factory, timeout=timeout) as uow:
        yield uow
