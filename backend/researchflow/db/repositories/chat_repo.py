"""
聊天会话 Repository

负责 ChatSession 和 ChatMessage 表的数据访问操作。

职责范围：
- 会话的 CRUD 与激活状态切换
- 消息的追加、查询、精确去重查找
"""
from typing import Optional, List
from sqlalchemy.ext.asyncio import AsyncSession

from researchflow.models.database import ChatSession, ChatMessage, epoch_now
from .scope_repo import ScopedRepository
import structlog

logger = structlog.get_logger(__name__)


class ChatSessionRepository(ScopedRepository[ChatSession]):
    """
    聊天会话数据访问层

    同一作用域内最多一个活跃会话由 ChatSessionManager 负责维护，
    这里只提供原子的读写原语。
    """

    def __init__(self, session: AsyncSession):
        super().__init__(session, ChatSession)

    # ============================================================
    # 会话查询
    # ============================================================

    async def get_session(self, project_id: int, user_id: int, session_id: str) -> Optional[ChatSession]:
        """在作用域内按 session_id 查询会话"""
        return await self.get_one_by(project_id=project_id, user_id=user_id, session_id=session_id)

    async def get_active(self, project_id: int, user_id: int) -> Optional[ChatSession]:
        """查询当前活跃会话"""
        return await self.get_one_by(project_id=project_id, user_id=user_id, is_active=True)

    async def list_sessions(self, project_id: int, user_id: int) -> List[ChatSession]:
        """
        查询作用域内所有会话

        按创建时间倒序排列（最新的在前）。
        """
        return await self.list_for_scope(
            project_id,
            user_id,
            order_by=(ChatSession.created_at.desc(), ChatSession.id.desc()),
        )

    # ============================================================
    # 会话写入
    # ============================================================

    async def deactivate_all(self, project_id: int, user_id: int) -> int:
        """
        将作用域内所有会话置为非活跃

        Returns:
            受影响的会话数
        """
        return await self.update_where(
            {"is_active": False},
            project_id=project_id,
            user_id=user_id,
        )

    async def set_active(self, project_id: int, user_id: int, session_id: str) -> bool:
        """激活指定会话"""
        affected = await self.update_where(
            {"is_active": True, "modified_at": epoch_now()},
            project_id=project_id,
            user_id=user_id,
            session_id=session_id,
        )
        return affected > 0

    async def update_title(self, project_id: int, user_id: int, session_id: str, title: str) -> bool:
        """更新会话标题"""
        affected = await self.update_where(
            {"title": title, "modified_at": epoch_now()},
            project_id=project_id,
            user_id=user_id,
            session_id=session_id,
        )
        return affected > 0


class ChatMessageRepository(ScopedRepository[ChatMessage]):
    """聊天消息数据访问层"""

    def __init__(self, session: AsyncSession):
        super().__init__(session, ChatMessage)

    async def list_for_session(self, project_id: int, user_id: int, session_id: str) -> List[ChatMessage]:
        """
        查询会话的消息列表

        按逻辑时间升序排列，时间相同时按插入顺序。
        """
        return await self.list_for_scope(
            project_id,
            user_id,
            order_by=(ChatMessage.timestamp.asc(), ChatMessage.id.asc()),
            chat_session_id=session_id,
        )

    async def list_history(
        self,
        project_id: int,
        user_id: int,
        newest_first: bool = False,
        limit: Optional[int] = None,
        **filters,
    ) -> List[ChatMessage]:
        """查询作用域内消息（默认跨会话）"""
        if newest_first:
            order_by = (ChatMessage.timestamp.desc(), ChatMessage.id.desc())
        else:
            order_by = (ChatMessage.timestamp.asc(), ChatMessage.id.asc())
        return await self.list_for_scope(project_id, user_id, order_by=order_by, limit=limit, **filters)

    async def exists_exact(
        self,
        project_id: int,
        user_id: int,
        role: str,
        content: str,
        timestamp: int,
        **filters,
    ) -> bool:
        """
        检查是否已存在完全相同的消息（批量保存去重用）

        默认在整个作用域内查找，可通过 chat_session_id 限定会话。
        """
        return await self.exists(
            project_id=project_id,
            user_id=user_id,
            role=role,
            content=content,
            timestamp=timestamp,
            **filters,
        )

    async def delete_for_session(self, project_id: int, user_id: int, session_id: str) -> int:
        """删除会话内所有消息"""
        deleted = await self.delete_for_scope(project_id, user_id, chat_session_id=session_id)
        logger.info(
            "chat_session_messages_deleted",
            project_id=project_id,
            user_id=user_id,
            session_id=session_id,
            count=deleted,
        )
        return deleted
