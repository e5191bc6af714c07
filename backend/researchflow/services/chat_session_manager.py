"""
聊天会话管理服务

每个作用域 (project_id, user_id) 可以有多个会话，同一时刻最多一个活跃会话：
创建或切换会话时先将所有会话置为非活跃，再激活目标会话。

消息只追加：普通保存从不删除或截断历史，只有显式的"清空会话"
或"删除会话"才会删除消息。

去重策略：
- 批量保存（整项目保存路径）会跳过完全相同的消息（可能被重放）
- 单条追加不做去重（一次用户操作对应一条消息）
"""
import secrets
from typing import Any, Dict, Iterable, List, Optional
import structlog

from researchflow.config.settings import settings
from researchflow.core.exceptions import ValidationError
from researchflow.db.unit_of_work import UnitOfWork
from researchflow.models.constants import ChatRole, DEFAULT_SESSION_SENTINEL
from researchflow.models.database import ChatSession, ChatMessage, epoch_now
from researchflow.models.domain import (
    ChatMessageDocument,
    ChatMessageView,
    ChatSessionView,
    ChatSessionWithMessages,
)
from researchflow.utils.timestamps import normalize_timestamp, TimestampInput

logger = structlog.get_logger(__name__)


def generate_session_id(project_id: int, user_id: int) -> str:
    """生成会话 ID：chat_<user>_<project>_<epoch>_<hex>"""
    return f"chat_{user_id}_{project_id}_{epoch_now()}_{secrets.token_hex(6)}"


def validate_role(role: Any) -> str:
    """
    校验消息角色

    Raises:
        ValidationError: 角色不是 user / assistant / system
    """
    try:
        return ChatRole(role).value
    except ValueError:
        raise ValidationError(
            f"Invalid role: {role}",
            details={"role": role, "allowed": [r.value for r in ChatRole]},
        )


class ChatSessionManager:
    """聊天会话管理器"""

    def __init__(self, uow: UnitOfWork, max_message_length: Optional[int] = None):
        self.uow = uow
        self.max_message_length = max_message_length or settings.CHAT_MESSAGE_MAX_LENGTH

    # ============================================================
    # 会话生命周期
    # ============================================================

    async def create_session(self, project_id: int, user_id: int, title: Optional[str] = None) -> str:
        """
        创建新会话并设为活跃

        Returns:
            新会话 ID
        """
        title = title or settings.DEFAULT_CHAT_TITLE
        session_id = generate_session_id(project_id, user_id)
        now = epoch_now()

        await self.uow.chat_sessions.deactivate_all(project_id, user_id)
        await self.uow.chat_sessions.create(
            ChatSession(
                session_id=session_id,
                project_id=project_id,
                user_id=user_id,
                title=title,
                is_active=True,
                created_at=now,
                modified_at=now,
            )
        )

        logger.info(
            "chat_session_created",
            project_id=project_id,
            user_id=user_id,
            session_id=session_id,
            title=title,
        )
        return session_id

    async def get_sessions(self, project_id: int, user_id: int) -> List[ChatSessionView]:
        """所有会话，最新的在前"""
        sessions = await self.uow.chat_sessions.list_sessions(project_id, user_id)
        return [ChatSessionView.model_validate(s) for s in sessions]

    async def get_active_session(self, project_id: int, user_id: int) -> Optional[ChatSessionView]:
        """当前活跃会话（可能没有）"""
        active = await self.uow.chat_sessions.get_active(project_id, user_id)
        return ChatSessionView.model_validate(active) if active else None

    async def get_session_count(self, project_id: int, user_id: int) -> int:
        """会话数量"""
        return await self.uow.chat_sessions.count_for_scope(project_id, user_id)

    async def switch_to_session(self, project_id: int, user_id: int, session_id: str) -> bool:
        """
        切换活跃会话

        目标会话不存在时什么也不做（不会把现有活跃会话置为非活跃），返回 False。
        """
        target = await self.uow.chat_sessions.get_session(project_id, user_id, session_id)
        if target is None:
            logger.info(
                "chat_session_switch_not_found",
                project_id=project_id,
                user_id=user_id,
                session_id=session_id,
            )
            return False

        await self.uow.chat_sessions.deactivate_all(project_id, user_id)
        switched = await self.uow.chat_sessions.set_active(project_id, user_id, session_id)

        logger.info(
            "chat_session_switched",
            project_id=project_id,
            user_id=user_id,
            session_id=session_id,
        )
        return switched

    async def delete_session(self, project_id: int, user_id: int, session_id: str) -> bool:
        """
        删除会话及其所有消息

        消息和会话在同一个 savepoint 内删除，任一步失败整体回滚并返回 False。
        """
        try:
            async with self.uow.nested() as nested_uow:
                target = await nested_uow.chat_sessions.get_session(project_id, user_id, session_id)
                if target is None:
                    return False
                await nested_uow.chat_messages.delete_for_session(project_id, user_id, session_id)
                await nested_uow.chat_sessions.delete_by_id(target.id)
        except Exception as e:
            logger.error(
                "chat_session_delete_failed",
                project_id=project_id,
                user_id=user_id,
                session_id=session_id,
                error=str(e),
                error_type=type(e).__name__,
            )
            return False

        logger.info(
            "chat_session_deleted",
            project_id=project_id,
            user_id=user_id,
            session_id=session_id,
        )
        return True

    async def update_session_title(self, project_id: int, user_id: int, session_id: str, title: str) -> bool:
        """更新会话标题"""
        return await self.uow.chat_sessions.update_title(project_id, user_id, session_id, title)

    async def get_all_sessions_with_messages(
        self,
        project_id: int,
        user_id: int,
    ) -> List[ChatSessionWithMessages]:
        """所有会话及其消息（教师查看学生聊天记录用）"""
        results = []
        for session in await self.uow.chat_sessions.list_sessions(project_id, user_id):
            messages = await self.uow.chat_messages.list_for_session(project_id, user_id, session.session_id)
            results.append(
                ChatSessionWithMessages(
                    **ChatSessionView.model_validate(session).model_dump(),
                    messages=[ChatMessageView.model_validate(m) for m in messages],
                )
            )
        return results

    # ============================================================
    # 消息
    # ============================================================

    async def resolve_session(self, project_id: int, user_id: int, session_id: Optional[str]) -> str:
        """
        解析消息写入的目标会话

        - 空值或 "default"：当前活跃会话
        - 不存在的会话 ID：同样重定向到活跃会话
        - 没有活跃会话时自动创建一个 "New Chat"
        """
        if session_id and session_id != DEFAULT_SESSION_SENTINEL:
            existing = await self.uow.chat_sessions.get_session(project_id, user_id, session_id)
            if existing is not None:
                return existing.session_id
            logger.info(
                "chat_session_unknown_redirected",
                project_id=project_id,
                user_id=user_id,
                session_id=session_id,
            )

        active = await self.uow.chat_sessions.get_active(project_id, user_id)
        if active is not None:
            return active.session_id

        return await self.create_session(project_id, user_id)

    def _truncate(self, content: str) -> str:
        if len(content) > self.max_message_length:
            logger.warning(
                "chat_message_truncated",
                original_length=len(content),
                max_length=self.max_message_length,
            )
            return content[: self.max_message_length]
        return content

    async def append_message(
        self,
        project_id: int,
        user_id: int,
        session_id: Optional[str],
        role: str,
        content: str,
        timestamp: TimestampInput = None,
    ) -> int:
        """
        追加单条消息（不做去重）

        Returns:
            新消息 ID

        Raises:
            ValidationError: 角色非法或时间戳无法解析
        """
        role = validate_role(role)
        try:
            normalized_ts = normalize_timestamp(timestamp)
        except ValueError:
            raise ValidationError(f"Invalid timestamp: {timestamp}", details={"timestamp": timestamp})

        target_session = await self.resolve_session(project_id, user_id, session_id)

        message = await self.uow.chat_messages.create(
            ChatMessage(
                project_id=project_id,
                user_id=user_id,
                chat_session_id=target_session,
                role=role,
                content=self._truncate(content or ""),
                timestamp=normalized_ts,
                created_at=epoch_now(),
            )
        )

        logger.info(
            "chat_message_appended",
            project_id=project_id,
            user_id=user_id,
            session_id=target_session,
            message_id=message.id,
            role=role,
            content_length=len(message.content),
        )
        return message.id

    async def save_batch(
        self,
        project_id: int,
        user_id: int,
        session_id: Optional[str],
        messages: Iterable[ChatMessageDocument | Dict[str, Any]],
    ) -> int:
        """
        批量保存消息（整项目保存路径）

        缺少 role 或 content 的条目被跳过；作用域内已存在完全相同
        （角色 + 内容 + 时间戳）消息的条目被跳过，不论它在哪个会话中，
        这样把 load_project 读出的跨会话记录原样保存回来不会产生重复。

        Returns:
            实际插入的条数
        """
        entries = [
            m if isinstance(m, ChatMessageDocument) else ChatMessageDocument.model_validate(m)
            for m in messages
        ]
        if not entries:
            return 0

        target_session = await self.resolve_session(project_id, user_id, session_id)
        inserted = skipped = 0

        for entry in entries:
            if not entry.role or not entry.content:
                skipped += 1
                continue

            role = validate_role(entry.role)
            try:
                normalized_ts = normalize_timestamp(entry.timestamp)
            except ValueError:
                logger.warning(
                    "chat_message_timestamp_unparseable",
                    project_id=project_id,
                    user_id=user_id,
                    timestamp=entry.timestamp,
                )
                normalized_ts = epoch_now()
            content = self._truncate(entry.content)

            if await self.uow.chat_messages.exists_exact(project_id, user_id, role, content, normalized_ts):
                skipped += 1
                continue

            await self.uow.chat_messages.create(
                ChatMessage(
                    project_id=project_id,
                    user_id=user_id,
                    chat_session_id=target_session,
                    role=role,
                    content=content,
                    timestamp=normalized_ts,
                    created_at=epoch_now(),
                )
            )
            inserted += 1

        logger.info(
            "chat_batch_saved",
            project_id=project_id,
            user_id=user_id,
            session_id=target_session,
            inserted=inserted,
            skipped=skipped,
        )
        return inserted

    async def get_session_messages(self, project_id: int, user_id: int, session_id: str) -> List[ChatMessageView]:
        """会话消息，按逻辑时间升序"""
        messages = await self.uow.chat_messages.list_for_session(project_id, user_id, session_id)
        return [ChatMessageView.model_validate(m) for m in messages]

    async def clear_session_messages(self, project_id: int, user_id: int, session_id: str) -> bool:
        """清空会话消息（会话本身保留）"""
        await self.uow.chat_messages.delete_for_session(project_id, user_id, session_id)
        return True

    async def load_chat_history(
        self,
        project_id: int,
        user_id: int,
        limit: Optional[int] = None,
        session_id: Optional[str] = None,
    ) -> List[ChatMessageView]:
        """
        仅加载聊天记录（前端快速初始化用）

        默认跨会话，最新的在前，可选数量限制和会话过滤。
        """
        filters = {"chat_session_id": session_id} if session_id else {}
        messages = await self.uow.chat_messages.list_history(
            project_id, user_id, newest_first=True, limit=limit, **filters
        )
        return [ChatMessageView.model_validate(m) for m in messages]
