"""
聊天 API 端点

会话管理：
- POST   /projects/{project_id}/chat/sessions: 创建会话（并设为活跃）
- GET    /projects/{project_id}/chat/sessions: 会话列表
- GET    /projects/{project_id}/chat/sessions/active: 当前活跃会话
- GET    /projects/{project_id}/chat/sessions/all: 所有会话及消息
- POST   /projects/{project_id}/chat/sessions/{session_id}/switch: 切换会话
- PATCH  /projects/{project_id}/chat/sessions/{session_id}: 修改标题
- DELETE /projects/{project_id}/chat/sessions/{session_id}: 删除会话

消息：
- GET    /projects/{project_id}/chat/sessions/{session_id}/messages
- DELETE /projects/{project_id}/chat/sessions/{session_id}/messages
- POST   /projects/{project_id}/chat/messages: 追加单条消息
- GET    /projects/{project_id}/chat/history: 仅加载聊天记录

AI 代理：
- POST   /projects/{project_id}/chat/completions
"""
from typing import Any, Dict, List, Optional, Union
from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, Field
import structlog

from researchflow.db.unit_of_work import UnitOfWork
from researchflow.models.domain import (
    CamelModel,
    ChatMessageView,
    ChatSessionView,
    ChatSessionWithMessages,
)
from researchflow.services.chat_completion_client import ChatCompletionClient
from researchflow.services.chat_session_manager import ChatSessionManager
from .deps import get_current_user_id, get_uow

logger = structlog.get_logger()

router = APIRouter(prefix="/projects/{project_id}/chat", tags=["chat"])


def get_chat_client() -> ChatCompletionClient:
    """AI 客户端依赖（测试中可覆盖）"""
    return ChatCompletionClient()


# ============================================================
# 请求 / 响应模型
# ============================================================

class OkResponse(BaseModel):
    """通用成功响应"""
    ok: bool = True


class CreateSessionRequest(BaseModel):
    """创建会话"""
    title: Optional[str] = Field(None, max_length=255)


class CreateSessionResponse(BaseModel):
    """创建会话响应"""
    session_id: str


class SessionListResponse(BaseModel):
    """会话列表响应"""
    sessions: List[ChatSessionView]
    count: int


class UpdateTitleRequest(BaseModel):
    """修改会话标题"""
    title: str = Field(..., min_length=1, max_length=255)


class AppendMessageRequest(CamelModel):
    """追加单条消息"""
    session_id: Optional[str] = None
    role: str
    content: str
    timestamp: Optional[Union[int, float, str]] = None


class AppendMessageResponse(BaseModel):
    """追加消息响应"""
    ok: bool = True
    message_id: int


class CompletionMessage(BaseModel):
    """AI 对话消息"""
    role: str
    content: str


class CompletionRequest(BaseModel):
    """AI 对话补全请求"""
    messages: List[CompletionMessage] = Field(..., min_length=1)
    temperature: Optional[float] = Field(None, ge=0, le=2)


class CompletionResponse(BaseModel):
    """AI 对话补全响应"""
    content: str


# ============================================================
# 会话管理
# ============================================================

@router.post("/sessions", response_model=CreateSessionResponse)
async def create_session(
    project_id: int,
    payload: Optional[CreateSessionRequest] = None,
    user_id: int = Depends(get_current_user_id),
    uow: UnitOfWork = Depends(get_uow),
):
    """创建新会话，其他会话变为非活跃"""
    title = payload.title if payload else None
    session_id = await ChatSessionManager(uow).create_session(project_id, user_id, title)
    return CreateSessionResponse(session_id=session_id)


@router.get("/sessions", response_model=SessionListResponse)
async def get_sessions(
    project_id: int,
    user_id: int = Depends(get_current_user_id),
    uow: UnitOfWork = Depends(get_uow),
):
    """会话列表（最新的在前）"""
    manager = ChatSessionManager(uow)
    sessions = await manager.get_sessions(project_id, user_id)
    return SessionListResponse(sessions=sessions, count=len(sessions))


@router.get("/sessions/active", response_model=Optional[ChatSessionView])
async def get_active_session(
    project_id: int,
    user_id: int = Depends(get_current_user_id),
    uow: UnitOfWork = Depends(get_uow),
):
    """当前活跃会话（没有时返回 null）"""
    return await ChatSessionManager(uow).get_active_session(project_id, user_id)


@router.get("/sessions/all", response_model=List[ChatSessionWithMessages])
async def get_all_sessions_with_messages(
    project_id: int,
    user_id: int = Depends(get_current_user_id),
    uow: UnitOfWork = Depends(get_uow),
):
    """所有会话及其消息"""
    return await ChatSessionManager(uow).get_all_sessions_with_messages(project_id, user_id)


@router.post("/sessions/{session_id}/switch", response_model=OkResponse)
async def switch_session(
    project_id: int,
    session_id: str,
    user_id: int = Depends(get_current_user_id),
    uow: UnitOfWork = Depends(get_uow),
):
    """切换活跃会话（会话不存在时 ok=false，活跃会话保持不变）"""
    switched = await ChatSessionManager(uow).switch_to_session(project_id, user_id, session_id)
    return OkResponse(ok=switched)


@router.patch("/sessions/{session_id}", response_model=OkResponse)
async def update_session_title(
    project_id: int,
    session_id: str,
    payload: UpdateTitleRequest,
    user_id: int = Depends(get_current_user_id),
    uow: UnitOfWork = Depends(get_uow),
):
    """修改会话标题"""
    updated = await ChatSessionManager(uow).update_session_title(
        project_id, user_id, session_id, payload.title
    )
    return OkResponse(ok=updated)


@router.delete("/sessions/{session_id}", response_model=OkResponse)
async def delete_session(
    project_id: int,
    session_id: str,
    user_id: int = Depends(get_current_user_id),
    uow: UnitOfWork = Depends(get_uow),
):
    """删除会话及其所有消息"""
    deleted = await ChatSessionManager(uow).delete_session(project_id, user_id, session_id)
    return OkResponse(ok=deleted)


# ============================================================
# 消息
# ============================================================

@router.get("/sessions/{session_id}/messages", response_model=List[ChatMessageView])
async def get_session_messages(
    project_id: int,
    session_id: str,
    user_id: int = Depends(get_current_user_id),
    uow: UnitOfWork = Depends(get_uow),
):
    """会话消息（按时间升序）"""
    return await ChatSessionManager(uow).get_session_messages(project_id, user_id, session_id)


@router.delete("/sessions/{session_id}/messages", response_model=OkResponse)
async def clear_session_messages(
    project_id: int,
    session_id: str,
    user_id: int = Depends(get_current_user_id),
    uow: UnitOfWork = Depends(get_uow),
):
    """清空会话消息（会话保留）"""
    cleared = await ChatSessionManager(uow).clear_session_messages(project_id, user_id, session_id)
    return OkResponse(ok=cleared)


@router.post("/messages", response_model=AppendMessageResponse)
async def append_message(
    project_id: int,
    payload: AppendMessageRequest,
    user_id: int = Depends(get_current_user_id),
    uow: UnitOfWork = Depends(get_uow),
):
    """
    追加单条消息

    sessionId 为空、"default" 或不存在时写入当前活跃会话（没有时自动创建）。
    """
    message_id = await ChatSessionManager(uow).append_message(
        project_id,
        user_id,
        payload.session_id,
        payload.role,
        payload.content,
        payload.timestamp,
    )
    return AppendMessageResponse(message_id=message_id)


@router.get("/history", response_model=List[ChatMessageView])
async def load_chat_history(
    project_id: int,
    limit: Optional[int] = Query(None, ge=1, le=1000),
    session_id: Optional[str] = Query(None),
    user_id: int = Depends(get_current_user_id),
    uow: UnitOfWork = Depends(get_uow),
):
    """仅加载聊天记录（最新的在前）"""
    return await ChatSessionManager(uow).load_chat_history(
        project_id, user_id, limit=limit, session_id=session_id
    )


# ============================================================
# AI 代理
# ============================================================

@router.post("/completions", response_model=CompletionResponse)
async def chat_completion(
    project_id: int,
    payload: CompletionRequest,
    user_id: int = Depends(get_current_user_id),
    client: ChatCompletionClient = Depends(get_chat_client),
):
    """
    转发对话补全请求到 AI 后端

    超时返回 504，其他上游错误返回 502。
    """
    options: Dict[str, Any] = {}
    if payload.temperature is not None:
        options["temperature"] = payload.temperature

    logger.info(
        "chat_completion_proxy",
        project_id=project_id,
        user_id=user_id,
        message_count=len(payload.messages),
    )
    content = await client.complete(
        [m.model_dump() for m in payload.messages],
        **options,
    )
    return CompletionResponse(content=content)
