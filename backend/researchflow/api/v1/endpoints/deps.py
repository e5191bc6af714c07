"""
API 端点公共依赖

- get_uow: 每个请求一个 UnitOfWork（一个会话、一个事务，请求结束时提交）
- get_current_user_id: 从 X-User-Id 请求头读取学习者 ID

身份认证由宿主平台负责，这里信任请求头中的学习者 ID。
"""
from typing import AsyncGenerator, Optional
from fastapi import Header, HTTPException
import structlog

from researchflow.db.unit_of_work import UnitOfWork

logger = structlog.get_logger()


async def get_uow() -> AsyncGenerator[UnitOfWork, None]:
    """
    获取请求级 UnitOfWork

    请求处理正常结束时提交，抛出异常时回滚。
    """
    async with UnitOfWork() as uow:
        yield uow


async def get_current_user_id(
    x_user_id: Optional[str] = Header(None, alias="x-user-id"),
) -> int:
    """
    从请求头获取学习者 ID

    Raises:
        HTTPException: 401 缺少请求头；400 不是整数
    """
    if not x_user_id:
        raise HTTPException(status_code=401, detail="Missing user ID")

    try:
        return int(x_user_id)
    except ValueError:
        logger.warning("invalid_user_id_header", x_user_id=x_user_id)
        raise HTTPException(status_code=400, detail="Invalid user ID")
