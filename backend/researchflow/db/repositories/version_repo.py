"""
版本快照 Repository

负责 ContentVersion 表的数据访问操作。

职责范围：
- 下一个版本号计算（MAX + 1）
- 历史列表（最新在前）
- 最旧版本查询（用于保留上限裁剪）
"""
from typing import Optional, List
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, func

from researchflow.models.database import ContentVersion
from .scope_repo import ScopedRepository


class VersionRepository(ScopedRepository[ContentVersion]):
    """版本快照数据访问层"""

    def __init__(self, session: AsyncSession):
        super().__init__(session, ContentVersion)

    async def max_version_number(self, project_id: int, user_id: int, phase: str) -> int:
        """
        查询当前最大版本号

        Returns:
            最大版本号；从未保存过版本时返回 0
        """
        result = await self.session.execute(
            select(func.max(ContentVersion.version_number)).where(
                ContentVersion.project_id == project_id,
                ContentVersion.user_id == user_id,
                ContentVersion.phase == phase,
            )
        )
        return result.scalar_one_or_none() or 0

    async def count_for_phase(self, project_id: int, user_id: int, phase: str) -> int:
        """统计某阶段的版本数"""
        return await self.count_for_scope(project_id, user_id, phase=phase)

    async def list_history(
        self,
        project_id: int,
        user_id: int,
        phase: str,
        limit: Optional[int] = None,
    ) -> List[ContentVersion]:
        """版本历史，按版本号倒序（最新在前）"""
        return await self.list_for_scope(
            project_id,
            user_id,
            order_by=ContentVersion.version_number.desc(),
            limit=limit,
            phase=phase,
        )

    async def get_version(
        self,
        project_id: int,
        user_id: int,
        phase: str,
        version_number: int,
    ) -> Optional[ContentVersion]:
        """按版本号查询单个快照"""
        return await self.get_one_by(
            project_id=project_id,
            user_id=user_id,
            phase=phase,
            version_number=version_number,
        )

    async def list_oldest(
        self,
        project_id: int,
        user_id: int,
        phase: str,
        limit: int,
    ) -> List[ContentVersion]:
        """最旧的 N 个版本，按版本号升序"""
        return await self.list_for_scope(
            project_id,
            user_id,
            order_by=ContentVersion.version_number.asc(),
            limit=limit,
            phase=phase,
        )
