"""
阶段内容 Repository

每个 (project_id, user_id, phase) 至多一行。
"""
from typing import Optional
from sqlalchemy.ext.asyncio import AsyncSession

from researchflow.models.database import ProjectContent
from .scope_repo import ScopedRepository


class ContentRepository(ScopedRepository[ProjectContent]):
    """阶段内容数据访问层"""

    def __init__(self, session: AsyncSession):
        super().__init__(session, ProjectContent)

    async def get_by_phase(self, project_id: int, user_id: int, phase: str) -> Optional[ProjectContent]:
        """查询某阶段的当前内容"""
        return await self.get_one_by(project_id=project_id, user_id=user_id, phase=phase)
