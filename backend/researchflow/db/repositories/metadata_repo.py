"""
项目元数据 Repository

每个 (project_id, user_id) 至多一行。
"""
from typing import Optional
from sqlalchemy.ext.asyncio import AsyncSession

from researchflow.models.database import ProjectMetadata
from .scope_repo import ScopedRepository


class MetadataRepository(ScopedRepository[ProjectMetadata]):
    """项目元数据数据访问层"""

    def __init__(self, session: AsyncSession):
        super().__init__(session, ProjectMetadata)

    async def get_for_scope(self, project_id: int, user_id: int) -> Optional[ProjectMetadata]:
        """
        查询作用域的元数据

        Returns:
            元数据记录，未保存过的项目返回 None
        """
        return await self.get_one_by(project_id=project_id, user_id=user_id)
