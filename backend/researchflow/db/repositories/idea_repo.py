"""
想法 Repository

负责 Idea 表的数据访问操作。

职责范围：
- 作用域内按 ID 查找
- 按 (location, section_id) 桶查找候选重复项
- 按字段精确匹配（删除时的第一层匹配）
"""
from typing import Optional, List
from sqlalchemy.ext.asyncio import AsyncSession

from researchflow.models.database import Idea
from .scope_repo import ScopedRepository


class IdeaRepository(ScopedRepository[Idea]):
    """想法数据访问层"""

    def __init__(self, session: AsyncSession):
        super().__init__(session, Idea)

    async def get_in_scope(self, idea_id: int, project_id: int, user_id: int) -> Optional[Idea]:
        """
        在作用域内按 ID 查询想法

        其他学习者的同 ID 想法不会被返回。
        """
        return await self.get_one_by(id=idea_id, project_id=project_id, user_id=user_id)

    async def list_ideas(self, project_id: int, user_id: int) -> List[Idea]:
        """按创建顺序列出作用域内所有想法"""
        return await self.list_for_scope(project_id, user_id, order_by=Idea.id.asc())

    async def find_in_bucket(
        self,
        project_id: int,
        user_id: int,
        location: str,
        section_id: Optional[str],
    ) -> List[Idea]:
        """
        查询同一 (location, section_id) 桶内的想法

        section_id 为 None 时按 IS NULL 匹配。
        """
        return await self.list_for_scope(
            project_id,
            user_id,
            order_by=Idea.id.asc(),
            location=location,
            section_id=section_id,
        )

    async def find_exact(
        self,
        project_id: int,
        user_id: int,
        content: str,
        location: str,
        section_id: Optional[str],
    ) -> Optional[Idea]:
        """按原始内容、位置、段落精确匹配单个想法"""
        return await self.get_one_by(
            project_id=project_id,
            user_id=user_id,
            content=content,
            location=location,
            section_id=section_id,
        )
