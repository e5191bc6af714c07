"""
作用域 Repository

- ActivityRepository / LearnerRepository：活动与学习者的存在性校验
- ScopedRepository：按 (project_id, user_id) 作用域划分的表的公共基类
"""
from typing import List, Optional, Any
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, func

from researchflow.models.database import WritingActivity, Learner
from .base import BaseRepository, T


class ActivityRepository(BaseRepository[WritingActivity]):
    """写作活动数据访问层"""

    def __init__(self, session: AsyncSession):
        super().__init__(session, WritingActivity)


class LearnerRepository(BaseRepository[Learner]):
    """学习者数据访问层"""

    def __init__(self, session: AsyncSession):
        super().__init__(session, Learner)


class ScopedRepository(BaseRepository[T]):
    """
    作用域表公共基类

    要求模型具有 project_id / user_id 两个字段。
    """

    async def list_for_scope(
        self,
        project_id: int,
        user_id: int,
        order_by: Optional[Any] = None,
        limit: Optional[int] = None,
        **filters,
    ) -> List[T]:
        """查询某个作用域内的记录"""
        return await self.list_by(
            order_by=order_by,
            limit=limit,
            project_id=project_id,
            user_id=user_id,
            **filters,
        )

    async def count_for_scope(self, project_id: int, user_id: int, **filters) -> int:
        """统计某个作用域内的记录数"""
        return await self.count(project_id=project_id, user_id=user_id, **filters)

    async def delete_for_scope(self, project_id: int, user_id: int, **filters) -> int:
        """删除某个作用域内的记录"""
        return await self.delete_where(project_id=project_id, user_id=user_id, **filters)

    async def delete_for_project(self, project_id: int) -> int:
        """删除某个活动下所有学习者的记录（活动删除时级联）"""
        return await self.delete_where(project_id=project_id)

    async def count_orphaned(self) -> int:
        """
        统计孤儿记录数

        孤儿记录：所属活动已不存在（LEFT JOIN 活动表为空）。
        """
        result = await self.session.execute(
            select(func.count())
            .select_from(self.model)
            .outerjoin(WritingActivity, WritingActivity.id == self.model.project_id)
            .where(WritingActivity.id.is_(None))
        )
        return result.scalar_one()
