"""
旧版 JSON 记录 Repository

负责 LegacyProjectRecord 表（单 JSON 存储）的数据访问。
"""
from typing import Optional, List
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, func, and_

from researchflow.models.database import LegacyProjectRecord, ProjectMetadata, epoch_now
from .scope_repo import ScopedRepository


class LegacyRecordRepository(ScopedRepository[LegacyProjectRecord]):
    """旧版记录数据访问层"""

    def __init__(self, session: AsyncSession):
        super().__init__(session, LegacyProjectRecord)

    async def get_for_scope(self, project_id: int, user_id: int) -> Optional[LegacyProjectRecord]:
        """查询作用域的旧版记录"""
        return await self.get_one_by(project_id=project_id, user_id=user_id)

    async def set_migrated(self, project_id: int, user_id: int, migrated: bool) -> bool:
        """设置迁移标记（决定作用域使用哪一层存储）"""
        affected = await self.update_where(
            {"is_migrated": migrated, "timemodified": epoch_now()},
            project_id=project_id,
            user_id=user_id,
        )
        return affected > 0

    async def list_pending(
        self,
        project_id: Optional[int] = None,
        user_id: Optional[int] = None,
        limit: Optional[int] = None,
        offset: int = 0,
    ) -> List[LegacyProjectRecord]:
        """
        查询尚未迁移的旧版记录（批量迁移用）

        Args:
            project_id: 仅限某个活动（可选）
            user_id: 仅限某个学习者（可选）
            limit: 批大小
            offset: 分页偏移
        """
        filters = {"is_migrated": False}
        if project_id is not None:
            filters["project_id"] = project_id
        if user_id is not None:
            filters["user_id"] = user_id
        return await self.list_by(
            order_by=LegacyProjectRecord.id.asc(),
            limit=limit,
            offset=offset,
            **filters,
        )

    async def count_missing_metadata(self) -> int:
        """统计有旧版记录但没有规范化元数据的作用域数"""
        result = await self.session.execute(
            select(func.count())
            .select_from(LegacyProjectRecord)
            .outerjoin(
                ProjectMetadata,
                and_(
                    ProjectMetadata.project_id == LegacyProjectRecord.project_id,
                    ProjectMetadata.user_id == LegacyProjectRecord.user_id,
                ),
            )
            .where(ProjectMetadata.id.is_(None))
        )
        return result.scalar_one()
