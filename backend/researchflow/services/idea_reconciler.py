"""
想法协调服务

把客户端完整提交的想法列表与已持久化的想法逐条对齐：
1. 携带作用域内存在的持久化 ID：原地更新
2. 否则在同一 (location, section_id) 桶内按规范化内容查找重复项：命中则更新
3. 否则插入新行

协调过程从不隐式删除想法；客户端列表中缺失的想法保持原样，
只有显式的删除请求才会移除。
"""
from typing import Dict, Iterable, Optional
import structlog

from researchflow.db.unit_of_work import UnitOfWork
from researchflow.models.database import Idea, epoch_now
from researchflow.models.domain import IdeaDocument
from researchflow.utils.text import normalize_content

logger = structlog.get_logger(__name__)


class IdeaReconciler:
    """想法协调器"""

    def __init__(self, uow: UnitOfWork):
        self.uow = uow

    async def reconcile_ideas(
        self,
        project_id: int,
        user_id: int,
        client_ideas: Iterable[IdeaDocument],
    ) -> Dict[str, int]:
        """
        协调想法列表

        Args:
            project_id: 写作活动 ID
            user_id: 学习者 ID
            client_ideas: 客户端想法列表

        Returns:
            客户端 ID -> 持久化 ID 的映射（客户端未提供 ID 的想法不出现在映射中）
        """
        id_map: Dict[str, int] = {}
        inserted = updated = deduplicated = 0

        for idea in client_ideas:
            persisted_id, outcome = await self._reconcile_one(project_id, user_id, idea)
            if idea.id is not None:
                id_map[str(idea.id)] = persisted_id

            if outcome == "inserted":
                inserted += 1
            elif outcome == "deduplicated":
                deduplicated += 1
            else:
                updated += 1

        logger.info(
            "ideas_reconciled",
            project_id=project_id,
            user_id=user_id,
            inserted=inserted,
            updated=updated,
            deduplicated=deduplicated,
        )
        return id_map

    async def _reconcile_one(self, project_id: int, user_id: int, idea: IdeaDocument) -> tuple[int, str]:
        now = epoch_now()
        fields = {
            "content": idea.content,
            "location": idea.location,
            "section_id": idea.section_id,
            "ai_generated": idea.ai_generated,
            "modified_at": now,
        }

        # 1. 持久化 ID 精确匹配
        candidate_id = idea.persisted_id()
        if candidate_id:
            existing = await self.uow.ideas.get_in_scope(candidate_id, project_id, user_id)
            if existing is not None:
                await self.uow.ideas.update_by_id(existing.id, **fields)
                return existing.id, "updated"

        # 2. 同桶内规范化内容去重
        normalized = normalize_content(idea.content)
        bucket = await self.uow.ideas.find_in_bucket(project_id, user_id, idea.location, idea.section_id)
        for existing in bucket:
            if normalize_content(existing.content) == normalized:
                await self.uow.ideas.update_by_id(existing.id, **fields)
                logger.debug(
                    "idea_duplicate_collapsed",
                    project_id=project_id,
                    user_id=user_id,
                    client_id=idea.id,
                    idea_id=existing.id,
                )
                return existing.id, "deduplicated"

        # 3. 新建
        created = await self.uow.ideas.create(
            Idea(
                project_id=project_id,
                user_id=user_id,
                created_at=now,
                **fields,
            )
        )
        return created.id, "inserted"

    # ============================================================
    # 显式删除
    # ============================================================

    async def delete_idea(self, project_id: int, user_id: int, idea_id: int) -> bool:
        """
        按持久化 ID 删除想法

        Returns:
            是否删除成功（不存在或失败均返回 False）
        """
        try:
            async with self.uow.nested() as nested_uow:
                existing = await nested_uow.ideas.get_in_scope(idea_id, project_id, user_id)
                if existing is None:
                    logger.info(
                        "idea_delete_not_found",
                        project_id=project_id,
                        user_id=user_id,
                        idea_id=idea_id,
                    )
                    return False
                return await nested_uow.ideas.delete_by_id(existing.id)
        except Exception as e:
            logger.error(
                "idea_delete_failed",
                project_id=project_id,
                user_id=user_id,
                idea_id=idea_id,
                error=str(e),
                error_type=type(e).__name__,
            )
            return False

    async def delete_idea_by_fields(
        self,
        project_id: int,
        user_id: int,
        content: str,
        location: str,
        section_id: Optional[str] = None,
    ) -> bool:
        """
        按字段删除想法（客户端没有持久化 ID 时使用）

        先尝试原始内容的精确匹配；未命中时扫描整个作用域，
        比较规范化内容，location 非空时要求一致，
        section_id 为空时接受 NULL 或空字符串。

        Returns:
            是否删除成功
        """
        section_id = section_id or None
        try:
            async with self.uow.nested() as nested_uow:
                exact = await nested_uow.ideas.find_exact(
                    project_id, user_id, content, location, section_id
                )
                if exact is not None:
                    logger.info(
                        "idea_deleted_by_exact_match",
                        project_id=project_id,
                        user_id=user_id,
                        idea_id=exact.id,
                    )
                    return await nested_uow.ideas.delete_by_id(exact.id)

                target = normalize_content(content)
                for existing in await nested_uow.ideas.list_ideas(project_id, user_id):
                    if normalize_content(existing.content) != target:
                        continue
                    if location and existing.location != location:
                        continue
                    if (existing.section_id or None) != section_id:
                        continue

                    logger.info(
                        "idea_deleted_by_fuzzy_match",
                        project_id=project_id,
                        user_id=user_id,
                        idea_id=existing.id,
                    )
                    return await nested_uow.ideas.delete_by_id(existing.id)

                logger.info(
                    "idea_delete_by_fields_not_found",
                    project_id=project_id,
                    user_id=user_id,
                    location=location,
                    section_id=section_id,
                )
                return False
        except Exception as e:
            logger.error(
                "idea_delete_by_fields_failed",
                project_id=project_id,
                user_id=user_id,
                error=str(e),
                error_type=type(e).__name__,
            )
            return False
