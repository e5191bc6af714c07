"""
项目聚合服务

对外提供整项目的读取、保存、提交和删除。读取与保存委托给
StorageResolver 选出的存储层；保存在一个 savepoint 内完成，
任一步失败都会整体回滚并向上抛出。
"""
from typing import Dict
import structlog
from sqlalchemy.exc import SQLAlchemyError

from researchflow.core.exceptions import (
    ImmutableStateError,
    NotFoundError,
    PersistenceError,
)
from researchflow.db.unit_of_work import UnitOfWork
from researchflow.models.constants import ProjectStatus
from researchflow.models.database import ProjectMetadata, epoch_now
from researchflow.models.domain import ProjectDocument, SaveProjectResult
from researchflow.services.storage_strategy import StorageResolver

logger = structlog.get_logger(__name__)


class ProjectService:
    """项目聚合服务"""

    def __init__(self, uow: UnitOfWork):
        self.uow = uow
        self.resolver = StorageResolver(uow)

    async def load_project(self, project_id: int, user_id: int) -> ProjectDocument:
        """
        读取完整项目文档

        从未保存过的项目返回默认文档（字符串字段为空字符串，当前标签页为 plan）。
        """
        storage = await self.resolver.resolve(project_id, user_id)
        document = await storage.load(project_id, user_id)

        logger.debug(
            "project_loaded",
            project_id=project_id,
            user_id=user_id,
            storage=type(storage).__name__,
            ideas=len(document.plan.ideas),
            chat_messages=len(document.chat_history),
        )
        return document

    async def save_project(
        self,
        project_id: int,
        user_id: int,
        document: ProjectDocument,
    ) -> SaveProjectResult:
        """
        保存完整项目文档

        Raises:
            ImmutableStateError: 项目已提交
            NotFoundError: 活动或学习者不存在
            PersistenceError: 数据库写入失败
        """
        try:
            async with self.uow.nested() as nested_uow:
                metadata = await nested_uow.metadata.get_for_scope(project_id, user_id)
                if metadata is not None and metadata.status == ProjectStatus.SUBMITTED.value:
                    raise ImmutableStateError(
                        "Project has been submitted and can no longer be edited",
                        details={"project_id": project_id, "user_id": user_id},
                    )

                if not await nested_uow.activities.exists(id=project_id):
                    raise NotFoundError(
                        f"Activity {project_id} does not exist",
                        details={"project_id": project_id},
                    )
                if not await nested_uow.learners.exists(id=user_id):
                    raise NotFoundError(
                        f"User {user_id} does not exist",
                        details={"user_id": user_id},
                    )

                storage = await StorageResolver(nested_uow).resolve(project_id, user_id)
                id_map = await storage.save(project_id, user_id, document)
        except SQLAlchemyError as e:
            logger.error(
                "project_save_failed",
                project_id=project_id,
                user_id=user_id,
                error=str(e),
                error_type=type(e).__name__,
            )
            raise PersistenceError(
                "Failed to save project",
                details={"project_id": project_id, "user_id": user_id, "error_type": type(e).__name__},
            ) from e

        logger.info(
            "project_saved",
            project_id=project_id,
            user_id=user_id,
            storage=type(storage).__name__,
            ideas_mapped=len(id_map),
        )
        return SaveProjectResult(ok=True, idea_id_map=id_map)

    async def submit_project(self, project_id: int, user_id: int) -> bool:
        """
        提交项目

        状态改为 submitted；重复提交只更新 modified_at。
        没有元数据时创建一行默认元数据。
        """
        now = epoch_now()
        metadata = await self.uow.metadata.get_for_scope(project_id, user_id)
        resubmitted = metadata is not None and metadata.status == ProjectStatus.SUBMITTED.value

        if metadata is None:
            await self.uow.metadata.create(
                ProjectMetadata(
                    project_id=project_id,
                    user_id=user_id,
                    status=ProjectStatus.SUBMITTED.value,
                    created_at=now,
                    modified_at=now,
                )
            )
        else:
            await self.uow.metadata.update_by_id(
                metadata.id,
                status=ProjectStatus.SUBMITTED.value,
                modified_at=now,
            )

        logger.info(
            "project_submitted",
            project_id=project_id,
            user_id=user_id,
            resubmitted=resubmitted,
        )
        return True

    async def delete_project(self, project_id: int, user_id: int) -> Dict[str, int]:
        """
        删除一个作用域的全部规范化数据（子表优先）

        Returns:
            各表删除的行数
        """
        async with self.uow.nested() as nested_uow:
            deleted = {
                "chat_messages": await nested_uow.chat_messages.delete_for_scope(project_id, user_id),
                "chat_sessions": await nested_uow.chat_sessions.delete_for_scope(project_id, user_id),
                "versions": await nested_uow.versions.delete_for_scope(project_id, user_id),
                "content": await nested_uow.contents.delete_for_scope(project_id, user_id),
                "ideas": await nested_uow.ideas.delete_for_scope(project_id, user_id),
                "metadata": await nested_uow.metadata.delete_for_scope(project_id, user_id),
            }

        logger.info(
            "project_deleted",
            project_id=project_id,
            user_id=user_id,
            **deleted,
        )
        return deleted

    async def purge_activity(self, project_id: int) -> bool:
        """
        删除写作活动及其所有学习者的全部数据

        Returns:
            活动不存在时返回 False
        """
        activity = await self.uow.activities.get_by_id(project_id)
        if activity is None:
            logger.info("activity_purge_not_found", project_id=project_id)
            return False

        async with self.uow.nested() as nested_uow:
            deleted = {
                "chat_messages": await nested_uow.chat_messages.delete_for_project(project_id),
                "chat_sessions": await nested_uow.chat_sessions.delete_for_project(project_id),
                "versions": await nested_uow.versions.delete_for_project(project_id),
                "content": await nested_uow.contents.delete_for_project(project_id),
                "ideas": await nested_uow.ideas.delete_for_project(project_id),
                "metadata": await nested_uow.metadata.delete_for_project(project_id),
                "legacy": await nested_uow.legacy.delete_for_project(project_id),
            }
            await nested_uow.activities.delete_by_id(project_id)

        logger.info(
            "activity_purged",
            project_id=project_id,
            **deleted,
        )
        return True
