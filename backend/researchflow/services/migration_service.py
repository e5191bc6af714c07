"""
旧版数据迁移服务

把单 JSON 存储的旧版记录迁移到规范化表：
1. 读取旧版记录（不存在时抛出 NotFoundError）
2. 解析 JSON（格式错误时抛出 InvalidLegacyDataError）
3. 清空该作用域的想法和聊天记录（重复迁移等价于覆盖）
4. 通过与整项目保存相同的写入路径回放文档
5. 把旧版记录标记为已迁移

以上步骤在同一个 savepoint 内完成，任一步失败整体回滚。

元数据行原地更新，status 和 created_at 保持不变；版本快照不删除，
版本号在迁移前后连续递增。
回滚迁移删除规范化数据并清除标记，旧版 JSON 内容保持不变；
已提交项目的元数据行和所有版本快照保留。
"""
from typing import Dict
import structlog

from researchflow.core.exceptions import NotFoundError
from researchflow.db.unit_of_work import UnitOfWork
from researchflow.models.constants import Phase, ProjectStatus
from researchflow.models.domain import MigrationResult, MigrationStatus, ProjectDocument
from researchflow.services.legacy_parser import parse_legacy_document
from researchflow.services.storage_strategy import NormalizedProjectStorage

logger = structlog.get_logger(__name__)


class MigrationService:
    """旧版数据迁移服务"""

    def __init__(self, uow: UnitOfWork):
        self.uow = uow

    async def migrate(self, project_id: int, user_id: int) -> MigrationResult:
        """
        迁移单个作用域

        Returns:
            MigrationResult（各类记录的迁移数量）

        Raises:
            NotFoundError: 作用域没有旧版记录
            InvalidLegacyDataError: 旧版 JSON 无法解析
        """
        async with self.uow.nested() as nested_uow:
            record = await nested_uow.legacy.get_for_scope(project_id, user_id)
            if record is None:
                raise NotFoundError(
                    "No legacy data found",
                    details={"project_id": project_id, "user_id": user_id},
                )

            document = parse_legacy_document(record.content)

            await self._clear_for_replay(nested_uow, project_id, user_id, document)
            await NormalizedProjectStorage(nested_uow).save(
                project_id, user_id, document, skip_empty_phases=True
            )
            await nested_uow.legacy.set_migrated(project_id, user_id, True)

        result = MigrationResult(
            ok=True,
            ideas_migrated=len(document.plan.ideas),
            chat_messages_migrated=len(document.chat_history),
            content_records_migrated=sum(1 for phase in (document.write, document.edit) if phase.content),
            metadata_records_migrated=1,
        )

        logger.info(
            "legacy_project_migrated",
            project_id=project_id,
            user_id=user_id,
            ideas=result.ideas_migrated,
            chat_messages=result.chat_messages_migrated,
            content_records=result.content_records_migrated,
        )
        return result

    async def rollback(self, project_id: int, user_id: int) -> Dict[str, bool]:
        """
        回滚单个作用域的迁移

        删除规范化数据并清除迁移标记，此后该作用域重新使用旧版存储。
        已提交项目保留元数据行（状态仍以它为准）；版本快照全部保留。
        """
        async with self.uow.nested() as nested_uow:
            await nested_uow.chat_messages.delete_for_scope(project_id, user_id)
            await nested_uow.chat_sessions.delete_for_scope(project_id, user_id)
            await nested_uow.contents.delete_for_scope(project_id, user_id)
            await nested_uow.ideas.delete_for_scope(project_id, user_id)
            await nested_uow.metadata.delete_for_scope(
                project_id, user_id, status=ProjectStatus.DRAFT.value
            )
            await nested_uow.legacy.set_migrated(project_id, user_id, False)

        logger.info(
            "legacy_migration_rolled_back",
            project_id=project_id,
            user_id=user_id,
        )
        return {"ok": True}

    async def _clear_for_replay(
        self,
        uow: UnitOfWork,
        project_id: int,
        user_id: int,
        document: ProjectDocument,
    ) -> None:
        # 元数据和版本不在此处删除；非空阶段的正文由回放原地覆盖
        await uow.chat_messages.delete_for_scope(project_id, user_id)
        await uow.chat_sessions.delete_for_scope(project_id, user_id)
        await uow.ideas.delete_for_scope(project_id, user_id)
        for phase in Phase:
            if not document.phase(phase).content:
                await uow.contents.delete_for_scope(project_id, user_id, phase=phase.value)

    async def get_migration_status(self) -> MigrationStatus:
        """
        全局迁移状态报告

        迁移完成的判定：没有缺少元数据的旧版记录，且没有孤儿想法、正文或聊天记录。
        """
        old_records = await self.uow.legacy.count()
        new_metadata = await self.uow.metadata.count()
        orphaned_ideas = await self.uow.ideas.count_orphaned()
        orphaned_content = await self.uow.contents.count_orphaned()
        orphaned_chat = await self.uow.chat_messages.count_orphaned()
        missing_metadata = await self.uow.legacy.count_missing_metadata()

        percentage = round(new_metadata / old_records * 100, 2) if old_records > 0 else 0.0

        status = MigrationStatus(
            old_records=old_records,
            new_metadata=new_metadata,
            new_ideas=await self.uow.ideas.count(),
            new_content=await self.uow.contents.count(),
            new_chat=await self.uow.chat_messages.count(),
            orphaned_ideas=orphaned_ideas,
            orphaned_content=orphaned_content,
            orphaned_chat=orphaned_chat,
            missing_metadata=missing_metadata,
            migration_percentage=percentage,
            is_complete=(
                missing_metadata == 0
                and orphaned_ideas == 0
                and orphaned_content == 0
                and orphaned_chat == 0
            ),
        )

        logger.info("migration_status_checked", **status.model_dump())
        return status
