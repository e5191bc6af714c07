"""
旧版数据迁移服务集成测试

测试覆盖:
1. 单个作用域迁移与计数
2. 重复迁移等价于覆盖
3. 回滚后重新使用旧版存储
4. 迁移失败整体回滚
5. 已提交状态与版本号在迁移和回滚前后保持
6. 全局迁移状态报告
"""
import json

import pytest

from researchflow.core.exceptions import ImmutableStateError, InvalidLegacyDataError, NotFoundError
from researchflow.models.database import Idea, LegacyProjectRecord
from researchflow.models.domain import ProjectDocument
from researchflow.services.migration_service import MigrationService
from researchflow.services.project_service import ProjectService

PROJECT_ID = 1
USER_ID = 2
OTHER_USER_ID = 3

LEGACY_DOCUMENT = {
    "metadata": {"title": "Legacy essay", "currentTab": "write", "goal": "Argue"},
    "plan": {
        "ideas": [
            {"id": "idea-1", "content": "Coastal flooding", "location": "brainstorm"},
            {"id": "idea-2", "content": "Heat waves", "location": "outline", "sectionId": "body"},
        ],
        "outline": [{"id": "body", "title": "Body"}],
        "sectionOrder": ["body"],
    },
    "write": {"content": "<p>Legacy draft</p>", "wordCount": 2},
    "edit": {"content": "", "wordCount": 0},
    "chatHistory": [
        {"role": "user", "content": "Where do I start?", "timestamp": 1700000000000},
        {"role": "assistant", "content": "With your thesis.", "timestamp": 1700000001000},
    ],
}


async def _add_legacy(uow, user_id: int = USER_ID, content: str | None = None, migrated: bool = False):
    return await uow.legacy.create(
        LegacyProjectRecord(
            project_id=PROJECT_ID,
            user_id=user_id,
            content=content if content is not None else json.dumps(LEGACY_DOCUMENT),
            is_migrated=migrated,
        )
    )


class TestMigrate:
    """测试单个作用域迁移"""

    @pytest.mark.asyncio
    async def test_migrate_counts_and_data(self, uow):
        await _add_legacy(uow)

        result = await MigrationService(uow).migrate(PROJECT_ID, USER_ID)

        assert result.ok is True
        assert result.ideas_migrated == 2
        assert result.chat_messages_migrated == 2
        assert result.content_records_migrated == 1
        assert result.metadata_records_migrated == 1

        assert (await uow.legacy.get_for_scope(PROJECT_ID, USER_ID)).is_migrated is True
        assert await uow.contents.get_by_phase(PROJECT_ID, USER_ID, "edit") is None

        document = await ProjectService(uow).load_project(PROJECT_ID, USER_ID)
        assert document.metadata.title == "Legacy essay"
        assert document.metadata.current_tab == "write"
        assert [i.content for i in document.plan.ideas] == ["Coastal flooding", "Heat waves"]
        assert document.plan.ideas[1].section_id == "body"
        assert document.plan.section_order == ["body"]
        assert document.write.content == "<p>Legacy draft</p>"
        assert [m.timestamp for m in document.chat_history] == [1700000000, 1700000001]

    @pytest.mark.asyncio
    async def test_migrate_twice_is_idempotent(self, uow):
        """测试重复迁移不产生重复数据"""
        await _add_legacy(uow)
        service = MigrationService(uow)

        await service.migrate(PROJECT_ID, USER_ID)
        await service.migrate(PROJECT_ID, USER_ID)

        assert await uow.metadata.count_for_scope(PROJECT_ID, USER_ID) == 1
        assert await uow.ideas.count_for_scope(PROJECT_ID, USER_ID) == 2
        assert await uow.chat_messages.count_for_scope(PROJECT_ID, USER_ID) == 2
        assert await uow.contents.count_for_scope(PROJECT_ID, USER_ID) == 1
        assert await uow.versions.count_for_scope(PROJECT_ID, USER_ID) == 1

    @pytest.mark.asyncio
    async def test_migrate_without_legacy_record(self, uow):
        with pytest.raises(NotFoundError) as exc_info:
            await MigrationService(uow).migrate(PROJECT_ID, USER_ID)
        assert exc_info.value.message == "No legacy data found"

    @pytest.mark.asyncio
    async def test_invalid_json_rolls_back(self, uow):
        """测试旧版 JSON 损坏时迁移失败且不留下任何数据"""
        await _add_legacy(uow, content="{broken")

        with pytest.raises(InvalidLegacyDataError):
            await MigrationService(uow).migrate(PROJECT_ID, USER_ID)

        assert await uow.metadata.count() == 0
        assert (await uow.legacy.get_for_scope(PROJECT_ID, USER_ID)).is_migrated is False

    @pytest.mark.asyncio
    async def test_failure_keeps_previous_normalized_data(self, uow):
        """测试迁移失败时之前的规范化数据保持不变"""
        await uow.ideas.create(Idea(project_id=PROJECT_ID, user_id=USER_ID, content="existing"))
        await _add_legacy(uow, content="[]")

        with pytest.raises(InvalidLegacyDataError):
            await MigrationService(uow).migrate(PROJECT_ID, USER_ID)

        assert await uow.ideas.count_for_scope(PROJECT_ID, USER_ID) == 1


class TestRollback:
    """测试迁移回滚"""

    @pytest.mark.asyncio
    async def test_rollback_restores_legacy_tier(self, uow):
        await _add_legacy(uow)
        service = MigrationService(uow)
        await service.migrate(PROJECT_ID, USER_ID)

        assert await service.rollback(PROJECT_ID, USER_ID) == {"ok": True}

        assert await uow.metadata.count_for_scope(PROJECT_ID, USER_ID) == 0
        assert await uow.ideas.count_for_scope(PROJECT_ID, USER_ID) == 0
        assert await uow.chat_messages.count_for_scope(PROJECT_ID, USER_ID) == 0

        record = await uow.legacy.get_for_scope(PROJECT_ID, USER_ID)
        assert record.is_migrated is False
        assert json.loads(record.content) == LEGACY_DOCUMENT

        document = await ProjectService(uow).load_project(PROJECT_ID, USER_ID)
        assert document.metadata.title == "Legacy essay"

    @pytest.mark.asyncio
    async def test_migrate_after_rollback(self, uow):
        await _add_legacy(uow)
        service = MigrationService(uow)
        await service.migrate(PROJECT_ID, USER_ID)
        await service.rollback(PROJECT_ID, USER_ID)

        result = await service.migrate(PROJECT_ID, USER_ID)

        assert result.ideas_migrated == 2
        assert await uow.ideas.count_for_scope(PROJECT_ID, USER_ID) == 2


class TestMigrationPreservesHistory:
    """测试迁移与回滚不丢失提交状态和版本号"""

    @pytest.mark.asyncio
    async def test_submitted_project_stays_immutable_after_migrate(self, uow):
        await _add_legacy(uow)
        project_service = ProjectService(uow)
        await project_service.submit_project(PROJECT_ID, USER_ID)
        created_at = (await uow.metadata.get_for_scope(PROJECT_ID, USER_ID)).created_at

        await MigrationService(uow).migrate(PROJECT_ID, USER_ID)

        metadata = await uow.metadata.get_for_scope(PROJECT_ID, USER_ID)
        assert metadata.status == "submitted"
        assert metadata.created_at == created_at
        assert metadata.title == "Legacy essay"

        edited = ProjectDocument.model_validate({"metadata": {"title": "edited after submit"}})
        with pytest.raises(ImmutableStateError):
            await project_service.save_project(PROJECT_ID, USER_ID, edited)

        assert (await uow.metadata.get_for_scope(PROJECT_ID, USER_ID)).title == "Legacy essay"

    @pytest.mark.asyncio
    async def test_submitted_project_stays_immutable_after_rollback(self, uow):
        await _add_legacy(uow)
        project_service = ProjectService(uow)
        service = MigrationService(uow)
        await service.migrate(PROJECT_ID, USER_ID)
        await project_service.submit_project(PROJECT_ID, USER_ID)

        await service.rollback(PROJECT_ID, USER_ID)

        assert (await uow.metadata.get_for_scope(PROJECT_ID, USER_ID)).status == "submitted"
        assert await uow.ideas.count_for_scope(PROJECT_ID, USER_ID) == 0

        edited = ProjectDocument.model_validate({"metadata": {"title": "edited after submit"}})
        with pytest.raises(ImmutableStateError):
            await project_service.save_project(PROJECT_ID, USER_ID, edited)

        record = await uow.legacy.get_for_scope(PROJECT_ID, USER_ID)
        assert json.loads(record.content) == LEGACY_DOCUMENT

    @pytest.mark.asyncio
    async def test_version_numbers_continue_across_rollback(self, uow):
        """测试回滚后重新迁移，版本号继续递增而不是从 1 重新开始"""
        await _add_legacy(uow)
        service = MigrationService(uow)

        await service.migrate(PROJECT_ID, USER_ID)
        await service.rollback(PROJECT_ID, USER_ID)
        await service.migrate(PROJECT_ID, USER_ID)

        history = await uow.versions.list_history(PROJECT_ID, USER_ID, "write")
        assert [v.version_number for v in history] == [2, 1]

    @pytest.mark.asyncio
    async def test_migrate_keeps_existing_versions(self, uow):
        await _add_legacy(uow, migrated=True)
        await ProjectService(uow).save_project(
            PROJECT_ID,
            USER_ID,
            ProjectDocument.model_validate({"write": {"content": "<p>Earlier draft</p>", "wordCount": 2}}),
        )

        await MigrationService(uow).migrate(PROJECT_ID, USER_ID)

        history = await uow.versions.list_history(PROJECT_ID, USER_ID, "write")
        assert [v.version_number for v in history] == [1]
        assert (await uow.contents.get_by_phase(PROJECT_ID, USER_ID, "write")).content == "<p>Legacy draft</p>"


class TestMigrationStatus:
    """测试迁移状态报告"""

    @pytest.mark.asyncio
    async def test_empty_database(self, uow):
        status = await MigrationService(uow).get_migration_status()

        assert status.old_records == 0
        assert status.migration_percentage == 0.0
        assert status.is_complete is True

    @pytest.mark.asyncio
    async def test_partial_migration(self, uow):
        await _add_legacy(uow, user_id=USER_ID)
        await _add_legacy(uow, user_id=OTHER_USER_ID)
        service = MigrationService(uow)
        await service.migrate(PROJECT_ID, USER_ID)

        status = await service.get_migration_status()

        assert status.old_records == 2
        assert status.new_metadata == 1
        assert status.new_ideas == 2
        assert status.new_content == 1
        assert status.new_chat == 2
        assert status.missing_metadata == 1
        assert status.migration_percentage == 50.0
        assert status.is_complete is False

    @pytest.mark.asyncio
    async def test_complete_migration(self, uow):
        await _add_legacy(uow, user_id=USER_ID)
        await _add_legacy(uow, user_id=OTHER_USER_ID)
        service = MigrationService(uow)
        await service.migrate(PROJECT_ID, USER_ID)
        await service.migrate(PROJECT_ID, OTHER_USER_ID)

        status = await service.get_migration_status()

        assert status.migration_percentage == 100.0
        assert status.is_complete is True

    @pytest.mark.asyncio
    async def test_orphans_block_completion(self, uow):
        """测试存在孤儿记录时迁移不算完成"""
        await uow.ideas.create(Idea(project_id=999, user_id=USER_ID, content="orphan"))

        status = await MigrationService(uow).get_migration_status()

        assert status.orphaned_ideas == 1
        assert status.is_complete is False
