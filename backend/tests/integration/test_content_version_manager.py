"""
阶段内容与版本管理集成测试

测试覆盖:
1. 首次保存总是创建版本 1
2. 手动保存总是创建版本
3. 自动保存按字数阈值创建版本
4. 版本号严格递增、从不复用
5. 保留上限裁剪
6. 版本恢复
"""
import pytest

from researchflow.core.exceptions import ValidationError
from researchflow.services.content_version_manager import ContentVersionManager, validate_phase

PROJECT_ID = 1
USER_ID = 2


class TestValidatePhase:
    """测试阶段校验"""

    def test_known_phases(self):
        assert validate_phase("write") == "write"
        assert validate_phase("edit") == "edit"

    def test_unknown_phase(self):
        with pytest.raises(ValidationError) as exc_info:
            validate_phase("plan")
        assert exc_info.value.details["allowed"] == ["write", "edit"]


class TestSaveContent:
    """测试内容保存与快照规则"""

    @pytest.mark.asyncio
    async def test_first_save_creates_version_one(self, uow):
        manager = ContentVersionManager(uow)
        version = await manager.save_content(PROJECT_ID, USER_ID, "write", "<p>Hello</p>", 1)

        assert version == 1
        content = await manager.get_content(PROJECT_ID, USER_ID, "write")
        assert content.content == "<p>Hello</p>"
        assert content.word_count == 1

        history = await manager.get_version_history(PROJECT_ID, USER_ID, "write")
        assert len(history) == 1
        assert history[0].change_summary == "Auto-saved"
        assert history[0].modified_by == USER_ID

    @pytest.mark.asyncio
    async def test_small_autosave_skips_snapshot(self, uow):
        """测试字数变化小于阈值时只更新内容，不创建版本"""
        manager = ContentVersionManager(uow, word_threshold=50)
        await manager.save_content(PROJECT_ID, USER_ID, "write", "one", 1)

        version = await manager.save_content(PROJECT_ID, USER_ID, "write", "one two", 2)

        assert version is None
        assert (await manager.get_content(PROJECT_ID, USER_ID, "write")).content == "one two"
        assert len(await manager.get_version_history(PROJECT_ID, USER_ID, "write")) == 1

    @pytest.mark.asyncio
    async def test_large_autosave_creates_snapshot(self, uow):
        manager = ContentVersionManager(uow, word_threshold=50)
        await manager.save_content(PROJECT_ID, USER_ID, "write", "short", 1)

        version = await manager.save_content(PROJECT_ID, USER_ID, "write", "long " * 60, 60)

        assert version == 2

    @pytest.mark.asyncio
    async def test_unchanged_content_skips_snapshot(self, uow):
        """测试内容未变化时即使字数不同也不创建版本"""
        manager = ContentVersionManager(uow, word_threshold=1)
        await manager.save_content(PROJECT_ID, USER_ID, "write", "same", 1)

        assert await manager.save_content(PROJECT_ID, USER_ID, "write", "same", 100) is None

    @pytest.mark.asyncio
    async def test_manual_save_always_snapshots(self, uow):
        manager = ContentVersionManager(uow)
        await manager.save_content(PROJECT_ID, USER_ID, "write", "text", 1)

        version = await manager.save_content(PROJECT_ID, USER_ID, "write", "text", 1, "Manual save")

        assert version == 2
        latest = await manager.get_version(PROJECT_ID, USER_ID, "write", 2)
        assert latest.change_summary == "Manual save"

    @pytest.mark.asyncio
    async def test_phases_are_independent(self, uow):
        """测试 write 与 edit 的版本号各自独立"""
        manager = ContentVersionManager(uow)
        await manager.save_content(PROJECT_ID, USER_ID, "write", "w", 1)
        await manager.save_content(PROJECT_ID, USER_ID, "write", "w", 1, "Manual save")

        assert await manager.save_content(PROJECT_ID, USER_ID, "edit", "e", 1) == 1

    @pytest.mark.asyncio
    async def test_created_at_is_preserved(self, uow):
        manager = ContentVersionManager(uow)
        await manager.save_content(PROJECT_ID, USER_ID, "write", "a", 1)
        row = await uow.contents.get_by_phase(PROJECT_ID, USER_ID, "write")
        await uow.contents.update_by_id(row.id, created_at=100)

        await manager.save_content(PROJECT_ID, USER_ID, "write", "b", 1)

        assert (await uow.contents.get_by_phase(PROJECT_ID, USER_ID, "write")).created_at == 100

    @pytest.mark.asyncio
    async def test_invalid_phase(self, uow):
        with pytest.raises(ValidationError):
            await ContentVersionManager(uow).save_content(PROJECT_ID, USER_ID, "outline", "x", 1)


class TestVersionRetention:
    """测试版本号与保留上限"""

    @pytest.mark.asyncio
    async def test_version_numbers_strictly_increase(self, uow):
        manager = ContentVersionManager(uow)
        numbers = [
            await manager.save_content(PROJECT_ID, USER_ID, "write", f"draft {i}", i, "Manual save")
            for i in range(1, 6)
        ]

        assert numbers == [1, 2, 3, 4, 5]

    @pytest.mark.asyncio
    async def test_retention_limit_prunes_oldest(self, uow):
        """测试超过上限时删除最旧的版本，版本号不复用"""
        manager = ContentVersionManager(uow, retention_limit=3)
        for i in range(1, 6):
            await manager.save_content(PROJECT_ID, USER_ID, "write", f"draft {i}", i, "Manual save")

        history = await manager.get_version_history(PROJECT_ID, USER_ID, "write")
        assert [v.version_number for v in history] == [5, 4, 3]

        next_version = await manager.save_content(PROJECT_ID, USER_ID, "write", "draft 6", 6, "Manual save")
        assert next_version == 6
        assert await uow.versions.count_for_phase(PROJECT_ID, USER_ID, "write") == 3

    @pytest.mark.asyncio
    async def test_history_limit(self, uow):
        manager = ContentVersionManager(uow)
        for i in range(1, 4):
            await manager.save_content(PROJECT_ID, USER_ID, "edit", f"e{i}", i, "Manual save")

        history = await manager.get_version_history(PROJECT_ID, USER_ID, "edit", limit=2)
        assert [v.version_number for v in history] == [3, 2]


class TestRestoreVersion:
    """测试版本恢复"""

    @pytest.mark.asyncio
    async def test_restore_overwrites_content_and_tags_version(self, uow):
        manager = ContentVersionManager(uow)
        await manager.save_content(PROJECT_ID, USER_ID, "write", "original", 1)
        await manager.save_content(PROJECT_ID, USER_ID, "write", "rewritten text", 2, "Manual save")

        assert await manager.restore_version(PROJECT_ID, USER_ID, "write", 1) is True

        content = await manager.get_content(PROJECT_ID, USER_ID, "write")
        assert content.content == "original"
        assert content.word_count == 1

        history = await manager.get_version_history(PROJECT_ID, USER_ID, "write")
        assert history[0].version_number == 3
        assert history[0].change_summary == "Restored from version 1"
        assert history[0].content == "original"

    @pytest.mark.asyncio
    async def test_restore_missing_version(self, uow):
        manager = ContentVersionManager(uow)
        await manager.save_content(PROJECT_ID, USER_ID, "write", "only", 1)

        assert await manager.restore_version(PROJECT_ID, USER_ID, "write", 99) is False
        assert len(await manager.get_version_history(PROJECT_ID, USER_ID, "write")) == 1
