"""
项目存储策略集成测试

测试大纲序列化、存储层选择以及两种存储层的读写。
"""
import json

import pytest

from researchflow.models.database import LegacyProjectRecord, ProjectMetadata
from researchflow.models.domain import PlanDocument, ProjectDocument
from researchflow.services.storage_strategy import (
    LegacyBlobProjectStorage,
    NormalizedProjectStorage,
    StorageResolver,
    deserialize_plan_outline,
    serialize_plan_outline,
)

PROJECT_ID = 1
USER_ID = 2


class TestPlanOutlineSerialization:
    """测试大纲结构序列化"""

    def test_serialize_uses_client_keys(self):
        plan = PlanDocument(
            outline=[{"id": "intro"}],
            custom_section_titles={"intro": "Anfang"},
            section_order=["intro"],
        )
        data = json.loads(serialize_plan_outline(plan))

        assert data == {
            "outline": [{"id": "intro"}],
            "customSectionTitles": {"intro": "Anfang"},
            "customSections": [],
            "removedSections": [],
            "sectionOrder": ["intro"],
        }

    def test_non_ascii_is_kept(self):
        plan = PlanDocument(custom_section_titles={"intro": "引言"})
        assert "引言" in serialize_plan_outline(plan)

    def test_deserialize_invalid(self):
        """测试损坏或结构错误的文本返回空字典"""
        assert deserialize_plan_outline(None) == {}
        assert deserialize_plan_outline("") == {}
        assert deserialize_plan_outline("{broken") == {}
        assert deserialize_plan_outline("[1, 2]") == {}

    def test_deserialize_round_trip(self):
        plan = PlanDocument(removed_sections=["conclusion"])
        assert deserialize_plan_outline(serialize_plan_outline(plan))["removedSections"] == ["conclusion"]


class TestStorageResolver:
    """测试存储层选择"""

    @pytest.mark.asyncio
    async def test_no_legacy_record_uses_normalized(self, uow):
        storage = await StorageResolver(uow).resolve(PROJECT_ID, USER_ID)
        assert isinstance(storage, NormalizedProjectStorage)

    @pytest.mark.asyncio
    async def test_unmigrated_record_uses_legacy(self, uow):
        await uow.legacy.create(LegacyProjectRecord(project_id=PROJECT_ID, user_id=USER_ID, content="{}"))

        storage = await StorageResolver(uow).resolve(PROJECT_ID, USER_ID)
        assert isinstance(storage, LegacyBlobProjectStorage)

    @pytest.mark.asyncio
    async def test_migrated_record_uses_normalized(self, uow):
        await uow.legacy.create(
            LegacyProjectRecord(project_id=PROJECT_ID, user_id=USER_ID, content="{}", is_migrated=True)
        )

        storage = await StorageResolver(uow).resolve(PROJECT_ID, USER_ID)
        assert isinstance(storage, NormalizedProjectStorage)


class TestNormalizedProjectStorage:
    """测试规范化存储"""

    @pytest.mark.asyncio
    async def test_corrupt_outline_loads_defaults(self, uow):
        """测试 plan_outline 损坏时大纲字段回退为空结构"""
        await uow.metadata.create(
            ProjectMetadata(project_id=PROJECT_ID, user_id=USER_ID, title="Kept", plan_outline="{oops")
        )

        document = await NormalizedProjectStorage(uow).load(PROJECT_ID, USER_ID)

        assert document.metadata.title == "Kept"
        assert document.plan.outline == []
        assert document.plan.custom_section_titles == {}
        assert document.plan.section_order == []

    @pytest.mark.asyncio
    async def test_metadata_timestamps_are_iso(self, uow):
        await uow.metadata.create(
            ProjectMetadata(project_id=PROJECT_ID, user_id=USER_ID, created_at=0, modified_at=1700000000)
        )

        document = await NormalizedProjectStorage(uow).load(PROJECT_ID, USER_ID)

        assert document.metadata.created == "1970-01-01T00:00:00+00:00"
        assert document.metadata.modified == "2023-11-14T22:13:20+00:00"

    @pytest.mark.asyncio
    async def test_skip_empty_phases(self, uow):
        document = ProjectDocument.model_validate({"write": {"content": "Only write", "wordCount": 2}})

        await NormalizedProjectStorage(uow).save(PROJECT_ID, USER_ID, document, skip_empty_phases=True)

        assert await uow.contents.get_by_phase(PROJECT_ID, USER_ID, "write") is not None
        assert await uow.contents.get_by_phase(PROJECT_ID, USER_ID, "edit") is None

    @pytest.mark.asyncio
    async def test_status_is_preserved_on_save(self, uow):
        await uow.metadata.create(ProjectMetadata(project_id=PROJECT_ID, user_id=USER_ID, status="submitted"))

        await NormalizedProjectStorage(uow).save(PROJECT_ID, USER_ID, ProjectDocument())

        assert (await uow.metadata.get_for_scope(PROJECT_ID, USER_ID)).status == "submitted"


class TestLegacyBlobProjectStorage:
    """测试旧版存储"""

    @pytest.mark.asyncio
    async def test_unreadable_blob_loads_defaults(self, uow):
        """测试损坏的旧版 JSON 读取时返回默认文档"""
        record = await uow.legacy.create(
            LegacyProjectRecord(project_id=PROJECT_ID, user_id=USER_ID, content="{not json")
        )

        document = await LegacyBlobProjectStorage(uow, record).load(PROJECT_ID, USER_ID)

        assert document.metadata.title == ""
        assert document.plan.ideas == []

    @pytest.mark.asyncio
    async def test_save_rewrites_blob(self, uow, sample_document_payload):
        record = await uow.legacy.create(LegacyProjectRecord(project_id=PROJECT_ID, user_id=USER_ID, content="{}"))
        storage = LegacyBlobProjectStorage(uow, record)

        id_map = await storage.save(PROJECT_ID, USER_ID, ProjectDocument.model_validate(sample_document_payload))

        assert id_map == {}
        stored = json.loads((await uow.legacy.get_for_scope(PROJECT_ID, USER_ID)).content)
        assert stored["metadata"]["title"] == "Climate Essay"
        assert stored["plan"]["customSectionTitles"] == {"intro": "Opening"}
        assert len(stored["chatHistory"]) == 2

        reloaded = await storage.load(PROJECT_ID, USER_ID)
        assert [i.content for i in reloaded.plan.ideas] == ["<b>Sea levels</b>", "Urban heat"]

    @pytest.mark.asyncio
    async def test_chat_timestamps_are_epoch_seconds_on_load(self, uow):
        """测试旧版存储读取时毫秒和 ISO 8601 时间戳转换为 Unix 秒"""
        record = await uow.legacy.create(
            LegacyProjectRecord(
                project_id=PROJECT_ID,
                user_id=USER_ID,
                content=json.dumps({
                    "chatHistory": [
                        {"role": "user", "content": "ms", "timestamp": 1700000000123},
                        {"role": "assistant", "content": "iso", "timestamp": "2023-11-14T22:13:20Z"},
                    ],
                }),
            )
        )

        document = await LegacyBlobProjectStorage(uow, record).load(PROJECT_ID, USER_ID)

        assert [m.timestamp for m in document.chat_history] == [1700000000, 1700000000]

    @pytest.mark.asyncio
    async def test_save_writes_epoch_seconds(self, uow, sample_document_payload):
        record = await uow.legacy.create(LegacyProjectRecord(project_id=PROJECT_ID, user_id=USER_ID, content="{}"))

        await LegacyBlobProjectStorage(uow, record).save(
            PROJECT_ID, USER_ID, ProjectDocument.model_validate(sample_document_payload)
        )

        stored = json.loads((await uow.legacy.get_for_scope(PROJECT_ID, USER_ID)).content)
        assert [m["timestamp"] for m in stored["chatHistory"]] == [1700000000, 1700000005]
