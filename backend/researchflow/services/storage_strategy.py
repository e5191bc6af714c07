"""
项目存储策略

每个作用域的数据位于两层存储之一：
- 规范化存储：元数据 / 想法 / 正文 / 版本 / 聊天分表存储（默认）
- 旧版存储：整个项目文档序列化为一个 JSON 字符串

选择依据只有旧版记录上持久化的 is_migrated 标记：
存在旧版记录且尚未迁移时使用旧版存储，其他情况一律使用规范化存储。
"""
import json
from abc import ABC, abstractmethod
from typing import Any, Dict, Optional
import structlog

from researchflow.core.exceptions import InvalidLegacyDataError
from researchflow.db.unit_of_work import UnitOfWork
from researchflow.models.constants import Phase
from researchflow.models.database import LegacyProjectRecord, ProjectMetadata, epoch_now
from researchflow.models.domain import (
    ChatMessageDocument,
    IdeaDocument,
    PhaseContentDocument,
    PlanDocument,
    ProjectDocument,
    ProjectMetadataDocument,
)
from researchflow.services.chat_session_manager import ChatSessionManager
from researchflow.services.content_version_manager import ContentVersionManager
from researchflow.services.idea_reconciler import IdeaReconciler
from researchflow.services.legacy_parser import normalize_chat_timestamp, parse_legacy_document
from researchflow.utils.timestamps import epoch_to_iso

logger = structlog.get_logger(__name__)


def serialize_plan_outline(plan: PlanDocument) -> str:
    """把大纲结构序列化为元数据中的 plan_outline 文本"""
    return json.dumps(
        {
            "outline": plan.outline if plan.outline is not None else [],
            "customSectionTitles": plan.custom_section_titles,
            "customSections": plan.custom_sections,
            "removedSections": plan.removed_sections,
            "sectionOrder": plan.section_order,
        },
        ensure_ascii=False,
    )


def deserialize_plan_outline(raw: Optional[str]) -> Dict[str, Any]:
    """
    解析 plan_outline 文本

    解析失败或结构不对时返回空字典（调用方使用默认的空结构）。
    """
    if not raw:
        return {}
    try:
        data = json.loads(raw)
    except json.JSONDecodeError as e:
        logger.warning("plan_outline_decode_failed", error=e.msg)
        return {}
    return data if isinstance(data, dict) else {}


class ProjectStorage(ABC):
    """项目存储抽象基类"""

    def __init__(self, uow: UnitOfWork):
        self.uow = uow

    @abstractmethod
    async def load(self, project_id: int, user_id: int) -> ProjectDocument:
        """
        读取项目文档

        没有数据时返回全默认值的文档，不抛出异常。
        """
        pass

    @abstractmethod
    async def save(self, project_id: int, user_id: int, document: ProjectDocument) -> Dict[str, int]:
        """
        保存项目文档

        Returns:
            想法 ID 映射（客户端 ID -> 持久化 ID）
        """
        pass


class NormalizedProjectStorage(ProjectStorage):
    """规范化存储"""

    async def load(self, project_id: int, user_id: int) -> ProjectDocument:
        metadata = await self.uow.metadata.get_for_scope(project_id, user_id)
        ideas = await self.uow.ideas.list_ideas(project_id, user_id)
        write = await self.uow.contents.get_by_phase(project_id, user_id, Phase.WRITE.value)
        edit = await self.uow.contents.get_by_phase(project_id, user_id, Phase.EDIT.value)
        messages = await self.uow.chat_messages.list_history(project_id, user_id)

        now_iso = epoch_to_iso(epoch_now())
        if metadata is not None:
            metadata_doc = ProjectMetadataDocument(
                title=metadata.title,
                description=metadata.description,
                current_tab=metadata.current_tab,
                instructor_instructions=metadata.instructor_instructions,
                goal=metadata.goal,
                created=epoch_to_iso(metadata.created_at),
                modified=epoch_to_iso(metadata.modified_at),
            )
            outline = deserialize_plan_outline(metadata.plan_outline)
        else:
            metadata_doc = ProjectMetadataDocument(created=now_iso, modified=now_iso)
            outline = {}

        plan = PlanDocument(
            ideas=[
                IdeaDocument(
                    id=idea.id,
                    content=idea.content,
                    location=idea.location,
                    section_id=idea.section_id,
                    ai_generated=idea.ai_generated,
                )
                for idea in ideas
            ],
            outline=outline.get("outline") or [],
            custom_section_titles=outline.get("customSectionTitles"),
            custom_sections=outline.get("customSections"),
            removed_sections=outline.get("removedSections"),
            section_order=outline.get("sectionOrder"),
        )

        return ProjectDocument(
            metadata=metadata_doc,
            plan=plan,
            write=PhaseContentDocument(content=write.content, word_count=write.word_count) if write else PhaseContentDocument(),
            edit=PhaseContentDocument(content=edit.content, word_count=edit.word_count) if edit else PhaseContentDocument(),
            chat_history=[
                ChatMessageDocument(role=m.role, content=m.content, timestamp=m.timestamp)
                for m in messages
            ],
        )

    async def save(
        self,
        project_id: int,
        user_id: int,
        document: ProjectDocument,
        skip_empty_phases: bool = False,
    ) -> Dict[str, int]:
        """
        按固定顺序写入：元数据 -> 想法 -> 正文（write、edit）-> 聊天

        聊天记录写入当前活跃会话（没有时自动创建）。
        skip_empty_phases 为 True 时不写入正文为空的阶段（迁移回放用）。
        """
        await self._save_metadata(project_id, user_id, document)

        id_map = await IdeaReconciler(self.uow).reconcile_ideas(project_id, user_id, document.plan.ideas)

        versions = ContentVersionManager(self.uow)
        for phase in Phase:
            phase_doc = document.phase(phase)
            if skip_empty_phases and not phase_doc.content:
                continue
            await versions.save_content(
                project_id,
                user_id,
                phase.value,
                phase_doc.content,
                phase_doc.word_count,
                phase_doc.change_summary,
            )

        await ChatSessionManager(self.uow).save_batch(project_id, user_id, None, document.chat_history)

        logger.info(
            "project_saved_normalized",
            project_id=project_id,
            user_id=user_id,
            ideas=len(document.plan.ideas),
            chat_messages=len(document.chat_history),
        )
        return id_map

    async def _save_metadata(self, project_id: int, user_id: int, document: ProjectDocument) -> None:
        meta = document.metadata
        now = epoch_now()
        fields = {
            "title": meta.title,
            "description": meta.description,
            "current_tab": meta.current_tab,
            "instructor_instructions": meta.instructor_instructions,
            "goal": meta.goal,
            "plan_outline": serialize_plan_outline(document.plan),
            "modified_at": now,
        }

        existing = await self.uow.metadata.get_for_scope(project_id, user_id)
        if existing is None:
            await self.uow.metadata.create(
                ProjectMetadata(project_id=project_id, user_id=user_id, created_at=now, **fields)
            )
        else:
            # status 和 created_at 保持不变
            await self.uow.metadata.update_by_id(existing.id, **fields)


class LegacyBlobProjectStorage(ProjectStorage):
    """旧版存储（单 JSON 字符串）"""

    def __init__(self, uow: UnitOfWork, record: LegacyProjectRecord):
        super().__init__(uow)
        self.record = record

    async def load(self, project_id: int, user_id: int) -> ProjectDocument:
        try:
            return parse_legacy_document(self.record.content)
        except InvalidLegacyDataError as e:
            logger.warning(
                "legacy_document_unreadable",
                project_id=project_id,
                user_id=user_id,
                error=e.message,
            )
            return ProjectDocument()

    async def save(self, project_id: int, user_id: int, document: ProjectDocument) -> Dict[str, int]:
        """
        整体重写 JSON 字符串

        聊天时间戳统一写成 Unix 秒。旧版存储没有持久化想法 ID，映射为空。
        """
        stored = document.model_copy(
            update={
                "chat_history": [
                    m.model_copy(update={"timestamp": normalize_chat_timestamp(m.timestamp)})
                    for m in document.chat_history
                ]
            }
        )
        await self.uow.legacy.update_by_id(
            self.record.id,
            content=stored.model_dump_json(by_alias=True),
            timemodified=epoch_now(),
        )
        logger.info(
            "project_saved_legacy",
            project_id=project_id,
            user_id=user_id,
        )
        return {}


class StorageResolver:
    """按持久化的迁移标记选择存储层"""

    def __init__(self, uow: UnitOfWork):
        self.uow = uow

    async def resolve(self, project_id: int, user_id: int) -> ProjectStorage:
        record = await self.uow.legacy.get_for_scope(project_id, user_id)
        if record is not None and not record.is_migrated:
            logger.debug(
                "storage_resolved",
                project_id=project_id,
                user_id=user_id,
                tier="legacy",
            )
            return LegacyBlobProjectStorage(self.uow, record)

        logger.debug(
            "storage_resolved",
            project_id=project_id,
            user_id=user_id,
            tier="normalized",
        )
        return NormalizedProjectStorage(self.uow)
