"""
旧版 JSON 记录解析

旧版存储把整个项目文档序列化成一个 JSON 字符串。这里把它解析成
ProjectDocument，供迁移和旧版存储层读取使用：

- 纯文本元数据字段（标题、描述、教师说明、目标）去标签并截断
- 枚举字段非法时回退到默认值（plan / brainstorm / user）
- 缺少 id 或 content 的想法、缺少 role 或 content 的消息被跳过
- 想法、消息和正文保留原始 HTML
- 聊天时间戳统一为 Unix 秒；缺失或无法解析时使用当前时间
"""
import json
from typing import Any, Dict, List, Optional
import structlog

from researchflow.core.exceptions import InvalidLegacyDataError
from researchflow.models.constants import ChatRole, CurrentTab, IdeaLocation
from researchflow.models.database import epoch_now
from researchflow.models.domain import (
    ChatMessageDocument,
    IdeaDocument,
    PhaseContentDocument,
    PlanDocument,
    ProjectDocument,
    ProjectMetadataDocument,
)
from researchflow.utils.text import sanitize_plain_text
from researchflow.utils.timestamps import normalize_timestamp

logger = structlog.get_logger(__name__)


def _enum_or_default(enum_cls, value: Any, default):
    try:
        return enum_cls(value).value
    except ValueError:
        return default.value


def _as_dict(value: Any) -> Dict[str, Any]:
    return value if isinstance(value, dict) else {}


def _as_list(value: Any) -> List[Any]:
    return value if isinstance(value, list) else []


def _parse_metadata(raw: Dict[str, Any]) -> ProjectMetadataDocument:
    return ProjectMetadataDocument(
        title=sanitize_plain_text(raw.get("title")),
        description=sanitize_plain_text(raw.get("description")),
        current_tab=_enum_or_default(CurrentTab, raw.get("currentTab"), CurrentTab.PLAN),
        instructor_instructions=sanitize_plain_text(raw.get("instructorInstructions")),
        goal=sanitize_plain_text(raw.get("goal")),
        created=raw.get("created") if isinstance(raw.get("created"), str) else None,
        modified=raw.get("modified") if isinstance(raw.get("modified"), str) else None,
    )


def _parse_ideas(raw: List[Any]) -> List[IdeaDocument]:
    ideas = []
    for item in raw:
        if not isinstance(item, dict) or not item.get("id") or not item.get("content"):
            continue
        ideas.append(
            IdeaDocument(
                id=item["id"] if isinstance(item["id"], (int, str)) else str(item["id"]),
                content=str(item["content"]),
                location=_enum_or_default(IdeaLocation, item.get("location"), IdeaLocation.BRAINSTORM),
                section_id=item.get("sectionId"),
                ai_generated=bool(item.get("aiGenerated", False)),
            )
        )
    return ideas


def _parse_phase(raw: Dict[str, Any]) -> PhaseContentDocument:
    content = raw.get("content")
    try:
        word_count = int(raw.get("wordCount") or 0)
    except (TypeError, ValueError):
        word_count = 0
    return PhaseContentDocument(
        content=content if isinstance(content, str) else "",
        word_count=word_count,
    )


def normalize_chat_timestamp(value: Any) -> int:
    """旧版聊天时间戳转换为 Unix 秒；缺失或无法解析时使用当前时间"""
    if isinstance(value, bool) or not isinstance(value, (int, float, str)):
        value = None
    try:
        return normalize_timestamp(value)
    except ValueError:
        logger.warning("legacy_chat_timestamp_unparseable", timestamp=value)
        return epoch_now()


def _parse_chat(raw: List[Any]) -> List[ChatMessageDocument]:
    messages = []
    for item in raw:
        if not isinstance(item, dict) or not item.get("role") or not item.get("content"):
            continue
        messages.append(
            ChatMessageDocument(
                role=_enum_or_default(ChatRole, item["role"], ChatRole.USER),
                content=str(item["content"]),
                timestamp=normalize_chat_timestamp(item.get("timestamp")),
            )
        )
    return messages


def parse_legacy_document(raw: Optional[str]) -> ProjectDocument:
    """
    解析旧版 JSON 文档

    Args:
        raw: 旧版记录中的 JSON 字符串（空值视为空项目）

    Returns:
        ProjectDocument

    Raises:
        InvalidLegacyDataError: JSON 格式错误或顶层不是对象
    """
    if raw is None or not raw.strip():
        return ProjectDocument()

    try:
        data = json.loads(raw)
    except json.JSONDecodeError as e:
        raise InvalidLegacyDataError(
            "Invalid JSON data",
            details={"position": e.pos, "error": e.msg},
        )

    if not isinstance(data, dict):
        raise InvalidLegacyDataError(
            "Invalid JSON data structure",
            details={"type": type(data).__name__},
        )

    plan_raw = _as_dict(data.get("plan"))
    custom_titles = plan_raw.get("customSectionTitles")

    document = ProjectDocument(
        metadata=_parse_metadata(_as_dict(data.get("metadata"))),
        plan=PlanDocument(
            ideas=_parse_ideas(_as_list(plan_raw.get("ideas"))),
            outline=_as_list(plan_raw.get("outline")),
            custom_sections=_as_list(plan_raw.get("customSections")),
            custom_section_titles=custom_titles if isinstance(custom_titles, dict) else {},
            removed_sections=_as_list(plan_raw.get("removedSections")),
            section_order=_as_list(plan_raw.get("sectionOrder")),
        ),
        write=_parse_phase(_as_dict(data.get("write"))),
        edit=_parse_phase(_as_dict(data.get("edit"))),
        chat_history=_parse_chat(_as_list(data.get("chatHistory"))),
    )

    logger.debug(
        "legacy_document_parsed",
        ideas=len(document.plan.ideas),
        chat_messages=len(document.chat_history),
    )
    return document
