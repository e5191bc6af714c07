"""
业务领域模型（Pydantic）

- 项目文档：客户端持有的嵌套文档（metadata / plan / write / edit / chatHistory），
  JSON 字段使用 camelCase，Python 侧使用 snake_case
- 结果模型：保存、迁移、迁移状态的返回结构
- 视图模型：会话、消息、版本的只读表示
"""
from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel
from typing import List, Optional, Dict, Any, Union

from researchflow.models.constants import (
    Phase,
    IdeaLocation,
    CurrentTab,
    ChatRole,
)


class CamelModel(BaseModel):
    """camelCase 别名基类（同时接受 snake_case 字段名）"""
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        use_enum_values=True,
    )


# ============================================================
# 1. 项目文档模型
# ============================================================

class ProjectMetadataDocument(CamelModel):
    """项目元数据（缺失字段一律为空字符串，不输出 null）"""
    title: str = ""
    description: str = ""
    current_tab: CurrentTab = CurrentTab.PLAN
    instructor_instructions: str = ""
    goal: str = ""
    created: Optional[str] = Field(None, description="创建时间（ISO 8601）")
    modified: Optional[str] = Field(None, description="修改时间（ISO 8601）")

    @field_validator("title", "description", "instructor_instructions", "goal", mode="before")
    @classmethod
    def _none_to_empty(cls, value: Any) -> Any:
        return "" if value is None else value

    @field_validator("current_tab", mode="before")
    @classmethod
    def _default_tab(cls, value: Any) -> Any:
        return CurrentTab.PLAN if value in (None, "") else value


class IdeaDocument(CamelModel):
    """
    想法

    id 可以是已持久化的整数 ID，也可以是客户端临时 ID（如 "tmp1"）。
    """
    id: Optional[Union[int, str]] = None
    content: str = ""
    location: IdeaLocation = IdeaLocation.BRAINSTORM
    section_id: Optional[str] = None
    ai_generated: bool = False

    @field_validator("content", mode="before")
    @classmethod
    def _content_none_to_empty(cls, value: Any) -> Any:
        return "" if value is None else value

    @field_validator("location", mode="before")
    @classmethod
    def _default_location(cls, value: Any) -> Any:
        return IdeaLocation.BRAINSTORM if value in (None, "") else value

    @field_validator("section_id", mode="before")
    @classmethod
    def _normalize_section_id(cls, value: Any) -> Any:
        # 空字符串与 NULL 等价
        if value is None or value == "":
            return None
        return str(value)

    def persisted_id(self) -> int:
        """
        解析已持久化的整数 ID

        Returns:
            正整数 ID；临时 ID 返回 0
        """
        if isinstance(self.id, bool) or self.id is None:
            return 0
        if isinstance(self.id, int):
            return self.id if self.id > 0 else 0
        text = self.id.strip()
        return int(text) if text.isdigit() else 0


class PlanDocument(CamelModel):
    """规划阶段：想法列表 + 大纲结构"""
    ideas: List[IdeaDocument] = Field(default_factory=list)
    outline: Any = Field(default_factory=list, description="大纲段落（结构不透明）")
    custom_sections: List[Any] = Field(default_factory=list)
    custom_section_titles: Dict[str, Any] = Field(default_factory=dict)
    removed_sections: List[Any] = Field(default_factory=list)
    section_order: List[Any] = Field(default_factory=list)

    @field_validator("ideas", "custom_sections", "removed_sections", "section_order", mode="before")
    @classmethod
    def _none_to_list(cls, value: Any) -> Any:
        return [] if value is None else value

    @field_validator("custom_section_titles", mode="before")
    @classmethod
    def _none_to_dict(cls, value: Any) -> Any:
        # PHP 端空对象常被编码为 []
        return {} if value in (None, []) else value


class PhaseContentDocument(CamelModel):
    """写作 / 修订阶段的正文"""
    content: str = ""
    word_count: int = 0
    change_summary: Optional[str] = None

    @field_validator("content", mode="before")
    @classmethod
    def _content_none_to_empty(cls, value: Any) -> Any:
        return "" if value is None else value

    @field_validator("word_count", mode="before")
    @classmethod
    def _word_count_default(cls, value: Any) -> Any:
        return 0 if value in (None, "") else value


class ChatMessageDocument(CamelModel):
    """
    聊天记录条目

    批量保存时缺少 role 或 content 的条目会被跳过；
    timestamp 接受秒、毫秒或 ISO 8601 字符串。
    """
    role: Optional[ChatRole] = None
    content: Optional[str] = None
    timestamp: Optional[Union[int, float, str]] = None

    @field_validator("role", mode="before")
    @classmethod
    def _empty_role(cls, value: Any) -> Any:
        return None if value == "" else value


class ProjectDocument(CamelModel):
    """完整项目文档"""
    metadata: ProjectMetadataDocument = Field(default_factory=ProjectMetadataDocument)
    plan: PlanDocument = Field(default_factory=PlanDocument)
    write: PhaseContentDocument = Field(default_factory=PhaseContentDocument)
    edit: PhaseContentDocument = Field(default_factory=PhaseContentDocument)
    chat_history: List[ChatMessageDocument] = Field(default_factory=list)

    @field_validator("metadata", "plan", "write", "edit", mode="before")
    @classmethod
    def _none_to_default(cls, value: Any) -> Any:
        return {} if value is None else value

    @field_validator("chat_history", mode="before")
    @classmethod
    def _none_to_list(cls, value: Any) -> Any:
        return [] if value is None else value

    def phase(self, phase: Phase) -> PhaseContentDocument:
        """按阶段取正文"""
        return self.write if Phase(phase) == Phase.WRITE else self.edit


# ============================================================
# 2. 操作结果模型
# ============================================================

class SaveProjectResult(CamelModel):
    """
    保存结果

    idea_id_map: 客户端 ID -> 持久化 ID，供前端替换本地临时 ID
    """
    ok: bool = True
    idea_id_map: Dict[str, int] = Field(default_factory=dict)


class MigrationResult(BaseModel):
    """单个作用域迁移结果"""
    ok: bool = True
    ideas_migrated: int = 0
    chat_messages_migrated: int = 0
    content_records_migrated: int = 0
    metadata_records_migrated: int = 0


class MigrationStatus(BaseModel):
    """全局迁移状态报告"""
    old_records: int = Field(0, description="旧版 JSON 记录数")
    new_metadata: int = 0
    new_ideas: int = 0
    new_content: int = 0
    new_chat: int = 0
    orphaned_ideas: int = Field(0, description="所属活动已不存在的想法数")
    orphaned_content: int = 0
    orphaned_chat: int = 0
    missing_metadata: int = Field(0, description="有旧版记录但缺少元数据的作用域数")
    migration_percentage: float = 0.0
    is_complete: bool = False


# ============================================================
# 3. 视图模型
# ============================================================

class ChatMessageView(BaseModel):
    """聊天消息（只读）"""
    model_config = ConfigDict(from_attributes=True)

    id: int
    chat_session_id: Optional[str] = None
    role: str
    content: str
    timestamp: int
    created_at: int


class ChatSessionView(BaseModel):
    """聊天会话（只读）"""
    model_config = ConfigDict(from_attributes=True)

    session_id: str
    title: str
    is_active: bool
    created_at: int
    modified_at: int


class ChatSessionWithMessages(ChatSessionView):
    """带消息列表的会话（教师查看聊天记录用）"""
    messages: List[ChatMessageView] = Field(default_factory=list)


class VersionView(BaseModel):
    """版本快照（只读）"""
    model_config = ConfigDict(from_attributes=True)

    version_number: int
    phase: str
    content: str
    word_count: int
    change_summary: Optional[str] = None
    created_at: int
    modified_by: int


class VersionSummary(BaseModel):
    """版本历史条目（不含正文）"""
    model_config = ConfigDict(from_attributes=True)

    version_number: int
    word_count: int
    change_summary: Optional[str] = None
    created_at: int
    modified_by: int
