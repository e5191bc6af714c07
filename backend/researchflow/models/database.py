"""
数据库模型（SQLModel）

时间处理说明：
- 所有时间字段统一存储为 Unix 时间戳（秒，整数）
- epoch_now() 返回当前时间戳

表名说明：
- 所有表名带有 settings.TABLE_PREFIX 前缀（如 researchflow_ideas）
- 前缀代表"项目类型"，同一套代码可服务多个写作插件变体
"""
import time
from typing import Optional
from sqlmodel import SQLModel, Field, Column
from sqlalchemy import Text, UniqueConstraint, Index

from researchflow.config.settings import settings


_PREFIX = settings.TABLE_PREFIX


def epoch_now() -> int:
    """获取当前 Unix 时间戳（秒）"""
    return int(time.time())


# ============================================================
# 作用域表（活动 / 学习者）
# ============================================================

class WritingActivity(SQLModel, table=True):
    """
    写作活动表

    一个活动实例对应一个 project_id，保存项目前需校验其存在。
    """
    __tablename__ = settings.table_name("activities")

    id: Optional[int] = Field(default=None, primary_key=True)
    name: str = Field(default="", max_length=255, description="活动名称")
    instructions: str = Field(
        default="",
        sa_column=Column(Text, nullable=False, default=""),
        description="教师给出的写作说明"
    )
    created_at: int = Field(default_factory=epoch_now)


class Learner(SQLModel, table=True):
    """学习者表"""
    __tablename__ = settings.table_name("users")

    id: Optional[int] = Field(default=None, primary_key=True)
    username: str = Field(default="", max_length=100, description="用户名")


# ============================================================
# 规范化项目状态表
# ============================================================

class ProjectMetadata(SQLModel, table=True):
    """
    项目元数据表

    每个 (project_id, user_id) 至多一行；不存在时视为"新建未保存"的项目。
    plan_outline 存储大纲相关的 JSON 文本（outline / customSectionTitles /
    customSections / removedSections / sectionOrder）。
    """
    __tablename__ = settings.table_name("metadata")
    __table_args__ = (
        UniqueConstraint("project_id", "user_id", name=f"uq_{_PREFIX}_metadata_scope"),
    )

    id: Optional[int] = Field(default=None, primary_key=True)
    project_id: int = Field(index=True, description="写作活动 ID")
    user_id: int = Field(index=True, description="学习者 ID")

    title: str = Field(default="", max_length=255)
    description: str = Field(default="", sa_column=Column(Text, nullable=False, default=""))
    current_tab: str = Field(default="plan", max_length=20, description="plan / write / edit")
    instructor_instructions: str = Field(
        default="",
        sa_column=Column(Text, nullable=False, default="")
    )
    goal: str = Field(default="", sa_column=Column(Text, nullable=False, default=""))
    status: str = Field(default="draft", max_length=20, description="draft / submitted")
    plan_outline: Optional[str] = Field(
        default=None,
        sa_column=Column(Text, nullable=True),
        description="大纲结构 JSON 文本"
    )

    created_at: int = Field(default_factory=epoch_now)
    modified_at: int = Field(default_factory=epoch_now)


class Idea(SQLModel, table=True):
    """
    想法表

    语义唯一：同一作用域、同一 (location, section_id) 桶内
    规范化内容相同的想法在保存时合并为一行。
    """
    __tablename__ = settings.table_name("ideas")
    __table_args__ = (
        Index(f"ix_{_PREFIX}_ideas_bucket", "project_id", "user_id", "location", "section_id"),
    )

    id: Optional[int] = Field(default=None, primary_key=True)
    project_id: int = Field(index=True)
    user_id: int = Field(index=True)
    content: str = Field(default="", sa_column=Column(Text, nullable=False, default=""))
    location: str = Field(default="brainstorm", max_length=20, description="brainstorm / outline")
    section_id: Optional[str] = Field(default=None, max_length=100, description="大纲段落 ID")
    ai_generated: bool = Field(default=False)

    created_at: int = Field(default_factory=epoch_now)
    modified_at: int = Field(default_factory=epoch_now)


class ProjectContent(SQLModel, table=True):
    """
    阶段内容表

    每个 (project_id, user_id, phase) 至多一行，phase 为 write / edit。
    """
    __tablename__ = settings.table_name("content")
    __table_args__ = (
        UniqueConstraint("project_id", "user_id", "phase", name=f"uq_{_PREFIX}_content_phase"),
    )

    id: Optional[int] = Field(default=None, primary_key=True)
    project_id: int = Field(index=True)
    user_id: int = Field(index=True)
    phase: str = Field(max_length=20)
    content: str = Field(default="", sa_column=Column(Text, nullable=False, default=""))
    word_count: int = Field(default=0)

    created_at: int = Field(default_factory=epoch_now)
    modified_at: int = Field(default_factory=epoch_now)


class ContentVersion(SQLModel, table=True):
    """
    内容版本快照表

    version_number 在每个 (project_id, user_id, phase) 内从 1 开始严格递增，
    从不复用；版本只追加和裁剪，不更新。
    """
    __tablename__ = settings.table_name("versions")
    __table_args__ = (
        UniqueConstraint(
            "project_id", "user_id", "phase", "version_number",
            name=f"uq_{_PREFIX}_versions_number",
        ),
    )

    id: Optional[int] = Field(default=None, primary_key=True)
    project_id: int = Field(index=True)
    user_id: int = Field(index=True)
    phase: str = Field(max_length=20)
    version_number: int = Field(description="版本号")
    content: str = Field(default="", sa_column=Column(Text, nullable=False, default=""))
    word_count: int = Field(default=0)
    change_summary: Optional[str] = Field(default=None, max_length=255)

    created_at: int = Field(default_factory=epoch_now)
    modified_by: int = Field(description="触发快照的用户 ID")


class ChatSession(SQLModel, table=True):
    """
    聊天会话表

    每个作用域可有多个会话，同一时刻至多一个 is_active=True。
    """
    __tablename__ = settings.table_name("chat_sessions")

    id: Optional[int] = Field(default=None, primary_key=True)
    session_id: str = Field(max_length=100, unique=True, index=True, description="会话唯一标识")
    project_id: int = Field(index=True)
    user_id: int = Field(index=True)
    title: str = Field(default="New Chat", max_length=255)
    is_active: bool = Field(default=False)

    created_at: int = Field(default_factory=epoch_now)
    modified_at: int = Field(default_factory=epoch_now)


class ChatMessage(SQLModel, table=True):
    """
    聊天消息表

    timestamp 为逻辑事件时间，created_at 为插入时间。
    chat_session_id 允许为空（会话功能上线前的历史消息）。
    """
    __tablename__ = settings.table_name("chat")

    id: Optional[int] = Field(default=None, primary_key=True)
    project_id: int = Field(index=True)
    user_id: int = Field(index=True)
    chat_session_id: Optional[str] = Field(default=None, max_length=100, index=True)
    role: str = Field(max_length=20, description="user / assistant / system")
    content: str = Field(default="", sa_column=Column(Text, nullable=False, default=""))
    timestamp: int = Field(default_factory=epoch_now, description="消息发生时间")

    created_at: int = Field(default_factory=epoch_now)


# ============================================================
# 旧版单 JSON 存储表
# ============================================================

class LegacyProjectRecord(SQLModel, table=True):
    """
    旧版项目记录表

    规范化之前整个项目以一个 JSON 文本保存在 content 字段中。
    is_migrated 决定该作用域使用哪一层存储。
    """
    __tablename__ = settings.table_name("work")
    __table_args__ = (
        UniqueConstraint("project_id", "user_id", name=f"uq_{_PREFIX}_work_scope"),
    )

    id: Optional[int] = Field(default=None, primary_key=True)
    project_id: int = Field(index=True)
    user_id: int = Field(index=True)
    content: str = Field(default="", sa_column=Column(Text, nullable=False, default=""))
    is_migrated: bool = Field(default=False)

    timecreated: int = Field(default_factory=epoch_now)
    timemodified: int = Field(default_factory=epoch_now)
