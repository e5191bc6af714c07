"""
Repository 层

职责：数据访问层，负责与数据库交互

模块说明：
- base.py: 基础 Repository，提供通用 CRUD 操作
- scope_repo.py: 活动 / 学习者，以及作用域表公共基类
- metadata_repo.py: 项目元数据
- idea_repo.py: 想法
- content_repo.py: 阶段内容
- version_repo.py: 版本快照
- chat_repo.py: 聊天会话与消息
- legacy_repo.py: 旧版单 JSON 记录
"""

from .base import BaseRepository
from .scope_repo import ActivityRepository, LearnerRepository, ScopedRepository
from .metadata_repo import MetadataRepository
from .idea_repo import IdeaRepository
from .content_repo import ContentRepository
from .version_repo import VersionRepository
from .chat_repo import ChatSessionRepository, ChatMessageRepository
from .legacy_repo import LegacyRecordRepository

__all__ = [
    "BaseRepository",
    "ScopedRepository",
    "ActivityRepository",
    "LearnerRepository",
    "MetadataRepository",
    "IdeaRepository",
    "ContentRepository",
    "VersionRepository",
    "ChatSessionRepository",
    "ChatMessageRepository",
    "LegacyRecordRepository",
]
