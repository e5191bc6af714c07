"""业务逻辑层"""

from researchflow.services.idea_reconciler import IdeaReconciler
from researchflow.services.content_version_manager import ContentVersionManager
from researchflow.services.chat_session_manager import ChatSessionManager
from researchflow.services.storage_strategy import (
    ProjectStorage,
    NormalizedProjectStorage,
    LegacyBlobProjectStorage,
    StorageResolver,
)
from researchflow.services.project_service import ProjectService
from researchflow.services.migration_service import MigrationService
from researchflow.services.chat_completion_client import ChatCompletionClient

__all__ = [
    # 想法协调
    "IdeaReconciler",
    # 正文与版本
    "ContentVersionManager",
    # 聊天会话
    "ChatSessionManager",
    # 存储策略
    "ProjectStorage",
    "NormalizedProjectStorage",
    "LegacyBlobProjectStorage",
    "StorageResolver",
    # 项目聚合
    "ProjectService",
    # 旧版数据迁移
    "MigrationService",
    # AI 客户端
    "ChatCompletionClient",
]
