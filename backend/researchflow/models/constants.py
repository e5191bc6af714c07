"""
常量定义模块

定义写作项目中使用的枚举和常量值。
"""
from enum import Enum


class Phase(str, Enum):
    """
    长文本阶段枚举

    只有这两个阶段拥有内容行与版本历史。
    """
    WRITE = "write"  # 写作
    EDIT = "edit"    # 修订


class IdeaLocation(str, Enum):
    """想法所在位置"""
    BRAINSTORM = "brainstorm"  # 头脑风暴区
    OUTLINE = "outline"        # 大纲区


class CurrentTab(str, Enum):
    """前端当前所在标签页"""
    PLAN = "plan"
    WRITE = "write"
    EDIT = "edit"


class ProjectStatus(str, Enum):
    """项目状态"""
    DRAFT = "draft"          # 草稿（可编辑）
    SUBMITTED = "submitted"  # 已提交（不可再保存）


class ChatRole(str, Enum):
    """聊天消息角色"""
    USER = "user"
    ASSISTANT = "assistant"
    SYSTEM = "system"


# 会话 ID 哨兵值：表示"当前活跃会话"
DEFAULT_SESSION_SENTINEL = "default"

# 版本摘要
AUTO_SAVE_SUMMARY = "Auto-saved"
MANUAL_SAVE_SUMMARY = "Manual save"
RESTORE_SUMMARY_TEMPLATE = "Restored from version {version_number}"

# 大于该值的时间戳视为毫秒
EPOCH_MILLIS_THRESHOLD = 10 ** 10
