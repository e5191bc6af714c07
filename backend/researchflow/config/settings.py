"""
应用配置（基于 pydantic-settings）

配置分组：
- 应用：运行环境、调试模式、CORS
- 数据库：连接 URL、表名前缀（项目类型）
- 版本管理：版本保留上限、自动快照字数阈值
- 聊天：消息最大长度、默认会话标题
- AI 代理：Chat Completion 端点、模型、超时
"""
from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """全局配置"""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True,
        extra="ignore",
    )

    # ==================== 应用配置 ====================
    ENVIRONMENT: str = Field("development", description="运行环境")
    DEBUG: bool = Field(False, description="调试模式")
    API_V1_PREFIX: str = "/api/v1"
    PROJECT_NAME: str = "ResearchFlow Writing Assistant"
    CORS_ORIGINS: str = Field(
        default="http://localhost:3000",
        description="允许的跨域来源（逗号分隔）"
    )

    # ==================== 数据库配置 ====================
    DATABASE_URL: str = Field(
        "sqlite+aiosqlite:///./researchflow.db",
        description="异步数据库连接 URL（postgresql+asyncpg / sqlite+aiosqlite）"
    )
    DB_ECHO: bool = Field(False, description="是否输出 SQL 语句")
    TABLE_PREFIX: str = Field(
        "researchflow",
        description="表名前缀，区分不同的写作项目类型（如 researchflow / writeassistdev）"
    )
    TRANSACTION_TIMEOUT_SECONDS: float = Field(30.0, description="单个事务超时时间（秒）")

    # ==================== 版本管理配置 ====================
    VERSION_RETENTION_LIMIT: int = Field(50, description="每个 (项目, 用户, 阶段) 保留的最大版本数")
    AUTO_VERSION_WORD_THRESHOLD: int = Field(50, description="自动保存触发新版本的字数变化阈值")

    # ==================== 聊天配置 ====================
    CHAT_MESSAGE_MAX_LENGTH: int = Field(65535, description="单条聊天消息最大长度（超出截断）")
    DEFAULT_CHAT_TITLE: str = Field("New Chat", description="自动创建会话时使用的标题")

    # ==================== AI 代理配置 ====================
    AI_BASE_URL: str = Field("https://api.openai.com/v1", description="Chat Completion API 端点")
    AI_API_KEY: str | None = Field(None, description="API 密钥")
    AI_MODEL: str = Field("gpt-4o-mini", description="模型名称")
    AI_TIMEOUT_SECONDS: float = Field(120.0, description="Chat Completion 请求超时（秒）")

    @property
    def get_cors_origins(self) -> list[str]:
        """解析 CORS 来源列表"""
        return [origin.strip() for origin in self.CORS_ORIGINS.split(",") if origin.strip()]

    def table_name(self, suffix: str) -> str:
        """
        拼接带前缀的表名

        Args:
            suffix: 表名后缀（如 "ideas"）

        Returns:
            完整表名（如 "researchflow_ideas"）
        """
        return f"{self.TABLE_PREFIX}_{suffix}"


settings = Settings()
