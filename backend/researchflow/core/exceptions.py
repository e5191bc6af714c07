"""
统一错误响应模型、错误码枚举与领域异常

提供全局异常处理所需的数据结构和工具函数。
"""
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional
from pydantic import BaseModel, Field
import traceback
import structlog

from researchflow.config.settings import settings

logger = structlog.get_logger()


class ErrorCode(str, Enum):
    """
    错误码枚举

    用于标识不同类型的错误，方便前端根据错误码做差异化处理。
    """
    # 客户端错误 (4xx)
    VALIDATION_ERROR = "VALIDATION_ERROR"
    NOT_FOUND = "NOT_FOUND"
    UNAUTHORIZED = "UNAUTHORIZED"
    FORBIDDEN = "FORBIDDEN"
    BAD_REQUEST = "BAD_REQUEST"
    CONFLICT = "CONFLICT"
    IMMUTABLE_STATE = "IMMUTABLE_STATE"

    # 服务器错误 (5xx)
    INTERNAL_SERVER_ERROR = "INTERNAL_SERVER_ERROR"
    DATABASE_ERROR = "DATABASE_ERROR"
    EXTERNAL_SERVICE_ERROR = "EXTERNAL_SERVICE_ERROR"
    TIMEOUT_ERROR = "TIMEOUT_ERROR"


# ============================================================
# 领域异常
# ============================================================

class ProjectStoreError(Exception):
    """
    领域异常基类

    每个子类携带错误码和 HTTP 状态码，由全局异常处理器统一转换为 ErrorResponse。
    """
    code: ErrorCode = ErrorCode.INTERNAL_SERVER_ERROR
    status_code: int = 500

    def __init__(self, message: str, details: Optional[dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.details = details


class ValidationError(ProjectStoreError):
    """输入不合法（JSON 格式错误、未知角色、未知阶段等）"""
    code = ErrorCode.VALIDATION_ERROR
    status_code = 422


class InvalidLegacyDataError(ValidationError):
    """旧版 JSON 记录无法解析"""
    pass


class NotFoundError(ProjectStoreError):
    """活动、学习者、旧版记录等不存在"""
    code = ErrorCode.NOT_FOUND
    status_code = 404


class PersistenceError(ProjectStoreError):
    """底层存储写入失败"""
    code = ErrorCode.DATABASE_ERROR
    status_code = 500


class ImmutableStateError(ProjectStoreError):
    """项目已提交，不可再保存"""
    code = ErrorCode.IMMUTABLE_STATE
    status_code = 409


class ConflictError(ProjectStoreError):
    """并发冲突（保留给乐观锁）"""
    code = ErrorCode.CONFLICT
    status_code = 409


class ExternalServiceError(ProjectStoreError):
    """外部服务（AI 代理）调用失败"""
    code = ErrorCode.EXTERNAL_SERVICE_ERROR
    status_code = 502

    def __init__(
        self,
        message: str,
        details: Optional[dict[str, Any]] = None,
        timeout: bool = False,
    ):
        super().__init__(message, details)
        self.timeout = timeout
        if timeout:
            self.code = ErrorCode.TIMEOUT_ERROR
            self.status_code = 504


# ============================================================
# 错误响应模型
# ============================================================

class DebugInfo(BaseModel):
    """
    调试信息（仅开发环境）

    包含异常类型、完整堆栈跟踪等敏感信息。
    """
    exception_type: str = Field(..., description="异常类型")
    traceback: str = Field(..., description="完整堆栈跟踪")
    locals: Optional[dict[str, Any]] = Field(None, description="局部变量（可选）")


class ErrorDetail(BaseModel):
    """
    错误详情

    统一的错误响应格式。
    """
    code: ErrorCode = Field(..., description="错误码")
    message: str = Field(..., description="用户友好的错误描述")
    details: Optional[dict[str, Any]] = Field(None, description="业务相关详情（可选）")
    request_id: Optional[str] = Field(None, description="请求唯一标识")
    timestamp: str = Field(
        default_factory=lambda: datetime.now(timezone.utc).isoformat(),
        description="错误发生时间（UTC）"
    )
    debug_info: Optional[DebugInfo] = Field(None, description="调试信息（仅开发环境）")


class ErrorResponse(BaseModel):
    """
    错误响应包装器

    所有API错误都返回此格式。
    """
    error: ErrorDetail = Field(..., description="错误详情")


def format_error_response(
    code: ErrorCode,
    message: str,
    exception: Optional[Exception] = None,
    details: Optional[dict[str, Any]] = None,
    request_id: Optional[str] = None,
    include_debug: Optional[bool] = None,
) -> ErrorResponse:
    """
    格式化错误响应

    根据环境变量决定是否包含调试信息。

    Args:
        code: 错误码
        message: 用户友好的错误描述
        exception: 异常对象（可选）
        details: 业务相关详情（可选）
        request_id: 请求唯一标识（可选）
        include_debug: 是否包含调试信息（默认根据环境变量决定）

    Returns:
        ErrorResponse: 格式化的错误响应

    Example:
        >>> format_error_response(
        ...     code=ErrorCode.NOT_FOUND,
        ...     message="Writing activity not found",
        ...     details={"project_id": 42},
        ...     request_id="req-123",
        ... )
    """
    if include_debug is None:
        include_debug = settings.DEBUG or settings.ENVIRONMENT == "development"

    error_detail = ErrorDetail(
        code=code,
        message=message,
        details=details,
        request_id=request_id,
    )

    if include_debug and exception:
        try:
            error_detail.debug_info = DebugInfo(
                exception_type=type(exception).__name__,
                traceback="".join(traceback.format_exception(exception)),
            )
        except Exception as e:
            logger.warning(
                "failed_to_format_debug_info",
                error=str(e),
            )

    return ErrorResponse(error=error_detail)


def sanitize_error_message(message: str, exception: Optional[Exception] = None) -> str:
    """
    清理错误消息，移除敏感信息

    移除可能包含的数据库连接字符串、API密钥等敏感信息。

    Args:
        message: 原始错误消息
        exception: 异常对象（可选）

    Returns:
        str: 清理后的错误消息
    """
    sensitive_patterns = [
        "password",
        "api_key",
        "secret",
        "token",
        "postgresql://",
        "sqlite+aiosqlite://",
        "DATABASE_URL",
        "AI_API_KEY",
    ]

    if settings.ENVIRONMENT == "production":
        lower_message = message.lower()
        for pattern in sensitive_patterns:
            if pattern.lower() in lower_message:
                logger.warning(
                    "sensitive_info_detected_in_error_message",
                    pattern=pattern,
                    exception_type=type(exception).__name__ if exception else None,
                )
                return "An internal error occurred. Please contact support."

    return message


def get_user_friendly_message(exception: Exception) -> str:
    """
    获取用户友好的错误消息

    将技术性的异常消息转换为用户易于理解的描述。

    Args:
        exception: 异常对象

    Returns:
        str: 用户友好的错误消息
    """
    if isinstance(exception, ProjectStoreError):
        return exception.message

    exception_type = type(exception).__name__

    friendly_messages = {
        "ConnectionError": "Failed to connect to the service. Please try again later.",
        "TimeoutError": "The request timed out. Please try again.",
        "TransactionTimeoutError": "The operation took too long and was rolled back. Please try again.",
        "OperationalError": "A database error occurred. Please try again later.",
        "IntegrityError": "Data integrity constraint violated. Please check your input.",
        "ValidationError": "Invalid input data. Please check your request.",
    }

    return friendly_messages.get(exception_type, str(exception))
