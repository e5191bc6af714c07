"""
FastAPI 全局异常处理器

捕获所有未处理的异常，返回统一格式的 JSON 响应。
"""
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from fastapi.exceptions import RequestValidationError
from fastapi.encoders import jsonable_encoder
from starlette.exceptions import HTTPException as StarletteHTTPException
from sqlalchemy.exc import SQLAlchemyError
import pydantic
import structlog

from researchflow.core.exceptions import (
    ErrorCode,
    ProjectStoreError,
    format_error_response,
    sanitize_error_message,
    get_user_friendly_message,
)

logger = structlog.get_logger()


async def project_store_exception_handler(request: Request, exc: ProjectStoreError) -> JSONResponse:
    """
    处理领域异常（ValidationError / NotFoundError / ImmutableStateError 等）

    错误码和状态码由异常类自身决定。
    """
    request_id = getattr(request.state, "request_id", None)

    message = sanitize_error_message(exc.message, exc)

    log = logger.error if exc.status_code >= 500 else logger.info
    log(
        "project_store_exception",
        status_code=exc.status_code,
        error_code=exc.code.value,
        message=message,
        request_id=request_id,
        url=str(request.url),
        method=request.method,
    )

    error_response = format_error_response(
        code=exc.code,
        message=message,
        exception=exc,
        details=exc.details,
        request_id=request_id,
    )

    return JSONResponse(
        status_code=exc.status_code,
        content=jsonable_encoder(error_response),
    )


async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    """
    处理 FastAPI HTTPException

    Args:
        request: FastAPI 请求对象
        exc: HTTP 异常对象

    Returns:
        JSONResponse: 统一格式的错误响应
    """
    request_id = getattr(request.state, "request_id", None)

    status_to_code = {
        400: ErrorCode.BAD_REQUEST,
        401: ErrorCode.UNAUTHORIZED,
        403: ErrorCode.FORBIDDEN,
        404: ErrorCode.NOT_FOUND,
        409: ErrorCode.CONFLICT,
        422: ErrorCode.VALIDATION_ERROR,
    }

    error_code = status_to_code.get(exc.status_code, ErrorCode.INTERNAL_SERVER_ERROR)

    message = sanitize_error_message(str(exc.detail), exc)

    logger.info(
        "http_exception",
        status_code=exc.status_code,
        error_code=error_code.value,
        message=message,
        request_id=request_id,
        url=str(request.url),
        method=request.method,
    )

    error_response = format_error_response(
        code=error_code,
        message=message,
        exception=exc,
        request_id=request_id,
    )

    return JSONResponse(
        status_code=exc.status_code,
        content=jsonable_encoder(error_response),
    )


async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """
    处理请求体验证错误

    解析验证错误，返回友好的错误消息。
    """
    request_id = getattr(request.state, "request_id", None)

    errors = exc.errors()

    first_error = errors[0] if errors else {}
    field = " -> ".join(str(loc) for loc in first_error.get("loc", []))
    error_msg = first_error.get("msg", "Validation error")

    message = f"Validation error in field '{field}': {error_msg}"

    logger.warning(
        "validation_error",
        request_id=request_id,
        url=str(request.url),
        method=request.method,
        errors_count=len(errors),
        first_error=str(first_error),
    )

    error_response = format_error_response(
        code=ErrorCode.VALIDATION_ERROR,
        message=message,
        exception=exc,
        details={"validation_errors": errors},
        request_id=request_id,
    )

    return JSONResponse(
        status_code=422,
        content=jsonable_encoder(error_response),
    )


async def pydantic_validation_exception_handler(
    request: Request,
    exc: pydantic.ValidationError,
) -> JSONResponse:
    """
    处理服务层抛出的 pydantic 验证错误（如旧版文档中的非法角色）
    """
    request_id = getattr(request.state, "request_id", None)

    logger.warning(
        "model_validation_error",
        request_id=request_id,
        url=str(request.url),
        errors_count=exc.error_count(),
    )

    error_response = format_error_response(
        code=ErrorCode.VALIDATION_ERROR,
        message="Invalid input data. Please check your request.",
        exception=exc,
        details={"validation_errors": exc.errors(include_url=False)},
        request_id=request_id,
    )

    return JSONResponse(
        status_code=422,
        content=jsonable_encoder(error_response),
    )


async def sqlalchemy_exception_handler(request: Request, exc: SQLAlchemyError) -> JSONResponse:
    """
    处理 SQLAlchemy 数据库错误

    隐藏 SQL 语句等敏感信息，返回通用的数据库错误消息。
    """
    request_id = getattr(request.state, "request_id", None)

    # 完整错误只记录到日志
    logger.error(
        "database_error",
        request_id=request_id,
        url=str(request.url),
        method=request.method,
        error_type=type(exc).__name__,
        error=str(exc),
    )

    message = "A database error occurred. Please try again later."

    error_response = format_error_response(
        code=ErrorCode.DATABASE_ERROR,
        message=message,
        exception=exc,
        request_id=request_id,
        include_debug=False,
    )

    return JSONResponse(
        status_code=500,
        content=jsonable_encoder(error_response),
    )


async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """
    通用异常处理器（兜底）

    捕获所有未被其他处理器捕获的异常。
    """
    request_id = getattr(request.state, "request_id", None)

    logger.error(
        "unhandled_exception",
        request_id=request_id,
        url=str(request.url),
        method=request.method,
        client_ip=request.client.host if request.client else None,
        user_id=request.headers.get("x-user-id"),
        error_type=type(exc).__name__,
        error=str(exc),
    )

    user_message = get_user_friendly_message(exc)

    error_response = format_error_response(
        code=ErrorCode.INTERNAL_SERVER_ERROR,
        message=user_message,
        exception=exc,
        request_id=request_id,
    )

    return JSONResponse(
        status_code=500,
        content=jsonable_encoder(error_response),
    )


def register_exception_handlers(app: FastAPI) -> None:
    """注册所有全局异常处理器"""
    app.add_exception_handler(ProjectStoreError, project_store_exception_handler)
    app.add_exception_handler(StarletteHTTPException, http_exception_handler)
    app.add_exception_handler(RequestValidationError, validation_exception_handler)
    app.add_exception_handler(pydantic.ValidationError, pydantic_validation_exception_handler)
    app.add_exception_handler(SQLAlchemyError, sqlalchemy_exception_handler)
    app.add_exception_handler(Exception, generic_exception_handler)
