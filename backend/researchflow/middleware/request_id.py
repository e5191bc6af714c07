"""
Request ID 中间件

为每个请求生成唯一标识，并与学习者 ID 一起绑定到 structlog 上下文，
同一请求内的所有日志（包括 Repository、UnitOfWork 的日志）都会带上它们。
"""
import time
import uuid
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response
import structlog

logger = structlog.get_logger()


class RequestIDMiddleware(BaseHTTPMiddleware):
    """
    Request ID 中间件

    功能：
    1. 读取请求头 X-Request-ID，没有时生成 UUID
    2. 注入到 request.state.request_id（错误响应会带上它）
    3. 把 request_id 和 X-User-Id 绑定到日志上下文
    4. 在响应头中返回 X-Request-ID，并记录请求耗时

    使用方式：
        app.add_middleware(RequestIDMiddleware)
    """

    async def dispatch(self, request: Request, call_next) -> Response:
        request_id = request.headers.get("X-Request-ID") or str(uuid.uuid4())
        request.state.request_id = request_id

        context = {"request_id": request_id}
        user_id = request.headers.get("X-User-Id")
        if user_id:
            context["user_id"] = user_id

        start = time.perf_counter()
        with structlog.contextvars.bound_contextvars(**context):
            response = await call_next(request)
            response.headers["X-Request-ID"] = request_id

            logger.info(
                "http_request_completed",
                method=request.method,
                path=request.url.path,
                status_code=response.status_code,
                duration_ms=int((time.perf_counter() - start) * 1000),
            )
            return response
