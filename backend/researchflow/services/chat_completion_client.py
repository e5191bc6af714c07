"""
AI 对话补全客户端

调用 OpenAI 兼容的 /chat/completions 接口，把聊天助手的请求转发给 AI 后端。
超时与非 2xx 响应统一转换为 ExternalServiceError，由 API 层映射为 502 / 504。
"""
from typing import Any, Dict, List, Optional
import httpx
import structlog

from researchflow.config.settings import settings
from researchflow.core.exceptions import ExternalServiceError

logger = structlog.get_logger(__name__)


class ChatCompletionClient:
    """OpenAI 兼容接口客户端"""

    def __init__(
        self,
        base_url: Optional[str] = None,
        api_key: Optional[str] = None,
        model: Optional[str] = None,
        timeout: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """
        Args:
            base_url: 接口根地址（默认 AI_BASE_URL）
            api_key: API Key（默认 AI_API_KEY，未配置时不发送 Authorization 头）
            model: 模型名称（默认 AI_MODEL）
            timeout: 超时时间（秒，默认 AI_TIMEOUT_SECONDS）
            transport: 自定义传输层（测试时注入 httpx.MockTransport）
        """
        self.base_url = (base_url or settings.AI_BASE_URL).rstrip("/")
        self.api_key = api_key if api_key is not None else settings.AI_API_KEY
        self.model = model or settings.AI_MODEL
        self.timeout = timeout or settings.AI_TIMEOUT_SECONDS
        self._transport = transport

    def _headers(self) -> Dict[str, str]:
        headers = {"Content-Type": "application/json"}
        if self.api_key:
            headers["Authorization"] = f"Bearer {self.api_key}"
        return headers

    async def complete(self, messages: List[Dict[str, Any]], **options: Any) -> str:
        """
        请求对话补全

        Args:
            messages: [{"role": ..., "content": ...}, ...]
            **options: 透传给接口的其他参数（如 temperature）

        Returns:
            助手回复文本

        Raises:
            ExternalServiceError: 超时、网络错误、非 2xx 响应或响应格式错误
        """
        url = f"{self.base_url}/chat/completions"
        payload = {"model": self.model, "messages": messages, **options}

        logger.info(
            "chat_completion_requested",
            model=self.model,
            message_count=len(messages),
        )

        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
                response = await client.post(url, json=payload, headers=self._headers())
                response.raise_for_status()
                data = response.json()
        except httpx.TimeoutException as e:
            logger.error(
                "chat_completion_timeout",
                model=self.model,
                timeout=self.timeout,
                error=str(e),
            )
            raise ExternalServiceError(
                "AI service request timed out",
                details={"timeout": self.timeout},
                timeout=True,
            ) from e
        except httpx.HTTPStatusError as e:
            logger.error(
                "chat_completion_http_error",
                model=self.model,
                status_code=e.response.status_code,
            )
            raise ExternalServiceError(
                f"AI service returned HTTP {e.response.status_code}",
                details={"status_code": e.response.status_code},
            ) from e
        except httpx.HTTPError as e:
            logger.error(
                "chat_completion_request_failed",
                model=self.model,
                error=str(e),
                error_type=type(e).__name__,
            )
            raise ExternalServiceError(
                "AI service request failed",
                details={"error_type": type(e).__name__},
            ) from e
        except ValueError as e:
            raise ExternalServiceError("AI service returned invalid JSON") from e

        try:
            content = data["choices"][0]["message"]["content"]
        except (KeyError, IndexError, TypeError) as e:
            logger.error("chat_completion_malformed_response", model=self.model)
            raise ExternalServiceError(
                "AI service returned an unexpected response",
                details={"keys": list(data.keys()) if isinstance(data, dict) else None},
            ) from e

        logger.info(
            "chat_completion_succeeded",
            model=self.model,
            reply_length=len(content or ""),
        )
        return content or ""
