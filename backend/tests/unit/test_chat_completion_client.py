"""
AI 对话补全客户端单元测试

使用 httpx.MockTransport 模拟上游接口。
"""
import json

import httpx
import pytest

from researchflow.core.exceptions import ExternalServiceError
from researchflow.services.chat_completion_client import ChatCompletionClient


def _client(handler, api_key="sk-test") -> ChatCompletionClient:
    return ChatCompletionClient(
        base_url="https://ai.example.com/v1/",
        api_key=api_key,
        model="test-model",
        timeout=5,
        transport=httpx.MockTransport(handler),
    )


def _ok_response(content: str = "Try starting with a question.") -> httpx.Response:
    return httpx.Response(
        200,
        json={"choices": [{"message": {"role": "assistant", "content": content}}]},
    )


class TestChatCompletionClient:
    """测试 ChatCompletionClient"""

    @pytest.mark.asyncio
    async def test_successful_completion(self):
        """测试请求格式与回复解析"""
        captured = {}

        def handler(request: httpx.Request) -> httpx.Response:
            captured["url"] = str(request.url)
            captured["auth"] = request.headers.get("Authorization")
            captured["body"] = json.loads(request.content)
            return _ok_response()

        reply = await _client(handler).complete(
            [{"role": "user", "content": "Help me"}],
            temperature=0.3,
        )

        assert reply == "Try starting with a question."
        assert captured["url"] == "https://ai.example.com/v1/chat/completions"
        assert captured["auth"] == "Bearer sk-test"
        assert captured["body"] == {
            "model": "test-model",
            "messages": [{"role": "user", "content": "Help me"}],
            "temperature": 0.3,
        }

    @pytest.mark.asyncio
    async def test_no_authorization_without_key(self):
        """测试未配置 API Key 时不发送 Authorization 头"""
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["auth"] = request.headers.get("Authorization")
            return _ok_response()

        await _client(handler, api_key="").complete([{"role": "user", "content": "hi"}])
        assert seen["auth"] is None

    @pytest.mark.asyncio
    async def test_timeout_maps_to_504(self):
        """测试超时转换为 timeout=True 的 ExternalServiceError"""

        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ReadTimeout("timed out", request=request)

        with pytest.raises(ExternalServiceError) as exc_info:
            await _client(handler).complete([{"role": "user", "content": "hi"}])

        assert exc_info.value.timeout is True
        assert exc_info.value.status_code == 504

    @pytest.mark.asyncio
    async def test_http_error_maps_to_502(self):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(500, json={"error": "upstream"})

        with pytest.raises(ExternalServiceError) as exc_info:
            await _client(handler).complete([{"role": "user", "content": "hi"}])

        assert exc_info.value.status_code == 502
        assert exc_info.value.details == {"status_code": 500}
        assert "HTTP 500" in exc_info.value.message

    @pytest.mark.asyncio
    async def test_connection_error(self):
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("refused", request=request)

        with pytest.raises(ExternalServiceError) as exc_info:
            await _client(handler).complete([{"role": "user", "content": "hi"}])

        assert exc_info.value.timeout is False

    @pytest.mark.asyncio
    async def test_invalid_json(self):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, content=b"not json")

        with pytest.raises(ExternalServiceError):
            await _client(handler).complete([{"role": "user", "content": "hi"}])

    @pytest.mark.asyncio
    async def test_malformed_response(self):
        """测试缺少 choices 字段"""

        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, json={"id": "x"})

        with pytest.raises(ExternalServiceError) as exc_info:
            await _client(handler).complete([{"role": "user", "content": "hi"}])

        assert exc_info.value.details == {"keys": ["id"]}
