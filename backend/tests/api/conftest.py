"""
API 测试 Fixtures

用测试数据库覆盖 get_uow 依赖，用 httpx.MockTransport 覆盖 AI 客户端。
"""
import httpx
import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

from researchflow.api.v1.endpoints import chat, deps
from researchflow.db.unit_of_work import UnitOfWork
from researchflow.main import app
from researchflow.services.chat_completion_client import ChatCompletionClient


@pytest.fixture
def ai_handler():
    """
    AI 后端模拟处理函数

    测试可以通过 ai_handler["handler"] 替换响应逻辑。
    """
    def default_handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(
            200,
            json={"choices": [{"message": {"role": "assistant", "content": "Mock reply"}}]},
        )

    return {"handler": default_handler}


@pytest_asyncio.fixture
async def client(session_factory, seeded, ai_handler):
    """指向测试数据库的 API 客户端"""

    async def override_get_uow():
        async with UnitOfWork(session_factory=session_factory) as uow:
            yield uow

    def override_get_chat_client():
        transport = httpx.MockTransport(lambda request: ai_handler["handler"](request))
        return ChatCompletionClient(base_url="https://ai.test/v1", api_key="test", transport=transport)

    app.dependency_overrides[deps.get_uow] = override_get_uow
    app.dependency_overrides[chat.get_chat_client] = override_get_chat_client

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as test_client:
        yield test_client

    app.dependency_overrides.clear()


@pytest.fixture
def user_headers():
    """学习者请求头"""
    return {"X-User-Id": "2"}
