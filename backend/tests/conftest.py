"""
测试共享 Fixtures

每个测试使用独立的内存 SQLite 数据库（StaticPool 让所有会话共享同一连接），
并预置一个写作活动和一个学习者。
"""
import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import create_async_engine
from sqlalchemy.pool import StaticPool
from sqlmodel import SQLModel

from researchflow.db.session import create_session_maker, enable_sqlite_savepoints
from researchflow.db.unit_of_work import UnitOfWork
from researchflow.models.database import Learner, WritingActivity

PROJECT_ID = 1
USER_ID = 2
OTHER_USER_ID = 3


# ============================================================
# 数据库 Fixtures
# ============================================================

@pytest_asyncio.fixture
async def engine():
    """内存数据库引擎（已建表）"""
    test_engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    enable_sqlite_savepoints(test_engine)

    async with test_engine.begin() as conn:
        await conn.run_sync(SQLModel.metadata.create_all)

    yield test_engine

    await test_engine.dispose()


@pytest.fixture
def session_factory(engine):
    """会话工厂"""
    return create_session_maker(engine)


@pytest_asyncio.fixture
async def seeded(session_factory):
    """预置写作活动和学习者"""
    async with UnitOfWork(session_factory=session_factory) as uow:
        await uow.activities.create(
            WritingActivity(id=PROJECT_ID, name="Research Essay", instructions="Write about climate.")
        )
        await uow.learners.create(Learner(id=USER_ID, username="student"))
        await uow.learners.create(Learner(id=OTHER_USER_ID, username="classmate"))
    return {"project_id": PROJECT_ID, "user_id": USER_ID}


@pytest_asyncio.fixture
async def uow(session_factory, seeded):
    """测试用 UnitOfWork（测试结束时提交）"""
    async with UnitOfWork(session_factory=session_factory) as unit:
        yield unit


# ============================================================
# 文档 Fixtures
# ============================================================

@pytest.fixture
def sample_document_payload() -> dict:
    """示例项目文档（客户端 camelCase 格式）"""
    return {
        "metadata": {
            "title": "Climate Essay",
            "description": "An essay about climate adaptation",
            "currentTab": "write",
            "instructorInstructions": "Use at least three sources.",
            "goal": "Persuade the reader",
        },
        "plan": {
            "ideas": [
                {"id": "tmp1", "content": "<b>Sea levels</b>", "location": "brainstorm", "sectionId": None, "aiGenerated": False},
                {"id": "tmp2", "content": "Urban heat", "location": "outline", "sectionId": "intro", "aiGenerated": True},
            ],
            "outline": [{"id": "intro", "title": "Introduction", "bubbles": []}],
            "customSections": [{"id": "extra", "title": "Extra"}],
            "customSectionTitles": {"intro": "Opening"},
            "removedSections": ["conclusion"],
            "sectionOrder": ["intro", "extra"],
        },
        "write": {"content": "<p>Draft text</p>", "wordCount": 2},
        "edit": {"content": "", "wordCount": 0},
        "chatHistory": [
            {"role": "user", "content": "Help me start", "timestamp": 1700000000},
            {"role": "assistant", "content": "Try an anecdote.", "timestamp": 1700000005000},
        ],
    }
