"""Pytest configuration and fixtures.

Provides common fixtures for all tests including:
- Database engine and sessions (SQLite file per test)
- SQL and in-memory stores
- Fake effectors and the node registry
- Authentication headers
- API client with dependency overrides
"""

from datetime import datetime, timedelta, timezone
from typing import AsyncGenerator
from uuid import uuid4

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from jose import jwt
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine
from sqlalchemy.orm import sessionmaker
from sqlmodel import SQLModel

from nodeflow.api.deps import (
    build_run_dispatcher,
    get_db_session,
    get_run_dispatcher,
)
from nodeflow.config import settings
from nodeflow.integrations.base import Effectors
from nodeflow.main import app
from nodeflow.models.workflow import Workflow, WorkflowGraph
from nodeflow.nodes.registry import NodeRegistry
from nodeflow.services.run_dispatcher import RunDispatcher
from nodeflow.storage.in_memory import InMemoryExecutionStore, InMemoryGraphStore
from tests.fakes import make_effectors

TEST_USER_ID = "user_test"
OTHER_USER_ID = "user_other"


def create_access_token(user_id: str, expires_minutes: int = 30) -> str:
    """Mint a bearer token the way the identity provider would."""
    expire = datetime.now(timezone.utc) + timedelta(minutes=expires_minutes)
    return jwt.encode(
        {"sub": user_id, "exp": expire},
        settings.jwt_secret_key.get_secret_value(),
        algorithm=settings.jwt_algorithm,
    )


def simple_graph() -> WorkflowGraph:
    """text -> LLM -> output."""
    return WorkflowGraph.model_validate(
        {
            "nodes": [
                {"id": "text-1", "type": "textNode", "data": {"text": "Describe a cat"}},
                {"id": "llm-1", "type": "runAnyLLM", "data": {"model": "gemini-2.0-flash"}},
                {"id": "out-1", "type": "outputNode", "data": {}},
            ],
            "edges": [
                {
                    "source": "text-1",
                    "target": "llm-1",
                    "sourceHandle": "text",
                    "targetHandle": "user_message",
                },
                {
                    "source": "llm-1",
                    "target": "out-1",
                    "sourceHandle": "output",
                    "targetHandle": "input",
                },
            ],
        }
    )


@pytest_asyncio.fixture
async def db_engine(tmp_path):
    """Create async database engine on a temporary SQLite file."""
    engine = create_async_engine(
        f"sqlite+aiosqlite:///{tmp_path / 'test.db'}",
        echo=False,
        connect_args={"timeout": 30},
    )

    async with engine.begin() as conn:
        await conn.run_sync(SQLModel.metadata.create_all)

    yield engine

    await engine.dispose()


@pytest.fixture
def session_maker(db_engine) -> sessionmaker:
    """Session maker bound to the test engine."""
    return sessionmaker(
        db_engine,
        class_=AsyncSession,
        expire_on_commit=False,
    )


@pytest_asyncio.fixture
async def db_session(session_maker: sessionmaker) -> AsyncGenerator[AsyncSession, None]:
    """Create async database session."""
    async with session_maker() as session:
        yield session


@pytest.fixture
def effectors() -> Effectors:
    """Fake LLM and media effectors."""
    return make_effectors()


@pytest.fixture
def registry() -> NodeRegistry:
    """Registry with the built-in nodes."""
    registry = NodeRegistry()
    registry.load_builtin_nodes()
    return registry


@pytest.fixture
def execution_store() -> InMemoryExecutionStore:
    return InMemoryExecutionStore()


@pytest.fixture
def graph_store() -> InMemoryGraphStore:
    return InMemoryGraphStore()


@pytest_asyncio.fixture
async def dispatcher(
    session_maker: sessionmaker,
    effectors: Effectors,
    registry: NodeRegistry,
) -> AsyncGenerator[RunDispatcher, None]:
    """Run dispatcher wired to the test database and fake effectors."""
    dispatcher = build_run_dispatcher(session_maker, effectors=effectors, registry=registry)
    yield dispatcher
    await dispatcher.shutdown()


@pytest_asyncio.fixture
async def client(
    session_maker: sessionmaker,
    dispatcher: RunDispatcher,
) -> AsyncGenerator[AsyncClient, None]:
    """Create test HTTP client."""

    async def override_get_db():
        async with session_maker() as session:
            yield session

    app.dependency_overrides[get_db_session] = override_get_db
    app.dependency_overrides[get_run_dispatcher] = lambda: dispatcher

    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
    ) as ac:
        yield ac

    app.dependency_overrides.clear()


@pytest.fixture
def user_id() -> str:
    return TEST_USER_ID


@pytest.fixture
def other_user_id() -> str:
    return OTHER_USER_ID


@pytest.fixture
def auth_headers() -> dict[str, str]:
    """Bearer token for the test user."""
    return {"Authorization": f"Bearer {create_access_token(TEST_USER_ID)}"}


@pytest.fixture
def other_auth_headers() -> dict[str, str]:
    """Bearer token for a second user."""
    return {"Authorization": f"Bearer {create_access_token(OTHER_USER_ID)}"}


@pytest_asyncio.fixture
async def test_workflow(db_session: AsyncSession) -> Workflow:
    """Create a saved workflow owned by the test user."""
    workflow = Workflow(
        id=str(uuid4()),
        user_id=TEST_USER_ID,
        name="Test Workflow",
        description="A test workflow",
        graph=simple_graph().model_dump_json(),
    )
    db_session.add(workflow)
    await db_session.commit()
    await db_session.refresh(workflow)
    return workflow
