"""Shared test fixtures for backend tests."""

from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.pool import StaticPool
from sqlmodel import Session, SQLModel, create_engine

from cursor_bot.core.config import Settings
from cursor_bot.core.database import get_session
from cursor_bot.services.image_cache import CachedImage, ImageCache
from cursor_bot.services.integrations.cursor import AgentSummary
from cursor_bot.services.store import Store
from cursor_bot.services.tools.base import ToolContext

# In-memory SQLite with StaticPool so all connections (including threads) share one DB
test_engine = create_engine(
    "sqlite://",
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)

USER_ID = 111
CHAT_ID = 222


def get_test_session():
    with Session(test_engine) as session:
        yield session


@pytest.fixture(autouse=True)
def setup_test_db():
    """Create all tables before each test, drop after."""
    import cursor_bot.models.conversation  # noqa: F401 - register models
    import cursor_bot.models.task  # noqa: F401
    SQLModel.metadata.create_all(test_engine)
    yield
    SQLModel.metadata.drop_all(test_engine)


@pytest.fixture
def engine():
    return test_engine


@pytest.fixture
def store():
    return Store(test_engine)


@pytest.fixture
def image_cache(tmp_path):
    return ImageCache.for_db_path(tmp_path / "bot.db")


@pytest.fixture
def test_settings():
    return Settings(_env_file=None, bot_token="t", gemini_api_key="g", cursor_api_key="c")


@pytest.fixture
def make_image():
    """Factory for small cached images; ``data`` defaults to base64 of b"img"."""
    def _make(width: int = 10, height: int = 20, data: str = "aW1n") -> CachedImage:
        return CachedImage(data=data, width=width, height=height)
    return _make


@pytest.fixture
def cursor():
    """Cursor client double with every API call mocked."""
    mock = MagicMock()
    mock.create_agent = AsyncMock(return_value=AgentSummary(id="bc-1", status="CREATING"))
    mock.get_agent = AsyncMock(return_value=AgentSummary(id="bc-1", status="RUNNING"))
    mock.delete_agent = AsyncMock(return_value="bc-1")
    mock.add_followup = AsyncMock(return_value="bc-1")
    mock.list_models = AsyncMock(return_value=["claude-4-sonnet", "gpt-5"])
    mock.list_repositories = AsyncMock(return_value=[])
    return mock


@pytest.fixture
def tool_context(store, cursor, image_cache):
    return ToolContext(
        user_id=USER_ID,
        chat_id=CHAT_ID,
        store=store,
        cursor=cursor,
        image_cache=image_cache,
        allowed_repos=[],
    )


@pytest.fixture
def client():
    """FastAPI TestClient with the bot and background loops patched out."""
    with (
        patch("cursor_bot.main.start_services", AsyncMock(return_value=None)),
        patch("cursor_bot.main.stop_services", AsyncMock()),
    ):
        from cursor_bot.main import app

        # Use FastAPI's dependency override for get_session
        app.dependency_overrides[get_session] = get_test_session

        with TestClient(app) as c:
            yield c

        app.dependency_overrides.clear()
