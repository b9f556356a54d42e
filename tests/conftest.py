# tests/conftest.py
import asyncio
import sys
import uuid
from io import BytesIO
from typing import AsyncIterator
from unittest.mock import AsyncMock

import pytest
import pytest_asyncio
from httpx import AsyncClient, ASGITransport
from PIL import Image

from classlens.backend.db.attendance_store import AttendanceStore
from classlens.backend.models.domain_models import Classroom, Student
from classlens.backend.main import app
from classlens.backend.config.config import settings
from classlens.backend.api.dependencies import get_redis_client
from classlens.backend.api.utilities.limiter import limiter

# Windows needs the selector loop for asyncio tests.
if sys.platform == "win32":
    asyncio.set_event_loop_policy(asyncio.WindowsSelectorEventLoopPolicy())


@pytest.fixture
def mock_redis_client() -> AsyncMock:
    """Stands in for RedisClient; every save succeeds."""
    return AsyncMock()


@pytest.fixture
def store(mock_redis_client) -> AttendanceStore:
    """A real store whose persistence calls go to the mock client."""
    return AttendanceStore(redis_client=mock_redis_client)


@pytest.fixture
def make_student():
    """Factory for roster students with a tiny placeholder photo."""
    def _make(name: str, roll_number: str, password: str = "secret") -> Student:
        return Student(
            id=uuid.uuid4(), name=name, roll_number=roll_number, password=password,
            image_base64="aGVsbG8=", image_type="image/jpeg"
        )
    return _make


@pytest.fixture
def classroom_with_students(store, make_student) -> Classroom:
    """Classroom 'Grade 5' with Ann and Bob, already registered in the store."""
    classroom = Classroom(
        id=uuid.uuid4(), name="Grade 5",
        students=[make_student("Ann", "1"), make_student("Bob", "2")]
    )
    store.classrooms.append(classroom)
    return classroom


@pytest.fixture
def png_bytes() -> bytes:
    """A 100x80 PNG whose left half is red and right half is blue."""
    image = Image.new("RGB", (100, 80), (255, 0, 0))
    image.paste((0, 0, 255), (50, 0, 100, 80))
    buffer = BytesIO()
    image.save(buffer, format="PNG")
    return buffer.getvalue()


# ===== API fixtures =====

@pytest.fixture
def session_redis_client() -> AsyncMock:
    """RedisClient stand-in for sessions, backed by a plain dict."""
    sessions = {}
    client = AsyncMock()

    async def save(session, ttl):
        sessions[session.session_id] = session

    async def get(session_id):
        return sessions.get(session_id)

    async def delete(session_id):
        return 1 if sessions.pop(session_id, None) else 0

    client.save_user_session.side_effect = save
    client.get_user_session.side_effect = get
    client.delete_user_session.side_effect = delete
    return client


@pytest_asyncio.fixture(scope="function")
async def http_client(store, session_redis_client) -> AsyncIterator[AsyncClient]:
    """
    In-process client for the app. The lifespan does not run under
    ASGITransport, so the shared state it would create is set here.
    """
    app.state.store = store
    app.state.recognition_client = AsyncMock()
    app.dependency_overrides[get_redis_client] = lambda: session_redis_client
    limiter.enabled = False

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        yield client

    app.dependency_overrides.clear()
    limiter.enabled = True


async def _login(client: AsyncClient, username: str, password: str, role: str) -> dict:
    response = await client.post("/api/v1/auth/login", json={"username": username, "password": password, "role": role})
    assert response.status_code == 200, response.text
    return {"Authorization": f"Bearer {response.json()['token']['access_token']}"}


@pytest_asyncio.fixture
async def teacher_headers(http_client) -> dict:
    return await _login(http_client, settings.TEACHER_USERNAME, settings.TEACHER_PASSWORD, "teacher")


@pytest.fixture
def login_as(http_client):
    """Logs in through the API and returns the Authorization header."""
    async def _login_as(username: str, password: str, role: str) -> dict:
        return await _login(http_client, username, password, role)
    return _login_as
