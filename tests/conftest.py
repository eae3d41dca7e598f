"""
Test fixtures for the STEMelix backend.

MongoDB is replaced by mongomock_motor, the mailer / invoice renderer by
recording fakes, and Zoom by an httpx.MockTransport.
"""

import httpx
import pytest
from fastapi.testclient import TestClient
from mongomock_motor import AsyncMongoMockClient

from stemelix.auth.guard import ADMIN_ROLE, CallerContext
from stemelix.auth.tokens import create_access_token
from stemelix.courses import service as course_service
from stemelix.courses.models import CourseCreate
from stemelix.database import create_indexes
from stemelix.meetings.zoom import ZoomClient
from stemelix.users import service as user_service

YOUTUBE_URL = "https://www.youtube.com/watch?v=dQw4w9WgXcQ"
PNG_BYTES = b"\x89PNG\r\n\x1a\n" + b"\x00" * 64


class FakeMailer:
    def __init__(self, succeed=True, error=None):
        self.succeed = succeed
        self.error = error
        self.sent = []

    async def send(self, to, subject, html, attachment=None):
        if self.error is not None:
            raise self.error
        self.sent.append({"to": to, "subject": subject, "html": html, "attachment": attachment})
        return self.succeed


class FakeRenderer:
    def __init__(self, error=None):
        self.error = error
        self.rendered = []

    def render(self, data):
        if self.error is not None:
            raise self.error
        self.rendered.append(data)
        return b"%PDF-1.4 fake invoice"


class ZoomStub:
    """httpx handler answering the token and create-meeting endpoints"""

    def __init__(self, expires_in=3600, fail_create=False):
        self.expires_in = expires_in
        self.fail_create = fail_create
        self.token_requests = 0
        self.meeting_requests = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        if request.url.path == "/oauth/token":
            self.token_requests += 1
            return httpx.Response(200, json={
                "access_token": f"token-{self.token_requests}",
                "expires_in": self.expires_in,
            })
        if request.url.path.endswith("/users/me/meetings"):
            if self.fail_create:
                return httpx.Response(500, json={"message": "boom"})
            self.meeting_requests.append(request)
            return httpx.Response(201, json={
                "id": 987654321,
                "join_url": "https://zoom.us/j/987654321",
                "start_url": "https://zoom.us/s/987654321",
            })
        return httpx.Response(404)


@pytest.fixture
async def db():
    database = AsyncMongoMockClient()["stemelix_test"]
    await create_indexes(database)
    return database


@pytest.fixture
def admin():
    return CallerContext("USR_ADMIN", ADMIN_ROLE, "admin@stemelix.com")


@pytest.fixture
def mailer():
    return FakeMailer()


@pytest.fixture
def renderer():
    return FakeRenderer()


@pytest.fixture
def zoom_stub():
    return ZoomStub()


@pytest.fixture
def zoom(zoom_stub):
    return ZoomClient("acct", "client", "secret", transport=httpx.MockTransport(zoom_stub))


async def make_student(db, name="Asha", email="asha@example.com"):
    result = await user_service.register_user(db, name, email, "password123")
    user = result["user"]
    return user, CallerContext(user["user_id"], user["role"], user["email"])


async def make_course(db, caller, title="Robotics Basics", price=2999, **overrides):
    data = {
        "title": title,
        "category": "Junior",
        "level_number": 1,
        "description": "Build your first robot",
        "duration": "8 weeks",
        "grade_range": {"min": 3, "max": 6},
        "price": price,
        "status": "active",
    }
    data.update(overrides)
    return await course_service.create_course(db, caller, CourseCreate(**data))


@pytest.fixture
async def student(db):
    return await make_student(db)


@pytest.fixture
async def course(db, admin):
    return await make_course(db, admin)


# ==================== HTTP ====================

@pytest.fixture
def client(db, mailer, renderer, zoom):
    from stemelix.database import get_db
    from stemelix.dependencies import get_invoice_renderer, get_mailer, get_zoom_client
    from stemelix.main import app

    app.dependency_overrides[get_db] = lambda: db
    app.dependency_overrides[get_mailer] = lambda: mailer
    app.dependency_overrides[get_invoice_renderer] = lambda: renderer
    app.dependency_overrides[get_zoom_client] = lambda: zoom
    yield TestClient(app)
    app.dependency_overrides.clear()


def bearer(user_id, role="student", email=None):
    return {"Authorization": f"Bearer {create_access_token(user_id, role, email)}"}
