"""
Expense Tracker Backend — Test Configuration (conftest.py)
===========================================================

What:  Shared pytest fixtures for the entire test suite.
How:   Environment overrides are applied before any application import, so
       the settings singleton, the engine and the service singletons are
       built against a throwaway SQLite database and storage directory.

Fixture Hierarchy:
    Function-scoped (created fresh for each test):
    ├── clock: FakeClock driving the QuotaCounter
    ├── counter: QuotaCounter on the fake clock
    ├── fake_ai: FakeAIService (no network)
    ├── file_service: FileService rooted in tmp_path
    ├── database: fresh tables + default categories on SQLite
    ├── app / client: the real application behind httpx ASGITransport
    ├── user / auth_headers: a stored user and a bearer credential for it
    ├── temp_storage: temporary directory for file operations
    └── sample_image_bytes: tiny JPEG for upload tests
"""

import os
import tempfile

# Must run before any expense_tracker import
_TEST_DIR = tempfile.mkdtemp(prefix="expense_tracker_test_")
os.environ["DATABASE_URL"] = f"sqlite+aiosqlite:///{_TEST_DIR}/test.db"
os.environ["ENVIRONMENT"] = "test"
os.environ["JWT_SECRET"] = "test-secret-with-enough-length-for-hs256"
os.environ["BCRYPT_ROUNDS"] = "4"
os.environ["STORAGE_ROOT"] = os.path.join(_TEST_DIR, "storage")
os.environ["LOG_LEVEL"] = "WARNING"
os.environ["AI_ENABLED"] = "false"
os.environ["GEMINI_API_KEY"] = ""
os.environ["RETRY_MAX_ATTEMPTS"] = "1"
os.environ["RETRY_MIN_WAIT"] = "1"
os.environ["AUTO_CREATE_TABLES"] = "false"

from typing import Any, Dict, List, Optional, Sequence  # noqa: E402

import pytest  # noqa: E402
import pytest_asyncio  # noqa: E402
from httpx import ASGITransport, AsyncClient  # noqa: E402

from expense_tracker.auth.tokens import issue_token  # noqa: E402
from expense_tracker.database import (  # noqa: E402
    Base,
    async_session_factory,
    dispose_engine,
    engine,
    init_database,
)
from expense_tracker.exceptions import UpstreamServiceError  # noqa: E402
from expense_tracker.main import create_app  # noqa: E402
from expense_tracker.models import Category, Expense, User  # noqa: E402,F401
from expense_tracker.ratelimit.counter import QuotaCounter  # noqa: E402
from expense_tracker.services.ai_base import AIService  # noqa: E402
from expense_tracker.services.file_service import FileService  # noqa: E402


# ══════════════════════════════════════════════════════════════════════════
# Test doubles
# ══════════════════════════════════════════════════════════════════════════

class FakeClock:
    """Manually advanced time source for the QuotaCounter."""

    def __init__(self, start: float = 1_000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakeAIService(AIService):
    """
    Scriptable AIService.

    available:   value of is_available
    suggestion:  returned by categorize_expense
    analysis:    returned by analyze_expense; an Exception instance is raised
    image_text:  returned by read_receipt_image; an Exception instance is raised
    """

    def __init__(
        self,
        available: bool = False,
        suggestion: Optional[str] = None,
        analysis: Any = None,
        image_text: Any = "",
        status: str = "disabled",
    ):
        self.available = available
        self.suggestion = suggestion
        self.analysis = analysis
        self.image_text = image_text
        self.status = status
        self.calls: List[str] = []

    @property
    def is_available(self) -> bool:
        return self.available

    async def categorize_expense(
        self, description: str, amount: float, category_names: Sequence[str]
    ) -> Optional[str]:
        self.calls.append("categorize_expense")
        return self.suggestion

    async def extract_receipt(self, receipt_text: str) -> Dict[str, Any]:
        from expense_tracker.services.receipt_parser import parse_receipt_text

        self.calls.append("extract_receipt")
        return {**parse_receipt_text(receipt_text), "source": "rules"}

    async def analyze_expense(
        self, expense: Dict[str, Any], history: List[Dict[str, Any]]
    ) -> Dict[str, Any]:
        self.calls.append("analyze_expense")
        if not self.available:
            raise UpstreamServiceError("AI service is not available")
        if isinstance(self.analysis, Exception):
            raise self.analysis
        return self.analysis

    async def read_receipt_image(self, image_path: str) -> str:
        self.calls.append("read_receipt_image")
        if isinstance(self.image_text, Exception):
            raise self.image_text
        return self.image_text

    async def health_check(self) -> str:
        return self.status


# ══════════════════════════════════════════════════════════════════════════
# Function-Scoped Fixtures
# ══════════════════════════════════════════════════════════════════════════

@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def counter(clock):
    return QuotaCounter(clock=clock)


@pytest.fixture
def fake_ai():
    return FakeAIService()


@pytest.fixture
def temp_storage(tmp_path):
    storage_dir = tmp_path / "storage"
    storage_dir.mkdir()
    return str(storage_dir)


@pytest.fixture
def file_service(temp_storage):
    return FileService(storage_root=temp_storage, max_file_size=1_048_576)


@pytest.fixture
def sample_image_bytes():
    """Smallest JPEG: SOI marker + JFIF header + EOI marker."""
    return (
        b"\xff\xd8\xff\xe0\x00\x10JFIF\x00\x01\x01\x00\x00\x01\x00\x01\x00\x00"
        b"\xff\xd9"
    )


@pytest_asyncio.fixture
async def database():
    """Fresh schema with the default categories seeded."""
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    await init_database()
    yield
    await dispose_engine()


@pytest.fixture
def app(counter, fake_ai, file_service):
    return create_app(counter=counter, ai_service=fake_ai, files=file_service)


@pytest_asyncio.fixture
async def client(app):
    transport = ASGITransport(app=app, raise_app_exceptions=False)
    async with AsyncClient(transport=transport, base_url="http://test") as c:
        yield c
    await dispose_engine()


async def create_user(email: str = "alice@example.com", name: str = "Alice") -> User:
    async with async_session_factory() as session:
        user = User(email=email, password_hash="not-a-real-hash", name=name, preferences={})
        session.add(user)
        await session.commit()
        return user


@pytest_asyncio.fixture
async def user(database):
    return await create_user()


@pytest.fixture
def auth_headers(user):
    return {"Authorization": f"Bearer {issue_token(user.id)}"}
