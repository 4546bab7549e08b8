"""
Libris Backend — Test Configuration (conftest.py)
==================================================

What:  Shared pytest fixtures for the entire test suite.
How:   pytest auto-discovers conftest.py and makes fixtures available to all tests.

Fixture Hierarchy:
    Function-scoped (created fresh for each test):
    ├── mock_db_session: Mock AsyncSession (no real DB needed)
    ├── database:        Fresh tables in a temporary SQLite file
    ├── db_session:      Real AsyncSession bound to that file
    ├── fake_inventory:  In-memory Book service installed on loan_service
    └── test_client:     HTTPX AsyncClient talking to the ASGI app
"""

import os
import tempfile

# Override settings for testing BEFORE any libris imports: the engine and
# the settings singleton are built at import time.
_TEST_DIR = tempfile.mkdtemp(prefix="libris_test_")
os.environ["DATABASE_URL"] = f"sqlite+aiosqlite:///{_TEST_DIR}/test.db"
os.environ["INVENTORY_BASE_URL"] = "http://inventory.test/api"
os.environ["ENABLED_SERVICES"] = "loan,profile"
os.environ["LOAN_RETURN_COMPARE_AND_SWAP"] = "false"
os.environ["LOG_LEVEL"] = "WARNING"

from typing import Iterable, List, Tuple  # noqa: E402
from unittest.mock import AsyncMock, MagicMock  # noqa: E402

import pytest  # noqa: E402
import pytest_asyncio  # noqa: E402
from httpx import ASGITransport, AsyncClient  # noqa: E402

from libris.database import Base, async_session_factory, engine  # noqa: E402
from libris.models import loan as _loan_models  # noqa: E402,F401
from libris.models import user as _user_models  # noqa: E402,F401
from libris.services.inventory_client import SignalResult  # noqa: E402


class FakeInventory:
    """
    Stand-in for InventoryClient.

    Records every call as (action, book_id) so tests can assert both which
    calls happened and in which order.
    """

    def __init__(self, existing: Iterable[str] = ("b1",), deliver_signals: bool = True):
        self.existing = set(existing)
        self.deliver_signals = deliver_signals
        self.reachable = True
        self.calls: List[Tuple[str, str]] = []

    async def check_book_exists(self, book_id: str) -> bool:
        self.calls.append(("check", book_id))
        return book_id in self.existing

    async def decrement_availability(self, book_id: str) -> SignalResult:
        return self._signal("decrement", book_id)

    async def increment_availability(self, book_id: str) -> SignalResult:
        return self._signal("increment", book_id)

    async def ping(self) -> bool:
        return self.reachable

    async def aclose(self) -> None:
        pass

    def _signal(self, action: str, book_id: str) -> SignalResult:
        self.calls.append((action, book_id))
        if self.deliver_signals:
            return SignalResult(book_id=book_id, action=action, delivered=True, status_code=200)
        return SignalResult(
            book_id=book_id, action=action, delivered=False, error="Inventory service answered HTTP 503"
        )

    def actions(self, name: str) -> List[str]:
        return [book_id for action, book_id in self.calls if action == name]


@pytest.fixture
def mock_db_session():
    """
    Provides a mock async database session.

    Usage:
        mock_db_session.execute.return_value.scalar_one_or_none.return_value = loan
    """
    session = AsyncMock()
    session.execute = AsyncMock()
    session.flush = AsyncMock()
    session.commit = AsyncMock()
    session.rollback = AsyncMock()
    session.close = AsyncMock()
    session.add = MagicMock()
    return session


@pytest.fixture
def loan_payload():
    """The create-loan body used throughout the scenarios."""
    return {
        "user_id": "u1",
        "book_id": "b1",
        "borrowed_at": "2024-01-01",
        "due_date": "2024-01-15",
        "status": "borrowed",
    }


@pytest_asyncio.fixture
async def database():
    """Fresh schema for each test in the temporary SQLite file."""
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
        await conn.run_sync(Base.metadata.create_all)
    yield
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)


@pytest_asyncio.fixture
async def db_session(database):
    async with async_session_factory() as session:
        yield session


@pytest.fixture
def fake_inventory(monkeypatch):
    """Installs a FakeInventory on the loan_service singleton used by the routes."""
    from libris.services.loan_service import loan_service

    fake = FakeInventory()
    monkeypatch.setattr(loan_service, "inventory", fake)
    return fake


@pytest_asyncio.fixture
async def test_client(database, fake_inventory):
    """
    HTTPX AsyncClient routed straight into the FastAPI app (no server).

    Usage:
        async def test_health(test_client):
            response = await test_client.get("/health")
    """
    from libris.main import app

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client
