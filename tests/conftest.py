"""Shared pytest fixtures for the Commit test suite.

Provides:
- db_engine: file-backed SQLite async engine per test, foreign keys on
- session_factory: session maker bound to db_engine
- gateway: DataGateway that records every call and can inject failures
- add_members: helper inserting team members in a known creation order
- client: AsyncClient with the session factory dependency overridden
"""

from datetime import timedelta

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy import event
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import NullPool

from src.db.session import Base, get_session_factory
import src.db.tables  # noqa: F401 - register ORM models on Base.metadata
from src.models.common import utc_now
from src.repositories.gateway import DataGateway


@pytest.fixture
def anyio_backend() -> str:
    return "asyncio"


class RecordingGateway(DataGateway):
    """DataGateway that logs ``(operation, collection)`` per call.

    ``fail(op, collection, exc)`` makes the next matching call raise ``exc``
    instead of touching the database.
    """

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        super().__init__(session_factory)
        self.calls: list[tuple[str, str]] = []
        self._failures: dict[tuple[str, str], list[Exception]] = {}

    def fail(self, op: str, collection: str, exc: Exception) -> None:
        self._failures.setdefault((op, collection), []).append(exc)

    def reset(self) -> None:
        self.calls.clear()

    def count(self, op: str, collection: str | None = None) -> int:
        return sum(
            1 for o, c in self.calls if o == op and (collection is None or c == collection)
        )

    def _record(self, op: str, collection: str) -> None:
        self.calls.append((op, collection))
        pending = self._failures.get((op, collection))
        if pending:
            raise pending.pop(0)

    async def select(self, collection, filters=None, *, order_by=None, descending=False):
        self._record("select", collection)
        return await super().select(collection, filters, order_by=order_by, descending=descending)

    async def insert(self, collection, rows):
        self._record("insert", collection)
        return await super().insert(collection, rows)

    async def update(self, collection, filters, patch):
        self._record("update", collection)
        return await super().update(collection, filters, patch)

    async def delete(self, collection, filters):
        self._record("delete", collection)
        return await super().delete(collection, filters)


@pytest.fixture
async def db_engine(tmp_path):
    """File-backed SQLite so concurrent gateway calls get their own connections."""
    eng = create_async_engine(
        f"sqlite+aiosqlite:///{tmp_path / 'commit.db'}",
        poolclass=NullPool,
    )

    @event.listens_for(eng.sync_engine, "connect")
    def _enable_foreign_keys(dbapi_connection, connection_record):  # noqa: ARG001
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    async with eng.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield eng
    await eng.dispose()


@pytest.fixture
def session_factory(db_engine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(bind=db_engine, class_=AsyncSession, expire_on_commit=False)


@pytest.fixture
def gateway(session_factory) -> RecordingGateway:
    return RecordingGateway(session_factory)


@pytest.fixture
def add_members(gateway):
    """Insert members named ``names``; the first is the earliest created."""

    async def _add(*names: str) -> list[dict]:
        base = utc_now() - timedelta(hours=1)
        rows = [
            {
                "name": name,
                "email": f"{name.lower().replace(' ', '.')}@example.com",
                "role": "lead" if i == 0 else "member",
                "created_at": base + timedelta(seconds=i),
            }
            for i, name in enumerate(names)
        ]
        return await gateway.insert("team_members", rows)

    return _add


@pytest.fixture
async def client(session_factory):
    """AsyncClient against the app with the test database swapped in."""
    from src.api.main import app

    async def _session_factory() -> async_sessionmaker[AsyncSession]:
        return session_factory

    app.dependency_overrides[get_session_factory] = _session_factory
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    services = getattr(app.state, "services", None)
    if services is not None:
        await services.undo.aclose()
        del app.state.services
    app.dependency_overrides.clear()
