"""Shared test fixtures."""

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from diffit.db.base import Base
# Import all models to register with Base.metadata
import diffit.db.models  # noqa: F401
from diffit.repositories.project_repo import ProjectRepository
from diffit.services.id_generator import PROJECT_PREFIX, generate_id
from diffit.storage.blob_store import BlobStore

from helpers import WHITE, new_build, png_bytes, solid


@pytest.fixture
def make_png():
    """Factory: make_png(width, height, color=WHITE, block=None) -> PNG bytes.

    ``block`` is ``(x, y, size, color)`` and paints a square on top.
    """

    def _make(width: int, height: int, color=WHITE, block=None) -> bytes:
        pixels = solid(width, height, color)
        if block is not None:
            x, y, size, block_color = block
            pixels[y:y + size, x:x + size] = block_color
        return png_bytes(pixels)

    return _make


@pytest.fixture
async def db_engine(tmp_path):
    """Create a SQLite async engine for testing.

    File-backed so concurrent sessions each get their own connection.
    """
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'diffit_test.db'}", echo=False)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(db_engine):
    return async_sessionmaker(db_engine, class_=AsyncSession, expire_on_commit=False)


@pytest.fixture
async def db_session(session_factory):
    """Create a test database session."""
    async with session_factory() as session:
        yield session


@pytest.fixture
def blob_store(tmp_path):
    root = tmp_path / "blobs"
    root.mkdir()
    return BlobStore(root)


@pytest.fixture
async def project(db_session):
    row = await ProjectRepository(db_session).create(
        project_id=generate_id(PROJECT_PREFIX),
        slug="storefront",
        name="Storefront",
        default_branch="main",
    )
    await db_session.commit()
    return row


@pytest.fixture
async def build(db_session, project):
    return await new_build(db_session, project.project_id)


@pytest.fixture
def app(db_engine, blob_store, session_factory):
    """Create a test application instance with in-memory DB and temp blob store."""
    from diffit.main import create_app

    _app = create_app()
    _app.state.db_engine = db_engine
    _app.state.db_session_factory = session_factory
    _app.state.blob_store = blob_store
    return _app


@pytest.fixture
async def client(app):
    """Async HTTP test client."""
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac
