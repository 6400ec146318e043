import os
import sys

# Ensure project root is on sys.path so top-level packages (app, config, cli) are importable
PROJECT_ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))
if PROJECT_ROOT not in sys.path:
    sys.path.insert(0, PROJECT_ROOT)

# Settings are read once at import time, so the environment is fixed here,
# before anything under app/ is imported.
TEST_API_KEY = "test-automation-key"
os.environ["SECRET_KEY"] = "test-secret-key-not-for-production"
os.environ["API_KEY"] = TEST_API_KEY
os.environ["DATABASE_URI"] = "sqlite+aiosqlite:///:memory:"
os.environ["AUTO_CREATE_TABLES"] = "false"
os.environ["LOG_LEVEL"] = "WARNING"

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from app.core.security import get_password_hash
from app.db import crud
from app.db.base import Base
from app.db import models  # noqa: F401  (registers tables on Base.metadata)
from app.db.session import get_db_session
from app.main import app

DEFAULT_PASSWORD = "password123"


@pytest.fixture(scope="session")
def password_hash():
    # bcrypt is deliberately slow; hash once for the whole run.
    return get_password_hash(DEFAULT_PASSWORD)


@pytest.fixture
async def engine(tmp_path):
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'test.db'}")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return async_sessionmaker(engine, class_=AsyncSession, autoflush=False, expire_on_commit=False)


@pytest.fixture
async def db(session_factory):
    async with session_factory() as session:
        yield session


@pytest.fixture
async def client(session_factory):
    async def override_get_db_session():
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_db_session] = override_get_db_session
    # Unhandled errors must come back as the 500 envelope, not be re-raised.
    transport = ASGITransport(app=app, raise_app_exceptions=False)
    async with AsyncClient(transport=transport, base_url="http://test") as http_client:
        yield http_client
    app.dependency_overrides.clear()


@pytest.fixture
def make_user(db, password_hash):
    async def _make_user(name="Dimas Maulana", email=None):
        email = email or f"{name.lower().replace(' ', '.') or 'anon'}@example.com"
        return await crud.create_user(db, name=name, email=email, hashed_password=password_hash)
    return _make_user


@pytest.fixture
async def alice(make_user):
    return await make_user("Alice Liddell", "alice@example.com")


@pytest.fixture
async def bob(make_user):
    return await make_user("Bob Builder", "bob@example.com")


