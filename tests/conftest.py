# tests/conftest.py
import sys
from pathlib import Path

# --- Configuración del Path ---
ROOT_DIR = Path(__file__).resolve().parents[1]
if str(ROOT_DIR) not in sys.path:
    sys.path.insert(0, str(ROOT_DIR))

import os

import httpx
import pytest
import pytest_asyncio
from passlib.hash import pbkdf2_sha256
from sqlalchemy import create_engine
from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine
from sqlalchemy.pool import NullPool

TEST_DB = ROOT_DIR / "test_ledger.db"
ADMIN_USERNAME = "admin"
ADMIN_PASSWORD = "Admin1234"

os.environ.setdefault("SECRET_KEY", "test-secret-key-for-the-ledger")
os.environ.setdefault("DATABASE_URL", f"sqlite:///{TEST_DB}")
os.environ.setdefault("ASYNC_DATABASE_URL", f"sqlite+aiosqlite:///{TEST_DB}")
os.environ["ADMIN_USERNAME"] = ADMIN_USERNAME
os.environ["ADMIN_PASSWORD_HASH"] = pbkdf2_sha256.hash(ADMIN_PASSWORD)
os.environ["CELERY_TASK_ALWAYS_EAGER"] = "true"

from restaurant_ledger.api.deps import get_store
from restaurant_ledger.core.config import settings
from restaurant_ledger.db.session import Base
from restaurant_ledger.db.sql_record_store import SqlRecordStore
from restaurant_ledger.main import app
from restaurant_ledger.services import customer_service

sync_engine = create_engine(settings.DATABASE_URL, connect_args={"check_same_thread": False})

# Sin pool: cada test corre en su propio event loop.
test_async_engine = create_async_engine(settings.ASYNC_DATABASE_URL, poolclass=NullPool)
TestingAsyncSessionLocal = async_sessionmaker(bind=test_async_engine, expire_on_commit=False, autoflush=False)

CUSTOMER_PHONE = "+91 98450 11111"
CUSTOMER_ID = "9845011111"


# ---------- Fixtures ----------
@pytest.fixture(scope="session", autouse=True)
def setup_database():
    """Crea la tabla de registros una sola vez por sesión de tests."""
    import restaurant_ledger.models.record  # noqa: F401

    Base.metadata.create_all(bind=sync_engine)
    yield
    Base.metadata.drop_all(bind=sync_engine)


@pytest.fixture(autouse=True)
def clean_tables():
    yield
    with sync_engine.begin() as connection:
        for table in reversed(Base.metadata.sorted_tables):
            connection.execute(table.delete())


@pytest.fixture
def session_factory():
    return TestingAsyncSessionLocal


@pytest.fixture
def store() -> SqlRecordStore:
    return SqlRecordStore(TestingAsyncSessionLocal)


@pytest_asyncio.fixture
async def customer(store):
    """Cliente registrado con el que trabajan los tests del libro de puntos."""
    return await customer_service.register_customer(
        store,
        name="Asha Rao",
        phone_number=CUSTOMER_PHONE,
        date_of_birth="1990-04-12",
    )


@pytest_asyncio.fixture(scope="function")
async def client():
    """AsyncClient enlazado a la app, con el store apuntando a la base de tests."""
    app.dependency_overrides[get_store] = lambda: SqlRecordStore(TestingAsyncSessionLocal)
    async with httpx.AsyncClient(transport=httpx.ASGITransport(app=app), base_url="http://test") as ac:
        yield ac
    app.dependency_overrides.clear()


@pytest_asyncio.fixture(scope="function")
async def admin_token(client: httpx.AsyncClient) -> str:
    """Devuelve un access token válido para el admin."""
    resp = await client.post(
        "/api/v1/auth/login",
        data={"username": ADMIN_USERNAME, "password": ADMIN_PASSWORD},
        headers={"Content-Type": "application/x-www-form-urlencoded"},
    )
    assert resp.status_code == 200, resp.text
    return resp.json()["access_token"]


@pytest.fixture
def auth_headers(admin_token: str) -> dict[str, str]:
    return {"Authorization": f"Bearer {admin_token}"}
