import os

# Настройки читаются при импорте пакета, поэтому окружение задаем до импортов incomesplit
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite://")
os.environ.setdefault("SECRET_KEY", "test-secret-key")
os.environ.setdefault("ENVIRONMENT", "test")
os.environ.setdefault("AUTH_GATEWAY_KEY", "test-gateway-key")

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy import event
from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from incomesplit.core.config import settings
from incomesplit.core.security import create_session_token
from incomesplit.crud import crud_user
from incomesplit.db import models  # noqa: F401  (регистрирует таблицы в Base.metadata)
from incomesplit.db.base_class import Base
from incomesplit.db.database import get_async_db
from incomesplit.main import app
from incomesplit.schemas.user import UserCreate


@pytest.fixture
async def engine():
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )

    # pysqlite сам управляет BEGIN и ломает SAVEPOINT; отдаем транзакции SQLAlchemy
    @event.listens_for(engine.sync_engine, "connect")
    def do_connect(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(engine.sync_engine, "begin")
    def do_begin(conn):
        conn.exec_driver_sql("BEGIN")

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return async_sessionmaker(engine, expire_on_commit=False)


@pytest.fixture
async def db(session_factory):
    async with session_factory() as session:
        yield session


async def make_user(db, google_id: str, email: str, display_name: str):
    user = await crud_user.create_user(
        db, user_in=UserCreate(google_id=google_id, email=email, display_name=display_name)
    )
    await db.commit()
    return user


@pytest.fixture
async def user(db):
    return await make_user(db, "google-asha", "asha@example.com", "Asha")


@pytest.fixture
async def other_user(db):
    return await make_user(db, "google-ravi", "ravi@example.com", "Ravi")


@pytest.fixture
def auth_headers(user):
    return {"X-Session-Token": create_session_token(user.id, settings.SECRET_KEY)}


@pytest.fixture
def other_auth_headers(other_user):
    return {"X-Session-Token": create_session_token(other_user.id, settings.SECRET_KEY)}


@pytest.fixture
async def client(session_factory):
    async def override_get_async_db():
        async with session_factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    app.dependency_overrides[get_async_db] = override_get_async_db
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as async_client:
        yield async_client
    app.dependency_overrides.clear()
