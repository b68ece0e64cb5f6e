from incomesplit.core.config import Settings


def test_database_url_override():
    settings = Settings(DATABASE_URL="sqlite+aiosqlite://")
    assert settings.ASYNC_DATABASE_URL == "sqlite+aiosqlite://"


def test_postgres_urls_from_parts():
    settings = Settings(
        DATABASE_URL=None,
        POSTGRES_SERVER="db",
        POSTGRES_USER="split",
        POSTGRES_PASSWORD="secret",
        POSTGRES_DB="ledger",
    )
    assert settings.ASYNC_DATABASE_URL == "postgresql+asyncpg://split:secret@db:5432/ledger"
    assert settings.SYNC_DATABASE_URL == "postgresql://split:secret@db:5432/ledger"


def test_production_flag():
    assert Settings(ENVIRONMENT="Production").is_production is True
    assert Settings(ENVIRONMENT="test").is_production is False
