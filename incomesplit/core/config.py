# incomesplit/core/config.py
from pydantic_settings import BaseSettings
from functools import lru_cache
from typing import Optional

class Settings(BaseSettings):
    PROJECT_NAME: str = "Income Split Backend"
    API_V1_STR: str = "/api/v1"

    # Database
    POSTGRES_SERVER: str = "localhost"
    POSTGRES_USER: str = "postgres"
    POSTGRES_PASSWORD: str = "postgres"
    POSTGRES_DB: str = "incomesplit"

    DATABASE_URL: Optional[str] = None # Если задан, используется вместо POSTGRES_*

    # Сессии (подписанный токен выдается после входа через Google)
    SECRET_KEY: str = "change-me"
    SESSION_TOKEN_TTL_HOURS: int = 24 * 7
    # Общий ключ сервиса, который проводит OAuth-обмен с Google и передает нам проверенный профиль.
    # Пока не задан, вход через Google отключен.
    AUTH_GATEWAY_KEY: Optional[str] = None

    ENVIRONMENT: str = "development"
    LOG_LEVEL: str = "INFO"

    DEFAULT_CURRENCY: str = "INR"

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        case_sensitive = True

    @property
    def ASYNC_DATABASE_URL(self) -> str:
        if self.DATABASE_URL:
            return self.DATABASE_URL
        return f"postgresql+asyncpg://{self.POSTGRES_USER}:{self.POSTGRES_PASSWORD}@{self.POSTGRES_SERVER}:5432/{self.POSTGRES_DB}"

    @property
    def SYNC_DATABASE_URL(self) -> str: # Для Alembic
        return f"postgresql://{self.POSTGRES_USER}:{self.POSTGRES_PASSWORD}@{self.POSTGRES_SERVER}:5432/{self.POSTGRES_DB}"

    @property
    def is_production(self) -> bool:
        return self.ENVIRONMENT.lower() == "production"


@lru_cache() # Кэшируем, чтобы настройки читались один раз
def get_settings() -> Settings:
    return Settings()

settings = get_settings()
