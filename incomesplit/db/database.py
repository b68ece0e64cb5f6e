# incomesplit/db/database.py
import structlog
from typing import AsyncGenerator

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from incomesplit.core.config import settings

logger = structlog.get_logger(__name__)

engine = create_async_engine(settings.ASYNC_DATABASE_URL, pool_pre_ping=True)

# expire_on_commit=False: объекты остаются доступными для сериализации ответа после коммита
AsyncSessionLocal = async_sessionmaker(engine, expire_on_commit=False)


async def get_async_db() -> AsyncGenerator[AsyncSession, None]:
    """
    Одна сессия на запрос. Коммит после успешного обработчика, откат при любой ошибке,
    поэтому все записи одной операции (доход + три распределения) фиксируются вместе.
    """
    async with AsyncSessionLocal() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            logger.debug("request_session_rollback")
            await session.rollback()
            raise
