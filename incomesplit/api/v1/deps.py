# incomesplit/api/v1/deps.py
import structlog
from typing import Optional

from fastapi import Depends, HTTPException, status, Header
from sqlalchemy.ext.asyncio import AsyncSession

from incomesplit.core.config import settings
from incomesplit.core.exceptions import DomainError
from incomesplit.core.security import verify_session_token
from incomesplit.db.database import get_async_db # Наша зависимость для получения сессии БД
from incomesplit.db.models.user import User as UserModel
from incomesplit import crud

logger = structlog.get_logger(__name__)


async def get_current_user(
    session_token: Optional[str] = Header(None, alias="X-Session-Token"),
    db: AsyncSession = Depends(get_async_db)
) -> UserModel:
    """
    Зависимость FastAPI: проверяет токен сессии и возвращает пользователя.
    """
    credentials_exception = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Not authorized",
        headers={"WWW-Authenticate": "Session"},
    )

    if session_token is None:
        logger.info("auth_failed", reason="missing_token")
        raise credentials_exception

    user_id = verify_session_token(
        session_token,
        secret_key=settings.SECRET_KEY,
        expiration_hours=settings.SESSION_TOKEN_TTL_HOURS
    )
    if user_id is None:
        logger.info("auth_failed", reason="invalid_or_expired_token")
        raise credentials_exception

    current_user = await crud.crud_user.get_user(db, user_id=user_id)
    if not current_user:
        logger.info("auth_failed", reason="unknown_user", user_id=str(user_id))
        raise credentials_exception

    return current_user


def http_error(exc: DomainError) -> HTTPException:
    return HTTPException(status_code=exc.status_code, detail=exc.message)


def server_error(exc: Exception) -> HTTPException:
    # Внутренние подробности наружу отдаем только вне продакшена
    detail = "Server Error" if settings.is_production else f"Server Error: {exc}"
    return HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=detail)
