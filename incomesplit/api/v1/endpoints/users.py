# incomesplit/api/v1/endpoints/users.py
import structlog
from typing import Optional
from fastapi import APIRouter, Depends, Header, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession

from incomesplit import schemas
from incomesplit import crud
from incomesplit.core.config import settings
from incomesplit.core.security import create_session_token, verify_gateway_key
from incomesplit.core.exceptions import DomainError
from incomesplit.db import models
from incomesplit.api.v1 import deps

logger = structlog.get_logger(__name__)

router = APIRouter()


@router.post("/auth/google", response_model=schemas.SignInResponse)
async def sign_in_with_google(
    *,
    profile_in: schemas.GoogleSignIn,
    gateway_key: Optional[str] = Header(None, alias="X-Auth-Gateway-Key"),
    db: AsyncSession = Depends(deps.get_async_db)
):
    """
    Вход по профилю Google, проверенному сервисом OAuth-обмена.
    Создает пользователя или обновляет его профиль и выдает токен сессии для X-Session-Token.
    """
    if not verify_gateway_key(gateway_key, settings.AUTH_GATEWAY_KEY):
        logger.info("sign_in_rejected", google_id=profile_in.google_id)
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Not authorized")

    try:
        user = await crud.crud_user.get_or_create_or_update_user_from_google(
            db,
            google_id=profile_in.google_id,
            email=profile_in.email,
            display_name=profile_in.display_name,
            first_name=profile_in.first_name,
            last_name=profile_in.last_name,
            profile_picture=str(profile_in.profile_picture) if profile_in.profile_picture else None
        )
    except Exception as e:
        logger.exception("sign_in_failed", google_id=profile_in.google_id)
        raise deps.server_error(e)

    token = create_session_token(user.id, settings.SECRET_KEY)
    logger.info("signed_in", user_id=str(user.id))
    return schemas.SignInResponse(token=token, user=schemas.User.model_validate(user))


@router.get("/me", response_model=schemas.User)
async def read_current_user(current_user: models.User = Depends(deps.get_current_user)):
    return current_user


@router.get("/me/budget-preferences", response_model=schemas.BudgetPreferencesResponse)
async def read_budget_preferences(current_user: models.User = Depends(deps.get_current_user)):
    return schemas.BudgetPreferencesResponse(budget_preferences=current_user.budget_preferences)


@router.put("/me/budget-preferences", response_model=schemas.BudgetPreferencesResponse)
async def update_budget_preferences(
    *,
    preferences_in: schemas.BudgetPreferencesUpdate,
    db: AsyncSession = Depends(deps.get_async_db),
    current_user: models.User = Depends(deps.get_current_user)
):
    """
    Перезаписать доли Needs / Wants / Savings (каждая 0..100, в сумме 100).
    """
    try:
        user = await crud.crud_user.update_budget_preferences(
            db=db, db_obj=current_user, obj_in=preferences_in.budget_preferences
        )
        return schemas.BudgetPreferencesResponse(
            message="Budget preferences updated successfully",
            budget_preferences=user.budget_preferences
        )
    except DomainError as e:
        raise deps.http_error(e)
    except Exception as e:
        logger.exception("budget_preferences_update_failed", user_id=str(current_user.id))
        raise deps.server_error(e)
