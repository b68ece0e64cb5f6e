# incomesplit/crud/crud_user.py
import structlog
import uuid
from typing import Optional, Mapping

from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.future import select

from incomesplit.core.distribution import DISTRIBUTION_ROLES
from incomesplit.db.models.user import User as UserModel # Модель SQLAlchemy
from incomesplit.schemas.user import UserCreate, UserUpdate, BudgetPreferences # Схемы Pydantic

logger = structlog.get_logger(__name__)

# --- Read Operations ---

async def get_user(db: AsyncSession, user_id: uuid.UUID) -> Optional[UserModel]:
    """
    Получить пользователя по его ID.
    """
    result = await db.execute(select(UserModel).filter(UserModel.id == user_id))
    return result.scalar_one_or_none()

async def get_user_by_google_id(db: AsyncSession, google_id: str) -> Optional[UserModel]:
    if not google_id:
        return None
    result = await db.execute(select(UserModel).filter(UserModel.google_id == google_id))
    return result.scalar_one_or_none()

# --- Create Operation ---

async def create_user(db: AsyncSession, *, user_in: UserCreate) -> UserModel:
    """
    Создать нового пользователя с предпочтениями бюджета по умолчанию (50/30/20).
    """
    db_user = UserModel(
        google_id=user_in.google_id,
        email=user_in.email,
        display_name=user_in.display_name,
        first_name=user_in.first_name,
        last_name=user_in.last_name,
        profile_picture=str(user_in.profile_picture) if user_in.profile_picture else None, # HttpUrl -> str
        preferred_currency=user_in.preferred_currency
    )
    db.add(db_user)
    await db.flush() # Получаем ID; коммит будет сделан в get_async_db
    return db_user

# --- Update Operations ---

async def update_user(db: AsyncSession, *, db_obj: UserModel, obj_in: UserUpdate) -> UserModel:
    update_data = obj_in.model_dump(exclude_unset=True)

    for field, value in update_data.items():
        if hasattr(db_obj, field):
            if field == "profile_picture" and value is not None:
                setattr(db_obj, field, str(value))
            else:
                setattr(db_obj, field, value)

    db.add(db_obj)
    return db_obj

def preferences_differ(db_obj: UserModel, percentages: Mapping[str, float]) -> bool:
    # Точное сравнение: любое отличие означает перезапись сохраненных предпочтений
    stored = db_obj.percentages()
    return any(stored[role] != percentages[role] for role in DISTRIBUTION_ROLES)

async def set_budget_percentages(
    db: AsyncSession,
    *,
    db_obj: UserModel,
    percentages: Mapping[str, float]
) -> UserModel:
    """
    Перезаписывает предпочтения бюджета. Проценты должны быть уже проверены.
    """
    db_obj.needs_percentage = float(percentages["needs"])
    db_obj.wants_percentage = float(percentages["wants"])
    db_obj.savings_percentage = float(percentages["savings"])
    db.add(db_obj)
    await db.flush()
    logger.info("budget_preferences_set", user_id=str(db_obj.id), percentages=dict(percentages))
    return db_obj

async def update_budget_preferences(
    db: AsyncSession,
    *,
    db_obj: UserModel,
    obj_in: BudgetPreferences
) -> UserModel:
    # Сумма и диапазоны уже проверены схемой BudgetPreferences
    return await set_budget_percentages(db, db_obj=db_obj, percentages=obj_in.percentages())

# --- Вход через Google: создание или обновление пользователя по проверенному профилю ---

async def get_or_create_or_update_user_from_google(
    db: AsyncSession,
    *,
    google_id: str,
    email: str,
    display_name: str,
    first_name: Optional[str] = None,
    last_name: Optional[str] = None,
    profile_picture: Optional[str] = None
) -> UserModel:
    """
    Получает пользователя по google_id.
    Если пользователь не найден, создает нового.
    Если найден, обновляет данные профиля, если они изменились.
    """
    db_user = await get_user_by_google_id(db, google_id=google_id)

    profile_data = {
        "email": email,
        "display_name": display_name,
        "first_name": first_name,
        "last_name": last_name,
        "profile_picture": profile_picture,
    }

    if db_user:
        update_payload_dict = {
            key: value for key, value in profile_data.items()
            if getattr(db_user, key, None) != value
        }
        if update_payload_dict:
            logger.debug("user_profile_updating", user_id=str(db_user.id), fields=sorted(update_payload_dict))
            db_user = await update_user(db=db, db_obj=db_user, obj_in=UserUpdate(**update_payload_dict))
    else:
        logger.info("user_creating", google_id=google_id)
        db_user = await create_user(db=db, user_in=UserCreate(google_id=google_id, **profile_data))

    return db_user
