# incomesplit/crud/crud_category.py
import structlog
import uuid
from typing import Optional, List, Union

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.future import select
from sqlalchemy import func

from incomesplit.core.exceptions import ValidationError
from incomesplit.db.models.category import Category as CategoryModel, CategoryType
from incomesplit.db.models.transaction import Transaction as TransactionModel
from incomesplit.schemas.category import CategoryCreate, CategoryUpdate, CategoryBudgetUpdate

logger = structlog.get_logger(__name__)

# Набор категорий, который получает каждый новый пользователь
DEFAULT_CATEGORIES = {
    CategoryType.income: [
        ("Salary", "pi pi-money-bill", "#4CAF50"),
        ("Freelance", "pi pi-briefcase", "#2196F3"),
        ("Investments", "pi pi-chart-line", "#9C27B0"),
        ("Gifts", "pi pi-gift", "#E91E63"),
        ("Other", "pi pi-tag", "#607D8B"),
    ],
    CategoryType.needs: [
        ("Rent/Mortgage", "pi pi-home", "#F44336"),
        ("Groceries", "pi pi-shopping-cart", "#4CAF50"),
        ("Utilities", "pi pi-bolt", "#FFC107"),
        ("Transportation", "pi pi-car", "#2196F3"),
        ("Healthcare", "pi pi-heart", "#E91E63"),
        ("Insurance", "pi pi-shield", "#9C27B0"),
        ("Education", "pi pi-book", "#3F51B5"),
        ("Personal Care", "pi pi-user", "#00BCD4"),
    ],
    CategoryType.wants: [
        ("Dining Out", "pi pi-utensils", "#FF9800"),
        ("Entertainment", "pi pi-ticket", "#9C27B0"),
        ("Shopping", "pi pi-shopping-bag", "#E91E63"),
        ("Travel", "pi pi-globe", "#2196F3"),
        ("Hobbies", "pi pi-palette", "#4CAF50"),
        ("Subscriptions", "pi pi-desktop", "#607D8B"),
    ],
    CategoryType.savings: [
        ("Emergency Fund", "pi pi-shield", "#F44336"),
        ("Retirement", "pi pi-calendar", "#4CAF50"),
        ("Investments", "pi pi-chart-line", "#2196F3"),
        ("Debt Repayment", "pi pi-credit-card", "#FF9800"),
        ("Goals", "pi pi-flag", "#9C27B0"),
    ],
}

# Категория, которую резолвер подставляет, когда транзакция пришла без категории
DEFAULT_CATEGORY_FOR_TYPE = {
    CategoryType.income: ("Salary", "pi pi-money-bill", "#4CAF50"),
    CategoryType.needs: ("Groceries", "pi pi-shopping-cart", "#4CAF50"),
    CategoryType.wants: ("Shopping", "pi pi-shopping-bag", "#E91E63"),
    CategoryType.savings: ("Emergency Fund", "pi pi-shield", "#F44336"),
}

# --- Read Operations ---

async def get_user_category(
    db: AsyncSession,
    *,
    category_id: uuid.UUID,
    user_id: uuid.UUID
) -> Optional[CategoryModel]:
    """
    Получить категорию по ID, только если она принадлежит пользователю.
    """
    result = await db.execute(
        select(CategoryModel).filter(CategoryModel.id == category_id, CategoryModel.user_id == user_id)
    )
    return result.scalar_one_or_none()

async def get_category_by_name(
    db: AsyncSession,
    *,
    user_id: uuid.UUID,
    name: str,
    category_type: CategoryType
) -> Optional[CategoryModel]:
    result = await db.execute(
        select(CategoryModel).filter(
            CategoryModel.user_id == user_id,
            CategoryModel.name == name,
            CategoryModel.type == category_type
        )
    )
    return result.scalar_one_or_none()

async def get_categories_by_user(
    db: AsyncSession,
    *,
    user_id: uuid.UUID,
    category_type: Optional[CategoryType] = None
) -> List[CategoryModel]:
    stmt = select(CategoryModel).filter(CategoryModel.user_id == user_id)
    if category_type is not None:
        stmt = stmt.filter(CategoryModel.type == category_type)
    stmt = stmt.order_by(CategoryModel.type, CategoryModel.name) # Сортируем для предсказуемого порядка
    result = await db.execute(stmt)
    return list(result.scalars().all())

async def count_category_transactions(db: AsyncSession, *, category_id: uuid.UUID, user_id: uuid.UUID) -> int:
    result = await db.execute(
        select(func.count(TransactionModel.id)).filter(
            TransactionModel.category_id == category_id,
            TransactionModel.user_id == user_id
        )
    )
    return result.scalar_one()

# --- Идемпотентный find-or-create ---

async def get_or_create_category(
    db: AsyncSession,
    *,
    user_id: uuid.UUID,
    name: str,
    category_type: CategoryType,
    icon: str,
    color: str,
    is_custom: bool = False
) -> CategoryModel:
    """
    Найти категорию (user, name, type) или создать ее.

    Вставка идет в SAVEPOINT: если параллельный запрос успел создать ту же категорию,
    уникальный индекс отклонит вставку, и мы перечитываем уже существующую запись.
    Существующие категории не изменяются.
    """
    existing = await get_category_by_name(db, user_id=user_id, name=name, category_type=category_type)
    if existing:
        return existing

    db_obj = CategoryModel(
        user_id=user_id,
        name=name,
        type=category_type,
        icon=icon,
        color=color,
        is_custom=is_custom
    )
    try:
        async with db.begin_nested():
            db.add(db_obj)
            await db.flush()
    except IntegrityError:
        logger.info("category_created_concurrently", user_id=str(user_id), name=name, category_type=category_type.value)
        existing = await get_category_by_name(db, user_id=user_id, name=name, category_type=category_type)
        if existing is None:
            raise
        return existing

    logger.info("category_created", user_id=str(user_id), name=name, category_type=category_type.value)
    return db_obj

async def get_or_create_default_category(
    db: AsyncSession,
    *,
    user_id: uuid.UUID,
    category_type: CategoryType
) -> CategoryModel:
    name, icon, color = DEFAULT_CATEGORY_FOR_TYPE[category_type]
    return await get_or_create_category(
        db, user_id=user_id, name=name, category_type=category_type, icon=icon, color=color, is_custom=False
    )

async def resolve_category(
    db: AsyncSession,
    *,
    user_id: uuid.UUID,
    category_type: CategoryType,
    category_id: Optional[uuid.UUID] = None
) -> uuid.UUID:
    """
    Возвращает ID категории для новой транзакции.

    Явно указанная категория используется, если она существует и принадлежит пользователю.
    Иначе (или при ошибке чтения) берется категория по умолчанию для типа, при необходимости
    она создается. Подмена молчаливая: вызывающий код ошибку не получает.

    Первая попытка идет в SAVEPOINT: при ошибке откатывается только он,
    и повторная попытка работает с исправной сессией.
    """
    try:
        async with db.begin_nested():
            if category_id is not None:
                category = await get_user_category(db, category_id=category_id, user_id=user_id)
                if category:
                    return category.id
                logger.info("category_fallback_to_default", user_id=str(user_id), category_id=str(category_id))
            return (await get_or_create_default_category(db, user_id=user_id, category_type=category_type)).id
    except SQLAlchemyError:
        logger.exception("category_resolve_failed", user_id=str(user_id), category_type=category_type.value)

    # Повторная попытка только через идемпотентный путь создания
    return (await get_or_create_default_category(db, user_id=user_id, category_type=category_type)).id

async def require_user_category(
    db: AsyncSession,
    *,
    category_id: uuid.UUID,
    user_id: uuid.UUID
) -> CategoryModel:
    # Для явного изменения категории в обновлении подмена не допускается
    category = await get_user_category(db, category_id=category_id, user_id=user_id)
    if not category:
        raise ValidationError("Invalid category selected or category does not belong to user")
    return category

# --- Create Operations ---

async def create_default_categories(db: AsyncSession, *, user_id: uuid.UUID) -> List[CategoryModel]:
    """
    Создает стандартный набор категорий. Повторный вызов ничего не дублирует.
    """
    created = []
    for category_type, defaults in DEFAULT_CATEGORIES.items():
        for name, icon, color in defaults:
            created.append(await get_or_create_category(
                db, user_id=user_id, name=name, category_type=category_type, icon=icon, color=color, is_custom=False
            ))
    logger.info("default_categories_ensured", user_id=str(user_id))
    return created

async def create_category(
    db: AsyncSession,
    *,
    obj_in: CategoryCreate,
    user_id: uuid.UUID
) -> CategoryModel:
    """
    Создать пользовательскую категорию.
    """
    existing = await get_category_by_name(db, user_id=user_id, name=obj_in.name, category_type=obj_in.type)
    if existing:
        raise ValidationError("A category with this name already exists for this type")

    db_obj = CategoryModel(
        user_id=user_id,
        name=obj_in.name,
        type=obj_in.type,
        icon=obj_in.icon or "pi pi-tag",
        color=obj_in.color or "#607D8B",
        is_custom=True
    )
    try:
        async with db.begin_nested():
            db.add(db_obj)
            await db.flush()
    except IntegrityError:
        raise ValidationError("A category with this name already exists for this type")
    return db_obj

# --- Update Operations ---

async def update_category(
    db: AsyncSession,
    *,
    db_obj: CategoryModel,
    obj_in: Union[CategoryUpdate, dict]
) -> CategoryModel:
    if isinstance(obj_in, dict):
        update_data = obj_in
    else:
        update_data = obj_in.model_dump(exclude_unset=True, exclude_none=True)

    new_name = update_data.get("name")
    if new_name and new_name != db_obj.name:
        duplicate = await get_category_by_name(db, user_id=db_obj.user_id, name=new_name, category_type=db_obj.type)
        if duplicate:
            raise ValidationError("A category with this name already exists for this type")

    for field, value in update_data.items():
        if field in ("name", "icon", "color"):
            setattr(db_obj, field, value)

    db.add(db_obj)
    await db.flush()
    return db_obj

async def update_category_budget(
    db: AsyncSession,
    *,
    db_obj: CategoryModel,
    obj_in: CategoryBudgetUpdate
) -> CategoryModel:
    if obj_in.percentage is None and obj_in.amount is None:
        raise ValidationError("Either percentage or amount must be provided")

    if obj_in.percentage is not None:
        db_obj.budget_percentage = obj_in.percentage
    if obj_in.amount is not None:
        db_obj.budget_amount = obj_in.amount

    db.add(db_obj)
    await db.flush()
    return db_obj

# --- Delete Operation ---

async def remove_category(db: AsyncSession, *, db_obj: CategoryModel) -> CategoryModel:
    """
    Удалить категорию. Стандартные категории и категории с транзакциями не удаляются.
    """
    if not db_obj.is_custom:
        raise ValidationError("Default categories cannot be deleted")

    transaction_count = await count_category_transactions(db, category_id=db_obj.id, user_id=db_obj.user_id)
    if transaction_count > 0:
        raise ValidationError(f"Cannot delete category that is used in {transaction_count} transactions")

    await db.delete(db_obj)
    await db.flush()
    return db_obj
