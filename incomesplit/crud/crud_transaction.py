# incomesplit/crud/crud_transaction.py
import structlog
import uuid
from datetime import datetime
from typing import Optional, List, Union, Dict, Any, Tuple

from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.future import select
from sqlalchemy.orm.exc import StaleDataError
from sqlalchemy import func, desc, and_

from incomesplit.core.exceptions import ConflictError
from incomesplit.crud import crud_category
from incomesplit.db.models.category import CategoryType
from incomesplit.db.models.transaction import (
    Transaction as TransactionModel,
    TransactionType,
    TransactionSource,
    TransactionStatus,
    SavingsType,
)
from incomesplit.db.models.user import User as UserModel
from incomesplit.schemas.transaction import TransactionCreate, TransactionUpdate, SavingsTransactionCreate

logger = structlog.get_logger(__name__)

# Поля, которые разрешено менять обычным обновлением
UPDATABLE_FIELDS = ("description", "amount", "category_id", "date", "currency", "notes", "tag", "savings_type")


def default_status(source: TransactionSource) -> TransactionStatus:
    # Ручные и системные записи сразу считаются категоризированными, импорт ждет проверки
    if source in (TransactionSource.manual, TransactionSource.distribution):
        return TransactionStatus.categorized
    return TransactionStatus.pending


async def flush_or_conflict(db: AsyncSession) -> None:
    """
    flush с переводом ошибки оптимистической блокировки в ConflictError.
    """
    try:
        await db.flush()
    except StaleDataError as e:
        logger.warning("concurrent_modification_detected", error=str(e))
        raise ConflictError("The transaction was modified by another request, please retry")

# --- Read Operations ---

async def get_transaction(db: AsyncSession, transaction_id: uuid.UUID) -> Optional[TransactionModel]:
    """
    Получить транзакцию по ее ID (без проверки владельца).
    """
    result = await db.execute(select(TransactionModel).filter(TransactionModel.id == transaction_id))
    return result.scalar_one_or_none()

async def get_transactions_by_user(
    db: AsyncSession,
    *,
    user_id: uuid.UUID,
    skip: int = 0,
    limit: int = 50,
    filters: Dict[str, Any] # Словарь с фильтрами
) -> Tuple[List[TransactionModel], int]:
    """
    Получить список транзакций пользователя с фильтрацией и пагинацией.
    Возвращает кортеж: (список транзакций, общее количество по фильтрам).
    """
    conditions = [TransactionModel.user_id == user_id]
    if filters.get("category_id"):
        conditions.append(TransactionModel.category_id == filters["category_id"])
    if filters.get("transaction_type"):
        conditions.append(TransactionModel.transaction_type == TransactionType(filters["transaction_type"]))
    if not filters.get("include_distributions", True):
        conditions.append(TransactionModel.is_distribution.is_(False))

    start_date = filters.get("start_date")
    end_date = filters.get("end_date")
    if start_date:
        conditions.append(TransactionModel.date >= datetime.combine(start_date, datetime.min.time()))
    if end_date:
        conditions.append(TransactionModel.date <= datetime.combine(end_date, datetime.max.time()))

    count_query = select(func.count(TransactionModel.id)).where(and_(*conditions))
    total_count_res = await db.execute(count_query)
    total_count = total_count_res.scalar_one()

    query = (
        select(TransactionModel)
        .where(and_(*conditions))
        .order_by(desc(TransactionModel.date), desc(TransactionModel.created_at))
        .offset(skip)
        .limit(limit)
    )
    result = await db.execute(query)
    return list(result.scalars().all()), total_count

async def get_transaction_summary(db: AsyncSession, *, user_id: uuid.UUID) -> Dict[str, Dict[str, float]]:
    """
    Движение средств по корзинам: {"income" | "needs" | "wants" | "savings": {"in", "out", "hold"}}.

    Доход - приход в income. Распределение и вклад в накопления - приход в свою корзину,
    остальные транзакции (включая снятие с накоплений) - расход из нее. hold = in - out.
    """
    query = (
        select(
            TransactionModel.transaction_type,
            TransactionModel.is_distribution,
            TransactionModel.savings_type,
            func.coalesce(func.sum(TransactionModel.amount), 0.0)
        )
        .filter(TransactionModel.user_id == user_id)
        .group_by(TransactionModel.transaction_type, TransactionModel.is_distribution, TransactionModel.savings_type)
    )
    result = await db.execute(query)
    summary = {transaction_type.name: {"in": 0.0, "out": 0.0, "hold": 0.0} for transaction_type in TransactionType}
    for transaction_type, is_distribution, savings_type, total in result.all():
        transaction_type = TransactionType(transaction_type)
        inflow = (
            transaction_type == TransactionType.income
            or is_distribution
            or savings_type == SavingsType.deposit
        )
        summary[transaction_type.name]["in" if inflow else "out"] += float(total)
    for ledger in summary.values():
        ledger["hold"] = ledger["in"] - ledger["out"]
    return summary

# --- Create Operations ---

async def _add_manual_transaction(
    db: AsyncSession,
    *,
    user: UserModel,
    obj_in: Union[TransactionCreate, SavingsTransactionCreate],
    transaction_type: TransactionType,
    savings_type: Optional[SavingsType] = None
) -> TransactionModel:
    # Если категория не указана или чужая, подставляется категория по умолчанию для типа
    category_id = await crud_category.resolve_category(
        db,
        user_id=user.id,
        category_type=CategoryType(transaction_type.value),
        category_id=obj_in.category_id
    )

    db_obj = TransactionModel(
        user_id=user.id,
        description=obj_in.description,
        amount=obj_in.amount,
        category_id=category_id,
        transaction_type=transaction_type,
        date=obj_in.date,
        currency=obj_in.currency or user.preferred_currency,
        notes=obj_in.notes,
        tag=obj_in.tag,
        source=TransactionSource.manual,
        status=default_status(TransactionSource.manual),
        savings_type=savings_type
    )
    db.add(db_obj)
    await db.flush()
    logger.info(
        "transaction_created",
        transaction_id=str(db_obj.id),
        user_id=str(user.id),
        transaction_type=transaction_type.value,
        savings_type=savings_type.value if savings_type else None
    )
    return db_obj

async def create_transaction(
    db: AsyncSession,
    *,
    obj_in: TransactionCreate,
    user: UserModel
) -> TransactionModel:
    """
    Создать обычную (не доходную) транзакцию.
    """
    return await _add_manual_transaction(db, user=user, obj_in=obj_in, transaction_type=obj_in.transaction_type)

async def create_savings_transaction(
    db: AsyncSession,
    *,
    obj_in: SavingsTransactionCreate,
    user: UserModel
) -> TransactionModel:
    """
    Вклад в накопления или снятие с них: транзакция типа Savings с направлением savings_type.
    """
    return await _add_manual_transaction(
        db, user=user, obj_in=obj_in, transaction_type=TransactionType.savings, savings_type=obj_in.savings_type
    )

# --- Update Operation ---

async def update_transaction(
    db: AsyncSession,
    *,
    db_obj: TransactionModel,
    obj_in: Union[TransactionUpdate, Dict[str, Any]]
) -> TransactionModel:
    """
    Обновить одну транзакцию без каскада.
    """
    if isinstance(obj_in, dict):
        update_data = obj_in
    else:
        update_data = obj_in.model_dump(exclude_unset=True, exclude_none=True)

    for field, value in update_data.items():
        if field in UPDATABLE_FIELDS:
            setattr(db_obj, field, value)

    db.add(db_obj)
    await flush_or_conflict(db)
    return db_obj

# --- Delete Operation ---

async def remove_transaction(db: AsyncSession, *, db_obj: TransactionModel) -> TransactionModel:
    await db.delete(db_obj)
    await flush_or_conflict(db)
    return db_obj
