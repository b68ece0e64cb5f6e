# incomesplit/crud/crud_income.py
"""
Распределение дохода по корзинам Needs / Wants / Savings.

Доход хранится как одна транзакция типа Income и три дочерние транзакции распределения
(is_distribution=True, is_editable=False), связанные в обе стороны:
parent_transaction_id у детей и distributed_{needs,wants,savings}_id у дохода.

Записи выполняются последовательными flush в рамках сессии запроса. Если ссылка на
дочернюю транзакцию отсутствует или ведет в никуда (частичный сбой в прошлом, удаление
вне приложения), обновление дохода сначала подбирает уцелевшее распределение этого дохода
без ссылки и только затем создает недостающую запись заново.
Параллельные правки одного дохода отсекаются счетчиком версий (ConflictError).
"""
import structlog
import uuid
from typing import Dict, List, NamedTuple, Optional, Set, Union

from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.future import select

from incomesplit.core.distribution import (
    DISTRIBUTION_ROLES,
    allocate,
    allocation_category_name,
    allocation_description,
    check_distribution_total,
)
from incomesplit.core.exceptions import CastError, ForbiddenError, NotFoundError, UnauthorizedError
from incomesplit.crud import crud_category, crud_transaction, crud_user
from incomesplit.crud.crud_transaction import default_status, flush_or_conflict
from incomesplit.db.models.category import CategoryType
from incomesplit.db.models.transaction import (
    Transaction as TransactionModel,
    TransactionType,
    TransactionSource,
    DistributionStatus,
)
from incomesplit.db.models.user import User as UserModel
from incomesplit.schemas.income import IncomeCreate, IncomeUpdate
from incomesplit.schemas.transaction import SavingsTransactionUpdate, TransactionUpdate

logger = structlog.get_logger(__name__)


class IncomeWithDistributions(NamedTuple):
    income: TransactionModel
    distributed: Dict[str, Optional[TransactionModel]]


def coerce_uuid(value: Union[uuid.UUID, str], label: str = "transaction id") -> uuid.UUID:
    if isinstance(value, uuid.UUID):
        return value
    try:
        return uuid.UUID(str(value))
    except (ValueError, TypeError, AttributeError):
        raise CastError(f"Invalid {label}: {value!r}")


def _refresh_distribution_status(income: TransactionModel) -> None:
    linked = [income.get_distributed_id(role) for role in DISTRIBUTION_ROLES]
    if all(linked):
        income.distribution_status = DistributionStatus.distributed
    elif any(linked):
        income.distribution_status = DistributionStatus.partially_failed
    else:
        income.distribution_status = DistributionStatus.pending


async def _get_user(db: AsyncSession, user_id: uuid.UUID) -> UserModel:
    user = await crud_user.get_user(db, user_id=user_id)
    if not user:
        raise NotFoundError("User not found")
    return user


async def _get_user_income(db: AsyncSession, *, transaction_id: uuid.UUID, user_id: uuid.UUID) -> TransactionModel:
    result = await db.execute(
        select(TransactionModel).filter(
            TransactionModel.id == transaction_id,
            TransactionModel.user_id == user_id,
            TransactionModel.transaction_type == TransactionType.income
        )
    )
    income = result.scalar_one_or_none()
    if not income:
        raise NotFoundError("Income transaction not found")
    return income


async def _bucket_category_id(db: AsyncSession, *, user_id: uuid.UUID, role: str) -> Optional[uuid.UUID]:
    # Отдельная категория для корзины ("Needs Allocation" и т.п.), если пользователь ее завел
    category = await crud_category.get_category_by_name(
        db,
        user_id=user_id,
        name=allocation_category_name(role),
        category_type=CategoryType[role]
    )
    return category.id if category else None


async def _build_distribution(
    db: AsyncSession,
    *,
    income: TransactionModel,
    role: str,
    amount: float
) -> TransactionModel:
    category_id = await _bucket_category_id(db, user_id=income.user_id, role=role) or income.category_id
    child = TransactionModel(
        user_id=income.user_id,
        description=allocation_description(income.description, role),
        amount=amount,
        category_id=category_id,
        transaction_type=TransactionType[role],
        date=income.date,
        currency=income.currency,
        source=TransactionSource.distribution,
        status=default_status(TransactionSource.distribution),
        is_distribution=True,
        is_editable=False, # Менять только через родительский доход
        parent_transaction_id=income.id
    )
    db.add(child)
    return child


async def _unlinked_distributions(
    db: AsyncSession,
    income: TransactionModel,
    linked_ids: Set[uuid.UUID]
) -> List[TransactionModel]:
    # Распределения, которые указывают на доход, но ссылка на них в доход не записана
    result = await db.execute(
        select(TransactionModel)
        .filter(
            TransactionModel.parent_transaction_id == income.id,
            TransactionModel.user_id == income.user_id,
            TransactionModel.is_distribution.is_(True)
        )
        .order_by(TransactionModel.created_at)
    )
    return [child for child in result.scalars().all() if child.id not in linked_ids]


class IncomeChildren(NamedTuple):
    by_role: Dict[str, Optional[TransactionModel]]
    strays: List[TransactionModel] # Лишние непривязанные распределения, подлежат удалению


async def _load_children(db: AsyncSession, income: TransactionModel) -> IncomeChildren:
    """
    Дочерние транзакции по ролям.

    Сначала по ссылкам дохода; ссылка на чужую/удаленную запись не учитывается.
    Для роли без ссылки подбирается самое раннее непривязанное распределение этого дохода
    того же типа. Остальные непривязанные распределения возвращаются в strays.
    """
    by_role: Dict[str, Optional[TransactionModel]] = {}
    for role in DISTRIBUTION_ROLES:
        child_id = income.get_distributed_id(role)
        child = await crud_transaction.get_transaction(db, transaction_id=child_id) if child_id else None
        if child is not None and not (child.is_distribution and child.user_id == income.user_id):
            logger.warning("distribution_link_ignored", income_id=str(income.id), role=role, linked_id=str(child.id))
            child = None
        by_role[role] = child

    linked_ids = {child.id for child in by_role.values() if child is not None}
    strays = []
    for orphan in await _unlinked_distributions(db, income, linked_ids):
        role = orphan.transaction_type.name
        if role in by_role and by_role[role] is None:
            by_role[role] = orphan
        else:
            strays.append(orphan)
    return IncomeChildren(by_role=by_role, strays=strays)


def _links_complete(income: TransactionModel, children: IncomeChildren) -> bool:
    return not children.strays and all(
        child is not None and income.get_distributed_id(role) == child.id
        for role, child in children.by_role.items()
    )


# --- Create ---

async def create_income(
    db: AsyncSession,
    *,
    user_id: uuid.UUID,
    obj_in: IncomeCreate
) -> IncomeWithDistributions:
    """
    Создать доход и три транзакции распределения.

    Суммы считаются по процентам из запроса (не обязательно совпадающим с сохраненными
    предпочтениями). Если проценты отличаются от предпочтений пользователя,
    предпочтения перезаписываются.
    """
    percentages = obj_in.distribution.model_dump()
    check_distribution_total(**percentages)

    user = await _get_user(db, user_id)

    category_id = await crud_category.resolve_category(
        db, user_id=user.id, category_type=CategoryType.income, category_id=obj_in.category_id
    )

    income = TransactionModel(
        user_id=user.id,
        description=obj_in.description,
        amount=obj_in.amount,
        category_id=category_id,
        transaction_type=TransactionType.income,
        date=obj_in.date,
        currency=obj_in.currency or user.preferred_currency,
        notes=obj_in.notes or "",
        tag=obj_in.tag or "",
        source=TransactionSource.manual,
        status=default_status(TransactionSource.manual),
        is_distribution=False,
        is_editable=True,
        distribution_status=DistributionStatus.pending
    )
    db.add(income)
    await db.flush()
    logger.info("income_saved", income_id=str(income.id), user_id=str(user.id))

    amounts = allocate(income.amount, percentages)
    distributed = {}
    for role in DISTRIBUTION_ROLES:
        distributed[role] = await _build_distribution(db, income=income, role=role, amount=amounts[role])
    await db.flush()
    logger.info("distributions_saved", income_id=str(income.id), amounts=amounts)

    for role, child in distributed.items():
        income.set_distributed_id(role, child.id)
    _refresh_distribution_status(income)
    await flush_or_conflict(db)
    logger.debug("distribution_links_written", income_id=str(income.id))

    if crud_user.preferences_differ(user, percentages):
        await crud_user.set_budget_percentages(db, db_obj=user, percentages=percentages)

    return IncomeWithDistributions(income=income, distributed=distributed)


# --- Update ---

async def update_income(
    db: AsyncSession,
    *,
    transaction_id: Union[uuid.UUID, str],
    user_id: uuid.UUID,
    obj_in: IncomeUpdate
) -> IncomeWithDistributions:
    """
    Обновить доход и пересчитать его распределения.

    Суммы пересчитываются заново от новой суммы дохода (а не масштабируются от старых):
    по процентам из запроса, если они переданы, иначе по сохраненным предпочтениям.
    Отсутствующие распределения создаются.
    """
    income = await _get_user_income(db, transaction_id=coerce_uuid(transaction_id), user_id=user_id)
    user = await _get_user(db, user_id)

    explicit_distribution = obj_in.distribution is not None
    if explicit_distribution:
        percentages = obj_in.distribution.model_dump()
        check_distribution_total(**percentages)
    else:
        percentages = user.percentages()

    update_data = obj_in.model_dump(exclude_unset=True, exclude_none=True, exclude={"distribution"})
    if "category_id" in update_data:
        await crud_category.require_user_category(db, category_id=update_data["category_id"], user_id=user_id)
    for field, value in update_data.items():
        setattr(income, field, value)
    await flush_or_conflict(db)
    logger.info("income_updated", income_id=str(income.id), fields=sorted(update_data))

    amounts = allocate(income.amount, percentages)
    loaded = await _load_children(db, income)
    children = loaded.by_role
    recreated: List[str] = [role for role in DISTRIBUTION_ROLES if children[role] is None]
    # Сначала недостающие: поиск категории корзины делает autoflush, правки ниже должны уйти через flush_or_conflict
    for role in recreated:
        logger.warning("distribution_missing_recreating", income_id=str(income.id), role=role)
        children[role] = await _build_distribution(db, income=income, role=role, amount=amounts[role])
    for role in DISTRIBUTION_ROLES:
        if role in recreated:
            continue
        child = children[role]
        child.description = allocation_description(income.description, role)
        child.amount = amounts[role]
        child.date = income.date
        child.currency = income.currency
    for stray in loaded.strays:
        logger.warning("distribution_duplicate_removed", income_id=str(income.id), child_id=str(stray.id))
        await db.delete(stray)
    await flush_or_conflict(db)

    for role, child in children.items():
        if income.get_distributed_id(role) != child.id:
            if role not in recreated:
                logger.warning("distribution_link_restored", income_id=str(income.id), role=role, child_id=str(child.id))
            income.set_distributed_id(role, child.id)
    _refresh_distribution_status(income)
    await flush_or_conflict(db)
    logger.info("distributions_recomputed", income_id=str(income.id), amounts=amounts)

    if explicit_distribution and crud_user.preferences_differ(user, percentages):
        await crud_user.set_budget_percentages(db, db_obj=user, percentages=percentages)

    return IncomeWithDistributions(income=income, distributed=children)


# --- Delete ---

async def delete_income(
    db: AsyncSession,
    *,
    transaction_id: Union[uuid.UUID, str],
    user_id: uuid.UUID
) -> None:
    """
    Удалить доход вместе с распределениями. Сначала дети, затем сам доход.
    """
    income = await _get_user_income(db, transaction_id=coerce_uuid(transaction_id), user_id=user_id)

    child_ids = {income.get_distributed_id(role) for role in DISTRIBUTION_ROLES} - {None}
    # Плюс распределения, ссылка на которые не успела записаться в доход
    orphans = await db.execute(
        select(TransactionModel.id).filter(
            TransactionModel.parent_transaction_id == income.id,
            TransactionModel.is_distribution.is_(True)
        )
    )
    child_ids.update(orphans.scalars().all())

    for child_id in child_ids:
        child = await crud_transaction.get_transaction(db, transaction_id=child_id)
        if child is not None and child.user_id == income.user_id:
            await db.delete(child)
    await flush_or_conflict(db)
    logger.info("distributions_deleted", income_id=str(income.id), count=len(child_ids))

    await db.delete(income)
    await flush_or_conflict(db)
    logger.info("income_deleted", income_id=str(income.id))


# --- Reconciliation ---

async def reconcile_income_distributions(db: AsyncSession, *, user_id: uuid.UUID) -> int:
    """
    Восстанавливает распределения у всех доходов пользователя, где они неполные.
    Возвращает количество исправленных доходов.
    """
    result = await db.execute(
        select(TransactionModel).filter(
            TransactionModel.user_id == user_id,
            TransactionModel.transaction_type == TransactionType.income
        )
    )
    healed = 0
    for income in result.scalars().all():
        children = await _load_children(db, income)
        if _links_complete(income, children) and income.distribution_status == DistributionStatus.distributed:
            continue
        await update_income(db, transaction_id=income.id, user_id=user_id, obj_in=IncomeUpdate())
        healed += 1
    if healed:
        logger.info("incomes_reconciled", user_id=str(user_id), healed=healed)
    return healed


# --- Защита от прямого изменения распределений ---

async def _get_owned_transaction(
    db: AsyncSession,
    *,
    transaction_id: Union[uuid.UUID, str],
    user_id: uuid.UUID
) -> TransactionModel:
    transaction = await crud_transaction.get_transaction(db, transaction_id=coerce_uuid(transaction_id))
    if not transaction:
        raise NotFoundError("Transaction not found")
    if transaction.user_id != user_id:
        raise UnauthorizedError("Not authorized")
    return transaction


def _ensure_directly_mutable(transaction: TransactionModel, action: str) -> None:
    if transaction.is_distribution or not transaction.is_editable:
        verb = "edit" if action == "edited" else "delete"
        raise ForbiddenError(
            f"This transaction cannot be directly {action} because it is a system-generated distribution. "
            f"Please {verb} the parent income transaction (id {transaction.parent_transaction_id}) instead."
        )


async def update_transaction_guarded(
    db: AsyncSession,
    *,
    transaction_id: Union[uuid.UUID, str],
    user_id: uuid.UUID,
    obj_in: TransactionUpdate
) -> Union[IncomeWithDistributions, TransactionModel]:
    """
    Общая точка обновления: распределения запрещены, доход уходит в update_income,
    остальные транзакции обновляются без каскада.
    """
    transaction = await _get_owned_transaction(db, transaction_id=transaction_id, user_id=user_id)
    _ensure_directly_mutable(transaction, "edited")

    if transaction.transaction_type == TransactionType.income:
        return await update_income(db, transaction_id=transaction.id, user_id=user_id, obj_in=obj_in)

    update_data = obj_in.model_dump(exclude_unset=True, exclude_none=True, exclude={"distribution"})
    if "category_id" in update_data:
        await crud_category.require_user_category(db, category_id=update_data["category_id"], user_id=user_id)
    return await crud_transaction.update_transaction(db, db_obj=transaction, obj_in=update_data)


async def delete_transaction_guarded(
    db: AsyncSession,
    *,
    transaction_id: Union[uuid.UUID, str],
    user_id: uuid.UUID
) -> str:
    """
    Общая точка удаления. Возвращает сообщение для ответа.
    """
    transaction = await _get_owned_transaction(db, transaction_id=transaction_id, user_id=user_id)
    _ensure_directly_mutable(transaction, "deleted")

    if transaction.transaction_type == TransactionType.income:
        await delete_income(db, transaction_id=transaction.id, user_id=user_id)
        return "Income transaction and distributions deleted successfully"

    await crud_transaction.remove_transaction(db, db_obj=transaction)
    return "Transaction deleted successfully"


async def update_savings_transaction(
    db: AsyncSession,
    *,
    transaction_id: Union[uuid.UUID, str],
    user_id: uuid.UUID,
    obj_in: SavingsTransactionUpdate
) -> TransactionModel:
    """
    Обновить вклад или снятие с накоплений. Распределения дохода в Savings так не меняются.
    """
    transaction = await _get_owned_transaction(db, transaction_id=transaction_id, user_id=user_id)
    if transaction.transaction_type != TransactionType.savings:
        raise NotFoundError("Savings transaction not found")
    _ensure_directly_mutable(transaction, "edited")

    update_data = obj_in.model_dump(exclude_unset=True, exclude_none=True)
    if "category_id" in update_data:
        await crud_category.require_user_category(db, category_id=update_data["category_id"], user_id=user_id)
    return await crud_transaction.update_transaction(db, db_obj=transaction, obj_in=update_data)
