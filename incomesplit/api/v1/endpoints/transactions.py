# incomesplit/api/v1/endpoints/transactions.py
import structlog
from fastapi import APIRouter, Depends, HTTPException, status, Query
from sqlalchemy.ext.asyncio import AsyncSession
from typing import Optional, Union
import uuid
from datetime import date # Для фильтрации по дате

from incomesplit import schemas
from incomesplit import crud
from incomesplit.core.exceptions import DomainError
from incomesplit.crud.crud_income import IncomeWithDistributions
from incomesplit.db import models
from incomesplit.api.v1 import deps
from incomesplit.db.models.transaction import TransactionType
from incomesplit.schemas.tag import parse_transaction_type

logger = structlog.get_logger(__name__)

router = APIRouter()


def _income_response(result: IncomeWithDistributions, message: str) -> schemas.IncomeDistributionResponse:
    distributed = {
        role: schemas.Transaction.model_validate(child) if child is not None else None
        for role, child in result.distributed.items()
    }
    return schemas.IncomeDistributionResponse(
        message=message,
        data=schemas.IncomeDistributionData(
            income_transaction=schemas.Transaction.model_validate(result.income),
            distributed_transactions=schemas.DistributedTransactions(**distributed)
        )
    )

# --- Доход и распределения ---

@router.post(
    "/income",
    response_model=schemas.IncomeDistributionResponse,
    status_code=status.HTTP_201_CREATED
)
async def create_income(
    *,
    income_in: schemas.IncomeCreate,
    db: AsyncSession = Depends(deps.get_async_db),
    current_user: models.User = Depends(deps.get_current_user)
):
    """
    Создать доход и автоматически распределить его по Needs / Wants / Savings.
    Если проценты отличаются от сохраненных, они становятся новыми предпочтениями пользователя.
    """
    try:
        result = await crud.crud_income.create_income(db=db, user_id=current_user.id, obj_in=income_in)
        return _income_response(result, "Income transaction created with distributions")
    except DomainError as e:
        raise deps.http_error(e)
    except Exception as e:
        logger.exception("income_create_failed", user_id=str(current_user.id))
        raise deps.server_error(e)


@router.post("/income/reconcile", response_model=schemas.ReconcileResponse)
async def reconcile_income(
    *,
    db: AsyncSession = Depends(deps.get_async_db),
    current_user: models.User = Depends(deps.get_current_user)
):
    """
    Достроить недостающие распределения у всех доходов пользователя.
    """
    try:
        healed = await crud.crud_income.reconcile_income_distributions(db=db, user_id=current_user.id)
        return schemas.ReconcileResponse(healed=healed)
    except DomainError as e:
        raise deps.http_error(e)
    except Exception as e:
        logger.exception("income_reconcile_failed", user_id=str(current_user.id))
        raise deps.server_error(e)

# --- Обычные транзакции ---

@router.post(
    "/expense",
    response_model=schemas.Transaction,
    status_code=status.HTTP_201_CREATED
)
async def create_transaction(
    *,
    transaction_in: schemas.TransactionCreate,
    db: AsyncSession = Depends(deps.get_async_db),
    current_user: models.User = Depends(deps.get_current_user)
):
    try:
        return await crud.crud_transaction.create_transaction(db=db, obj_in=transaction_in, user=current_user)
    except DomainError as e:
        raise deps.http_error(e)
    except Exception as e:
        logger.exception("transaction_create_failed", user_id=str(current_user.id))
        raise deps.server_error(e)


@router.get("/", response_model=schemas.TransactionListResponse)
async def read_transactions(
    *,
    db: AsyncSession = Depends(deps.get_async_db),
    current_user: models.User = Depends(deps.get_current_user),
    skip: int = Query(0, ge=0, description="Смещение для пагинации"),
    limit: int = Query(50, gt=0, le=200, description="Лимит записей на страницу"),
    category_id: Optional[uuid.UUID] = Query(None, description="Фильтр по ID категории"),
    transaction_type: Optional[TransactionType] = Query(None, description="Income / Needs / Wants / Savings"),
    start_date: Optional[date] = Query(None, description="Начальная дата (YYYY-MM-DD)"),
    end_date: Optional[date] = Query(None, description="Конечная дата (YYYY-MM-DD)"),
    include_distributions: bool = Query(True, description="Показывать транзакции распределения"),
):
    """
    Список транзакций пользователя с фильтрами и пагинацией, новые сверху.
    """
    filters = {
        "category_id": category_id,
        "transaction_type": transaction_type,
        "start_date": start_date,
        "end_date": end_date,
        "include_distributions": include_distributions,
    }
    try:
        transactions_list, total_count = await crud.crud_transaction.get_transactions_by_user(
            db=db,
            user_id=current_user.id,
            skip=skip,
            limit=limit,
            filters=filters
        )
        return schemas.TransactionListResponse(
            transactions=[schemas.Transaction.model_validate(t) for t in transactions_list],
            total_count=total_count
        )
    except Exception as e:
        logger.exception("transactions_read_failed", user_id=str(current_user.id))
        raise deps.server_error(e)


# --- Накопления: вклад и снятие ---

@router.post(
    "/savings",
    response_model=schemas.TransactionUpdateResponse,
    status_code=status.HTTP_201_CREATED
)
async def create_savings_transaction(
    *,
    savings_in: schemas.SavingsTransactionCreate,
    db: AsyncSession = Depends(deps.get_async_db),
    current_user: models.User = Depends(deps.get_current_user)
):
    try:
        transaction = await crud.crud_transaction.create_savings_transaction(db=db, obj_in=savings_in, user=current_user)
        return schemas.TransactionUpdateResponse(
            message=f"Savings {savings_in.savings_type.value} added successfully",
            data=schemas.Transaction.model_validate(transaction)
        )
    except DomainError as e:
        raise deps.http_error(e)
    except Exception as e:
        logger.exception("savings_create_failed", user_id=str(current_user.id))
        raise deps.server_error(e)


@router.put("/savings/{transaction_id}", response_model=schemas.TransactionUpdateResponse)
async def update_savings_transaction(
    *,
    transaction_id: uuid.UUID,
    savings_in: schemas.SavingsTransactionUpdate,
    db: AsyncSession = Depends(deps.get_async_db),
    current_user: models.User = Depends(deps.get_current_user)
):
    """
    Обновить вклад или снятие. Распределения дохода в Savings отсюда не меняются (403).
    """
    try:
        transaction = await crud.crud_income.update_savings_transaction(
            db=db, transaction_id=transaction_id, user_id=current_user.id, obj_in=savings_in
        )
        direction = transaction.savings_type.value if transaction.savings_type else "transaction"
        return schemas.TransactionUpdateResponse(
            message=f"Savings {direction} updated successfully",
            data=schemas.Transaction.model_validate(transaction)
        )
    except DomainError as e:
        raise deps.http_error(e)
    except Exception as e:
        logger.exception("savings_update_failed", transaction_id=str(transaction_id))
        raise deps.server_error(e)

# --- Теги ---

@router.get("/tags", response_model=Union[schemas.TagListResponse, schemas.TagsByTypeResponse])
async def read_transaction_tags(
    *,
    db: AsyncSession = Depends(deps.get_async_db),
    current_user: models.User = Depends(deps.get_current_user),
    type: Optional[str] = Query(None, description="income / needs / wants / savings, без учета регистра"),
):
    """
    Теги пользователя: для одного типа списком, без типа - словарем по всем типам.
    """
    if type is not None:
        try:
            transaction_type = parse_transaction_type(type)
        except ValueError as e:
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    try:
        if type is None:
            tags = await crud.crud_tag.get_tags_by_type(db=db, user_id=current_user.id)
            return schemas.TagsByTypeResponse(data=tags)
        tags = await crud.crud_tag.get_tags(db=db, user_id=current_user.id, transaction_type=transaction_type)
        return schemas.TagListResponse(data=tags)
    except Exception as e:
        logger.exception("tags_read_failed", user_id=str(current_user.id))
        raise deps.server_error(e)


@router.post("/tags", response_model=schemas.TagListResponse)
async def add_transaction_tag(
    *,
    tag_in: schemas.TransactionTagCreate,
    db: AsyncSession = Depends(deps.get_async_db),
    current_user: models.User = Depends(deps.get_current_user)
):
    """
    Добавить тег для типа транзакций. Повторное добавление ничего не дублирует.
    """
    try:
        tags = await crud.crud_tag.add_tag(
            db=db, user_id=current_user.id, transaction_type=tag_in.type, name=tag_in.tag
        )
        return schemas.TagListResponse(message="Tag added successfully", data=tags)
    except Exception as e:
        logger.exception("tag_add_failed", user_id=str(current_user.id))
        raise deps.server_error(e)

# /tags и /summary объявлены до /{transaction_id}, иначе попадут в параметр пути
@router.get("/summary", response_model=schemas.TransactionSummary)
async def read_transaction_summary(
    *,
    db: AsyncSession = Depends(deps.get_async_db),
    current_user: models.User = Depends(deps.get_current_user)
):
    try:
        summary = await crud.crud_transaction.get_transaction_summary(db=db, user_id=current_user.id)
        return schemas.TransactionSummary(**summary, currency=current_user.preferred_currency)
    except Exception as e:
        logger.exception("summary_read_failed", user_id=str(current_user.id))
        raise deps.server_error(e)

# --- Конкретная транзакция ---

@router.get("/{transaction_id}", response_model=schemas.Transaction)
async def read_transaction(
    *,
    transaction_id: uuid.UUID,
    db: AsyncSession = Depends(deps.get_async_db),
    current_user: models.User = Depends(deps.get_current_user)
):
    try:
        transaction = await crud.crud_transaction.get_transaction(db=db, transaction_id=transaction_id)
    except Exception as e:
        logger.exception("transaction_read_failed", transaction_id=str(transaction_id))
        raise deps.server_error(e)

    if not transaction:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Transaction not found")
    if transaction.user_id != current_user.id:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Not authorized")
    return transaction


@router.put(
    "/{transaction_id}",
    response_model=Union[schemas.IncomeDistributionResponse, schemas.TransactionUpdateResponse]
)
async def update_transaction(
    *,
    transaction_id: uuid.UUID,
    transaction_in: schemas.TransactionUpdate,
    db: AsyncSession = Depends(deps.get_async_db),
    current_user: models.User = Depends(deps.get_current_user)
):
    """
    Обновить транзакцию.
    Доход пересчитывает свои распределения; сами распределения напрямую не редактируются (403).
    """
    try:
        result = await crud.crud_income.update_transaction_guarded(
            db=db, transaction_id=transaction_id, user_id=current_user.id, obj_in=transaction_in
        )
    except DomainError as e:
        raise deps.http_error(e)
    except Exception as e:
        logger.exception("transaction_update_failed", transaction_id=str(transaction_id))
        raise deps.server_error(e)

    if isinstance(result, IncomeWithDistributions):
        return _income_response(result, "Income transaction and distributions updated successfully")
    return schemas.TransactionUpdateResponse(
        message="Transaction updated successfully",
        data=schemas.Transaction.model_validate(result)
    )


@router.delete("/{transaction_id}", response_model=schemas.DeleteResponse)
async def delete_transaction(
    *,
    transaction_id: uuid.UUID,
    db: AsyncSession = Depends(deps.get_async_db),
    current_user: models.User = Depends(deps.get_current_user)
):
    """
    Удалить транзакцию. Удаление дохода удаляет и его распределения.
    """
    try:
        message = await crud.crud_income.delete_transaction_guarded(
            db=db, transaction_id=transaction_id, user_id=current_user.id
        )
        return schemas.DeleteResponse(message=message)
    except DomainError as e:
        raise deps.http_error(e)
    except Exception as e:
        logger.exception("transaction_delete_failed", transaction_id=str(transaction_id))
        raise deps.server_error(e)
