# incomesplit/api/v1/endpoints/categories.py
import structlog
from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession
from typing import List, Optional
import uuid

from incomesplit import schemas
from incomesplit import crud
from incomesplit.core.exceptions import DomainError
from incomesplit.db import models
from incomesplit.db.models.category import CategoryType
from incomesplit.api.v1 import deps

logger = structlog.get_logger(__name__)

router = APIRouter()

# --- Вспомогательная зависимость: категория текущего пользователя ---
async def get_owned_category(
    category_id: uuid.UUID,
    db: AsyncSession = Depends(deps.get_async_db),
    current_user: models.User = Depends(deps.get_current_user)
) -> models.Category:
    # Чужая категория для пользователя неотличима от несуществующей
    category = await crud.crud_category.get_user_category(db=db, category_id=category_id, user_id=current_user.id)
    if not category:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Category not found")
    return category

# --- Эндпоинты ---

@router.get("/", response_model=List[schemas.Category])
async def read_categories(
    *,
    db: AsyncSession = Depends(deps.get_async_db),
    current_user: models.User = Depends(deps.get_current_user),
    type: Optional[CategoryType] = None
):
    """
    Категории пользователя. При первом обращении создается стандартный набор.
    """
    try:
        categories = await crud.crud_category.get_categories_by_user(db=db, user_id=current_user.id)
        if not categories:
            await crud.crud_category.create_default_categories(db=db, user_id=current_user.id)
        if not categories or type is not None:
            categories = await crud.crud_category.get_categories_by_user(
                db=db, user_id=current_user.id, category_type=type
            )
        return categories
    except Exception as e:
        logger.exception("categories_read_failed", user_id=str(current_user.id))
        raise deps.server_error(e)


@router.get("/type/{category_type}", response_model=List[schemas.Category])
async def read_categories_by_type(
    *,
    category_type: CategoryType,
    db: AsyncSession = Depends(deps.get_async_db),
    current_user: models.User = Depends(deps.get_current_user)
):
    try:
        return await crud.crud_category.get_categories_by_user(
            db=db, user_id=current_user.id, category_type=category_type
        )
    except Exception as e:
        logger.exception("categories_read_failed", user_id=str(current_user.id), category_type=category_type.value)
        raise deps.server_error(e)


@router.get("/{category_id}", response_model=schemas.Category)
async def read_category(category: models.Category = Depends(get_owned_category)):
    return category


@router.post("/", response_model=schemas.Category, status_code=status.HTTP_201_CREATED)
async def create_category(
    *,
    category_in: schemas.CategoryCreate,
    db: AsyncSession = Depends(deps.get_async_db),
    current_user: models.User = Depends(deps.get_current_user)
):
    """
    Создать пользовательскую категорию.
    """
    try:
        return await crud.crud_category.create_category(db=db, obj_in=category_in, user_id=current_user.id)
    except DomainError as e:
        raise deps.http_error(e)
    except Exception as e:
        logger.exception("category_create_failed", user_id=str(current_user.id))
        raise deps.server_error(e)


@router.put("/{category_id}", response_model=schemas.Category)
async def update_category(
    *,
    category_in: schemas.CategoryUpdate,
    category: models.Category = Depends(get_owned_category),
    db: AsyncSession = Depends(deps.get_async_db)
):
    """
    Изменить название, иконку или цвет. Тип категории не меняется.
    """
    try:
        return await crud.crud_category.update_category(db=db, db_obj=category, obj_in=category_in)
    except DomainError as e:
        raise deps.http_error(e)
    except Exception as e:
        logger.exception("category_update_failed", category_id=str(category.id))
        raise deps.server_error(e)


@router.put("/{category_id}/budget", response_model=schemas.Category)
async def update_category_budget(
    *,
    budget_in: schemas.CategoryBudgetUpdate,
    category: models.Category = Depends(get_owned_category),
    db: AsyncSession = Depends(deps.get_async_db)
):
    try:
        return await crud.crud_category.update_category_budget(db=db, db_obj=category, obj_in=budget_in)
    except DomainError as e:
        raise deps.http_error(e)
    except Exception as e:
        logger.exception("category_budget_update_failed", category_id=str(category.id))
        raise deps.server_error(e)


@router.delete("/{category_id}", response_model=schemas.DeleteResponse)
async def delete_category(
    *,
    category: models.Category = Depends(get_owned_category),
    db: AsyncSession = Depends(deps.get_async_db)
):
    """
    Удалить пользовательскую категорию, если на нее не ссылаются транзакции.
    """
    try:
        await crud.crud_category.remove_category(db=db, db_obj=category)
        return schemas.DeleteResponse(message="Category deleted successfully")
    except DomainError as e:
        raise deps.http_error(e)
    except Exception as e:
        logger.exception("category_delete_failed", category_id=str(category.id))
        raise deps.server_error(e)
