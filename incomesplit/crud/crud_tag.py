# incomesplit/crud/crud_tag.py
import structlog
import uuid
from typing import Dict, List

from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.future import select

from incomesplit.db.models.tag import TransactionTag as TagModel
from incomesplit.db.models.transaction import TransactionType

logger = structlog.get_logger(__name__)

# --- Read Operations ---

async def get_tags(db: AsyncSession, *, user_id: uuid.UUID, transaction_type: TransactionType) -> List[str]:
    """
    Теги пользователя для одного типа транзакций в порядке добавления.
    """
    result = await db.execute(
        select(TagModel.name)
        .filter(TagModel.user_id == user_id, TagModel.transaction_type == transaction_type)
        .order_by(TagModel.created_at, TagModel.name)
    )
    return list(result.scalars().all())

async def get_tags_by_type(db: AsyncSession, *, user_id: uuid.UUID) -> Dict[str, List[str]]:
    result = await db.execute(
        select(TagModel.transaction_type, TagModel.name)
        .filter(TagModel.user_id == user_id)
        .order_by(TagModel.created_at, TagModel.name)
    )
    tags = {transaction_type.name: [] for transaction_type in TransactionType}
    for transaction_type, name in result.all():
        tags[TransactionType(transaction_type).name].append(name)
    return tags

# --- Create Operation ---

async def add_tag(
    db: AsyncSession,
    *,
    user_id: uuid.UUID,
    transaction_type: TransactionType,
    name: str
) -> List[str]:
    """
    Добавляет тег, если его еще нет. Возвращает все теги этого типа.
    """
    existing = await db.execute(
        select(TagModel.id).filter(
            TagModel.user_id == user_id,
            TagModel.transaction_type == transaction_type,
            TagModel.name == name
        )
    )
    if existing.scalar_one_or_none() is None:
        try:
            async with db.begin_nested():
                db.add(TagModel(user_id=user_id, transaction_type=transaction_type, name=name))
                await db.flush()
            logger.info("tag_added", user_id=str(user_id), transaction_type=transaction_type.value, tag=name)
        except IntegrityError:
            # Тот же тег добавлен параллельным запросом
            logger.info("tag_added_concurrently", user_id=str(user_id), transaction_type=transaction_type.value, tag=name)

    return await get_tags(db, user_id=user_id, transaction_type=transaction_type)
