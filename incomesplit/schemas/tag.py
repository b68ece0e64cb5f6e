# incomesplit/schemas/tag.py
from pydantic import BaseModel, Field, field_validator
from typing import Dict, List, Optional

from incomesplit.db.models.transaction import TransactionType


def parse_transaction_type(value) -> TransactionType:
    """Тип транзакции без учета регистра: "needs", "Needs" и TransactionType.needs равнозначны."""
    if isinstance(value, TransactionType):
        return value
    try:
        return TransactionType[str(value).strip().lower()]
    except KeyError:
        raise ValueError("Invalid transaction type")


class TransactionTagCreate(BaseModel):
    type: TransactionType
    tag: str = Field(..., min_length=1, max_length=50)

    @field_validator("type", mode="before")
    @classmethod
    def normalize_type(cls, value):
        return parse_transaction_type(value)

    @field_validator("tag")
    @classmethod
    def strip_tag(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("Tag must not be blank")
        return value


class TagListResponse(BaseModel):
    success: bool = True
    message: Optional[str] = None
    data: List[str]


class TagsByTypeResponse(BaseModel):
    success: bool = True
    data: Dict[str, List[str]] # Ключи - income / needs / wants / savings
