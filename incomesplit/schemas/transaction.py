# incomesplit/schemas/transaction.py
from pydantic import BaseModel, Field, field_validator, model_validator
from typing import Optional, List, Dict
from datetime import datetime
import uuid

from incomesplit.core.distribution import check_distribution_total
from incomesplit.db.models.transaction import (
    TransactionType,
    TransactionSource,
    TransactionStatus,
    SavingsType,
    DistributionStatus,
)

class DistributionPercentages(BaseModel):
    """Проценты распределения дохода; каждый > 0, сумма 100 ± 0.01."""
    needs: float = Field(..., gt=0, le=100)
    wants: float = Field(..., gt=0, le=100)
    savings: float = Field(..., gt=0, le=100)

    @model_validator(mode="after")
    def check_total(self):
        check_distribution_total(self.needs, self.wants, self.savings)
        return self

class TransactionBase(BaseModel):
    description: str = Field(..., min_length=1, max_length=200)
    amount: float = Field(..., gt=0)
    date: datetime = Field(default_factory=datetime.now)
    currency: Optional[str] = Field(None, min_length=3, max_length=3)
    notes: Optional[str] = Field(None, max_length=1000)
    tag: Optional[str] = Field(None, max_length=50)

class TransactionCreate(TransactionBase):
    # Обычная (не доходная) транзакция: Needs / Wants / Savings
    transaction_type: TransactionType
    category_id: Optional[uuid.UUID] = None

    @field_validator("transaction_type")
    @classmethod
    def reject_income(cls, value: TransactionType) -> TransactionType:
        if value == TransactionType.income:
            raise ValueError("Income transactions must be created through the income endpoint")
        return value

class SavingsTransactionCreate(TransactionBase):
    # Вклад в накопления или снятие с них; тип транзакции всегда Savings
    date: datetime
    savings_type: SavingsType
    category_id: Optional[uuid.UUID] = None

class SavingsTransactionUpdate(BaseModel):
    description: Optional[str] = Field(None, min_length=1, max_length=200)
    amount: Optional[float] = Field(None, gt=0)
    category_id: Optional[uuid.UUID] = None
    date: Optional[datetime] = None
    currency: Optional[str] = Field(None, min_length=3, max_length=3)
    notes: Optional[str] = Field(None, max_length=1000)
    tag: Optional[str] = Field(None, max_length=50)
    savings_type: Optional[SavingsType] = None

class TransactionUpdate(BaseModel):
    """Общий вход для PUT /transactions/{id}; distribution учитывается только для дохода."""
    description: Optional[str] = Field(None, min_length=1, max_length=200)
    amount: Optional[float] = Field(None, gt=0)
    category_id: Optional[uuid.UUID] = None
    date: Optional[datetime] = None
    currency: Optional[str] = Field(None, min_length=3, max_length=3)
    notes: Optional[str] = Field(None, max_length=1000)
    tag: Optional[str] = Field(None, max_length=50)
    distribution: Optional[DistributionPercentages] = None

class Transaction(BaseModel):
    id: uuid.UUID
    user_id: uuid.UUID
    description: str
    amount: float
    category_id: uuid.UUID
    transaction_type: TransactionType
    date: datetime
    currency: str
    notes: Optional[str] = None
    tag: Optional[str] = None
    source: TransactionSource
    status: TransactionStatus
    savings_type: Optional[SavingsType] = None
    is_distribution: bool
    is_editable: bool
    parent_transaction_id: Optional[uuid.UUID] = None
    distributed_transactions: Optional[Dict[str, Optional[uuid.UUID]]] = None
    distribution_status: Optional[DistributionStatus] = None
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True

    @field_validator("distributed_transactions", mode="before")
    @classmethod
    def drop_empty_links(cls, value):
        # У не-доходных транзакций ссылок на распределения нет
        if isinstance(value, dict) and not any(value.values()):
            return None
        return value

class TransactionListResponse(BaseModel):
    transactions: List[Transaction]
    total_count: int              # Общее количество транзакций, соответствующее фильтрам

class LedgerSummary(BaseModel):
    in_: float = Field(0.0, alias="in") # "in" - ключевое слово Python
    out: float = 0.0
    hold: float = 0.0

    class Config:
        populate_by_name = True

class TransactionSummary(BaseModel):
    """Приход, расход и остаток по каждой корзине текущего пользователя"""
    income: LedgerSummary
    needs: LedgerSummary
    wants: LedgerSummary
    savings: LedgerSummary
    currency: str

class DeleteResponse(BaseModel):
    success: bool = True
    message: str

class TransactionUpdateResponse(BaseModel):
    success: bool = True
    message: str
    data: Transaction
