# incomesplit/schemas/income.py
from pydantic import BaseModel, Field
from typing import Optional
from datetime import datetime
import uuid

from incomesplit.schemas.transaction import (
    DistributionPercentages,
    Transaction,
    TransactionBase,
    TransactionUpdate,
)

class IncomeCreate(TransactionBase):
    date: datetime # Для дохода дата обязательна
    category_id: Optional[uuid.UUID] = None # Если не указана или чужая - берется категория по умолчанию
    distribution: DistributionPercentages

# Для дохода используются те же поля, что и в общем обновлении
IncomeUpdate = TransactionUpdate

class DistributedTransactions(BaseModel):
    needs: Optional[Transaction] = None
    wants: Optional[Transaction] = None
    savings: Optional[Transaction] = None

class IncomeDistributionData(BaseModel):
    income_transaction: Transaction
    distributed_transactions: DistributedTransactions

class IncomeDistributionResponse(BaseModel):
    success: bool = True
    message: str
    data: IncomeDistributionData

class ReconcileResponse(BaseModel):
    success: bool = True
    healed: int = Field(..., ge=0)
