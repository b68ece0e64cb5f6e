# incomesplit/schemas/category.py
from pydantic import BaseModel, Field
from typing import Optional
from datetime import datetime
import uuid

from incomesplit.db.models.category import CategoryType

class CategoryBase(BaseModel):
    name: str = Field(..., min_length=1, max_length=100)
    type: CategoryType

class CategoryCreate(CategoryBase):
    icon: Optional[str] = None
    color: Optional[str] = Field(None, max_length=20)

class CategoryUpdate(BaseModel):
    # Тип категории менять нельзя
    name: Optional[str] = Field(None, min_length=1, max_length=100)
    icon: Optional[str] = None
    color: Optional[str] = Field(None, max_length=20)

class CategoryBudgetUpdate(BaseModel):
    percentage: Optional[float] = Field(None, ge=0, le=100)
    amount: Optional[float] = Field(None, ge=0)

class BudgetAllocation(BaseModel):
    percentage: float = 0.0
    amount: float = 0.0

class Category(CategoryBase):
    id: uuid.UUID
    user_id: uuid.UUID
    is_custom: bool
    icon: str
    color: str
    budget_allocation: BudgetAllocation
    created_at: datetime

    class Config:
        from_attributes = True
