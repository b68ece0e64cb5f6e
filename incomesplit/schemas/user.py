# incomesplit/schemas/user.py
from pydantic import BaseModel, Field, HttpUrl, model_validator
from typing import Optional
from datetime import datetime
import uuid

from incomesplit.core.distribution import check_distribution_total

class BucketPreference(BaseModel):
    percentage: float = Field(..., ge=0, le=100)

class BudgetPreferences(BaseModel):
    needs: BucketPreference
    wants: BucketPreference
    savings: BucketPreference

    @model_validator(mode="after")
    def check_total(self):
        check_distribution_total(self.needs.percentage, self.wants.percentage, self.savings.percentage)
        return self

    def percentages(self) -> dict:
        return {
            "needs": self.needs.percentage,
            "wants": self.wants.percentage,
            "savings": self.savings.percentage,
        }

class BudgetPreferencesUpdate(BaseModel):
    budget_preferences: BudgetPreferences

class UserBase(BaseModel):
    # Поля профиля, которые приходят из Google после входа
    email: str
    display_name: str
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    profile_picture: Optional[HttpUrl] = None

class UserCreate(UserBase):
    google_id: str
    preferred_currency: str = Field("INR", min_length=3, max_length=3)

class UserUpdate(BaseModel):
    email: Optional[str] = None
    display_name: Optional[str] = None
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    profile_picture: Optional[HttpUrl] = None
    preferred_currency: Optional[str] = Field(None, min_length=3, max_length=3)
    setup_complete: Optional[bool] = None

class UserInDBBase(BaseModel):
    id: uuid.UUID
    email: str
    display_name: str
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    profile_picture: Optional[str] = None # В БД хранится строкой
    preferred_currency: str
    setup_complete: bool
    created_at: datetime

    class Config:
        from_attributes = True # Позволяет Pydantic работать с ORM объектами

class User(UserInDBBase):
    budget_preferences: BudgetPreferences

class BudgetPreferencesResponse(BaseModel):
    success: bool = True
    message: Optional[str] = None
    budget_preferences: BudgetPreferences

class GoogleSignIn(UserBase):
    # Профиль, уже проверенный на стороне OAuth-обмена с Google
    google_id: str = Field(..., min_length=1)

class SignInResponse(BaseModel):
    success: bool = True
    token: str
    user: User
