# incomesplit/api/v1/api.py
from fastapi import APIRouter

from incomesplit.api.v1.endpoints import users
from incomesplit.api.v1.endpoints import categories
from incomesplit.api.v1.endpoints import transactions

api_router = APIRouter()

api_router.include_router(users.router, prefix="/users", tags=["Users"])
api_router.include_router(categories.router, prefix="/categories", tags=["Categories"])
api_router.include_router(transactions.router, prefix="/transactions", tags=["Transactions"])
