# incomesplit/db/models/__init__.py
from .user import User
from .category import Category, CategoryType
from .transaction import (
    Transaction,
    TransactionType,
    TransactionSource,
    TransactionStatus,
    SavingsType,
    DistributionStatus,
)
from .tag import TransactionTag
