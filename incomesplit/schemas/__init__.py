# incomesplit/schemas/__init__.py
from .user import (
    User,
    UserCreate,
    UserUpdate,
    BudgetPreferences,
    BudgetPreferencesUpdate,
    BudgetPreferencesResponse,
    GoogleSignIn,
    SignInResponse,
)
from .category import Category, CategoryCreate, CategoryUpdate, CategoryBudgetUpdate
from .transaction import (
    Transaction,
    TransactionCreate,
    TransactionUpdate,
    TransactionUpdateResponse,
    SavingsTransactionCreate,
    SavingsTransactionUpdate,
    TransactionListResponse,
    TransactionSummary,
    LedgerSummary,
    DistributionPercentages,
    DeleteResponse,
)
from .income import (
    IncomeCreate,
    IncomeUpdate,
    DistributedTransactions,
    IncomeDistributionData,
    IncomeDistributionResponse,
    ReconcileResponse,
)
from .tag import TransactionTagCreate, TagListResponse, TagsByTypeResponse
