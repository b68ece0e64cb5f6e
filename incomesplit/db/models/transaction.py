# incomesplit/db/models/transaction.py
import enum
import uuid
from sqlalchemy import Column, String, Float, Boolean, Integer, DateTime, ForeignKey, Uuid, Index, Enum as SQLAlchemyEnum
from incomesplit.db.base_class import Base, utcnow

class TransactionType(str, enum.Enum): # Наследуем от str для лучшей интеграции с Pydantic/FastAPI
    income = "Income"
    needs = "Needs"
    wants = "Wants"
    savings = "Savings"

class TransactionSource(str, enum.Enum):
    manual = "Manual"
    distribution = "Distribution"
    import_ = "Import"
    sms = "SMS"
    email = "Email"

class TransactionStatus(str, enum.Enum):
    pending = "pending"
    categorized = "categorized"
    verified = "verified"

class SavingsType(str, enum.Enum):
    # Направление движения по корзине Savings (только для обычных транзакций типа Savings)
    deposit = "deposit"
    withdrawal = "withdrawal"

class DistributionStatus(str, enum.Enum):
    # Состояние распределения дохода (только для транзакций типа Income)
    pending = "pending"
    distributed = "distributed"
    partially_failed = "partially_failed"


def enum_column(enum_cls, name: str) -> SQLAlchemyEnum:
    return SQLAlchemyEnum(
        enum_cls,
        name=name,
        create_constraint=True,
        values_callable=lambda e: [member.value for member in e]
    )


class Transaction(Base):
    __tablename__ = "transactions"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    user_id = Column(Uuid, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    description = Column(String, nullable=False)
    amount = Column(Float, nullable=False) # Без округления, см. calculator
    category_id = Column(Uuid, ForeignKey("categories.id"), nullable=False)
    transaction_type = Column(enum_column(TransactionType, "transaction_type_enum"), nullable=False)
    date = Column(DateTime(timezone=True), nullable=False, default=utcnow) # Фактическая дата, указанная пользователем
    currency = Column(String(3), nullable=False, default="INR")
    notes = Column(String, nullable=True)
    tag = Column(String, nullable=True)
    source = Column(enum_column(TransactionSource, "transaction_source_enum"), nullable=False, default=TransactionSource.manual)
    status = Column(enum_column(TransactionStatus, "transaction_status_enum"), nullable=False, default=TransactionStatus.categorized)
    savings_type = Column(enum_column(SavingsType, "savings_type_enum"), nullable=True)

    # Системные транзакции распределения нельзя менять напрямую
    is_distribution = Column(Boolean, nullable=False, default=False)
    is_editable = Column(Boolean, nullable=False, default=True)

    # У распределения: ссылка на исходный доход
    parent_transaction_id = Column(Uuid, ForeignKey("transactions.id", ondelete="SET NULL"), nullable=True, index=True)

    # У дохода: прямые ссылки на три распределения (NULL, если запись не создана или удалена)
    distributed_needs_id = Column(Uuid, ForeignKey("transactions.id", ondelete="SET NULL"), nullable=True)
    distributed_wants_id = Column(Uuid, ForeignKey("transactions.id", ondelete="SET NULL"), nullable=True)
    distributed_savings_id = Column(Uuid, ForeignKey("transactions.id", ondelete="SET NULL"), nullable=True)
    distribution_status = Column(enum_column(DistributionStatus, "distribution_status_enum"), nullable=True)

    # Счетчик версий для оптимистической блокировки
    version = Column(Integer, nullable=False)

    created_at = Column(DateTime(timezone=True), default=utcnow)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)

    __mapper_args__ = {"version_id_col": version}

    __table_args__ = (
        Index("ix_transactions_user_date", "user_id", "date"),
        Index("ix_transactions_user_type", "user_id", "transaction_type"),
        Index("ix_transactions_user_category", "user_id", "category_id"),
    )

    def get_distributed_id(self, role: str):
        return getattr(self, f"distributed_{role}_id")

    def set_distributed_id(self, role: str, value) -> None:
        setattr(self, f"distributed_{role}_id", value)

    @property
    def distributed_transactions(self) -> dict:
        return {
            "needs": self.distributed_needs_id,
            "wants": self.distributed_wants_id,
            "savings": self.distributed_savings_id,
        }
