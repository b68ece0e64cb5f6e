# incomesplit/db/models/tag.py
import uuid
from sqlalchemy import Column, String, ForeignKey, DateTime, Uuid, UniqueConstraint
from incomesplit.db.base_class import Base, utcnow
from incomesplit.db.models.transaction import TransactionType, enum_column

class TransactionTag(Base):
    """Сохраненный пользователем тег для транзакций одного типа"""
    __tablename__ = "transaction_tags"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    user_id = Column(Uuid, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    transaction_type = Column(enum_column(TransactionType, "tag_transaction_type_enum"), nullable=False)
    name = Column(String(50), nullable=False)

    created_at = Column(DateTime(timezone=True), default=utcnow)

    __table_args__ = (
        UniqueConstraint("user_id", "transaction_type", "name", name="uq_tag_user_type_name"),
    )
