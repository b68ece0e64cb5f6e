# incomesplit/db/models/category.py
import enum
import uuid
from sqlalchemy import Column, String, Float, Boolean, ForeignKey, DateTime, Uuid, UniqueConstraint, Enum as SQLAlchemyEnum
from incomesplit.db.base_class import Base, utcnow

class CategoryType(str, enum.Enum):
    income = "Income"
    needs = "Needs"
    wants = "Wants"
    savings = "Savings"

class Category(Base):
    __tablename__ = "categories"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    user_id = Column(Uuid, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    name = Column(String, nullable=False)
    type = Column(
        SQLAlchemyEnum(
            CategoryType,
            name="category_type_enum",
            create_constraint=True,
            values_callable=lambda e: [member.value for member in e] # Храним "Income", а не "income"
        ),
        nullable=False
    )
    is_custom = Column(Boolean, nullable=False, default=True)
    icon = Column(String, nullable=False, default="pi pi-tag")
    color = Column(String, nullable=False, default="#607D8B")

    # Плановое распределение бюджета по категории
    budget_percentage = Column(Float, nullable=False, default=0.0)
    budget_amount = Column(Float, nullable=False, default=0.0)

    created_at = Column(DateTime(timezone=True), default=utcnow)

    __table_args__ = (
        # Одно имя на пользователя в рамках типа; на этом индексе сходятся параллельные find-or-create
        UniqueConstraint("user_id", "name", "type", name="uq_category_user_name_type"),
    )

    @property
    def budget_allocation(self) -> dict:
        return {"percentage": self.budget_percentage, "amount": self.budget_amount}
