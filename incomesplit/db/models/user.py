# incomesplit/db/models/user.py
import uuid
from sqlalchemy import Column, String, Boolean, DateTime, Float, Uuid
from incomesplit.db.base_class import Base, utcnow

class User(Base):
    __tablename__ = "users"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    google_id = Column(String, unique=True, nullable=False, index=True)
    email = Column(String, unique=True, nullable=False)
    display_name = Column(String, nullable=False)
    first_name = Column(String, nullable=True)
    last_name = Column(String, nullable=True)
    profile_picture = Column(String, nullable=True)
    preferred_currency = Column(String(3), nullable=False, default="INR")
    setup_complete = Column(Boolean, nullable=False, default=False)

    # Предпочтения бюджета: доли дохода по корзинам, в сумме 100
    needs_percentage = Column(Float, nullable=False, default=50.0)
    wants_percentage = Column(Float, nullable=False, default=30.0)
    savings_percentage = Column(Float, nullable=False, default=20.0)

    created_at = Column(DateTime(timezone=True), default=utcnow)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)

    @property
    def budget_preferences(self) -> dict:
        return {
            "needs": {"percentage": self.needs_percentage},
            "wants": {"percentage": self.wants_percentage},
            "savings": {"percentage": self.savings_percentage},
        }

    def percentages(self) -> dict:
        """Плоский словарь {роль: процент} для калькулятора распределения."""
        return {
            "needs": self.needs_percentage,
            "wants": self.wants_percentage,
            "savings": self.savings_percentage,
        }
