# app/models/loyalty.py
import enum

from sqlalchemy import JSON, CheckConstraint, Column, DateTime, Float, ForeignKey, Index, Integer, String
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from app.db.session import Base
from app.models.account import Account


class TransactionType(str, enum.Enum):
    EARN = "earn"
    SPEND = "spend"


class TransactionOrigin(str, enum.Enum):
    PURCHASE = "purchase"
    CASHBACK = "cashback"
    REDEMPTION = "redemption"
    EXPIRATION = "expiration"
    ADMIN_ADJUSTMENT = "admin_adjustment"
    WELCOME_BONUS = "welcome_bonus"


class LoyaltyTransaction(Base):
    """Запись истории баллов. После создания не изменяется."""
    __tablename__ = "loyalty_transactions"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    account_id = Column(Integer, ForeignKey("loyalty_accounts.id"), nullable=False)
    store_id = Column(Integer, ForeignKey("stores.id", ondelete="SET NULL"), nullable=True)

    # 'earn' или 'spend'; сумма всегда положительная
    type = Column(String, nullable=False)
    amount = Column(Integer, nullable=False)

    # 'purchase', 'cashback', 'redemption', 'expiration', 'admin_adjustment', 'welcome_bonus'
    origin = Column(String, nullable=False)
    title = Column(String, nullable=False)
    purchase_amount = Column(Float, nullable=True)
    # Кассир, терминал, номер чека, автор ручной корректировки
    details = Column("metadata", JSON, nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    account = relationship(Account)

    __table_args__ = (
        CheckConstraint("amount > 0", name="ck_loyalty_transactions_amount_positive"),
        CheckConstraint("type IN ('earn', 'spend')", name="ck_loyalty_transactions_type"),
        Index("ix_loyalty_transactions_account_created", "account_id", "created_at"),
    )
