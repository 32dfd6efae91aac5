# app/models/account.py

from sqlalchemy import BIGINT, Boolean, CheckConstraint, Column, DateTime, Float, Index, Integer, String, func, true

from app.db.session import Base


class Account(Base):
    __tablename__ = "loyalty_accounts"

    id = Column(Integer, primary_key=True, index=True)
    # Telegram ID одновременно служит chat_id для уведомлений
    telegram_id = Column(BIGINT, unique=True, index=True, nullable=True)
    first_name = Column(String, nullable=True)
    bot_accessible = Column(Boolean, default=True, nullable=False, server_default=true())

    # Меняется ТОЛЬКО через crud.account.apply_balance_delta
    current_balance = Column(Integer, default=0, nullable=False, server_default='0')
    total_purchases = Column(Integer, default=0, nullable=False, server_default='0')
    total_saved = Column(Float, default=0, nullable=False, server_default='0')

    last_activity = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    registration_date = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    # Аккаунты никогда не удаляются, только деактивируются
    is_active = Column(Boolean, default=True, nullable=False, server_default=true())

    __table_args__ = (
        CheckConstraint("current_balance >= 0", name="ck_loyalty_accounts_balance_non_negative"),
        # Для выборки кандидатов на сгорание
        Index("ix_loyalty_accounts_activity_balance", "last_activity", "current_balance"),
    )
