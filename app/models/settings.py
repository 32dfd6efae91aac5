# app/models/settings.py

from sqlalchemy import Column, DateTime, Float, Integer, func

from app.db.session import Base

SETTINGS_ROW_ID = 1


class LoyaltySettingsRecord(Base):
    """Единственная строка (id=1) с динамическими правилами программы лояльности."""
    __tablename__ = "loyalty_settings"

    id = Column(Integer, primary_key=True, default=SETTINGS_ROW_ID)
    earning_percent = Column(Float, nullable=False, server_default='4')
    max_discount_percent = Column(Float, nullable=False, server_default='20')
    expiry_days = Column(Integer, nullable=False, server_default='45')
    min_redemption_amount = Column(Float, nullable=False, server_default='1')
    welcome_bonus = Column(Integer, nullable=False, server_default='500')
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)
