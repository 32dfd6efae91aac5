# app/schemas/settings.py
from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator


class LoyaltySettings(BaseModel):
    """Действующие правила программы лояльности."""
    model_config = ConfigDict(from_attributes=True, frozen=True)

    earning_percent: float = Field(ge=0.1, le=20)
    max_discount_percent: float = Field(ge=1, le=50)
    expiry_days: int = Field(ge=1, le=365)
    min_redemption_amount: float = Field(ge=0, le=1000)
    welcome_bonus: int = Field(ge=0, le=2000)
    updated_at: Optional[datetime] = None

    @model_validator(mode="after")
    def check_earning_not_above_discount(self):
        # Процент начисления не должен превышать максимальную скидку
        if self.earning_percent > self.max_discount_percent:
            raise ValueError("earning_percent must not exceed max_discount_percent")
        return self


class LoyaltySettingsUpdate(BaseModel):
    """
    Схема для частичного обновления настроек.
    Все поля опциональны; итоговая комбинация валидируется через LoyaltySettings.
    """
    earning_percent: Optional[float] = None
    max_discount_percent: Optional[float] = None
    expiry_days: Optional[int] = None
    min_redemption_amount: Optional[float] = None
    welcome_bonus: Optional[int] = None
