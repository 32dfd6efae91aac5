# app/schemas/admin.py
from datetime import datetime
from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict, Field


class TaskInfo(BaseModel):
    """Описание одной фоновой задачи."""
    task_name: str
    description: str
    supports_dry_run: bool

class TaskRunRequest(BaseModel):
    """Схема для запроса на запуск задачи."""
    # Literal ограничивает возможные значения и дает автодополнение в Swagger
    task_name: Literal[
        "all",
        "expire_points",
        "cleanup_transactions",
        "notify_expiring_points",
    ]
    dry_run: bool = False


class OpenAccountRequest(BaseModel):
    telegram_id: Optional[int] = None
    first_name: Optional[str] = Field(default=None, max_length=200)

class AccountInfo(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    telegram_id: Optional[int] = None
    first_name: Optional[str] = None
    current_balance: int
    total_purchases: int
    total_saved: float
    last_activity: datetime
    registration_date: datetime
    is_active: bool
