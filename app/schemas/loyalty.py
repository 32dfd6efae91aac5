# app/schemas/loyalty.py
from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field


class TransactionMetadata(BaseModel):
    """Данные кассы, из которой пришла операция."""
    model_config = ConfigDict(extra="forbid")

    cashier_name: Optional[str] = Field(default=None, max_length=200)
    terminal_id: Optional[str] = Field(default=None, max_length=100)
    payment_method: Optional[str] = Field(default=None, max_length=50)
    receipt_number: Optional[str] = Field(default=None, max_length=100)


# --- Запросы кассы ---

class EarnRequest(BaseModel):
    account_id: int
    store_id: int
    purchase_amount: float
    metadata: Optional[TransactionMetadata] = None

class RedeemRequest(BaseModel):
    account_id: int
    store_id: int
    purchase_amount: float
    points_to_redeem: int
    metadata: Optional[TransactionMetadata] = None


# --- Результаты операций ---

class EarnResult(BaseModel):
    # None, если покупка слишком мала и баллов не начислено
    transaction_id: Optional[int] = None
    points_earned: int
    new_balance: int

class RedeemResult(BaseModel):
    transaction_id: int
    cashback_earned: int
    discount_applied: int
    new_balance: int

class AdjustBalanceRequest(BaseModel):
    delta: int
    reason: str

class AdjustBalanceResult(BaseModel):
    transaction_id: int
    new_balance: int

class ExpiringPointsSummary(BaseModel):
    expiring_in_7_days: int = 0
    expiring_in_14_days: int = 0
    expiring_in_30_days: int = 0
    expired_now: int = 0

class AccountBalance(BaseModel):
    account_id: int
    current_balance: int
    available_balance: int
    last_activity: datetime
    expiring: ExpiringPointsSummary


# --- История ---

class LoyaltyTransaction(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    type: str
    amount: int
    origin: str
    title: str
    store_id: Optional[int] = None
    purchase_amount: Optional[float] = None
    details: Optional[Dict[str, Any]] = None
    created_at: datetime

class LoyaltyHistory(BaseModel):
    account_id: int
    balance: int
    total: int
    transactions: List[LoyaltyTransaction]


# --- Фоновые задачи ---

class ExpiredAccount(BaseModel):
    account_id: int
    points_expired: int

class SweepResult(BaseModel):
    accounts_affected: int = 0
    points_expired: int = 0
    dry_run: bool = False
    expired_accounts: List[ExpiredAccount] = []

class CleanupResult(BaseModel):
    records_deleted: int = 0
    dry_run: bool = False
