# tests/utils.py
from typing import List

from sqlalchemy.orm import Session

from app.models.loyalty import LoyaltyTransaction


def account_records(db: Session, account_id: int) -> List[LoyaltyTransaction]:
    """Все записи истории аккаунта от старых к новым."""
    return db.query(LoyaltyTransaction).filter(
        LoyaltyTransaction.account_id == account_id
    ).order_by(LoyaltyTransaction.created_at.asc(), LoyaltyTransaction.id.asc()).all()
