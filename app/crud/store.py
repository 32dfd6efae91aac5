# app/crud/store.py
from sqlalchemy.orm import Session

from app.models.store import Store


def get_store(db: Session, store_id: int) -> Store | None:
    """Проверка существования магазина (точки продаж)."""
    return db.query(Store).filter(Store.id == store_id).first()

