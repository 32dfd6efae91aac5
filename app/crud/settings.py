# app/crud/settings.py
from typing import Any, Dict

from sqlalchemy.orm import Session

from app.models.settings import SETTINGS_ROW_ID, LoyaltySettingsRecord


def get_settings_row(db: Session) -> LoyaltySettingsRecord | None:
    """Читает единственную строку настроек лояльности (id=1)."""
    return db.query(LoyaltySettingsRecord).filter(LoyaltySettingsRecord.id == SETTINGS_ROW_ID).first()

def save_settings_row(db: Session, values: Dict[str, Any]) -> LoyaltySettingsRecord:
    """
    Создает или обновляет строку настроек.
    Требует внешнего вызова db.commit().
    """
    row = get_settings_row(db)
    if row is None:
        row = LoyaltySettingsRecord(id=SETTINGS_ROW_ID)
        db.add(row)
    for field, value in values.items():
        setattr(row, field, value)
    db.flush()
    return row
