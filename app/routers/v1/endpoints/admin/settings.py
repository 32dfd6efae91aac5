# app/routers/v1/endpoints/admin/settings.py

import logging

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from app.dependencies import get_db, get_settings_provider
from app.schemas.settings import LoyaltySettings, LoyaltySettingsUpdate
from app.services.settings import SettingsProvider

logger = logging.getLogger(__name__)

# Префикс /settings будет добавлен на уровне выше в admin/__init__.py
router = APIRouter()


@router.get("/loyalty", response_model=LoyaltySettings)
def get_loyalty_settings_endpoint(provider: SettingsProvider = Depends(get_settings_provider)):
    """
    [АДМИН] Возвращает действующие правила программы лояльности.
    Данные кешируются.
    """
    return provider.get()


@router.put("/loyalty", response_model=LoyaltySettings)
def update_loyalty_settings_endpoint(
    settings_data: LoyaltySettingsUpdate,
    db: Session = Depends(get_db),
    provider: SettingsProvider = Depends(get_settings_provider),
):
    """
    [АДМИН] Обновляет правила программы лояльности.
    Можно передавать только те поля, которые нужно изменить.
    Кеш сбрасывается сразу, следующая операция кассы увидит новые значения.
    """
    updated = provider.update(db, settings_data)
    logger.info(f"Loyalty settings updated: {settings_data.model_dump(exclude_none=True)}")
    return updated
