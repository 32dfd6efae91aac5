# app/routers/v1/api.py

from fastapi import APIRouter

from app.routers.v1.endpoints import cashier
from app.routers.v1.endpoints import admin as admin_v1_router

# Главный роутер API версии v1
# Все пути, подключенные к нему, будут иметь префикс /api/v1
api_router = APIRouter(prefix="/api/v1")

# Кассовые терминалы
api_router.include_router(cashier.router, prefix="/cashier", tags=["Cashier"])

# Админские эндпоинты
api_router.include_router(admin_v1_router.router, prefix="/admin")
