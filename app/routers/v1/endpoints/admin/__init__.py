# app/routers/v1/endpoints/admin/__init__.py

from fastapi import APIRouter, Depends

from app.dependencies import require_admin_key

# Импортируем все модули с роутерами из текущего пакета
from . import accounts, settings, tasks

# Главный роутер админского раздела.
# Зависимость require_admin_key применяется ко ВСЕМ подключенным эндпоинтам.
router = APIRouter(
    tags=["Admin"],
    dependencies=[Depends(require_admin_key)],
)

# /admin/settings/loyalty
router.include_router(settings.router, prefix="/settings")

# /admin/accounts, /admin/accounts/{id}/balance/adjust, /admin/accounts/{id}/transactions
router.include_router(accounts.router, prefix="/accounts")

# /admin/tasks, /admin/tasks/run
router.include_router(tasks.router, prefix="/tasks")
