# app/routers/v1/endpoints/admin/tasks.py

import logging
from typing import List

from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException, Request, status

from app.dependencies import get_ledger
from app.schemas.admin import TaskInfo, TaskRunRequest
from app.services.ledger import LedgerService

# Импортируем реестр задач
from app.tasks_registry import TASKS, get_tasks_list

logger = logging.getLogger(__name__)

# Префикс /tasks будет добавлен на уровне выше в admin/__init__.py
router = APIRouter()


@router.get("", response_model=List[TaskInfo])
def get_tasks_list_endpoint():
    """
    [АДМИН] Возвращает список всех доступных для ручного запуска фоновых задач.
    """
    return get_tasks_list()


@router.post("/run", status_code=status.HTTP_202_ACCEPTED)
async def run_task_endpoint(
    request_data: TaskRunRequest,
    request: Request,
    background_tasks: BackgroundTasks,
    ledger: LedgerService = Depends(get_ledger),
):
    """
    [АДМИН] Запускает одну конкретную фоновую задачу или все сразу.
    Задачи открывают собственные сессии БД, сессия запроса к этому моменту уже закрыта.
    """
    task_name_to_run = request_data.task_name
    session_factory = request.app.state.session_factory

    if task_name_to_run == "all":
        for name, data in TASKS.items():
            background_tasks.add_task(data["function"], ledger, session_factory, dry_run=request_data.dry_run)

        message = "All background tasks have been scheduled to run."
        logger.info(f"All background tasks were manually triggered (dry_run={request_data.dry_run}).")

    elif task_name_to_run in TASKS:
        task_data = TASKS[task_name_to_run]
        background_tasks.add_task(task_data["function"], ledger, session_factory, dry_run=request_data.dry_run)
        message = f"Task '{task_name_to_run}' has been scheduled to run."
        logger.info(f"Background task '{task_name_to_run}' was manually triggered (dry_run={request_data.dry_run}).")
    else:
        # Этот код практически недостижим благодаря валидации Pydantic `Literal`
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=f"Task '{task_name_to_run}' not found.")

    return {"status": "accepted", "message": message}
