# app/routers/tasks.py

import logging
from typing import List

from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException, status

from app.dependencies import get_admin_user
from app.models.user import User
from app.schemas.tasks import TaskInfo, TaskRunRequest
from app.tasks_registry import TASKS, get_tasks_list

logger = logging.getLogger(__name__)
router = APIRouter()


@router.get("", response_model=List[TaskInfo])
def get_tasks_list_endpoint(admin_user: User = Depends(get_admin_user)):
    """
    [АДМИН] Возвращает список всех доступных для ручного запуска фоновых задач.
    """
    return get_tasks_list()


@router.post("/run", status_code=status.HTTP_202_ACCEPTED)
async def run_task_endpoint(
    request_data: TaskRunRequest,
    background_tasks: BackgroundTasks,
    admin_user: User = Depends(get_admin_user),
):
    """
    [АДМИН] Запускает одну конкретную фоновую задачу или все сразу.
    """
    task_name_to_run = request_data.task_name

    if task_name_to_run == "all":
        for name, data in TASKS.items():
            background_tasks.add_task(data["function"])
        message = "All background tasks have been scheduled to run."
        logger.info(f"All background tasks were manually triggered by admin {admin_user.id}.")
    elif task_name_to_run in TASKS:
        background_tasks.add_task(TASKS[task_name_to_run]["function"])
        message = f"Task '{task_name_to_run}' has been scheduled to run."
        logger.info(f"Background task '{task_name_to_run}' was manually triggered by admin {admin_user.id}.")
    else:
        # Практически недостижимо благодаря валидации Pydantic `Literal`
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=f"Task '{task_name_to_run}' not found.")

    return {"status": "accepted", "message": message}
