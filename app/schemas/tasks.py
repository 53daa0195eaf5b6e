# app/schemas/tasks.py
from typing import Literal

from pydantic import BaseModel


class TaskInfo(BaseModel):
    """Описание одной фоновой задачи."""
    task_name: str
    description: str


class TaskRunRequest(BaseModel):
    # Literal ограничивает возможные значения и дает автодополнение в Swagger
    task_name: Literal[
        "all",
        "calculate_pending_payouts",
        "refresh_performance_cache",
        "refresh_performance_cache_all_periods",
    ]
