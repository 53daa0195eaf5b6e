# app/tasks_registry.py

from app.services import payout_scheduler, performance_cache

# --- Обертки над фоновыми задачами ---
# Каждая задача сама открывает сессии БД, поэтому их можно запускать
# и из планировщика, и через BackgroundTasks, и из скрипта.

def run_calculate_pending_payouts():
    payout_scheduler.calculate_pending_payouts_task()

def run_refresh_performance_cache():
    performance_cache.refresh_performance_cache_task()

def run_refresh_performance_cache_all_periods():
    performance_cache.refresh_all_periods_task()


# --- Словарь-реестр всех задач, доступных для ручного запуска ---
# Ключ - уникальное имя задачи, которое используется в API.
# 'function' - сама функция для вызова.
# 'description' - описание для отображения в админке.
# 'is_async' - флаг, чтобы вызывающий знал, как запускать задачу.

TASKS = {
    "calculate_pending_payouts": {
        "function": run_calculate_pending_payouts,
        "description": "Собирает созревшие подтвержденные конверсии в выплаты партнерам и агентствам.",
        "is_async": False,
    },
    "refresh_performance_cache": {
        "function": run_refresh_performance_cache,
        "description": "Пересчитывает показатели партнеров за сегодня.",
        "is_async": False,
    },
    "refresh_performance_cache_all_periods": {
        "function": run_refresh_performance_cache_all_periods,
        "description": "Пересчитывает показатели партнеров за все периоды (неделя, месяц, квартал, год, все время).",
        "is_async": False,
    },
}

# Отдельная функция для получения списка задач для API
def get_tasks_list():
    return [
        {"task_name": name, "description": data["description"]}
        for name, data in TASKS.items()
    ]
