# tests/test_tasks_api.py

import pytest
from httpx import AsyncClient

from app.tasks_registry import TASKS

pytestmark = pytest.mark.asyncio


async def test_admin_lists_tasks(client: AsyncClient, admin_auth_headers):
    response = await client.get("/api/admin/tasks", headers=admin_auth_headers)
    assert response.status_code == 200
    assert {task["task_name"] for task in response.json()} == set(TASKS)


async def test_tasks_are_admin_only(client: AsyncClient, organizer_auth_headers):
    response = await client.get("/api/admin/tasks", headers=organizer_auth_headers)
    assert response.status_code == 403


async def test_run_single_task(client: AsyncClient, mocker, admin_auth_headers):
    job = mocker.Mock()
    mocker.patch.dict(TASKS, {"calculate_pending_payouts": {**TASKS["calculate_pending_payouts"], "function": job}})

    response = await client.post("/api/admin/tasks/run", json={"task_name": "calculate_pending_payouts"}, headers=admin_auth_headers)

    assert response.status_code == 202
    assert response.json()["status"] == "accepted"
    job.assert_called_once_with()


async def test_run_all_tasks(client: AsyncClient, mocker, admin_auth_headers):
    jobs = {name: mocker.Mock() for name in TASKS}
    mocker.patch.dict(TASKS, {name: {**data, "function": jobs[name]} for name, data in TASKS.items()})

    response = await client.post("/api/admin/tasks/run", json={"task_name": "all"}, headers=admin_auth_headers)

    assert response.status_code == 202
    for job in jobs.values():
        job.assert_called_once_with()


async def test_unknown_task_name(client: AsyncClient, admin_auth_headers):
    response = await client.post("/api/admin/tasks/run", json={"task_name": "reindex"}, headers=admin_auth_headers)
    assert response.status_code == 422
