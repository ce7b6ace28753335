"""
Integration tests for the API endpoints.
"""

from datetime import timedelta

import pytest
import pytest_asyncio
from httpx import AsyncClient

from tenant_scheduler.clock import ManualClock
from tenant_scheduler.service import SchedulerService


class TestSchedulerAPI:
    """Integration tests for scheduler endpoints."""

    @pytest.fixture
    def base_url(self, test_tenant_id: str) -> str:
        return f"/v1/tenants/{test_tenant_id}/schedulers"

    @pytest.mark.asyncio
    async def test_create_scheduler(self, client: AsyncClient, base_url: str, test_tenant_id: str):
        response = await client.post(base_url, json={"queue_name": "alpha"})

        assert response.status_code == 201
        data = response.json()
        assert data["tenant_id"] == test_tenant_id
        assert data["queue_name"] == "alpha"
        assert data["engine_queue_id"] == f"{test_tenant_id}-alpha"
        assert data["state"] == "active"

    @pytest.mark.asyncio
    async def test_create_duplicate_conflicts(self, client: AsyncClient, base_url: str):
        await client.post(base_url, json={"queue_name": "alpha"})

        response = await client.post(base_url, json={"queue_name": "alpha"})

        assert response.status_code == 409
        assert response.json()["error"] == "already_exists"

    @pytest.mark.asyncio
    async def test_invalid_queue_name(self, client: AsyncClient, base_url: str):
        response = await client.post(base_url, json={"queue_name": "bad:name"})

        assert response.status_code == 422

    @pytest.mark.asyncio
    async def test_list_and_get(self, client: AsyncClient, base_url: str):
        await client.post(base_url, json={"queue_name": "beta"})
        await client.post(base_url, json={"queue_name": "alpha"})

        response = await client.get(base_url)
        assert response.status_code == 200
        assert response.json() == ["alpha", "beta"]

        response = await client.get(f"{base_url}/alpha")
        assert response.status_code == 200
        assert response.json()["queue_name"] == "alpha"

    @pytest.mark.asyncio
    async def test_unknown_tenant_not_found(self, client: AsyncClient):
        response = await client.get("/v1/tenants/nobody/schedulers")

        assert response.status_code == 404
        assert response.json()["error"] == "not_found"

    @pytest.mark.asyncio
    async def test_pause_twice_then_resume(self, client: AsyncClient, base_url: str):
        await client.post(base_url, json={"queue_name": "alpha"})

        first = await client.post(f"{base_url}/alpha/pause")
        second = await client.post(f"{base_url}/alpha/pause")
        assert first.status_code == 200
        assert second.status_code == 200
        assert second.json()["state"] == "paused"

        response = await client.post(f"{base_url}/alpha/resume")
        assert response.json()["state"] == "active"

    @pytest.mark.asyncio
    async def test_rename(self, client: AsyncClient, base_url: str, test_tenant_id: str):
        await client.post(base_url, json={"queue_name": "alpha"})

        response = await client.put(f"{base_url}/alpha", json={"new_queue_name": "omega"})

        assert response.status_code == 200
        assert response.json()["engine_queue_id"] == f"{test_tenant_id}-omega"
        assert (await client.get(base_url)).json() == ["omega"]

    @pytest.mark.asyncio
    async def test_delete(self, client: AsyncClient, base_url: str):
        await client.post(base_url, json={"queue_name": "alpha"})

        response = await client.delete(f"{base_url}/alpha")
        assert response.status_code == 200

        assert (await client.get(base_url)).json() == []
        assert (await client.delete(f"{base_url}/alpha")).status_code == 404


class TestJobAPI:
    """Integration tests for job endpoints."""

    @pytest_asyncio.fixture
    async def jobs_url(self, client: AsyncClient, test_tenant_id: str) -> str:
        """Create a paused scheduler so jobs stay where they are put."""
        base = f"/v1/tenants/{test_tenant_id}/schedulers"
        await client.post(base, json={"queue_name": "alpha"})
        await client.post(f"{base}/alpha/pause")
        return f"{base}/alpha/jobs"

    @pytest.mark.asyncio
    async def test_create_one_time_job(
        self,
        client: AsyncClient,
        jobs_url: str,
        clock: ManualClock,
        sample_job_payload: dict,
    ):
        run_at = (clock() + timedelta(seconds=5)).isoformat()

        response = await client.post(
            jobs_url,
            json={"name": "echo", "payload": sample_job_payload, "run_at": run_at},
        )

        assert response.status_code == 201
        data = response.json()
        assert data["state"] == "delayed"
        assert data["options"]["delay_ms"] == 5000
        assert data["payload"] == sample_job_payload

    @pytest.mark.asyncio
    async def test_create_recurring_job(self, client: AsyncClient, jobs_url: str):
        response = await client.post(
            jobs_url,
            json={"name": "echo", "cron": "*/5 * * * *", "limit": 3},
        )

        assert response.status_code == 201
        assert response.json()["options"]["repeat"] == {"cron": "*/5 * * * *", "limit": 3}

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "body",
        [
            {"name": "echo"},
            {"name": "echo", "cron": "* * * * *", "run_at": "2026-01-01T00:00:00Z"},
            {"name": "echo", "cron": "whenever"},
        ],
    )
    async def test_invalid_schedule(self, client: AsyncClient, jobs_url: str, body: dict):
        response = await client.post(jobs_url, json=body)

        assert response.status_code == 422
        assert response.json()["error"] == "invalid_schedule"

    @pytest.mark.asyncio
    async def test_job_crud(self, client: AsyncClient, jobs_url: str, clock: ManualClock):
        created = (
            await client.post(jobs_url, json={"name": "echo", "run_at": clock().isoformat()})
        ).json()
        job_url = f"{jobs_url}/{created['id']}"

        response = await client.get(job_url)
        assert response.status_code == 200
        assert response.json()["state"] == "waiting"

        response = await client.put(
            job_url,
            json={"name": "report", "payload": {"k": "v"}, "cron": "0 * * * *"},
        )
        assert response.status_code == 200
        assert response.json()["id"] == created["id"]
        assert response.json()["name"] == "report"

        response = await client.post(f"{job_url}/pause")
        assert response.json()["state"] == "paused"
        response = await client.post(f"{job_url}/resume")
        assert response.json()["state"] == "delayed"

        listing = (await client.get(jobs_url)).json()
        assert [job["id"] for job in listing["delayed"]] == [created["id"]]

        assert (await client.delete(job_url)).status_code == 200
        assert (await client.get(job_url)).status_code == 404

    @pytest.mark.asyncio
    async def test_job_on_unknown_scheduler(self, client: AsyncClient, test_tenant_id: str):
        response = await client.post(
            f"/v1/tenants/{test_tenant_id}/schedulers/missing/jobs",
            json={"name": "echo", "cron": "* * * * *"},
        )

        assert response.status_code == 404


class TestHealthAPI:
    """Integration tests for health endpoints."""

    @pytest.mark.asyncio
    async def test_health(self, client: AsyncClient, service: SchedulerService):
        await service.create_scheduler("t1", "alpha")

        response = await client.get("/health")

        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "healthy"
        assert data["queues"] == 1
        assert data["worker_bindings"] == 1

    @pytest.mark.asyncio
    async def test_ready_and_live(self, client: AsyncClient):
        assert (await client.get("/ready")).json() == {"ready": True}
        assert (await client.get("/live")).json() == {"alive": True}

    @pytest.mark.asyncio
    async def test_metrics(self, client: AsyncClient):
        response = await client.get("/metrics")

        assert response.status_code == 200
        assert "scheduler_worker_bindings" in response.text
