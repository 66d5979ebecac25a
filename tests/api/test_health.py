import pytest
from httpx import ASGITransport, AsyncClient

from evoi.core.worker import ComputationWorker, get_worker
from evoi.main import app


class TestHealthEndpoints:
    @pytest.mark.asyncio
    async def test_health(self):
        transport = ASGITransport(app=app)
        async with AsyncClient(transport=transport, base_url="http://test") as client:
            response = await client.get("/api/v1/health")

        assert response.status_code == 200
        assert response.json() == {"status": "healthy", "service": "evoi-api"}

    @pytest.mark.asyncio
    async def test_worker_health(self):
        worker = ComputationWorker(kind="thread")
        app.dependency_overrides[get_worker] = lambda: worker
        try:
            transport = ASGITransport(app=app)
            async with AsyncClient(transport=transport, base_url="http://test") as client:
                response = await client.get("/api/v1/health/worker")
        finally:
            app.dependency_overrides.clear()
            worker.shutdown()

        assert response.status_code == 200
        assert response.json() == {"status": "healthy", "worker": "thread"}

    @pytest.mark.asyncio
    async def test_root(self):
        transport = ASGITransport(app=app)
        async with AsyncClient(transport=transport, base_url="http://test") as client:
            response = await client.get("/")

        assert response.status_code == 200
        assert response.json()["version"] == "0.1.0"
