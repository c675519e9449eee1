"""
API endpoint tests
"""

import asyncio
from datetime import timedelta

import pytest
from fastapi.testclient import TestClient

from api.dependencies import get_db, get_registry, get_store
from api.main import app
from api.middleware import resolve_request_id
from core.clock import utcnow
from core.database import create_engine_for, create_session_factory
from core.exceptions import RetryExhaustedError
from models.base import Base
from orchestration.store import MetricsStore
from providers.registry import ProviderRegistry
from tests.factories import StubProvider, make_config, make_metrics, sqlite_url


@pytest.fixture
def session_maker(tmp_path):
    """Session factory on a fresh SQLite file (each request runs on its own loop)"""
    engine = create_engine_for(sqlite_url(tmp_path))

    async def create_tables():
        async with engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)

    asyncio.run(create_tables())
    yield create_session_factory(engine)
    asyncio.run(engine.dispose())


@pytest.fixture
def api_store(session_maker):
    return MetricsStore(session_maker)


@pytest.fixture
def registry():
    registry = ProviderRegistry()
    registry.register_all([
        StubProvider("notion"),
        StubProvider("attio", error=RetryExhaustedError("[attio] Max retries exceeded: 401 Unauthorized")),
    ])
    return registry


@pytest.fixture
def client(session_maker, api_store, registry):
    """Create test client with database and registry overrides"""

    async def override_get_db():
        async with session_maker() as session:
            yield session

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_store] = lambda: api_store
    app.dependency_overrides[get_registry] = lambda: registry

    # Not used as a context manager so startup hooks (scheduler) stay off
    yield TestClient(app)

    app.dependency_overrides.clear()


def test_root(client):
    response = client.get("/")

    assert response.status_code == 200
    assert response.json()["message"] == "Metrics Hub API"


def test_health_endpoint_database_connected(client):
    """Test health endpoint returns database and provider status"""
    response = client.get("/health")

    assert response.status_code == 200
    data = response.json()
    assert data["database_connected"] is True
    assert data["registered_providers"] == ["notion", "attio"]
    assert data["status"] == "healthy"


def test_health_degraded_when_all_stale(client, api_store):
    asyncio.run(api_store.upsert_provider_config(make_config("notion")))

    data = client.get("/health").json()

    assert data["stale_providers"] == ["notion"]
    assert data["status"] == "degraded"


def test_request_id_echoed(client):
    response = client.get("/health", headers={"X-Request-ID": "req_test123"})

    assert response.headers["X-Request-ID"] == "req_test123"
    assert "X-Response-Time-ms" in response.headers


def test_unusable_request_id_is_replaced(client):
    response = client.get("/health", headers={"X-Request-ID": "bad id with spaces"})

    request_id = response.headers["X-Request-ID"]
    assert request_id.startswith("req_")
    assert len(request_id) == 16


@pytest.mark.parametrize("incoming", [None, "", "x" * 65, "a/b"])
def test_resolve_request_id_mints_new_ids(incoming):
    assert resolve_request_id(incoming).startswith("req_")


def test_resolve_request_id_keeps_safe_ids():
    assert resolve_request_id("trace-01:abc.9") == "trace-01:abc.9"


def test_metrics_empty(client):
    response = client.get("/api/metrics")

    assert response.status_code == 200
    data = response.json()
    assert data["dashboard"]["providers"] == []
    assert data["stats"]["total_snapshots"] == 0


def test_fetch_all_then_read_metrics(client, api_store):
    asyncio.run(api_store.upsert_provider_config(make_config("notion")))

    response = client.post("/api/fetch")

    assert response.status_code == 200
    data = response.json()
    assert data["success"] is True
    assert data["message"] == "Successfully fetched 1/2 providers"
    assert {r["provider_id"]: r["status"] for r in data["results"]} == {
        "notion": "success",
        "attio": "failure",
    }

    metrics = client.get("/api/metrics").json()
    [notion] = metrics["dashboard"]["providers"]
    assert notion["provider_id"] == "notion"
    assert notion["is_stale"] is False
    assert notion["metrics"][0]["value"] == 100
    assert metrics["stats"]["total_snapshots"] == 1
    assert metrics["stats"]["total_logs"] == 2


def test_fetch_single_provider(client):
    data = client.post("/api/fetch/notion").json()

    assert data["success"] is True
    assert data["data"]["metrics_count"] == 1


def test_fetch_unknown_provider(client):
    response = client.post("/api/fetch/hubspot")

    assert response.status_code == 200
    assert response.json()["error"] == 'Provider "hubspot" not found or not configured'


def test_fetch_stale_route_not_shadowed(client, api_store):
    asyncio.run(api_store.upsert_provider_config(make_config("notion")))
    asyncio.run(api_store.upsert_provider_config(make_config("attio")))
    asyncio.run(api_store.mark_provider_fetched("notion", utcnow()))
    asyncio.run(api_store.mark_provider_fetched("attio", utcnow()))

    data = client.post("/api/fetch/stale").json()

    assert data["success"] is True
    assert data["message"] == "All providers are up to date"


def test_fetch_logs(client):
    client.post("/api/fetch/attio")

    response = client.get("/api/providers/attio/logs", params={"limit": 5})

    assert response.status_code == 200
    [log] = response.json()
    assert log["status"] == "FAILURE"
    assert log["error_message"] == "[attio] Max retries exceeded: 401 Unauthorized"


def test_fetch_logs_limit_validated(client):
    assert client.get("/api/providers/attio/logs", params={"limit": 0}).status_code == 422


def test_history_and_trend(client, api_store):
    yesterday = utcnow() - timedelta(days=1)
    asyncio.run(api_store.upsert_snapshot(make_metrics("ga4", timestamp=yesterday, values={"users": 120})))

    history = client.get("/api/metrics/ga4/history", params={"days": 7})
    assert history.status_code == 200
    [point] = history.json()
    assert point["metrics"]["users"]["value"] == 120
    assert point["snapshot_date"] == yesterday.date().isoformat()

    assert client.get("/api/metrics/ga4/history", params={"days": 0}).status_code == 422

    trend = client.get("/api/metrics/ga4/trend/users")
    assert trend.status_code == 200
    assert trend.json()["current_value"] == 120

    missing = client.get("/api/metrics/ga4/trend/bounce_rate")
    assert missing.status_code == 404


def test_validate_provider(client):
    data = client.post("/api/providers/notion/validate").json()

    assert data["success"] is True
    assert data["message"] == "Notion configuration is valid"
