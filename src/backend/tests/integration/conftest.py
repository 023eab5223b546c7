"""
Integration test fixtures

Drive the FastAPI app in-process through httpx.ASGITransport. The ranking
editor behind the routes talks to the fake catalog from the root conftest,
so every request exercises router -> editor -> engine -> catalog client.
"""

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient


@pytest_asyncio.fixture
async def api_client(editor, session_storage, test_config_dir):
    """
    HTTP client for API integration testing

    Usage:
        async def test_health_endpoint(api_client):
            response = await api_client.get("/api/v1/health")
            assert response.status_code == 200
    """
    import catalog_ranking.database.session_storage as storage_module
    from catalog_ranking.api.v1.rankings import get_editor_dep
    from catalog_ranking.main import app, get_editor
    from catalog_ranking.services.config.configuration_service import init_config_service

    init_config_service(str(test_config_dir))
    storage_module._session_storage = session_storage
    app.dependency_overrides[get_editor_dep] = lambda: editor

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        yield client

    app.dependency_overrides[get_editor_dep] = get_editor


@pytest_asyncio.fixture
async def open_session(api_client):
    """
    Open a display-order session on the t-shirts category

    Returns the session view as returned by the API
    """
    response = await api_client.post(
        "/api/v1/rankings/sessions",
        json={"group": "display_order", "category_id": 7, "category_slug": "t-shirts", "page_size": 10},
    )
    assert response.status_code == 201
    return response.json()


@pytest_asyncio.fixture
async def featured_session(api_client):
    """Open a featured (best seller + recommended) session on the t-shirts category"""
    response = await api_client.post(
        "/api/v1/rankings/sessions",
        json={"group": "featured", "category_id": 7, "category_slug": "t-shirts", "page_size": 10},
    )
    assert response.status_code == 201
    return response.json()


@pytest.fixture
def session_url():
    """Build a session-scoped API path"""

    def _url(session_id: str, suffix: str = "") -> str:
        return f"/api/v1/rankings/sessions/{session_id}{suffix}"

    return _url
