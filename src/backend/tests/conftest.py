"""
Pytest configuration and shared fixtures
Provides common test fixtures for all test modules
"""

import json
import os
import sys
import tempfile
from pathlib import Path
from typing import Any, Dict, List, Optional

import httpx
import pytest
import pytest_asyncio

# Add backend directory to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent))

# Keep test runs from writing into the project log directory
os.environ.setdefault("LOG_FILE_PATH", str(Path(tempfile.gettempdir()) / "catalog-ranking-tests.log"))

from catalog_ranking.database.session_storage import InMemorySessionStorage
from catalog_ranking.services.catalog.catalog_client import CatalogClient
from catalog_ranking.services.config.configuration_service import ConfigurationService
from catalog_ranking.services.editor.ranking_editor import RankingEditor

SENTINEL = 999999

TEST_CONFIGS = {
    "ranking_config.json": {
        "version": "1.0",
        "unranked_sentinel": SENTINEL,
        "default_group": "display_order",
        "paging": {"default_page_size": 4, "max_page_size": 50},
        "index_fetch_limit": 500,
        "post_commit_refresh_delay_seconds": 1.0,
        "groups": {
            "display_order": {
                "label": "Display order",
                "item_id_field": "style_code",
                "name_fields": ["name", "style_name"],
                "attribute_fields": ["brand"],
                "index_endpoint": "/api/display-order",
                "page_endpoint": "/api/products",
                "search_sort": "newest",
                "commit_endpoint": "/api/display-order/bulk",
                "commit_method": "POST",
                "commit_payload_key": "orders",
                "rankings": {
                    "display_order": {"position_field": "display_order", "index_params": {}}
                },
            },
            "featured": {
                "label": "Featured products",
                "item_id_field": "style_code",
                "name_fields": ["name"],
                "attribute_fields": ["brand"],
                "index_endpoint": "/api/admin/products/featured",
                "page_endpoint": "/api/products",
                "search_sort": "newest",
                "commit_endpoint": "/api/admin/products/featured-order/bulk",
                "commit_method": "PUT",
                "commit_payload_key": "products",
                "rankings": {
                    "best_seller": {"position_field": "best_seller_order", "index_params": {"type": "best"}},
                    "recommended": {"position_field": "recommended_order", "index_params": {"type": "recommended"}},
                },
            },
        },
    },
    "remote_catalog.json": {
        "version": "1.0",
        "base_url": "http://catalog.test",
        "timeout_seconds": 5.0,
        "cache_busting_param": "_t",
        "headers": {"Cache-Control": "no-cache"},
    },
    "cache_config.json": {
        "version": "1.0",
        "editing_session": {"default_ttl_seconds": 3600, "cleanup_interval_seconds": 60},
    },
}


@pytest.fixture(scope="session")
def test_config_dir():
    """
    Create temporary config directory with all test configurations
    Session-scoped fixture used across all tests
    """
    with tempfile.TemporaryDirectory() as tmpdir:
        config_dir = Path(tmpdir)
        for filename, content in TEST_CONFIGS.items():
            (config_dir / filename).write_text(json.dumps(content, indent=2))
        yield config_dir


@pytest.fixture
def config_service(test_config_dir):
    """
    ConfigurationService bound to the test config directory
    Function-scoped fixture, new instance per test
    """
    return ConfigurationService(str(test_config_dir))


# ----------------------------------------------------------------------
# Fake remote catalog
# ----------------------------------------------------------------------


class FakeCatalogBackend:
    """
    In-memory stand-in for the remote catalog, served through httpx.MockTransport.

    Rows are stored as the remote returns them; committed sentinel values are
    stored verbatim so the read-back path is exercised.
    """

    POSITION_FIELDS = ("display_order", "best_seller_order", "recommended_order")

    def __init__(self):
        self.categories = {"7": "t-shirts", "9": "hoodies"}
        self.rows: List[Dict[str, Any]] = [
            {"style_code": "A1", "name": "Alpha Tee", "brand": "Gildan", "category": "7",
             "display_order": 1, "best_seller_order": 1, "recommended_order": None},
            {"style_code": "B2", "name": "Bravo Tee", "brand": "Fruit", "category": "7",
             "display_order": 2, "best_seller_order": None, "recommended_order": 1},
            {"style_code": "C3", "name": "Charlie Tee", "brand": "Gildan", "category": "7",
             "display_order": None, "best_seller_order": None, "recommended_order": None},
            {"style_code": "D4", "name": "Delta Tee", "brand": "Stanley", "category": "7",
             "display_order": 4, "best_seller_order": 2, "recommended_order": None},
            {"style_code": "E5", "name": "Echo Tee", "brand": "Fruit", "category": "7",
             "display_order": SENTINEL, "best_seller_order": None, "recommended_order": None},
            {"style_code": "F6", "name": "Foxtrot Tee", "brand": "Gildan", "category": "7",
             "display_order": None, "best_seller_order": None, "recommended_order": None},
            {"style_code": "H1", "name": "Hotel Hoodie", "brand": "AWDis", "category": "9",
             "display_order": 1, "best_seller_order": None, "recommended_order": None},
        ]
        self.commits: List[Dict[str, Any]] = []
        self.requests: List[httpx.Request] = []
        self.fail_reads = False
        self.fail_commit_status: Optional[int] = None

    def _category_rows(self, category_id: str) -> List[Dict[str, Any]]:
        return [row for row in self.rows if row["category"] == str(category_id)]

    def _row(self, style_code: str) -> Optional[Dict[str, Any]]:
        for row in self.rows:
            if row["style_code"] == style_code:
                return row
        return None

    def _index(self, category_id: str, field: str) -> httpx.Response:
        items = [
            {"style_code": row["style_code"], field: row[field]}
            for row in self._category_rows(category_id)
            if row[field] is not None
        ]
        return httpx.Response(200, json={"items": items})

    def _page(self, params) -> httpx.Response:
        if "q" in params:
            term = params["q"].lower()
            rows = [row for row in self.rows if term in row["name"].lower()]
        else:
            slug = params["productType"]
            category_ids = [cid for cid, s in self.categories.items() if s == slug]
            rows = [row for row in self.rows if row["category"] in category_ids]

        page = int(params.get("page", 1))
        limit = int(params.get("limit", 24))
        start = (page - 1) * limit
        items = [
            {key: value for key, value in row.items() if key != "category"}
            for row in rows[start:start + limit]
        ]
        total_pages = max(1, -(-len(rows) // limit))
        return httpx.Response(200, json={"items": items, "total": len(rows), "totalPages": total_pages})

    def _apply(self, request: httpx.Request, payload_key: str) -> httpx.Response:
        if self.fail_commit_status is not None:
            return httpx.Response(self.fail_commit_status, json={"message": "Database is read-only"})
        body = json.loads(request.content)
        self.commits.append({"method": request.method, "path": request.url.path, "body": body})
        for record in body[payload_key]:
            row = self._row(record["style_code"])
            for field in self.POSITION_FIELDS:
                if field in record:
                    row[field] = record[field]
        return httpx.Response(200, json={"success": True, "updated": len(body[payload_key])})

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        path = request.url.path
        params = request.url.params

        if request.method == "GET" and self.fail_reads:
            return httpx.Response(503, json={"message": "Service unavailable"})

        if path == "/api/display-order" and request.method == "GET":
            return self._index(params["product_type_id"], "display_order")
        if path == "/api/admin/products/featured" and request.method == "GET":
            field = "best_seller_order" if params.get("type") == "best" else "recommended_order"
            return self._index(params["product_type_id"], field)
        if path == "/api/products" and request.method == "GET":
            return self._page(params)
        if path == "/api/display-order/bulk" and request.method == "POST":
            return self._apply(request, "orders")
        if path == "/api/admin/products/featured-order/bulk" and request.method == "PUT":
            return self._apply(request, "products")
        return httpx.Response(404, json={"message": f"No route {request.method} {path}"})


@pytest.fixture
def catalog_backend():
    return FakeCatalogBackend()


@pytest_asyncio.fixture
async def http_client(catalog_backend):
    async with httpx.AsyncClient(
        transport=httpx.MockTransport(catalog_backend.handler),
        base_url="http://catalog.test",
    ) as client:
        yield client


@pytest.fixture
def catalog_client(http_client, config_service):
    return CatalogClient(http_client, config_service)


@pytest.fixture
def session_storage():
    return InMemorySessionStorage(ttl=3600, cleanup_interval=60)


@pytest.fixture
def recorded_sleeps():
    return []


@pytest.fixture
def editor(catalog_client, session_storage, config_service, recorded_sleeps):
    """RankingEditor over the fake catalog; post-commit delays are recorded, not slept"""

    async def fake_sleep(seconds: float):
        recorded_sleeps.append(seconds)

    return RankingEditor(
        catalog=catalog_client,
        storage=session_storage,
        config_service=config_service,
        sleep=fake_sleep,
    )


# Pytest markers
def pytest_configure(config):
    """Register custom markers"""
    config.addinivalue_line("markers", "unit: Unit tests for individual components")
    config.addinivalue_line("markers", "integration: Integration tests")
    config.addinivalue_line("markers", "engine: Pure ranking engine tests")
    config.addinivalue_line("markers", "services: Service layer tests")


# Auto-use fixtures
@pytest.fixture(autouse=True)
def reset_singletons():
    """
    Reset singleton instances before each test
    Ensures test isolation
    """
    import catalog_ranking.services.config.configuration_service as config_module
    import catalog_ranking.database.session_storage as storage_module

    config_module._config_service = None
    storage_module._session_storage = None

    yield

    config_module._config_service = None
    storage_module._session_storage = None
