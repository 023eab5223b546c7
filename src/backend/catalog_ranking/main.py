"""
Catalog Ranking Service - Positional Ranking Editor
FastAPI Application Entry Point
"""

import logging
import logging.handlers
import os
import sys
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Optional

import httpx
import structlog
from dotenv import load_dotenv
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from .api.v1.health import router as health_router
from .api.v1.rankings import router as rankings_router, get_editor_dep
from .database.session_storage import get_session_storage, init_session_storage
from .middleware import LoggingMiddleware, SessionContextMiddleware
from .services.catalog.catalog_client import CatalogClient
from .services.config.configuration_service import get_config_service
from .services.editor.ranking_editor import RankingEditor

SERVICE_NAME = "catalog-ranking"
SERVICE_VERSION = "1.0.0"

# Load environment variables
load_dotenv()


def configure_logging():
    """
    Configure structured logging using structlog.

    - Production (ENV=production): JSON output for log aggregation
    - Development (ENV=development): Human-readable console output
    - Context merged into every record: correlation_id, session_id, scope
    """
    env = os.getenv("ENV", "development").lower()
    log_level_str = os.getenv("LOG_LEVEL", "INFO").upper()
    log_level = getattr(logging, log_level_str, logging.INFO)

    shared_processors = [
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.contextvars.merge_contextvars,
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.TimeStamper(fmt="iso"),
    ]

    if env == "production":
        renderer = structlog.processors.JSONRenderer()
    else:
        renderer = structlog.dev.ConsoleRenderer(
            colors=True,
            exception_formatter=structlog.dev.plain_traceback
        )

    structlog.configure(
        processors=shared_processors + [
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        cache_logger_on_first_use=True,
    )

    # stdlib records (engine modules use logging.getLogger) go through the same renderer
    formatter = structlog.stdlib.ProcessorFormatter(
        foreign_pre_chain=shared_processors,
        processors=[
            structlog.stdlib.ProcessorFormatter.remove_processors_meta,
            renderer,
        ],
    )

    # Default: <project root>/logs/catalog-ranking.log (main.py sits in src/backend/catalog_ranking)
    project_root = Path(__file__).resolve().parent.parent.parent.parent
    default_log_path = project_root / "logs" / f"{SERVICE_NAME}.log"
    log_file_path = str(Path(os.getenv("LOG_FILE_PATH", str(default_log_path))).resolve())
    log_dir = os.path.dirname(log_file_path)
    if log_dir:
        os.makedirs(log_dir, exist_ok=True)

    stdout_handler = logging.StreamHandler(sys.stdout)
    stdout_handler.setFormatter(formatter)

    file_handler = logging.handlers.RotatingFileHandler(
        filename=log_file_path,
        maxBytes=10 * 1024 * 1024,  # 10MB per file
        backupCount=5,
        encoding='utf-8'
    )
    file_handler.setFormatter(formatter)

    root_logger = logging.getLogger()
    for handler in list(root_logger.handlers):
        if getattr(handler, "_catalog_ranking", False):
            root_logger.removeHandler(handler)
    for handler in (stdout_handler, file_handler):
        handler._catalog_ranking = True
        root_logger.addHandler(handler)
    root_logger.setLevel(log_level)

    # Reduce noise from verbose libraries
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)

    return structlog.get_logger(__name__)


# Initialize structured logging
logger = configure_logging()

# Global instances
http_client: Optional[httpx.AsyncClient] = None
ranking_editor: Optional[RankingEditor] = None


def _catalog_headers() -> dict:
    headers = {"Accept": "application/json"}
    token = os.getenv("CATALOG_API_TOKEN")
    if token:
        headers["Authorization"] = f"Bearer {token}"
    return headers


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager - startup and shutdown"""
    global http_client, ranking_editor

    logger.info("Starting catalog ranking service...")
    config_service = get_config_service()

    for config_name in ("ranking_config", "remote_catalog", "cache_config"):
        if not config_service.validate_config(config_name):
            raise RuntimeError(f"Invalid configuration: {config_name}.json")
    logger.info("✓ Configuration validated")

    storage = init_session_storage(
        ttl=config_service.get_session_ttl(),
        cleanup_interval=config_service.get_session_cleanup_interval(),
    )
    storage.start_cleanup_loop()
    logger.info("✓ In-memory session storage initialized (no persistence across restarts)")

    base_url = config_service.get_catalog_base_url()
    http_client = httpx.AsyncClient(
        base_url=base_url,
        timeout=config_service.get_catalog_timeout(),
        headers=_catalog_headers(),
    )
    logger.info(f"✓ Catalog HTTP client initialized ({base_url})")

    ranking_editor = RankingEditor(
        catalog=CatalogClient(http_client, config_service),
        storage=storage,
        config_service=config_service,
    )
    logger.info("All services initialized successfully")

    yield

    logger.info("Shutting down catalog ranking service...")
    await storage.stop_cleanup_loop()
    await http_client.aclose()
    http_client = None
    ranking_editor = None
    logger.info("Shutdown complete")


# Create FastAPI application
app = FastAPI(
    title="Catalog Ranking Service",
    description="Sparse positional ranking editor for catalog display order and featured rank",
    version=SERVICE_VERSION,
    lifespan=lifespan
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=os.getenv("CORS_ORIGINS", "*").split(","),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Middleware runs in reverse order of addition: LoggingMiddleware first
app.add_middleware(SessionContextMiddleware)
app.add_middleware(LoggingMiddleware)


def get_editor() -> RankingEditor:
    """Get ranking editor instance for dependency injection"""
    if ranking_editor is None:
        raise RuntimeError("Ranking editor not initialized")
    return ranking_editor


app.include_router(rankings_router)
app.include_router(health_router)

# Override dependency in app (not router)
app.dependency_overrides[get_editor_dep] = get_editor


@app.get("/")
async def root():
    """Root endpoint"""
    return {
        "service": SERVICE_NAME,
        "version": SERVICE_VERSION,
        "endpoints": {
            "rankings": "/api/v1/rankings/sessions",
            "health": "/api/v1/health",
            "docs": "/docs"
        }
    }


@app.get("/health")
async def health_check():
    """Liveness check"""
    config_service = get_config_service()
    storage = get_session_storage()

    return {
        "status": "healthy" if ranking_editor is not None else "starting",
        "services": {
            "ranking_editor": ranking_editor is not None,
            "catalog_client": http_client is not None,
        },
        "session_storage": {
            "type": "in-memory",
            "ttl_seconds": config_service.get_session_ttl(),
            "active_sessions": len(await storage.get_all_session_ids()),
            "persistent": False,
        },
    }


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "catalog_ranking.main:app",
        host="0.0.0.0",
        port=int(os.getenv("PORT", "8000")),
        reload=True,
        log_level="info"
    )
