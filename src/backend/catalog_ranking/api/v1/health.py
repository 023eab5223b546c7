"""
Health Check API Endpoints
GET /api/v1/health - Configuration and session store health
GET /api/v1/health/config/{config_name} - Specific config health
"""

import logging
from datetime import datetime, timezone
from typing import Dict, Any, List

from fastapi import APIRouter, HTTPException
from pydantic import BaseModel

from ...database.session_storage import get_session_storage
from ...services.config.configuration_service import get_config_service

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/v1/health", tags=["Health"])

MONITORED_CONFIGS: List[str] = ["ranking_config", "remote_catalog", "cache_config"]


class ConfigHealthResponse(BaseModel):
    """Response model for config health check"""
    config_name: str
    status: str
    version: str
    last_validated: str


class SystemHealthResponse(BaseModel):
    """Response model for service health check"""
    status: str
    configs: Dict[str, str]
    groups: Dict[str, List[str]]
    active_sessions: int
    last_check: str


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


@router.get("", response_model=SystemHealthResponse)
async def get_health():
    """
    Overall health: every config file validates and the session store answers.

    Example:
        GET /api/v1/health

        Response:
        {
            "status": "healthy",
            "configs": {"ranking_config": "healthy", ...},
            "groups": {"display_order": ["display_order"], "featured": ["best_seller", "recommended"]},
            "active_sessions": 1,
            "last_check": "2025-01-28T10:30:00+00:00"
        }
    """
    config_service = get_config_service()
    configs = {
        name: "healthy" if config_service.validate_config(name) else "error"
        for name in MONITORED_CONFIGS
    }

    groups: Dict[str, List[str]] = {}
    if configs["ranking_config"] == "healthy":
        groups = {group: config_service.get_group_rankings(group) for group in config_service.get_group_names()}

    storage = get_session_storage()
    active_sessions = len(await storage.get_all_session_ids())

    status = "healthy" if all(value == "healthy" for value in configs.values()) else "degraded"
    if status != "healthy":
        logger.warning(f"Health check degraded: {configs}")

    return SystemHealthResponse(
        status=status,
        configs=configs,
        groups=groups,
        active_sessions=active_sessions,
        last_check=_now_iso(),
    )


@router.get("/config/{config_name}", response_model=ConfigHealthResponse)
async def get_specific_config_health(config_name: str):
    """
    Health of one configuration file

    Raises:
        404 if the config is not one of the monitored files
    """
    if config_name not in MONITORED_CONFIGS:
        raise HTTPException(status_code=404, detail=f"Unknown config: {config_name}")

    config_service = get_config_service()
    valid = config_service.validate_config(config_name)
    version = config_service.load_config(config_name).get("version", "N/A") if valid else "N/A"

    return ConfigHealthResponse(
        config_name=config_name,
        status="healthy" if valid else "error",
        version=str(version),
        last_validated=_now_iso(),
    )
