"""
Configuration Service
Centralized configuration management with caching and validation
"""

import json
import os
from functools import lru_cache
from typing import Dict, List, Any, Optional
import logging
from pathlib import Path

from jsonschema import ValidationError, validate

logger = logging.getLogger(__name__)

RANKING_GROUP_SCHEMA = {
    "type": "object",
    "required": [
        "item_id_field",
        "index_endpoint",
        "page_endpoint",
        "commit_endpoint",
        "commit_payload_key",
        "rankings",
    ],
    "properties": {
        "item_id_field": {"type": "string"},
        "index_endpoint": {"type": "string"},
        "page_endpoint": {"type": "string"},
        "commit_endpoint": {"type": "string"},
        "commit_method": {"enum": ["POST", "PUT", "PATCH"]},
        "commit_payload_key": {"type": "string"},
        "rankings": {
            "type": "object",
            "minProperties": 1,
            "additionalProperties": {
                "type": "object",
                "required": ["position_field"],
                "properties": {
                    "position_field": {"type": "string"},
                    "index_params": {"type": "object"},
                },
            },
        },
    },
}

CONFIG_SCHEMAS: Dict[str, Dict[str, Any]] = {
    "ranking_config": {
        "type": "object",
        "required": ["groups"],
        "properties": {
            "unranked_sentinel": {"type": "integer", "minimum": 1},
            "index_fetch_limit": {"type": "integer", "minimum": 1},
            "groups": {
                "type": "object",
                "minProperties": 1,
                "additionalProperties": RANKING_GROUP_SCHEMA,
            },
        },
    },
    "remote_catalog": {
        "type": "object",
        "properties": {
            "base_url": {"type": "string"},
            "timeout_seconds": {"type": "number", "exclusiveMinimum": 0},
            "headers": {"type": "object"},
        },
    },
    "cache_config": {
        "type": "object",
        "properties": {
            "editing_session": {
                "type": "object",
                "properties": {
                    "default_ttl_seconds": {"type": "integer", "minimum": 0},
                    "cleanup_interval_seconds": {"type": "number", "minimum": 0},
                },
            },
        },
    },
}


class ConfigurationService:
    """
    Centralized service for loading and caching application configurations

    Loads configurations from JSON files in the config directory with:
    - LRU caching for performance
    - Validation support
    - Error handling
    - Hot-reload capability
    """

    def __init__(self, config_dir: Optional[str] = None):
        """
        Initialize ConfigurationService

        Args:
            config_dir: Path to configuration directory. If None, uses default catalog_ranking/config
        """
        if config_dir is None:
            self.config_dir = Path(__file__).parent.parent.parent / "config"
        else:
            self.config_dir = Path(config_dir)

        logger.info(f"ConfigurationService initialized with config_dir: {self.config_dir}")

    @lru_cache(maxsize=32)
    def load_config(self, config_name: str) -> Dict[str, Any]:
        """
        Load configuration from JSON file with caching

        Args:
            config_name: Name of config file (without .json extension)

        Returns:
            Dict containing configuration data

        Raises:
            FileNotFoundError: If config file not found
            json.JSONDecodeError: If config file is invalid JSON
        """
        config_path = self.config_dir / f"{config_name}.json"

        try:
            if not config_path.exists():
                raise FileNotFoundError(f"Config file not found: {config_path}")

            with open(config_path, "r", encoding="utf-8") as f:
                config = json.load(f)

            logger.info(f"Loaded config: {config_name} (version: {config.get('version', 'N/A')})")
            return config

        except FileNotFoundError:
            logger.error(f"Config file not found: {config_name}.json")
            raise
        except json.JSONDecodeError as e:
            logger.error(f"Invalid JSON in {config_name}.json: {e}")
            raise

    def reload_config(self, config_name: str) -> Dict[str, Any]:
        """
        Force reload of configuration (clears cache)

        Args:
            config_name: Name of config file to reload

        Returns:
            Freshly loaded configuration
        """
        self.load_config.cache_clear()
        logger.info(f"Cache cleared, reloading config: {config_name}")
        return self.load_config(config_name)

    # ------------------------------------------------------------------
    # Ranking groups
    # ------------------------------------------------------------------

    def get_ranking_config(self) -> Dict[str, Any]:
        """Get ranking engine configuration"""
        return self.load_config("ranking_config")

    def get_unranked_sentinel(self) -> int:
        """Wire value meaning "explicitly unranked" (default: 999999)"""
        return int(self.get_ranking_config().get("unranked_sentinel", 999999))

    def get_group_names(self) -> List[str]:
        return list(self.get_ranking_config().get("groups", {}).keys())

    def get_default_group(self) -> str:
        config = self.get_ranking_config()
        return config.get("default_group") or self.get_group_names()[0]

    def get_group(self, group: str) -> Optional[Dict[str, Any]]:
        """
        Get a ranking group definition

        Args:
            group: Group key (e.g., "display_order", "featured")

        Returns:
            Group configuration dict or None if not configured
        """
        return self.get_ranking_config().get("groups", {}).get(group)

    def get_group_rankings(self, group: str) -> List[str]:
        """Ranking names of a group in configured order"""
        group_config = self.get_group(group) or {}
        return list(group_config.get("rankings", {}).keys())

    def get_position_fields(self, group: str) -> Dict[str, str]:
        """
        Map ranking name -> wire position field for a group

        Examples:
            >>> config_service.get_position_fields("featured")
            {"best_seller": "best_seller_order", "recommended": "recommended_order"}
        """
        group_config = self.get_group(group) or {}
        return {
            ranking: ranking_config.get("position_field", ranking)
            for ranking, ranking_config in group_config.get("rankings", {}).items()
        }

    def get_index_params(self, group: str, ranking: str) -> Dict[str, Any]:
        group_config = self.get_group(group) or {}
        return dict(group_config.get("rankings", {}).get(ranking, {}).get("index_params", {}))

    def get_default_page_size(self) -> int:
        return int(self.get_ranking_config().get("paging", {}).get("default_page_size", 24))

    def get_max_page_size(self) -> int:
        return int(self.get_ranking_config().get("paging", {}).get("max_page_size", 100))

    def get_index_fetch_limit(self) -> int:
        return int(self.get_ranking_config().get("index_fetch_limit", 1000))

    def get_post_commit_delay(self) -> float:
        """Seconds to wait before refetching after a successful commit"""
        return float(self.get_ranking_config().get("post_commit_refresh_delay_seconds", 1.0))

    # ------------------------------------------------------------------
    # Remote catalog
    # ------------------------------------------------------------------

    def get_remote_catalog_config(self) -> Dict[str, Any]:
        """Get remote catalog connection configuration"""
        return self.load_config("remote_catalog")

    def get_catalog_base_url(self) -> str:
        """CATALOG_API_BASE overrides the configured base URL"""
        return os.getenv("CATALOG_API_BASE") or self.get_remote_catalog_config().get("base_url", "")

    def get_catalog_timeout(self) -> float:
        return float(self.get_remote_catalog_config().get("timeout_seconds", 15.0))

    # ------------------------------------------------------------------
    # Editing sessions
    # ------------------------------------------------------------------

    def get_cache_config(self) -> Dict[str, Any]:
        """Get cache configuration"""
        return self.load_config("cache_config")

    def get_session_ttl(self) -> int:
        """Get editing session TTL in seconds"""
        config = self.get_cache_config()
        return config.get("editing_session", {}).get("default_ttl_seconds", 3600)

    def get_session_cleanup_interval(self) -> int:
        config = self.get_cache_config()
        return config.get("editing_session", {}).get("cleanup_interval_seconds", 300)

    def validate_config(self, config_name: str) -> bool:
        """
        Validate configuration file

        Args:
            config_name: Name of config to validate

        Returns:
            True if valid, False otherwise
        """
        try:
            config = self.load_config(config_name)
        except (OSError, json.JSONDecodeError) as e:
            logger.error(f"Config validation failed for {config_name}: {e}")
            return False

        if "version" not in config:
            logger.warning(f"Config {config_name} missing version field")

        schema = CONFIG_SCHEMAS.get(config_name)
        if schema is not None:
            try:
                validate(instance=config, schema=schema)
            except ValidationError as e:
                location = "/".join(str(part) for part in e.absolute_path) or "<root>"
                logger.error(f"Config {config_name} failed schema validation at {location}: {e.message}")
                return False

        logger.info(f"Config {config_name} validated successfully")
        return True


# Global singleton instance
_config_service: Optional[ConfigurationService] = None


def get_config_service() -> ConfigurationService:
    """
    Get global ConfigurationService singleton instance

    Returns:
        ConfigurationService instance
    """
    global _config_service
    if _config_service is None:
        _config_service = ConfigurationService()
    return _config_service


def init_config_service(config_dir: Optional[str] = None) -> ConfigurationService:
    """
    Initialize global ConfigurationService with custom config directory

    Args:
        config_dir: Path to configuration directory

    Returns:
        ConfigurationService instance
    """
    global _config_service
    _config_service = ConfigurationService(config_dir)
    logger.info("Global ConfigurationService initialized")
    return _config_service
