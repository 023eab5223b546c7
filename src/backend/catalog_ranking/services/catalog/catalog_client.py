"""
Remote Catalog Client

Async HTTP access to the remote catalog / pricing service:
- position index per ranking scope (complete map of occupied positions)
- paginated item pages for browsing and search
- bulk position writes

Endpoints, field names and the unranked sentinel come from ranking_config.json,
so the same client serves the display-order and featured groups. The sentinel
is translated to "unranked" on read and back on write; nothing above this
layer ever sees it.
"""

import logging
import math
import time
from typing import Any, Dict, List, Optional, Union

import httpx

from catalog_ranking.models.ranking import PositionIndex, RankingScope
from catalog_ranking.models.session import ItemPage, PageQuery
from catalog_ranking.services.config.configuration_service import ConfigurationService

logger = logging.getLogger(__name__)


class CatalogServiceError(Exception):
    """Remote call failed (transport error, non-2xx status or unreadable body)."""

    def __init__(self, message: str, status_code: Optional[int] = None, endpoint: str = ""):
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.endpoint = endpoint


def _error_message(response: httpx.Response) -> str:
    """Prefer the remote's own `message` field, like the admin UI did."""
    try:
        body = response.json()
    except ValueError:
        body = None
    if isinstance(body, dict) and body.get("message"):
        return str(body["message"])
    return f"{response.status_code} {response.reason_phrase}".strip()


class CatalogClient:
    """
    Thin async facade over the remote catalog.

    The httpx.AsyncClient is owned by the application lifespan (it carries the
    base URL, auth header and timeout); this class never closes it.
    """

    def __init__(self, http_client: httpx.AsyncClient, config_service: ConfigurationService):
        self.http = http_client
        self.config = config_service
        self.sentinel = config_service.get_unranked_sentinel()
        remote = config_service.get_remote_catalog_config()
        self.cache_busting_param = remote.get("cache_busting_param")
        self.extra_headers = remote.get("headers", {})
        logger.info("CatalogClient initialized")

    # ------------------------------------------------------------------
    # Low level
    # ------------------------------------------------------------------

    async def _request(
        self,
        method: str,
        endpoint: str,
        params: Optional[Dict[str, Any]] = None,
        json: Optional[Dict[str, Any]] = None,
    ) -> Dict[str, Any]:
        params = dict(params or {})
        if method == "GET" and self.cache_busting_param:
            params[self.cache_busting_param] = int(time.time() * 1000)

        try:
            response = await self.http.request(
                method, endpoint, params=params, json=json, headers=self.extra_headers
            )
            response.raise_for_status()
        except httpx.HTTPStatusError as e:
            raise CatalogServiceError(
                _error_message(e.response), status_code=e.response.status_code, endpoint=endpoint
            ) from e
        except httpx.HTTPError as e:
            raise CatalogServiceError(
                f"Catalog service unreachable: {e.__class__.__name__}", endpoint=endpoint
            ) from e

        if not response.content:
            return {}
        try:
            data = response.json()
        except ValueError as e:
            raise CatalogServiceError(
                "Catalog service returned invalid JSON", status_code=response.status_code, endpoint=endpoint
            ) from e
        return data if isinstance(data, dict) else {"items": data}

    def _group(self, group: str) -> Dict[str, Any]:
        group_config = self.config.get_group(group)
        if group_config is None:
            raise KeyError(f"Ranking group not configured: {group}")
        return group_config

    def coerce_position(self, value: Any) -> Optional[int]:
        """Wire value -> position; None for missing, malformed, non-positive or sentinel."""
        if value is None or isinstance(value, bool):
            return None
        try:
            number = float(value)
        except (TypeError, ValueError):
            return None
        if not number.is_integer():
            return None
        position = int(number)
        if position < 1 or position == self.sentinel:
            return None
        return position

    @staticmethod
    def _item_id(row: Dict[str, Any], id_field: str) -> Optional[str]:
        value = row.get(id_field) or row.get("code")
        return str(value) if value is not None else None

    # ------------------------------------------------------------------
    # Position index
    # ------------------------------------------------------------------

    async def fetch_position_index(self, scope: RankingScope) -> PositionIndex:
        """
        Fetch the complete position index for one ranking scope.

        Raises:
            CatalogServiceError: remote failure; the caller decides how to degrade
        """
        group = self._group(scope.group)
        id_field = group["item_id_field"]
        position_field = self.config.get_position_fields(scope.group)[scope.ranking]

        params = {
            "product_type_id": scope.category_id,
            "limit": self.config.get_index_fetch_limit(),
            **self.config.get_index_params(scope.group, scope.ranking),
        }
        data = await self._request("GET", group["index_endpoint"], params=params)

        pairs = []
        for row in data.get("items") or []:
            item_id = self._item_id(row, id_field)
            if item_id is None:
                continue
            pairs.append((self.coerce_position(row.get(position_field)), item_id))

        index = PositionIndex.from_pairs(scope, pairs, sentinel=self.sentinel)
        logger.info(f"Fetched position index {scope.key}: {len(index)} ranked item(s)")
        return index

    # ------------------------------------------------------------------
    # Item pages
    # ------------------------------------------------------------------

    def _page_params(self, group: Dict[str, Any], category_slug: str, query: PageQuery) -> Dict[str, Any]:
        params: Dict[str, Any] = {}
        if query.search:
            params["q"] = query.search
            params["sort"] = group.get("search_sort", "newest")
        else:
            params["productType"] = category_slug
        params["page"] = query.page
        params["limit"] = query.page_size
        for key, value in query.filters.items():
            if value is not None and value != "":
                params[key] = value
        return params

    def _page_row(self, row: Dict[str, Any], group_name: str, group: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        item_id = self._item_id(row, group["item_id_field"])
        if item_id is None:
            return None

        name = ""
        for field in group.get("name_fields", ["name"]):
            if row.get(field):
                name = str(row[field])
                break

        positions = {
            ranking: self.coerce_position(row.get(field))
            for ranking, field in self.config.get_position_fields(group_name).items()
        }
        attributes = {
            field: row[field] for field in group.get("attribute_fields", []) if field in row
        }
        return {"item_id": item_id, "name": name, "positions": positions, "attributes": attributes}

    async def fetch_item_page(
        self,
        group_name: str,
        category_slug: str,
        query: PageQuery,
    ) -> ItemPage:
        """
        Fetch one page of items, annotated with every ranking of the group.

        Accepts both the flat (`total`, `totalPages`) and the nested
        (`pagination.totalItems`, `pagination.totalPages`) response shapes.
        """
        group = self._group(group_name)
        data = await self._request(
            "GET", group["page_endpoint"], params=self._page_params(group, category_slug, query)
        )

        rows: List[Dict[str, Any]] = []
        for raw in data.get("items") or []:
            row = self._page_row(raw, group_name, group)
            if row is not None:
                rows.append(row)

        pagination = data.get("pagination") or {}
        total = data["total"] if data.get("total") is not None else pagination.get("totalItems", 0)
        total_pages = (
            data.get("totalPages")
            or pagination.get("totalPages")
            or math.ceil((total or 0) / query.page_size)
            or 1
        )

        logger.info(
            f"Fetched page {query.page} of '{category_slug}' "
            f"({len(rows)} item(s), total={total}, search={query.search!r})"
        )
        return ItemPage(
            items=rows,
            page=query.page,
            page_size=query.page_size,
            total=int(total or 0),
            total_pages=int(total_pages),
        )

    # ------------------------------------------------------------------
    # Commit
    # ------------------------------------------------------------------

    async def submit_positions(
        self,
        group_name: str,
        category_id: Union[int, str],
        records: List[Dict[str, Any]],
    ) -> Dict[str, Any]:
        """
        Single bulk write of merged records. Never retried here.

        Raises:
            CatalogServiceError: the write did not go through
        """
        group = self._group(group_name)
        method = group.get("commit_method", "POST").upper()
        payload = {"product_type_id": category_id, group["commit_payload_key"]: records}

        logger.info(f"Submitting {len(records)} position record(s) for {group_name}:{category_id}")
        try:
            return await self._request(method, group["commit_endpoint"], json=payload)
        except CatalogServiceError as e:
            logger.error(f"Position commit failed for {group_name}:{category_id}: {e.message}")
            raise
