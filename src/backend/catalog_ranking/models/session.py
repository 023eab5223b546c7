"""
Editing Session Models
One operator's in-memory editing session over a ranking group in a category.
Holds the latest index/page snapshots plus one Edit Overlay per ranking.
"""

import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Union

from pydantic import BaseModel, Field, field_validator

from .ranking import (
    ConflictPrompt,
    EditOverlay,
    PositionIndex,
    RankedItem,
    RankingScope,
    ValidationErrorSet,
)

logger = logging.getLogger(__name__)

SESSION_SCHEMA_VERSION = 1


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


class PageQuery(BaseModel):
    """Which slice of the remote collection is on screen."""

    page: int = Field(default=1, ge=1)
    page_size: int = Field(default=24, ge=1)
    search: Optional[str] = None
    filters: Dict[str, Any] = Field(default_factory=dict)

    @field_validator("search")
    @classmethod
    def _blank_search_is_none(cls, value: Optional[str]) -> Optional[str]:
        if value is None:
            return None
        value = value.strip()
        return value or None


class ItemPage(BaseModel):
    """One fetched page of items. Positions are per ranking of the group."""

    items: List[Dict[str, Any]] = Field(default_factory=list)
    page: int = 1
    page_size: int = 24
    total: int = 0
    total_pages: int = 1

    class Config:
        frozen = True

    def ranked_items(self, ranking: str) -> List[RankedItem]:
        """Project the page onto one ranking."""
        return [
            RankedItem(
                item_id=row["item_id"],
                name=row.get("name", ""),
                position=row.get("positions", {}).get(ranking),
                attributes=row.get("attributes", {}),
            )
            for row in self.items
        ]

    def find(self, item_id: str, ranking: str) -> Optional[RankedItem]:
        for item in self.ranked_items(ranking):
            if item.item_id == item_id:
                return item
        return None


class EditingSession(BaseModel):
    """
    Mutable holder of the session's snapshots.

    Indexes, overlays and error sets are immutable values; commands replace
    them wholesale, which is what makes rollback a plain reassignment.
    """

    session_id: str
    group: str
    category_id: Union[int, str]
    category_slug: str
    rankings: List[str]
    active_ranking: str

    indexes: Dict[str, PositionIndex] = Field(default_factory=dict)
    overlays: Dict[str, EditOverlay] = Field(default_factory=dict)
    validation_errors: Dict[str, ValidationErrorSet] = Field(default_factory=dict)

    page: ItemPage = Field(default_factory=ItemPage)
    page_query: PageQuery = Field(default_factory=PageQuery)
    pending_conflict: Optional[ConflictPrompt] = None
    last_error: Optional[str] = None

    owner_user_id: Optional[str] = None
    created_at: datetime = Field(default_factory=_utc_now)
    last_updated: datetime = Field(default_factory=_utc_now)
    schema_version: int = Field(default=SESSION_SCHEMA_VERSION)

    class Config:
        validate_assignment = True

    @field_validator("active_ranking")
    @classmethod
    def _active_ranking_known(cls, value: str, info) -> str:
        rankings = info.data.get("rankings") or []
        if rankings and value not in rankings:
            raise ValueError(f"Unknown ranking '{value}' (expected one of {rankings})")
        return value

    def scope(self, ranking: Optional[str] = None) -> RankingScope:
        return RankingScope(
            group=self.group,
            category_id=self.category_id,
            ranking=ranking or self.active_ranking,
        )

    def index_for(self, ranking: Optional[str] = None) -> PositionIndex:
        ranking = ranking or self.active_ranking
        index = self.indexes.get(ranking)
        if index is None or index.scope != self.scope(ranking):
            return PositionIndex.empty(self.scope(ranking))
        return index

    def overlay_for(self, ranking: Optional[str] = None) -> EditOverlay:
        return self.overlays.get(ranking or self.active_ranking) or EditOverlay()

    def errors_for(self, ranking: Optional[str] = None) -> ValidationErrorSet:
        return self.validation_errors.get(ranking or self.active_ranking) or ValidationErrorSet()

    def replace_overlay(self, ranking: str, overlay: EditOverlay) -> None:
        """Swap in a new overlay snapshot; stale annotations go with the old one."""
        overlays = dict(self.overlays)
        overlays[ranking] = overlay
        self.overlays = overlays

        errors = dict(self.validation_errors)
        errors.pop(ranking, None)
        self.validation_errors = errors

        if self.pending_conflict and self.pending_conflict.ranking == ranking:
            self.pending_conflict = None
        self.touch()

    def pending_entry_count(self) -> int:
        return sum(len(overlay) for overlay in self.overlays.values())

    def touch(self) -> None:
        self.last_updated = _utc_now()
