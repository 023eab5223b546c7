"""
Ranking Engine Data Model

Immutable snapshots used by the positional-ranking engine:
- PositionIndex: authoritative remote map of occupied position -> item id
- EditOverlay: pending local changes, replaced wholesale on every transition
- ValidationErrorSet / ConflictPrompt: transient annotations for the UI

Every "mutation" returns a new instance so the resolver, move engine,
rebalancer and validator stay pure functions of (index, overlay).
"""

import logging
from typing import Any, Dict, Iterable, List, Optional, Tuple, Union

from pydantic import BaseModel, Field

logger = logging.getLogger(__name__)

# Wire convention for "explicitly unranked" used by every remote consumer
DEFAULT_UNRANKED_SENTINEL = 999999

# Proposed position: int, a stray non-integer (flagged by the validator), or None = unranked
Position = Optional[Union[int, float]]


class RankingScope(BaseModel):
    """One independent ranking inside one catalog category."""

    group: str
    category_id: Union[int, str]
    ranking: str

    class Config:
        frozen = True

    @property
    def key(self) -> str:
        return f"{self.group}:{self.category_id}:{self.ranking}"


class RankedItem(BaseModel):
    """An item as last reported by the remote catalog for one ranking."""

    item_id: str
    name: str = ""
    position: Optional[int] = None
    attributes: Dict[str, Any] = Field(default_factory=dict)

    class Config:
        frozen = True

    @property
    def display_name(self) -> str:
        return self.name or self.item_id


class PositionIndex(BaseModel):
    """
    Complete map of occupied positions for a ranking scope.

    Injective by construction: from_pairs() never lets two items share a
    position, and it drops anything the remote reports as unranked.
    """

    scope: RankingScope
    positions: Dict[int, str] = Field(default_factory=dict)

    class Config:
        frozen = True

    @classmethod
    def empty(cls, scope: RankingScope) -> "PositionIndex":
        return cls(scope=scope)

    @classmethod
    def from_pairs(
        cls,
        scope: RankingScope,
        pairs: Iterable[Tuple[Optional[int], str]],
        sentinel: int = DEFAULT_UNRANKED_SENTINEL,
    ) -> "PositionIndex":
        """
        Build an index from (position, item_id) pairs.

        None, non-positive and sentinel positions mean "unranked" and are skipped.
        If the remote ever reports a duplicate, the first occupant wins.
        """
        positions: Dict[int, str] = {}
        for position, item_id in pairs:
            if position is None or position == sentinel or position < 1:
                continue
            if position in positions:
                logger.warning(
                    "Duplicate remote position %s for scope %s (%s vs %s); keeping first",
                    position, scope.key, positions[position], item_id,
                )
                continue
            positions[position] = item_id
        return cls(scope=scope, positions=positions)

    def occupant(self, position: Optional[int]) -> Optional[str]:
        if position is None:
            return None
        return self.positions.get(position)

    def position_of(self, item_id: str) -> Optional[int]:
        for position, occupant in self.positions.items():
            if occupant == item_id:
                return position
        return None

    def items(self) -> List[Tuple[int, str]]:
        """Occupied (position, item_id) pairs in ascending position order."""
        return sorted(self.positions.items())

    def __len__(self) -> int:
        return len(self.positions)


class OverlayEntry(BaseModel):
    """
    Pending state for one item.

    position None is the explicit "unranked" marker. original_position and
    name are retained so the entry stays meaningful after the page changes.
    """

    item_id: str
    name: str = ""
    position: Position = None
    original_position: Optional[int] = None
    attributes: Dict[str, Any] = Field(default_factory=dict)

    class Config:
        frozen = True

    @property
    def is_unranked(self) -> bool:
        return self.position is None

    @property
    def is_changed(self) -> bool:
        return self.position != self.original_position


class EditOverlay(BaseModel):
    """Copy-on-write map of item id -> OverlayEntry."""

    entries: Dict[str, OverlayEntry] = Field(default_factory=dict)

    class Config:
        frozen = True

    def get(self, item_id: str) -> Optional[OverlayEntry]:
        return self.entries.get(item_id)

    def __contains__(self, item_id: object) -> bool:
        return item_id in self.entries

    def __len__(self) -> int:
        return len(self.entries)

    def values(self) -> List[OverlayEntry]:
        return list(self.entries.values())

    def with_entry(self, entry: OverlayEntry) -> "EditOverlay":
        entries = dict(self.entries)
        entries[entry.item_id] = entry
        return EditOverlay(entries=entries)

    def with_position(self, item_id: str, position: Position) -> "EditOverlay":
        """Replace the proposed position of an existing entry."""
        entry = self.entries[item_id]
        return self.with_entry(entry.model_copy(update={"position": position}))

    def without(self, item_id: str) -> "EditOverlay":
        if item_id not in self.entries:
            return self
        entries = dict(self.entries)
        del entries[item_id]
        return EditOverlay(entries=entries)

    def cleared(self) -> "EditOverlay":
        return EditOverlay()


class ValidationErrorSet(BaseModel):
    """item id -> human readable reason. Empty means commit-eligible."""

    errors: Dict[str, str] = Field(default_factory=dict)

    class Config:
        frozen = True

    @property
    def is_empty(self) -> bool:
        return not self.errors

    def __len__(self) -> int:
        return len(self.errors)

    def __contains__(self, item_id: object) -> bool:
        return item_id in self.errors


class ConflictPrompt(BaseModel):
    """Open replace-or-cancel decision raised on confirm of a manual entry."""

    ranking: str
    item_id: str
    item_name: str
    occupant_id: str
    occupant_name: str
    position: int

    class Config:
        frozen = True
