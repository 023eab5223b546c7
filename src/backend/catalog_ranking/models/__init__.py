"""Models package - ranking engine snapshots and editing session state"""

from .ranking import (
    DEFAULT_UNRANKED_SENTINEL,
    ConflictPrompt,
    EditOverlay,
    OverlayEntry,
    PositionIndex,
    RankedItem,
    RankingScope,
    ValidationErrorSet,
)

from .session import (
    EditingSession,
    ItemPage,
    PageQuery,
)

__all__ = [
    "DEFAULT_UNRANKED_SENTINEL",
    "ConflictPrompt",
    "EditOverlay",
    "OverlayEntry",
    "PositionIndex",
    "RankedItem",
    "RankingScope",
    "ValidationErrorSet",
    "EditingSession",
    "ItemPage",
    "PageQuery",
]
