"""
Positional ranking engine: pure functions over (PositionIndex, EditOverlay).
"""

from .commit import build_updates, merge_updates
from .conflicts import apply_replace, detect_conflict, find_occupant, is_position_occupied
from .moves import move_down, move_up
from .overlay import (
    discard,
    effective_position,
    has_unsaved_changes,
    is_movable,
    select_all,
    set_position,
    toggle_item,
    unrank,
)
from .rebalance import rebalance
from .validator import validate

__all__ = [
    "apply_replace",
    "build_updates",
    "detect_conflict",
    "discard",
    "effective_position",
    "find_occupant",
    "has_unsaved_changes",
    "is_movable",
    "is_position_occupied",
    "merge_updates",
    "move_down",
    "move_up",
    "rebalance",
    "select_all",
    "set_position",
    "toggle_item",
    "unrank",
    "validate",
]
