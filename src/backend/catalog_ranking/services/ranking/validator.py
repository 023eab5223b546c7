"""
Validator

Commit gate. Flags non-integer or non-positive positions, positions that
would collide with the unranked sentinel on the wire, and every item sharing
a duplicated position, so both sides of a collision are visible.
"""

import logging
from collections import defaultdict
from typing import Dict, List

from catalog_ranking.models.ranking import DEFAULT_UNRANKED_SENTINEL, EditOverlay, Position, ValidationErrorSet

logger = logging.getLogger(__name__)

INVALID_POSITION_MESSAGE = "Position must be a positive integer"


def reserved_position_message(sentinel: int) -> str:
    return f"Position must be below {sentinel}"


def is_valid_position(position: Position) -> bool:
    if isinstance(position, bool) or position is None:
        return False
    if isinstance(position, float) and not position.is_integer():
        return False
    return position >= 1


def validate(overlay: EditOverlay, sentinel: int = DEFAULT_UNRANKED_SENTINEL) -> ValidationErrorSet:
    errors: Dict[str, str] = {}
    holders: Dict[int, List[str]] = defaultdict(list)

    for entry in overlay.values():
        if entry.position is None:
            continue
        if not is_valid_position(entry.position):
            errors[entry.item_id] = INVALID_POSITION_MESSAGE
            continue
        # The remote reads the sentinel (and anything past it) back as unranked
        if entry.position >= sentinel:
            errors[entry.item_id] = reserved_position_message(sentinel)
            continue
        holders[int(entry.position)].append(entry.item_id)

    for position, item_ids in holders.items():
        if len(item_ids) > 1:
            for item_id in item_ids:
                errors[item_id] = f"Duplicate position {position}"

    if errors:
        logger.info("Overlay validation flagged %d item(s)", len(errors))
    return ValidationErrorSet(errors=errors)
