"""
Move Engine

Single-step reordering. Moving onto an occupied slot always swaps with the
occupant, without confirmation: adjacent moves are frequent and a swap can
never lose an item.
"""

import logging
from typing import Iterable, Optional

from catalog_ranking.models.ranking import EditOverlay, OverlayEntry, PositionIndex, RankedItem
from catalog_ranking.services.ranking.conflicts import find_occupant
from catalog_ranking.services.ranking.overlay import effective_position, entry_for, known_name

logger = logging.getLogger(__name__)


def _current_integer_position(overlay: EditOverlay, item: RankedItem) -> Optional[int]:
    position = effective_position(overlay, item)
    if position is None:
        return None
    if isinstance(position, float):
        if not position.is_integer():
            return None
        position = int(position)
    return position


def _step(
    index: PositionIndex,
    overlay: EditOverlay,
    item: RankedItem,
    delta: int,
    known_items: Iterable[RankedItem],
) -> EditOverlay:
    current = _current_integer_position(overlay, item)
    if current is None:
        logger.debug("Move ignored for %s: not ranked", item.item_id)
        return overlay

    target = current + delta
    if target < 1:
        logger.debug("Move ignored for %s: already at position 1", item.item_id)
        return overlay

    occupant_id = find_occupant(index, overlay, item.item_id, target)

    if occupant_id is not None:
        if occupant_id in overlay:
            overlay = overlay.with_position(occupant_id, current)
        else:
            # Only the index knew about it, so its remote position is the target
            overlay = overlay.with_entry(
                OverlayEntry(
                    item_id=occupant_id,
                    name=known_name(overlay, known_items, occupant_id),
                    position=current,
                    original_position=target,
                )
            )

    if item.item_id in overlay:
        overlay = overlay.with_position(item.item_id, target)
    else:
        overlay = overlay.with_entry(entry_for(item, target))

    logger.debug(
        "Moved %s %s -> %s%s",
        item.item_id, current, target,
        f" (swapped with {occupant_id})" if occupant_id else "",
    )
    return overlay


def move_up(
    index: PositionIndex,
    overlay: EditOverlay,
    item: RankedItem,
    known_items: Iterable[RankedItem] = (),
) -> EditOverlay:
    """Decrement the item's position by one; no-op at position 1 or when unranked."""
    return _step(index, overlay, item, -1, list(known_items))


def move_down(
    index: PositionIndex,
    overlay: EditOverlay,
    item: RankedItem,
    known_items: Iterable[RankedItem] = (),
) -> EditOverlay:
    """Increment the item's position by one; positions have no ceiling."""
    return _step(index, overlay, item, 1, list(known_items))
