"""
Rebalancer

Compacts the sparse sequence formed by the index plus the overlay into
1..N, keeping relative order. A dense, strictly increasing reassignment
cannot collide with itself, so no conflict detection happens here.
"""

import logging
from typing import Dict, Iterable

from catalog_ranking.models.ranking import EditOverlay, OverlayEntry, PositionIndex, Position, RankedItem
from catalog_ranking.services.ranking.overlay import known_name

logger = logging.getLogger(__name__)


def ranked_union(index: PositionIndex, overlay: EditOverlay) -> Dict[str, Position]:
    """item id -> current position; overlay overrides, overlay unranked removes."""
    union: Dict[str, Position] = {item_id: position for position, item_id in index.items()}
    for entry in overlay.values():
        if entry.position is None:
            union.pop(entry.item_id, None)
        else:
            union[entry.item_id] = entry.position
    return union


def rebalance(
    index: PositionIndex,
    overlay: EditOverlay,
    known_items: Iterable[RankedItem] = (),
) -> EditOverlay:
    """Stamp positions 1..N, in current order, into the overlay."""
    known_items = list(known_items)
    union = ranked_union(index, overlay)
    ordered = sorted(union.items(), key=lambda pair: (pair[1], pair[0]))

    for new_position, (item_id, _) in enumerate(ordered, start=1):
        if item_id in overlay:
            overlay = overlay.with_position(item_id, new_position)
        else:
            overlay = overlay.with_entry(
                OverlayEntry(
                    item_id=item_id,
                    name=known_name(overlay, known_items, item_id),
                    position=new_position,
                    original_position=index.position_of(item_id),
                )
            )

    logger.info("Rebalanced %d ranked items into 1..%d", len(ordered), len(ordered))
    return overlay
