"""
Conflict Resolver

Decides whether a proposed position is already taken, looking at the
overlay before the remote index. The overlay reflects the operator's latest
intent, so an item already moved away from a slot is not reported just
because its remote record is stale.
"""

import logging
from typing import Iterable, Optional

from catalog_ranking.models.ranking import (
    ConflictPrompt,
    EditOverlay,
    OverlayEntry,
    PositionIndex,
    Position,
    RankedItem,
)
from catalog_ranking.services.ranking.overlay import known_name

logger = logging.getLogger(__name__)


def find_occupant(
    index: PositionIndex,
    overlay: EditOverlay,
    item_id: str,
    position: Position,
) -> Optional[str]:
    """
    Return the id of the item holding `position`, or None.

    1. Unranked and fractional positions never conflict.
    2. Another overlay entry proposing the same position wins.
    3. Otherwise the index occupant, unless it is the item itself or has a
       pending overlay entry (its slot has already been reassigned).
    """
    if position is None:
        return None

    # The validator rejects fractional positions
    if isinstance(position, float):
        if not position.is_integer():
            return None
        position = int(position)

    for entry in overlay.values():
        if entry.item_id != item_id and entry.position == position:
            return entry.item_id

    occupant = index.occupant(position)
    if occupant is not None and occupant != item_id and occupant not in overlay:
        return occupant

    return None


def is_position_occupied(
    index: PositionIndex,
    overlay: EditOverlay,
    item_id: str,
    position: Position,
) -> bool:
    """Soft, non-blocking warning while a position is still being typed."""
    return find_occupant(index, overlay, item_id, position) is not None


def detect_conflict(
    index: PositionIndex,
    overlay: EditOverlay,
    item_id: str,
    ranking: str,
    known_items: Iterable[RankedItem] = (),
) -> Optional[ConflictPrompt]:
    """
    Hard conflict check run when a manual entry is confirmed.

    Returns the replace-or-cancel prompt, or None when the staged position
    is free (or the item has nothing staged).
    """
    entry = overlay.get(item_id)
    if entry is None or entry.position is None:
        return None

    occupant_id = find_occupant(index, overlay, item_id, entry.position)
    if occupant_id is None:
        return None

    known_items = list(known_items)
    prompt = ConflictPrompt(
        ranking=ranking,
        item_id=item_id,
        item_name=entry.name or item_id,
        occupant_id=occupant_id,
        occupant_name=known_name(overlay, known_items, occupant_id),
        position=int(entry.position),
    )
    logger.info(
        "Position %s for %s is held by %s; awaiting replace/cancel",
        prompt.position, item_id, occupant_id,
    )
    return prompt


def apply_replace(
    index: PositionIndex,
    overlay: EditOverlay,
    prompt: ConflictPrompt,
) -> EditOverlay:
    """
    Operator chose "replace": the new item takes the position and the
    occupant is flipped to unranked. An occupant that only existed in the
    index enters the overlay with its remote position as original.
    """
    entry = overlay.get(prompt.item_id)
    if entry is None:
        entry = OverlayEntry(item_id=prompt.item_id, name=prompt.item_name)
    overlay = overlay.with_entry(entry.model_copy(update={"position": prompt.position}))

    if prompt.occupant_id in overlay:
        overlay = overlay.with_position(prompt.occupant_id, None)
    else:
        remote_position = index.position_of(prompt.occupant_id)
        overlay = overlay.with_entry(
            OverlayEntry(
                item_id=prompt.occupant_id,
                name=prompt.occupant_name,
                position=None,
                original_position=remote_position if remote_position is not None else prompt.position,
            )
        )

    logger.info("Replaced %s with %s at position %s", prompt.occupant_id, prompt.item_id, prompt.position)
    return overlay
