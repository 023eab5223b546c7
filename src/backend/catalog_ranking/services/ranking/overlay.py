"""
Edit Overlay accessors

Operator-driven transitions on the overlay (toggle, select-all, manual entry,
unrank, discard) plus the derived reads the UI needs. All functions return a
new EditOverlay and never mutate their inputs.
"""

import logging
from typing import Iterable, Optional

from catalog_ranking.models.ranking import EditOverlay, OverlayEntry, Position, RankedItem

logger = logging.getLogger(__name__)


def entry_for(item: RankedItem, position: Position) -> OverlayEntry:
    """New overlay entry that remembers the item's remote position as original."""
    return OverlayEntry(
        item_id=item.item_id,
        name=item.display_name,
        position=position,
        original_position=item.position,
        attributes=item.attributes,
    )


def effective_position(overlay: EditOverlay, item: RankedItem) -> Position:
    """Pending position if the item is in the overlay, remote position otherwise."""
    entry = overlay.get(item.item_id)
    if entry is not None:
        return entry.position
    return item.position


def stage(overlay: EditOverlay, item: RankedItem, position: Position) -> EditOverlay:
    """Set the proposed position, inserting the item first if needed."""
    if item.item_id in overlay:
        return overlay.with_position(item.item_id, position)
    return overlay.with_entry(entry_for(item, position))


def toggle_item(overlay: EditOverlay, item: RankedItem) -> EditOverlay:
    """Checkbox semantics: add with its remote position, or drop the pending change."""
    if item.item_id in overlay:
        logger.debug("Toggle off %s", item.item_id)
        return overlay.without(item.item_id)
    logger.debug("Toggle on %s at %s", item.item_id, item.position)
    return overlay.with_entry(entry_for(item, item.position))


def select_all(overlay: EditOverlay, items: Iterable[RankedItem]) -> EditOverlay:
    """Add every item not already present; existing entries keep their edits."""
    for item in items:
        if item.item_id not in overlay:
            overlay = overlay.with_entry(entry_for(item, item.position))
    return overlay


def set_position(overlay: EditOverlay, item: RankedItem, position: Position) -> EditOverlay:
    """
    Manual entry. Conflicts are allowed here so typing is never interrupted;
    the soft warning and the confirm step deal with them.
    """
    if position is None:
        return unrank(overlay, item)
    return stage(overlay, item, position)


def unrank(overlay: EditOverlay, item: RankedItem) -> EditOverlay:
    """Explicit unranked marker, tracked so the commit removes the remote rank."""
    return stage(overlay, item, None)


def discard(overlay: EditOverlay, item_id: str) -> EditOverlay:
    """Back to "no pending change, defer to remote"."""
    return overlay.without(item_id)


def has_unsaved_changes(overlay: EditOverlay) -> bool:
    """True iff some entry differs from its remote position (no-op entries don't count)."""
    return any(entry.is_changed for entry in overlay.values())


def is_movable(overlay: EditOverlay, item: RankedItem) -> bool:
    """Move controls show for overlay members and currently ranked items."""
    return item.item_id in overlay or item.position is not None


def as_ranked_item(entry: OverlayEntry) -> RankedItem:
    """Rebuild the remote view of an item that is only known through the overlay."""
    return RankedItem(
        item_id=entry.item_id,
        name=entry.name,
        position=entry.original_position,
        attributes=entry.attributes,
    )


def known_name(overlay: EditOverlay, items: Iterable[RankedItem], item_id: str) -> str:
    for item in items:
        if item.item_id == item_id:
            return item.display_name
    entry: Optional[OverlayEntry] = overlay.get(item_id)
    if entry is not None and entry.name:
        return entry.name
    return item_id
