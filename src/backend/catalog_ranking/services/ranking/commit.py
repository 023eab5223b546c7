"""
Commit payload builders

Translate validated overlays into the remote write format. Unranked
markers become the sentinel so the remote clears the rank.
"""

import logging
from typing import Any, Dict, List, Mapping, Tuple

from catalog_ranking.models.ranking import DEFAULT_UNRANKED_SENTINEL, EditOverlay

logger = logging.getLogger(__name__)


def wire_position(position, sentinel: int = DEFAULT_UNRANKED_SENTINEL) -> int:
    if position is None:
        return sentinel
    return int(position)


def build_updates(
    overlay: EditOverlay,
    sentinel: int = DEFAULT_UNRANKED_SENTINEL,
) -> List[Tuple[str, int]]:
    """(item_id, position) for every overlay entry, ordered by item id."""
    return [
        (entry.item_id, wire_position(entry.position, sentinel))
        for entry in sorted(overlay.values(), key=lambda e: e.item_id)
    ]


def merge_updates(
    overlays: Mapping[str, EditOverlay],
    fields: Mapping[str, str],
    sentinel: int = DEFAULT_UNRANKED_SENTINEL,
    id_field: str = "style_code",
) -> List[Dict[str, Any]]:
    """
    One record per item across every ranking of a group.

    An item only carries the fields of rankings where it has an overlay
    entry, so untouched rankings keep their remote value.

    Example, for a featured group:
        [{"style_code": "A1", "best_seller_order": 2, "recommended_order": 999999}]
    """
    records: Dict[str, Dict[str, Any]] = {}
    for ranking, overlay in overlays.items():
        field = fields[ranking]
        for item_id, position in build_updates(overlay, sentinel):
            record = records.setdefault(item_id, {id_field: item_id})
            record[field] = position

    merged = [records[item_id] for item_id in sorted(records)]
    logger.debug("Merged %d commit record(s) across %d ranking(s)", len(merged), len(overlays))
    return merged
