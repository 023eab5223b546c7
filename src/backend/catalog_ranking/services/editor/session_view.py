"""
Session view

Derived, read-only projection of an editing session for the admin UI. Every
per-row annotation (effective position, soft conflict, validation error,
movable) is computed here from the current snapshots, so the UI never has to
reimplement engine rules.
"""

from typing import Any, Dict, List

from catalog_ranking.models.session import EditingSession
from catalog_ranking.services.ranking import conflicts
from catalog_ranking.services.ranking import overlay as overlay_ops


def _row_view(session: EditingSession, row: Dict[str, Any]) -> Dict[str, Any]:
    positions = {}
    for ranking in session.rankings:
        item = session.page.find(row["item_id"], ranking)
        overlay = session.overlay_for(ranking)
        effective = overlay_ops.effective_position(overlay, item)
        positions[ranking] = {
            "remote": item.position,
            "effective": effective,
            "pending": item.item_id in overlay,
            "soft_conflict": (
                item.item_id in overlay
                and conflicts.is_position_occupied(session.index_for(ranking), overlay, item.item_id, effective)
            ),
            "error": session.errors_for(ranking).errors.get(item.item_id),
            "movable": overlay_ops.is_movable(overlay, item),
        }
    return {
        "item_id": row["item_id"],
        "name": row.get("name", ""),
        "attributes": row.get("attributes", {}),
        "positions": positions,
    }


def _overlay_view(session: EditingSession, ranking: str) -> List[Dict[str, Any]]:
    errors = session.errors_for(ranking).errors
    return [
        {
            "item_id": entry.item_id,
            "name": entry.name,
            "original_position": entry.original_position,
            "position": entry.position,
            "changed": entry.is_changed,
            "error": errors.get(entry.item_id),
        }
        for entry in sorted(
            session.overlay_for(ranking).values(),
            key=lambda e: (e.position is None, e.position or 0, e.item_id),
        )
    ]


def build_session_view(session: EditingSession) -> Dict[str, Any]:
    has_unsaved = any(overlay_ops.has_unsaved_changes(session.overlay_for(r)) for r in session.rankings)
    has_errors = any(not session.errors_for(r).is_empty for r in session.rankings)
    pending = session.pending_entry_count()

    return {
        "session_id": session.session_id,
        "group": session.group,
        "category_id": session.category_id,
        "category_slug": session.category_slug,
        "rankings": session.rankings,
        "active_ranking": session.active_ranking,
        "page": {
            "page": session.page.page,
            "page_size": session.page.page_size,
            "total": session.page.total,
            "total_pages": session.page.total_pages,
            "search": session.page_query.search,
            "filters": session.page_query.filters,
        },
        "items": [_row_view(session, row) for row in session.page.items],
        "index_sizes": {r: len(session.index_for(r)) for r in session.rankings},
        "overlays": {r: _overlay_view(session, r) for r in session.rankings},
        "validation_errors": {r: dict(session.errors_for(r).errors) for r in session.rankings},
        "pending_count": pending,
        "has_unsaved_changes": has_unsaved,
        "save_urgent": has_unsaved,
        "can_commit": pending > 0 and not has_errors and session.pending_conflict is None,
        "pending_conflict": session.pending_conflict.model_dump() if session.pending_conflict else None,
        "last_error": session.last_error,
        "last_updated": session.last_updated.isoformat(),
    }
