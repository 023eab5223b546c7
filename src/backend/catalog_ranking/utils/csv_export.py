"""CSV export of pending ranking changes."""

import csv
import io
from typing import Optional

from catalog_ranking.models.session import EditingSession

CSV_HEADERS = ["Code", "Name", "Ranking", "Original Position", "Proposed Position", "Status"]


def _status(original, proposed) -> str:
    if original == proposed:
        return "unchanged"
    if proposed is None:
        return "unranked"
    if original is None:
        return "new"
    return "moved"


def export_overlay_csv(session: EditingSession, ranking: Optional[str] = None) -> str:
    """Pending overlay of one ranking (or all rankings of the group) as CSV text."""
    rankings = [ranking] if ranking else session.rankings

    buffer = io.StringIO()
    writer = csv.writer(buffer)
    writer.writerow(CSV_HEADERS)
    for name in rankings:
        entries = sorted(session.overlay_for(name).values(), key=lambda e: e.item_id)
        for entry in entries:
            writer.writerow([
                entry.item_id,
                entry.name,
                name,
                "" if entry.original_position is None else entry.original_position,
                "" if entry.position is None else entry.position,
                _status(entry.original_position, entry.position),
            ])
    return buffer.getvalue()
