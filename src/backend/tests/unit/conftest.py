"""
Unit test fixtures

Builders for ranking engine snapshots. Unit tests should be fast and
isolated: no HTTP, no event loop unless the code under test is async.
"""

from typing import Any, Dict, Optional

import pytest

from catalog_ranking.models.ranking import (
    EditOverlay,
    OverlayEntry,
    PositionIndex,
    RankedItem,
    RankingScope,
)


@pytest.fixture
def scope():
    """Display-order scope of the t-shirts category"""
    return RankingScope(group="display_order", category_id=7, ranking="display_order")


@pytest.fixture
def make_index(scope):
    """Build a PositionIndex from {position: item_id}"""

    def _make(positions: Dict[int, str]) -> PositionIndex:
        return PositionIndex.from_pairs(scope, list(positions.items()))

    return _make


@pytest.fixture
def make_overlay():
    """Build an EditOverlay from {item_id: position} or {item_id: (position, original)}"""

    def _make(entries: Dict[str, Any]) -> EditOverlay:
        overlay = EditOverlay()
        for item_id, value in entries.items():
            position, original = value if isinstance(value, tuple) else (value, None)
            overlay = overlay.with_entry(
                OverlayEntry(item_id=item_id, name=item_id, position=position, original_position=original)
            )
        return overlay

    return _make


@pytest.fixture
def make_item():
    """Build a RankedItem as it would appear on a fetched page"""

    def _make(item_id: str, position: Optional[int] = None, name: str = "") -> RankedItem:
        return RankedItem(item_id=item_id, name=name, position=position)

    return _make
