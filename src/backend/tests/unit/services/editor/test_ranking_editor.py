"""
Unit tests for RankingEditor
Session commands against the in-memory fake catalog (httpx.MockTransport)
"""

import uuid
from datetime import timedelta

import pytest

from catalog_ranking.services.editor.errors import (
    CommitFailedError,
    NoPendingConflictError,
    NothingToCommitError,
    SessionNotFoundError,
    UnknownItemError,
    UnknownRankingError,
    UnsavedChangesError,
    ValidationFailedError,
)

SENTINEL = 999999


def _positions(session, ranking=None):
    return {entry.item_id: entry.position for entry in session.overlay_for(ranking).values()}


@pytest.fixture
def open_display_order(editor):
    async def _open(**kwargs):
        return await editor.open_session("display_order", 7, "t-shirts", **kwargs)

    return _open


@pytest.fixture
def open_featured(editor):
    async def _open(**kwargs):
        return await editor.open_session("featured", 7, "t-shirts", page_size=10, **kwargs)

    return _open


@pytest.mark.services
class TestSessionLifecycle:

    @pytest.mark.asyncio
    async def test_open_fetches_index_and_first_page(self, editor, open_display_order, session_storage):
        session = await open_display_order()

        assert session.active_ranking == "display_order"
        assert session.index_for().positions == {1: "A1", 2: "B2", 4: "D4"}
        assert [row["item_id"] for row in session.page.items] == ["A1", "B2", "C3", "D4"]
        assert session.page.total == 6
        assert session.page_query.page_size == 4
        assert session.last_error is None
        assert await session_storage.get_session(session.session_id) is session

    @pytest.mark.asyncio
    async def test_open_featured_fetches_every_ranking(self, open_featured):
        session = await open_featured(ranking="recommended")

        assert session.rankings == ["best_seller", "recommended"]
        assert session.active_ranking == "recommended"
        assert session.index_for("best_seller").positions == {1: "A1", 2: "D4"}
        assert session.index_for("recommended").positions == {1: "B2"}

    @pytest.mark.asyncio
    async def test_page_size_clamped(self, open_display_order):
        session = await open_display_order(page_size=500)
        assert session.page_query.page_size == 50

    @pytest.mark.asyncio
    async def test_unknown_group(self, editor):
        with pytest.raises(UnknownRankingError):
            await editor.open_session("bestsellers", 7, "t-shirts")

    @pytest.mark.asyncio
    async def test_unknown_ranking_in_group(self, editor):
        with pytest.raises(UnknownRankingError):
            await editor.open_session("featured", 7, "t-shirts", ranking="display_order")

    @pytest.mark.asyncio
    async def test_close_session(self, editor, open_display_order):
        session = await open_display_order()

        await editor.close_session(session.session_id)

        with pytest.raises(SessionNotFoundError):
            await editor.get_session(session.session_id)
        with pytest.raises(SessionNotFoundError):
            await editor.close_session(session.session_id)

    @pytest.mark.asyncio
    async def test_expired_session_releases_fetch_channels(self, editor, open_display_order, session_storage):
        session = await open_display_order()
        assert editor.sequencer.generation(session.session_id, "page") == 1

        session_storage._session_metadata[session.session_id]["last_access"] -= timedelta(hours=2)
        assert await session_storage.cleanup_expired_sessions() == [session.session_id]

        assert editor.sequencer.generation(session.session_id, "page") == 0
        assert editor.sequencer.generation(session.session_id, "index:display_order") == 0

    @pytest.mark.asyncio
    async def test_unknown_session(self, editor):
        with pytest.raises(SessionNotFoundError):
            await editor.toggle(str(uuid.uuid4()), "A1")


@pytest.mark.services
class TestDegradedReads:

    @pytest.mark.asyncio
    async def test_open_with_remote_down(self, catalog_backend, open_display_order):
        catalog_backend.fail_reads = True

        session = await open_display_order()

        assert "Service unavailable" in session.last_error
        assert len(session.index_for()) == 0
        assert session.page.items == []

    @pytest.mark.asyncio
    async def test_refresh_failure_keeps_previous_index(self, editor, catalog_backend, open_display_order):
        session = await open_display_order()
        catalog_backend.fail_reads = True

        session = await editor.refresh(session.session_id)

        assert session.index_for().positions == {1: "A1", 2: "B2", 4: "D4"}
        assert len(session.page.items) == 4
        assert session.last_error is not None

    @pytest.mark.asyncio
    async def test_successful_refresh_clears_error(self, editor, catalog_backend, open_display_order):
        catalog_backend.fail_reads = True
        session = await open_display_order()
        catalog_backend.fail_reads = False

        session = await editor.refresh(session.session_id)

        assert session.last_error is None
        assert len(session.index_for()) == 3


@pytest.mark.services
class TestItemCommands:

    @pytest.mark.asyncio
    async def test_toggle_on_and_off(self, editor, open_display_order):
        session = await open_display_order()

        session = await editor.toggle(session.session_id, "C3")
        entry = session.overlay_for().get("C3")
        assert entry.position is None
        assert entry.name == "Charlie Tee"

        session = await editor.toggle(session.session_id, "C3")
        assert "C3" not in session.overlay_for()

    @pytest.mark.asyncio
    async def test_select_all_and_clear(self, editor, open_display_order):
        session = await open_display_order()

        session = await editor.select_all(session.session_id)
        assert set(_positions(session)) == {"A1", "B2", "C3", "D4"}

        session = await editor.clear(session.session_id)
        assert len(session.overlay_for()) == 0

    @pytest.mark.asyncio
    async def test_unrank_and_discard(self, editor, open_display_order):
        session = await open_display_order()

        session = await editor.unrank(session.session_id, "A1")
        assert session.overlay_for().get("A1").position is None
        assert session.overlay_for().get("A1").original_position == 1

        session = await editor.discard(session.session_id, "A1")
        assert "A1" not in session.overlay_for()

    @pytest.mark.asyncio
    async def test_unknown_item(self, editor, open_display_order):
        session = await open_display_order()

        with pytest.raises(UnknownItemError):
            await editor.set_position(session.session_id, "ZZ9", 3)

    @pytest.mark.asyncio
    async def test_item_resolved_from_index_off_page(self, editor, open_display_order):
        session = await open_display_order()
        session = await editor.load_page(session.session_id, page=2)
        assert [row["item_id"] for row in session.page.items] == ["E5", "F6"]

        session = await editor.move(session.session_id, "D4", "up")

        entry = session.overlay_for().get("D4")
        assert entry.position == 3
        assert entry.original_position == 4

    @pytest.mark.asyncio
    async def test_move_up_swaps(self, editor, open_display_order):
        session = await open_display_order()

        session = await editor.move(session.session_id, "B2", "up")

        assert _positions(session) == {"B2": 1, "A1": 2}
        assert session.overlay_for().get("A1").name == "Alpha Tee"

    @pytest.mark.asyncio
    async def test_move_down_then_up_has_no_net_change(self, editor, open_display_order):
        session = await open_display_order()

        session = await editor.move(session.session_id, "A1", "down")
        session = await editor.move(session.session_id, "A1", "up")

        assert all(not entry.is_changed for entry in session.overlay_for().values())

    @pytest.mark.asyncio
    async def test_rebalance(self, editor, open_display_order):
        session = await open_display_order()

        session = await editor.rebalance(session.session_id)

        assert _positions(session) == {"A1": 1, "B2": 2, "D4": 3}
        assert session.overlay_for().get("D4").is_changed


@pytest.mark.services
class TestConflictFlow:

    @pytest.mark.asyncio
    async def test_confirm_free_position(self, editor, open_display_order):
        session = await open_display_order()
        await editor.set_position(session.session_id, "C3", 3)

        session = await editor.confirm_position(session.session_id, "C3")

        assert session.pending_conflict is None

    @pytest.mark.asyncio
    async def test_confirm_taken_position_opens_prompt(self, editor, open_display_order):
        session = await open_display_order()
        await editor.set_position(session.session_id, "C3", 2)

        session = await editor.confirm_position(session.session_id, "C3")

        prompt = session.pending_conflict
        assert prompt.occupant_id == "B2"
        assert prompt.occupant_name == "Bravo Tee"
        assert prompt.item_name == "Charlie Tee"
        assert prompt.position == 2

    @pytest.mark.asyncio
    async def test_replace(self, editor, open_display_order):
        session = await open_display_order()
        await editor.set_position(session.session_id, "C3", 2)
        await editor.confirm_position(session.session_id, "C3")

        session = await editor.resolve_conflict(session.session_id, "replace")

        assert session.pending_conflict is None
        assert _positions(session) == {"C3": 2, "B2": None}
        assert session.overlay_for().get("B2").original_position == 2

    @pytest.mark.asyncio
    async def test_cancel_leaves_overlay(self, editor, open_display_order):
        session = await open_display_order()
        await editor.set_position(session.session_id, "C3", 2)
        await editor.confirm_position(session.session_id, "C3")

        session = await editor.resolve_conflict(session.session_id, "cancel")

        assert session.pending_conflict is None
        assert _positions(session) == {"C3": 2}

    @pytest.mark.asyncio
    async def test_resolve_without_prompt(self, editor, open_display_order):
        session = await open_display_order()

        with pytest.raises(NoPendingConflictError):
            await editor.resolve_conflict(session.session_id, "replace")

    @pytest.mark.asyncio
    async def test_editing_again_dismisses_prompt(self, editor, open_display_order):
        session = await open_display_order()
        await editor.set_position(session.session_id, "C3", 2)
        await editor.confirm_position(session.session_id, "C3")

        session = await editor.set_position(session.session_id, "C3", 3)

        assert session.pending_conflict is None


@pytest.mark.services
class TestScopeChanges:

    @pytest.mark.asyncio
    async def test_switch_category_guarded(self, editor, open_display_order):
        session = await open_display_order()
        await editor.set_position(session.session_id, "C3", 3)

        with pytest.raises(UnsavedChangesError) as exc_info:
            await editor.switch_category(session.session_id, 9, "hoodies")
        assert exc_info.value.pending == 1

        session = await editor.get_session(session.session_id)
        assert session.category_id == 7
        assert "C3" in session.overlay_for()

    @pytest.mark.asyncio
    async def test_switch_category_forced(self, editor, open_display_order):
        session = await open_display_order()
        await editor.set_position(session.session_id, "C3", 3)

        session = await editor.switch_category(session.session_id, 9, "hoodies", force=True)

        assert session.category_id == 9
        assert session.pending_entry_count() == 0
        assert session.index_for().positions == {1: "H1"}
        assert [row["item_id"] for row in session.page.items] == ["H1"]

    @pytest.mark.asyncio
    async def test_switch_ranking_keeps_overlays(self, editor, open_featured):
        session = await open_featured()
        await editor.set_position(session.session_id, "C3", 3)

        session = await editor.switch_ranking(session.session_id, "recommended")

        assert session.active_ranking == "recommended"
        assert _positions(session, "best_seller") == {"C3": 3}
        assert len(session.overlay_for("recommended")) == 0

    @pytest.mark.asyncio
    async def test_switch_to_unknown_ranking(self, editor, open_featured):
        session = await open_featured()

        with pytest.raises(UnknownRankingError):
            await editor.switch_ranking(session.session_id, "display_order")

    @pytest.mark.asyncio
    async def test_search_resets_to_first_page(self, editor, open_display_order):
        session = await open_display_order()
        await editor.load_page(session.session_id, page=2)

        session = await editor.load_page(session.session_id, search="bravo")

        assert session.page_query.page == 1
        assert session.page_query.search == "bravo"
        assert [row["item_id"] for row in session.page.items] == ["B2"]

    @pytest.mark.asyncio
    async def test_clearing_search(self, editor, open_display_order):
        session = await open_display_order()
        await editor.load_page(session.session_id, search="bravo")

        session = await editor.load_page(session.session_id, search=None)

        assert session.page_query.search is None
        assert len(session.page.items) == 4

    @pytest.mark.asyncio
    async def test_paging_keeps_overlay(self, editor, open_display_order):
        session = await open_display_order()
        await editor.set_position(session.session_id, "C3", 3)

        session = await editor.load_page(session.session_id, page=2)

        assert _positions(session) == {"C3": 3}
        assert session.overlay_for().get("C3").name == "Charlie Tee"


@pytest.mark.services
class TestValidateAndCommit:

    @pytest.mark.asyncio
    async def test_nothing_to_commit(self, editor, open_display_order):
        session = await open_display_order()

        with pytest.raises(NothingToCommitError):
            await editor.commit(session.session_id)

    @pytest.mark.asyncio
    async def test_validate_stores_errors(self, editor, open_display_order):
        session = await open_display_order()
        await editor.set_position(session.session_id, "A1", 5)
        await editor.set_position(session.session_id, "C3", 5)

        results = await editor.validate(session.session_id)

        assert set(results["display_order"].errors) == {"A1", "C3"}
        session = await editor.get_session(session.session_id)
        assert session.errors_for().errors["A1"] == "Duplicate position 5"

    @pytest.mark.asyncio
    async def test_overlay_change_clears_errors(self, editor, open_display_order):
        session = await open_display_order()
        await editor.set_position(session.session_id, "A1", 5)
        await editor.set_position(session.session_id, "C3", 5)
        await editor.validate(session.session_id)

        session = await editor.set_position(session.session_id, "C3", 6)

        assert session.errors_for().is_empty

    @pytest.mark.asyncio
    async def test_commit_blocked_by_validation(self, editor, catalog_backend, open_display_order):
        session = await open_display_order()
        await editor.set_position(session.session_id, "A1", 5)
        await editor.set_position(session.session_id, "C3", 5)

        with pytest.raises(ValidationFailedError) as exc_info:
            await editor.commit(session.session_id)

        assert exc_info.value.errors == {
            "display_order": {"A1": "Duplicate position 5", "C3": "Duplicate position 5"}
        }
        assert catalog_backend.commits == []
        session = await editor.get_session(session.session_id)
        assert len(session.overlay_for()) == 2

    @pytest.mark.asyncio
    async def test_commit_rejects_sentinel_position(self, editor, catalog_backend, open_display_order):
        session = await open_display_order()
        await editor.set_position(session.session_id, "D4", SENTINEL)

        with pytest.raises(ValidationFailedError) as exc_info:
            await editor.commit(session.session_id)

        assert exc_info.value.errors == {"display_order": {"D4": f"Position must be below {SENTINEL}"}}
        assert catalog_backend.commits == []

    @pytest.mark.asyncio
    async def test_commit_success(self, editor, catalog_backend, recorded_sleeps, open_display_order):
        session = await open_display_order()
        await editor.set_position(session.session_id, "C3", 3)
        await editor.unrank(session.session_id, "B2")
        await editor.load_page(session.session_id, page=2)

        session = await editor.commit(session.session_id)

        assert catalog_backend.commits[-1] == {
            "method": "POST",
            "path": "/api/display-order/bulk",
            "body": {
                "product_type_id": 7,
                "orders": [
                    {"style_code": "B2", "display_order": SENTINEL},
                    {"style_code": "C3", "display_order": 3},
                ],
            },
        }
        assert recorded_sleeps == [1.0]
        assert session.pending_entry_count() == 0
        assert session.page_query.page == 1
        assert session.page.page == 1
        assert session.index_for().positions == {1: "A1", 3: "C3", 4: "D4"}
        assert session.page.find("B2", "display_order").position is None
        assert session.last_error is None

    @pytest.mark.asyncio
    async def test_commit_failure_rolls_back(self, editor, catalog_backend, recorded_sleeps, open_display_order):
        session = await open_display_order()
        await editor.set_position(session.session_id, "C3", 3)
        catalog_backend.fail_commit_status = 500

        with pytest.raises(CommitFailedError) as exc_info:
            await editor.commit(session.session_id)

        assert exc_info.value.message == "Database is read-only"
        assert exc_info.value.remote_status == 500
        assert recorded_sleeps == []

        session = await editor.get_session(session.session_id)
        assert _positions(session) == {"C3": 3}
        assert session.last_error == "Database is read-only"

    @pytest.mark.asyncio
    async def test_retry_after_failure(self, editor, catalog_backend, open_display_order):
        session = await open_display_order()
        await editor.set_position(session.session_id, "C3", 3)
        catalog_backend.fail_commit_status = 503
        with pytest.raises(CommitFailedError):
            await editor.commit(session.session_id)

        catalog_backend.fail_commit_status = None
        session = await editor.commit(session.session_id)

        assert len(catalog_backend.commits) == 1
        assert session.index_for().occupant(3) == "C3"

    @pytest.mark.asyncio
    async def test_featured_commit_merges_rankings(self, editor, catalog_backend, open_featured):
        session = await open_featured()
        sid = session.session_id
        await editor.set_position(sid, "C3", 3, ranking="best_seller")
        await editor.set_position(sid, "C3", 2, ranking="recommended")
        await editor.unrank(sid, "B2", ranking="recommended")

        session = await editor.commit(sid)

        commit = catalog_backend.commits[-1]
        assert commit["method"] == "PUT"
        assert commit["body"]["products"] == [
            {"style_code": "B2", "recommended_order": SENTINEL},
            {"style_code": "C3", "best_seller_order": 3, "recommended_order": 2},
        ]
        assert session.index_for("best_seller").positions == {1: "A1", 2: "D4", 3: "C3"}
        assert session.index_for("recommended").positions == {2: "C3"}
