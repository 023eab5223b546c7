"""
Ranking Editor - Session Coordinator for the Positional Ranking Engine

Thin coordinator between the HTTP surface and the pure engine functions in
services/ranking. Each operator command:
- loads the editing session
- runs one engine transition against the latest (index, overlay) snapshot
- swaps the resulting overlay into the session wholesale

Remote reads go through the FetchSequencer so a superseded fetch never
overwrites newer data. Read failures degrade (previous or empty data) and are
recorded on the session; write failures roll the overlays back to the
pre-commit snapshot and surface an error. Nothing is retried automatically.
"""

import asyncio
import logging
import uuid
from typing import Any, Awaitable, Callable, Dict, List, Optional, Union

import structlog

from catalog_ranking.database.session_storage import InMemorySessionStorage
from catalog_ranking.models.ranking import EditOverlay, PositionIndex, RankedItem, ValidationErrorSet
from catalog_ranking.models.session import EditingSession, ItemPage, PageQuery
from catalog_ranking.services.catalog.catalog_client import CatalogClient, CatalogServiceError
from catalog_ranking.services.config.configuration_service import ConfigurationService
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
from catalog_ranking.services.editor.fetch_sequencer import FetchSequencer
from catalog_ranking.services.ranking import commit as commit_ops
from catalog_ranking.services.ranking import conflicts, moves, overlay as overlay_ops
from catalog_ranking.services.ranking.rebalance import rebalance
from catalog_ranking.services.ranking.validator import validate
from catalog_ranking.utils.logging_context import (
    bind_scope_context,
    bind_session_context,
    log_context,
    log_performance,
    unbind_context,
)

logger = logging.getLogger(__name__)

# Marker for "argument not supplied" where None is a meaningful value
_UNSET: Any = object()


class RankingEditor:
    """
    Coordinates editing sessions over ranking groups.

    Responsibilities:
    - Open / close sessions and switch category, ranking and page
    - Dispatch operator commands to the engine
    - Gate and run the commit, with rollback on remote failure
    """

    def __init__(
        self,
        catalog: CatalogClient,
        storage: InMemorySessionStorage,
        config_service: ConfigurationService,
        sequencer: Optional[FetchSequencer] = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ):
        self.catalog = catalog
        self.storage = storage
        self.config = config_service
        self.sequencer = sequencer or FetchSequencer()
        self.storage.add_expiry_listener(self.sequencer.forget)
        self._sleep = sleep
        logger.info("RankingEditor initialized")

    # ------------------------------------------------------------------
    # Session lifecycle
    # ------------------------------------------------------------------

    async def open_session(
        self,
        group: str,
        category_id: Union[int, str],
        category_slug: str,
        page_size: Optional[int] = None,
        owner_user_id: Optional[str] = None,
        ranking: Optional[str] = None,
    ) -> EditingSession:
        rankings = self.config.get_group_rankings(group)
        if not rankings:
            raise UnknownRankingError(f"Unknown ranking group: {group}")
        if ranking is not None and ranking not in rankings:
            raise UnknownRankingError(f"Ranking '{ranking}' is not part of group '{group}'")

        session = EditingSession(
            session_id=str(uuid.uuid4()),
            group=group,
            category_id=category_id,
            category_slug=category_slug,
            rankings=rankings,
            active_ranking=ranking or rankings[0],
            page_query=PageQuery(page_size=self._page_size(page_size)),
            owner_user_id=owner_user_id,
        )
        await self.storage.save_session(session)
        bind_session_context(session.session_id, owner_user_id)
        bind_scope_context(session.session_id, group=group, category_id=category_id)
        logger.info(f"Opened editing session {session.session_id} for {group}:{category_id}")

        await self._refresh(session, rankings)
        return session

    async def get_session(self, session_id: str) -> EditingSession:
        session = await self.storage.get_session(session_id)
        if session is None:
            raise SessionNotFoundError(session_id)
        return session

    async def close_session(self, session_id: str) -> None:
        self.sequencer.forget(session_id)
        if not await self.storage.delete_session(session_id):
            raise SessionNotFoundError(session_id)
        logger.info(f"Closed editing session {session_id}")

    def _page_size(self, requested: Optional[int]) -> int:
        if requested is None:
            return self.config.get_default_page_size()
        return max(1, min(requested, self.config.get_max_page_size()))

    def _ranking(self, session: EditingSession, ranking: Optional[str]) -> str:
        ranking = ranking or session.active_ranking
        if ranking not in session.rankings:
            raise UnknownRankingError(f"Ranking '{ranking}' is not part of group '{session.group}'")
        return ranking

    # ------------------------------------------------------------------
    # Remote reads (sequenced, degrading)
    # ------------------------------------------------------------------

    async def _fetch_index(self, session: EditingSession, ranking: str) -> bool:
        scope = session.scope(ranking)
        try:
            outcome = await self.sequencer.run(
                session.session_id, f"index:{ranking}", self.catalog.fetch_position_index(scope)
            )
        except CatalogServiceError as e:
            logger.warning(f"Position index fetch failed for {scope.key}: {e.message}")
            session.last_error = f"Could not load positions for {ranking}: {e.message}"
            if ranking not in session.indexes or session.indexes[ranking].scope != scope:
                self._set_index(session, ranking, PositionIndex.empty(scope))
            return False

        if outcome.stale:
            return False
        if session.scope(ranking) != scope:
            logger.info(f"Dropping index for {scope.key}: scope changed while fetching")
            return False

        self._set_index(session, ranking, outcome.value)
        return True

    @staticmethod
    def _set_index(session: EditingSession, ranking: str, index: PositionIndex) -> None:
        indexes = dict(session.indexes)
        indexes[ranking] = index
        session.indexes = indexes

    async def _fetch_page(self, session: EditingSession) -> bool:
        query = session.page_query
        category_slug = session.category_slug
        try:
            outcome = await self.sequencer.run(
                session.session_id,
                "page",
                self.catalog.fetch_item_page(session.group, category_slug, query),
            )
        except CatalogServiceError as e:
            logger.warning(f"Item page fetch failed for {category_slug} page {query.page}: {e.message}")
            session.last_error = f"Failed to load products: {e.message}"
            return False

        if outcome.stale:
            return False
        if session.category_slug != category_slug:
            return False

        session.page = outcome.value
        return True

    async def _refresh(self, session: EditingSession, rankings: List[str], page: bool = True) -> EditingSession:
        """Refetch the given indexes (and the page); failures are recorded, not raised."""
        session.last_error = None
        fetches = [self._fetch_index(session, ranking) for ranking in rankings]
        if page:
            fetches.append(self._fetch_page(session))
        await asyncio.gather(*fetches)
        await self.storage.save_session(session)
        return session

    async def refresh(self, session_id: str) -> EditingSession:
        session = await self.get_session(session_id)
        return await self._refresh(session, session.rankings)

    # ------------------------------------------------------------------
    # Scope changes
    # ------------------------------------------------------------------

    async def switch_category(
        self,
        session_id: str,
        category_id: Union[int, str],
        category_slug: str,
        force: bool = False,
    ) -> EditingSession:
        """
        Change the category being edited.

        Pending edits belong to the old scope, so they are dropped, but only
        when the caller confirms with force=True.
        """
        session = await self.get_session(session_id)
        pending = session.pending_entry_count()
        if pending and not force:
            raise UnsavedChangesError(pending)

        session.overlays = {}
        session.validation_errors = {}
        session.pending_conflict = None
        session.indexes = {}
        session.category_id = category_id
        session.category_slug = category_slug
        session.page = ItemPage(page_size=session.page_query.page_size)
        session.page_query = PageQuery(page_size=session.page_query.page_size)

        unbind_context("ranking")
        bind_scope_context(session_id, group=session.group, category_id=category_id)
        logger.info(f"Session {session_id} switched to category {category_id} (dropped {pending} pending)")
        return await self._refresh(session, session.rankings)

    async def switch_ranking(self, session_id: str, ranking: str) -> EditingSession:
        """Activate another ranking of the group. Overlays of every ranking are kept."""
        session = await self.get_session(session_id)
        session.active_ranking = self._ranking(session, ranking)
        session.pending_conflict = None
        bind_scope_context(session_id, ranking=ranking)
        logger.info(f"Session {session_id} active ranking -> {ranking}")
        return await self._refresh(session, [ranking], page=False)

    async def load_page(
        self,
        session_id: str,
        page: Optional[int] = None,
        page_size: Optional[int] = None,
        search: Any = _UNSET,
        filters: Optional[Dict[str, Any]] = None,
    ) -> EditingSession:
        """Browse or search. A new search term or filter set starts again at page 1."""
        session = await self.get_session(session_id)
        current = session.page_query

        new_search = current.search if search is _UNSET else search
        new_filters = current.filters if filters is None else filters
        query = PageQuery(
            page=page or current.page,
            page_size=self._page_size(page_size) if page_size else current.page_size,
            search=new_search,
            filters=new_filters,
        )
        if page is None and (query.search != current.search or query.filters != current.filters):
            query = query.model_copy(update={"page": 1})

        session.page_query = query
        await self._fetch_page(session)
        await self.storage.save_session(session)
        return session

    # ------------------------------------------------------------------
    # Item resolution
    # ------------------------------------------------------------------

    @staticmethod
    def _known_items(session: EditingSession, ranking: str) -> List[RankedItem]:
        return session.page.ranked_items(ranking)

    def _resolve_item(self, session: EditingSession, ranking: str, item_id: str) -> RankedItem:
        """Page first, then overlay (items edited on other pages), then the index."""
        item = session.page.find(item_id, ranking)
        if item is not None:
            return item

        entry = session.overlay_for(ranking).get(item_id)
        if entry is not None:
            return overlay_ops.as_ranked_item(entry)

        position = session.index_for(ranking).position_of(item_id)
        if position is not None:
            return RankedItem(item_id=item_id, position=position)

        raise UnknownItemError(item_id)

    async def _apply_overlay(self, session: EditingSession, ranking: str, overlay: EditOverlay) -> EditingSession:
        session.replace_overlay(ranking, overlay)
        await self.storage.save_session(session)
        return session

    # ------------------------------------------------------------------
    # Operator commands
    # ------------------------------------------------------------------

    async def toggle(self, session_id: str, item_id: str, ranking: Optional[str] = None) -> EditingSession:
        session = await self.get_session(session_id)
        ranking = self._ranking(session, ranking)
        item = self._resolve_item(session, ranking, item_id)
        return await self._apply_overlay(
            session, ranking, overlay_ops.toggle_item(session.overlay_for(ranking), item)
        )

    async def select_all(self, session_id: str, ranking: Optional[str] = None) -> EditingSession:
        session = await self.get_session(session_id)
        ranking = self._ranking(session, ranking)
        overlay = overlay_ops.select_all(session.overlay_for(ranking), self._known_items(session, ranking))
        logger.info(f"Selected all {len(session.page.items)} item(s) on page for {ranking}")
        return await self._apply_overlay(session, ranking, overlay)

    async def clear(self, session_id: str, ranking: Optional[str] = None) -> EditingSession:
        """Drop every pending change of one ranking."""
        session = await self.get_session(session_id)
        ranking = self._ranking(session, ranking)
        logger.info(f"Cleared {len(session.overlay_for(ranking))} pending change(s) for {ranking}")
        return await self._apply_overlay(session, ranking, EditOverlay())

    async def set_position(
        self,
        session_id: str,
        item_id: str,
        position: Optional[Union[int, float]],
        ranking: Optional[str] = None,
    ) -> EditingSession:
        """Manual entry. Never blocks; soft conflicts show up in the session view."""
        session = await self.get_session(session_id)
        ranking = self._ranking(session, ranking)
        item = self._resolve_item(session, ranking, item_id)
        return await self._apply_overlay(
            session, ranking, overlay_ops.set_position(session.overlay_for(ranking), item, position)
        )

    async def confirm_position(self, session_id: str, item_id: str, ranking: Optional[str] = None) -> EditingSession:
        """Hard conflict check for a finished manual entry; may open a conflict prompt."""
        session = await self.get_session(session_id)
        ranking = self._ranking(session, ranking)
        prompt = conflicts.detect_conflict(
            session.index_for(ranking),
            session.overlay_for(ranking),
            item_id,
            ranking,
            self._known_items(session, ranking),
        )
        session.pending_conflict = prompt
        await self.storage.save_session(session)
        return session

    async def resolve_conflict(self, session_id: str, action: str) -> EditingSession:
        """
        Operator decision on the open conflict prompt.

        replace: the new item keeps the position, the occupant becomes unranked
        cancel: dismiss; the proposed value stays as typed, unresolved
        """
        session = await self.get_session(session_id)
        prompt = session.pending_conflict
        if prompt is None:
            raise NoPendingConflictError()
        if action not in ("replace", "cancel"):
            raise ValueError(f"Unknown conflict action: {action}")

        if action == "replace":
            overlay = conflicts.apply_replace(
                session.index_for(prompt.ranking), session.overlay_for(prompt.ranking), prompt
            )
            return await self._apply_overlay(session, prompt.ranking, overlay)

        logger.info(f"Conflict for {prompt.item_id} at {prompt.position} dismissed")
        session.pending_conflict = None
        await self.storage.save_session(session)
        return session

    async def unrank(self, session_id: str, item_id: str, ranking: Optional[str] = None) -> EditingSession:
        session = await self.get_session(session_id)
        ranking = self._ranking(session, ranking)
        item = self._resolve_item(session, ranking, item_id)
        return await self._apply_overlay(session, ranking, overlay_ops.unrank(session.overlay_for(ranking), item))

    async def discard(self, session_id: str, item_id: str, ranking: Optional[str] = None) -> EditingSession:
        session = await self.get_session(session_id)
        ranking = self._ranking(session, ranking)
        return await self._apply_overlay(session, ranking, overlay_ops.discard(session.overlay_for(ranking), item_id))

    async def move(
        self,
        session_id: str,
        item_id: str,
        direction: str,
        ranking: Optional[str] = None,
    ) -> EditingSession:
        session = await self.get_session(session_id)
        ranking = self._ranking(session, ranking)
        item = self._resolve_item(session, ranking, item_id)
        step = moves.move_up if direction == "up" else moves.move_down
        overlay = step(
            session.index_for(ranking),
            session.overlay_for(ranking),
            item,
            self._known_items(session, ranking),
        )
        return await self._apply_overlay(session, ranking, overlay)

    async def rebalance(self, session_id: str, ranking: Optional[str] = None) -> EditingSession:
        session = await self.get_session(session_id)
        ranking = self._ranking(session, ranking)
        overlay = rebalance(
            session.index_for(ranking),
            session.overlay_for(ranking),
            self._known_items(session, ranking),
        )
        return await self._apply_overlay(session, ranking, overlay)

    async def validate(self, session_id: str) -> Dict[str, ValidationErrorSet]:
        """Run the validator over every ranking and store the results on the session."""
        session = await self.get_session(session_id)
        results = self._validate_all(session)
        await self.storage.save_session(session)
        return results

    def _validate_all(self, session: EditingSession) -> Dict[str, ValidationErrorSet]:
        sentinel = self.config.get_unranked_sentinel()
        results = {ranking: validate(session.overlay_for(ranking), sentinel) for ranking in session.rankings}
        session.validation_errors = {r: e for r, e in results.items() if not e.is_empty}
        return results

    # ------------------------------------------------------------------
    # Commit
    # ------------------------------------------------------------------

    async def commit(self, session_id: str) -> EditingSession:
        """
        Validate, then submit every ranking overlay of the group as one request.

        Speculative apply: overlays are cleared before the write and the
        pre-commit snapshot is restored if the write fails.
        """
        session = await self.get_session(session_id)
        pending = {r: o for r, o in session.overlays.items() if len(o) > 0}
        if not pending:
            raise NothingToCommitError()

        results = self._validate_all(session)
        failed = {r: e.errors for r, e in results.items() if not e.is_empty}
        if failed:
            await self.storage.save_session(session)
            raise ValidationFailedError(failed)

        group = self.config.get_group(session.group) or {}
        records = commit_ops.merge_updates(
            pending,
            self.config.get_position_fields(session.group),
            sentinel=self.config.get_unranked_sentinel(),
            id_field=group.get("item_id_field", "style_code"),
        )

        snapshot = dict(session.overlays)
        session.overlays = {}
        session.pending_conflict = None

        try:
            with log_context(operation="commit", records=len(records)):
                with log_performance("position_commit", structlog.get_logger(__name__)):
                    await self.catalog.submit_positions(session.group, session.category_id, records)
        except CatalogServiceError as e:
            session.overlays = snapshot
            session.last_error = e.message or "Failed to save positions"
            await self.storage.save_session(session)
            raise CommitFailedError(session.last_error, remote_status=e.status_code) from e

        logger.info(
            f"Committed {len(records)} record(s) for {session.group}:{session.category_id} "
            f"across {sorted(pending)}"
        )
        session.validation_errors = {}
        session.last_error = None
        session.page_query = session.page_query.model_copy(update={"page": 1})
        await self.storage.save_session(session)

        # The remote refreshes its read views asynchronously
        delay = self.config.get_post_commit_delay()
        if delay > 0:
            await self._sleep(delay)

        return await self._refresh(session, session.rankings)
