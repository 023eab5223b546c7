"""
Ranking Editor API Endpoint
FastAPI router for session-scoped positional ranking edits
(catalog display order and featured best-seller / recommended rank)

Every command returns the refreshed session view, so the admin UI is a thin
dispatcher: it never re-derives conflicts, validation or movability.
"""

import logging
from typing import Any, Awaitable, Dict, Literal, Optional, Union

from fastapi import APIRouter, Depends, HTTPException, Query
from fastapi.responses import Response
from pydantic import BaseModel, Field

from ...models.session import EditingSession
from ...services.editor.errors import RankingError, ValidationFailedError
from ...services.editor.ranking_editor import RankingEditor
from ...services.editor.session_view import build_session_view
from ...utils.csv_export import export_overlay_csv

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/v1/rankings", tags=["rankings"])


# Dependency injection placeholder (overridden in main.py)
def get_editor_dep() -> RankingEditor:
    """Dependency injection placeholder for the ranking editor - overridden in main.py"""
    raise RuntimeError("Ranking editor dependency not initialized")


class OpenSessionRequest(BaseModel):
    """Request model for opening an editing session"""

    group: str = "display_order"
    category_id: Union[int, str]
    category_slug: str
    ranking: Optional[str] = None
    page_size: Optional[int] = Field(default=None, ge=1)
    user_id: Optional[str] = None


class SwitchCategoryRequest(BaseModel):
    category_id: Union[int, str]
    category_slug: str
    force: bool = False


class SwitchRankingRequest(BaseModel):
    ranking: str


class LoadPageRequest(BaseModel):
    """Omitted fields keep their current value; search=null clears the search"""

    page: Optional[int] = Field(default=None, ge=1)
    page_size: Optional[int] = Field(default=None, ge=1)
    search: Optional[str] = None
    filters: Optional[Dict[str, Any]] = None


class PositionRequest(BaseModel):
    """Manual entry; null means explicitly unranked"""

    position: Optional[Union[int, float]] = None
    ranking: Optional[str] = None


class RankingRequest(BaseModel):
    ranking: Optional[str] = None


class ConflictDecisionRequest(BaseModel):
    action: Literal["replace", "cancel"]


def _http_error(e: RankingError) -> HTTPException:
    if isinstance(e, ValidationFailedError):
        detail: Any = {"message": e.message, "errors": e.errors}
    else:
        detail = e.message
    return HTTPException(status_code=e.status_code, detail=detail)


async def _view(command: Awaitable[EditingSession], action: str) -> Dict[str, Any]:
    """Await an editor command and render the resulting session."""
    try:
        session = await command
    except RankingError as e:
        logger.info(f"{action} rejected ({e.status_code}): {e.message}")
        raise _http_error(e) from e
    except Exception as e:
        logger.error(f"Error during {action}: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail=str(e))
    return build_session_view(session)


# ----------------------------------------------------------------------
# Session lifecycle
# ----------------------------------------------------------------------


@router.post("/sessions", summary="Open an editing session", status_code=201)
async def open_session(request: OpenSessionRequest, editor: RankingEditor = Depends(get_editor_dep)):
    """
    Open a session over one ranking group in one category.

    Fetches the position index of every ranking of the group plus the first
    item page. Remote read failures do not fail the request; they show up in
    `last_error` and the session works with empty data.
    """
    return await _view(
        editor.open_session(
            group=request.group,
            category_id=request.category_id,
            category_slug=request.category_slug,
            page_size=request.page_size,
            owner_user_id=request.user_id,
            ranking=request.ranking,
        ),
        "open_session",
    )


@router.get("/sessions/{session_id}", summary="Get the session view")
async def get_session(session_id: str, editor: RankingEditor = Depends(get_editor_dep)):
    return await _view(editor.get_session(session_id), "get_session")


@router.delete("/sessions/{session_id}", summary="Discard an editing session")
async def delete_session(session_id: str, editor: RankingEditor = Depends(get_editor_dep)):
    """Drops the session and every uncommitted change in it."""
    try:
        await editor.close_session(session_id)
    except RankingError as e:
        raise _http_error(e) from e
    return {"message": "Session discarded", "session_id": session_id}


# ----------------------------------------------------------------------
# Scope and paging
# ----------------------------------------------------------------------


@router.post("/sessions/{session_id}/category", summary="Switch category")
async def switch_category(
    session_id: str,
    request: SwitchCategoryRequest,
    editor: RankingEditor = Depends(get_editor_dep),
):
    """409 when changes are pending, unless `force` confirms dropping them."""
    return await _view(
        editor.switch_category(session_id, request.category_id, request.category_slug, force=request.force),
        "switch_category",
    )


@router.post("/sessions/{session_id}/ranking", summary="Switch active ranking")
async def switch_ranking(
    session_id: str,
    request: SwitchRankingRequest,
    editor: RankingEditor = Depends(get_editor_dep),
):
    return await _view(editor.switch_ranking(session_id, request.ranking), "switch_ranking")


@router.post("/sessions/{session_id}/page", summary="Load a page, search or filter")
async def load_page(
    session_id: str,
    request: LoadPageRequest,
    editor: RankingEditor = Depends(get_editor_dep),
):
    kwargs: Dict[str, Any] = {
        "page": request.page,
        "page_size": request.page_size,
        "filters": request.filters,
    }
    if "search" in request.model_fields_set:
        kwargs["search"] = request.search
    return await _view(editor.load_page(session_id, **kwargs), "load_page")


@router.post("/sessions/{session_id}/refresh", summary="Refetch indexes and page")
async def refresh(session_id: str, editor: RankingEditor = Depends(get_editor_dep)):
    return await _view(editor.refresh(session_id), "refresh")


# ----------------------------------------------------------------------
# Item commands
# ----------------------------------------------------------------------


@router.post("/sessions/{session_id}/items/{item_id}/toggle", summary="Toggle pending membership")
async def toggle_item(
    session_id: str,
    item_id: str,
    request: Optional[RankingRequest] = None,
    editor: RankingEditor = Depends(get_editor_dep),
):
    ranking = request.ranking if request else None
    return await _view(editor.toggle(session_id, item_id, ranking), "toggle")


@router.post("/sessions/{session_id}/items/{item_id}/position", summary="Stage a manual position")
async def set_position(
    session_id: str,
    item_id: str,
    request: PositionRequest,
    editor: RankingEditor = Depends(get_editor_dep),
):
    """Never blocks on conflicts; the view flags soft conflicts per row."""
    return await _view(
        editor.set_position(session_id, item_id, request.position, request.ranking),
        "set_position",
    )


@router.post("/sessions/{session_id}/items/{item_id}/confirm", summary="Confirm a manual position")
async def confirm_position(
    session_id: str,
    item_id: str,
    request: Optional[RankingRequest] = None,
    editor: RankingEditor = Depends(get_editor_dep),
):
    """Opens a replace-or-cancel prompt (`pending_conflict`) if the position is taken."""
    ranking = request.ranking if request else None
    return await _view(editor.confirm_position(session_id, item_id, ranking), "confirm_position")


@router.post("/sessions/{session_id}/items/{item_id}/unrank", summary="Mark item unranked")
async def unrank_item(
    session_id: str,
    item_id: str,
    request: Optional[RankingRequest] = None,
    editor: RankingEditor = Depends(get_editor_dep),
):
    ranking = request.ranking if request else None
    return await _view(editor.unrank(session_id, item_id, ranking), "unrank")


@router.post("/sessions/{session_id}/items/{item_id}/discard", summary="Drop the pending change")
async def discard_item(
    session_id: str,
    item_id: str,
    request: Optional[RankingRequest] = None,
    editor: RankingEditor = Depends(get_editor_dep),
):
    ranking = request.ranking if request else None
    return await _view(editor.discard(session_id, item_id, ranking), "discard")


@router.post("/sessions/{session_id}/items/{item_id}/move-up", summary="Move one position up")
async def move_up(
    session_id: str,
    item_id: str,
    request: Optional[RankingRequest] = None,
    editor: RankingEditor = Depends(get_editor_dep),
):
    ranking = request.ranking if request else None
    return await _view(editor.move(session_id, item_id, "up", ranking), "move_up")


@router.post("/sessions/{session_id}/items/{item_id}/move-down", summary="Move one position down")
async def move_down(
    session_id: str,
    item_id: str,
    request: Optional[RankingRequest] = None,
    editor: RankingEditor = Depends(get_editor_dep),
):
    ranking = request.ranking if request else None
    return await _view(editor.move(session_id, item_id, "down", ranking), "move_down")


# ----------------------------------------------------------------------
# Bulk commands
# ----------------------------------------------------------------------


@router.post("/sessions/{session_id}/select-all", summary="Add every item on the page")
async def select_all(
    session_id: str,
    request: Optional[RankingRequest] = None,
    editor: RankingEditor = Depends(get_editor_dep),
):
    ranking = request.ranking if request else None
    return await _view(editor.select_all(session_id, ranking), "select_all")


@router.post("/sessions/{session_id}/clear", summary="Clear pending changes of a ranking")
async def clear(
    session_id: str,
    request: Optional[RankingRequest] = None,
    editor: RankingEditor = Depends(get_editor_dep),
):
    ranking = request.ranking if request else None
    return await _view(editor.clear(session_id, ranking), "clear")


@router.post("/sessions/{session_id}/rebalance", summary="Compact positions to 1..N")
async def rebalance(
    session_id: str,
    request: Optional[RankingRequest] = None,
    editor: RankingEditor = Depends(get_editor_dep),
):
    ranking = request.ranking if request else None
    return await _view(editor.rebalance(session_id, ranking), "rebalance")


@router.post("/sessions/{session_id}/conflict", summary="Resolve the open conflict prompt")
async def resolve_conflict(
    session_id: str,
    request: ConflictDecisionRequest,
    editor: RankingEditor = Depends(get_editor_dep),
):
    return await _view(editor.resolve_conflict(session_id, request.action), "resolve_conflict")


@router.post("/sessions/{session_id}/validate", summary="Validate pending changes")
async def validate(session_id: str, editor: RankingEditor = Depends(get_editor_dep)):
    """Stores the error sets on the session; returns them with the view."""
    try:
        results = await editor.validate(session_id)
        session = await editor.get_session(session_id)
    except RankingError as e:
        raise _http_error(e) from e
    view = build_session_view(session)
    view["valid"] = all(result.is_empty for result in results.values())
    return view


@router.post("/sessions/{session_id}/commit", summary="Save pending changes")
async def commit(session_id: str, editor: RankingEditor = Depends(get_editor_dep)):
    """
    Validate every ranking of the group and submit one bulk request.

    - 422 with per-ranking errors when validation fails (nothing sent)
    - 502 when the remote write fails (pending changes kept, retry manually)
    - on success the session is back on page 1 with fresh indexes
    """
    return await _view(editor.commit(session_id), "commit")


@router.get("/sessions/{session_id}/export", summary="Export pending changes as CSV")
async def export_csv(
    session_id: str,
    ranking: Optional[str] = Query(default=None),
    editor: RankingEditor = Depends(get_editor_dep),
):
    try:
        session = await editor.get_session(session_id)
    except RankingError as e:
        raise _http_error(e) from e

    if ranking is not None and ranking not in session.rankings:
        raise HTTPException(status_code=400, detail=f"Unknown ranking: {ranking}")

    filename = f"{session.group}_{session.category_slug}_pending.csv"
    return Response(
        content=export_overlay_csv(session, ranking),
        media_type="text/csv",
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )
