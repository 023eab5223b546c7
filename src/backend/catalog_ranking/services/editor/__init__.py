"""
Ranking editor: session-scoped commands over the ranking engine
"""

from .errors import (
    CommitFailedError,
    NoPendingConflictError,
    NothingToCommitError,
    RankingError,
    SessionNotFoundError,
    UnknownItemError,
    UnknownRankingError,
    UnsavedChangesError,
    ValidationFailedError,
)
from .fetch_sequencer import FetchOutcome, FetchSequencer
from .ranking_editor import RankingEditor
from .session_view import build_session_view

__all__ = [
    "CommitFailedError",
    "FetchOutcome",
    "FetchSequencer",
    "NoPendingConflictError",
    "NothingToCommitError",
    "RankingEditor",
    "RankingError",
    "SessionNotFoundError",
    "UnknownItemError",
    "UnknownRankingError",
    "UnsavedChangesError",
    "ValidationFailedError",
    "build_session_view",
]
