"""
Ranking editor errors

Each carries the HTTP status the router translates it to.
"""

from typing import Dict, Optional


class RankingError(Exception):
    status_code = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class SessionNotFoundError(RankingError):
    status_code = 404

    def __init__(self, session_id: str):
        super().__init__(f"Editing session not found or expired: {session_id}")
        self.session_id = session_id


class UnknownItemError(RankingError):
    status_code = 404

    def __init__(self, item_id: str):
        super().__init__(f"Item not found on page, in pending changes or in the index: {item_id}")
        self.item_id = item_id


class UnknownRankingError(RankingError):
    status_code = 400


class UnsavedChangesError(RankingError):
    status_code = 409

    def __init__(self, pending: int):
        super().__init__(
            f"{pending} unsaved change(s); switching will clear them. Resend with force=true to continue."
        )
        self.pending = pending


class NoPendingConflictError(RankingError):
    status_code = 409

    def __init__(self):
        super().__init__("No position conflict is awaiting a decision")


class ValidationFailedError(RankingError):
    status_code = 422

    def __init__(self, errors: Dict[str, Dict[str, str]]):
        count = sum(len(item_errors) for item_errors in errors.values())
        super().__init__(f"Please fix {count} validation error(s) before saving")
        self.errors = errors


class NothingToCommitError(RankingError):
    status_code = 400

    def __init__(self):
        super().__init__("No pending changes to save")


class CommitFailedError(RankingError):
    status_code = 502

    def __init__(self, message: str, remote_status: Optional[int] = None):
        super().__init__(message)
        self.remote_status = remote_status
