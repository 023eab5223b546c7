"""Utility functions and helpers for logging context and CSV export."""

from .csv_export import export_overlay_csv
from .logging_context import (
    bind_session_context,
    bind_scope_context,
    unbind_context,
    log_context,
    log_performance,
    get_logger_with_context,
)

__all__ = [
    "export_overlay_csv",
    "bind_session_context",
    "bind_scope_context",
    "unbind_context",
    "log_context",
    "log_performance",
    "get_logger_with_context",
]
