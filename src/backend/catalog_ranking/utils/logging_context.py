"""
Logging Context Management Utilities

Provides helpers for adding and managing context in structured logs.
Context automatically appears in all log statements within the scope.
"""

import time
from contextlib import contextmanager
from typing import Any, Optional, Union

import structlog
from structlog.contextvars import bind_contextvars, unbind_contextvars


def bind_session_context(
    session_id: Optional[str] = None,
    user_id: Optional[str] = None,
    **kwargs
):
    """
    Bind editing-session context to all logs.

    Args:
        session_id: Editing session identifier
        user_id: Operator identifier
        **kwargs: Additional context key-value pairs

    Example:
        ```python
        from catalog_ranking.utils.logging_context import bind_session_context
        import structlog

        logger = structlog.get_logger(__name__)

        bind_session_context(session_id="6f1c...", user_id="admin")
        logger.info("position staged")  # Includes session_id, user_id
        ```
    """
    context = {}

    if session_id:
        context["session_id"] = session_id
    if user_id:
        context["user_id"] = user_id

    context.update(kwargs)
    bind_contextvars(**context)


def bind_scope_context(
    session_id: Optional[str] = None,
    group: Optional[str] = None,
    category_id: Optional[Union[int, str]] = None,
    ranking: Optional[str] = None,
):
    """
    Bind the ranking scope being edited.

    Example:
        ```python
        bind_scope_context(session_id, group="featured", category_id=12, ranking="best_seller")
        logger.info("index fetched")  # Includes group, category_id, ranking
        ```
    """
    context: dict = {}
    if session_id:
        context["session_id"] = session_id
    if group:
        context["group"] = group
    if category_id is not None:
        context["category_id"] = category_id
    if ranking:
        context["ranking"] = ranking
    bind_contextvars(**context)


def unbind_context(*keys: str):
    """
    Remove specific keys from logging context.

    Example:
        ```python
        unbind_context("group", "category_id")
        ```
    """
    unbind_contextvars(*keys)


@contextmanager
def log_context(**context_vars: Any):
    """
    Context manager for temporary logging context.

    Context is automatically added on enter and removed on exit.

    Example:
        ```python
        with log_context(operation="commit", records=12):
            logger.info("submitting")  # Includes operation, records
        ```
    """
    bind_contextvars(**context_vars)

    try:
        yield
    finally:
        unbind_contextvars(*context_vars.keys())


@contextmanager
def log_performance(operation_name: str, logger=None):
    """
    Context manager for logging operation performance.

    Automatically logs operation start, end, and duration.

    Example:
        ```python
        with log_performance("position_commit"):
            await client.submit_positions(...)
        ```
    """
    if logger is None:
        logger = structlog.get_logger()

    start_time = time.time()

    logger.info(f"{operation_name}_started", operation=operation_name)

    try:
        yield
    finally:
        duration_ms = int((time.time() - start_time) * 1000)
        logger.info(
            f"{operation_name}_completed",
            operation=operation_name,
            duration_ms=duration_ms
        )


def get_logger_with_context(name: str, **context) -> structlog.BoundLogger:
    """
    Get a logger with pre-bound context.

    Example:
        ```python
        logger = get_logger_with_context(__name__, component="fetch_sequencer")
        logger.info("fetch superseded")  # Includes component="fetch_sequencer"
        ```
    """
    return structlog.get_logger(name).bind(**context)
