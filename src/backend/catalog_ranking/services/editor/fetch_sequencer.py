"""
Fetch Sequencer

Remote reads can overlap: a slow page fetch for page 2 may resolve after the
operator has already moved on to page 3. Every fetch runs as a task on a
channel ("page" or "index:<ranking>") of one session. Starting a fetch
cancels the previous in-flight task on that channel, and a result is only
handed back when its generation is still the latest.
"""

import asyncio
from dataclasses import dataclass
from typing import Any, Awaitable, Dict, Tuple

from catalog_ranking.utils.logging_context import get_logger_with_context

logger = get_logger_with_context(__name__, component="fetch_sequencer")


@dataclass
class FetchOutcome:
    """Result of a sequenced fetch. `stale` results must not be applied."""

    value: Any = None
    stale: bool = False


class FetchSequencer:
    def __init__(self):
        self._generations: Dict[Tuple[str, str], int] = {}
        self._inflight: Dict[Tuple[str, str], asyncio.Task] = {}

    def generation(self, session_id: str, channel: str) -> int:
        return self._generations.get((session_id, channel), 0)

    def is_current(self, session_id: str, channel: str, generation: int) -> bool:
        return self.generation(session_id, channel) == generation

    async def run(self, session_id: str, channel: str, coro: Awaitable[Any]) -> FetchOutcome:
        """
        Run `coro` as the newest fetch of (session, channel).

        Exceptions raised by the fetch propagate only while it is current;
        a superseded fetch is reported as stale whatever happened to it.
        """
        key = (session_id, channel)
        generation = self._generations.get(key, 0) + 1
        self._generations[key] = generation

        previous = self._inflight.get(key)
        if previous is not None and not previous.done():
            logger.debug(f"Cancelling superseded fetch {channel} for session {session_id}")
            previous.cancel()

        task = asyncio.ensure_future(coro)
        self._inflight[key] = task
        try:
            await asyncio.wait({task})
        except asyncio.CancelledError:
            task.cancel()
            raise
        finally:
            if self._inflight.get(key) is task:
                del self._inflight[key]

        if task.cancelled() or not self.is_current(session_id, channel, generation):
            if not task.cancelled():
                # Consume the outcome so a late failure is not reported as never retrieved
                exc = task.exception()
                if exc is not None:
                    logger.debug(f"Discarded failure of stale fetch {channel}: {exc!r}")
            logger.info(f"Discarded stale {channel} result for session {session_id} (gen {generation})")
            return FetchOutcome(stale=True)

        return FetchOutcome(value=task.result())

    def forget(self, session_id: str) -> None:
        """Cancel and drop all channels of a session."""
        for key in [k for k in self._inflight if k[0] == session_id]:
            self._inflight.pop(key).cancel()
        for key in [k for k in self._generations if k[0] == session_id]:
            del self._generations[key]
