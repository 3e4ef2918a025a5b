"""Background journaling of relay turns to the durable store."""
import asyncio
import logging
from typing import Any, Awaitable, Callable, Dict, Optional

from app.services.persistence.store import ConversationStore
from app.services.relay.models import Turn

logger = logging.getLogger(__name__)


class TurnJournal:
    """
    Writes one session's records to a ConversationStore from a worker task.

    Callers enqueue and return immediately. Writes run in enqueue order, so
    turns are only appended after the session record exists. A failed write
    is logged and the next one proceeds.
    """

    def __init__(self, store: ConversationStore, session_key: str):
        self.store = store
        self.session_key = session_key
        self.session_handle: Optional[int] = None
        self._queue: "asyncio.Queue[Callable[[], Awaitable[None]]]" = asyncio.Queue()
        self._worker: Optional[asyncio.Task] = None

    def start_session(self, call_metadata: Dict[str, Any]) -> None:
        """Queue creation of the durable session record."""

        async def write() -> None:
            self.session_handle = await self.store.create_session(self.session_key, call_metadata)
            logger.info(
                f"[JOURNAL] Conversation session {self.session_handle} created - Session: {self.session_key}"
            )

        self._enqueue("create_session", write)

    def record_turn(self, turn: Turn) -> None:
        """Queue one transcript turn."""

        async def write() -> None:
            if self.session_handle is None:
                logger.debug(
                    f"[JOURNAL] No durable session, turn {turn.turn_number} not stored - Session: {self.session_key}"
                )
                return
            await self.store.append_turn(
                self.session_handle,
                turn.turn_number,
                turn.role.value,
                turn.content_text(),
                turn.metadata,
            )

        self._enqueue(f"append_turn #{turn.turn_number}", write)

    def end_session(self, turn_pair_count: int) -> None:
        """Queue the end-of-session update."""

        async def write() -> None:
            if self.session_handle is None:
                return
            await self.store.end_session(self.session_handle, turn_pair_count)
            logger.info(
                f"[JOURNAL] Conversation session {self.session_handle} ended with "
                f"{turn_pair_count} turns - Session: {self.session_key}"
            )

        self._enqueue("end_session", write)

    async def drain(self) -> None:
        """Wait until every queued write has been attempted."""
        if self._worker is not None:
            await self._queue.join()

    async def stop(self) -> None:
        """Drain pending writes and stop the worker."""
        await self.drain()
        if self._worker is not None:
            self._worker.cancel()
            try:
                await self._worker
            except asyncio.CancelledError:
                pass
            self._worker = None

    def _enqueue(self, label: str, write: Callable[[], Awaitable[None]]) -> None:
        async def job() -> None:
            try:
                await write()
            except Exception as e:
                logger.error(
                    f"[JOURNAL] {label} failed - Session: {self.session_key}, "
                    f"Error: {type(e).__name__}: {e}"
                )

        self._queue.put_nowait(job)
        if self._worker is None:
            self._worker = asyncio.create_task(self._run())

    async def _run(self) -> None:
        while True:
            job = await self._queue.get()
            try:
                await job()
            finally:
                self._queue.task_done()
