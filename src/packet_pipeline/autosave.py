"""ProgressAutosaver — debounced saving of unsubmitted intake answers.

``update()`` records the latest responses and arms a timer; when it fires,
the newest responses are written to the ``ProgressStore``.  A lock keeps at
most one save in flight, so a slow store never sees overlapping writes
for the same client.  Anything still pending after a timed save (a failed
save, or responses recorded while it ran) arms the timer again, so dirty
responses are always retried one interval later.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Mapping

from packet_pipeline.constants import AUTOSAVE_INTERVAL_SECONDS
from packet_pipeline.interfaces import ProgressStore

logger = logging.getLogger(__name__)


class ProgressAutosaver:
    """Debounced auto-save for one client's intake.

    Must be used from within a running event loop.
    """

    def __init__(
        self,
        store: ProgressStore,
        client_id: str,
        client_type: str,
        *,
        interval: float = AUTOSAVE_INTERVAL_SECONDS,
    ) -> None:
        self._store = store
        self.client_id = client_id
        self.client_type = client_type
        self.interval = interval
        self._pending: dict[str, Any] | None = None
        self._timer: asyncio.Task | None = None
        self._lock = asyncio.Lock()
        self.saves = 0

    @property
    def dirty(self) -> bool:
        return self._pending is not None

    def update(self, responses: Mapping[str, Any]) -> None:
        """Record the latest responses; schedule a save if none is armed."""
        self._pending = dict(responses)
        if self._timer is None or self._timer.done():
            self._timer = asyncio.get_running_loop().create_task(self._delayed_flush())

    async def _delayed_flush(self) -> None:
        await asyncio.sleep(self.interval)
        await self.flush()
        # Responses that arrived mid-save, or a failed save, wait one more interval
        if self._pending is not None:
            self._timer = asyncio.get_running_loop().create_task(self._delayed_flush())

    async def flush(self) -> bool:
        """Write the pending responses now.  Returns True if a save happened."""
        async with self._lock:
            if self._pending is None:
                return False
            snapshot, self._pending = self._pending, None
            saved = False
            try:
                await self._store.save_progress(self.client_id, self.client_type, snapshot)
                saved = True
            except Exception:
                logger.exception("Auto-save failed for client %s", self.client_id)
            finally:
                # Requeue unless newer responses arrived meanwhile
                if not saved and self._pending is None:
                    self._pending = snapshot
            if saved:
                self.saves += 1
                logger.debug("Auto-saved %d answer(s) for client %s", len(snapshot), self.client_id)
            return saved

    async def close(self) -> None:
        """Cancel the timer and save whatever is pending."""
        if self._timer is not None and not self._timer.done():
            self._timer.cancel()
            try:
                await self._timer
            except asyncio.CancelledError:
                pass
        self._timer = None
        await self.flush()
