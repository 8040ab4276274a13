"""
Debounced draft autosave.

Every draft mutation calls schedule(); the save only happens once the draft
has been quiet for `delay` seconds. A newer mutation cancels the pending
save before scheduling its own, so at most one save is ever pending.
"""

import asyncio
import copy
import logging
from typing import Any, Callable, Optional, Protocol

from draft_storage import DraftStore
from state import OfferDraft

logger = logging.getLogger(__name__)

DEFAULT_SAVE_DELAY = 1.0


class Cancellable(Protocol):
    def cancel(self) -> Any: ...


Scheduler = Callable[[float, Callable[[], None]], Cancellable]


def event_loop_scheduler(delay: float, callback: Callable[[], None]) -> asyncio.TimerHandle:
    """Schedule `callback` on the running event loop."""
    return asyncio.get_running_loop().call_later(delay, callback)


class DraftAutosaver:
    """
    Cancellable, debounced save task for one draft store.

    Args:
        store: Where drafts are written
        delay: Quiet period in seconds before a save fires
        scheduler: (delay, callback) -> handle with cancel(); injectable for testing
    """

    def __init__(
        self,
        store: DraftStore,
        delay: float = DEFAULT_SAVE_DELAY,
        scheduler: Scheduler = event_loop_scheduler,
    ):
        self.store = store
        self.delay = delay
        self._scheduler = scheduler
        self._handle: Optional[Cancellable] = None
        self._pending: Optional[OfferDraft] = None

    @property
    def pending(self) -> bool:
        return self._handle is not None

    def schedule(self, draft: OfferDraft) -> None:
        """Replace any pending save with a save of `draft` after the quiet period."""
        self.cancel()
        # Snapshot so later in-place edits can't leak into this save
        self._pending = copy.deepcopy(draft)
        self._handle = self._scheduler(self.delay, self._fire)

    def _fire(self) -> None:
        draft = self._pending
        self._handle = None
        self._pending = None
        if draft is not None:
            self.store.save(draft)

    def flush(self) -> bool:
        """Write a pending save immediately. Returns True if one was pending."""
        if self._handle is None:
            return False
        self._handle.cancel()
        self._fire()
        return True

    def cancel(self) -> None:
        """Drop the pending save, if any."""
        if self._handle is not None:
            self._handle.cancel()
            logger.debug("Cancelled pending draft save")
        self._handle = None
        self._pending = None
