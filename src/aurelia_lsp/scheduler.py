"""
Debounced rescans of changed project files.

File-system events arrive in bursts (a save, a branch switch). Changed
paths accumulate in a pending set and are processed once, after the
events have been quiet for a whole window. Deletions skip the queue.

The scheduler never starts timers itself: its owner calls :meth:`tick`,
either from an event loop timer or, in tests, after advancing a fake
clock.
"""

from __future__ import annotations

import logging
import time
from typing import Callable, Iterable

logger = logging.getLogger(__name__)


class RescanScheduler:
    def __init__(
        self,
        process: Callable[[list[str]], None],
        remove: Callable[[str], None],
        window: float = 0.5,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._process = process
        self._remove = remove
        self.window = window
        self._clock = clock
        self._pending: set[str] = set()
        self._last_event: float | None = None

    @property
    def pending(self) -> frozenset[str]:
        return frozenset(self._pending)

    @property
    def deadline(self) -> float | None:
        """Clock time at which the pending batch becomes due, or None when idle."""
        if not self._pending or self._last_event is None:
            return None
        return self._last_event + self.window

    def time_until_due(self) -> float | None:
        """Seconds until the pending batch is due (0 if overdue), or None when idle."""
        deadline = self.deadline
        if deadline is None:
            return None
        return max(0.0, deadline - self._clock())

    def notify_changed(self, paths: Iterable[str]) -> None:
        """Queue created or changed paths; every call restarts the quiet window."""
        added = False
        for path in paths:
            self._pending.add(path)
            added = True
        if added:
            self._last_event = self._clock()

    def notify_deleted(self, paths: Iterable[str]) -> None:
        """Remove deleted paths immediately and drop them from the queue."""
        for path in paths:
            self._pending.discard(path)
            self._remove(path)

    def tick(self) -> bool:
        """Process the pending batch if the quiet window has elapsed.

        Returns:
            True if a batch was processed.
        """
        deadline = self.deadline
        if deadline is None or self._clock() < deadline:
            return False

        batch = sorted(self._pending)
        self._pending.clear()
        self._last_event = None
        logger.debug(f"Rescanning {len(batch)} changed files")
        self._process(batch)
        return True
