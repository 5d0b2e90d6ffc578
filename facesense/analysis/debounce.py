"""Idempotency guard for side-effecting triggers

Chat messages and "remember me" events can be delivered more than once for the
same utterance. Each consumer keeps a small window of handled ids and skips a
trigger whose id it has already seen.
"""

import logging
from collections import deque
from typing import Deque, Hashable, Set


logger = logging.getLogger(__name__)


class IdempotencyGuard:
    """Remembers the most recently handled ids

    A window of 1 reproduces plain last-seen-id debouncing: only an immediate
    repeat is skipped. Larger windows also reject ids that come back after
    other ids were handled in between.

    Attributes:
        window: Number of ids remembered
    """

    def __init__(self, window: int = 1):
        if window < 1:
            raise ValueError(f"window must be >= 1, got {window}")
        self.window = window
        self._order: Deque[Hashable] = deque()
        self._seen: Set[Hashable] = set()

    def check_and_mark(self, key: Hashable) -> bool:
        """Mark an id as handled

        Args:
            key: Idempotency key of the trigger

        Returns:
            True if the id is new and the caller should proceed,
            False if it was already handled
        """
        if key in self._seen:
            logger.debug(f"Skipping duplicate trigger {key!r}")
            return False

        self._order.append(key)
        self._seen.add(key)
        if len(self._order) > self.window:
            self._seen.discard(self._order.popleft())
        return True

    def seen(self, key: Hashable) -> bool:
        return key in self._seen

    def __len__(self) -> int:
        return len(self._order)
