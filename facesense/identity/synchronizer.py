"""Store Synchronizer

Keeps the current identity matcher consistent with the authoritative
descriptor store. Refreshes are triggered on startup, by push invalidation
and by polling; all triggers go through one refresh function guarded by an
IDLE/REFRESHING state machine:

    IDLE --request--> REFRESHING --done--> IDLE
                      REFRESHING --request--> (one pending re-run recorded)

A content signature over the fetched store short-circuits rebuilds when
nothing changed, so duplicate invalidations cost one fetch and no allocation.
"""

import asyncio
import logging
from typing import Callable, List, Optional, Set

from facesense.models.enums import RefreshState
from facesense.models.interfaces import DescriptorRepository, Unsubscribe
from facesense.identity.matcher import DEFAULT_MATCH_THRESHOLD, UNKNOWN_LABEL, IdentityMatcher
from facesense.identity.repository import store_signature
from facesense.config.config_loader import config


logger = logging.getLogger(__name__)


MatcherReadyListener = Callable[[IdentityMatcher], None]


class StoreSynchronizer:
    """Maintains the current matcher snapshot.

    Only the synchronizer writes ``_matcher``; readers call
    ``current_matcher()`` and keep the returned snapshot for as long as they
    need it. Publishing is a single attribute assignment.

    Attributes:
        repository: Authoritative descriptor store
        threshold: Match threshold for built matchers
        unknown_label: Sentinel label for rejected matches
        poll_interval: Seconds between polling refreshes, 0 disables polling
        state: Current refresh state
        rebuild_count: Number of matchers built so far
    """

    def __init__(
        self,
        repository: DescriptorRepository,
        threshold: Optional[float] = None,
        unknown_label: Optional[str] = None,
        poll_interval: Optional[float] = None
    ):
        self.repository = repository
        self.threshold = threshold if threshold is not None else config.get(
            'identity.match_threshold', DEFAULT_MATCH_THRESHOLD)
        self.unknown_label = unknown_label or config.get('identity.unknown_label', UNKNOWN_LABEL)
        self.poll_interval = poll_interval if poll_interval is not None else config.get(
            'identity.poll_interval', 10.0)

        self.state = RefreshState.IDLE
        self.rebuild_count = 0

        self._matcher: Optional[IdentityMatcher] = None
        self._signature: Optional[str] = None
        self._pending = False
        self._not_found_logged = False
        self._failure_logged = False

        self._listeners: List[MatcherReadyListener] = []
        self._background: Set[asyncio.Task] = set()
        self._unsubscribe: Optional[Unsubscribe] = None

        logger.info(
            f"StoreSynchronizer initialized with threshold={self.threshold}, "
            f"poll_interval={self.poll_interval}s"
        )

    def current_matcher(self) -> Optional[IdentityMatcher]:
        """Current matcher snapshot, None before the first successful build"""
        return self._matcher

    def add_matcher_ready_listener(self, listener: MatcherReadyListener):
        self._listeners.append(listener)

    async def refresh(self) -> bool:
        """Refresh the matcher from the repository.

        A call made while another refresh is running is coalesced: it returns
        immediately and the running refresh performs one more pass when it
        finishes.

        Returns:
            True if a new matcher was published
        """
        if self.state is RefreshState.REFRESHING:
            self._pending = True
            logger.debug("Refresh already in flight, coalescing request")
            return False

        self.state = RefreshState.REFRESHING
        published = False
        try:
            while True:
                self._pending = False
                published = await self._refresh_once() or published
                if not self._pending:
                    break
        finally:
            # Also reached on cancellation
            self.state = RefreshState.IDLE
            self._pending = False
        return published

    async def _refresh_once(self) -> bool:
        try:
            result = await self.repository.fetch_descriptor_store()
        except asyncio.CancelledError:
            raise
        except Exception as e:
            self._log_failure(f"Descriptor store fetch raised: {e}")
            return False

        if result.is_not_found:
            if not self._not_found_logged:
                logger.warning("Descriptor store not found yet, waiting for first enrollment")
                self._not_found_logged = True
            return False

        if not result.is_found:
            self._log_failure(f"Descriptor store fetch failed: {result.reason}")
            return False

        store = result.store or {}
        if not store:
            return False

        signature = store_signature(store)
        if signature == self._signature:
            self._reset_failure_flags()
            return False

        try:
            matcher = IdentityMatcher.from_store(
                store,
                threshold=self.threshold,
                unknown_label=self.unknown_label,
                signature=signature
            )
        except ValueError as e:
            self._log_failure(f"Could not build matcher: {e}")
            return False

        self._matcher = matcher
        self._signature = signature
        self.rebuild_count += 1
        self._reset_failure_flags()
        logger.info(f"Matcher ready: {len(matcher.labels)} identities, {len(matcher)} embeddings")

        for listener in list(self._listeners):
            try:
                listener(matcher)
            except Exception as e:
                logger.error(f"Matcher ready listener failed: {e}", exc_info=True)
        return True

    def _log_failure(self, message: str):
        # Once per failure streak
        if not self._failure_logged:
            logger.error(message)
            self._failure_logged = True
        else:
            logger.debug(message)

    def _reset_failure_flags(self):
        self._not_found_logged = False
        self._failure_logged = False

    def request_refresh(self):
        """Schedule a refresh without waiting for it.

        Safe to use as an invalidation callback; must be called on the event
        loop thread.
        """
        if self.state is RefreshState.REFRESHING:
            self._pending = True
            return
        task = asyncio.create_task(self.refresh())
        self._background.add(task)
        task.add_done_callback(self._background.discard)

    async def start(self):
        """Initial refresh, invalidation subscription and polling.

        Runs until cancelled.
        """
        logger.info("Starting store synchronizer")
        try:
            self._unsubscribe = await self.repository.subscribe_invalidation(self.request_refresh)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.error(f"Invalidation subscription failed, relying on polling: {e}", exc_info=True)

        try:
            await self.refresh()

            while True:
                if self.poll_interval and self.poll_interval > 0:
                    await asyncio.sleep(self.poll_interval)
                    await self.refresh()
                else:
                    await asyncio.Event().wait()

        except asyncio.CancelledError:
            logger.info("Store synchronizer task cancelled")
        finally:
            await self.stop()

    async def stop(self):
        """Cancel background refreshes and the invalidation subscription"""
        for task in list(self._background):
            task.cancel()
        if self._background:
            await asyncio.gather(*self._background, return_exceptions=True)

        if self._unsubscribe is not None:
            unsubscribe, self._unsubscribe = self._unsubscribe, None
            try:
                await unsubscribe()
            except Exception as e:
                logger.warning(f"Failed to cancel invalidation subscription: {e}")
