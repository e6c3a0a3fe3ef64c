"""Per-view paging state with speculative preloading of the next page."""
import logging
import threading
import time
import uuid
from concurrent.futures import Executor, Future, ThreadPoolExecutor
from dataclasses import dataclass, field
from typing import Callable, Dict, Iterable, List, Optional, Tuple

from tvbingefriend_feed_service.config import get_default_page_size
from tvbingefriend_feed_service.errors import FeedServiceError
from tvbingefriend_feed_service.models import (
    POSITIVE_STATUSES,
    FetchResult,
    FilterState,
    Show,
    ShowStatus,
    ShowsView,
    SortOption,
)
from tvbingefriend_feed_service.services.image_preloader import ImagePreloader

logger = logging.getLogger(__name__)

# Called as page_fetcher(offset=..., limit=..., sort_by=..., filters=...)
PageFetcher = Callable[..., FetchResult]
StatusUpdater = Callable[[Show, ShowStatus], Optional[FeedServiceError]]
ActionCallback = Callable[[Show, ShowStatus, Optional[FeedServiceError]], None]

DISCOVER_PRELOAD_DELAY = 0.5
DEFAULT_PRELOAD_DELAY = 1.5


def merge_unique(existing: Iterable[Show], incoming: Iterable[Show]) -> List[Show]:
    """Concatenate, keeping the first occurrence of each imdb_id."""
    seen = set()
    merged = []
    for show in list(existing) + list(incoming):
        if show.imdb_id in seen:
            continue
        seen.add(show.imdb_id)
        merged.append(show)
    return merged


@dataclass
class PreloadedBatch:
    items: List[Show]
    has_more: bool
    next_offset: int


@dataclass(frozen=True)
class PageState:
    """Read-only snapshot of a paginator."""

    view: ShowsView
    items: Tuple[Show, ...]
    offset: int
    has_more: bool
    sort_by: SortOption
    filters: FilterState
    loading: bool
    loading_more: bool
    preloading: bool
    preloaded_count: int
    error: Optional[FeedServiceError]
    generation: int

    @property
    def status(self) -> str:
        if self.loading:
            return "loading"
        if self.loading_more:
            return "loading_more"
        if self.preloading:
            return "preloading"
        if self.generation == 0:
            return "idle"
        return "ready"


@dataclass
class PendingAction:
    correlation_id: str
    show: Show
    status: ShowStatus
    generation: int
    index: Optional[int] = None
    preload_index: Optional[int] = None
    preload_batch: Optional[PreloadedBatch] = None
    created_at: float = field(default_factory=time.monotonic)


class ShowsPaginator:
    """
    Paging controller for one feed view.

    The visible list only grows through de-duplicating merges. After the
    first page (and after each consumed preload) the next page is fetched
    in the background into a side buffer, so the following fetch_more()
    needs no network call. Every request is tagged with the generation it
    was issued in; responses from an older generation are dropped.
    """

    def __init__(
            self,
            view: ShowsView,
            page_fetcher: PageFetcher,
            limit: Optional[int] = None,
            sort_by: Optional[SortOption] = None,
            status_updater: Optional[StatusUpdater] = None,
            image_preloader: Optional[ImagePreloader] = None,
            executor: Optional[Executor] = None,
            preload_delay: Optional[float] = None,
            rollback_failed_actions: bool = True,
            on_action_complete: Optional[ActionCallback] = None
    ):
        self.view = ShowsView(view)
        self.page_fetcher = page_fetcher
        self.limit = limit or get_default_page_size()
        self.status_updater = status_updater
        self.image_preloader = image_preloader
        self.rollback_failed_actions = rollback_failed_actions
        self.on_action_complete = on_action_complete
        if preload_delay is None:
            preload_delay = DISCOVER_PRELOAD_DELAY if self.view is ShowsView.DISCOVER else DEFAULT_PRELOAD_DELAY
        self.preload_delay = preload_delay

        self._owns_executor = executor is None
        self._executor = executor or ThreadPoolExecutor(
            max_workers=2, thread_name_prefix=f"paginator_{self.view.value}"
        )

        self._lock = threading.RLock()
        self._generation = 0
        self._closed = False
        self._sort_by = SortOption(sort_by) if sort_by else self.view.default_sort
        self._filters = FilterState()
        self._items: List[Show] = []
        self._offset = 0
        self._has_more = True
        self._preloaded: Optional[PreloadedBatch] = None
        self._preload_future: Optional[Future] = None
        self._loading = False
        self._loading_more = False
        self._preloading = False
        self._error: Optional[FeedServiceError] = None
        self._pending_actions: Dict[str, PendingAction] = {}

    # ===== STATE =====

    @property
    def state(self) -> PageState:
        with self._lock:
            return PageState(
                view=self.view,
                items=tuple(self._items),
                offset=self._offset,
                has_more=self._has_more,
                sort_by=self._sort_by,
                filters=self._filters,
                loading=self._loading,
                loading_more=self._loading_more,
                preloading=self._preloading,
                preloaded_count=len(self._preloaded.items) if self._preloaded else 0,
                error=self._error,
                generation=self._generation,
            )

    @property
    def items(self) -> List[Show]:
        with self._lock:
            return list(self._items)

    def _fetch(self, offset: int, sort_by: SortOption, filters: FilterState) -> FetchResult:
        try:
            return self.page_fetcher(offset=offset, limit=self.limit, sort_by=sort_by, filters=filters)
        except FeedServiceError as e:
            logger.error(f"Page fetch failed for {self.view.value} at offset {offset}: {e}")
            return FetchResult.failed(offset, e)

    def _is_current(self, generation: int) -> bool:
        return not self._closed and generation == self._generation

    # ===== PAGING =====

    def reset(self, filters: Optional[FilterState] = None) -> FetchResult:
        """
        Discard all paging state and load the first page.

        Args:
            filters: New filters; None keeps the current ones

        Returns:
            The first-page result (also applied to state unless superseded)
        """
        with self._lock:
            if filters is not None:
                self._filters = filters
            self._generation += 1
            generation = self._generation
            self._items = []
            self._offset = 0
            self._has_more = True
            self._preloaded = None
            self._preload_future = None
            self._loading = True
            self._loading_more = False
            self._preloading = False
            self._error = None
            sort_by, filters = self._sort_by, self._filters

        logger.info(f"Loading first page of {self.view.value} (sort_by: {sort_by.value})")
        result = self._fetch(0, sort_by, filters)

        with self._lock:
            if not self._is_current(generation):
                logger.info(f"Discarding stale first page of {self.view.value} (generation {generation})")
                return result
            self._loading = False
            if not result.ok:
                self._error = result.error
                self._has_more = False
                return result
            self._items = merge_unique([], result.items)
            self._offset = result.next_offset
            self._has_more = result.has_more

        self._hand_off_images(result.items)
        if result.items:
            self._schedule_preload(generation, self.preload_delay)
        return result

    def refresh(self) -> FetchResult:
        """Reload from the first page with the current sort and filters."""
        return self.reset()

    def set_sort_by(self, sort_by: SortOption) -> FetchResult:
        """Change the sort key and refetch from the start."""
        with self._lock:
            self._sort_by = SortOption(sort_by)
        return self.reset()

    def fetch_more(self) -> Optional[FetchResult]:
        """
        Append the next page to the visible list.

        Consumes the preloaded batch when one is ready, otherwise fetches
        directly. Returns None when there is nothing to do (already loading,
        a preload in flight, or no more pages).
        """
        with self._lock:
            if self._closed or self._loading or self._loading_more or self._preloading or not self._has_more:
                return None
            generation = self._generation
            batch = self._preloaded
            if batch is not None:
                self._preloaded = None
                self._items = merge_unique(self._items, batch.items)
                self._offset = batch.next_offset
                self._has_more = batch.has_more
                logger.info(f"Consumed {len(batch.items)} preloaded shows for {self.view.value}")
            else:
                self._loading_more = True
                offset, sort_by, filters = self._offset, self._sort_by, self._filters

        if batch is not None:
            self._schedule_preload(generation, 0)
            return FetchResult(items=list(batch.items), has_more=batch.has_more, next_offset=batch.next_offset)

        result = self._fetch(offset, sort_by, filters)
        with self._lock:
            if not self._is_current(generation):
                logger.info(f"Discarding stale page of {self.view.value} at offset {offset}")
                return result
            self._loading_more = False
            if not result.ok:
                self._error = result.error
                return result
            self._error = None
            self._items = merge_unique(self._items, result.items)
            self._offset = result.next_offset
            self._has_more = result.has_more

        self._hand_off_images(result.items)
        return result

    def preload_next(self) -> Optional[FetchResult]:
        """Fetch the next page into the side buffer. No-op if busy or a preload is pending."""
        with self._lock:
            if self._preload_future is not None and not self._preload_future.done():
                return None
        return self._run_preload(self.generation)

    @property
    def generation(self) -> int:
        with self._lock:
            return self._generation

    def _run_preload(self, generation: int) -> Optional[FetchResult]:
        with self._lock:
            if (not self._is_current(generation) or self._loading or self._loading_more
                    or self._preloading or self._preloaded is not None or not self._has_more):
                return None
            self._preloading = True
            offset, sort_by, filters = self._offset, self._sort_by, self._filters

        result = self._fetch(offset, sort_by, filters)

        with self._lock:
            if not self._is_current(generation):
                logger.info(f"Discarding stale preload of {self.view.value} at offset {offset}")
                return None
            self._preloading = False
            if not result.ok:
                logger.warning(f"Preload of {self.view.value} at offset {offset} failed: {result.error}")
                return result
            visible = {show.imdb_id for show in self._items}
            self._preloaded = PreloadedBatch(
                items=[show for show in merge_unique([], result.items) if show.imdb_id not in visible],
                has_more=result.has_more,
                next_offset=result.next_offset,
            )
            logger.info(f"Preloaded {len(self._preloaded.items)} shows for {self.view.value}")

        self._hand_off_images(result.items)
        return result

    def _schedule_preload(self, generation: int, delay: float) -> None:
        def run():
            if delay > 0:
                time.sleep(delay)
            try:
                self._run_preload(generation)
            except Exception as e:
                logger.error(f"Background preload failed for {self.view.value}: {e}", exc_info=True)

        with self._lock:
            if not self._is_current(generation):
                return
            # A previous run may still be handing off images after storing its batch
            if self._preloading or self._preloaded is not None:
                return
        try:
            future = self._executor.submit(run)
        except RuntimeError as e:
            logger.warning(f"Could not schedule preload for {self.view.value}: {e}")
            return
        with self._lock:
            if self._is_current(generation):
                self._preload_future = future

    def wait_for_preload(self, timeout: Optional[float] = None) -> bool:
        """Block until the scheduled preload (if any) settles."""
        with self._lock:
            future = self._preload_future
        if future is None:
            return True
        try:
            future.result(timeout=timeout)
        except TimeoutError:
            return False
        return True

    def _hand_off_images(self, shows: List[Show]) -> None:
        if self.image_preloader is None or not shows:
            return
        try:
            self.image_preloader.preload_in_buckets(shows)
        except Exception as e:
            logger.warning(f"Could not schedule image preload: {e}")

    # ===== USER ACTIONS =====

    def _removes_show(self, status: ShowStatus) -> bool:
        """Whether a show given this status stops belonging to the view."""
        if self.view is ShowsView.DISCOVER:
            return True
        if self.view is ShowsView.NEW_SEASONS:
            return status not in POSITIVE_STATUSES
        if self.view is ShowsView.ALL_RATED:
            return status is ShowStatus.WATCHLIST
        return status.value != self.view.status_filter

    def handle_show_action(self, show: Show, status: ShowStatus) -> Future:
        """
        Apply a status change: remove the show locally at once, write in the background.

        Returns:
            Future resolving to the write error (None on success)
        """
        status = ShowStatus(status)
        correlation_id = uuid.uuid4().hex
        with self._lock:
            action = PendingAction(correlation_id, show, status, self._generation)
            if self._removes_show(status):
                action.index = next(
                    (i for i, item in enumerate(self._items) if item.imdb_id == show.imdb_id), None
                )
                if action.index is not None:
                    del self._items[action.index]
                if self._preloaded is not None:
                    action.preload_index = next(
                        (i for i, item in enumerate(self._preloaded.items) if item.imdb_id == show.imdb_id), None
                    )
                    if action.preload_index is not None:
                        action.preload_batch = self._preloaded
                        del self._preloaded.items[action.preload_index]
            self._pending_actions[correlation_id] = action
        logger.info(f"Optimistically applied {status.value} to {show.imdb_id} ({correlation_id})")

        def run() -> Optional[FeedServiceError]:
            error = None
            if self.status_updater is not None:
                try:
                    error = self.status_updater(show, status)
                except FeedServiceError as e:
                    error = e
            self.reconcile(correlation_id, error)
            if self.on_action_complete is not None:
                self.on_action_complete(show, status, error)
            return error

        return self._executor.submit(run)

    def reconcile(self, correlation_id: str, error: Optional[FeedServiceError]) -> bool:
        """
        Settle an optimistic action with the outcome of its write.

        On error (and with rollback enabled) the show is put back where it
        was, unless the list has since been reset or already holds it.

        Returns:
            True if the local change was rolled back
        """
        with self._lock:
            action = self._pending_actions.pop(correlation_id, None)
            if action is None:
                return False
            if error is None:
                logger.info(f"✓ Status write {correlation_id} confirmed")
                return False
            logger.error(f"Status write for {action.show.imdb_id} failed: {error}")
            if not self.rollback_failed_actions or not self._is_current(action.generation):
                return False

            rolled_back = False
            if action.index is not None and all(s.imdb_id != action.show.imdb_id for s in self._items):
                self._items.insert(min(action.index, len(self._items)), action.show)
                rolled_back = True
            # Only into the batch it was taken from; a consumed batch is gone
            if (action.preload_batch is not None and self._preloaded is action.preload_batch
                    and all(s.imdb_id != action.show.imdb_id for s in self._preloaded.items)):
                self._preloaded.items.insert(min(action.preload_index, len(self._preloaded.items)), action.show)
                rolled_back = True
            if rolled_back:
                logger.info(f"Rolled back optimistic removal of {action.show.imdb_id}")
            return rolled_back

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def pending_actions(self) -> int:
        with self._lock:
            return len(self._pending_actions)

    # ===== LIFECYCLE =====

    def close(self) -> None:
        """Leave the view: drop all state; in-flight responses are ignored."""
        with self._lock:
            self._closed = True
            self._generation += 1
            self._items = []
            self._preloaded = None
            self._preload_future = None
            self._loading = self._loading_more = self._preloading = False
        if self._owns_executor:
            self._executor.shutdown(wait=False)
        logger.info(f"Closed {self.view.value} paginator")
