"""Badge counts for the navigation bar."""
import logging
import threading
from concurrent.futures import Executor, ThreadPoolExecutor
from dataclasses import asdict, dataclass
from functools import partial
from typing import Callable, Dict, List, Optional

from tvbingefriend_feed_service.errors import FeedServiceError
from tvbingefriend_feed_service.models import RATED_STATUSES, ShowStatus
from tvbingefriend_feed_service.repos import ShowRepository, UserShowRepository

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Counts:
    discover: int = 0
    watchlist: int = 0
    rated: int = 0
    new_seasons: int = 0

    def to_dict(self) -> Dict[str, int]:
        return asdict(self)


CountsListener = Callable[[Counts, int], None]


class NavigationCounters:
    """
    Per-identity counts, recomputed with concurrent independent queries.

    Without a user only the discover count is computed; the rest stay zero.
    A failing query keeps that count's previous value.
    """

    def __init__(
            self,
            show_repo: ShowRepository,
            user_show_repo: UserShowRepository,
            executor: Optional[Executor] = None
    ):
        self.show_repo = show_repo
        self.user_show_repo = user_show_repo
        self._executor = executor or ThreadPoolExecutor(max_workers=4, thread_name_prefix="nav_counters")
        self._lock = threading.Lock()
        self._user_id: Optional[str] = None
        self._counts = Counts()
        self._refresh_trigger = 0
        self._listeners: List[CountsListener] = []

    @property
    def counts(self) -> Counts:
        with self._lock:
            return self._counts

    @property
    def user_id(self) -> Optional[str]:
        return self._user_id

    @property
    def refresh_trigger(self) -> int:
        return self._refresh_trigger

    def add_listener(self, listener: CountsListener) -> None:
        with self._lock:
            self._listeners.append(listener)

    def remove_listener(self, listener: CountsListener) -> None:
        with self._lock:
            if listener in self._listeners:
                self._listeners.remove(listener)

    def set_user(self, user_id: Optional[str]) -> Counts:
        """Switch identity; counts are recomputed only when it changes."""
        with self._lock:
            if user_id == self._user_id and self._refresh_trigger:
                return self._counts
            self._user_id = user_id
            self._counts = Counts(discover=self._counts.discover)
        return self.refresh()

    def _queries(self, user_id: Optional[str]) -> Dict[str, Callable[[], int]]:
        queries = {"discover": self.show_repo.count_discoverable}
        if user_id:
            queries.update({
                "watchlist": partial(self.user_show_repo.count_by_status, user_id, [ShowStatus.WATCHLIST]),
                "rated": partial(self.user_show_repo.count_by_status, user_id, RATED_STATUSES),
                "new_seasons": partial(self.user_show_repo.count_new_seasons, user_id),
            })
        return queries

    def refresh(self) -> Counts:
        """
        Recompute every count in parallel and notify listeners.

        Returns:
            The new counts
        """
        with self._lock:
            user_id = self._user_id
            values = self._counts.to_dict()
            self._refresh_trigger += 1
            trigger = self._refresh_trigger

        futures = {name: self._executor.submit(query) for name, query in self._queries(user_id).items()}
        for name, future in futures.items():
            try:
                values[name] = future.result()
            except FeedServiceError as e:
                logger.warning(f"Failed to count {name}, keeping previous value: {e}")

        with self._lock:
            if user_id != self._user_id:
                logger.info("Identity changed during counter refresh, discarding result")
                return self._counts
            self._counts = Counts(**values)
            counts = self._counts
            listeners = list(self._listeners)

        logger.info(f"✓ Navigation counts refreshed: {counts.to_dict()}")
        for listener in listeners:
            try:
                listener(counts, trigger)
            except Exception as e:
                logger.error(f"Counter listener failed: {e}", exc_info=True)
        return counts
