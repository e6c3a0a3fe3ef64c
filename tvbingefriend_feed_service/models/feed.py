"""Request/result types for feed pages."""
from dataclasses import dataclass, field
from enum import Enum
from typing import FrozenSet, Iterable, List, Optional, Tuple

from tvbingefriend_feed_service.errors import FeedServiceError
from tvbingefriend_feed_service.models.show import ALL_RATED, Show, ShowStatus, SortOption


class ShowsView(str, Enum):
    """Top-level feeds a user can switch between."""

    DISCOVER = "discover"
    WATCHLIST = "watchlist"
    LOVED_IT = "loved_it"
    LIKED_IT = "liked_it"
    ALL_RATED = "all_rated"
    NEW_SEASONS = "new_seasons"

    @property
    def default_sort(self) -> SortOption:
        if self in (ShowsView.DISCOVER, ShowsView.NEW_SEASONS):
            return SortOption.LATEST
        return SortOption.RECENTLY_ADDED

    @property
    def requires_user(self) -> bool:
        return self is not ShowsView.DISCOVER

    @property
    def status_filter(self) -> Optional[str]:
        """user_shows status for views backed by the user's own list."""
        if self is ShowsView.ALL_RATED:
            return ALL_RATED
        if self in (ShowsView.WATCHLIST, ShowsView.LOVED_IT, ShowsView.LIKED_IT):
            return ShowStatus(self.value).value
        return None


@dataclass(frozen=True)
class FilterState:
    """Discover filters. Sets are unordered; an empty set means no filter."""

    genre_ids: FrozenSet[int] = frozenset()
    streamer_ids: FrozenSet[int] = frozenset()
    year_range: Optional[Tuple[int, int]] = None

    @classmethod
    def create(
            cls,
            genre_ids: Optional[Iterable[int]] = None,
            streamer_ids: Optional[Iterable[int]] = None,
            year_range: Optional[Tuple[int, int]] = None
    ) -> "FilterState":
        return cls(
            genre_ids=frozenset(genre_ids or ()),
            streamer_ids=frozenset(streamer_ids or ()),
            year_range=tuple(year_range) if year_range else None,
        )

    @property
    def is_empty(self) -> bool:
        return not self.genre_ids and not self.streamer_ids and self.year_range is None


@dataclass
class FetchRequest:
    """Parameters for one page of the shows resource."""

    limit: int = 20
    offset: int = 0
    sort_by: SortOption = SortOption.LATEST
    filters: FilterState = field(default_factory=FilterState)
    show_in_discovery: bool = False
    exclude_user_shows: bool = False
    user_id: Optional[str] = None


@dataclass
class FetchResult:
    """One page of shows.

    next_offset is counted in raw (pre-filter) rows so the remote cursor stays
    consistent across calls. Expected failures are reported in error rather
    than raised.
    """

    items: List[Show] = field(default_factory=list)
    has_more: bool = False
    next_offset: int = 0
    error: Optional[FeedServiceError] = None

    @property
    def ok(self) -> bool:
        return self.error is None

    @classmethod
    def failed(cls, offset: int, error: FeedServiceError) -> "FetchResult":
        return cls(items=[], has_more=False, next_offset=offset, error=error)
