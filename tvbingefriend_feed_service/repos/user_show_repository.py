"""Repository for user_shows (a user's watchlist and ratings) and profiles."""
import logging
from datetime import UTC, date, datetime
from typing import Iterable, List, Optional, Tuple

from tvbingefriend_feed_service.errors import FeedServiceError
from tvbingefriend_feed_service.filtering import (
    IN_MEMORY_SORTS,
    is_recent_or_upcoming,
    sort_by_rating,
    sort_new_seasons,
)
from tvbingefriend_feed_service.models import (
    ALL_RATED,
    POSITIVE_STATUSES,
    RATED_STATUSES,
    FetchResult,
    Show,
    ShowStatus,
    SortOption,
)
from tvbingefriend_feed_service.repos.genre_repository import GenreRepository
from tvbingefriend_feed_service.repos.rest_client import SupabaseRestClient

logger = logging.getLogger(__name__)

USER_SHOW_SELECT = "status,created_at,updated_at,shows:imdb_id(*)"

# Client-side time limits for write paths (seconds)
STATUS_WRITE_TIMEOUT = 10
PROFILE_TIMEOUT = 5

REMOTE_ORDER = {
    SortOption.RECENTLY_ADDED: "updated_at.desc",
    SortOption.LATEST: "created_at.desc",
    SortOption.BY_RATING: "status.desc,updated_at.desc",
}


def _in_filter(statuses: Iterable) -> str:
    return f"in.({','.join(ShowStatus(s).value for s in statuses)})"


def status_param(status: str) -> Tuple[str, str]:
    """PostgREST filter for a status, expanding the synthetic all_rated status."""
    if status == ALL_RATED:
        return "status", _in_filter(RATED_STATUSES)
    return "status", f"eq.{ShowStatus(status).value}"


class UserShowRepository:
    """
    Repository for shows associated with a user.
    """

    def __init__(self, client: SupabaseRestClient, genres: Optional[GenreRepository] = None):
        self.client = client
        self.genres = genres or GenreRepository(client)

    # ===== READS =====

    def fetch_user_show_ids(self, user_id: str) -> List[str]:
        """Get the imdb_id of every show the user has any status for."""
        rows = self.client.select(
            "user_shows", [("select", "imdb_id"), ("user_id", f"eq.{user_id}")]
        )
        return [row["imdb_id"] for row in rows]

    def fetch_user_shows(
            self,
            user_id: str,
            status: str,
            sort_by: SortOption = SortOption.RECENTLY_ADDED,
            limit: int = 20,
            offset: int = 0
    ) -> FetchResult:
        """
        Fetch the user's shows with a given status.

        Recency sorts are ordered remotely and paged with limit/offset. Rating
        sorts depend on the joined show data, so the whole list is fetched,
        sorted in memory and sliced.

        Args:
            user_id: User UUID
            status: A ShowStatus value or 'all_rated'
            sort_by: Sort option
            limit: Page size
            offset: Row offset

        Returns:
            FetchResult (error set instead of raising)
        """
        sort_by = SortOption(sort_by)
        logger.info(f"Fetching user shows for {user_id}, status: {status}, sort_by: {sort_by.value}")

        params = [
            ("select", USER_SHOW_SELECT),
            ("user_id", f"eq.{user_id}"),
            status_param(status),
            ("order", REMOTE_ORDER.get(sort_by, "updated_at.desc")),
        ]
        in_memory = sort_by in IN_MEMORY_SORTS
        if not in_memory:
            params.extend([("limit", limit), ("offset", offset)])

        try:
            rows = self.client.select("user_shows", params)
        except FeedServiceError as e:
            logger.error(f"Error fetching user shows: {e}")
            return FetchResult.failed(offset, e)

        shows = [show for show in map(Show.from_user_show_row, rows) if show is not None]

        if in_memory:
            ordered = sort_by_rating(shows, sort_by)
            page = ordered[offset:offset + limit]
            result = FetchResult(
                items=page,
                has_more=offset + limit < len(ordered),
                next_offset=offset + len(page),
            )
        else:
            result = FetchResult(
                items=shows,
                has_more=len(rows) == limit,
                next_offset=offset + len(rows),
            )

        self.genres.add_genre_names(result.items)
        logger.info(f"Retrieved {len(result.items)} user shows")
        return result

    def _fetch_positive_rows(self, user_id: str, select: str) -> List[Show]:
        rows = self.client.select(
            "user_shows",
            [("select", select), ("user_id", f"eq.{user_id}"), ("status", _in_filter(POSITIVE_STATUSES))],
        )
        return [show for show in map(Show.from_user_show_row, rows) if show is not None]

    def fetch_new_seasons_shows(
            self,
            user_id: str,
            limit: int = 20,
            offset: int = 0,
            today: Optional[date] = None
    ) -> FetchResult:
        """
        Fetch shows the user loved or liked that have a new season upcoming or recently aired.

        Returns:
            FetchResult ordered upcoming (furthest first), today, then past (most recent first)
        """
        today = today or date.today()
        try:
            shows = self._fetch_positive_rows(user_id, USER_SHOW_SELECT)
        except FeedServiceError as e:
            logger.error(f"Error fetching user shows for new seasons: {e}")
            return FetchResult.failed(offset, e)

        recent = sort_new_seasons([s for s in shows if is_recent_or_upcoming(s, today)], today)
        page = recent[offset:offset + limit]
        self.genres.add_genre_names(page)
        return FetchResult(items=page, has_more=offset + limit < len(recent), next_offset=offset + len(page))

    # ===== COUNTS =====

    def count_by_status(self, user_id: str, statuses: Iterable[ShowStatus]) -> int:
        """Count the user's shows in any of the given statuses."""
        return self.client.count(
            "user_shows",
            [("select", "imdb_id"), ("user_id", f"eq.{user_id}"), ("status", _in_filter(statuses))],
        )

    def count_new_seasons(self, user_id: str, today: Optional[date] = None) -> int:
        """Count loved/liked shows with an upcoming or recent new season."""
        today = today or date.today()
        shows = self._fetch_positive_rows(user_id, "imdb_id,shows:imdb_id(imdb_id,next_season_date)")
        return sum(1 for show in shows if is_recent_or_upcoming(show, today))

    # ===== WRITES =====

    def update_user_show_status(
            self,
            user_id: str,
            imdb_id: str,
            status: ShowStatus
    ) -> Optional[FeedServiceError]:
        """
        Set the user's status for a show.

        A single upsert keyed on (user_id, imdb_id), so concurrent writers can
        never insert duplicate rows.

        Returns:
            None on success, otherwise the error
        """
        status = ShowStatus(status)
        logger.info(f"Updating status of {imdb_id} for user {user_id} to {status.value}")
        row = {
            "user_id": user_id,
            "imdb_id": imdb_id,
            "status": status.value,
            "updated_at": datetime.now(UTC).isoformat(),
        }
        try:
            self.client.upsert("user_shows", row, on_conflict="user_id,imdb_id", timeout=STATUS_WRITE_TIMEOUT)
        except FeedServiceError as e:
            logger.error(f"Failed to update status of {imdb_id} for user {user_id}: {e}")
            return e

        self._increment_interaction_count(user_id)
        logger.info(f"✓ Status of {imdb_id} updated to {status.value}")
        return None

    def _increment_interaction_count(self, user_id: str) -> None:
        """Bump profiles.interaction_count. Failures are logged only."""
        try:
            profiles = self.client.select(
                "profiles",
                [("select", "interaction_count"), ("id", f"eq.{user_id}")],
                timeout=PROFILE_TIMEOUT,
            )
            current = (profiles[0].get("interaction_count") if profiles else 0) or 0
            self.client.update(
                "profiles",
                [("id", f"eq.{user_id}")],
                {"interaction_count": current + 1},
                timeout=PROFILE_TIMEOUT,
            )
        except FeedServiceError as e:
            logger.warning(f"Failed to update interaction count for user {user_id}: {e}")
