"""Repository for the shows table: the Discover feed and filter options."""
import logging
from concurrent.futures import ThreadPoolExecutor
from datetime import date
from typing import Dict, List, Optional, Set, Tuple

from tvbingefriend_feed_service.errors import FeedServiceError
from tvbingefriend_feed_service.filtering import apply_in_memory_filters, compute_fetch_limit
from tvbingefriend_feed_service.models import FetchRequest, FetchResult, Show, SortOption
from tvbingefriend_feed_service.repos.genre_repository import GenreRepository
from tvbingefriend_feed_service.repos.rest_client import SupabaseRestClient
from tvbingefriend_feed_service.repos.user_show_repository import UserShowRepository
from tvbingefriend_feed_service.streamers import STREAMING_PROVIDERS, normalize_streamers

logger = logging.getLogger(__name__)

SHOW_COLUMNS = ",".join([
    "imdb_id", "id", "name", "original_name", "first_air_date", "last_air_date", "status",
    "imdb_rating", "imdb_vote_count", "vote_average", "vote_count", "our_score",
    "overview", "our_description", "poster_url", "poster_path", "poster_thumb_url",
    "genre_ids", "number_of_seasons", "number_of_episodes", "type", "streaming_info",
    "next_season_date", "created_at", "main_cast", "creators", "show_in_discovery",
])

ORDER_CLAUSES: Dict[SortOption, str] = {
    SortOption.LATEST: "first_air_date.desc.nullslast",
    SortOption.RATING: "our_score.desc.nullslast,imdb_rating.desc.nullslast,vote_average.desc.nullslast",
    SortOption.BY_RATING: "our_score.desc.nullslast,imdb_rating.desc.nullslast,vote_average.desc.nullslast",
    SortOption.RECENTLY_ADDED: "created_at.desc",
    SortOption.BEST_RATED: "our_score.desc.nullslast",
}

DEFAULT_YEAR_RANGE = (2000, date.today().year)

_PROVIDER_IDS_BY_NAME = {name: provider_id for provider_id, name in STREAMING_PROVIDERS.items()}


class ShowRepository:
    """
    Repository for browsing the shows table.
    """

    def __init__(
            self,
            client: SupabaseRestClient,
            genres: Optional[GenreRepository] = None,
            user_shows: Optional[UserShowRepository] = None
    ):
        self.client = client
        self.genres = genres or GenreRepository(client)
        self.user_shows = user_shows or UserShowRepository(client, self.genres)

    def build_query_params(self, request: FetchRequest, fetch_limit: int) -> List[Tuple[str, object]]:
        """Filters the remote can express, plus ordering and the raw page window."""
        params: List[Tuple[str, object]] = [("select", SHOW_COLUMNS)]
        if request.show_in_discovery:
            params.append(("show_in_discovery", "eq.true"))
        if request.filters.year_range:
            min_year, max_year = request.filters.year_range
            params.append(("first_air_date", f"gte.{min_year}-01-01"))
            params.append(("first_air_date", f"lte.{max_year}-12-31"))
        params.append(("order", ORDER_CLAUSES.get(SortOption(request.sort_by), ORDER_CLAUSES[SortOption.LATEST])))
        params.append(("limit", fetch_limit))
        params.append(("offset", request.offset))
        return params

    def _load_excluded_ids(self, request: FetchRequest) -> Set[str]:
        """Owned show ids to exclude. Fails open: an error means no exclusion."""
        if not (request.exclude_user_shows and request.user_id):
            return set()
        try:
            excluded = set(self.user_shows.fetch_user_show_ids(request.user_id))
        except FeedServiceError as e:
            logger.warning(f"Failed to fetch user shows, continuing without exclusion: {e}")
            return set()
        logger.info(f"Found {len(excluded)} user shows to exclude")
        return excluded

    def fetch_shows(self, request: FetchRequest) -> FetchResult:
        """
        Fetch one page of shows.

        Genre, streamer and ownership filters are applied in memory over an
        over-fetched batch, then the page is truncated to request.limit.
        has_more is True when the raw batch filled the fetch limit, and
        next_offset advances by the raw batch size.

        Args:
            request: Page parameters

        Returns:
            FetchResult (error set instead of raising)
        """
        logger.info(
            f"Fetching shows (limit: {request.limit}, offset: {request.offset}, sort_by: {request.sort_by})"
        )
        excluded = self._load_excluded_ids(request)
        fetch_limit = compute_fetch_limit(request.limit, request.filters, excluding=bool(excluded))

        try:
            rows = self.client.select("shows", self.build_query_params(request, fetch_limit))
        except FeedServiceError as e:
            logger.error(f"Error fetching shows: {e}")
            return FetchResult.failed(request.offset, e)

        raw_count = len(rows)
        shows = apply_in_memory_filters(
            (Show.from_row(row) for row in rows), request.filters, excluded
        )
        logger.info(f"Filtered {raw_count} fetched shows down to {len(shows)}")

        page = self.genres.add_genre_names(shows[:request.limit])
        return FetchResult(
            items=page,
            has_more=raw_count == fetch_limit,
            next_offset=request.offset + raw_count,
        )

    def count_discoverable(self) -> int:
        """Count shows flagged for the Discover feed."""
        return self.client.count("shows", [("select", "imdb_id"), ("show_in_discovery", "eq.true")])

    # ===== FILTER OPTIONS =====

    def fetch_year_range(self) -> Tuple[Tuple[int, int], Optional[FeedServiceError]]:
        """First and last first-air year among discoverable shows."""
        base = [
            ("select", "first_air_date"),
            ("show_in_discovery", "eq.true"),
            ("first_air_date", "not.is.null"),
            ("limit", 1),
        ]
        try:
            first = self.client.select("shows", base + [("order", "first_air_date.asc")])
            last = self.client.select("shows", base + [("order", "first_air_date.desc")])
        except FeedServiceError as e:
            logger.error(f"Error fetching year range: {e}")
            return DEFAULT_YEAR_RANGE, e

        min_year = int(first[0]["first_air_date"][:4]) if first else DEFAULT_YEAR_RANGE[0]
        max_year = int(last[0]["first_air_date"][:4]) if last else DEFAULT_YEAR_RANGE[1]
        return (min_year, max_year), None

    def fetch_streaming_providers(self) -> Tuple[List[Dict], Optional[FeedServiceError]]:
        """Canonical streamers that appear on discoverable shows, sorted by name."""
        try:
            rows = self.client.select(
                "shows",
                [
                    ("select", "imdb_id,streaming_info"),
                    ("show_in_discovery", "eq.true"),
                    ("streaming_info", "not.is.null"),
                ],
            )
        except FeedServiceError as e:
            logger.error(f"Error fetching streaming providers: {e}")
            return [], e

        names = set()
        for row in rows:
            names.update(Show.from_row(row).streamers)
        streamers = [
            {"id": _PROVIDER_IDS_BY_NAME[name], "name": name}
            for name in normalize_streamers(sorted(names))
        ]
        return streamers, None

    def _fetch_genres_option(self) -> Tuple[List[Dict], Optional[FeedServiceError]]:
        try:
            return self.genres.fetch_genres(), None
        except FeedServiceError as e:
            logger.error(f"Error fetching genres: {e}")
            return [], e

    def fetch_filter_options(self) -> Tuple[Dict, Optional[FeedServiceError]]:
        """
        Fetch genres, year range and streamers concurrently.

        Returns:
            (options dict, first error or None); options hold fallbacks for failed parts
        """
        with ThreadPoolExecutor(max_workers=3, thread_name_prefix="filter_options") as executor:
            genres_future = executor.submit(self._fetch_genres_option)
            years_future = executor.submit(self.fetch_year_range)
            streamers_future = executor.submit(self.fetch_streaming_providers)
            genres, genres_error = genres_future.result()
            year_range, years_error = years_future.result()
            streamers, streamers_error = streamers_future.result()

        options = {"genres": genres, "year_range": list(year_range), "streamers": streamers}
        return options, genres_error or years_error or streamers_error
